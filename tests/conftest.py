"""
Shared pytest fixtures for all tests.
"""

import pytest

from app.libs.config import Settings
from app.libs.models import ExecutionContext
from fakes import InMemoryGateway

WORKSPACE_ID = "ws-1"
OTHER_WORKSPACE_ID = "ws-2"
USER_ID = "user-1"


def seed_tables():
    """A small workspace: one project with one tab holding a task block."""
    return {
        "workspace_members": [
            {"workspace_id": WORKSPACE_ID, "user_id": USER_ID, "role": "owner"},
        ],
        "workspaces": [{"id": WORKSPACE_ID, "name": "Acme"}],
        "profiles": [{"id": USER_ID, "name": "Dana", "email": "dana@example.com"}],
        "projects": [
            {"id": "proj-1", "workspace_id": WORKSPACE_ID, "name": "Website", "status": "in_progress"},
            {"id": "proj-x", "workspace_id": OTHER_WORKSPACE_ID, "name": "Secret", "status": "not_started"},
        ],
        "tabs": [
            {"id": "tab-1", "project_id": "proj-1", "name": "Overview", "position": 0},
            {"id": "tab-x", "project_id": "proj-x", "name": "Hidden", "position": 0},
        ],
        "blocks": [
            {"id": "block-1", "tab_id": "tab-1", "type": "task", "content": {}, "position": 0, "column": 0},
        ],
        "task_items": [
            {
                "id": "task-1",
                "task_block_id": "block-1",
                "workspace_id": WORKSPACE_ID,
                "project_id": "proj-1",
                "tab_id": "tab-1",
                "title": "Write copy",
                "status": "todo",
                "priority": "none",
                "display_order": 0,
            },
        ],
        "task_tags": [
            {"id": "tag-1", "workspace_id": WORKSPACE_ID, "name": "urgent"},
            {"id": "tag-2", "workspace_id": WORKSPACE_ID, "name": "design"},
        ],
        "task_tag_links": [{"task_id": "task-1", "tag_id": "tag-1"}],
    }


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway(seed_tables())


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(workspace_id=WORKSPACE_ID, user_id=USER_ID, workspace_name="Acme")


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="test-key", max_tool_iterations=4)
