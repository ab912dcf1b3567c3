"""
AI Tool Registry

Defines all available tools in OpenAI function calling format.
Each tool maps to a command in app.libs.ai_commands with the same name.
"""

from typing import Any, Dict, List, Optional, Sequence

from app.libs.models import (
    BlockType,
    DependencyType,
    EntityType,
    FieldType,
    ProjectStatus,
    PropertyType,
    TaskPriority,
    TaskStatus,
    TimelineEventStatus,
)

TASK_STATUSES = [s.value for s in TaskStatus]
TASK_PRIORITIES = [p.value for p in TaskPriority]
PROJECT_STATUSES = [s.value for s in ProjectStatus]
BLOCK_TYPES = [t.value for t in BlockType]
ENTITY_TYPES = [t.value for t in EntityType]
FIELD_TYPES = [t.value for t in FieldType]
PROPERTY_TYPES = [t.value for t in PropertyType]
TIMELINE_STATUSES = [s.value for s in TimelineEventStatus]
DEPENDENCY_TYPES = [t.value for t in DependencyType]

DATE = {"type": "string", "description": "Date in YYYY-MM-DD format"}


def _id(what: str) -> Dict[str, Any]:
    return {"type": "string", "description": f"UUID of the {what}"}


def _function(
    name: str,
    description: str,
    properties: Dict[str, Any],
    required: Sequence[str] = (),
) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": list(required),
            },
        },
    }


def get_all_tools() -> List[Dict[str, Any]]:
    """Get all available AI tools in OpenAI function format."""
    return [
        # Search & read tools
        _function(
            "search_tasks",
            "Search tasks in the workspace by title text and/or filters.",
            {
                "query": {"type": "string", "description": "Text the task title should contain"},
                "status": {"type": "string", "enum": TASK_STATUSES},
                "priority": {"type": "string", "enum": TASK_PRIORITIES},
                "project_id": _id("project the tasks belong to"),
                "limit": {"type": "integer", "description": "Maximum results (default 50)"},
            },
        ),
        _function(
            "search_projects",
            "Search projects in the workspace by name and/or status.",
            {
                "query": {"type": "string", "description": "Text the project name should contain"},
                "status": {"type": "string", "enum": PROJECT_STATUSES},
                "limit": {"type": "integer", "description": "Maximum results (default 50)"},
            },
        ),
        _function(
            "search_blocks",
            "List the blocks on a tab, optionally filtered by block type.",
            {"tab_id": _id("tab"), "type": {"type": "string", "enum": BLOCK_TYPES}},
            ["tab_id"],
        ),
        _function(
            "get_entity_by_id",
            "Fetch one entity by its ID.",
            {
                "entity_type": {
                    "type": "string",
                    "enum": ["project", "tab", "block", "task", "client", "doc", "table", "timeline_event", "file"],
                },
                "id": _id("entity"),
            },
            ["entity_type", "id"],
        ),
        _function(
            "reindex_workspace_content",
            "Queue the workspace's blocks and files for search indexing. Use when search results look stale.",
            {
                "include_blocks": {"type": "boolean", "description": "Index blocks (default true)"},
                "include_files": {"type": "boolean", "description": "Index files (default true)"},
                "max_items": {"type": "integer", "description": "Upper bound on queued items"},
            },
        ),
        # Project tools
        _function(
            "create_project",
            "Create a new project in the workspace.",
            {
                "name": {"type": "string", "description": "Project name"},
                "status": {"type": "string", "enum": PROJECT_STATUSES},
                "client_id": _id("client the project is for"),
                "project_type": {"type": "string", "enum": ["project", "internal"]},
                "due_date": DATE,
            },
            ["name"],
        ),
        _function(
            "update_project",
            "Update a project's name, status, client or due date.",
            {
                "project_id": _id("project"),
                "name": {"type": "string"},
                "status": {"type": "string", "enum": PROJECT_STATUSES},
                "client_id": _id("client"),
                "due_date": DATE,
            },
            ["project_id"],
        ),
        _function("delete_project", "Delete a project.", {"project_id": _id("project")}, ["project_id"]),
        # Tab tools
        _function(
            "create_tab",
            "Create a tab (page) inside a project, optionally nested under another tab.",
            {
                "project_id": _id("project"),
                "name": {"type": "string", "description": "Tab name"},
                "parent_tab_id": _id("parent tab"),
                "position": {"type": "integer", "description": "Position among sibling tabs"},
            },
            ["project_id", "name"],
        ),
        _function(
            "update_tab",
            "Rename or reorder a tab.",
            {"tab_id": _id("tab"), "name": {"type": "string"}, "position": {"type": "integer"}},
            ["tab_id"],
        ),
        _function("delete_tab", "Delete a tab and its blocks.", {"tab_id": _id("tab")}, ["tab_id"]),
        # Block tools
        _function(
            "create_block",
            "Add a block to a tab. Omit position to append at the end.",
            {
                "tab_id": _id("tab"),
                "type": {"type": "string", "enum": BLOCK_TYPES},
                "content": {"type": "object", "description": "Block content, shape depends on the type"},
                "position": {"type": "integer"},
                "column": {"type": "integer", "description": "Column 0, 1 or 2"},
                "parent_block_id": _id("parent section block"),
            },
            ["tab_id", "type"],
        ),
        _function(
            "update_block",
            "Update a block's content, position or column.",
            {
                "block_id": _id("block"),
                "content": {"type": "object"},
                "position": {"type": "integer"},
                "column": {"type": "integer"},
            },
            ["block_id"],
        ),
        _function(
            "move_block",
            "Move a block to a new position, column or tab.",
            {
                "block_id": _id("block"),
                "target_tab_id": _id("destination tab"),
                "position": {"type": "integer"},
                "column": {"type": "integer"},
            },
            ["block_id", "position"],
        ),
        _function("delete_block", "Delete a block.", {"block_id": _id("block")}, ["block_id"]),
        _function(
            "create_chart_block",
            "Add a chart block to a tab. Only when the user asks for a chart or graph.",
            {
                "tab_id": _id("tab"),
                "prompt": {"type": "string", "description": "The user's chart request, with any inline data"},
                "chart_type": {"type": "string", "enum": ["bar", "line", "pie", "doughnut"]},
                "title": {"type": "string"},
                "explicit_data": {"type": "object", "description": "Structured data to chart (labels/datasets)"},
            },
            ["tab_id", "prompt"],
        ),
        # Task tools
        _function(
            "create_task_item",
            "Create a task inside a task block.",
            {
                "task_block_id": _id("task block"),
                "title": {"type": "string", "description": "Short, clear task title"},
                "status": {"type": "string", "enum": TASK_STATUSES},
                "priority": {"type": "string", "enum": TASK_PRIORITIES},
                "description": {"type": "string"},
                "due_date": DATE,
                "assignee_id": _id("assigned user"),
            },
            ["task_block_id", "title"],
        ),
        _function(
            "update_task_item",
            "Update a task's title, status, priority, description or due date.",
            {
                "task_id": _id("task"),
                "title": {"type": "string"},
                "status": {"type": "string", "enum": TASK_STATUSES},
                "priority": {"type": "string", "enum": TASK_PRIORITIES},
                "description": {"type": "string"},
                "due_date": DATE,
            },
            ["task_id"],
        ),
        _function(
            "bulk_update_task_items",
            "Apply the same status, priority or due date to several tasks at once.",
            {
                "task_ids": {"type": "array", "items": {"type": "string"}},
                "status": {"type": "string", "enum": TASK_STATUSES},
                "priority": {"type": "string", "enum": TASK_PRIORITIES},
                "due_date": DATE,
            },
            ["task_ids"],
        ),
        _function("delete_task_item", "Delete a task.", {"task_id": _id("task")}, ["task_id"]),
        _function(
            "create_task_subtask",
            "Add a checklist subtask to a task.",
            {"task_id": _id("task"), "title": {"type": "string"}, "completed": {"type": "boolean"}},
            ["task_id", "title"],
        ),
        _function(
            "update_task_subtask",
            "Rename a subtask or tick it off.",
            {"subtask_id": _id("subtask"), "title": {"type": "string"}, "completed": {"type": "boolean"}},
            ["subtask_id"],
        ),
        _function("delete_task_subtask", "Delete a subtask.", {"subtask_id": _id("subtask")}, ["subtask_id"]),
        _function(
            "create_task_comment",
            "Comment on a task as the current user.",
            {"task_id": _id("task"), "text": {"type": "string"}},
            ["task_id", "text"],
        ),
        _function(
            "set_task_tags",
            "Replace all tags on a task. Pass an empty list to clear them.",
            {"task_id": _id("task"), "tag_ids": {"type": "array", "items": {"type": "string"}}},
            ["task_id", "tag_ids"],
        ),
        _function(
            "set_task_assignees",
            "Replace all assignees on a task. Pass an empty list to unassign everyone.",
            {
                "task_id": _id("task"),
                "assignees": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
                        "required": ["id", "name"],
                    },
                },
            },
            ["task_id", "assignees"],
        ),
        # Property tools
        _function(
            "set_entity_property",
            "Set a custom property value on a block, task, timeline event or table row.",
            {
                "entity_type": {"type": "string", "enum": ENTITY_TYPES},
                "entity_id": _id("entity"),
                "property_definition_id": _id("property definition"),
                "value": {"description": "New property value"},
            },
            ["entity_type", "entity_id", "property_definition_id", "value"],
        ),
        _function(
            "remove_entity_property",
            "Clear a custom property from an entity.",
            {
                "entity_type": {"type": "string", "enum": ENTITY_TYPES},
                "entity_id": _id("entity"),
                "property_definition_id": _id("property definition"),
            },
            ["entity_type", "entity_id", "property_definition_id"],
        ),
        # Client tools
        _function(
            "create_client",
            "Create a client.",
            {
                "name": {"type": "string"},
                "email": {"type": "string"},
                "company": {"type": "string"},
                "phone": {"type": "string"},
                "website": {"type": "string"},
                "notes": {"type": "string"},
            },
            ["name"],
        ),
        _function(
            "update_client",
            "Update a client's details.",
            {
                "client_id": _id("client"),
                "name": {"type": "string"},
                "email": {"type": "string"},
                "company": {"type": "string"},
                "phone": {"type": "string"},
                "website": {"type": "string"},
                "notes": {"type": "string"},
            },
            ["client_id"],
        ),
        _function("delete_client", "Delete a client.", {"client_id": _id("client")}, ["client_id"]),
        # Doc tools
        _function(
            "create_doc",
            "Create a document.",
            {"title": {"type": "string"}, "content": {"type": "object", "description": "Rich text document"}},
        ),
        _function(
            "update_doc",
            "Update a document's title or content.",
            {"doc_id": _id("doc"), "title": {"type": "string"}, "content": {"type": "object"}},
            ["doc_id"],
        ),
        _function("archive_doc", "Archive a document.", {"doc_id": _id("doc")}, ["doc_id"]),
        _function("delete_doc", "Permanently delete a document.", {"doc_id": _id("doc")}, ["doc_id"]),
        # Table row tools
        _function(
            "create_row",
            "Add a row to a table. Data maps field IDs to values.",
            {"table_id": _id("table"), "data": {"type": "object"}},
            ["table_id"],
        ),
        _function(
            "update_row",
            "Update cells of a table row. Only the given fields change.",
            {"row_id": _id("row"), "data": {"type": "object"}},
            ["row_id", "data"],
        ),
        _function(
            "delete_rows",
            "Delete rows from a table.",
            {"table_id": _id("table"), "row_ids": {"type": "array", "items": {"type": "string"}}},
            ["table_id", "row_ids"],
        ),
        _function(
            "bulk_insert_rows",
            "Insert several rows into a table in one call. Use for 3 or more rows.",
            {
                "table_id": _id("table"),
                "rows": {
                    "type": "array",
                    "description": "Rows as [{data: {fieldId: value}}]",
                    "items": {"type": "object", "properties": {"data": {"type": "object"}}},
                },
            },
            ["table_id", "rows"],
        ),
        _function(
            "bulk_update_rows",
            "Set the same cell values on several rows of a table.",
            {
                "table_id": _id("table"),
                "row_ids": {"type": "array", "items": {"type": "string"}},
                "updates": {"type": "object", "description": "Cell values keyed by field ID"},
            },
            ["table_id", "row_ids", "updates"],
        ),
        # Table tools
        _function(
            "create_table",
            "Create a table. Pass tab_id to also place a table block on that tab.",
            {
                "title": {"type": "string", "description": "Name shown in the UI"},
                "description": {"type": "string"},
                "project_id": _id("project"),
                "tab_id": _id("tab to show the table on"),
            },
            ["title"],
        ),
        _function(
            "update_table",
            "Rename a table or change its description.",
            {"table_id": _id("table"), "title": {"type": "string"}, "description": {"type": "string"}},
            ["table_id"],
        ),
        _function(
            "delete_table",
            "Delete a table with all its fields and rows.",
            {"table_id": _id("table")},
            ["table_id"],
        ),
        _function(
            "create_field",
            "Add a field (column) to a table. Use type priority or status for those fields, not select.",
            {
                "table_id": _id("table"),
                "name": {"type": "string"},
                "type": {"type": "string", "enum": FIELD_TYPES},
                "config": {"type": "object", "description": "Field configuration (options, levels, ...)"},
                "is_primary": {"type": "boolean"},
            },
            ["table_id", "name", "type"],
        ),
        _function(
            "update_field",
            "Rename a field or change its configuration.",
            {"field_id": _id("field"), "name": {"type": "string"}, "config": {"type": "object"}},
            ["field_id"],
        ),
        _function(
            "delete_field",
            "Delete a field and every value in that column.",
            {"field_id": _id("field")},
            ["field_id"],
        ),
        _function(
            "create_comment",
            "Comment on a table row.",
            {"row_id": _id("table row"), "text": {"type": "string"}},
            ["row_id", "text"],
        ),
        _function(
            "update_comment",
            "Change the text of a table row comment.",
            {"comment_id": _id("comment"), "text": {"type": "string"}},
            ["comment_id", "text"],
        ),
        _function("delete_comment", "Delete a table row comment.", {"comment_id": _id("comment")}, ["comment_id"]),
        # Timeline tools
        _function(
            "create_timeline_event",
            "Add an event to a timeline block.",
            {
                "timeline_block_id": _id("timeline block"),
                "title": {"type": "string"},
                "start_date": DATE,
                "end_date": DATE,
                "status": {"type": "string", "enum": TIMELINE_STATUSES},
                "progress": {"type": "integer", "description": "Percent complete, 0-100"},
                "notes": {"type": "string"},
                "color": {"type": "string"},
                "is_milestone": {"type": "boolean"},
                "assignee_id": _id("workspace member assigned to the event"),
            },
            ["timeline_block_id", "title", "start_date", "end_date"],
        ),
        _function(
            "update_timeline_event",
            "Update a timeline event. Only the given fields change.",
            {
                "event_id": _id("timeline event"),
                "title": {"type": "string"},
                "start_date": DATE,
                "end_date": DATE,
                "status": {"type": "string", "enum": TIMELINE_STATUSES},
                "progress": {"type": "integer"},
                "notes": {"type": "string"},
                "color": {"type": "string"},
                "is_milestone": {"type": "boolean"},
                "assignee_id": _id("workspace member assigned to the event"),
            },
            ["event_id"],
        ),
        _function(
            "delete_timeline_event",
            "Delete a timeline event and its dependencies.",
            {"event_id": _id("timeline event")},
            ["event_id"],
        ),
        _function(
            "create_timeline_dependency",
            "Make one timeline event depend on another. finish-to-start is the usual kind.",
            {
                "timeline_block_id": _id("timeline block that owns both events"),
                "from_event_id": _id("event that happens first"),
                "to_event_id": _id("event that depends on it"),
                "dependency_type": {"type": "string", "enum": DEPENDENCY_TYPES},
            },
            ["timeline_block_id", "from_event_id", "to_event_id"],
        ),
        _function(
            "delete_timeline_dependency",
            "Delete a timeline dependency.",
            {"dependency_id": _id("dependency")},
            ["dependency_id"],
        ),
        # Property definition tools
        _function(
            "create_property_definition",
            "Define a workspace property usable on tasks, blocks, timeline events and table rows.",
            {
                "name": {"type": "string"},
                "type": {"type": "string", "enum": PROPERTY_TYPES},
                "options": {
                    "type": "array",
                    "description": "For select types: [{id, label, color}]",
                    "items": {"type": "object"},
                },
            },
            ["name", "type"],
        ),
        _function(
            "update_property_definition",
            "Rename a property definition or change its options.",
            {
                "definition_id": _id("property definition"),
                "name": {"type": "string"},
                "options": {"type": "array", "items": {"type": "object"}},
            },
            ["definition_id"],
        ),
        _function(
            "delete_property_definition",
            "Delete a property definition and every value set with it.",
            {"definition_id": _id("property definition")},
            ["definition_id"],
        ),
        # File tools
        _function(
            "rename_file",
            "Rename a file (display name only).",
            {"file_id": _id("file"), "file_name": {"type": "string"}},
            ["file_id", "file_name"],
        ),
    ]


def get_tool_by_name(tool_name: str) -> Optional[Dict[str, Any]]:
    """Get a specific tool definition by name."""
    for tool in get_all_tools():
        if tool["function"]["name"] == tool_name:
            return tool
    return None
