"""AI API - run natural-language commands against the current workspace."""

import json
import logging
import re
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import Field

from app.auth import AuthorizedUser, User, get_current_workspace_id, require_workspace_member
from app.dependencies import GatewayDep, SettingsDep
from app.libs.ai_orchestrator import AIOrchestrator
from app.libs.data_gateway import DataGateway
from app.libs.models import AIMessage, ChatRole, ExecutionContext, WireModel

logger = logging.getLogger(__name__)

router = APIRouter()

PROJECT_TAB_PATH = re.compile(r"/dashboard/projects/([^/]+)/tabs/([^/]+)")
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


# =============================================================================
# Request Models
# =============================================================================


class AICommandRequest(WireModel):
    """Request body for POST /ai."""
    command: Optional[str] = None
    conversation_history: List[AIMessage] = Field(default_factory=list)


class AIStreamRequest(WireModel):
    """Request body for POST /ai/stream."""
    command: Optional[str] = None
    project_id: Optional[str] = None
    tab_id: Optional[str] = None
    context_block_id: Optional[str] = None
    messages: List[AIMessage] = Field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================


def location_from_referer(referer: Optional[str]) -> Dict[str, Optional[str]]:
    """Pull the project and tab the user is looking at out of the Referer URL."""
    match = PROJECT_TAB_PATH.search(referer or "")
    if not match:
        return {"current_project_id": None, "current_tab_id": None}
    return {"current_project_id": match.group(1), "current_tab_id": match.group(2)}


async def build_context(
    request: Request,
    gateway: DataGateway,
    user: User,
    **location: Optional[str],
) -> ExecutionContext:
    """Resolve the workspace, check membership and collect display names."""
    workspace_id = get_current_workspace_id(request)
    if not workspace_id:
        raise HTTPException(status_code=400, detail="No workspace selected")
    await require_workspace_member(gateway, workspace_id, user)

    workspace = await gateway.select_one("workspaces", "name", match={"id": workspace_id})
    profile = await gateway.select_one("profiles", "name, email", match={"id": user.sub})
    user_name = None
    if profile:
        user_name = profile.get("name") or profile.get("email")

    return ExecutionContext(
        workspace_id=workspace_id,
        workspace_name=workspace.get("name") if workspace else None,
        user_id=user.sub,
        user_name=user_name or user.email,
        **location,
    )


async def block_context(gateway: DataGateway, block_id: str, workspace_id: str) -> Dict[str, Any]:
    """Describe a block the user selected, as a system message plus a table id."""
    block = await gateway.select_one("blocks", "id, type, content, tab_id", match={"id": block_id})
    if not block:
        return {}
    tab = await gateway.select_one("tabs", "name, project_id", match={"id": block["tab_id"]})
    project = None
    if tab:
        project = await gateway.select_one(
            "projects", "name", match={"id": tab["project_id"], "workspace_id": workspace_id}
        )
    if project is None:
        return {}

    content = block.get("content") or {}
    table_id = str(content.get("tableId") or "") if block.get("type") == "table" else ""
    lines = [
        "Context: user selected a block. Use this as the target unless the user says otherwise.",
        f"- Block ID: {block['id']}",
        f"- Block type: {block.get('type')}",
        f"- Tab: {tab.get('name') or 'unknown tab'}",
        f"- Project: {project.get('name') or 'unknown project'}",
    ]
    if table_id:
        lines.append(f"- Table ID: {table_id}")
    return {
        "message": AIMessage(role=ChatRole.SYSTEM, content="\n".join(lines)),
        "table_id": table_id or None,
    }


def sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/ai")
async def ai_status(settings: SettingsDep):
    """Health check and info endpoint for the AI service."""
    ready = settings.ai_configured
    return {
        "service": "Trak AI",
        "status": "ready" if ready else "not_configured",
        "message": (
            "AI service is ready to accept commands."
            if ready
            else "AI service is not configured. Please set OPENAI_API_KEY or DEEPSEEK_API_KEY."
        ),
    }


@router.post("/ai")
async def run_ai_command(
    body: AICommandRequest,
    request: Request,
    user: AuthorizedUser,
    settings: SettingsDep,
    gateway: GatewayDep,
):
    """Execute an AI command in the current workspace."""
    context = await build_context(request, gateway, user, **location_from_referer(request.headers.get("referer")))

    if not body.command or not body.command.strip():
        raise HTTPException(status_code=400, detail="Missing command")

    try:
        orchestrator = AIOrchestrator(settings, gateway)
        result = await orchestrator.execute(body.command, context, body.conversation_history)
    except Exception as e:
        logger.exception("AI command failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e) or "Unknown error",
                "response": "An unexpected error occurred. Please try again.",
            },
        )

    logger.info(
        "AI command in workspace %s: success=%s tools=%d",
        context.workspace_id, result.success, len(result.tool_calls_made),
    )
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/ai/stream")
async def stream_ai_command(
    body: AIStreamRequest,
    request: Request,
    user: AuthorizedUser,
    settings: SettingsDep,
    gateway: GatewayDep,
):
    """Execute an AI command, streaming progress as server-sent events."""
    context = await build_context(
        request, gateway, user, current_project_id=body.project_id, current_tab_id=body.tab_id
    )

    if not body.command or not body.command.strip():
        return StreamingResponse(
            iter([sse({"type": "error", "content": "Missing command"}), sse({"type": "done"})]),
            status_code=400,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    history = list(body.messages)
    if body.context_block_id:
        selected = await block_context(gateway, body.context_block_id, context.workspace_id)
        if selected:
            context.context_block_id = body.context_block_id
            context.context_table_id = selected["table_id"]
            history.insert(0, selected["message"])

    orchestrator = AIOrchestrator(settings, gateway)

    async def generate() -> AsyncGenerator[str, None]:
        try:
            async for event in orchestrator.execute_stream(body.command, context, history):
                yield sse(event)
            yield sse({"type": "done"})
        except Exception as e:
            logger.exception("AI stream failed")
            yield sse({"type": "error", "content": str(e) or "Unknown error"})
            yield sse({"type": "done"})

    return StreamingResponse(generate(), media_type="text/event-stream", headers=SSE_HEADERS)
