"""AI Undo API - revert the changes made by an AI command."""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException

from app.auth import AuthorizedUser, require_workspace_member
from app.dependencies import GatewayDep
from app.libs.models import WireModel
from app.libs.undo import undo_batches

router = APIRouter()


class UndoRequest(WireModel):
    """Request body for POST /ai/undo.

    `batches` is left loosely typed so malformed steps are reported per step.
    """
    workspace_id: Optional[str] = None
    batches: Any = None


@router.post("/ai/undo")
async def undo_ai_action(body: UndoRequest, user: AuthorizedUser, gateway: GatewayDep):
    """Replay undo batches, newest first."""
    workspace_id = str(body.workspace_id or "").strip()
    if not workspace_id:
        raise HTTPException(status_code=400, detail="Missing workspaceId")
    await require_workspace_member(gateway, workspace_id, user)

    result = await undo_batches(gateway, body.batches)
    return {"success": True, **result.model_dump()}
