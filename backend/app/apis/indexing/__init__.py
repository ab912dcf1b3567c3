"""Indexing API - queue workspace content for search indexing."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from app.auth import AuthorizedUser, get_current_workspace_id, require_workspace_member
from app.dependencies import GatewayDep
from app.libs.data_gateway import GatewayError
from app.libs.models import WireModel
from app.libs.reindex import ReindexError, reindex_workspace_content

logger = logging.getLogger(__name__)

router = APIRouter()


class ReindexRequest(WireModel):
    workspace_id: Optional[str] = None
    include_blocks: bool = True
    include_files: bool = True
    max_items: Optional[int] = None


@router.post("/indexing/reindex")
async def reindex_workspace(body: ReindexRequest, request: Request, user: AuthorizedUser, gateway: GatewayDep):
    """Enqueue every block and file of a workspace for indexing."""
    workspace_id = (body.workspace_id or "").strip() or get_current_workspace_id(request)
    if not workspace_id:
        raise HTTPException(status_code=400, detail="Missing workspaceId")
    await require_workspace_member(gateway, workspace_id, user)

    try:
        result = await reindex_workspace_content(
            gateway,
            workspace_id,
            include_blocks=body.include_blocks,
            include_files=body.include_files,
            max_items=body.max_items,
        )
    except (ReindexError, GatewayError) as e:
        logger.error("Reindex of workspace %s failed: %s", workspace_id, e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    return result.model_dump(by_alias=True)
