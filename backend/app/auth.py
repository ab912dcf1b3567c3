"""Request authentication and workspace membership.

Authentication happens in the proxy in front of the service, which forwards
the verified user as the X-User-Id header (and X-User-Email when known).
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from app.libs.data_gateway import DataGateway, Row

WORKSPACE_HEADER = "X-Workspace-Id"
WORKSPACE_COOKIE = "trak_current_workspace"


class User(BaseModel):
    """Authenticated user."""
    sub: str
    email: Optional[str] = None


def get_authorized_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_email: Annotated[Optional[str], Header()] = None,
) -> User:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return User(sub=x_user_id.strip(), email=x_user_email)


AuthorizedUser = Annotated[User, Depends(get_authorized_user)]


def get_current_workspace_id(request: Request) -> Optional[str]:
    """Workspace selected by the client: header first, then cookie."""
    workspace_id = request.headers.get(WORKSPACE_HEADER) or request.cookies.get(WORKSPACE_COOKIE)
    if workspace_id and workspace_id.strip():
        return workspace_id.strip()
    return None


async def check_workspace_membership(gateway: DataGateway, workspace_id: str, user_id: str) -> Optional[Row]:
    """Return the caller's membership row, or None if they are not a member."""
    return await gateway.select_one(
        "workspace_members",
        "workspace_id, user_id, role",
        match={"workspace_id": workspace_id, "user_id": user_id},
    )


async def require_workspace_member(gateway: DataGateway, workspace_id: str, user: User) -> Row:
    membership = await check_workspace_membership(gateway, workspace_id, user.sub)
    if membership is None:
        raise HTTPException(status_code=403, detail="Not a member of this workspace")
    return membership
