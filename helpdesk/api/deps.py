from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from helpdesk.db.session import get_db
from helpdesk.core.security import decode_access_token
from helpdesk.models.team import TeamMember, TeamMemberRole
from helpdesk.crud import team_member as crud_team_member
from helpdesk.services.inbox_sessions import InboxSessionRegistry
from helpdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_team_member(db: Session, token: Optional[str], tenant_id: Optional[str]) -> TeamMember:
    """Authenticate a bearer token against a tenant; shared by HTTP and WebSocket routes"""
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        user_id = UUID(decode_access_token(token))
    except (JWTError, ValueError):
        raise _unauthorized("Could not validate credentials")

    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        tenant_uuid = UUID(tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID must be a UUID",
        )

    member = crud_team_member.get_team_member_in_tenant(db, user_id, tenant_uuid)
    if member is None:
        logger.warning(f"User {user_id} is not an active member of tenant {tenant_uuid}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this tenant",
        )
    return member


def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
) -> TeamMember:
    """Get the current team member (auth user within the requested tenant)"""
    token = credentials.credentials if credentials else None
    return resolve_team_member(db, token, x_tenant_id)


def get_current_admin(current_user: TeamMember = Depends(get_current_user)) -> TeamMember:
    """Get current team member, requiring the admin role"""
    if current_user.role != TeamMemberRole.admin.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Admin access required.",
        )
    return current_user


def get_inbox_registry(request: Request) -> InboxSessionRegistry:
    return request.app.state.inbox_registry


async def get_inbox_store(
    current_user: TeamMember = Depends(get_current_user),
    registry: InboxSessionRegistry = Depends(get_inbox_registry),
) -> TicketStore:
    """The live inbox store for the current (tenant, user)"""
    return await registry.get_store(str(current_user.tenant_id), str(current_user.user_id))
