import uuid
from typing import Annotated

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.config import AppConfig, Settings, get_config, get_settings
from autosend.core.database import get_db
from autosend.core.datetime_utils import is_expired
from autosend.core.errors import AuthorizationError
from autosend.models.user import Session, User
from autosend.services.triggers import AutoSendRunner

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Config = Annotated[AppConfig, Depends(get_config)]


def get_runner(request: Request) -> AutoSendRunner:
    """The runner built at startup; it owns the background worker."""
    return request.app.state.runner


Runner = Annotated[AutoSendRunner, Depends(get_runner)]


async def get_current_user_optional(
    db: DBSession,
    session_id: str | None = Cookie(default=None, alias="session_id"),
) -> User | None:
    """Get the current user if authenticated, None otherwise."""
    if not session_id:
        return None

    try:
        session_uuid = uuid.UUID(session_id)
    except ValueError:
        return None

    result = await db.execute(select(Session).where(Session.id == session_uuid))
    session = result.scalar_one_or_none()

    if not session:
        return None

    if is_expired(session.expires_at):
        await db.delete(session)
        return None

    return session.user


async def require_admin(
    user: User | None = Depends(get_current_user_optional),
) -> User:
    """Only active SUPER_ADMIN and ADMIN users may trigger or configure auto-send."""
    if user is None:
        raise AuthorizationError("Not authenticated")
    if not user.is_admin:
        raise AuthorizationError("Insufficient permissions")
    return user


AdminUser = Annotated[User, Depends(require_admin)]
