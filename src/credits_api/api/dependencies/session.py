"""Identity forwarded by the storefront gateway as session headers."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header

from credits_api.api.dependencies.security import has_internal_api_key
from credits_api.services.errors import AdminRequired, Unauthenticated, ValidationFailed

_TRUTHY = {"1", "true", "yes", "on"}


async def require_session_user(
    session_user: str | None = Header(None, alias="X-Session-User"),
) -> UUID:
    """Resolve the authenticated user id from forwarded session headers."""

    if not session_user:
        raise Unauthenticated("Missing session user context")
    try:
        return UUID(session_user)
    except ValueError as error:
        raise ValidationFailed("Invalid session user identifier") from error


def _is_admin(flag: str | None) -> bool:
    return bool(flag) and flag.strip().lower() in _TRUTHY


async def require_admin(
    user_id: UUID = Depends(require_session_user),
    session_admin: str | None = Header(None, alias="X-Session-Admin"),
) -> UUID:
    if not _is_admin(session_admin):
        raise AdminRequired("Administrator privileges are required")
    return user_id


async def require_admin_or_internal(
    internal: bool = Depends(has_internal_api_key),
    session_user: str | None = Header(None, alias="X-Session-User"),
    session_admin: str | None = Header(None, alias="X-Session-Admin"),
) -> UUID | None:
    """Allow trusted internal callers (no acting admin) or an authenticated admin."""

    if internal:
        return None
    user_id = await require_session_user(session_user)
    if not _is_admin(session_admin):
        raise AdminRequired("Administrator privileges or an internal API key are required")
    return user_id
