"""Caller identity for API requests.

Authentication happens upstream (API gateway / identity provider). The
gateway forwards the verified claims as headers, and this module turns them
into an AuthContext that services use for ownership and membership checks.
"""

import logging
from dataclasses import dataclass

from fastapi import Header

from src.services.errors import ForbiddenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller."""

    user_id: str
    """Subject id from the identity provider."""

    email: str | None = None
    name: str | None = None


def build_auth_context(
    user_id: str | None,
    email: str | None = None,
    name: str | None = None,
) -> AuthContext:
    """Validate forwarded claims and build an AuthContext.

    Raises:
        ForbiddenError: If no user id was forwarded
    """
    user_id = (user_id or "").strip()
    if not user_id:
        raise ForbiddenError("Unauthenticated")
    return AuthContext(
        user_id=user_id,
        email=(email or "").strip() or None,
        name=(name or "").strip() or None,
    )


async def get_auth_context(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> AuthContext:
    """FastAPI dependency reading the caller identity headers."""
    auth = build_auth_context(x_user_id, x_user_email, x_user_name)
    logger.debug("auth: user_id=%s", auth.user_id)
    return auth


__all__ = ["AuthContext", "build_auth_context", "get_auth_context"]
