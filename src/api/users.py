"""User API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas import UserProfileResponse, UserSearchResponse
from src.services import get_async_session
from src.services.auth_service import AuthContext, get_auth_context
from src.services.user_service import SEARCH_LIMIT, UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserProfileResponse)
async def get_me(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> UserProfileResponse:
    """Caller's profile, created on first call."""
    profile = await UserService(session).ensure_user_profile(auth)
    await session.commit()
    return UserProfileResponse.model_validate(profile)


@router.get("/search", response_model=UserSearchResponse)
async def search_users(
    q: str = Query(default=""),
    limit: int = Query(default=SEARCH_LIMIT, ge=1, le=50),
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> UserSearchResponse:
    """Profiles whose display name starts with ``q``, excluding the caller."""
    users = await UserService(session).search_users(q, auth, limit=limit)
    await session.commit()
    logger.debug("users.search: user_id=%s q=%r count=%d", auth.user_id, q, len(users))
    return UserSearchResponse(users=[UserProfileResponse.model_validate(u) for u in users])


__all__ = ["router"]
