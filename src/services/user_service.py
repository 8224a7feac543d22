"""User service for caller profiles and member lookup."""

import logging
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import UserProfile
from src.services.auth_service import AuthContext

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


class UserService:
    """Service for user profile operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with database session."""
        self.session = session

    async def get_user(self, user_id: str) -> UserProfile | None:
        """
        Get profile by user id.

        Args:
            user_id: Identity provider subject id

        Returns:
            UserProfile if found, None otherwise
        """
        return await self.session.get(UserProfile, user_id)

    async def ensure_user_profile(self, auth: AuthContext) -> UserProfile:
        """
        Return the caller's profile, creating or refreshing it from the claims.

        Missing display name and email are filled from the forwarded claims;
        values the user already has are never overwritten.

        Args:
            auth: Caller identity

        Returns:
            The caller's UserProfile (flushed, not committed)
        """
        profile = await self.get_user(auth.user_id)
        if profile is None:
            profile = UserProfile(
                id=auth.user_id,
                display_name=auth.name,
                display_name_lower=auth.name.lower() if auth.name else None,
                email=auth.email,
            )
            self.session.add(profile)
            try:
                await self.session.flush()
            except IntegrityError:
                # A concurrent request created the same profile first
                await self.session.rollback()
                profile = await self.get_user(auth.user_id)
                if profile is None:
                    raise
                logger.debug("Profile %s created concurrently, reusing it", auth.user_id)
            else:
                logger.info("Created user profile %s", auth.user_id)
                return profile

        changed = False
        if not profile.display_name and auth.name:
            profile.display_name = auth.name
            profile.display_name_lower = auth.name.lower()
            changed = True
        if not profile.email and auth.email:
            profile.email = auth.email
            changed = True
        if changed:
            await self.session.flush()
        return profile

    async def get_users_by_ids(self, user_ids: Sequence[str]) -> List[UserProfile]:
        """
        Batch lookup of profiles. Missing ids are simply absent from the result.

        Args:
            user_ids: Ids to fetch

        Returns:
            Found profiles, in the order of ``user_ids``
        """
        if not user_ids:
            return []
        result = await self.session.execute(
            select(UserProfile).where(UserProfile.id.in_(list(user_ids)))
        )
        by_id = {profile.id: profile for profile in result.scalars().all()}
        return [by_id[user_id] for user_id in user_ids if user_id in by_id]

    async def search_users(
        self, query: str | None, auth: AuthContext, limit: int = SEARCH_LIMIT
    ) -> List[UserProfile]:
        """
        Find profiles whose display name starts with ``query`` (case-insensitive).

        The caller is excluded from the results.

        Args:
            query: Name prefix; empty returns nothing
            auth: Caller identity
            limit: Maximum number of results

        Returns:
            Matching profiles ordered by name
        """
        await self.ensure_user_profile(auth)
        prefix = (query or "").strip().lower()
        if not prefix:
            return []

        stmt = (
            select(UserProfile)
            .where(
                UserProfile.display_name_lower.startswith(prefix, autoescape=True),
                UserProfile.id != auth.user_id,
            )
            .order_by(UserProfile.display_name_lower)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["UserService"]
