"""Group ledger service: access control, groups, entries and transfers.

Access is granted per user id or per email. An email grant is linked to the
user id the first time that person shows up. Admins come from the
LEDGER_ADMIN_EMAILS setting and are created on first use, as are the default
groups. Both bootstraps re-check on every call and only insert what is
missing, with one in-flight run at a time per process.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.ledger import (
    LedgerAccess,
    LedgerEntry,
    LedgerEntryType,
    LedgerGroup,
    LedgerTransfer,
)
from src.models.user import UserProfile
from src.services import commit_or_conflict
from src.services.auth_service import AuthContext
from src.services.config import AppConfig, load_config
from src.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.services.ledger_service import (
    BucketSummary,
    GroupSummary,
    LedgerAggregate,
    LedgerTotals,
    aggregate_ledger,
)
from src.services.money import generate_id, round_cents
from src.services.user_service import UserService

logger = logging.getLogger(__name__)

LEDGER_ID_SIZE = 12
SYSTEM_USER = "system"
DEFAULT_ADMIN_NAME = "Ledger Admin"
DEFAULT_MEMBER_NAME = "Ledger Member"

DEFAULT_GROUPS: Tuple[Tuple[str, str], ...] = (
    ("highlyte", "Highlyte"),
    ("verse", "Verse"),
    ("golden-ratio", "Golden Ratio"),
    ("out-of-range", "Out of Range"),
    ("counterpoint", "Counterpoint"),
)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trimmed, lower-cased email, or None when empty."""
    if not email:
        return None
    return email.strip().lower() or None


def slugify_group_name(name: str) -> str:
    """Group id from a display name (``"Golden Ratio"`` -> ``"golden-ratio"``)."""
    slug = "".join(ch if ch.isalnum() else "-" for ch in name.strip().lower())
    return "-".join(part for part in slug.split("-") if part)


@dataclass
class LedgerEntriesView:
    """Everything the ledger page shows: raw records plus aggregates."""

    entries: List[LedgerEntry]
    totals: LedgerTotals
    groups: List[LedgerGroup]
    group_summaries: List[GroupSummary]
    unallocated: BucketSummary
    transfers: List[LedgerTransfer]


@dataclass
class LedgerOverview:
    """Aggregates without the entry list."""

    totals: LedgerTotals
    groups: List[GroupSummary]
    unallocated: BucketSummary
    transfers: List[LedgerTransfer]


@dataclass
class AccessOverview:
    """Caller's access state; member list only for callers with access."""

    allowed: bool
    is_admin: bool
    members: List[LedgerAccess] = field(default_factory=list)
    current_access_id: Optional[str] = None


class GroupLedgerService:
    """Service for the multi-group ledger."""

    # One lock per event loop and bootstrap name, shared by every instance
    _bootstrap_locks: "weakref.WeakKeyDictionary" = weakref.WeakKeyDictionary()

    @classmethod
    def _bootstrap_lock(cls, name: str) -> asyncio.Lock:
        """Lock guarding one bootstrap on the running event loop."""
        locks: Dict[str, asyncio.Lock] = cls._bootstrap_locks.setdefault(
            asyncio.get_running_loop(), {}
        )
        if name not in locks:
            locks[name] = asyncio.Lock()
        return locks[name]

    def __init__(self, session: AsyncSession, config: Optional[AppConfig] = None):
        """Initialize with database session and optional configuration."""
        self.session = session
        self.config = config or load_config()
        self.users = UserService(session)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def _insert_if_absent(self, record, description: str) -> bool:
        self.session.add(record)
        try:
            await commit_or_conflict(self.session, f"{description} already exists")
        except ConflictError:
            logger.debug("%s created concurrently, skipping", description)
            return False
        return True

    async def ensure_default_admins(self) -> None:
        """Create admin access for every configured admin email that lacks it."""
        async with self._bootstrap_lock("admins"):
            for email in self.config.ledger_admin_emails:
                normalized = normalize_email(email)
                if normalized is None or await self._find_access_by_email(normalized):
                    continue
                record = LedgerAccess(
                    id=generate_id(size=LEDGER_ID_SIZE),
                    email=normalized,
                    normalized_email=normalized,
                    display_name=DEFAULT_ADMIN_NAME,
                    is_admin=True,
                    added_by=SYSTEM_USER,
                    added_by_name="System",
                )
                if await self._insert_if_absent(record, f"Access for {normalized}"):
                    logger.info("Bootstrapped ledger admin %s", normalized)

    async def ensure_default_groups(self) -> None:
        """Create any default group that does not exist yet."""
        async with self._bootstrap_lock("groups"):
            result = await self.session.execute(select(LedgerGroup.id))
            existing = set(result.scalars().all())
            for group_id, name in DEFAULT_GROUPS:
                if group_id in existing:
                    continue
                group = LedgerGroup(
                    id=group_id, name=name, is_active=True, created_by=SYSTEM_USER
                )
                if await self._insert_if_absent(group, f"Group {group_id}"):
                    logger.info("Bootstrapped ledger group %s", group_id)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def _find_access_by_email(self, normalized_email: str) -> Optional[LedgerAccess]:
        result = await self.session.execute(
            select(LedgerAccess).where(LedgerAccess.normalized_email == normalized_email)
        )
        return result.scalars().first()

    async def _find_access_by_user_id(self, user_id: str) -> Optional[LedgerAccess]:
        result = await self.session.execute(
            select(LedgerAccess).where(LedgerAccess.user_id == user_id)
        )
        return result.scalars().first()

    async def resolve_access(self, profile: UserProfile) -> Optional[LedgerAccess]:
        """
        Access record for a profile, by user id first and then by email.

        An email-only grant gets the profile's user id attached on first match.
        """
        access = await self._find_access_by_user_id(profile.id)
        if access is not None:
            return access

        normalized = normalize_email(profile.email)
        if normalized is None:
            return None
        access = await self._find_access_by_email(normalized)
        if access is not None and not access.user_id:
            access.user_id = profile.id
            await self.session.flush()
            logger.info("Linked ledger access %s to user %s", access.id, profile.id)
        return access

    async def _bootstrap(self) -> None:
        # Runs before anything else is pending in the session
        await self.ensure_default_admins()
        await self.ensure_default_groups()

    async def _require_access(self, auth: AuthContext) -> Tuple[UserProfile, LedgerAccess]:
        await self._bootstrap()
        profile = await self.users.ensure_user_profile(auth)
        access = await self.resolve_access(profile)
        await self.session.commit()
        if access is None:
            raise ForbiddenError("You do not have access to the group ledger yet")
        return profile, access

    async def _require_admin(self, auth: AuthContext) -> Tuple[UserProfile, LedgerAccess]:
        profile, access = await self._require_access(auth)
        if not access.is_admin:
            raise ForbiddenError("Only ledger admins can do this")
        return profile, access

    async def get_access_overview(self, auth: AuthContext) -> AccessOverview:
        """Whether the caller has access, and if so who else does."""
        await self._bootstrap()
        profile = await self.users.ensure_user_profile(auth)
        access = await self.resolve_access(profile)
        await self.session.commit()
        if access is None:
            return AccessOverview(allowed=False, is_admin=False)

        result = await self.session.execute(
            select(LedgerAccess).order_by(LedgerAccess.created_at)
        )
        return AccessOverview(
            allowed=True,
            is_admin=access.is_admin,
            members=list(result.scalars().all()),
            current_access_id=access.id,
        )

    async def add_access(
        self,
        auth: AuthContext,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        is_admin: bool = False,
    ) -> LedgerAccess:
        """
        Grant ledger access to a user id and/or an email (admins only).

        Raises:
            ValidationError: If neither is given, the person already has
                access, or the user id has no profile
        """
        if not user_id and not email:
            raise ValidationError("Provide a user id or email to grant access")

        profile, _ = await self._require_admin(auth)

        if user_id and await self._find_access_by_user_id(user_id):
            raise ValidationError("This person already has access")
        normalized = normalize_email(email)
        if normalized and await self._find_access_by_email(normalized):
            raise ValidationError("That email already has access")

        target: Optional[UserProfile] = None
        if user_id:
            target = await self.users.get_user(user_id)
            if target is None:
                raise ValidationError("Unable to find that user profile")

        record = LedgerAccess(
            id=generate_id(size=LEDGER_ID_SIZE),
            user_id=user_id,
            email=email or (target.email if target else None),
            normalized_email=normalized or normalize_email(target.email if target else None),
            display_name=(
                display_name
                or (target.display_name if target else None)
                or email
                or (target.email if target else None)
                or DEFAULT_MEMBER_NAME
            ),
            is_admin=is_admin,
            added_by=profile.id,
            added_by_name=profile.resolved_name,
        )
        self.session.add(record)
        await commit_or_conflict(self.session, "This person already has access")

        logger.info("Granted ledger access %s admin=%s by %s", record.id, is_admin, profile.id)
        return record

    async def remove_access(self, access_id: str, auth: AuthContext) -> None:
        """
        Revoke an access record (admins only, never their own).

        Raises:
            ValidationError: If the admin tries to remove their own access
            NotFoundError: If the record does not exist
        """
        _, acting = await self._require_admin(auth)
        if acting.id == access_id:
            raise ValidationError("You cannot remove your own access")

        record = await self.session.get(LedgerAccess, access_id)
        if record is None:
            raise NotFoundError("Access record not found")
        await self.session.delete(record)
        await self.session.commit()
        logger.info("Removed ledger access %s", access_id)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def _list_groups(self) -> List[LedgerGroup]:
        result = await self.session.execute(select(LedgerGroup).order_by(LedgerGroup.id))
        return list(result.scalars().all())

    async def _get_active_group(self, group_id: str, message: str) -> LedgerGroup:
        group = await self.session.get(LedgerGroup, group_id)
        if group is None or not group.is_active:
            raise ValidationError(message)
        return group

    async def list_groups(self, auth: AuthContext) -> List[LedgerGroup]:
        await self._require_access(auth)
        return await self._list_groups()

    async def create_group(
        self, name: str, auth: AuthContext, group_id: Optional[str] = None
    ) -> LedgerGroup:
        """
        Create a named group (admins only).

        Raises:
            ValidationError: If the name is blank
            ConflictError: If the group id is taken
        """
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        group_id = group_id or slugify_group_name(name)
        if not group_id:
            raise ValidationError("Group name must contain letters or digits")

        profile, _ = await self._require_admin(auth)
        if await self.session.get(LedgerGroup, group_id) is not None:
            raise ConflictError(f"Group {group_id} already exists")
        group = LedgerGroup(id=group_id, name=name.strip(), is_active=True, created_by=profile.id)
        self.session.add(group)
        await commit_or_conflict(self.session, f"Group {group_id} already exists")

        logger.info("Created ledger group %s by %s", group_id, profile.id)
        return group

    async def set_group_active(self, group_id: str, is_active: bool, auth: AuthContext) -> LedgerGroup:
        """Activate or retire a group (admins only). Retired groups take no new entries."""
        await self._require_admin(auth)
        group = await self.session.get(LedgerGroup, group_id)
        if group is None:
            raise NotFoundError("Group not found")
        group.is_active = is_active
        await self.session.commit()
        logger.info("Ledger group %s active=%s", group_id, is_active)
        return group

    # ------------------------------------------------------------------
    # Entries and transfers
    # ------------------------------------------------------------------

    async def _load_records(
        self,
    ) -> Tuple[List[LedgerEntry], List[LedgerGroup], List[LedgerTransfer]]:
        entries = await self.session.execute(
            select(LedgerEntry).order_by(LedgerEntry.recorded_at.desc())
        )
        transfers = await self.session.execute(
            select(LedgerTransfer).order_by(LedgerTransfer.created_at.desc())
        )
        return (
            list(entries.scalars().all()),
            await self._list_groups(),
            list(transfers.scalars().all()),
        )

    async def _aggregate(self, auth: AuthContext):
        await self._require_access(auth)
        entries, groups, transfers = await self._load_records()
        aggregate: LedgerAggregate = aggregate_ledger(entries, groups, transfers)
        logger.debug(
            "Aggregated %d entries and %d transfers into %d groups",
            len(entries),
            len(transfers),
            len(aggregate.group_summaries),
        )
        return entries, groups, transfers, aggregate

    async def get_entries(self, auth: AuthContext) -> LedgerEntriesView:
        """Entries (newest first), groups, transfers and all aggregates."""
        entries, groups, transfers, aggregate = await self._aggregate(auth)
        return LedgerEntriesView(
            entries=entries,
            totals=aggregate.totals,
            groups=groups,
            group_summaries=aggregate.group_summaries,
            unallocated=aggregate.unallocated,
            transfers=transfers,
        )

    async def get_overview(self, auth: AuthContext) -> LedgerOverview:
        _, _, transfers, aggregate = await self._aggregate(auth)
        return LedgerOverview(
            totals=aggregate.totals,
            groups=aggregate.group_summaries,
            unallocated=aggregate.unallocated,
            transfers=transfers,
        )

    async def create_entry(
        self,
        auth: AuthContext,
        entry_type: str,
        amount,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        source: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
        member_name: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Record a donation, income, expense or reimbursement.

        Without ``group_id`` the entry goes to the unallocated pool.

        Raises:
            ValidationError: On unknown type, non-positive amount, or an
                unknown or retired group
        """
        try:
            entry_type = LedgerEntryType(entry_type)
        except ValueError as e:
            raise ValidationError(f"Unknown entry type: {entry_type}") from e
        amount = round_cents(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        profile, _ = await self._require_access(auth)
        group_name = None
        if group_id:
            group = await self._get_active_group(group_id, "Unknown ledger group")
            group_name = group.name

        entry = LedgerEntry(
            id=generate_id(size=LEDGER_ID_SIZE),
            entry_type=entry_type.value,
            amount=amount,
            currency=(currency or self.config.default_currency).upper(),
            description=description,
            source=source,
            category=category,
            notes=notes,
            member_name=member_name,
            group_id=group_id or None,
            group_name=group_name,
            recorded_by=profile.id,
            recorded_by_name=profile.resolved_name,
        )
        self.session.add(entry)
        await commit_or_conflict(self.session, "Entry already exists")

        logger.info(
            "Recorded ledger %s %s group=%s by %s",
            entry_type.value,
            amount,
            group_id or "unallocated",
            profile.id,
        )
        return entry

    async def update_entry_group(
        self, entry_id: str, group_id: Optional[str], auth: AuthContext
    ) -> LedgerEntry:
        """Move an entry to another group, or back to the pool with ``None``."""
        await self._require_access(auth)
        entry = await self.session.get(LedgerEntry, entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")

        if group_id:
            group = await self._get_active_group(group_id, "Unknown ledger group")
            entry.group_id = group.id
            entry.group_name = group.name
        else:
            entry.group_id = None
            entry.group_name = None
        await self.session.commit()

        logger.info("Moved ledger entry %s to %s", entry_id, group_id or "unallocated")
        return entry

    async def delete_entry(self, entry_id: str, auth: AuthContext) -> None:
        await self._require_access(auth)
        entry = await self.session.get(LedgerEntry, entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        await self.session.delete(entry)
        await self.session.commit()
        logger.info("Deleted ledger entry %s", entry_id)

    async def create_transfer(
        self,
        auth: AuthContext,
        amount,
        from_group_id: Optional[str] = None,
        to_group_id: Optional[str] = None,
        currency: Optional[str] = None,
        note: Optional[str] = None,
    ) -> LedgerTransfer:
        """
        Move money between groups, or between a group and the pool.

        Raises:
            ValidationError: If both sides are empty or equal, the amount is
                not positive, or a side names an unknown group
        """
        from_group_id = from_group_id or None
        to_group_id = to_group_id or None
        if not from_group_id and not to_group_id:
            raise ValidationError("Provide at least one source or destination group")
        if from_group_id == to_group_id:
            raise ValidationError("Provide different source and destination")
        amount = round_cents(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        profile, _ = await self._require_access(auth)
        from_group = (
            await self._get_active_group(from_group_id, "Source group not found")
            if from_group_id
            else None
        )
        to_group = (
            await self._get_active_group(to_group_id, "Destination group not found")
            if to_group_id
            else None
        )

        transfer = LedgerTransfer(
            id=generate_id(size=LEDGER_ID_SIZE),
            amount=amount,
            currency=(currency or self.config.default_currency).upper(),
            from_group_id=from_group.id if from_group else None,
            from_group_name=from_group.name if from_group else None,
            to_group_id=to_group.id if to_group else None,
            to_group_name=to_group.name if to_group else None,
            note=note,
            created_by=profile.id,
            created_by_name=profile.resolved_name,
        )
        self.session.add(transfer)
        await commit_or_conflict(self.session, "Transfer already exists")

        logger.info(
            "Transferred %s from %s to %s by %s",
            amount,
            from_group_id or "unallocated",
            to_group_id or "unallocated",
            profile.id,
        )
        return transfer

    async def delete_transfer(self, transfer_id: str, auth: AuthContext) -> None:
        await self._require_access(auth)
        transfer = await self.session.get(LedgerTransfer, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer not found")
        await self.session.delete(transfer)
        await self.session.commit()
        logger.info("Deleted ledger transfer %s", transfer_id)


__all__ = [
    "AccessOverview",
    "DEFAULT_GROUPS",
    "GroupLedgerService",
    "LedgerEntriesView",
    "LedgerOverview",
    "normalize_email",
    "slugify_group_name",
]
