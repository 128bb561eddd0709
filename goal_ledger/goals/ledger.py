"""
Progress Ledger

Data access for a goal's progress entries, on top of the versioned store.

The ledger does not check ownership. A ledger entry has no owner of its
own - it belongs to whoever owns its goal - so callers resolve the goal
for the requesting owner first and only then touch its entries.
"""

from decimal import Decimal
from typing import Iterable

import structlog

from goal_ledger.models.goal import GoalProgress
from goal_ledger.services.storage import VersionedStore


logger = structlog.get_logger(__name__)


class ProgressLedger:
    """Store-backed ledger of progress entries."""

    def __init__(self, store: VersionedStore[GoalProgress]):
        self._store = store

    async def list_by_goal(self, goal_id: int, owner_id: int) -> list[GoalProgress]:
        """
        All non-deleted entries of a goal, oldest first.

        owner_id is the already-verified owner of the goal; it is only
        used for log context here.
        """
        entries, _ = await self._store.find(
            {"goal_id": goal_id},
            order_by=("entry_date", "id"),
        )
        logger.debug(
            "ledger_listed",
            goal_id=goal_id,
            owner_id=owner_id,
            entry_count=len(entries),
        )
        return entries

    async def get(self, progress_id: int) -> GoalProgress:
        return await self._store.get(progress_id)

    @staticmethod
    def sum(entries: Iterable[GoalProgress]) -> Decimal:
        """Signed total of the entries' amounts."""
        return sum((entry.amount for entry in entries), Decimal("0"))

    async def insert(self, entry: GoalProgress) -> GoalProgress:
        return await self._store.insert(entry)

    async def update(self, entry: GoalProgress) -> GoalProgress:
        """CAS-update an entry; returns it with the new version applied."""
        new_version = await self._store.update(entry)
        return entry.model_copy(update={"version": new_version})

    async def delete(self, progress_id: int, goal_id: int) -> None:
        """Soft-delete an entry of a goal whose owner the caller has resolved."""
        await self._store.soft_delete(progress_id, goal_id=goal_id)
