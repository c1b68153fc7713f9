"""
Batch status resolver.

Resolves the active flag and count of many targets in a fixed number of
queries: one for counts (counter column or grouped aggregate), one for the
user's own rows. Both run concurrently on separate sessions.

Unknown or deleted targets resolve to ``InteractionStatus(False, 0)`` instead
of failing the batch. This masks callers asking about ids that do not exist;
it is deliberate so that one stale id cannot break a whole feed page.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import BATCH_MAX_IDS
from app.db import AsyncSessionLocal, get_session, read_retry
from app.services.errors import InvalidBatch
from app.services.interactions import KINDS, InteractionKind, InteractionStatus, ToggleExecutor
from app.services.targets import TargetRef

logger = logging.getLogger(__name__)


def validate_ids(target_ids: Sequence[str], max_ids: int = BATCH_MAX_IDS) -> List[str]:
    """Check and de-duplicate a batch of ids, keeping first-seen order."""
    if target_ids is None or isinstance(target_ids, (str, bytes)):
        raise InvalidBatch("target_ids must be a list of strings")
    ids = list(target_ids)
    if any(not isinstance(target_id, str) or not target_id for target_id in ids):
        raise InvalidBatch("target_ids must be non-empty strings")
    unique = list(dict.fromkeys(ids))
    if len(unique) > max_ids:
        raise InvalidBatch(
            f"batch size cannot exceed {max_ids}", {"size": len(unique), "max": max_ids}
        )
    return unique


class BatchStatusResolver:
    """Resolves interaction state for up to BATCH_MAX_IDS targets at once."""

    def __init__(
        self,
        kind: InteractionKind,
        sessionmaker: Optional[async_sessionmaker] = None,
        max_ids: int = BATCH_MAX_IDS,
    ):
        self.kind = kind
        self.max_ids = max_ids
        self._sessionmaker = sessionmaker or AsyncSessionLocal
        # Reused only for target parsing
        self._executor = ToggleExecutor(kind, self._sessionmaker)

    async def _counts(self, target_type, ids: List[str]) -> Dict[str, int]:
        async with get_session(self._sessionmaker) as db:
            return await self.kind.counter.count_many(db, target_type, ids)

    async def _active_ids(self, target_type, ids: List[str], user_id: Optional[str]) -> Set[str]:
        if not user_id:
            return set()
        column = self.kind.target_column(target_type)
        async with get_session(self._sessionmaker) as db:
            rows = await db.execute(
                select(column).where(self.kind.actor == user_id, column.in_(ids))
            )
            return set(rows.scalars().all())

    @read_retry
    async def batch_status(
        self, target_type, target_ids: Sequence[str], user_id: Optional[str] = None
    ) -> Dict[str, InteractionStatus]:
        """
        Resolve status for every id.

        Args:
            target_type: Target type shared by all ids
            target_ids: 0..BATCH_MAX_IDS target ids
            user_id: Acting user; omitted for anonymous reads

        Returns:
            Mapping of every requested id to its InteractionStatus
        """
        ids = validate_ids(target_ids, self.max_ids)
        if not ids:
            return {}
        target: TargetRef = self._executor.target(target_type, ids[0])

        counts, active = await asyncio.gather(
            self._counts(target.type, ids),
            self._active_ids(target.type, ids, user_id),
        )

        missing = [target_id for target_id in ids if target_id not in counts]
        if missing:
            logger.debug("%s batch on %s: %d id(s) without data", self.kind.name, target.type.value, len(missing))

        return {
            target_id: InteractionStatus(active=target_id in active, count=counts.get(target_id, 0))
            for target_id in ids
        }


def resolvers(sessionmaker: Optional[async_sessionmaker] = None) -> Dict[str, BatchStatusResolver]:
    return {name: BatchStatusResolver(kind, sessionmaker) for name, kind in KINDS.items()}


# Global instances for convenience
batch_resolvers = resolvers()
