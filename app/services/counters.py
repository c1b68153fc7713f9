"""
Verification and repair of trigger-maintained Activity counters.

Triggers update ``likes_count`` and ``comments_count`` in the same statement
as the row mutation, but nothing reconciles them if they ever diverge
(manual SQL, a restored backup, a trigger disabled during a migration).
This module compares the counters with live aggregates and rewrites drifted
ones with a single correlated UPDATE per field.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import COUNTER_VERIFY_LIMIT
from app.db import AsyncSessionLocal, get_session, read_retry
from app.models import Activity, Comment, Like

logger = logging.getLogger(__name__)

# counter column -> (source model, fk column on source)
ACTIVITY_COUNTERS = {
    "likes_count": (Like, Like.activity_id),
    "comments_count": (Comment, Comment.activity_id),
}


@dataclass
class CountMismatch:
    activity_id: str
    field: str
    expected: int
    actual: int

    @property
    def diff(self) -> int:
        return self.actual - self.expected


@dataclass
class VerifyResult:
    total_checked: int = 0
    mismatches: List[CountMismatch] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.mismatches)


class CounterAuditor:
    """Checks and repairs denormalized counters on activities."""

    def __init__(self, sessionmaker: Optional[async_sessionmaker] = None):
        self._sessionmaker = sessionmaker or AsyncSessionLocal

    @read_retry
    async def verify(self, fields: Optional[List[str]] = None, limit: int = COUNTER_VERIFY_LIMIT) -> VerifyResult:
        """
        Compare counters of the most recent live activities with live aggregates.

        Args:
            fields: Counter columns to check (default: all)
            limit: Maximum number of activities to check

        Returns:
            VerifyResult listing every drifted counter
        """
        fields = fields or list(ACTIVITY_COUNTERS)
        result = VerifyResult()

        async with get_session(self._sessionmaker) as db:
            rows = (
                await db.execute(
                    select(Activity.id, Activity.likes_count, Activity.comments_count)
                    .where(Activity.deleted_at.is_(None))
                    .order_by(Activity.created_at.desc(), Activity.id.desc())
                    .limit(limit)
                )
            ).all()
            if not rows:
                return result
            result.total_checked = len(rows)
            ids = [row.id for row in rows]

            for name in fields:
                model, fk = ACTIVITY_COUNTERS[name]
                live: Dict[str, int] = dict(
                    (await db.execute(
                        select(fk, func.count()).select_from(model).where(fk.in_(ids)).group_by(fk)
                    )).all()
                )
                for row in rows:
                    expected = live.get(row.id, 0)
                    actual = getattr(row, name)
                    if expected != actual:
                        result.mismatches.append(CountMismatch(row.id, name, expected, actual))

        if result.has_issues:
            logger.warning(
                "counter drift on %d of %d activities", len({m.activity_id for m in result.mismatches}),
                result.total_checked,
            )
        else:
            logger.info("counters consistent on %d activities", result.total_checked)
        return result

    async def repair(self, mismatches: List[CountMismatch]) -> int:
        """Recompute the drifted counters from live aggregates; returns rows updated."""
        fixed = 0
        by_field: Dict[str, List[str]] = {}
        for mismatch in mismatches:
            by_field.setdefault(mismatch.field, []).append(mismatch.activity_id)

        for name, activity_ids in by_field.items():
            model, fk = ACTIVITY_COUNTERS[name]
            live_count = (
                select(func.count())
                .select_from(model)
                .where(fk == Activity.id)
                .scalar_subquery()
            )
            async with get_session(self._sessionmaker) as db:
                result = await db.execute(
                    update(Activity)
                    .where(Activity.id.in_(activity_ids))
                    .values({name: live_count})
                    .execution_options(synchronize_session=False)
                )
            fixed += result.rowcount
            logger.info("repaired %s on %d activities", name, result.rowcount)
        return fixed

    async def verify_and_repair(self, limit: int = COUNTER_VERIFY_LIMIT, auto_fix: bool = False) -> Dict[str, object]:
        result = await self.verify(limit=limit)
        fixed = await self.repair(result.mismatches) if auto_fix and result.has_issues else 0
        return {
            "total_checked": result.total_checked,
            "mismatches": len(result.mismatches),
            "fixed": fixed,
        }


# Global instance for convenience
counter_auditor = CounterAuditor()
