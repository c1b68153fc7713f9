"""
Target references, the target-existence oracle and the counter source.

A target is a tagged union ``(type, id)``. Counting strategy is chosen per
variant by table lookup: targets with a denormalized counter column read
that column, everything else runs a live aggregate over the interaction table.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Activity, Post, TargetType, User
from app.services.errors import TargetNotFound

TARGET_MODELS = {
    TargetType.post: Post,
    TargetType.activity: Activity,
    TargetType.user: User,
}


@dataclass(frozen=True)
class TargetRef:
    type: TargetType
    id: str

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id}"


def _live_filter(target_type: TargetType):
    """Extra predicate a target row must satisfy to accept new interactions."""
    if target_type is TargetType.post:
        return Post.published.is_(True)
    if target_type is TargetType.activity:
        return Activity.deleted_at.is_(None)
    return None


async def target_exists(db: AsyncSession, target: TargetRef) -> bool:
    model = TARGET_MODELS[target.type]
    stmt = select(model.id).where(model.id == target.id)
    extra = _live_filter(target.type)
    if extra is not None:
        stmt = stmt.where(extra)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def assert_target_exists(db: AsyncSession, target: TargetRef) -> None:
    if not await target_exists(db, target):
        raise TargetNotFound(target.type.value, target.id)


@dataclass(frozen=True)
class CounterSource:
    """
    How the count of rows pointing at a target is obtained.

    Args:
        source_model: Table whose rows are counted (likes, comments, ...)
        target_columns: Column on ``source_model`` referencing each target type
        counter_columns: Denormalized column on the target model, for the
            target types that have one
    """

    source_model: type
    target_columns: Mapping[TargetType, str]
    counter_columns: Mapping[TargetType, str]

    def target_column(self, target_type: TargetType):
        return getattr(self.source_model, self.target_columns[target_type])

    def counter_column(self, target_type: TargetType):
        name = self.counter_columns.get(target_type)
        if name is None:
            return None
        return getattr(TARGET_MODELS[target_type], name)

    async def count(self, db: AsyncSession, target: TargetRef) -> int:
        counter = self.counter_column(target.type)
        if counter is not None:
            model = TARGET_MODELS[target.type]
            value = (await db.execute(select(counter).where(model.id == target.id))).scalar_one_or_none()
            return value or 0

        column = self.target_column(target.type)
        stmt = select(func.count()).select_from(self.source_model).where(column == target.id)
        return (await db.execute(stmt)).scalar_one()

    async def count_many(
        self, db: AsyncSession, target_type: TargetType, target_ids: Iterable[str]
    ) -> Dict[str, int]:
        """Counts for many targets in one query; unknown ids are omitted."""
        ids = list(target_ids)
        if not ids:
            return {}

        counter = self.counter_column(target_type)
        if counter is not None:
            model = TARGET_MODELS[target_type]
            rows = await db.execute(select(model.id, counter).where(model.id.in_(ids)))
        else:
            column = self.target_column(target_type)
            rows = await db.execute(
                select(column, func.count()).where(column.in_(ids)).group_by(column)
            )
        return {target_id: count or 0 for target_id, count in rows.all()}


def parse_target_type(value: str) -> Optional[TargetType]:
    try:
        return TargetType(value)
    except ValueError:
        return None
