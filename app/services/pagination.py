"""
Cursor pagination over time-ordered collections.

Rows are ordered by the composite key ``(created_at, id)``. The id tie-break
makes the order total, so rows sharing a timestamp are never skipped or
repeated across page boundaries. The cursor is the id of the last row of the
previous page; the next query seeks past that row's full sort key instead of
using an offset.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import PAGE_DEFAULT_LIMIT, PAGE_MAX_LIMIT
from app.services.errors import InvalidCursor

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


def normalize_limit(limit: Optional[int], default: int = PAGE_DEFAULT_LIMIT, maximum: int = PAGE_MAX_LIMIT) -> int:
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


def seek_after(model, anchor_created_at, anchor_id: str, ascending: bool = False):
    """Predicate selecting rows strictly after the anchor in ``(created_at, id)`` order."""
    if ascending:
        return or_(
            model.created_at > anchor_created_at,
            and_(model.created_at == anchor_created_at, model.id > anchor_id),
        )
    return or_(
        model.created_at < anchor_created_at,
        and_(model.created_at == anchor_created_at, model.id < anchor_id),
    )


def sort_key(model, ascending: bool = False):
    if ascending:
        return (model.created_at.asc(), model.id.asc())
    return (model.created_at.desc(), model.id.desc())


async def paginate(
    db: AsyncSession,
    model,
    *criteria: Any,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    ascending: bool = False,
    options: Sequence[Any] = (),
) -> Page:
    """
    Fetch one page of ``model`` rows matching ``criteria``.

    Args:
        db: Database session
        model: Mapped class with ``id`` and ``created_at`` columns
        criteria: Filters defining the collection; the cursor row must match them too
        cursor: Id of the last row of the previous page
        limit: Page size, normalized to the configured bounds
        ascending: Oldest first instead of newest first
        options: Loader options applied to the page query

    Returns:
        Page with at most ``limit`` rows

    Raises:
        InvalidCursor: If the cursor does not identify a row of the collection
    """
    size = normalize_limit(limit)
    stmt = select(model).where(*criteria)

    if cursor:
        anchor = await db.execute(select(model.created_at).where(model.id == cursor, *criteria))
        anchor_created_at = anchor.scalar_one_or_none()
        if anchor_created_at is None:
            raise InvalidCursor(cursor)
        stmt = stmt.where(seek_after(model, anchor_created_at, cursor, ascending))

    stmt = stmt.order_by(*sort_key(model, ascending)).limit(size + 1)
    if options:
        stmt = stmt.options(*options)

    rows = list((await db.execute(stmt)).scalars().all())
    has_more = len(rows) > size
    items = rows[:size]
    next_cursor = items[-1].id if has_more and items else None

    return Page(items=items, has_more=has_more, next_cursor=next_cursor)
