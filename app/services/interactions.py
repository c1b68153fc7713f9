"""
Idempotent toggle executor for Like, Bookmark and Follow relations.

Every mutation is one statement in its own short transaction. The two races
that the read-then-write toggle allows are absorbed instead of prevented:

- a concurrent create of the same pair fails with a unique violation, which
  means the desired "active" state already holds;
- a concurrent delete of the same row leaves nothing to delete, which means
  the desired "inactive" state already holds.

Uniqueness of a pair is enforced by the storage layer, never by this module.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import SLOW_MUTATION_MS
from app.db import AsyncSessionLocal, get_session, read_retry
from app.models import Bookmark, Follow, Like, TargetType
from app.services.db_errors import DatabaseErrorKind, classify_db_error
from app.services.errors import ActorNotFound, SelfInteraction, TargetNotFound, UnsupportedTarget
from app.services.pagination import Page, paginate
from app.services.targets import CounterSource, TargetRef, assert_target_exists, parse_target_type, target_exists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionKind:
    """Describes one interaction table: who acts, what it points at, how it is counted."""

    name: str
    model: type
    actor_column: str
    target_columns: Mapping[TargetType, str]
    counter_columns: Mapping[TargetType, str]
    allow_self: bool = True

    @property
    def counter(self) -> CounterSource:
        return CounterSource(self.model, self.target_columns, self.counter_columns)

    @property
    def actor(self):
        return getattr(self.model, self.actor_column)

    def target_column(self, target_type: TargetType):
        return getattr(self.model, self.target_columns[target_type])


LIKE = InteractionKind(
    name="like",
    model=Like,
    actor_column="author_id",
    target_columns={TargetType.post: "post_id", TargetType.activity: "activity_id"},
    counter_columns={TargetType.activity: "likes_count"},
)

BOOKMARK = InteractionKind(
    name="bookmark",
    model=Bookmark,
    actor_column="user_id",
    target_columns={TargetType.post: "post_id"},
    counter_columns={},
)

FOLLOW = InteractionKind(
    name="follow",
    model=Follow,
    actor_column="follower_id",
    target_columns={TargetType.user: "following_id"},
    counter_columns={},
    allow_self=False,
)

KINDS: Dict[str, InteractionKind] = {kind.name: kind for kind in (LIKE, BOOKMARK, FOLLOW)}


@dataclass
class InteractionStatus:
    active: bool
    count: int


@dataclass
class InteractionEdge:
    """One interaction row as seen from either end."""

    id: str
    actor_id: str
    target: TargetRef
    created_at: object


class ToggleExecutor:
    """Creates and removes interaction rows for one InteractionKind."""

    def __init__(self, kind: InteractionKind, sessionmaker: Optional[async_sessionmaker] = None):
        self.kind = kind
        self._sessionmaker = sessionmaker or AsyncSessionLocal

    def _session(self):
        return get_session(self._sessionmaker)

    def target(self, target_type, target_id: str) -> TargetRef:
        parsed = parse_target_type(target_type)
        if parsed is None or parsed not in self.kind.target_columns or not target_id:
            raise UnsupportedTarget(self.kind.name, str(getattr(target_type, "value", target_type)))
        return TargetRef(parsed, target_id)

    def _check_actor(self, target: TargetRef, user_id: str) -> None:
        if not self.kind.allow_self and target.type is TargetType.user and target.id == user_id:
            raise SelfInteraction(self.kind.name, user_id)

    def _pair_filter(self, target: TargetRef, user_id: str):
        return (self.kind.actor == user_id, self.kind.target_column(target.type) == target.id)

    # -- primitives ---------------------------------------------------------

    async def _find_existing(self, target: TargetRef, user_id: str) -> Optional[str]:
        async with self._session() as db:
            result = await db.execute(
                select(self.kind.model.id).where(*self._pair_filter(target, user_id))
            )
            return result.scalar_one_or_none()

    async def _create(self, target: TargetRef, user_id: str, request_id: Optional[str]) -> bool:
        """
        Insert the pair row.

        Returns:
            True if this call created the row, False if a concurrent request had

        Raises:
            TargetNotFound: If the target disappeared between check and write
            ActorNotFound: If the acting user does not exist
        """
        values = {
            self.kind.actor_column: user_id,
            self.kind.target_columns[target.type]: target.id,
        }
        started = time.perf_counter()
        try:
            async with self._session() as db:
                await db.execute(insert(self.kind.model).values(**values))
        except IntegrityError as exc:
            error_kind = classify_db_error(exc)
            if error_kind is DatabaseErrorKind.UNIQUE_VIOLATION:
                logger.warning(
                    "%s on %s by %s hit a concurrent create, treating as active (request_id=%s)",
                    self.kind.name, target, user_id, request_id,
                )
                return False
            if error_kind is DatabaseErrorKind.FOREIGN_KEY_VIOLATION:
                await self._raise_missing_reference(target, user_id, exc)
            raise
        self._log_duration("create", target, started, request_id)
        return True

    async def _raise_missing_reference(self, target: TargetRef, user_id: str, exc: IntegrityError) -> None:
        # The foreign key error does not say which side is missing
        async with self._session() as db:
            if not await target_exists(db, target):
                raise TargetNotFound(target.type.value, target.id) from exc
        raise ActorNotFound(user_id) from exc

    async def _delete_by_id(self, row_id: str, target: TargetRef, request_id: Optional[str]) -> bool:
        """
        Delete one row by id.

        Returns:
            True if this call removed the row, False if a concurrent request had
        """
        started = time.perf_counter()
        try:
            async with self._session() as db:
                result = await db.execute(delete(self.kind.model).where(self.kind.model.id == row_id))
                if result.rowcount == 0:
                    raise NoResultFound(f"{self.kind.name} {row_id} no longer exists")
        except NoResultFound as exc:
            if classify_db_error(exc) is not DatabaseErrorKind.RECORD_NOT_FOUND:
                raise
            logger.info(
                "%s %s on %s was already removed, treating as inactive (request_id=%s)",
                self.kind.name, row_id, target, request_id,
            )
            return False
        self._log_duration("delete", target, started, request_id)
        return True

    async def _delete_pair(self, target: TargetRef, user_id: str) -> int:
        async with self._session() as db:
            result = await db.execute(
                delete(self.kind.model).where(*self._pair_filter(target, user_id))
            )
            return result.rowcount

    async def _count(self, target: TargetRef) -> int:
        async with self._session() as db:
            return await self.kind.counter.count(db, target)

    async def _assert_target(self, target: TargetRef) -> None:
        async with self._session() as db:
            await assert_target_exists(db, target)

    def _log_duration(self, operation: str, target: TargetRef, started: float, request_id: Optional[str]) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > SLOW_MUTATION_MS:
            logger.warning(
                "slow %s %s on %s: %.1fms > %dms (request_id=%s)",
                self.kind.name, operation, target, elapsed_ms, SLOW_MUTATION_MS, request_id,
            )

    # -- operations ---------------------------------------------------------

    async def toggle(
        self, target_type, target_id: str, user_id: str, request_id: Optional[str] = None
    ) -> InteractionStatus:
        """
        Flip the user's relation to the target.

        Returns:
            The resulting state and the target's count
        """
        target = self.target(target_type, target_id)
        self._check_actor(target, user_id)
        try:
            existing_id = await self._find_existing(target, user_id)
            if existing_id is None:
                await self._assert_target(target)
                await self._create(target, user_id, request_id)
                active = True
            else:
                await self._delete_by_id(existing_id, target, request_id)
                active = False
            count = await self._count(target)
        except (TargetNotFound, ActorNotFound):
            raise
        except Exception:
            logger.exception(
                "toggle %s failed on %s by %s (request_id=%s)", self.kind.name, target, user_id, request_id
            )
            raise

        logger.info(
            "%s %s on %s by %s, count=%d (request_id=%s)",
            self.kind.name, "set" if active else "unset", target, user_id, count, request_id,
        )
        return InteractionStatus(active=active, count=count)

    async def ensure(
        self, target_type, target_id: str, user_id: str, desired: bool, request_id: Optional[str] = None
    ) -> InteractionStatus:
        """
        Drive the relation to ``desired`` regardless of its current state.

        Repeating the call with the same arguments yields the same result and
        never creates a second row.
        """
        target = self.target(target_type, target_id)
        self._check_actor(target, user_id)
        try:
            if desired:
                await self._assert_target(target)
                await self._create(target, user_id, request_id)
            else:
                removed = await self._delete_pair(target, user_id)
                logger.debug("%s unset on %s by %s removed %d row(s)", self.kind.name, target, user_id, removed)
            count = await self._count(target)
        except (TargetNotFound, ActorNotFound):
            raise
        except Exception:
            logger.exception(
                "ensure %s=%s failed on %s by %s (request_id=%s)",
                self.kind.name, desired, target, user_id, request_id,
            )
            raise
        return InteractionStatus(active=desired, count=count)

    @read_retry
    async def status(self, target_type, target_id: str, user_id: Optional[str] = None) -> InteractionStatus:
        target = self.target(target_type, target_id)
        async with self._session() as db:
            count = await self.kind.counter.count(db, target)
            active = False
            if user_id:
                row = await db.execute(
                    select(self.kind.model.id).where(*self._pair_filter(target, user_id))
                )
                active = row.scalar_one_or_none() is not None
        return InteractionStatus(active=active, count=count)

    def _edge(self, row) -> InteractionEdge:
        for target_type, column in self.kind.target_columns.items():
            target_id = getattr(row, column)
            if target_id is not None:
                return InteractionEdge(
                    id=row.id,
                    actor_id=getattr(row, self.kind.actor_column),
                    target=TargetRef(target_type, target_id),
                    created_at=row.created_at,
                )
        raise ValueError(f"{self.kind.name} {row.id} has no target reference")

    @read_retry
    async def list_actors(
        self, target_type, target_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> Page:
        """Users holding this relation to the target, newest first."""
        target = self.target(target_type, target_id)
        async with self._session() as db:
            page = await paginate(
                db,
                self.kind.model,
                self.kind.target_column(target.type) == target.id,
                cursor=cursor,
                limit=limit,
            )
        page.items = [self._edge(row) for row in page.items]
        return page

    @read_retry
    async def list_for_actor(
        self, user_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> Page:
        """Targets the user holds this relation to, newest first."""
        async with self._session() as db:
            page = await paginate(db, self.kind.model, self.kind.actor == user_id, cursor=cursor, limit=limit)
        page.items = [self._edge(row) for row in page.items]
        return page

    async def clear_for_actor(self, user_id: str) -> int:
        """Remove every row of this kind held by the user; counters follow via triggers."""
        async with self._session() as db:
            result = await db.execute(delete(self.kind.model).where(self.kind.actor == user_id))
        logger.info("cleared %d %s row(s) for user %s", result.rowcount, self.kind.name, user_id)
        return result.rowcount


def executors(sessionmaker: Optional[async_sessionmaker] = None) -> Dict[str, ToggleExecutor]:
    return {name: ToggleExecutor(kind, sessionmaker) for name, kind in KINDS.items()}


# Global instances for convenience
likes = ToggleExecutor(LIKE)
bookmarks = ToggleExecutor(BOOKMARK)
follows = ToggleExecutor(FOLLOW)


def get_executor(kind: str) -> ToggleExecutor:
    return {"like": likes, "bookmark": bookmarks, "follow": follows}[kind]


def edge_dict(edge: InteractionEdge) -> Dict[str, object]:
    return {
        "id": edge.id,
        "actor_id": edge.actor_id,
        "target_type": edge.target.type.value,
        "target_id": edge.target.id,
        "created_at": edge.created_at.isoformat() if edge.created_at else None,
    }


def page_dict(page: Page, item_fn=edge_dict) -> Dict[str, object]:
    items: List[Dict[str, object]] = [item_fn(item) for item in page.items]
    return {"items": items, "has_more": page.has_more, "next_cursor": page.next_cursor}
