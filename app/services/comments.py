# app/services/comments.py
"""Comment lifecycle service: creation, threaded listing and soft/hard deletion."""

import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, exists, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from app.config import COMMENT_DELETED_PLACEHOLDER, COMMENT_MAX_LENGTH
from app.db import AsyncSessionLocal, get_session, read_retry
from app.models import Comment, TargetType, new_id
from app.services.db_errors import DatabaseErrorKind, classify_db_error
from app.services.errors import (
    ActorNotFound,
    CommentNotFound,
    InteractionError,
    InvalidContent,
    ParentDeleted,
    ParentMismatch,
    ParentNotFound,
    TargetNotFound,
    Unauthorized,
    UnsupportedTarget,
)
from app.services.pagination import paginate
from app.services.targets import (
    CounterSource,
    TargetRef,
    assert_target_exists,
    parse_target_type,
    target_exists,
)

logger = logging.getLogger(__name__)

# Basic formatting tags that survive sanitization
ALLOWED_TAGS = {"b", "i", "em", "strong", "code", "pre"}

COMMENT_TARGET_COLUMNS = {TargetType.post: "post_id", TargetType.activity: "activity_id"}

# Activities carry a trigger-maintained comments_count; posts are counted live.
COMMENT_COUNTER = CounterSource(
    Comment, COMMENT_TARGET_COLUMNS, {TargetType.activity: "comments_count"}
)


def sanitize_content(content: str) -> str:
    """Escape markup, re-enabling only the basic formatting tags."""
    escaped = html.escape(content.strip())
    for tag in ALLOWED_TAGS:
        escaped = escaped.replace(f"&lt;{tag}&gt;", f"<{tag}>")
        escaped = escaped.replace(f"&lt;/{tag}&gt;", f"</{tag}>")
    return escaped


@dataclass
class CommentView:
    """A comment as returned to callers."""
    id: str
    author_id: str
    target_type: str
    target_id: str
    parent_id: Optional[str]
    content: str
    created_at: datetime
    is_deleted: bool
    child_count: int = 0
    replies: Optional[List["CommentView"]] = None

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "author_id": self.author_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_deleted": self.is_deleted,
            "child_count": self.child_count,
        }
        if self.replies is not None:
            data["replies"] = [reply.to_dict() for reply in self.replies]
        return data


@dataclass
class CommentPage:
    items: List[CommentView] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None
    total_count: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
            "total_count": self.total_count,
        }


@dataclass
class DeleteResult:
    comment_id: str
    target_type: str
    target_id: str
    soft_deleted: bool


def resolve_target(comment) -> TargetRef:
    if comment.post_id:
        return TargetRef(TargetType.post, comment.post_id)
    if comment.activity_id:
        return TargetRef(TargetType.activity, comment.activity_id)
    raise InteractionError("Comment missing target reference", {"comment_id": comment.id})


def format_comment(
    comment, child_count: int = 0, placeholder: str = COMMENT_DELETED_PLACEHOLDER
) -> CommentView:
    """
    Convert a comment row into its caller-facing view.

    Soft-deleted rows keep their author, timestamps and thread position but
    expose the placeholder instead of their content.
    """
    target = resolve_target(comment)
    is_deleted = comment.deleted_at is not None
    return CommentView(
        id=comment.id,
        author_id=comment.author_id,
        target_type=target.type.value,
        target_id=target.id,
        parent_id=comment.parent_id,
        content=placeholder if is_deleted else comment.content,
        created_at=comment.created_at,
        is_deleted=is_deleted,
        child_count=child_count,
    )


class CommentService:
    """Service for the comment lifecycle on posts and activities."""

    def __init__(
        self,
        sessionmaker: Optional[async_sessionmaker] = None,
        placeholder: str = COMMENT_DELETED_PLACEHOLDER,
        max_length: int = COMMENT_MAX_LENGTH,
    ):
        self._sessionmaker = sessionmaker or AsyncSessionLocal
        self.placeholder = placeholder
        self.max_length = max_length

    def _session(self):
        return get_session(self._sessionmaker)

    @staticmethod
    def target(target_type, target_id: str) -> TargetRef:
        parsed = parse_target_type(target_type)
        if parsed not in COMMENT_TARGET_COLUMNS or not target_id:
            raise UnsupportedTarget("comment", str(getattr(target_type, "value", target_type)))
        return TargetRef(parsed, target_id)

    @staticmethod
    def _target_filter(target: TargetRef):
        return getattr(Comment, COMMENT_TARGET_COLUMNS[target.type]) == target.id

    # -- create -------------------------------------------------------------

    def _clean(self, content: str) -> str:
        if not isinstance(content, str) or not content.strip():
            raise InvalidContent("Comment content cannot be empty")
        if len(content) > self.max_length:
            raise InvalidContent(
                f"Comment content cannot exceed {self.max_length} characters",
                {"length": len(content), "max": self.max_length},
            )
        return sanitize_content(content)

    async def _validate_parent(self, db: AsyncSession, parent_id: str, target: TargetRef) -> None:
        parent = (
            await db.execute(
                select(Comment.id, Comment.post_id, Comment.activity_id, Comment.deleted_at).where(
                    Comment.id == parent_id
                )
            )
        ).one_or_none()
        if parent is None:
            raise ParentNotFound(parent_id)
        if parent.deleted_at is not None:
            raise ParentDeleted(parent_id)
        parent_target_id = parent.post_id if target.type is TargetType.post else parent.activity_id
        if parent_target_id != target.id:
            raise ParentMismatch(parent_id, target.type.value, target.id, parent_target_id)

    async def create(
        self,
        target_type,
        target_id: str,
        author_id: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> CommentView:
        """
        Create a comment or a reply.

        Counter maintenance for activities is left to the database trigger;
        the insert is the only write.

        Raises:
            TargetNotFound, ParentNotFound, ParentDeleted, ParentMismatch, InvalidContent, ActorNotFound
        """
        target = self.target(target_type, target_id)
        clean = self._clean(content)

        async with self._session() as db:
            await assert_target_exists(db, target)
            if parent_id:
                await self._validate_parent(db, parent_id, target)

        row = {
            "id": new_id(),
            "author_id": author_id,
            COMMENT_TARGET_COLUMNS[target.type]: target.id,
            "parent_id": parent_id,
            "content": clean,
            "created_at": datetime.utcnow(),
        }
        try:
            async with self._session() as db:
                await db.execute(insert(Comment).values(**row))
        except IntegrityError as exc:
            if classify_db_error(exc) is not DatabaseErrorKind.FOREIGN_KEY_VIOLATION:
                raise
            # Target or parent vanished between validation and insert, or the author is unknown
            if parent_id and not await self._exists(parent_id):
                raise ParentNotFound(parent_id) from exc
            async with self._session() as db:
                if not await target_exists(db, target):
                    raise TargetNotFound(target.type.value, target.id) from exc
            raise ActorNotFound(author_id) from exc

        logger.info(
            "comment %s created on %s by %s (parent=%s)", row["id"], target, author_id, parent_id
        )
        return CommentView(
            id=row["id"],
            author_id=author_id,
            target_type=target.type.value,
            target_id=target.id,
            parent_id=parent_id,
            content=clean,
            created_at=row["created_at"],
            is_deleted=False,
        )

    async def _exists(self, comment_id: str) -> bool:
        async with self._session() as db:
            found = await db.execute(select(Comment.id).where(Comment.id == comment_id))
            return found.scalar_one_or_none() is not None

    # -- read ---------------------------------------------------------------

    @staticmethod
    async def _child_counts(db: AsyncSession, comment_ids: List[str]) -> Dict[str, int]:
        if not comment_ids:
            return {}
        rows = await db.execute(
            select(Comment.parent_id, func.count())
            .where(Comment.parent_id.in_(comment_ids))
            .group_by(Comment.parent_id)
        )
        return dict(rows.all())

    async def _attach_replies(self, db: AsyncSession, views: List[CommentView]) -> None:
        """Fill ``replies`` on every view, one thread level per query, down to the leaves."""
        frontier = {view.id: view for view in views}
        while frontier:
            for view in frontier.values():
                view.replies = []
            replies = (
                await db.execute(
                    select(Comment)
                    .where(Comment.parent_id.in_(list(frontier)))
                    .order_by(Comment.created_at.asc(), Comment.id.asc())
                )
            ).scalars().all()
            counts = await self._child_counts(db, [reply.id for reply in replies])
            next_frontier = {}
            for reply in replies:
                view = format_comment(reply, counts.get(reply.id, 0), self.placeholder)
                frontier[reply.parent_id].replies.append(view)
                next_frontier[reply.id] = view
            frontier = next_frontier

    @read_retry
    async def list(
        self,
        target_type,
        target_id: str,
        parent_id: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        include_replies: bool = False,
    ) -> CommentPage:
        """
        List one level of a comment thread.

        Top-level comments come newest first, replies oldest first. Soft-deleted
        comments are included as placeholders so their replies keep an anchor.
        With ``include_replies`` each top-level comment carries its whole reply
        tree, so the listed comments add up to ``total_count``.
        """
        target = self.target(target_type, target_id)
        fetching_replies = parent_id is not None
        scope = [
            self._target_filter(target),
            Comment.parent_id == parent_id if fetching_replies else Comment.parent_id.is_(None),
        ]

        async with self._session() as db:
            page = await paginate(
                db, Comment, *scope, cursor=cursor, limit=limit, ascending=fetching_replies
            )
            page_ids = [row.id for row in page.items]
            child_counts = await self._child_counts(db, page_ids)

            items = [format_comment(row, child_counts.get(row.id, 0), self.placeholder) for row in page.items]
            if include_replies and not fetching_replies:
                await self._attach_replies(db, items)

            total_count = None if fetching_replies else await COMMENT_COUNTER.count(db, target)

        return CommentPage(
            items=items, has_more=page.has_more, next_cursor=page.next_cursor, total_count=total_count
        )

    @read_retry
    async def count(self, target_type, target_id: str) -> int:
        """Exposed comment count; soft-deleted comments are still rendered, so they count."""
        target = self.target(target_type, target_id)
        async with self._session() as db:
            return await COMMENT_COUNTER.count(db, target)

    # -- delete -------------------------------------------------------------

    async def _delete_if_leaf(self, comment_id: str) -> bool:
        """Hard-delete the row only if it has no children, in one statement."""
        child = aliased(Comment)
        stmt = delete(Comment).where(
            Comment.id == comment_id,
            ~exists().where(child.parent_id == comment_id),
        )
        try:
            async with self._session() as db:
                result = await db.execute(stmt)
        except IntegrityError as exc:
            # A reply was inserted concurrently; the row must stay as an anchor
            if classify_db_error(exc) is DatabaseErrorKind.FOREIGN_KEY_VIOLATION:
                return False
            raise
        return result.rowcount > 0

    async def _soft_delete(self, comment_id: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(Comment)
                .where(Comment.id == comment_id, Comment.deleted_at.is_(None))
                .values(deleted_at=datetime.utcnow())
            )
        return result.rowcount > 0

    async def delete(self, comment_id: str, acting_user_id: str, is_admin: bool = False) -> DeleteResult:
        """
        Delete a comment as its author or an admin.

        A comment with replies is soft-deleted so the thread keeps its anchor;
        a comment without replies is removed.

        Raises:
            CommentNotFound: If the comment does not exist
            Unauthorized: If the acting user is neither author nor admin
        """
        async with self._session() as db:
            comment = (
                await db.execute(
                    select(
                        Comment.id, Comment.author_id, Comment.post_id,
                        Comment.activity_id, Comment.parent_id, Comment.deleted_at,
                    ).where(Comment.id == comment_id)
                )
            ).one_or_none()

        if comment is None:
            raise CommentNotFound(comment_id)
        if not is_admin and comment.author_id != acting_user_id:
            raise Unauthorized(comment_id, acting_user_id)

        target = resolve_target(comment)
        result = DeleteResult(
            comment_id=comment_id, target_type=target.type.value, target_id=target.id, soft_deleted=True
        )

        # SoftDeleted is terminal: the placeholder stays even once its replies are gone
        if comment.deleted_at is not None:
            logger.info("comment %s is already soft-deleted", comment_id)
            return result

        if await self._delete_if_leaf(comment_id):
            result.soft_deleted = False
        elif not await self._soft_delete(comment_id):
            logger.info("comment %s already soft-deleted or removed concurrently", comment_id)

        logger.info(
            "comment %s deleted by %s (admin=%s, soft=%s)",
            comment_id, acting_user_id, is_admin, result.soft_deleted,
        )
        return result


# Global instance for convenience
comment_service = CommentService()
