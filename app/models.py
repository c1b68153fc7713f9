from datetime import datetime
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    DDL, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, event,
)
from sqlalchemy.orm import declarative_base, relationship

from app.triggers import COUNTER_TRIGGERS, postgresql_ddl, sqlite_ddl

Base = declarative_base()


def new_id() -> str:
    return uuid4().hex


class TargetType(str, PyEnum):
    post = "post"
    activity = "activity"
    user = "user"


class User(Base):
    __tablename__ = "users"
    id = Column(String(32), primary_key=True, default=new_id)
    handle = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    posts = relationship("Post", back_populates="author")


class Post(Base):
    __tablename__ = "posts"
    id = Column(String(32), primary_key=True, default=new_id)
    author_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    author = relationship("User", back_populates="posts")


class Activity(Base):
    __tablename__ = "activities"
    id = Column(String(32), primary_key=True, default=new_id)
    author_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    # Maintained by triggers, see app/triggers.py
    likes_count = Column(Integer, nullable=False, default=0, server_default="0")
    comments_count = Column(Integer, nullable=False, default=0, server_default="0")
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


Index("idx_activities_created", Activity.created_at.desc(), Activity.id.desc())


class Like(Base):
    __tablename__ = "likes"
    id = Column(String(32), primary_key=True, default=new_id)
    author_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(String(32), ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    activity_id = Column(String(32), ForeignKey("activities.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("author_id", "post_id", name="uq_likes_author_post"),
        UniqueConstraint("author_id", "activity_id", name="uq_likes_author_activity"),
        CheckConstraint(
            "(post_id IS NULL) <> (activity_id IS NULL)", name="ck_likes_single_target"
        ),
    )


Index("idx_likes_post_created", Like.post_id, Like.created_at, Like.id)
Index("idx_likes_activity_created", Like.activity_id, Like.created_at, Like.id)
Index("idx_likes_author_created", Like.author_id, Like.created_at, Like.id)


class Bookmark(Base):
    __tablename__ = "bookmarks"
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(String(32), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_bookmarks_user_post"),)


Index("idx_bookmarks_post_created", Bookmark.post_id, Bookmark.created_at, Bookmark.id)
Index("idx_bookmarks_user_created", Bookmark.user_id, Bookmark.created_at, Bookmark.id)


class Follow(Base):
    __tablename__ = "follows"
    id = Column(String(32), primary_key=True, default=new_id)
    follower_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    following_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
    )


Index("idx_follows_following_created", Follow.following_id, Follow.created_at, Follow.id)
Index("idx_follows_follower_created", Follow.follower_id, Follow.created_at, Follow.id)


class Comment(Base):
    __tablename__ = "comments"
    id = Column(String(32), primary_key=True, default=new_id)
    author_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    post_id = Column(String(32), ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    activity_id = Column(String(32), ForeignKey("activities.id", ondelete="CASCADE"), nullable=True)
    # No ON DELETE action: a parent with replies can only be soft-deleted
    parent_id = Column(String(32), ForeignKey("comments.id"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    parent = relationship("Comment", remote_side=[id], backref="children")

    __table_args__ = (
        CheckConstraint(
            "(post_id IS NULL) <> (activity_id IS NULL)", name="ck_comments_single_target"
        ),
    )


Index("idx_comments_post_thread", Comment.post_id, Comment.parent_id, Comment.created_at, Comment.id)
Index("idx_comments_activity_thread", Comment.activity_id, Comment.parent_id, Comment.created_at, Comment.id)
Index("idx_comments_parent", Comment.parent_id)


for _trigger in COUNTER_TRIGGERS:
    _table = Base.metadata.tables[_trigger.source_table]
    for _statement in postgresql_ddl(_trigger):
        event.listen(_table, "after_create", DDL(_statement).execute_if(dialect="postgresql"))
    for _statement in sqlite_ddl(_trigger):
        event.listen(_table, "after_create", DDL(_statement).execute_if(dialect="sqlite"))
