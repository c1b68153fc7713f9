"""create interaction tables and counter triggers

Revision ID: 3c1d7e2a9f40
Revises:
Create Date: 2026-10-17 09:12:41.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from app.triggers import COUNTER_TRIGGERS, create_ddl, drop_ddl


# revision identifiers, used by Alembic.
revision: str = '3c1d7e2a9f40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id(name: str = 'id', *args, **kwargs) -> sa.Column:
    return sa.Column(name, sa.String(length=32), *args, **kwargs)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        _id(primary_key=True),
        sa.Column('handle', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_handle', 'users', ['handle'], unique=True)

    op.create_table(
        'posts',
        _id(primary_key=True),
        _id('author_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('published', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_posts_author_id', 'posts', ['author_id'])

    op.create_table(
        'activities',
        _id(primary_key=True),
        _id('author_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('likes_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('comments_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activities_author_id', 'activities', ['author_id'])
    op.create_index(
        'idx_activities_created', 'activities', [sa.text('created_at DESC'), sa.text('id DESC')]
    )

    op.create_table(
        'likes',
        _id(primary_key=True),
        _id('author_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _id('post_id', sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=True),
        _id('activity_id', sa.ForeignKey('activities.id', ondelete='CASCADE'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('author_id', 'post_id', name='uq_likes_author_post'),
        sa.UniqueConstraint('author_id', 'activity_id', name='uq_likes_author_activity'),
        sa.CheckConstraint('(post_id IS NULL) <> (activity_id IS NULL)', name='ck_likes_single_target'),
    )
    op.create_index('idx_likes_post_created', 'likes', ['post_id', 'created_at', 'id'])
    op.create_index('idx_likes_activity_created', 'likes', ['activity_id', 'created_at', 'id'])
    op.create_index('idx_likes_author_created', 'likes', ['author_id', 'created_at', 'id'])

    op.create_table(
        'bookmarks',
        _id(primary_key=True),
        _id('user_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _id('post_id', sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'post_id', name='uq_bookmarks_user_post'),
    )
    op.create_index('idx_bookmarks_post_created', 'bookmarks', ['post_id', 'created_at', 'id'])
    op.create_index('idx_bookmarks_user_created', 'bookmarks', ['user_id', 'created_at', 'id'])

    op.create_table(
        'follows',
        _id(primary_key=True),
        _id('follower_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _id('following_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('follower_id', 'following_id', name='uq_follows_pair'),
        sa.CheckConstraint('follower_id <> following_id', name='ck_follows_not_self'),
    )
    op.create_index('idx_follows_following_created', 'follows', ['following_id', 'created_at', 'id'])
    op.create_index('idx_follows_follower_created', 'follows', ['follower_id', 'created_at', 'id'])

    op.create_table(
        'comments',
        _id(primary_key=True),
        _id('author_id', sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _id('post_id', sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=True),
        _id('activity_id', sa.ForeignKey('activities.id', ondelete='CASCADE'), nullable=True),
        # No ON DELETE action: parents with replies are soft-deleted only
        _id('parent_id', sa.ForeignKey('comments.id'), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('(post_id IS NULL) <> (activity_id IS NULL)', name='ck_comments_single_target'),
    )
    op.create_index('ix_comments_author_id', 'comments', ['author_id'])
    op.create_index('idx_comments_post_thread', 'comments', ['post_id', 'parent_id', 'created_at', 'id'])
    op.create_index(
        'idx_comments_activity_thread', 'comments', ['activity_id', 'parent_id', 'created_at', 'id']
    )
    op.create_index('idx_comments_parent', 'comments', ['parent_id'])

    # Counter triggers on likes/comments -> activities
    dialect = op.get_bind().dialect.name
    for trigger in COUNTER_TRIGGERS:
        for statement in create_ddl(dialect, trigger):
            op.execute(statement)


def downgrade() -> None:
    """Downgrade schema."""
    dialect = op.get_bind().dialect.name
    for trigger in COUNTER_TRIGGERS:
        for statement in drop_ddl(dialect, trigger):
            op.execute(statement)

    for table in ('comments', 'follows', 'bookmarks', 'likes', 'activities', 'posts', 'users'):
        op.drop_table(table)
