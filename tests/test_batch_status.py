"""Tests for the batch status resolver."""

import pytest

from app.db import get_session
from app.models import Activity, Like, Post
from app.services.batch_status import BatchStatusResolver, validate_ids
from app.services.errors import InvalidBatch, UnsupportedTarget
from app.services.interactions import BOOKMARK, LIKE, InteractionStatus, ToggleExecutor


@pytest.fixture
def resolver(sessionmaker):
    return BatchStatusResolver(LIKE, sessionmaker)


async def make_posts(sessionmaker, author_id, n):
    async with get_session(sessionmaker) as db:
        rows = [Post(author_id=author_id, title=f"p{i}", content="...") for i in range(n)]
        db.add_all(rows)
    return [row.id for row in rows]


class TestValidateIds:
    def test_empty_list(self):
        assert validate_ids([]) == []

    def test_duplicates_collapse_in_order(self):
        assert validate_ids(["b", "a", "b"]) == ["b", "a"]

    @pytest.mark.parametrize("bad", [None, "abc", ["ok", ""], ["ok", 3]])
    def test_rejects_bad_input(self, bad):
        with pytest.raises(InvalidBatch):
            validate_ids(bad)

    def test_caps_batch_size(self):
        with pytest.raises(InvalidBatch) as exc_info:
            validate_ids([f"id{i}" for i in range(51)])
        assert exc_info.value.context == {"size": 51, "max": 50}

    def test_cap_counts_unique_ids(self):
        assert len(validate_ids(["same"] * 80)) == 1


class TestBatchStatus:
    """Counts and membership for many targets at once."""

    @pytest.mark.asyncio
    async def test_empty_batch_returns_empty_map(self, resolver):
        assert await resolver.batch_status("post", []) == {}

    @pytest.mark.asyncio
    async def test_unknown_target_defaults(self, resolver, users):
        result = await resolver.batch_status("post", ["no-such-post"], users["alice"])
        assert result == {"no-such-post": InteractionStatus(active=False, count=0)}

    @pytest.mark.asyncio
    async def test_live_counts_and_membership_for_posts(self, resolver, sessionmaker, users):
        p1, p2, p3 = await make_posts(sessionmaker, users["alice"], 3)
        async with get_session(sessionmaker) as db:
            db.add_all([
                Like(author_id=users["bob"], post_id=p1),
                Like(author_id=users["carol"], post_id=p1),
                Like(author_id=users["carol"], post_id=p2),
            ])

        result = await resolver.batch_status("post", [p1, p2, p3], users["carol"])

        assert result == {
            p1: InteractionStatus(active=True, count=2),
            p2: InteractionStatus(active=True, count=1),
            p3: InteractionStatus(active=False, count=0),
        }

    @pytest.mark.asyncio
    async def test_counter_column_for_activities(self, resolver, sessionmaker, users, activity):
        async with get_session(sessionmaker) as db:
            other = Activity(author_id=users["alice"], content="other")
            db.add(other)
            await db.flush()
            db.add_all([
                Like(author_id=users["alice"], activity_id=activity),
                Like(author_id=users["carol"], activity_id=activity),
            ])

        result = await resolver.batch_status("activity", [activity, other.id], users["alice"])

        assert result[activity] == InteractionStatus(active=True, count=2)
        assert result[other.id] == InteractionStatus(active=False, count=0)

    @pytest.mark.asyncio
    async def test_anonymous_user_is_never_active(self, resolver, sessionmaker, users, post):
        await ToggleExecutor(LIKE, sessionmaker).ensure("post", post, users["bob"], True)

        result = await resolver.batch_status("post", [post])

        assert result[post] == InteractionStatus(active=False, count=1)

    @pytest.mark.asyncio
    async def test_duplicate_ids_resolve_once(self, resolver, users, post):
        result = await resolver.batch_status("post", [post, post], users["bob"])
        assert list(result) == [post]

    @pytest.mark.asyncio
    async def test_over_cap_is_rejected(self, resolver):
        with pytest.raises(InvalidBatch):
            await resolver.batch_status("post", [f"id{i}" for i in range(51)])

    @pytest.mark.asyncio
    async def test_unsupported_target_type(self, sessionmaker):
        with pytest.raises(UnsupportedTarget):
            await BatchStatusResolver(BOOKMARK, sessionmaker).batch_status("activity", ["a"])
