"""
Tests for the HTTP surface: header identity, payload shapes and error mapping.
"""

from datetime import datetime
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models import TargetType
from app.services.comments import CommentPage, CommentView, DeleteResult
from app.services.errors import (
    ActorNotFound,
    CommentNotFound,
    InvalidBatch,
    InvalidCursor,
    ParentDeleted,
    SelfInteraction,
    TargetNotFound,
    Unauthorized,
)
from app.services.interactions import InteractionEdge, InteractionStatus
from app.services.pagination import Page
from app.services.targets import TargetRef

ALICE = {"X-User-Id": "alice", "X-Request-Id": "req-1"}


@pytest.fixture
def client():
    return TestClient(app)


def executor_mock(**methods):
    executor = Mock()
    for name, value in methods.items():
        setattr(executor, name, AsyncMock(**value))
    return executor


class TestInteractionRoutes:
    """Like, bookmark and follow endpoints."""

    def test_toggle(self, client):
        executor = executor_mock(toggle={"return_value": InteractionStatus(active=True, count=5)})
        with patch("app.routes.interactions.get_executor", return_value=executor) as get_executor:
            response = client.post("/interactions/like/post/p1/toggle", headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"active": True, "count": 5}
        get_executor.assert_called_once_with("like")
        executor.toggle.assert_awaited_once_with("post", "p1", "alice", request_id="req-1")

    def test_toggle_requires_user(self, client):
        response = client.post("/interactions/like/post/p1/toggle")
        assert response.status_code == 401

    def test_unknown_kind_is_rejected(self, client):
        response = client.post("/interactions/clap/post/p1/toggle", headers=ALICE)
        assert response.status_code == 422

    def test_ensure(self, client):
        executor = executor_mock(ensure={"return_value": InteractionStatus(active=False, count=0)})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.put("/interactions/bookmark/post/p1", json={"desired": False}, headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"active": False, "count": 0}
        executor.ensure.assert_awaited_once_with("post", "p1", "alice", False, request_id="req-1")

    def test_target_not_found_maps_to_404(self, client):
        executor = executor_mock(toggle={"side_effect": TargetNotFound("activity", "a9")})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.post("/interactions/like/activity/a9/toggle", headers=ALICE)

        assert response.status_code == 404
        assert response.json() == {
            "error_code": "TARGET_NOT_FOUND",
            "message": "activity a9 not found",
            "details": {"target_type": "activity", "target_id": "a9"},
        }

    def test_unknown_user_maps_to_404(self, client):
        executor = executor_mock(toggle={"side_effect": ActorNotFound("ghost")})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.post("/interactions/like/post/p1/toggle", headers={"X-User-Id": "ghost"})

        assert response.status_code == 404
        assert response.json() == {
            "error_code": "USER_NOT_FOUND",
            "message": "user ghost not found",
            "details": {"user_id": "ghost"},
        }

    def test_self_follow_maps_to_400(self, client):
        executor = executor_mock(toggle={"side_effect": SelfInteraction("follow", "alice")})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.post("/interactions/follow/user/alice/toggle", headers=ALICE)

        assert response.status_code == 400
        assert response.json()["error_code"] == "SELF_INTERACTION"

    def test_batch_status(self, client):
        resolver = Mock()
        resolver.batch_status = AsyncMock(return_value={
            "p1": InteractionStatus(active=True, count=3),
            "p2": InteractionStatus(active=False, count=0),
        })
        with patch.dict("app.routes.interactions.batch_resolvers", {"like": resolver}):
            response = client.get("/interactions/like/post?ids=p1&ids=p2", headers={"X-User-Id": "bob"})

        assert response.status_code == 200
        assert response.json() == {"p1": {"active": True, "count": 3}, "p2": {"active": False, "count": 0}}
        resolver.batch_status.assert_awaited_once_with("post", ["p1", "p2"], "bob")

    def test_batch_status_invalid(self, client):
        resolver = Mock()
        resolver.batch_status = AsyncMock(side_effect=InvalidBatch("batch size cannot exceed 50"))
        with patch.dict("app.routes.interactions.batch_resolvers", {"like": resolver}):
            response = client.get("/interactions/like/post?ids=p1")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_BATCH"

    def test_status_anonymous(self, client):
        executor = executor_mock(status={"return_value": InteractionStatus(active=False, count=9)})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.get("/interactions/like/activity/a1")

        assert response.json() == {"active": False, "count": 9}
        executor.status.assert_awaited_once_with("activity", "a1", None)

    def test_actors_page(self, client):
        edge = InteractionEdge(
            id="l1", actor_id="bob", target=TargetRef(TargetType.post, "p1"), created_at=datetime(2024, 1, 1)
        )
        executor = executor_mock(list_actors={"return_value": Page(items=[edge], has_more=True, next_cursor="l1")})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.get("/interactions/like/post/p1/actors?limit=1")

        assert response.status_code == 200
        assert response.json() == {
            "items": [{
                "id": "l1", "actor_id": "bob", "target_type": "post", "target_id": "p1",
                "created_at": "2024-01-01T00:00:00",
            }],
            "has_more": True,
            "next_cursor": "l1",
        }

    def test_invalid_cursor_maps_to_400(self, client):
        executor = executor_mock(list_actors={"side_effect": InvalidCursor("zzz")})
        with patch("app.routes.interactions.get_executor", return_value=executor):
            response = client.get("/interactions/like/post/p1/actors?cursor=zzz")

        assert response.status_code == 400
        assert response.json()["details"] == {"cursor": "zzz"}


class TestCommentRoutes:
    """Comment endpoints."""

    VIEW = CommentView(
        id="c1", author_id="alice", target_type="post", target_id="p1", parent_id=None,
        content="hello", created_at=datetime(2024, 1, 1), is_deleted=False,
    )

    def test_create(self, client):
        with patch("app.routes.comments.comment_service") as service:
            service.create = AsyncMock(return_value=self.VIEW)
            response = client.post(
                "/comments", json={"target_type": "post", "target_id": "p1", "content": "hello"}, headers=ALICE
            )

        assert response.status_code == 201
        assert response.json()["id"] == "c1"
        service.create.assert_awaited_once_with("post", "p1", "alice", "hello", parent_id=None)

    def test_create_on_deleted_parent(self, client):
        with patch("app.routes.comments.comment_service") as service:
            service.create = AsyncMock(side_effect=ParentDeleted("c0"))
            response = client.post(
                "/comments",
                json={"target_type": "post", "target_id": "p1", "content": "hi", "parent_id": "c0"},
                headers=ALICE,
            )

        assert response.status_code == 409
        assert response.json()["error_code"] == "PARENT_DELETED"

    def test_list(self, client):
        page = CommentPage(items=[self.VIEW], has_more=False, next_cursor=None, total_count=1)
        with patch("app.routes.comments.comment_service") as service:
            service.list = AsyncMock(return_value=page)
            response = client.get("/comments/post/p1?include_replies=true&limit=10")

        assert response.status_code == 200
        assert response.json()["total_count"] == 1
        service.list.assert_awaited_once_with(
            "post", "p1", parent_id=None, cursor=None, limit=10, include_replies=True
        )

    def test_count(self, client):
        with patch("app.routes.comments.comment_service") as service:
            service.count = AsyncMock(return_value=12)
            response = client.get("/comments/activity/a1/count")

        assert response.json() == {"count": 12}

    def test_delete_as_admin(self, client):
        result = DeleteResult(comment_id="c1", target_type="post", target_id="p1", soft_deleted=True)
        with patch("app.routes.comments.comment_service") as service:
            service.delete = AsyncMock(return_value=result)
            response = client.delete("/comments/c1", headers={"X-User-Id": "mod", "X-User-Role": "admin"})

        assert response.status_code == 200
        assert response.json()["soft_deleted"] is True
        service.delete.assert_awaited_once_with("c1", "mod", is_admin=True)

    @pytest.mark.parametrize(
        "error, status, code",
        [
            (Unauthorized("c1", "alice"), 403, "UNAUTHORIZED"),
            (CommentNotFound("c1"), 404, "COMMENT_NOT_FOUND"),
        ],
    )
    def test_delete_errors(self, client, error, status, code):
        with patch("app.routes.comments.comment_service") as service:
            service.delete = AsyncMock(side_effect=error)
            response = client.delete("/comments/c1", headers=ALICE)

        assert response.status_code == status
        assert response.json()["error_code"] == code
        service.delete.assert_awaited_once_with("c1", "alice", is_admin=False)
