"""
Tests for health check endpoints, exception handlers and read retries.
"""

import sqlite3
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.main import app
from app.services.comments import CommentService


def fake_session(db):
    @asynccontextmanager
    async def _session(factory=None):
        yield db
    return _session


class TestHealthEndpoints:
    """Test health check endpoints."""

    @pytest.fixture
    def client(self):
        """Create test client."""
        return TestClient(app)

    def test_root_health_check_healthy(self, client):
        """Test root health endpoint when the database is healthy."""
        with patch("app.routes.health.check_database_health", AsyncMock(return_value={"status": "ok"})):
            response = client.get("/health/")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "ok"
            assert data["db"]["status"] == "ok"
            assert "version" in data
            assert "timestamp" in data

    def test_root_health_check_db_down(self, client):
        """Test health endpoint when database is down."""
        with patch(
            "app.routes.health.check_database_health",
            AsyncMock(return_value={"status": "down", "error": "Connection failed"}),
        ):
            response = client.get("/health/")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "down"
            assert data["db"]["status"] == "down"
            assert "error" in data["db"]

    def test_database_health_detailed(self, client):
        """Test detailed database health check."""
        mock_db = Mock()
        results = []
        for value in (50, 40, 300, 120):
            result = Mock()
            result.scalar.return_value = value
            results.append(result)
        mock_db.execute = AsyncMock(side_effect=results)

        with patch("app.routes.health.check_database_health", AsyncMock(return_value={"status": "ok"})), \
             patch("app.routes.health.get_session", fake_session(mock_db)):
            response = client.get("/health/db")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "ok"
            assert data["tables"] == {"posts": 50, "activities": 40, "likes": 300, "comments": 120}

    def test_database_health_connection_error(self, client):
        """Test database health when connection fails."""
        mock_db = Mock()
        mock_db.execute = AsyncMock(side_effect=SQLAlchemyError("Connection failed"))

        with patch("app.routes.health.get_session", fake_session(mock_db)):
            response = client.get("/health/db")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "down"
            assert "error" in data


class TestExceptionHandlers:
    """Test global exception handlers."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_sqlalchemy_exception_handler(self, client):
        """Test SQLAlchemy exception handling."""
        with patch(
            "app.routes.health.check_database_health",
            AsyncMock(side_effect=SQLAlchemyError("Database connection failed")),
        ):
            response = client.get("/health/db")

            assert response.status_code == 500
            data = response.json()
            assert data["error_code"] == "DATABASE_ERROR"
            assert data["message"] == "Database operation failed"
            assert "details" in data

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRetryLogic:
    """Reads retry transient errors; everything else fails fast."""

    @staticmethod
    def operational_error():
        return OperationalError("SELECT ...", {}, sqlite3.OperationalError("database is locked"))

    @pytest.mark.asyncio
    async def test_read_retries_transient_error(self):
        counter = Mock()
        counter.count = AsyncMock(side_effect=[self.operational_error(), self.operational_error(), 7])
        service = CommentService(sessionmaker=Mock())

        with patch("app.services.comments.COMMENT_COUNTER", counter), \
             patch("app.services.comments.get_session", fake_session(Mock())):
            assert await service.count("post", "p1") == 7

        assert counter.count.call_count == 3

    @pytest.mark.asyncio
    async def test_read_retry_exhausted(self):
        counter = Mock()
        counter.count = AsyncMock(side_effect=self.operational_error())
        service = CommentService(sessionmaker=Mock())

        with patch("app.services.comments.COMMENT_COUNTER", counter), \
             patch("app.services.comments.get_session", fake_session(Mock())):
            with pytest.raises(OperationalError):
                await service.count("post", "p1")

        assert counter.count.call_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_errors_are_not_retried(self):
        counter = Mock()
        counter.count = AsyncMock(side_effect=SQLAlchemyError("broken query"))
        service = CommentService(sessionmaker=Mock())

        with patch("app.services.comments.COMMENT_COUNTER", counter), \
             patch("app.services.comments.get_session", fake_session(Mock())):
            with pytest.raises(SQLAlchemyError):
                await service.count("post", "p1")

        assert counter.count.call_count == 1
