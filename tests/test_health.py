"""
Tests for health check endpoints and the global exception handlers.
"""

from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from socialgraph.errors import IndexConsistencyError
from socialgraph.main import app

TABLES = ("profiles", "friend_requests", "friendships", "blocks", "posts", "comments", "likes")


class TestHealthEndpoints:
    """Test health check endpoints."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_root_health_check_healthy(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_db:
            mock_db.return_value = {"status": "ok"}

            response = client.get("/health/")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "ok"
            assert data["db"]["status"] == "ok"
            assert data["version"] == "1.0.0"
            assert "timestamp" in data

    def test_root_health_check_db_down(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_db:
            mock_db.return_value = {"status": "down", "error": "Connection failed"}

            response = client.get("/health/")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "down"
            assert "error" in data["db"]

    def test_database_health_detailed(self, client):
        """Every table gets a record count."""
        with patch("socialgraph.routes.health.check_database_health") as mock_health_check, \
             patch("socialgraph.routes.health.get_session") as mock_session:

            mock_health_check.return_value = {"status": "ok"}
            mock_db = Mock()
            results = []
            for count, _ in enumerate(TABLES, start=1):
                result = Mock()
                result.scalar.return_value = count * 10
                results.append(result)
            mock_db.execute.side_effect = results
            mock_session.return_value.__enter__.return_value = mock_db

            response = client.get("/health/db")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "ok"
            assert data["tables"] == {table: (i + 1) * 10 for i, table in enumerate(TABLES)}

    def test_database_health_connection_error(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_health_check:
            mock_health_check.return_value = {"status": "down", "error": "Connection failed"}

            response = client.get("/health/db")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "down"
            assert "tables" not in data

    def test_database_health_count_failure(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_health_check, \
             patch("socialgraph.routes.health.get_session") as mock_session:

            mock_health_check.return_value = {"status": "ok"}
            mock_session.return_value.__enter__.return_value.execute.side_effect = SQLAlchemyError("gone")

            data = client.get("/health/db").json()

            assert data["status"] == "ok"
            assert data["error"].startswith("Extended check failed")

    def test_check_database_health_reports_errors(self):
        from socialgraph.routes.health import check_database_health

        with patch("socialgraph.routes.health.get_session") as mock_session:
            mock_session.return_value.__enter__.return_value.execute.side_effect = SQLAlchemyError("refused")

            result = check_database_health()

        assert result["status"] == "down"
        assert "refused" in result["error"]


class TestExceptionHandlers:
    """Test global exception handlers."""

    @pytest.fixture
    def client(self):
        return TestClient(app, raise_server_exceptions=False)

    def test_sqlalchemy_exception_handler(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_check:
            mock_check.side_effect = SQLAlchemyError("Database connection failed")

            response = client.get("/health/db")

            assert response.status_code == 500
            data = response.json()
            assert data["error_code"] == "DATABASE_ERROR"
            assert data["message"] == "Database operation failed"
            assert "details" in data

    def test_index_consistency_handler(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_check:
            mock_check.side_effect = IndexConsistencyError("posts_by_owner", [7])

            response = client.get("/health/")

            assert response.status_code == 500
            assert response.json()["error_code"] == "INDEX_CONSISTENCY_FAULT"

    def test_general_exception_handler(self, client):
        with patch("socialgraph.routes.health.check_database_health") as mock_check:
            mock_check.side_effect = RuntimeError("boom")

            response = client.get("/health/")

            assert response.status_code == 500
            assert response.json()["error_code"] == "INTERNAL_ERROR"

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
