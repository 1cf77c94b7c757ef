from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from app.database import get_db
from app.main import _is_env_enabled, _is_token_refresh_enabled, app


class TestHealthEndpoints:
    def test_health(self):
        response = TestClient(app).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_db_check_counts_tables(self):
        db = MagicMock()
        db.query.return_value.count.return_value = 4

        def _override_get_db():
            yield db

        app.dependency_overrides[get_db] = _override_get_db
        try:
            response = TestClient(app).get("/db-check")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        data = response.json()
        assert data["channels"] == 4
        assert data["interaction_reports"] == 4


class TestWorkerToggles:
    def test_env_flag_defaults(self):
        assert _is_env_enabled(None) is True
        assert _is_env_enabled(None, default=False) is False

    def test_env_flag_off_values(self):
        for value in ("0", "false", "No", " off "):
            assert _is_env_enabled(value) is False

    def test_token_refresh_disabled_under_pytest(self):
        assert _is_token_refresh_enabled() is False
