"""Tests for the HTTP surface: error envelopes and request validation.

The database session and the current user are overridden, so no database
is needed and the app's lifespan is never entered.
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from animator.api import animations
from animator.api.animations import build_animation_config
from animator.api.deps import API_KEY_PREFIX, extract_api_key, get_current_user
from animator.main import app
from animator.models.api_key import APIKey
from animator.models.database import get_db
from animator.models.project import Project
from animator.models.track import Track
from animator.schemas.animation import ScheduleRequest
from animator.services.workflow_engine import engine_registry

USER_ID = uuid.uuid4()


def result_of(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def db() -> MagicMock:
    session = MagicMock()
    session.execute = AsyncMock(return_value=result_of(None))
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    return session


@pytest.fixture
def client(db):
    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=USER_ID)
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_project() -> Project:
    return Project(
        id=uuid.uuid4(),
        user_id=USER_ID,
        name="Loop",
        bpm=120,
        orientation="portrait",
        total_duration_seconds=10,
        beat_interval=4,
        frame_rate=24,
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestErrorEnvelope:
    def test_missing_project(self, client):
        project_id = uuid.uuid4()
        response = client.get(f"/api/projects/{project_id}")

        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "PROJECT_NOT_FOUND"
        assert body["error"]["retryable"] is True
        assert str(project_id) in body["detail"]

    def test_invalid_beat_interval(self, client):
        response = client.post("/api/projects", json={"name": "Loop", "beat_interval": 3})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_random_images_requires_positive_count(self, client):
        response = client.get("/api/images/random", params={"count": 0})
        assert response.status_code == 422

    def test_track_position_out_of_bounds(self, client, db):
        project = make_project()
        track = Track(id=uuid.uuid4(), project_id=project.id, name="Intro", start_beat=0, duration_beats=4)
        db.execute.side_effect = [result_of(project), result_of(track)]

        response = client.patch(
            f"/api/projects/{project.id}/tracks/{track.id}/position", json={"start_beat": 18}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "TRACK_OUT_OF_BOUNDS"
        assert body["error"]["location"]["track_id"] == str(track.id)
        assert track.start_beat == 0

    def test_unknown_pipeline(self, client, db):
        db.execute.return_value = result_of(make_project())
        response = client.get(f"/api/projects/{uuid.uuid4()}/animation/preview/status")
        assert response.status_code == 422


class TestBuildAnimationConfig:
    def test_uses_project_settings(self):
        config = build_animation_config(make_project())
        assert config.bpm == 120
        assert config.beat_interval == 4
        assert config.frame_rate == 24

    def test_overrides(self):
        overrides = ScheduleRequest(bpm=90, orientation="landscape", shortfall_policy="fail")
        config = build_animation_config(make_project(), overrides)

        assert config.bpm == 90
        assert config.orientation.value == "landscape"
        assert config.total_duration_seconds == 10


class TestPipelineBusy:
    def test_reset_while_batch_running(self, client, db):
        project = make_project()
        db.execute.return_value = result_of(project)
        channel = engine_registry.channel_for(project.id, "upscale")
        animations._running_channels.add(channel)
        try:
            response = client.post(f"/api/projects/{project.id}/animation/upscale/reset")
        finally:
            animations._running_channels.discard(channel)

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "WORKFLOW_BUSY"
        assert error["location"]["pipeline"] == "upscale"

    def test_reset_idle_pipeline(self, client, db):
        project = make_project()
        db.execute.return_value = result_of(project)

        response = client.post(f"/api/projects/{project.id}/animation/drafts/reset")

        assert response.status_code == 200
        assert response.json()["status"] == "idle"


class TestApiKeyAuth:
    """API key extraction and validity, plus the 401 envelope."""

    @pytest.fixture
    def anonymous_client(self, db):
        async def override_db():
            yield db

        app.dependency_overrides[get_db] = override_db
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_header_wins_over_bearer(self):
        bearer = HTTPAuthorizationCredentials(scheme="Bearer", credentials=f"{API_KEY_PREFIX}b")
        assert extract_api_key(bearer, f"{API_KEY_PREFIX}a") == f"{API_KEY_PREFIX}a"

    def test_prefixed_bearer_is_a_key(self):
        bearer = HTTPAuthorizationCredentials(scheme="Bearer", credentials=f"{API_KEY_PREFIX}b")
        assert extract_api_key(bearer, None) == f"{API_KEY_PREFIX}b"

    def test_plain_bearer_is_not_a_key(self):
        bearer = HTTPAuthorizationCredentials(scheme="Bearer", credentials="dev-token")
        assert extract_api_key(bearer, None) is None

    def test_key_usability(self):
        now = datetime.now(timezone.utc)
        assert APIKey(revoked=False, expires_at=None).is_usable(now)
        assert APIKey(revoked=False, expires_at=now + timedelta(days=1)).is_usable(now)
        assert not APIKey(revoked=False, expires_at=now - timedelta(seconds=1)).is_usable(now)
        assert not APIKey(revoked=True, expires_at=None).is_usable(now)

    def test_malformed_key_rejected(self, anonymous_client):
        response = anonymous_client.get("/api/projects", headers={"X-API-Key": "not-a-key"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_unknown_key_rejected(self, anonymous_client, db):
        db.execute.return_value = result_of(None)
        response = anonymous_client.get(
            "/api/projects", headers={"X-API-Key": f"{API_KEY_PREFIX}missing"}
        )
        assert response.status_code == 401
