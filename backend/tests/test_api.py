"""HTTP API tests"""
import time

import pytest
from fastapi.testclient import TestClient

from videohop.main import create_app
from videohop.services.upload.errors import PlatformPolicyError
from videohop.services.upload.orchestrator import UploadOrchestrator
from videohop.services.upload.platforms.base import BasePlatformDriver, UploadResult, chunk_progress


class ScriptedDriver(BasePlatformDriver):
    """Fails for each queued error, then succeeds"""

    def __init__(self, platform, errors=None):
        super().__init__()
        self.platform = platform
        self.errors = list(errors or [])

    async def upload(self, access_token, video, metadata, plan, listener=None, cancel_event=None):
        if self.errors:
            raise self.errors.pop(0)
        listener(chunk_progress(video.size, video.size))
        return UploadResult(video_id=f"{self.platform}-vid")


@pytest.fixture
def drivers():
    return {"youtube": ScriptedDriver("youtube"), "tiktok": ScriptedDriver("tiktok")}


@pytest.fixture
def client(session, token_manager, drivers):
    """FastAPI test client wired to in-memory collaborators"""
    orchestrator = UploadOrchestrator(session, token_manager, drivers=drivers)
    app = create_app(session=session, tokens=token_manager, orchestrator=orchestrator, start_monitor=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def video_path(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 2048)
    return str(path)


def connect(client, platform="youtube", **extra):
    body = {"id": f"{platform}-1", "access_token": "a", "refresh_token": "r",
            "expires_at": int(time.time() * 1000) + 3_600_000, "profile": {"username": "creator"}}
    body.update(extra)
    return client.post(f"/api/accounts/{platform}", json=body)


def wait_for_status(client, upload_id, expected, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        record = client.get(f"/api/uploads/{upload_id}").json()
        if record["status"] == expected:
            return record
        time.sleep(0.02)
    raise AssertionError(f"Upload {upload_id} never reached {expected}: {record}")


def upload_body(video_path, platform="youtube"):
    return {"platform": platform, "video_path": video_path,
            "metadata": {"title": "Hello", "privacy": "public"}}


@pytest.mark.high
class TestAccountsApi:
    """Test account connection endpoints"""

    def test_connect_list_disconnect(self, client):
        assert client.get("/api/accounts").json()["youtube"]["connected"] is False

        response = connect(client)
        assert response.status_code == 200
        assert "access_token" not in response.json()
        assert "refresh_token" not in response.json()

        accounts = client.get("/api/accounts").json()
        assert accounts["youtube"]["connected"] is True
        assert accounts["youtube"]["token_expired"] is False
        assert accounts["youtube"]["account"]["id"] == "youtube-1"

        assert client.delete("/api/accounts/youtube").json() == {"disconnected": True}
        assert client.get("/api/accounts").json()["youtube"]["connected"] is False

    def test_unknown_platform(self, client):
        assert connect(client, "vimeo").status_code == 404

    def test_manual_refresh(self, client, session):
        connect(client, "tiktok")

        response = client.post("/api/accounts/tiktok/refresh")

        assert response.status_code == 200
        assert session.get_account("tiktok").access_token == "access-new"

    def test_manual_refresh_without_refresh_token(self, client):
        connect(client, "tiktok", refresh_token=None)

        response = client.post("/api/accounts/tiktok/refresh")

        assert response.status_code == 401
        assert response.json()["detail"]["needs_reauth"] is True


@pytest.mark.critical
class TestUploadsApi:
    """Test upload endpoints"""

    def test_upload_requires_connected_account(self, client, video_path):
        response = client.post("/api/uploads", json=upload_body(video_path))

        assert response.status_code == 400
        assert response.json()["detail"] == "YouTube account not connected"
        assert client.get("/api/uploads").json() == []

    def test_upload_missing_file(self, client, tmp_path):
        connect(client)

        response = client.post("/api/uploads", json=upload_body(str(tmp_path / "nope.mp4")))

        assert response.status_code == 400

    def test_upload_completes(self, client, video_path):
        connect(client)

        response = client.post("/api/uploads", json=upload_body(video_path))
        assert response.status_code == 202
        upload_id = response.json()["id"]

        record = wait_for_status(client, upload_id, "completed")
        assert record["progress"] == 100
        assert record["video_id"] == "youtube-vid"
        assert [r["id"] for r in client.get("/api/uploads").json()] == [upload_id]

        assert client.delete("/api/uploads/completed").json() == {"removed": 1}
        assert client.get("/api/uploads").json() == []

    def test_retry_failed_upload(self, client, drivers, video_path):
        drivers["tiktok"].errors.append(PlatformPolicyError("Account has been flagged for spam risk."))
        connect(client, "tiktok")

        upload_id = client.post("/api/uploads", json=upload_body(video_path, "tiktok")).json()["id"]
        failed = wait_for_status(client, upload_id, "failed")
        assert failed["error"] == "Account has been flagged for spam risk."

        response = client.post(f"/api/uploads/{upload_id}/retry")
        assert response.status_code == 202
        assert response.json()["attempt"] == 2

        record = wait_for_status(client, upload_id, "completed")
        assert record["video_url"] == "https://www.tiktok.com/@creator/video/tiktok-vid"

    def test_cancel_and_retry_errors(self, client, video_path):
        connect(client)
        assert client.post("/api/uploads/missing/cancel").status_code == 404
        assert client.post("/api/uploads/missing/retry").status_code == 404

        upload_id = client.post("/api/uploads", json=upload_body(video_path)).json()["id"]
        wait_for_status(client, upload_id, "completed")

        assert client.post(f"/api/uploads/{upload_id}/cancel").status_code == 400
        assert client.post(f"/api/uploads/{upload_id}/retry").status_code == 400

    def test_metrics_endpoint(self, client, video_path):
        connect(client)
        upload_id = client.post("/api/uploads", json=upload_body(video_path)).json()["id"]
        wait_for_status(client, upload_id, "completed")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'videohop_successful_uploads_total{platform="youtube"}' in response.text
