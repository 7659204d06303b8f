import time

from fastapi.testclient import TestClient

from sursangam_worker.app.main import create_app
from sursangam_worker.app.settings import Settings
from sursangam_worker.services.exceptions import AuthError
from sursangam_worker.services.types import BackendStatus, ComposedAsset


class StubComposer:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self._status: BackendStatus | None = None

    async def warmup(self) -> BackendStatus:
        self._status = BackendStatus(name="stub", ready=True, error=None)
        return self._status

    def backend_status(self) -> BackendStatus | None:
        return self._status

    async def compose(self, request, *, progress_cb=None, cancel_event=None) -> ComposedAsset:
        if self._error is not None:
            raise self._error
        return ComposedAsset(data_uri="data:audio/mpeg;base64,AAAA", description="desc")


def _wait_for_terminal(client: TestClient, job_id: str) -> dict:
    for _ in range(100):
        body = client.get(f"/status/{job_id}").json()
        if body["state"] in {"succeeded", "failed", "cancelled"}:
            return body
        time.sleep(0.02)
    raise AssertionError("job did not finish")


def test_create_app() -> None:
    app = create_app(Settings(), orchestrator=StubComposer())  # type: ignore[arg-type]
    assert app.title == "Sur Sangam Worker"


def test_health_endpoint() -> None:
    app = create_app(Settings(), orchestrator=StubComposer())  # type: ignore[arg-type]
    with TestClient(app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["provider_ready"] is True
        assert body["poll_max_attempts"] == 30
        assert body["song_count"] == 0


def test_compose_job_saves_song_and_library_routes() -> None:
    app = create_app(Settings(), orchestrator=StubComposer())  # type: ignore[arg-type]
    with TestClient(app) as client:
        response = client.post(
            "/compose",
            json={"prompt": "Last slice of pizza", "lyrics": "Tu jab aayi", "style": "pop"},
        )
        assert response.status_code == 200
        job = _wait_for_terminal(client, response.json()["job_id"])
        assert job["state"] == "succeeded"

        songs = client.get("/songs").json()
        assert [song["id"] for song in songs] == [job["song_id"]]
        assert songs[0]["title"] == "Last slice of pizza"

        song = client.get(f"/songs/{job['song_id']}").json()
        assert song["music_data_uri"] == "data:audio/mpeg;base64,AAAA"
        assert song["music_description"] == "desc"

        assert client.delete(f"/songs/{job['song_id']}").status_code == 204
        assert client.get(f"/songs/{job['song_id']}").status_code == 404
        assert client.delete(f"/songs/{job['song_id']}").status_code == 404


def test_failed_job_exposes_category_not_provider_text() -> None:
    app = create_app(Settings(), orchestrator=StubComposer(AuthError("SUNO_API_KEY")))  # type: ignore[arg-type]
    with TestClient(app) as client:
        response = client.post("/compose", json={"prompt": "Idea", "lyrics": "Tu jab aayi"})
        job = _wait_for_terminal(client, response.json()["job_id"])

        assert job["state"] == "failed"
        assert job["failure_category"] == "missing_configuration"
        assert "SUNO_API_KEY" not in job["message"]


def test_unknown_job_returns_404() -> None:
    app = create_app(Settings(), orchestrator=StubComposer())  # type: ignore[arg-type]
    with TestClient(app) as client:
        assert client.get("/status/nope").status_code == 404
        assert client.post("/status/nope/cancel").status_code == 404


def test_compose_rejects_blank_prompt() -> None:
    app = create_app(Settings(), orchestrator=StubComposer())  # type: ignore[arg-type]
    with TestClient(app) as client:
        response = client.post("/compose", json={"prompt": "", "lyrics": "Tu jab aayi"})
        assert response.status_code == 422
