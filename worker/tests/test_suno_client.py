from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from sursangam_worker.app.settings import Settings
from sursangam_worker.services.exceptions import (
    AuthError,
    DownloadFailed,
    MalformedResponse,
    ProviderRejected,
)
from sursangam_worker.services.suno import (
    SunoClient,
    normalize_clip_status,
    normalize_submission,
)
from sursangam_worker.services.types import ClipState

BASE_URL = "https://suno.test"


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    api_key: str | None = "secret",
) -> tuple[SunoClient, List[httpx.Request]]:
    seen: List[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    settings = Settings(provider_base_url=BASE_URL)
    client = SunoClient(settings, api_key=api_key, transport=httpx.MockTransport(_record))
    return client, seen


@pytest.mark.asyncio
async def test_submit_posts_lyrics_and_returns_clip_ids() -> None:
    client, seen = make_client(
        lambda request: httpx.Response(
            200, json={"code": 200, "msg": "success", "data": {"id": "clip-1"}}
        )
    )

    result = await client.submit("Tu jab aayi", "Bollywood, pop", "Test")

    assert result.clip_ids == ("clip-1",)
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/api/v1/generate"
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["prompt"] == "Tu jab aayi"
    assert body["tags"] == "Bollywood, pop"
    assert body["title"] == "Test"
    assert body["customMode"] is True
    assert body["instrumental"] is False
    assert body["model"] == "v3"


@pytest.mark.asyncio
async def test_submit_accepts_array_payload() -> None:
    client, _ = make_client(
        lambda request: httpx.Response(
            200,
            json={"code": 200, "data": [{"id": "a"}, {"id": "b"}, {"id": "a"}]},
        )
    )

    result = await client.submit("lyrics", "pop", "Title")

    assert result.clip_ids == ("a", "b")


@pytest.mark.asyncio
async def test_submit_uses_envelope_code_over_transport_status() -> None:
    client, _ = make_client(
        lambda request: httpx.Response(
            200, json={"code": 429, "msg": "Daily quota exceeded", "data": None}
        )
    )

    with pytest.raises(ProviderRejected) as excinfo:
        await client.submit("lyrics", "pop", "Title")

    assert excinfo.value.code == 429
    assert excinfo.value.provider_message == "Daily quota exceeded"


@pytest.mark.asyncio
async def test_submit_rejects_non_json_body() -> None:
    client, _ = make_client(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(ProviderRejected) as excinfo:
        await client.submit("lyrics", "pop", "Title")

    assert excinfo.value.code == 502


@pytest.mark.asyncio
async def test_submit_success_without_ids_is_malformed() -> None:
    client, _ = make_client(
        lambda request: httpx.Response(200, json={"code": 200, "data": [{"status": "queued"}]})
    )

    with pytest.raises(MalformedResponse):
        await client.submit("lyrics", "pop", "Title")


@pytest.mark.asyncio
async def test_submit_without_data_returns_empty_result() -> None:
    client, _ = make_client(lambda request: httpx.Response(200, json={"code": 200}))

    result = await client.submit("lyrics", "pop", "Title")

    assert result.clip_ids == ()
    assert not result


@pytest.mark.asyncio
async def test_missing_credential_raises_before_any_request(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUNO_API_KEY", raising=False)
    client, seen = make_client(lambda request: httpx.Response(200, json={}), api_key=None)

    assert client.has_credential() is False
    with pytest.raises(AuthError) as excinfo:
        await client.submit("lyrics", "pop", "Title")

    assert excinfo.value.env_var == "SUNO_API_KEY"
    assert seen == []


def test_credential_is_read_from_environment_at_call_time(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUNO_API_KEY", raising=False)
    client, _ = make_client(lambda request: httpx.Response(200, json={}), api_key=None)
    assert client.has_credential() is False

    monkeypatch.setenv("SUNO_API_KEY", "from-env")

    assert client.api_key() == "from-env"


@pytest.mark.asyncio
async def test_fetch_status_reports_complete_clip() -> None:
    client, seen = make_client(
        lambda request: httpx.Response(
            200,
            json={
                "code": 200,
                "data": {
                    "id": "clip-1",
                    "status": "complete",
                    "audio_url": "https://cdn/clip-1.mp3",
                    "metadata": {"prompt": "desc"},
                },
            },
        )
    )

    status = await client.fetch_status("clip-1")

    assert str(seen[0].url) == f"{BASE_URL}/api/v1/feed/clip-1"
    assert status.state == ClipState.COMPLETE
    assert status.audio_url == "https://cdn/clip-1.mp3"
    assert status.metadata == {"prompt": "desc"}


@pytest.mark.asyncio
async def test_fetch_status_reports_clip_error() -> None:
    client, _ = make_client(
        lambda request: httpx.Response(
            200,
            json={"code": 200, "data": {"id": "c", "status": "error", "error_message": "blocked"}},
        )
    )

    status = await client.fetch_status("c")

    assert status.state == ClipState.ERROR
    assert status.error_detail == "blocked"
    assert status.audio_url is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"code": 500}),
        httpx.Response(200, json={"code": 503, "msg": "busy"}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_fetch_status_failures_are_transient(response: httpx.Response) -> None:
    client, _ = make_client(lambda request: response)

    status = await client.fetch_status("c")

    assert status.state == ClipState.UNKNOWN
    assert status.error_detail


@pytest.mark.asyncio
async def test_fetch_status_transport_error_is_transient() -> None:
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(_boom)

    status = await client.fetch_status("c")

    assert status.state == ClipState.UNKNOWN


@pytest.mark.asyncio
async def test_download_returns_bytes_and_raises_on_failure() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ok.mp3":
            return httpx.Response(200, content=b"ID3audio")
        return httpx.Response(404)

    client, _ = make_client(_handler)

    assert await client.download("https://cdn.test/ok.mp3") == b"ID3audio"
    with pytest.raises(DownloadFailed) as excinfo:
        await client.download("https://cdn.test/missing.mp3")
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_warmup_reports_credential_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUNO_API_KEY", raising=False)
    client, seen = make_client(lambda request: httpx.Response(200), api_key=None)

    status = await client.warmup()

    assert status.name == "suno"
    assert status.ready is False
    assert status.error == "SUNO_API_KEY missing"
    assert seen == []


def test_normalize_submission_accepts_task_identifiers() -> None:
    assert normalize_submission({"data": {"taskId": "task-9"}}).clip_ids == ("task-9",)
    assert normalize_submission({"data": "raw-id"}).clip_ids == ("raw-id",)
    assert normalize_submission({"data": {"clips": [{"id": "x"}, {"clip_id": "y"}]}}).clip_ids == (
        "x",
        "y",
    )
    assert normalize_submission({"data": []}).clip_ids == ()


def test_normalize_clip_status_picks_matching_clip_from_array() -> None:
    data = [
        {"id": "other", "status": "complete", "audio_url": "https://cdn/other.mp3"},
        {"id": "mine", "status": "streaming"},
    ]

    status = normalize_clip_status("mine", data)

    assert status.clip_id == "mine"
    assert status.state == ClipState.PENDING


def test_normalize_clip_status_complete_without_audio_stays_pending() -> None:
    status = normalize_clip_status("c", {"id": "c", "status": "complete"})

    assert status.state == ClipState.PENDING
    assert status.audio_url is None


def test_normalize_clip_status_accepts_camel_case_keys() -> None:
    status = normalize_clip_status(
        "c", {"id": "c", "status": "SUCCEEDED", "audioUrl": "https://cdn/c.mp3"}
    )

    assert status.state == ClipState.COMPLETE
    assert status.audio_url == "https://cdn/c.mp3"


def test_normalize_clip_status_ignores_sibling_clip() -> None:
    status = normalize_clip_status(
        "b", [{"id": "a", "status": "complete", "audio_url": "https://cdn/a.mp3"}]
    )

    assert status.clip_id == "b"
    assert status.state == ClipState.UNKNOWN
    assert status.audio_url is None


def test_normalize_clip_status_uses_item_without_id() -> None:
    status = normalize_clip_status("b", {"status": "complete", "audio_url": "https://cdn/b.mp3"})

    assert status.state == ClipState.COMPLETE
    assert status.audio_url == "https://cdn/b.mp3"


@pytest.mark.asyncio
async def test_fetch_status_without_credential_is_transient(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUNO_API_KEY", raising=False)
    client, seen = make_client(lambda request: httpx.Response(200, json={}), api_key=None)

    status = await client.fetch_status("c")

    assert status.state == ClipState.UNKNOWN
    assert status.error_detail == "credential missing"
    assert seen == []
