"""HTTP client for the Suno-compatible music generation API."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

import httpx
from loguru import logger

from ..app.settings import Settings
from .exceptions import AuthError, DownloadFailed, MalformedResponse, ProviderRejected
from .types import BackendStatus, ClipState, ClipStatus, SubmissionResult

SUCCESS_CODE = 200
GENERATE_PATH = "/api/v1/generate"
FEED_PATH = "/api/v1/feed/{clip_id}"

_COMPLETE_STATES = {"complete", "completed", "succeeded", "success"}
_ERROR_STATES = {"error", "failed", "failure"}
_ID_KEYS = ("id", "clip_id", "taskId", "task_id")


def _item_id(item: object) -> Optional[str]:
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, Mapping):
        for key in _ID_KEYS:
            value = item.get(key)
            if isinstance(value, (str, int)) and str(value).strip():
                return str(value).strip()
    return None


def _as_items(data: object) -> List[object]:
    if not data:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        nested = data.get("clips")
        if isinstance(nested, list):
            return nested
        nested = data.get("data")
        if isinstance(nested, list):
            return nested
    return [data]


def normalize_submission(payload: Mapping[str, Any]) -> SubmissionResult:
    """Map any submission envelope shape to an ordered list of clip ids.

    ``data`` may be a job object, a list of job objects, an object wrapping
    a ``clips`` list or a bare task identifier.
    """

    data = payload.get("data")
    items = _as_items(data)
    if not items:
        return SubmissionResult()

    clip_ids: List[str] = []
    for item in items:
        clip_id = _item_id(item)
        if clip_id is not None and clip_id not in clip_ids:
            clip_ids.append(clip_id)
    if not clip_ids:
        raise MalformedResponse(data)
    return SubmissionResult(clip_ids=tuple(clip_ids))


def normalize_clip_status(clip_id: str, data: object) -> ClipStatus:
    items = [item for item in _as_items(data) if isinstance(item, Mapping)]
    if not items:
        return ClipStatus.unknown(clip_id, "status payload carried no clip")
    clip = next((item for item in items if _item_id(item) == clip_id), None)
    if clip is None:
        # Only an id-less item may stand in for the polled clip.
        if _item_id(items[0]) is not None:
            return ClipStatus.unknown(clip_id, "clip not in payload")
        clip = items[0]

    raw_state = str(clip.get("status") or "").strip().lower()
    metadata = clip.get("metadata")
    metadata = dict(metadata) if isinstance(metadata, Mapping) else {}
    audio_url = clip.get("audio_url") or clip.get("audioUrl")
    error_detail = clip.get("error_message") or clip.get("errorMessage")

    if raw_state in _COMPLETE_STATES:
        if not audio_url:
            # Finished without a playable URL yet; keep waiting.
            return ClipStatus(clip_id=clip_id, state=ClipState.PENDING, metadata=metadata)
        return ClipStatus(
            clip_id=clip_id,
            state=ClipState.COMPLETE,
            audio_url=str(audio_url),
            metadata=metadata,
        )
    if raw_state in _ERROR_STATES:
        return ClipStatus(
            clip_id=clip_id,
            state=ClipState.ERROR,
            error_detail=str(error_detail) if error_detail else None,
            metadata=metadata,
        )
    return ClipStatus(clip_id=clip_id, state=ClipState.PENDING, metadata=metadata)


def _envelope_code(payload: Mapping[str, Any], transport_status: int) -> int:
    code = payload.get("code")
    try:
        return int(code) if code is not None else transport_status
    except (TypeError, ValueError):
        return transport_status


def _decode(response: httpx.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


class SunoClient:
    """Stateless wrapper over the provider's submit, feed and download calls."""

    name = "suno"

    def __init__(
        self,
        settings: Settings,
        *,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.provider_base_url
        self._api_key = api_key
        self._transport = transport

    def api_key(self) -> Optional[str]:
        if self._api_key:
            return self._api_key
        value = os.environ.get(self._settings.provider_api_key_env, "").strip()
        return value or None

    def has_credential(self) -> bool:
        return self.api_key() is not None

    def _require_api_key(self) -> str:
        key = self.api_key()
        if key is None:
            raise AuthError(self._settings.provider_api_key_env)
        return key

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def warmup(self) -> BackendStatus:
        ready = self.has_credential()
        return BackendStatus(
            name=self.name,
            ready=ready,
            error=None if ready else f"{self._settings.provider_api_key_env} missing",
            details={"base_url": self._base_url, "model": self._settings.provider_model},
        )

    async def submit(self, prompt: str, style_tags: str, title: str) -> SubmissionResult:
        api_key = self._require_api_key()
        body: Dict[str, Any] = {
            "prompt": prompt,
            "customMode": True,
            "instrumental": self._settings.provider_instrumental,
            "model": self._settings.provider_model,
            "title": title,
            "tags": style_tags,
            "callBackUrl": self._settings.provider_callback_url,
        }
        url = f"{self._base_url}{GENERATE_PATH}"
        logger.info("Submitting composition '{}' to {}", title, url)
        try:
            async with self._client(self._settings.request_timeout_seconds) as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.HTTPError as exc:
            raise ProviderRejected(None, f"transport error: {exc}") from exc

        payload = _decode(response)
        if payload is None:
            raise ProviderRejected(response.status_code, response.reason_phrase or "invalid body")
        if not isinstance(payload, Mapping):
            raise MalformedResponse(payload)
        code = _envelope_code(payload, response.status_code)
        if code != SUCCESS_CODE:
            message = str(payload.get("msg") or response.reason_phrase or "unknown error")
            raise ProviderRejected(code, message)

        result = normalize_submission(payload)
        logger.info("Provider accepted composition '{}' with clips {}", title, list(result.clip_ids))
        return result

    async def fetch_status(self, clip_id: str) -> ClipStatus:
        api_key = self.api_key()
        if api_key is None:
            logger.warning(
                "Status poll for clip {} skipped: {} is not set",
                clip_id,
                self._settings.provider_api_key_env,
            )
            return ClipStatus.unknown(clip_id, "credential missing")
        url = f"{self._base_url}{FEED_PATH.format(clip_id=clip_id)}"
        try:
            async with self._client(self._settings.request_timeout_seconds) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {api_key}"})
        except httpx.HTTPError as exc:
            logger.warning("Status poll for clip {} failed: {}", clip_id, exc)
            return ClipStatus.unknown(clip_id, f"transport error: {exc}")

        if not response.is_success:
            logger.warning("Status poll for clip {} failed: HTTP {}", clip_id, response.status_code)
            return ClipStatus.unknown(clip_id, f"http {response.status_code}")

        payload = _decode(response)
        if not isinstance(payload, Mapping):
            logger.warning("Status poll for clip {} returned an unreadable body", clip_id)
            return ClipStatus.unknown(clip_id, "invalid body")

        code = _envelope_code(payload, response.status_code)
        if code != SUCCESS_CODE:
            logger.warning("Status poll error for clip {}: {}", clip_id, payload.get("msg"))
            return ClipStatus.unknown(clip_id, f"envelope code {code}")

        return normalize_clip_status(clip_id, payload.get("data"))

    async def download(self, audio_url: str) -> bytes:
        try:
            async with self._client(self._settings.download_timeout_seconds) as client:
                response = await client.get(audio_url)
        except httpx.HTTPError as exc:
            raise DownloadFailed(audio_url, str(exc)) from exc
        if not response.is_success:
            raise DownloadFailed(
                audio_url,
                response.reason_phrase or f"http {response.status_code}",
                status_code=response.status_code,
            )
        return response.content
