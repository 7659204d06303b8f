"""Turns a finished clip into a self-contained data URI."""

from __future__ import annotations

import base64
from typing import Any, Mapping, Optional, Protocol

from loguru import logger

from .types import ComposedAsset

DEFAULT_MIME_TYPE = "audio/mpeg"
DEFAULT_DESCRIPTION = "Music composed with the Suno API."
DESCRIPTION_KEYS = ("prompt", "description", "gpt_description_prompt")


class AudioSource(Protocol):
    async def download(self, audio_url: str) -> bytes: ...


def encode_data_uri(payload: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def pick_description(metadata: Optional[Mapping[str, Any]], fallback: str) -> str:
    for key in DESCRIPTION_KEYS:
        value = (metadata or {}).get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


class AssetMaterializer:
    def __init__(
        self,
        provider: AudioSource,
        *,
        mime_type: str = DEFAULT_MIME_TYPE,
        fallback_description: str = DEFAULT_DESCRIPTION,
    ) -> None:
        self._provider = provider
        self._mime_type = mime_type
        self._fallback_description = fallback_description

    async def materialize(
        self,
        audio_url: str,
        fallback_description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ComposedAsset:
        audio = await self._provider.download(audio_url)
        logger.info("Downloaded {} bytes of audio from {}", len(audio), audio_url)
        description = pick_description(
            metadata, fallback_description or self._fallback_description
        )
        return ComposedAsset(
            data_uri=encode_data_uri(audio, self._mime_type),
            description=description,
        )
