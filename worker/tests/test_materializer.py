from __future__ import annotations

import base64
from typing import List

import pytest

from sursangam_worker.services.exceptions import DownloadFailed
from sursangam_worker.services.materializer import (
    AssetMaterializer,
    encode_data_uri,
    pick_description,
)


class StubAudioSource:
    def __init__(self, payload: bytes = b"\xff\xfbmp3-frames") -> None:
        self.payload = payload
        self.urls: List[str] = []

    async def download(self, audio_url: str) -> bytes:
        self.urls.append(audio_url)
        return self.payload


class BrokenAudioSource:
    async def download(self, audio_url: str) -> bytes:
        raise DownloadFailed(audio_url, "Not Found", status_code=404)


@pytest.mark.asyncio
async def test_materialize_builds_data_uri_and_uses_metadata_description() -> None:
    source = StubAudioSource()
    materializer = AssetMaterializer(source)

    asset = await materializer.materialize(
        "https://cdn/y.mp3", "fallback", {"prompt": "  romantic ballad  "}
    )

    assert source.urls == ["https://cdn/y.mp3"]
    assert asset.data_uri == "data:audio/mpeg;base64," + base64.b64encode(source.payload).decode()
    assert asset.description == "romantic ballad"


@pytest.mark.asyncio
async def test_materialize_falls_back_when_metadata_is_missing_or_blank() -> None:
    materializer = AssetMaterializer(StubAudioSource(), fallback_description="configured default")

    explicit = await materializer.materialize("https://cdn/y.mp3", "per call", {"prompt": " "})
    default = await materializer.materialize("https://cdn/y.mp3")

    assert explicit.description == "per call"
    assert default.description == "configured default"


@pytest.mark.asyncio
async def test_materialize_propagates_download_failure() -> None:
    materializer = AssetMaterializer(BrokenAudioSource())

    with pytest.raises(DownloadFailed):
        await materializer.materialize("https://cdn/gone.mp3")


def test_custom_mime_type_is_embedded() -> None:
    assert encode_data_uri(b"RIFF", "audio/wav") == "data:audio/wav;base64,UklGRg=="


def test_description_key_precedence() -> None:
    metadata = {"gpt_description_prompt": "third", "description": "second"}
    assert pick_description(metadata, "fallback") == "second"
    assert pick_description(None, "fallback") == "fallback"
