"""High-level composition orchestrator coordinating the provider workflow."""

from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from ..app.models import GenerationRequest
from ..app.settings import Settings
from .exceptions import AuthError, EmptyInputError, GenerationFailure, PollCancelled
from .lyrics import sanitize_lyrics
from .materializer import AssetMaterializer
from .suno import SunoClient
from .tracker import JobTracker, ProgressCallback
from .types import BackendStatus, ComposedAsset


class CompositionOrchestrator:
    """Submits lyrics, waits for a finished clip and returns it as a data URI.

    All or nothing: every failure surfaces as a ``GenerationFailure`` subclass
    and no partial result is returned.
    """

    def __init__(
        self,
        settings: Settings,
        provider: SunoClient,
        tracker: JobTracker,
        materializer: AssetMaterializer,
    ) -> None:
        self._settings = settings
        self._provider = provider
        self._tracker = tracker
        self._materializer = materializer
        self._backend_status: Optional[BackendStatus] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: Optional[SunoClient] = None,
    ) -> "CompositionOrchestrator":
        provider = provider or SunoClient(settings)
        return cls(
            settings,
            provider,
            JobTracker.from_settings(provider, settings),
            AssetMaterializer(
                provider,
                mime_type=settings.audio_mime_type,
                fallback_description=settings.fallback_description,
            ),
        )

    async def warmup(self) -> BackendStatus:
        status = await self._provider.warmup()
        self._backend_status = status
        return status

    def backend_status(self) -> Optional[BackendStatus]:
        return self._backend_status

    async def compose(
        self,
        request: GenerationRequest,
        *,
        progress_cb: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ComposedAsset:
        if not self._provider.has_credential():
            raise AuthError(self._settings.provider_api_key_env)

        lyrics = sanitize_lyrics(request.lyrics)
        if not lyrics:
            raise EmptyInputError()
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Composition '{}' cancelled before submission", request.title)
            raise PollCancelled(0)

        submission = await self._provider.submit(lyrics, request.style_tags, request.title)
        session = await self._tracker.track(
            submission,
            progress_cb=progress_cb,
            cancel_event=cancel_event,
        )
        if session.resolved_audio_url is None:
            raise GenerationFailure(f"clip {session.resolved_clip_id} resolved without audio")

        asset = await self._materializer.materialize(
            session.resolved_audio_url,
            self._settings.fallback_description,
            session.resolved_metadata,
        )
        logger.info(
            "Composed '{}' from clip {} ({} chars of data URI)",
            request.title,
            session.resolved_clip_id,
            len(asset.data_uri),
        )
        return asset
