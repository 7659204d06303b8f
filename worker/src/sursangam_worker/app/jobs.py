from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Dict, Optional
from uuid import uuid4

from loguru import logger

from ..services.exceptions import (
    FAILURE_MESSAGES,
    FailureCategory,
    GenerationFailure,
    PollCancelled,
    classify_failure,
    describe_failure,
)
from ..services.orchestrator import CompositionOrchestrator
from ..services.types import PollSession
from .library import SongLibrary
from .models import ComposeRequest, CompositionStatus, JobState

SUBMIT_PROGRESS = 0.05
POLL_PROGRESS_START = 0.1
POLL_PROGRESS_END = 0.9

TERMINAL_STATES = {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED}


class JobManager:
    """Runs compositions as background tasks and exposes their status."""

    def __init__(self, orchestrator: CompositionOrchestrator, library: SongLibrary):
        self._orchestrator = orchestrator
        self._library = library
        self._statuses: Dict[str, CompositionStatus] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._lock = asyncio.Lock()
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    async def enqueue(self, request: ComposeRequest) -> CompositionStatus:
        job_id = str(uuid4())
        status = CompositionStatus(job_id=job_id, state=JobState.QUEUED, message="queued")
        cancel_event = asyncio.Event()

        async with self._lock:
            self._statuses[job_id] = status
            self._cancel_events[job_id] = cancel_event
        task = asyncio.create_task(self._execute_job(job_id, request, cancel_event))
        async with self._lock:
            self._tasks[job_id] = task

        return status.model_copy(deep=True)

    async def get_status(self, job_id: str) -> Optional[CompositionStatus]:
        async with self._lock:
            status = self._statuses.get(job_id)
            if status is None:
                return None
            return status.model_copy(deep=True)

    async def cancel(self, job_id: str) -> Optional[CompositionStatus]:
        """Ask a running job to stop before its next poll tick."""

        async with self._lock:
            status = self._statuses.get(job_id)
            if status is None:
                return None
            event = self._cancel_events.get(job_id)
            if event is not None and status.state not in TERMINAL_STATES:
                event.set()
            return status.model_copy(deep=True)

    async def _execute_job(
        self,
        job_id: str,
        request: ComposeRequest,
        cancel_event: asyncio.Event,
    ) -> None:
        await self._set_status(
            job_id,
            state=JobState.RUNNING,
            progress=SUBMIT_PROGRESS,
            message="submitting lyrics",
        )
        try:
            async def progress_cb(session: PollSession) -> None:
                ratio = session.attempts_made / max(session.max_attempts, 1)
                progress = POLL_PROGRESS_START + (POLL_PROGRESS_END - POLL_PROGRESS_START) * ratio
                await self._set_status(
                    job_id,
                    state=JobState.RUNNING,
                    progress=progress,
                    message=(
                        f"waiting for audio ({session.attempts_made}/{session.max_attempts})"
                    ),
                )

            asset = await self._orchestrator.compose(
                request.to_generation_request(),
                progress_cb=progress_cb,
                cancel_event=cancel_event,
            )
            song = await self._library.add_composition(
                title=request.title or request.prompt,
                prompt=request.prompt,
                lyrics=request.lyrics,
                style=request.style,
                asset=asset,
            )
        except PollCancelled as exc:
            await self._set_status(
                job_id,
                state=JobState.CANCELLED,
                progress=1.0,
                message="composition cancelled",
            )
            logger.info("job {job_id} cancelled: {exc}", job_id=job_id, exc=exc)
            return
        except GenerationFailure as exc:
            await self._set_status(
                job_id,
                state=JobState.FAILED,
                progress=1.0,
                message=describe_failure(exc),
                failure_category=classify_failure(exc),
            )
            logger.error("job {job_id} failed: {exc}", job_id=job_id, exc=exc)
            return
        except Exception:  # noqa: BLE001
            await self._set_status(
                job_id,
                state=JobState.FAILED,
                progress=1.0,
                message=FAILURE_MESSAGES[FailureCategory.GENERIC],
                failure_category=FailureCategory.GENERIC,
            )
            logger.exception("unexpected error during job {}", job_id)
            return
        finally:
            async with self._lock:
                self._tasks.pop(job_id, None)
                self._cancel_events.pop(job_id, None)

        await self._set_status(
            job_id,
            state=JobState.SUCCEEDED,
            progress=1.0,
            message="music composed and saved",
            song_id=song.id,
        )

    async def _set_status(
        self,
        job_id: str,
        *,
        state: JobState,
        progress: Optional[float] = None,
        message: Optional[str] = None,
        failure_category: Optional[FailureCategory] = None,
        song_id: Optional[str] = None,
    ) -> None:
        async with self._lock:
            status = self._statuses[job_id]
            status.state = state
            if progress is not None:
                status.progress = max(0.0, min(progress, 1.0))
            status.message = message
            status.failure_category = failure_category
            if song_id is not None:
                status.song_id = song_id
            status.updated_at = datetime.now(tz=UTC)
