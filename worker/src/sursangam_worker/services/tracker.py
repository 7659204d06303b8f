"""Polling state machine that follows submitted clips until one finishes."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from loguru import logger

from ..app.settings import ErrorPolicy, Settings
from .exceptions import ClipErrored, NoClipsReturned, PollCancelled, PollTimedOut
from .types import ClipState, ClipStatus, PollSession, SessionState, SubmissionResult

DEFAULT_INTERVAL_MS = 5_000
DEFAULT_MAX_ATTEMPTS = 30

ProgressCallback = Callable[[PollSession], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class StatusSource(Protocol):
    async def fetch_status(self, clip_id: str) -> ClipStatus: ...


class JobTracker:
    """Drives one generation session from submission to a terminal state.

    Every tick is an independent check of the current provider state: the
    session remembers only its attempt count and, under
    ``ErrorPolicy.WAIT_FOR_ALL``, which clips already failed.
    """

    def __init__(
        self,
        provider: StatusSource,
        *,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        error_policy: ErrorPolicy = ErrorPolicy.WAIT_FOR_ALL,
        parallel_status_checks: bool = False,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval_ms < 0:
            raise ValueError("interval_ms must not be negative")
        self._provider = provider
        self._interval_ms = interval_ms
        self._max_attempts = max_attempts
        self._error_policy = error_policy
        self._parallel = parallel_status_checks
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        provider: StatusSource,
        settings: Settings,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> "JobTracker":
        return cls(
            provider,
            interval_ms=settings.poll_interval_ms,
            max_attempts=settings.poll_max_attempts,
            error_policy=settings.poll_error_policy,
            parallel_status_checks=settings.poll_parallel_status_checks,
            sleep=sleep,
        )

    @property
    def error_policy(self) -> ErrorPolicy:
        return self._error_policy

    async def track(
        self,
        submission: SubmissionResult,
        *,
        progress_cb: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollSession:
        session = PollSession(
            clip_ids=tuple(submission.clip_ids),
            max_attempts=self._max_attempts,
            interval_ms=self._interval_ms,
        )
        if not session.clip_ids:
            session.state = SessionState.ERRORED
            raise NoClipsReturned()

        session.state = SessionState.POLLING
        while not session.exhausted:
            self._check_cancelled(session, cancel_event)
            await self._sleep(session.interval_ms / 1000.0)
            self._check_cancelled(session, cancel_event)

            session.attempts_made += 1
            if self._parallel:
                await self._parallel_tick(session)
            else:
                await self._sequential_tick(session)

            if session.state == SessionState.RESOLVED:
                logger.info(
                    "Clip {} finished after {} poll attempt(s)",
                    session.resolved_clip_id,
                    session.attempts_made,
                )
                return session
            if progress_cb is not None:
                await progress_cb(session)

        session.state = SessionState.TIMED_OUT
        logger.warning(
            "Polling gave up after {} attempts for clips {}",
            session.attempts_made,
            list(session.active_clip_ids),
        )
        raise PollTimedOut(session.attempts_made, session.active_clip_ids)

    async def _sequential_tick(self, session: PollSession) -> None:
        for clip_id in session.active_clip_ids:
            status = await self._provider.fetch_status(clip_id)
            if status.state == ClipState.COMPLETE:
                session.resolve(status)
                return
            if status.state == ClipState.ERROR:
                self._record_error(session, status)

    async def _parallel_tick(self, session: PollSession) -> None:
        clip_ids = session.active_clip_ids
        statuses: Sequence[ClipStatus] = await asyncio.gather(
            *(self._provider.fetch_status(clip_id) for clip_id in clip_ids)
        )
        for status in statuses:
            if status.state == ClipState.COMPLETE:
                session.resolve(status)
                return
        for status in statuses:
            if status.state == ClipState.ERROR:
                self._record_error(session, status)

    def _record_error(self, session: PollSession, status: ClipStatus) -> None:
        logger.warning("Clip {} reported an error: {}", status.clip_id, status.error_detail)
        session.errored_clips[status.clip_id] = status.error_detail
        if self._error_policy == ErrorPolicy.ABORT_ON_FIRST_ERROR or not session.active_clip_ids:
            session.state = SessionState.ERRORED
            first_failed = next(
                clip_id for clip_id in session.clip_ids if clip_id in session.errored_clips
            )
            raise ClipErrored(first_failed, session.errored_clips[first_failed])

    @staticmethod
    def _check_cancelled(session: PollSession, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            session.state = SessionState.CANCELLED
            raise PollCancelled(session.attempts_made)
