"""Shared service data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class SubmissionResult:
    clip_ids: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.clip_ids)


class ClipState(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"
    # The status check itself failed; retry on the next tick.
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClipStatus:
    clip_id: str
    state: ClipState
    audio_url: Optional[str] = None
    error_detail: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def unknown(cls, clip_id: str, detail: str) -> "ClipStatus":
        return cls(clip_id=clip_id, state=ClipState.UNKNOWN, error_detail=detail)

    @property
    def is_terminal(self) -> bool:
        return self.state in {ClipState.COMPLETE, ClipState.ERROR}


class SessionState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    RESOLVED = "resolved"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollSession:
    clip_ids: Tuple[str, ...]
    max_attempts: int
    interval_ms: int
    attempts_made: int = 0
    state: SessionState = SessionState.SUBMITTED
    resolved_clip_id: Optional[str] = None
    resolved_audio_url: Optional[str] = None
    resolved_metadata: Optional[Dict[str, Any]] = None
    errored_clips: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def active_clip_ids(self) -> Tuple[str, ...]:
        return tuple(clip_id for clip_id in self.clip_ids if clip_id not in self.errored_clips)

    @property
    def exhausted(self) -> bool:
        return self.attempts_made >= self.max_attempts

    def resolve(self, status: ClipStatus) -> None:
        self.state = SessionState.RESOLVED
        self.resolved_clip_id = status.clip_id
        self.resolved_audio_url = status.audio_url
        self.resolved_metadata = dict(status.metadata)


@dataclass(frozen=True)
class ComposedAsset:
    data_uri: str
    description: str

    def as_dict(self) -> Dict[str, str]:
        return {"data_uri": self.data_uri, "description": self.description}


@dataclass
class BackendStatus:
    name: str
    ready: bool
    error: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "ready": self.ready,
            "updated_at": self.updated_at.isoformat(),
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.details:
            payload["details"] = self.details
        return payload
