from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.exceptions import FailureCategory


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationRequest(BaseModel):
    """Lyrics, style tags and title handed to the provider for one composition."""

    model_config = ConfigDict(frozen=True)

    lyrics: str = Field(..., max_length=20_000)
    style_tags: str = Field(default="", max_length=512)
    title: str = Field(..., max_length=200)


class ComposeRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=512)
    lyrics: str = Field(..., min_length=1, max_length=20_000)
    style: str = Field(default="", max_length=512)
    title: Optional[str] = Field(default=None, max_length=200)

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            lyrics=self.lyrics,
            style_tags=self.style,
            title=self.title or self.prompt,
        )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class CompositionStatus(BaseModel):
    job_id: str
    state: JobState
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    message: Optional[str] = None
    failure_category: Optional[FailureCategory] = None
    song_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utc_now)


class Song(BaseModel):
    id: str
    title: str
    prompt: str
    lyrics: str
    style: str
    music_data_uri: Optional[str] = None
    music_description: str
    created_at: datetime = Field(default_factory=_utc_now)


class SongSummary(BaseModel):
    id: str
    title: str
    style: str
    music_description: str
    created_at: datetime
    has_audio: bool
