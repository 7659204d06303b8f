"""Shared service-layer exceptions."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class GenerationFailure(Exception):
    """Expected failure during music composition."""


class AuthError(GenerationFailure):
    """The provider credential is not configured."""

    def __init__(self, env_var: str) -> None:
        super().__init__(f"{env_var} is not set in the environment variables")
        self.env_var = env_var


class EmptyInputError(GenerationFailure):
    """Lyrics were empty after removing structural markers."""

    def __init__(self) -> None:
        super().__init__(
            "lyrics were empty after removing structural markers and production notes"
        )


class ProviderRejected(GenerationFailure):
    """The provider envelope signalled failure for a submission."""

    def __init__(self, code: Optional[int], message: str) -> None:
        label = code if code is not None else "n/a"
        super().__init__(f"provider rejected submission (code {label}): {message}")
        self.code = code
        self.provider_message = message


class MalformedResponse(GenerationFailure):
    """A success envelope carried no usable clip identifier."""

    def __init__(self, payload: object) -> None:
        super().__init__(f"provider returned success without clip identifiers: {payload!r}")
        self.payload = payload


class NoClipsReturned(GenerationFailure):
    """The provider accepted the job but returned no clips to track."""

    def __init__(self) -> None:
        super().__init__("provider did not return any processable clips; it may be busy")


class ClipErrored(GenerationFailure):
    """A tracked clip reported a terminal error state."""

    def __init__(self, clip_id: str, detail: Optional[str]) -> None:
        super().__init__(f"generation failed for clip {clip_id}: {detail or 'unknown error'}")
        self.clip_id = clip_id
        self.detail = detail


class PollTimedOut(GenerationFailure):
    """Polling exhausted its attempt budget without a finished clip."""

    def __init__(self, attempts: int, clip_ids: Sequence[str]) -> None:
        super().__init__(
            f"generation timed out after {attempts} poll attempts "
            f"({len(clip_ids)} clip(s) still pending)"
        )
        self.attempts = attempts
        self.clip_ids = tuple(clip_ids)


class PollCancelled(GenerationFailure):
    """The caller cancelled the session between poll ticks."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"generation cancelled after {attempts} poll attempts")
        self.attempts = attempts


class DownloadFailed(GenerationFailure):
    """Fetching the finished audio failed."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"failed to download audio from {url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class FailureCategory(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    MISSING_CONFIGURATION = "missing_configuration"
    GENERIC = "generic"


FAILURE_MESSAGES = {
    FailureCategory.QUOTA_EXCEEDED: (
        "You have exceeded the daily free API limit. Please try again tomorrow."
    ),
    FailureCategory.MISSING_CONFIGURATION: (
        "The music API key is missing. Please ask the developer to configure it."
    ),
    FailureCategory.GENERIC: "An unexpected error occurred. Please try again later.",
}


_QUOTA_MARKER = "quota"


def classify_failure(exc: BaseException) -> FailureCategory:
    if isinstance(exc, AuthError):
        return FailureCategory.MISSING_CONFIGURATION
    if isinstance(exc, ProviderRejected):
        code, text = exc.code, exc.provider_message
    elif isinstance(exc, DownloadFailed):
        code, text = exc.status_code, exc.reason
    elif isinstance(exc, ClipErrored):
        code, text = None, exc.detail or ""
    else:
        code, text = None, str(exc)
    if code == 429 or _QUOTA_MARKER in text.lower():
        return FailureCategory.QUOTA_EXCEEDED
    return FailureCategory.GENERIC


def describe_failure(exc: BaseException) -> str:
    """Short user-facing message; never exposes raw provider text."""

    return FAILURE_MESSAGES[classify_failure(exc)]
