from __future__ import annotations

from typing import cast

from fastapi import APIRouter, HTTPException, Request, Response

from ..services.orchestrator import CompositionOrchestrator
from .jobs import JobManager
from .library import SongLibrary, UnknownSongError
from .models import ComposeRequest, CompositionStatus, Song, SongSummary
from .settings import Settings

router = APIRouter()


def get_job_manager(request: Request) -> JobManager:
    return cast(JobManager, request.app.state.job_manager)


def get_library(request: Request) -> SongLibrary:
    return cast(SongLibrary, request.app.state.library)


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    settings = cast(Settings, request.app.state.settings)
    composer = cast(CompositionOrchestrator, request.app.state.composer)
    backend_status = composer.backend_status()
    if backend_status is None:
        backend_status = await composer.warmup()
    library = get_library(request)
    return {
        "status": "ok",
        "provider": backend_status.as_dict(),
        "provider_ready": backend_status.ready,
        "poll_interval_ms": settings.poll_interval_ms,
        "poll_max_attempts": settings.poll_max_attempts,
        "poll_error_policy": settings.poll_error_policy.value,
        "song_count": await library.count(),
    }


@router.post("/compose", response_model=CompositionStatus)
async def compose(payload: ComposeRequest, request: Request) -> CompositionStatus:
    manager = get_job_manager(request)
    return await manager.enqueue(payload)


@router.get("/status/{job_id}", response_model=CompositionStatus)
async def status(job_id: str, request: Request) -> CompositionStatus:
    manager = get_job_manager(request)
    status = await manager.get_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="job not found")
    return status


@router.post("/status/{job_id}/cancel", response_model=CompositionStatus)
async def cancel(job_id: str, request: Request) -> CompositionStatus:
    manager = get_job_manager(request)
    status = await manager.cancel(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="job not found")
    return status


@router.get("/songs", response_model=list[SongSummary])
async def list_songs(request: Request) -> list[SongSummary]:
    return await get_library(request).summaries()


@router.get("/songs/{song_id}", response_model=Song)
async def fetch_song(song_id: str, request: Request) -> Song:
    song = await get_library(request).get(song_id)
    if song is None:
        raise HTTPException(status_code=404, detail="song not found")
    return song


@router.delete("/songs/{song_id}", status_code=204)
async def delete_song(song_id: str, request: Request) -> Response:
    try:
        await get_library(request).delete(song_id)
    except UnknownSongError as exc:
        raise HTTPException(
            status_code=404, detail=f"song {exc.song_id} not found"
        ) from exc
    return Response(status_code=204)
