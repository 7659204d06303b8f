from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Dict, Optional
from uuid import uuid4

from ..services.types import ComposedAsset
from .models import Song, SongSummary


class UnknownSongError(Exception):
    """Raised when a song lookup fails."""

    def __init__(self, song_id: str) -> None:
        super().__init__(song_id)
        self.song_id = song_id


class SongLibrary:
    """In-memory store of composed songs, newest first."""

    def __init__(self) -> None:
        self._songs: Dict[str, Song] = {}
        self._lock = asyncio.Lock()

    async def add_composition(
        self,
        *,
        title: str,
        prompt: str,
        lyrics: str,
        style: str,
        asset: ComposedAsset,
    ) -> Song:
        song = Song(
            id=str(uuid4()),
            title=title,
            prompt=prompt,
            lyrics=lyrics,
            style=style,
            music_data_uri=asset.data_uri,
            music_description=asset.description,
            created_at=datetime.now(tz=UTC),
        )
        await self.save(song)
        return song

    async def save(self, song: Song) -> None:
        async with self._lock:
            # Re-saving an id moves it to the front.
            self._songs.pop(song.id, None)
            self._songs[song.id] = song

    async def get(self, song_id: str) -> Optional[Song]:
        async with self._lock:
            song = self._songs.get(song_id)
            return song.model_copy(deep=True) if song is not None else None

    async def delete(self, song_id: str) -> None:
        async with self._lock:
            if self._songs.pop(song_id, None) is None:
                raise UnknownSongError(song_id)

    async def all_songs(self) -> list[Song]:
        async with self._lock:
            return [song.model_copy(deep=True) for song in reversed(self._songs.values())]

    async def summaries(self) -> list[SongSummary]:
        songs = await self.all_songs()
        return [
            SongSummary(
                id=song.id,
                title=song.title,
                style=song.style,
                music_description=song.music_description,
                created_at=song.created_at,
                has_audio=bool(song.music_data_uri),
            )
            for song in songs
        ]

    async def count(self) -> int:
        async with self._lock:
            return len(self._songs)
