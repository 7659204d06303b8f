"""
CLI entry point to run a one-off composition through the provider workflow.

Example:
    python -m sursangam_worker.compose --lyrics-file song.txt --style "Bollywood, pop" --title "Pehli Nazar"
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from .app.library import SongLibrary
from .app.models import ComposeRequest
from .app.settings import Settings
from .services.exceptions import GenerationFailure, describe_failure
from .services.orchestrator import CompositionOrchestrator
from .services.types import PollSession


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compose music for lyrics via the music provider.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--lyrics", help="Lyrics text, section headers and notes allowed.")
    source.add_argument("--lyrics-file", type=Path, help="Read lyrics from this file.")
    parser.add_argument("--style", default="", help="Comma-separated style tags.")
    parser.add_argument("--title", required=True, help="Song title.")
    parser.add_argument(
        "--prompt",
        default=None,
        help="Original idea the lyrics were written from (defaults to the title).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the composed song record as JSON to this path.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Override the number of poll attempts.",
    )
    return parser.parse_args(argv)


async def _run(
    lyrics: str,
    *,
    style: str,
    title: str,
    prompt: Optional[str] = None,
    output: Optional[Path] = None,
    max_attempts: Optional[int] = None,
    orchestrator: Optional[CompositionOrchestrator] = None,
) -> int:
    settings_kwargs: dict[str, object] = {}
    if max_attempts is not None:
        settings_kwargs["poll_max_attempts"] = max_attempts
    settings = Settings(**settings_kwargs)
    composer = orchestrator or CompositionOrchestrator.from_settings(settings)

    request = ComposeRequest(prompt=prompt or title, lyrics=lyrics, style=style, title=title)

    async def progress_cb(session: PollSession) -> None:
        print(f"waiting       : attempt {session.attempts_made}/{session.max_attempts}")

    try:
        asset = await composer.compose(request.to_generation_request(), progress_cb=progress_cb)
    except GenerationFailure as exc:
        print(f"error         : {describe_failure(exc)}", file=sys.stderr)
        print(f"detail        : {exc}", file=sys.stderr)
        return 1

    library = SongLibrary()
    song = await library.add_composition(
        title=title,
        prompt=request.prompt,
        lyrics=lyrics,
        style=style,
        asset=asset,
    )

    print(f"song_id       : {song.id}")
    print(f"title         : {song.title}")
    print(f"description   : {song.music_description}")
    print(f"data_uri_size : {len(asset.data_uri)}")
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(song.model_dump_json(indent=2), encoding="utf-8")
        print(f"output        : {output}")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    lyrics = args.lyrics if args.lyrics is not None else args.lyrics_file.read_text(encoding="utf-8")
    code = asyncio.run(
        _run(
            lyrics,
            style=args.style,
            title=args.title,
            prompt=args.prompt,
            output=args.output,
            max_attempts=args.max_attempts,
        )
    )
    raise SystemExit(code)


if __name__ == "__main__":
    main()
