"""Line-oriented ``.ctrack`` song files.

::

    CTracker Song
    BPM: 120
    Rows: 16
    Channels: 8
    Loop: 0 0 15
    <note> <original_note> <NAME> <sample or ->     # one line per cell, channel-major
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import ValidationError

from .errors import InvalidLoopRangeError, InvalidSongError
from .notes import note_name
from .song import Cell, LoopWindow, Song, Track
from .wav import write_atomic

_LOGGER = logging.getLogger("steptracker.songfile")

MAGIC = "CTracker Song"
NO_SAMPLE = "-"
_FIELD_RE = re.compile(r"^(?P<key>BPM|Rows|Channels|Loop):\s*(?P<value>.*)$")
_CELL_RE = re.compile(r"^(?P<note>-?\d+)\s+(?P<original>-?\d+)\s+(?P<name>\S+)(?:\s+(?P<sample>.*))?$")


def dumps(song: Song) -> str:
    lines = [
        MAGIC,
        f"BPM: {song.bpm}",
        f"Rows: {song.row_count}",
        f"Channels: {song.channel_count}",
        f"Loop: {int(song.loop.enabled)} {song.loop.start_row} {song.loop.end_row}",
    ]
    for track in song.tracks:
        for cell in track.cells:
            sample = cell.sample or NO_SAMPLE
            lines.append(f"{cell.note} {cell.original_note} {note_name(cell.note)} {sample}")
    return "\n".join(lines) + "\n"


def loads(text: str) -> Song:
    lines = text.splitlines()
    if not lines or lines[0].strip() != MAGIC:
        raise InvalidSongError(f"missing {MAGIC!r} header")

    fields: dict[str, str] = {}
    for number, line in enumerate(lines[1:5], start=2):
        match = _FIELD_RE.match(line.strip())
        if match is None:
            raise InvalidSongError(f"line {number}: expected a BPM/Rows/Channels/Loop field, got {line!r}")
        fields[match.group("key")] = match.group("value")
    missing = {"BPM", "Rows", "Channels", "Loop"} - fields.keys()
    if missing:
        raise InvalidSongError(f"missing header fields: {', '.join(sorted(missing))}")

    try:
        bpm = int(fields["BPM"])
        rows = int(fields["Rows"])
        channels = int(fields["Channels"])
        loop_enabled, loop_start, loop_end = (int(part) for part in fields["Loop"].split())
    except ValueError as exc:
        raise InvalidSongError(f"malformed header: {exc}") from exc

    body = [line for line in lines[5:] if line.strip()]
    if len(body) != rows * channels:
        raise InvalidSongError(f"expected {rows * channels} cell lines, found {len(body)}")

    tracks: list[Track] = []
    for channel in range(channels):
        cells: list[Cell] = []
        for row in range(rows):
            line = body[channel * rows + row]
            match = _CELL_RE.match(line.strip())
            if match is None:
                raise InvalidSongError(f"cell at channel {channel}, row {row}: cannot parse {line!r}")
            sample = (match.group("sample") or "").strip()
            try:
                cells.append(
                    Cell(
                        note=int(match.group("note")),
                        original_note=int(match.group("original")),
                        sample=None if sample in ("", NO_SAMPLE) else sample,
                    )
                )
            except ValidationError as exc:
                raise InvalidSongError(f"cell at channel {channel}, row {row}: {exc}") from exc
        tracks.append(Track(cells=cells))

    if loop_enabled and not 0 <= loop_start < loop_end < rows:
        raise InvalidLoopRangeError(f"loop {loop_start}-{loop_end} does not fit {rows} rows")
    try:
        loop = LoopWindow(enabled=bool(loop_enabled), start_row=loop_start, end_row=loop_end)
        return Song(tracks=tracks, row_count=rows, bpm=bpm, loop=loop)
    except ValidationError as exc:
        raise InvalidSongError(str(exc)) from exc


def load_song(path: str | Path) -> Song:
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidSongError(f"could not read {source}: {exc}") from exc
    song = loads(text)
    _LOGGER.info(
        "Loaded %s: %d channels, %d rows, BPM %d", source, song.channel_count, song.row_count, song.bpm
    )
    return song


def save_song(song: Song, path: str | Path) -> Path:
    return write_atomic(path, dumps(song).encode("utf-8"))
