from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import (
    DEFAULT_BPM,
    DEFAULT_ORIGINAL_NOTE,
    MAX_BPM,
    MAX_CHANNELS,
    MAX_ROWS,
    MIN_BPM,
    ROWS_PER_BEAT,
    ZERO_BPM_ROW_MS,
    EngineSettings,
)
from .errors import InvalidLoopRangeError, InvalidSongError
from .notes import frequency, pitch_ratio

_LOGGER = logging.getLogger("steptracker.song")

CellKind = Literal["rest", "tone", "sample"]


def row_duration_ms(bpm: int) -> int:
    """Length of one row in milliseconds; four rows make a beat."""
    if bpm == 0:
        return ZERO_BPM_ROW_MS
    return (60_000 // bpm) // ROWS_PER_BEAT


def row_duration_samples(bpm: int, sample_rate: int) -> int:
    return row_duration_ms(bpm) * sample_rate // 1000


class Cell(BaseModel):
    """One channel's note/sample assignment at one row."""

    note: int = Field(default=0, ge=0, le=127)
    original_note: int = Field(default=DEFAULT_ORIGINAL_NOTE, ge=0, le=127)
    duration_ms: int = Field(default_factory=lambda: row_duration_ms(DEFAULT_BPM), ge=0)
    sample: str | None = None
    pitch_ratio: float = 1.0

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _derive_pitch_ratio(self) -> "Cell":
        if not self.sample:
            object.__setattr__(self, "sample", None)
        # Always derived; a stored ratio is never trusted.
        object.__setattr__(self, "pitch_ratio", pitch_ratio(self.original_note, self.note))
        return self

    @property
    def kind(self) -> CellKind:
        if self.note <= 0:
            return "rest"
        if self.sample:
            return "sample"
        return "tone"

    @property
    def frequency(self) -> float:
        return frequency(self.note)


class Track(BaseModel):
    cells: list[Cell]

    model_config = ConfigDict(extra="forbid")


class LoopWindow(BaseModel):
    enabled: bool = False
    start_row: int = Field(default=0, ge=0)
    end_row: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def length(self) -> int:
        return self.end_row - self.start_row + 1


class Song(BaseModel):
    """The pattern: channels of cells, tempo and loop window.

    The scheduler and renderer only read a song; edits go through the
    ``set_*`` methods, which keep cached cell durations and the loop
    invariant intact.
    """

    tracks: list[Track]
    row_count: int = Field(ge=1, le=MAX_ROWS)
    bpm: int = Field(default=DEFAULT_BPM, ge=0)
    loop: LoopWindow = Field(default_factory=LoopWindow)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_shape(self) -> "Song":
        if not self.tracks:
            raise ValueError("a song needs at least one channel")
        if len(self.tracks) > MAX_CHANNELS:
            raise ValueError(f"at most {MAX_CHANNELS} channels are supported")
        for index, track in enumerate(self.tracks):
            if len(track.cells) != self.row_count:
                raise ValueError(
                    f"channel {index} has {len(track.cells)} cells, expected {self.row_count}"
                )
        if self.loop.enabled and not _loop_is_valid(self.loop.start_row, self.loop.end_row, self.row_count):
            raise ValueError(
                f"loop {self.loop.start_row}-{self.loop.end_row} does not fit {self.row_count} rows"
            )
        self._sync_durations()
        return self

    @classmethod
    def new(
        cls,
        *,
        channels: int = MAX_CHANNELS,
        rows: int = MAX_ROWS,
        bpm: int = DEFAULT_BPM,
    ) -> "Song":
        if not 1 <= channels <= MAX_CHANNELS:
            raise InvalidSongError(f"channels must be between 1 and {MAX_CHANNELS}, got {channels}")
        if not 1 <= rows <= MAX_ROWS:
            raise InvalidSongError(f"rows must be between 1 and {MAX_ROWS}, got {rows}")
        duration = row_duration_ms(bpm)
        tracks = [
            Track(cells=[Cell(duration_ms=duration) for _ in range(rows)]) for _ in range(channels)
        ]
        return cls(
            tracks=tracks,
            row_count=rows,
            bpm=bpm,
            loop=LoopWindow(enabled=False, start_row=0, end_row=max(rows - 1, 0)),
        )

    @property
    def channel_count(self) -> int:
        return len(self.tracks)

    @property
    def row_ms(self) -> int:
        return row_duration_ms(self.bpm)

    def row_samples(self, sample_rate: int) -> int:
        return row_duration_samples(self.bpm, sample_rate)

    def check_limits(self, settings: EngineSettings) -> None:
        """Reject a song larger than the engine is configured to play."""
        if self.channel_count > settings.max_channels:
            raise InvalidSongError(
                f"song has {self.channel_count} channels, engine allows {settings.max_channels}"
            )
        if self.row_count > settings.max_rows:
            raise InvalidSongError(f"song has {self.row_count} rows, engine allows {settings.max_rows}")

    def cell(self, channel: int, row: int) -> Cell:
        self._check_position(channel, row)
        return self.tracks[channel].cells[row]

    def row_cells(self, row: int) -> list[tuple[int, Cell]]:
        """Snapshot of the cells that sound at ``row`` as (channel, cell) pairs."""
        if not 0 <= row < self.row_count:
            raise InvalidSongError(f"row {row} outside 0..{self.row_count - 1}")
        return [
            (channel, track.cells[row])
            for channel, track in enumerate(self.tracks)
            if track.cells[row].note > 0
        ]

    def set_bpm(self, bpm: int) -> None:
        if not MIN_BPM <= bpm <= MAX_BPM:
            raise InvalidSongError(f"BPM must be between {MIN_BPM} and {MAX_BPM}, got {bpm}")
        self.bpm = bpm
        self._sync_durations()
        _LOGGER.debug("BPM set to %d (row %d ms)", bpm, self.row_ms)

    def set_loop(self, start_row: int, end_row: int) -> None:
        if not _loop_is_valid(start_row, end_row, self.row_count):
            raise InvalidLoopRangeError(
                f"loop {start_row}-{end_row} must satisfy 0 <= start < end < {self.row_count}"
            )
        self.loop = LoopWindow(enabled=True, start_row=start_row, end_row=end_row)

    def disable_loop(self) -> None:
        self.loop = self.loop.model_copy(update={"enabled": False})

    def set_cell(
        self,
        channel: int,
        row: int,
        note: int,
        *,
        sample: str | None = None,
        original_note: int | None = None,
    ) -> Cell:
        """Replace one cell.

        A cell that keeps no new sample keeps its previous base note; a new
        sample without an explicit base note is assumed to be recorded at C4.
        """
        current = self.cell(channel, row)
        if original_note is None or original_note <= 0:
            if sample and note > 0:
                original_note = DEFAULT_ORIGINAL_NOTE
            else:
                original_note = current.original_note
        updated = Cell(
            note=note,
            original_note=original_note,
            duration_ms=self.row_ms,
            sample=sample,
        )
        self.tracks[channel].cells[row] = updated
        return updated

    def _check_position(self, channel: int, row: int) -> None:
        if not 0 <= channel < self.channel_count:
            raise InvalidSongError(f"channel {channel} outside 0..{self.channel_count - 1}")
        if not 0 <= row < self.row_count:
            raise InvalidSongError(f"row {row} outside 0..{self.row_count - 1}")

    def _sync_durations(self) -> None:
        duration = self.row_ms
        for track in self.tracks:
            track.cells = [
                cell if cell.duration_ms == duration else cell.model_copy(update={"duration_ms": duration})
                for cell in track.cells
            ]


def _loop_is_valid(start_row: int, end_row: int, row_count: int) -> bool:
    return 0 <= start_row < end_row < row_count
