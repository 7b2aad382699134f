"""Row-clocked live playback.

The scheduler walks the song row by row. Each row cancels whatever is still
sounding, launches one voice thread per sounding channel, then waits one row
duration on the session stop event. That wait is the only synchronization
point; voices are never joined per row.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .config import DEFAULT_SETTINGS, EngineSettings
from .errors import OutputSinkUnavailableError, TrackerError
from .logging_utils import debug_enabled
from .sink import AudioSink, SoundDeviceSink
from .song import Song
from .voice import Voice, voice_for_cell

_LOGGER = logging.getLogger("steptracker.scheduler")

PlaybackState = Literal["idle", "playing", "stopped"]
StopReason = Literal["end", "stop"]
StopSource = Callable[[], bool]


@dataclass(frozen=True, slots=True)
class RowStep:
    row: int
    loop_count: int
    wrapped: bool


def row_sequence(song: Song, *, start_row: int = 0) -> Iterator[RowStep]:
    """Rows in playback order.

    Past the loop end the sequence jumps back to the loop start and counts a
    loop iteration; without a loop it ends after the last row. A looping
    sequence is infinite.
    """
    row = start_row
    loops = 0
    wrapped = False
    while True:
        yield RowStep(row=row, loop_count=loops, wrapped=wrapped)
        next_row = row + 1
        wrapped = False
        if song.loop.enabled:
            if next_row > song.loop.end_row:
                next_row = song.loop.start_row
                loops += 1
                wrapped = True
        elif next_row >= song.row_count:
            return
        row = next_row


class PlaybackEvent(BaseModel):
    kind: Literal["row_start", "loop", "stop"]
    row: int | None = None
    loop_count: int = 0
    voices: tuple[str, ...] = ()
    reason: StopReason | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class PlaybackHooks(BaseModel):
    on_event: Callable[[PlaybackEvent], None] | None = None
    on_row_start: Callable[[int, tuple[str, ...]], None] | None = None
    on_loop: Callable[[int], None] | None = None
    on_stop: Callable[[StopReason, int], None] | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class PlaybackResult(BaseModel):
    rows_played: int
    loop_count: int
    reason: StopReason

    model_config = ConfigDict(frozen=True, extra="forbid")


def _emit(hooks: PlaybackHooks | None, event: PlaybackEvent) -> None:
    if hooks is None:
        return
    try:
        if hooks.on_event is not None:
            hooks.on_event(event)
        match event.kind:
            case "row_start":
                if hooks.on_row_start is not None and event.row is not None:
                    hooks.on_row_start(event.row, event.voices)
            case "loop":
                if hooks.on_loop is not None:
                    hooks.on_loop(event.loop_count)
            case "stop":
                if hooks.on_stop is not None and event.reason is not None:
                    hooks.on_stop(event.reason, event.loop_count)
            case _:
                pass
    except Exception as exc:
        _LOGGER.warning("Playback hook failed: %s", exc, exc_info=debug_enabled())


class VoiceSlots:
    """One tone slot and one sample slot per channel."""

    def __init__(self, channels: int) -> None:
        self._lock = threading.Lock()
        self._tone: list[Voice | None] = [None] * channels
        self._sample: list[Voice | None] = [None] * channels

    def activate(self, voice: Voice, sink: AudioSink) -> None:
        with self._lock:
            slots = self._tone if voice.kind == "tone" else self._sample
            slots[voice.channel] = voice
            voice.start(sink)

    def cancel_all(self) -> int:
        """Request cancellation of every active voice; returns how many were active."""
        with self._lock:
            cancelled = 0
            for voice in (*self._tone, *self._sample):
                if voice is not None and voice.active:
                    voice.cancel()
                    cancelled += 1
            return cancelled

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for voice in (*self._tone, *self._sample) if voice is not None and voice.active)

    def voices(self) -> list[Voice]:
        with self._lock:
            return [voice for voice in (*self._tone, *self._sample) if voice is not None]

    def reset(self) -> None:
        with self._lock:
            self._tone = [None] * len(self._tone)
            self._sample = [None] * len(self._sample)


class PlaybackScheduler:
    def __init__(
        self,
        song: Song,
        *,
        sink: AudioSink | None = None,
        settings: EngineSettings = DEFAULT_SETTINGS,
        hooks: PlaybackHooks | None = None,
        stop_source: StopSource | None = None,
    ) -> None:
        self._song = song
        self._settings = settings
        self._sink: AudioSink = sink if sink is not None else SoundDeviceSink(settings=settings)
        self._hooks = hooks
        self._stop_source = stop_source
        self._slots = VoiceSlots(settings.max_channels)
        self._stop = threading.Event()
        self._state_lock = threading.Lock()
        self._state: PlaybackState = "idle"

    @property
    def state(self) -> PlaybackState:
        with self._state_lock:
            return self._state

    @property
    def slots(self) -> VoiceSlots:
        return self._slots

    def stop(self) -> None:
        """Ask the running session to stop; safe to call from any thread."""
        self._stop.set()

    def play(self, *, start_row: int = 0) -> PlaybackResult:
        if not 0 <= start_row < self._song.row_count:
            raise TrackerError(f"start row {start_row} outside 0..{self._song.row_count - 1}")
        return self._run(row_sequence(self._song, start_row=start_row))

    def play_row(self, row: int) -> PlaybackResult:
        if not 0 <= row < self._song.row_count:
            raise TrackerError(f"row {row} outside 0..{self._song.row_count - 1}")
        return self._run(iter([RowStep(row=row, loop_count=0, wrapped=False)]))

    def _run(self, steps: Iterator[RowStep]) -> PlaybackResult:
        self._song.check_limits(self._settings)
        with self._state_lock:
            if self._state == "playing":
                raise TrackerError("playback already running")
            self._state = "playing"
        self._stop.clear()

        try:
            self._sink.open()
        except Exception as exc:
            _LOGGER.error("Cannot start playback: %s", exc)
            with self._state_lock:
                self._state = "idle"
            if isinstance(exc, OutputSinkUnavailableError):
                raise
            raise OutputSinkUnavailableError(f"could not open audio output: {exc}") from exc

        self._slots.reset()
        row_ms = self._song.row_ms
        _LOGGER.info(
            "Playing at %d BPM, %d ms per row%s",
            self._song.bpm,
            row_ms,
            f", loop {self._song.loop.start_row}-{self._song.loop.end_row}" if self._song.loop.enabled else "",
        )

        rows_played = 0
        loop_count = 0
        reason: StopReason = "end"
        try:
            for step in steps:
                if step.wrapped:
                    loop_count = step.loop_count
                    _LOGGER.debug("Loop %d", loop_count)
                    _emit(self._hooks, PlaybackEvent(kind="loop", row=step.row, loop_count=loop_count))
                self._start_row(step.row, loop_count)
                rows_played += 1
                if self._stop.wait(row_ms / 1000.0) or self._external_stop():
                    reason = "stop"
                    break
        finally:
            self._shutdown()
            _LOGGER.info("Playback finished after %d rows, %d loops", rows_played, loop_count)
            _emit(self._hooks, PlaybackEvent(kind="stop", loop_count=loop_count, reason=reason))
        return PlaybackResult(rows_played=rows_played, loop_count=loop_count, reason=reason)

    def _start_row(self, row: int, loop_count: int) -> None:
        if self._slots.cancel_all():
            time.sleep(self._settings.grace_ms / 1000.0)

        launched: list[str] = []
        for channel, cell in self._song.row_cells(row):
            voice = voice_for_cell(channel, cell, settings=self._settings)
            if voice is None:
                continue
            self._slots.activate(voice, self._sink)
            launched.append(repr(voice))
        _LOGGER.debug("Row %02d: %s", row, ", ".join(launched) or "rest")
        _emit(
            self._hooks,
            PlaybackEvent(kind="row_start", row=row, loop_count=loop_count, voices=tuple(launched)),
        )

    def _external_stop(self) -> bool:
        if self._stop_source is None:
            return False
        if self._stop_source():
            self._stop.set()
            return True
        return False

    def _shutdown(self) -> None:
        self._slots.cancel_all()
        time.sleep(self._settings.drain_ms / 1000.0)
        for voice in self._slots.voices():
            if not voice.join(timeout=0):
                _LOGGER.debug("%r still draining at shutdown", voice)
        self._slots.reset()
        try:
            self._sink.close()
        finally:
            with self._state_lock:
                self._state = "stopped"
