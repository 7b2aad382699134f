"""Runnable units of audio: a synthesized tone or a pitch-shifted sample.

A voice renders a mono int16 buffer. Offline, the mixer asks for that buffer
directly. Live, the scheduler calls :meth:`Voice.start`, which runs the voice
on its own thread: render, hand the buffer to the sink, then hold the slot for
the nominal duration unless cancelled first.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Literal

import numpy as np

from .assets import AssetCache, load_sample
from .config import DEFAULT_SETTINGS, PITCH_EPSILON, EngineSettings
from .errors import AssetError
from .resample import Int16Array, clamp_ratio, pitch_shift
from .song import Cell

if TYPE_CHECKING:
    from .sink import AudioSink

_LOGGER = logging.getLogger("steptracker.voice")

VoiceKind = Literal["tone", "sample"]


def _silence() -> Int16Array:
    return np.zeros(0, dtype=np.int16)


def sine_wave(frequency: float, samples: int, *, amplitude: float, sample_rate: int) -> Int16Array:
    index = np.arange(samples, dtype=np.float64)
    wave = 32767.0 * amplitude * np.sin(2.0 * math.pi * frequency * index / sample_rate)
    return np.trunc(wave).astype(np.int16)


class Voice(ABC):
    kind: ClassVar[VoiceKind]

    def __init__(
        self,
        *,
        channel: int,
        duration_ms: int,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.channel = channel
        self.duration_ms = duration_ms
        self._settings = settings
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._active = False
        self._thread: threading.Thread | None = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @abstractmethod
    def render(self, *, amplitude: float | None = None, cache: AssetCache | None = None) -> Int16Array:
        """Return this voice's mono PCM; never raises for a bad asset."""

    def play_duration_ms(self) -> int:
        return self.duration_ms

    def start(self, sink: AudioSink) -> None:
        with self._lock:
            if self._active or self._done.is_set():
                raise RuntimeError(f"{self!r} was already started")
            self._active = True
        self._thread = threading.Thread(
            target=self.run,
            args=(sink,),
            name=f"voice-{self.kind}-ch{self.channel}",
            daemon=True,
        )
        self._thread.start()

    def run(self, sink: AudioSink) -> None:
        with self._lock:
            self._active = True
        deadline = time.monotonic() + self.play_duration_ms() / 1000.0
        try:
            if self._cancel.is_set():
                return
            pcm = self.render(amplitude=self._settings.live_tone_amplitude)
            if pcm.size and not self._cancel.is_set():
                sink.play(pcm, channel=self.channel, cancel=self._cancel)
            self._cancel.wait(max(0.0, deadline - time.monotonic()))
        except Exception as exc:
            _LOGGER.warning("Voice on channel %d failed: %s", self.channel, exc, exc_info=True)
        finally:
            with self._lock:
                self._active = False
            self._done.set()

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: float | None = None) -> bool:
        if self._thread is None:
            return True
        return self._done.wait(timeout)


class ToneVoice(Voice):
    kind: ClassVar[VoiceKind] = "tone"

    def __init__(
        self,
        frequency: float,
        *,
        channel: int,
        duration_ms: int,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        super().__init__(channel=channel, duration_ms=duration_ms, settings=settings)
        self.frequency = frequency

    def render(self, *, amplitude: float | None = None, cache: AssetCache | None = None) -> Int16Array:
        if self.frequency <= 0:
            return _silence()
        level = self._settings.offline_tone_amplitude if amplitude is None else amplitude
        samples = self.duration_ms * self._settings.sample_rate // 1000
        return sine_wave(
            self.frequency, samples, amplitude=level, sample_rate=self._settings.sample_rate
        )

    def __repr__(self) -> str:
        return f"ToneVoice(ch={self.channel}, {self.frequency:.2f} Hz, {self.duration_ms} ms)"


class SampleVoice(Voice):
    kind: ClassVar[VoiceKind] = "sample"

    def __init__(
        self,
        path: str | Path,
        *,
        pitch_ratio: float,
        channel: int,
        duration_ms: int,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        super().__init__(channel=channel, duration_ms=duration_ms, settings=settings)
        self.path = str(path)
        self.pitch_ratio = pitch_ratio
        self.error: AssetError | None = None

    def render(self, *, amplitude: float | None = None, cache: AssetCache | None = None) -> Int16Array:
        _ = amplitude
        try:
            if cache is not None:
                pcm = cache.load(self.path)
            else:
                pcm = load_sample(self.path, sample_rate=self._settings.sample_rate)
        except AssetError as exc:
            self.error = exc
            _LOGGER.warning("Channel %d sample unavailable, playing silence: %s", self.channel, exc)
            return _silence()
        if abs(self.pitch_ratio - 1.0) < PITCH_EPSILON:
            return pcm.copy()
        return pitch_shift(pcm, self.pitch_ratio).samples

    def play_duration_ms(self) -> int:
        # A higher pitch means a shorter buffer, so it finishes sooner.
        if abs(self.pitch_ratio - 1.0) < PITCH_EPSILON:
            return self.duration_ms
        return int(self.duration_ms / clamp_ratio(self.pitch_ratio))

    def __repr__(self) -> str:
        return f"SampleVoice(ch={self.channel}, {self.path!r}, x{self.pitch_ratio:.3f})"


def voice_for_cell(
    channel: int,
    cell: Cell,
    *,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> Voice | None:
    """Build the voice a cell calls for; rests never produce one."""
    match cell.kind:
        case "rest":
            return None
        case "sample":
            assert cell.sample is not None
            return SampleVoice(
                cell.sample,
                pitch_ratio=cell.pitch_ratio,
                channel=channel,
                duration_ms=cell.duration_ms,
                settings=settings,
            )
        case "tone":
            return ToneVoice(
                cell.frequency,
                channel=channel,
                duration_ms=cell.duration_ms,
                settings=settings,
            )
        case _:
            raise ValueError(f"Unknown cell kind: {cell.kind}")
