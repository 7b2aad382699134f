from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

import numpy as np

from .config import DEFAULT_SETTINGS, EngineSettings
from .errors import OutputSinkUnavailableError
from .mixer import spread
from .resample import Int16Array

_LOGGER = logging.getLogger("steptracker.sink")


class AudioSink(Protocol):
    """Where live voices send their PCM."""

    def open(self) -> None: ...

    def play(self, pcm: Int16Array, *, channel: int, cancel: threading.Event) -> None: ...

    def close(self) -> None: ...


class NullSink:
    """Discards audio; voices still keep their wall-clock timing."""

    def __init__(self) -> None:
        self.opened = False

    def open(self) -> None:
        self.opened = True

    def play(self, pcm: Int16Array, *, channel: int, cancel: threading.Event) -> None:
        _ = (pcm, channel, cancel)

    def close(self) -> None:
        self.opened = False


def _load_sounddevice() -> Any | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    return sd_module


class SoundDeviceSink:
    """Plays each voice on its own PortAudio output stream.

    Audio is written in blocks so a cancelled voice stops within one block
    instead of running to the end of its buffer.
    """

    def __init__(self, *, settings: EngineSettings = DEFAULT_SETTINGS, device: int | str | None = None) -> None:
        self._settings = settings
        self._device = device
        self._sd: Any | None = None

    def open(self) -> None:
        sd = _load_sounddevice()
        if sd is None:
            raise OutputSinkUnavailableError(
                "Live playback requires sounddevice and a PortAudio library; use export instead."
            )
        try:
            sd.query_devices(self._device, kind="output")
        except Exception as exc:
            raise OutputSinkUnavailableError(f"No usable audio output device: {exc}") from exc
        self._sd = sd
        _LOGGER.debug("Opened sounddevice output (device=%s)", self._device)

    def play(self, pcm: Int16Array, *, channel: int, cancel: threading.Event) -> None:
        sd = self._sd
        if sd is None:
            raise OutputSinkUnavailableError("sink is not open")
        frames = spread(pcm, channel)
        block = self._settings.sink_block_frames
        with sd.OutputStream(
            samplerate=self._settings.sample_rate,
            channels=2,
            dtype="int16",
            device=self._device,
        ) as stream:
            for start in range(0, len(frames), block):
                if cancel.is_set():
                    stream.abort()
                    return
                stream.write(np.ascontiguousarray(frames[start : start + block]))

    def close(self) -> None:
        sd = self._sd
        self._sd = None
        if sd is None:
            return
        try:
            sd.stop()
        except Exception as exc:
            _LOGGER.warning("Failed to stop sounddevice cleanly: %s", exc, exc_info=True)
