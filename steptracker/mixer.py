from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

from .assets import AssetCache
from .config import DEFAULT_SETTINGS, EngineSettings
from .errors import AllocationError
from .resample import Int16Array
from .song import Cell
from .voice import voice_for_cell

_LOGGER = logging.getLogger("steptracker.mixer")

INT16_MIN = -32_768
INT16_MAX = 32_767
LEFT_HEAVY = (0.7, 0.3)
RIGHT_HEAVY = (0.3, 0.7)


def pan_gains(channel: int) -> tuple[float, float]:
    """(left, right) gains; channels 0-3 lean left, 4-7 lean right."""
    return LEFT_HEAVY if channel < 4 else RIGHT_HEAVY


def silent_stereo(frames: int) -> NDArray[np.int16]:
    try:
        return np.zeros((frames, 2), dtype=np.int16)
    except MemoryError as exc:
        raise AllocationError(f"could not allocate {frames} stereo frames") from exc


def fit_length(mono: Int16Array, frames: int) -> Int16Array:
    """Truncate or zero-pad a mono buffer to ``frames`` samples."""
    if len(mono) >= frames:
        return mono[:frames]
    return np.pad(mono, (0, frames - len(mono)))


def spread(mono: Int16Array, channel: int) -> NDArray[np.int16]:
    """Pan a mono buffer into stereo frames; each side is truncated toward zero."""
    left, right = pan_gains(channel)
    wide = mono.astype(np.float64)
    stereo = np.empty((len(mono), 2), dtype=np.int16)
    stereo[:, 0] = np.trunc(wide * left).astype(np.int16)
    stereo[:, 1] = np.trunc(wide * right).astype(np.int16)
    return stereo


def mix_and_saturate(dest: NDArray[np.int16], src: NDArray[np.int16], *, offset: int = 0) -> None:
    """Add ``src`` into ``dest`` starting at frame ``offset``, clamping to int16.

    This is the only summing primitive: voice-into-row and row-into-master
    both go through it so the two passes round identically.
    """
    end = offset + len(src)
    if offset < 0 or end > len(dest):
        raise ValueError(f"cannot mix {len(src)} frames at {offset} into {len(dest)} frames")
    window = dest[offset:end]
    summed = window.astype(np.int32) + src.astype(np.int32)
    np.clip(summed, INT16_MIN, INT16_MAX, out=summed)
    window[...] = summed.astype(np.int16)


class Mixer:
    """Builds one stereo row buffer from the cells sounding on that row."""

    def __init__(
        self,
        *,
        settings: EngineSettings = DEFAULT_SETTINGS,
        cache: AssetCache | None = None,
    ) -> None:
        self._settings = settings
        self._cache = cache if cache is not None else AssetCache(sample_rate=settings.sample_rate)

    @property
    def cache(self) -> AssetCache:
        return self._cache

    def mix_row(self, cells: Sequence[tuple[int, Cell]], row_samples: int) -> NDArray[np.int16]:
        row = silent_stereo(row_samples)
        for channel, cell in cells:
            voice = voice_for_cell(channel, cell, settings=self._settings)
            if voice is None:
                continue
            mono = voice.render(amplitude=self._settings.offline_tone_amplitude, cache=self._cache)
            if mono.size == 0:
                continue
            try:
                mix_and_saturate(row, spread(fit_length(mono, row_samples), channel))
            except MemoryError as exc:
                raise AllocationError(f"could not mix channel {channel}") from exc
        return row
