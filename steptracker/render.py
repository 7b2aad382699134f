from __future__ import annotations

import logging
from collections.abc import Callable
from itertools import takewhile
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from .assets import AssetCache
from .config import DEFAULT_SETTINGS, LOOP_RENDER_ITERATIONS, EngineSettings
from .errors import AllocationError
from .mixer import Mixer, mix_and_saturate, silent_stereo
from .scheduler import row_sequence
from .song import Song
from .wav import HEADER_SIZE, encode_wav, write_atomic

_LOGGER = logging.getLogger("steptracker.render")

RowProgress = Callable[[int, int, int], None]


def render_plan(song: Song) -> list[int]:
    """Pattern rows an offline render visits, in order.

    Without a loop that is every row once. With a loop it follows playback
    order until the fourth loop iteration has finished: rows ahead of the
    loop once, then the loop window four times.
    """
    steps = row_sequence(song)
    if song.loop.enabled:
        steps = takewhile(lambda step: step.loop_count < LOOP_RENDER_ITERATIONS, steps)
    return [step.row for step in steps]


class OfflineRenderer:
    """Deterministic, single-threaded mixdown of a whole song."""

    def __init__(
        self,
        *,
        settings: EngineSettings = DEFAULT_SETTINGS,
        on_row: RowProgress | None = None,
    ) -> None:
        self._settings = settings
        self._on_row = on_row

    def render_buffer(self, song: Song) -> NDArray[np.int16]:
        song.check_limits(self._settings)
        plan = render_plan(song)
        row_samples = song.row_samples(self._settings.sample_rate)
        master = silent_stereo(len(plan) * row_samples)
        mixer = Mixer(settings=self._settings, cache=AssetCache(sample_rate=self._settings.sample_rate))
        _LOGGER.info("Rendering %d rows (%d frames per row)", len(plan), row_samples)

        for index, row in enumerate(plan):
            cells = song.row_cells(row)
            if cells:
                row_buffer = mixer.mix_row(cells, row_samples)
                try:
                    mix_and_saturate(master, row_buffer, offset=index * row_samples)
                except MemoryError as exc:
                    raise AllocationError(f"could not mix row {row} into the master buffer") from exc
            if self._on_row is not None:
                self._on_row(index, len(plan), row)
        return master

    def render(self, song: Song) -> bytes:
        master = self.render_buffer(song)
        try:
            return encode_wav(master, sample_rate=self._settings.sample_rate)
        except MemoryError as exc:
            raise AllocationError("could not allocate the WAV payload") from exc

    def export(self, song: Song, path: str | Path) -> Path:
        """Render and write ``path``; nothing is written unless rendering succeeds."""
        blob = self.render(song)
        target = write_atomic(path, blob)
        frames = (len(blob) - HEADER_SIZE) // 4
        _LOGGER.info(
            "Song saved to %s (%d frames, %.2f seconds)",
            target,
            frames,
            frames / self._settings.sample_rate,
        )
        return target
