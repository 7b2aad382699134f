from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import soundfile as sf  # type: ignore[import]

from .config import SAMPLE_RATE
from .errors import AssetError, AssetNotFoundError, AssetUnreadableError
from .resample import Int16Array

_LOGGER = logging.getLogger("steptracker.assets")


def load_sample(path: str | Path, *, sample_rate: int = SAMPLE_RATE) -> Int16Array:
    """Decode an audio file into mono int16 PCM.

    Multi-channel files are folded to mono by averaging. Files recorded at a
    different rate are decoded as-is and only logged.
    """
    target = Path(path)
    if not target.is_file():
        raise AssetNotFoundError(str(target), "no such file")
    try:
        data, file_rate = sf.read(str(target), dtype="int16", always_2d=True)
    except (RuntimeError, TypeError, ValueError) as exc:
        raise AssetUnreadableError(str(target), str(exc)) from exc

    frames: Any = data
    if frames.shape[1] == 1:
        mono = np.ascontiguousarray(frames[:, 0], dtype=np.int16)
    else:
        mono = np.trunc(frames.astype(np.int32).mean(axis=1)).astype(np.int16)
    if int(file_rate) != sample_rate:
        _LOGGER.warning(
            "Sample %s is %d Hz, engine runs at %d Hz; playing without rate conversion",
            target,
            file_rate,
            sample_rate,
        )
    return mono


class AssetCache:
    """Decode each asset once per render; failures are cached as well."""

    def __init__(self, *, sample_rate: int = SAMPLE_RATE) -> None:
        self._sample_rate = sample_rate
        self._entries: dict[str, Int16Array | AssetError] = {}

    def load(self, path: str | Path) -> Int16Array:
        key = str(path)
        entry = self._entries.get(key)
        if entry is None:
            try:
                entry = load_sample(key, sample_rate=self._sample_rate)
            except (AssetNotFoundError, AssetUnreadableError) as exc:
                entry = exc.with_traceback(None)
            self._entries[key] = entry
        if isinstance(entry, AssetError):
            # The cached error is never raised itself; each load gets its own.
            raise type(entry)(entry.path, entry.reason)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
