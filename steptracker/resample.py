from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from .config import MAX_PITCH_RATIO, MIN_PITCH_RATIO, PITCH_EPSILON
from .errors import AllocationError

_LOGGER = logging.getLogger("steptracker.resample")

Int16Array = NDArray[np.int16]
PcmInput = Int16Array | Sequence[int] | NDArray[np.integer[Any]]


@dataclass(frozen=True, slots=True)
class PitchShift:
    """Outcome of a pitch shift, including whether the engine limit kicked in."""

    samples: Int16Array
    requested_ratio: float
    applied_ratio: float

    @property
    def clamped(self) -> bool:
        return self.applied_ratio != self.requested_ratio and not self.unchanged

    @property
    def unchanged(self) -> bool:
        return abs(self.requested_ratio - 1.0) < PITCH_EPSILON


def clamp_ratio(ratio: float) -> float:
    return min(max(ratio, MIN_PITCH_RATIO), MAX_PITCH_RATIO)


def pitch_shift(source: PcmInput, ratio: float) -> PitchShift:
    """Pitch-shift mono PCM by ``ratio`` using linear interpolation.

    Ratios within 0.001 of 1.0 return an untouched copy. Other ratios are
    limited to [0.5, 2.0]; the output holds ``int(len(source) / ratio)``
    samples, each a convex blend of two neighbouring input samples truncated
    toward zero, so no saturation is ever needed.
    """
    if ratio <= 0:
        raise ValueError(f"pitch ratio must be positive, got {ratio}")
    try:
        pcm = np.array(source, dtype=np.int16).reshape(-1)
        if abs(ratio - 1.0) < PITCH_EPSILON:
            return PitchShift(samples=pcm, requested_ratio=ratio, applied_ratio=ratio)

        applied = clamp_ratio(ratio)
        if applied != ratio:
            _LOGGER.info("Pitch ratio %.4f limited to %.4f", ratio, applied)

        length = len(pcm)
        new_length = int(length / applied)
        if new_length <= 0 or length == 0:
            return PitchShift(
                samples=np.zeros(0, dtype=np.int16), requested_ratio=ratio, applied_ratio=applied
            )

        positions = np.arange(new_length, dtype=np.float64) * applied
        idx1 = np.minimum(np.floor(positions).astype(np.int64), length - 1)
        idx2 = np.minimum(idx1 + 1, length - 1)
        frac = positions - idx1
        wide = pcm.astype(np.float64)
        blended = wide[idx1] * (1.0 - frac) + wide[idx2] * frac
        shifted = np.trunc(blended).astype(np.int16)
    except MemoryError as exc:
        raise AllocationError(f"could not allocate resample buffer for {len(source)} samples") from exc
    return PitchShift(samples=shifted, requested_ratio=ratio, applied_ratio=applied)


def resample(source: PcmInput, ratio: float) -> Int16Array:
    return pitch_shift(source, ratio).samples
