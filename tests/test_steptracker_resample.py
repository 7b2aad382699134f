import math

import numpy as np
import pytest

from steptracker.resample import clamp_ratio, pitch_shift, resample


def _ramp(length: int) -> np.ndarray:
    return (np.arange(length, dtype=np.int64) * 97 % 65536 - 32768).astype(np.int16)


@pytest.mark.parametrize("ratio", [0.5, 0.75, 0.9, 1.3, 1.5, 2.0])
@pytest.mark.parametrize("length", [1, 7, 100, 4410])
def test_output_length_is_floor_of_length_over_ratio(ratio: float, length: int) -> None:
    out = resample(_ramp(length), ratio)
    assert len(out) == math.floor(length / ratio)
    assert out.dtype == np.int16


def test_unity_ratio_returns_identical_copy() -> None:
    source = _ramp(500)
    out = resample(source, 1.0)
    assert out.tobytes() == source.tobytes()
    assert out is not source


def test_near_unity_ratio_skips_interpolation() -> None:
    source = _ramp(64)
    shifted = pitch_shift(source, 1.0004)
    assert shifted.unchanged
    assert not shifted.clamped
    assert np.array_equal(shifted.samples, source)


def test_linear_interpolation_truncates_toward_zero() -> None:
    source = np.array([0, 10, -10, 5], dtype=np.int16)
    out = resample(source, 0.5)
    # positions 0, .5, 1, 1.5, 2, 2.5, 3, 3.5
    assert out.tolist() == [0, 5, 10, 0, -10, -2, 5, 5]


def test_upper_boundary_repeats_last_sample() -> None:
    source = np.array([100, 200, 300], dtype=np.int16)
    out = resample(source, 0.5)
    assert out[-1] == 300


def test_ratio_outside_engine_limit_is_clamped_and_reported() -> None:
    source = _ramp(1000)
    high = pitch_shift(source, 3.0)
    assert high.clamped
    assert high.applied_ratio == 2.0
    assert len(high.samples) == 500

    low = pitch_shift(source, 0.25)
    assert low.clamped
    assert low.applied_ratio == 0.5
    assert len(low.samples) == 2000


def test_clamp_ratio_bounds() -> None:
    assert clamp_ratio(10.0) == 2.0
    assert clamp_ratio(0.1) == 0.5
    assert clamp_ratio(1.25) == 1.25


def test_output_stays_inside_source_extremes() -> None:
    source = np.array([32767, -32768] * 50, dtype=np.int16)
    out = resample(source, 1.37)
    assert out.max() <= 32767
    assert out.min() >= -32768


def test_empty_source_gives_empty_output() -> None:
    assert resample(np.zeros(0, dtype=np.int16), 1.5).size == 0


def test_non_positive_ratio_is_rejected() -> None:
    with pytest.raises(ValueError):
        resample(_ramp(10), 0.0)
