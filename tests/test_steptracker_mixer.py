from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from steptracker.config import EngineSettings
from steptracker.mixer import Mixer, fit_length, mix_and_saturate, pan_gains, spread
from steptracker.song import Cell
from steptracker.voice import ToneVoice


def _full_scale_sample(path: Path, frames: int = 2000) -> Path:
    data = np.full(frames, 32767, dtype=np.int16)
    data[1::2] = -32768
    sf.write(str(path), data, 44_100, subtype="PCM_16")
    return path


def test_pan_law_is_static_by_channel() -> None:
    for channel in range(4):
        assert pan_gains(channel) == (0.7, 0.3)
    for channel in range(4, 8):
        assert pan_gains(channel) == (0.3, 0.7)


def test_all_rest_row_is_silent() -> None:
    row = Mixer().mix_row([], 441)
    assert row.shape == (441, 2)
    assert row.dtype == np.int16
    assert not row.any()


def test_rest_cells_contribute_nothing() -> None:
    row = Mixer().mix_row([(0, Cell(note=0, sample="missing.wav")), (5, Cell(note=0))], 100)
    assert not row.any()


def test_mix_and_saturate_clamps_each_addition() -> None:
    dest = np.array([[30000, -30000], [100, -100]], dtype=np.int16)
    src = np.array([[30000, -30000], [-200, 200]], dtype=np.int16)
    mix_and_saturate(dest, src)
    assert dest.tolist() == [[32767, -32768], [-100, 100]]


def test_mix_and_saturate_respects_offset() -> None:
    dest = np.zeros((4, 2), dtype=np.int16)
    mix_and_saturate(dest, np.ones((2, 2), dtype=np.int16), offset=2)
    assert dest[:, 0].tolist() == [0, 0, 1, 1]
    with pytest.raises(ValueError):
        mix_and_saturate(dest, np.ones((3, 2), dtype=np.int16), offset=2)


def test_tone_row_matches_panned_voice() -> None:
    settings = EngineSettings()
    row_samples = 125 * 44_100 // 1000
    row = Mixer(settings=settings).mix_row([(0, Cell(note=69)), (6, Cell(note=76))], row_samples)

    left_voice = ToneVoice(440.0, channel=0, duration_ms=125).render(amplitude=0.3)
    right_voice = ToneVoice(Cell(note=76).frequency, channel=6, duration_ms=125).render(amplitude=0.3)
    expected = np.zeros((row_samples, 2), dtype=np.int16)
    mix_and_saturate(expected, spread(left_voice, 0))
    mix_and_saturate(expected, spread(right_voice, 6))
    assert np.array_equal(row, expected)
    assert int(np.abs(row).max()) <= int(32767 * 0.3)


def test_offline_tone_uses_headroom_amplitude() -> None:
    row = Mixer().mix_row([(0, Cell(note=69))], 4410)
    peak_left = int(np.abs(row[:, 0]).max())
    assert peak_left == pytest.approx(32767 * 0.3 * 0.7, abs=2)


def test_loud_samples_saturate_inside_int16(tmp_path: Path) -> None:
    sample = str(_full_scale_sample(tmp_path / "loud.wav"))
    cells = [(channel, Cell(note=60, sample=sample)) for channel in range(8)]
    row = Mixer().mix_row(cells, 1500)
    assert row.max() == 32767
    assert row.min() == -32768
    assert row[0].tolist() == [32767, 32767]


def test_short_sample_is_padded_and_long_sample_truncated(tmp_path: Path) -> None:
    sample = str(_full_scale_sample(tmp_path / "short.wav", frames=10))
    row = Mixer().mix_row([(0, Cell(note=60, sample=sample))], 50)
    assert row[:10, 0].any()
    assert not row[10:].any()
    assert len(fit_length(np.ones(80, dtype=np.int16), 50)) == 50


def test_missing_sample_is_silent_and_cached(tmp_path: Path) -> None:
    mixer = Mixer()
    cell = Cell(note=60, sample=str(tmp_path / "nope.wav"))
    row = mixer.mix_row([(0, cell), (1, cell)], 64)
    assert not row.any()
    assert len(mixer.cache) == 1
