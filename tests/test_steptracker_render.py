import io
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from steptracker.config import EngineSettings
from steptracker.errors import AllocationError, InvalidSongError
from steptracker.render import OfflineRenderer, render_plan
from steptracker.song import Song
from steptracker.wav import HEADER_SIZE, decode_wav, parse_wav_header


def test_single_tone_export_end_to_end(tmp_path: Path) -> None:
    song = Song.new(channels=1, rows=1, bpm=120)
    song.set_cell(0, 0, 69)
    target = OfflineRenderer().export(song, tmp_path / "out.wav")

    blob = target.read_bytes()
    header = parse_wav_header(blob)
    assert header.sample_rate == 44100
    assert header.channels == 2
    assert header.bits_per_sample == 16
    assert header.data_size == 125 * 44100 // 1000 * 4
    assert len(blob) == HEADER_SIZE + header.data_size

    _, frames = decode_wav(blob)
    left = frames[:, 0].astype(np.int32)
    right = frames[:, 1].astype(np.int32)
    assert left.max() > right.max() > 0
    assert np.abs(left).max() <= int(32767 * 0.3 * 0.7)

    data, rate = sf.read(io.BytesIO(blob), dtype="int16")
    assert rate == 44100
    assert data.shape == (5512, 2)
    np.testing.assert_array_equal(data, frames)


def test_right_bank_channels_lean_right() -> None:
    song = Song.new(channels=8, rows=1, bpm=120)
    song.set_cell(6, 0, 69)
    frames = OfflineRenderer().render_buffer(song)
    assert np.abs(frames[:, 1]).max() > np.abs(frames[:, 0]).max()


def test_plan_without_loop_is_every_row() -> None:
    assert render_plan(Song.new(rows=5)) == [0, 1, 2, 3, 4]


def test_plan_with_loop_plays_intro_once_and_window_four_times() -> None:
    song = Song.new(rows=8)
    song.set_loop(2, 5)
    plan = render_plan(song)
    assert len(plan) == 18
    assert plan[:2] == [0, 1]
    assert plan[2:] == [2, 3, 4, 5] * 4

    song.set_loop(0, 3)
    assert render_plan(song) == [0, 1, 2, 3] * 4


def test_rendered_length_follows_plan() -> None:
    song = Song.new(channels=2, rows=4, bpm=300)
    song.set_loop(1, 2)
    frames = OfflineRenderer().render_buffer(song)
    assert frames.shape == (len(render_plan(song)) * song.row_samples(44100), 2)
    assert not frames.any()


def test_render_is_deterministic() -> None:
    song = Song.new(channels=4, rows=4, bpm=150)
    for channel, note in enumerate((60, 64, 67, 72)):
        song.set_cell(channel, channel, note)
    renderer = OfflineRenderer()
    assert renderer.render(song) == renderer.render(song)


def test_missing_sample_renders_silence(tmp_path: Path) -> None:
    song = Song.new(channels=1, rows=2, bpm=120)
    song.set_cell(0, 0, 60, sample=str(tmp_path / "gone.wav"))
    frames = OfflineRenderer().render_buffer(song)
    assert not frames.any()


def test_progress_callback_sees_every_row() -> None:
    seen: list[tuple[int, int, int]] = []
    song = Song.new(rows=4)
    song.set_loop(2, 3)
    OfflineRenderer(on_row=lambda index, total, row: seen.append((index, total, row))).render_buffer(song)
    assert [row for _, _, row in seen] == render_plan(song)
    assert {total for _, total, _ in seen} == {10}


def test_failed_render_leaves_no_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import steptracker.render as render_module

    def _no_memory(frames: int) -> np.ndarray:
        raise AllocationError(f"cannot allocate {frames} frames")

    monkeypatch.setattr(render_module, "silent_stereo", _no_memory)
    target = tmp_path / "out.wav"
    with pytest.raises(AllocationError):
        OfflineRenderer().export(Song.new(rows=2), target)
    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


def test_renderer_applies_engine_channel_limit() -> None:
    song = Song.new(channels=8, rows=1, bpm=120)
    song.set_cell(6, 0, 69)
    with pytest.raises(InvalidSongError):
        OfflineRenderer(settings=EngineSettings(max_channels=4)).render_buffer(song)
