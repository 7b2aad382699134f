import pytest
from pydantic import ValidationError

from steptracker.errors import InvalidLoopRangeError, InvalidSongError
from steptracker.notes import frequency, note_from_name, note_name, pitch_ratio
from steptracker.song import Cell, LoopWindow, Song, Track, row_duration_ms, row_duration_samples


def test_row_duration_from_bpm() -> None:
    assert row_duration_ms(120) == 125
    assert row_duration_ms(0) == 500
    assert row_duration_ms(300) == 50
    assert row_duration_samples(120, 44_100) == 5512


def test_frequency_of_a4() -> None:
    assert frequency(69) == pytest.approx(440.0)
    assert frequency(81) == pytest.approx(880.0)


@pytest.mark.parametrize("delta", range(-24, 25))
def test_pitch_ratio_is_two_to_the_semitones_over_twelve(delta: int) -> None:
    original = 60
    assert abs(pitch_ratio(original, original + delta) - 2 ** (delta / 12)) < 1e-9


@pytest.mark.parametrize("note", [1, 45, 60, 127])
def test_pitch_ratio_unison_is_one(note: int) -> None:
    assert pitch_ratio(note, note) == 1.0


def test_pitch_ratio_with_rest_is_one() -> None:
    assert pitch_ratio(0, 72) == 1.0
    assert pitch_ratio(60, 0) == 1.0


def test_cell_derives_pitch_ratio_and_kind() -> None:
    cell = Cell(note=72, original_note=60, sample="kick.wav", pitch_ratio=5.0)
    assert cell.pitch_ratio == pytest.approx(2.0)
    assert cell.kind == "sample"
    assert Cell(note=69).kind == "tone"
    assert Cell(note=0, sample="kick.wav").kind == "rest"
    assert Cell(note=60, sample="").sample is None


def test_cell_rejects_out_of_range_note() -> None:
    with pytest.raises(ValidationError):
        Cell(note=128)


def test_new_song_defaults() -> None:
    song = Song.new()
    assert song.channel_count == 8
    assert song.row_count == 16
    assert song.bpm == 120
    assert not song.loop.enabled
    assert song.loop.end_row == 15
    assert all(cell.duration_ms == 125 for track in song.tracks for cell in track.cells)


def test_set_bpm_updates_every_cell_duration() -> None:
    song = Song.new(channels=2, rows=4)
    song.set_cell(1, 2, 64)
    song.set_bpm(60)
    assert song.row_ms == 250
    assert {cell.duration_ms for track in song.tracks for cell in track.cells} == {250}
    assert song.cell(1, 2).note == 64


@pytest.mark.parametrize("bpm", [0, 19, 301])
def test_set_bpm_rejects_out_of_range(bpm: int) -> None:
    song = Song.new()
    with pytest.raises(InvalidSongError):
        song.set_bpm(bpm)
    assert song.bpm == 120


@pytest.mark.parametrize("start,end", [(3, 3), (5, 2), (-1, 4), (2, 16)])
def test_set_loop_rejects_invalid_window(start: int, end: int) -> None:
    song = Song.new()
    with pytest.raises(InvalidLoopRangeError):
        song.set_loop(start, end)
    assert not song.loop.enabled


def test_set_and_disable_loop() -> None:
    song = Song.new()
    song.set_loop(2, 5)
    assert song.loop == LoopWindow(enabled=True, start_row=2, end_row=5)
    assert song.loop.length == 4
    song.disable_loop()
    assert not song.loop.enabled
    assert song.loop.start_row == 2


def test_song_validation_rejects_ragged_tracks() -> None:
    with pytest.raises(ValidationError):
        Song(tracks=[Track(cells=[Cell()]), Track(cells=[Cell(), Cell()])], row_count=1)


def test_song_validation_rejects_bad_loop() -> None:
    with pytest.raises(ValidationError):
        Song(
            tracks=[Track(cells=[Cell(), Cell()])],
            row_count=2,
            loop=LoopWindow(enabled=True, start_row=1, end_row=1),
        )


def test_set_cell_sample_defaults_base_note_to_c4() -> None:
    song = Song.new(channels=1, rows=2)
    cell = song.set_cell(0, 0, 72, sample="pad.wav")
    assert cell.original_note == 60
    assert cell.pitch_ratio == pytest.approx(2.0)
    assert cell.duration_ms == 125


def test_set_cell_keeps_base_note_when_sample_cleared() -> None:
    song = Song.new(channels=1, rows=2)
    song.set_cell(0, 0, 60, sample="pad.wav", original_note=48)
    cell = song.set_cell(0, 0, 67)
    assert cell.original_note == 48
    assert cell.sample is None
    assert cell.kind == "tone"


def test_row_cells_only_lists_sounding_channels() -> None:
    song = Song.new(channels=3, rows=2)
    song.set_cell(0, 1, 60)
    song.set_cell(2, 1, 0, sample="ignored.wav")
    assert [channel for channel, _ in song.row_cells(1)] == [0]
    assert song.row_cells(0) == []
    with pytest.raises(InvalidSongError):
        song.row_cells(2)


def test_set_cell_rejects_bad_position() -> None:
    song = Song.new(channels=2, rows=2)
    with pytest.raises(InvalidSongError):
        song.set_cell(2, 0, 60)


def test_note_names() -> None:
    assert note_name(69) == "A4"
    assert note_name(60) == "C4"
    assert note_name(0) == "---"
    assert note_from_name("a#3") == 58
    assert note_from_name("---") == 0
    assert note_from_name("H9") == 0


@pytest.mark.parametrize(("channels", "rows"), [(0, 4), (9, 4), (2, 0), (2, 17)])
def test_new_song_respects_limits(channels: int, rows: int) -> None:
    with pytest.raises(InvalidSongError):
        Song.new(channels=channels, rows=rows)


def test_model_rejects_too_many_rows() -> None:
    with pytest.raises(ValidationError):
        Song(tracks=[Track(cells=[Cell() for _ in range(17)])], row_count=17)
