from __future__ import annotations

from .config import DEFAULT_SETTINGS, SAMPLE_RATE, EngineSettings
from .errors import (
    AllocationError,
    AssetError,
    AssetNotFoundError,
    AssetUnreadableError,
    InvalidLoopRangeError,
    InvalidSongError,
    OutputSinkUnavailableError,
    TrackerError,
    WavFormatError,
)
from .mixer import Mixer, mix_and_saturate, pan_gains
from .notes import frequency, note_from_name, note_name, pitch_ratio
from .render import OfflineRenderer, render_plan
from .resample import PitchShift, pitch_shift, resample
from .scheduler import (
    PlaybackEvent,
    PlaybackHooks,
    PlaybackResult,
    PlaybackScheduler,
    RowStep,
    row_sequence,
)
from .sink import AudioSink, NullSink, SoundDeviceSink
from .song import Cell, LoopWindow, Song, Track, row_duration_ms
from .songfile import load_song, save_song
from .voice import SampleVoice, ToneVoice, Voice, voice_for_cell
from .wav import WavHeader, encode_wav, parse_wav_header

__all__ = [
    "DEFAULT_SETTINGS",
    "SAMPLE_RATE",
    "AllocationError",
    "AssetError",
    "AssetNotFoundError",
    "AssetUnreadableError",
    "AudioSink",
    "Cell",
    "EngineSettings",
    "InvalidLoopRangeError",
    "InvalidSongError",
    "LoopWindow",
    "Mixer",
    "NullSink",
    "OfflineRenderer",
    "OutputSinkUnavailableError",
    "PitchShift",
    "PlaybackEvent",
    "PlaybackHooks",
    "PlaybackResult",
    "PlaybackScheduler",
    "RowStep",
    "SampleVoice",
    "Song",
    "SoundDeviceSink",
    "ToneVoice",
    "Track",
    "TrackerError",
    "Voice",
    "WavFormatError",
    "WavHeader",
    "encode_wav",
    "frequency",
    "load_song",
    "mix_and_saturate",
    "note_from_name",
    "note_name",
    "pan_gains",
    "parse_wav_header",
    "pitch_ratio",
    "pitch_shift",
    "render_plan",
    "resample",
    "row_duration_ms",
    "row_sequence",
    "save_song",
    "voice_for_cell",
]
