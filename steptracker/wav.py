"""Canonical 44-byte RIFF/WAVE PCM codec for 16-bit stereo mixdowns."""

from __future__ import annotations

import logging
import os
import struct
import tempfile
from pathlib import Path

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from .config import SAMPLE_RATE
from .errors import WavFormatError

_LOGGER = logging.getLogger("steptracker.wav")

HEADER_SIZE = 44
# RIFF size, WAVE, fmt chunk (size, format, channels, rate, byte rate, align, bits), data size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
PCM_FORMAT = 1
CHANNELS = 2
BITS_PER_SAMPLE = 16


class WavHeader(BaseModel):
    riff_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def frames(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0


def build_header(data_size: int, *, sample_rate: int = SAMPLE_RATE) -> bytes:
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    return _HEADER.pack(
        b"RIFF",
        data_size + HEADER_SIZE - 8,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        CHANNELS,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(frames: NDArray[np.int16], *, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Serialize ``(n, 2)`` int16 frames as interleaved little-endian PCM."""
    stereo = np.asarray(frames)
    if stereo.ndim != 2 or stereo.shape[1] != CHANNELS:
        raise WavFormatError(f"expected (frames, 2) stereo data, got shape {stereo.shape}")
    payload = np.ascontiguousarray(stereo, dtype="<i2").tobytes()
    return build_header(len(payload), sample_rate=sample_rate) + payload


def parse_wav_header(blob: bytes) -> WavHeader:
    if len(blob) < HEADER_SIZE:
        raise WavFormatError(f"need {HEADER_SIZE} header bytes, got {len(blob)}")
    (
        riff,
        riff_size,
        wave,
        fmt,
        fmt_size,
        audio_format,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        data_tag,
        data_size,
    ) = _HEADER.unpack_from(blob)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data" or fmt_size != 16:
        raise WavFormatError("not a canonical PCM RIFF/WAVE header")
    return WavHeader(
        riff_size=riff_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )


def decode_wav(blob: bytes) -> tuple[WavHeader, NDArray[np.int16]]:
    header = parse_wav_header(blob)
    if header.audio_format != PCM_FORMAT or header.bits_per_sample != BITS_PER_SAMPLE:
        raise WavFormatError("only 16-bit PCM is supported")
    payload = blob[HEADER_SIZE : HEADER_SIZE + header.data_size]
    samples = np.frombuffer(payload, dtype="<i2").astype(np.int16)
    return header, samples.reshape(-1, header.channels)


def write_atomic(path: str | Path, blob: bytes) -> Path:
    """Write ``blob`` next to ``path`` and rename it into place.

    A failure part-way leaves the destination untouched and removes the
    temporary file.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(blob)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    _LOGGER.debug("Wrote %d bytes to %s", len(blob), target)
    return target
