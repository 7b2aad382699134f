from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import TrackerError

_LOGGER = logging.getLogger("steptracker.config")

SAMPLE_RATE = 44_100
MAX_CHANNELS = 8
MAX_ROWS = 16
DEFAULT_BPM = 120
DEFAULT_ORIGINAL_NOTE = 60
MIN_BPM = 20
MAX_BPM = 300
ZERO_BPM_ROW_MS = 500
ROWS_PER_BEAT = 4
LOOP_RENDER_ITERATIONS = 4
PITCH_EPSILON = 0.001
MIN_PITCH_RATIO = 0.5
MAX_PITCH_RATIO = 2.0

# Environment overrides for the timing knobs only.
_ENV_FIELDS: Mapping[str, str] = MappingProxyType(
    {
        "STEPTRACKER_GRACE_MS": "grace_ms",
        "STEPTRACKER_DRAIN_MS": "drain_ms",
        "STEPTRACKER_SINK_BLOCK_FRAMES": "sink_block_frames",
    }
)


class EngineSettings(BaseModel):
    """Runtime knobs shared by the scheduler, voices and renderer."""

    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)
    max_channels: int = Field(default=MAX_CHANNELS, ge=1, le=MAX_CHANNELS)
    max_rows: int = Field(default=MAX_ROWS, ge=1, le=MAX_ROWS)
    grace_ms: int = Field(default=10, ge=0)
    drain_ms: int = Field(default=100, ge=0)
    live_tone_amplitude: float = Field(default=1.0, ge=0.0, le=1.0)
    offline_tone_amplitude: float = Field(default=0.3, ge=0.0, le=1.0)
    sink_block_frames: int = Field(default=2048, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for key, field in _ENV_FIELDS.items():
            value = env.get(key)
            if value:
                overrides[field] = value
        if overrides:
            _LOGGER.debug("Engine settings overrides from environment: %s", overrides)
        try:
            return cls.model_validate(overrides)
        except ValidationError as exc:
            raise TrackerError(f"Invalid engine settings in environment: {exc}") from exc


DEFAULT_SETTINGS = EngineSettings()
