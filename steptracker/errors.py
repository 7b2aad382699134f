from __future__ import annotations


class TrackerError(Exception):
    """Base error for the steptracker engine."""


class AssetError(TrackerError):
    """Raised when a sample asset cannot be turned into PCM."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class AssetNotFoundError(AssetError):
    """Raised when a sample asset path does not exist."""


class AssetUnreadableError(AssetError):
    """Raised when a sample asset exists but cannot be decoded."""


class AllocationError(TrackerError):
    """Raised when an audio buffer cannot be allocated."""


class InvalidSongError(TrackerError):
    """Raised when a song or song edit violates the data model."""


class InvalidLoopRangeError(InvalidSongError):
    """Raised when a loop window is not 0 <= start < end < row_count."""


class OutputSinkUnavailableError(TrackerError):
    """Raised when the live audio output cannot be opened."""


class WavFormatError(TrackerError):
    """Raised when a blob is not a canonical 16-bit PCM RIFF/WAVE file."""
