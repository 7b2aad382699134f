"""Note numbers, frequencies, pitch ratios and note names.

Note numbers follow MIDI: 0..127, with 69 = A4 = 440 Hz and 60 = C4.
Note 0 doubles as the rest marker inside a pattern.
"""

from __future__ import annotations

import logging
import math

_LOGGER = logging.getLogger("steptracker.notes")

REST = 0
TOTAL_NOTES = 128
REST_NAME = "---"
_PITCH_CLASSES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

NOTE_NAMES: tuple[str, ...] = tuple(
    f"{_PITCH_CLASSES[i % 12]}{i // 12 - 1}" for i in range(TOTAL_NOTES)
)
_NAME_TO_NOTE = {name.upper(): index for index, name in enumerate(NOTE_NAMES)}


def frequency(note: int) -> float:
    """Equal-tempered frequency in Hz for a note number."""
    return 440.0 * 2.0 ** ((note - 69) / 12.0)


def pitch_ratio(original_note: int, target_note: int) -> float:
    """Playback-rate multiplier that moves a sample from its base note to a target.

    Returns 1.0 when either note is a rest, so rests never imply a shift.
    """
    if original_note <= 0 or target_note <= 0:
        return 1.0
    return math.pow(2.0, (target_note - original_note) / 12.0)


def note_name(note: int) -> str:
    if note <= 0 or note >= TOTAL_NOTES:
        return REST_NAME
    return NOTE_NAMES[note]


def note_from_name(name: str) -> int:
    """Parse ``C4``/``a#3``/``---`` style names; unknown names become a rest."""
    text = name.strip()
    if text in ("", REST_NAME):
        return REST
    note = _NAME_TO_NOTE.get(text.upper())
    if note is None:
        _LOGGER.warning("Unknown note name %r; treating as rest", name)
        return REST
    return note
