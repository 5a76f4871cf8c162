"""
Note naming helpers: MIDI numbers, note strings, root notes from filenames.

midi_note_to_string and note_string_to_midi_value use different octave
conventions (60 -> "C4", but "C3" -> 60). Existing sample libraries are named
with the second convention, so both are kept as they are.
"""
import re
from typing import Tuple

from patchlib.exceptions import FilenamePatternError, NoteFormatError
from patchlib.packager import sanitize_name


NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
# A, B, C, D, E, F, G at octave 0
NOTE_OFFSET = [33, 35, 24, 26, 28, 29, 31]

_EXTENSION = re.compile(r"\.[^/.]+$")
_NOTE_OR_NUMBER = re.compile(r"(.+?)[\s\-]*([A-G](?:b|#)?\d|\d{1,3})$", re.IGNORECASE)
_NOTE_TOKEN = re.compile(r"^[A-G](?:b|#)?\d$", re.IGNORECASE)
_LEADING_INT = re.compile(r"^[+-]?\d+")


def midi_note_to_string(value: int) -> str:
    """60 -> 'C4', 0 -> 'C-1', 127 -> 'G9'."""
    return f"{NOTE_NAMES[value % 12]}{value // 12 - 1}"


def note_string_to_midi_value(note: str) -> int:
    """
    Convert a note string such as 'C3', 'F#4', 'Bb 2' to a MIDI number.

    Raises:
        NoteFormatError: 'Bad note format' or 'Bad note'
    """
    string = note.replace(" ", "", 1)
    if len(string) < 2:
        raise NoteFormatError("Bad note format", context={"note": note})

    note_idx = ord(string[0].upper()) - ord("A")
    if note_idx < 0 or note_idx > 6:
        raise NoteFormatError("Bad note", context={"note": note})

    sharpen = 0
    if string[1] == "#":
        sharpen = 1
    elif string[1].lower() == "b":
        sharpen = -1

    match = _LEADING_INT.match(string[1 + abs(sharpen):])
    if not match:
        raise NoteFormatError("Bad note format", context={"note": note})

    return int(match.group()) * 12 + NOTE_OFFSET[note_idx] + sharpen


def parse_filename(filename: str) -> Tuple[str, int]:
    """
    Split a sample filename into (base_name, midi_note).

    The trailing token is either a note name ('piano_C3.wav' -> 60) or a
    MIDI number of up to three digits ('pad-072.wav' -> 72).

    Raises:
        FilenamePatternError: If neither is present
    """
    name_without_ext = _EXTENSION.sub("", filename)
    match = _NOTE_OR_NUMBER.search(name_without_ext)
    if not match:
        raise FilenamePatternError(
            f"Filename '{filename}' does not match the expected pattern."
        )

    base_name = sanitize_name(match.group(1))
    token = match.group(2)
    if _NOTE_TOKEN.match(token):
        return base_name, note_string_to_midi_value(token)
    return base_name, int(token, 10)
