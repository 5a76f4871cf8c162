"""
Tests for note naming and filename root-note parsing.
"""

import unittest

from patchlib.exceptions import FilenamePatternError, NoteFormatError
from patchlib.notes import midi_note_to_string, note_string_to_midi_value, parse_filename


class TestMidiNoteToString(unittest.TestCase):

    def test_middle_c(self):
        self.assertEqual(midi_note_to_string(60), "C4")

    def test_range_ends(self):
        self.assertEqual(midi_note_to_string(0), "C-1")
        self.assertEqual(midi_note_to_string(127), "G9")

    def test_sharps(self):
        self.assertEqual(midi_note_to_string(61), "C#4")
        self.assertEqual(midi_note_to_string(70), "A#4")


class TestNoteStringToMidiValue(unittest.TestCase):

    def test_library_octave_convention(self):
        """Sample libraries name middle C 'C3'."""
        self.assertEqual(note_string_to_midi_value("C3"), 60)
        self.assertEqual(note_string_to_midi_value("c3"), 60)

    def test_accidentals(self):
        self.assertEqual(note_string_to_midi_value("F#4"), 78)
        self.assertEqual(note_string_to_midi_value("Bb2"), 58)
        self.assertEqual(note_string_to_midi_value("A#2"), 58)

    def test_single_space_removed(self):
        self.assertEqual(note_string_to_midi_value("Bb 2"), 58)

    def test_conventions_differ_by_an_octave(self):
        self.assertEqual(note_string_to_midi_value(midi_note_to_string(60)), 72)

    def test_bad_letter(self):
        with self.assertRaises(NoteFormatError) as ctx:
            note_string_to_midi_value("H3")
        self.assertEqual(ctx.exception.message, "Bad note")

    def test_bad_format(self):
        for note in ("C", "Cx", "C#"):
            with self.assertRaises(NoteFormatError) as ctx:
                note_string_to_midi_value(note)
            self.assertEqual(ctx.exception.message, "Bad note format")


class TestParseFilename(unittest.TestCase):

    def test_note_name(self):
        self.assertEqual(parse_filename("piano_C3.wav"), ("piano", 60))

    def test_note_name_with_space(self):
        self.assertEqual(parse_filename("Strings A#2.wav"), ("Strings", 58))

    def test_midi_number(self):
        self.assertEqual(parse_filename("Pad-072.wav"), ("Pad", 72))

    def test_no_extension(self):
        self.assertEqual(parse_filename("bass E1"), ("bass", 40))

    def test_no_note(self):
        with self.assertRaises(FilenamePatternError):
            parse_filename("kick.wav")


if __name__ == "__main__":
    unittest.main()
