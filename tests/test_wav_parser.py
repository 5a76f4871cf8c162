"""
Tests for RIFF/WAVE header, smpl chunk and metadata parsing.
"""

import struct
import unittest

import numpy as np
import pytest

from patchlib.exceptions import (
    DecodeError,
    MalformedContainer,
    MissingFormatChunk,
    UnsupportedCodec,
)
from patchlib.wav_parser import (
    SmplChunkData,
    decode_pcm_data,
    iter_chunks,
    parse_smpl_chunk,
    parse_wav_header,
    read_wav_metadata,
)

from wav_builders import (
    chunk,
    fmt_chunk,
    pcm16_wav,
    riff,
    sine,
    smpl_chunk,
    soundfile_wav,
    with_smpl,
)


class TestParseWavHeader(unittest.TestCase):
    """Header extraction and structural failures."""

    def test_canonical_mono_16bit(self):
        """44-byte header, mono 16-bit 44100 Hz, 1000 data bytes."""
        data = pcm16_wav(data_length=1000)
        self.assertEqual(len(data), 44 + 1000)

        header = parse_wav_header(data)
        self.assertEqual(header.format, 1)
        self.assertEqual(header.channels, 1)
        self.assertEqual(header.bit_depth, 16)
        self.assertEqual(header.sample_rate, 44100)
        self.assertEqual(header.data_length, 1000)
        self.assertEqual(header.data_offset, 44)

        smpl = parse_smpl_chunk(data)
        self.assertEqual(smpl.midi_note, -1)
        self.assertFalse(smpl.has_loop_data)

    def test_stereo_24bit(self):
        data = riff(fmt_chunk(channels=2, sample_rate=48000, bit_depth=24), chunk(b"data", b"\x00" * 60))
        header = parse_wav_header(data)
        self.assertEqual((header.channels, header.sample_rate, header.bit_depth), (2, 48000, 24))
        self.assertEqual(header.data_length, 60)

    def test_bad_riff_magic(self):
        data = b"RIFX" + pcm16_wav()[4:]
        with self.assertRaises(MalformedContainer):
            parse_wav_header(data)

    def test_bad_wave_magic(self):
        data = pcm16_wav()
        data = data[:8] + b"AVI " + data[12:]
        with self.assertRaises(MalformedContainer):
            parse_wav_header(data)

    def test_too_short(self):
        with self.assertRaises(MalformedContainer):
            parse_wav_header(b"RIFF")

    def test_missing_fmt_chunk(self):
        data = riff(chunk(b"data", b"\x00" * 10))
        with self.assertRaises(MissingFormatChunk):
            parse_wav_header(data)

    def test_truncated_fmt_chunk(self):
        data = riff(chunk(b"fmt ", b"\x01\x00\x01\x00"))
        with self.assertRaises(MalformedContainer):
            parse_wav_header(data)

    def test_non_pcm_codec_rejected(self):
        """IEEE float (3) is a different codec, not a parse-then-convert case."""
        data = riff(fmt_chunk(audio_format=3, bit_depth=32), chunk(b"data", b"\x00" * 8))
        with self.assertRaises(UnsupportedCodec) as ctx:
            parse_wav_header(data)
        self.assertEqual(ctx.exception.context["audio_format"], 3)

    def test_missing_data_chunk_is_not_an_error(self):
        header = parse_wav_header(riff(fmt_chunk()))
        self.assertEqual(header.data_length, 0)
        self.assertEqual(header.data_offset, -1)

    def test_unknown_chunks_are_skipped(self):
        data = riff(chunk(b"LIST", b"INFOtest"), fmt_chunk(sample_rate=22050), chunk(b"data", b"\x00" * 4))
        self.assertEqual(parse_wav_header(data).sample_rate, 22050)

    def test_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            parse_wav_header(b"not a wav file at all")


class TestChunkAlignment:
    """Odd-sized chunks: unpadded walk by default, RIFF pad bytes with align=True."""

    def test_unpadded_walk(self):
        data = riff(chunk(b"junk", b"abc"), fmt_chunk(), chunk(b"data", b"\x00\x00"))
        assert parse_wav_header(data).data_length == 2

    def test_padded_file_needs_align(self):
        data = riff(chunk(b"junk", b"abc", pad=True), fmt_chunk(), chunk(b"data", b"\x00\x00"))
        # Without alignment the walk is off by one byte and never finds fmt
        with pytest.raises(MissingFormatChunk):
            parse_wav_header(data)
        assert parse_wav_header(data, align=True).sample_rate == 44100

    def test_iter_chunks_reports_offsets(self):
        data = pcm16_wav(data_length=4)
        chunks = list(iter_chunks(data))
        assert [c[0] for c in chunks] == [b"fmt ", b"data"]
        assert chunks[0][1:] == (20, 16)
        assert chunks[1][1:] == (44, 4)


class TestParseSmplChunk(unittest.TestCase):

    def test_root_note_and_loop(self):
        data = pcm16_wav(extra_chunks=[smpl_chunk(unity_note=64, loops=[(100, 900)])])
        smpl = parse_smpl_chunk(data)
        self.assertEqual(smpl, SmplChunkData(midi_note=64, loop_start=100, loop_end=900, has_loop_data=True))

    def test_root_note_without_loops(self):
        data = pcm16_wav(extra_chunks=[smpl_chunk(unity_note=48)])
        smpl = parse_smpl_chunk(data)
        self.assertEqual(smpl.midi_note, 48)
        self.assertFalse(smpl.has_loop_data)
        self.assertEqual((smpl.loop_start, smpl.loop_end), (0, 0))

    def test_first_loop_wins(self):
        data = pcm16_wav(extra_chunks=[smpl_chunk(unity_note=60, loops=[(10, 20), (30, 40)])])
        smpl = parse_smpl_chunk(data)
        self.assertEqual((smpl.loop_start, smpl.loop_end), (10, 20))

    def test_out_of_range_note_is_absent(self):
        data = pcm16_wav(extra_chunks=[smpl_chunk(unity_note=300)])
        self.assertEqual(parse_smpl_chunk(data).midi_note, -1)

    def test_smpl_after_data(self):
        data = riff(fmt_chunk(), chunk(b"data", b"\x00" * 6), smpl_chunk(unity_note=72))
        self.assertEqual(parse_smpl_chunk(data).midi_note, 72)

    def test_truncated_smpl_chunk(self):
        data = riff(fmt_chunk(), chunk(b"smpl", b"\x00" * 8))
        self.assertEqual(parse_smpl_chunk(data), SmplChunkData())

    def test_not_a_riff_file(self):
        self.assertEqual(parse_smpl_chunk(b"garbage"), SmplChunkData())


class TestDecodePcmData(unittest.TestCase):

    def test_16bit_values(self):
        raw = struct.pack("<4h", 0, 32767, -32767, 16384)
        data = riff(fmt_chunk(), chunk(b"data", raw))
        buffer = decode_pcm_data(data)
        self.assertEqual(buffer.channels, 1)
        self.assertEqual(buffer.frame_count, 4)
        np.testing.assert_allclose(buffer.samples[0], [0.0, 1.0, -1.0, 16384 / 32767], atol=1e-7)

    def test_stereo_deinterleave(self):
        raw = struct.pack("<4h", 100, -100, 200, -200)
        data = riff(fmt_chunk(channels=2), chunk(b"data", raw))
        buffer = decode_pcm_data(data)
        self.assertEqual(buffer.samples.shape, (2, 2))
        np.testing.assert_allclose(buffer.samples[0] * 32767, [100, 200], atol=1e-3)
        np.testing.assert_allclose(buffer.samples[1] * 32767, [-100, -200], atol=1e-3)

    def test_24bit_sign_extension(self):
        raw = b"\xff\xff\x7f" + b"\x01\x00\x80" + b"\xff\xff\xff"
        data = riff(fmt_chunk(bit_depth=24), chunk(b"data", raw))
        buffer = decode_pcm_data(data)
        np.testing.assert_allclose(
            buffer.samples[0], [1.0, -8388607 / 8388607, -1 / 8388607], atol=1e-7
        )

    def test_8bit_unsigned(self):
        data = riff(fmt_chunk(bit_depth=8), chunk(b"data", bytes([128, 255, 1])))
        np.testing.assert_allclose(decode_pcm_data(data).samples[0], [0.0, 1.0, -1.0], atol=1e-7)

    def test_partial_frame_dropped(self):
        data = riff(fmt_chunk(channels=2), chunk(b"data", b"\x00" * 6))
        self.assertEqual(decode_pcm_data(data).frame_count, 1)

    def test_no_data_chunk(self):
        buffer = decode_pcm_data(riff(fmt_chunk()))
        self.assertEqual(buffer.frame_count, 0)

    def test_32bit_values(self):
        raw = struct.pack("<3i", 0, 2147483647, -1073741824)
        data = riff(fmt_chunk(bit_depth=32), chunk(b"data", raw))
        np.testing.assert_allclose(
            decode_pcm_data(data).samples[0], [0.0, 1.0, -1073741824 / 2147483647], atol=1e-7
        )

    def test_unsupported_bit_depth(self):
        data = riff(fmt_chunk(bit_depth=12), chunk(b"data", b"\x00" * 4))
        with self.assertRaises(UnsupportedCodec):
            decode_pcm_data(data)

    def test_unpadded_odd_chunk_before_data(self):
        raw = struct.pack("<2h", 16384, -16384)
        data = riff(fmt_chunk(), chunk(b"LIST", b"abc"), chunk(b"data", raw))
        np.testing.assert_allclose(
            decode_pcm_data(data).samples[0], [16384 / 32767, -16384 / 32767], atol=1e-7
        )


class TestReadWavMetadata:

    def test_soundfile_decode(self):
        audio = sine(frames=2205)
        data = soundfile_wav(audio, 44100)
        meta = read_wav_metadata(data, filename="tone.wav")

        assert meta.sample_rate == 44100
        assert meta.bit_depth == 16
        assert meta.channels == 1
        assert meta.frame_count == 2205
        assert meta.duration_seconds == pytest.approx(0.05)
        assert meta.file_size_bytes == len(data)
        assert meta.filename == "tone.wav"
        assert meta.midi_note == -1

    def test_root_note_from_smpl(self):
        data = with_smpl(pcm16_wav(data_length=200), unity_note=67, loops=[(0, 50)])
        meta = read_wav_metadata(data, filename="piano_C3.wav", decoder=decode_pcm_data)
        assert meta.midi_note == 67
        assert meta.smpl.has_loop_data

    def test_root_note_from_filename(self):
        meta = read_wav_metadata(pcm16_wav(data_length=200), filename="piano_C3.wav", decoder=decode_pcm_data)
        assert meta.midi_note == 60

    def test_unparseable_filename_is_ignored(self):
        meta = read_wav_metadata(pcm16_wav(data_length=200), filename="kick.wav", decoder=decode_pcm_data)
        assert meta.midi_note == -1

    def test_numeric_filename_out_of_range(self):
        meta = read_wav_metadata(pcm16_wav(data_length=200), filename="pad-200.wav", decoder=decode_pcm_data)
        assert meta.midi_note == -1

    def test_injected_decoder(self):
        calls = []

        def decoder(data):
            calls.append(len(data))
            return decode_pcm_data(data)

        data = pcm16_wav(data_length=20)
        meta = read_wav_metadata(data, decoder=decoder)
        assert calls == [len(data)]
        assert meta.frame_count == 10

    def test_codec_failure_propagates(self):
        data = riff(fmt_chunk(audio_format=3, bit_depth=32), chunk(b"data", b"\x00" * 8))
        with pytest.raises(UnsupportedCodec):
            read_wav_metadata(data)

    def test_decoder_failure(self):
        def broken(data):
            raise DecodeError("Could not decode audio data")

        with pytest.raises(DecodeError):
            read_wav_metadata(pcm16_wav(), decoder=broken)
