"""
Tests for channel routing, rendering and the export format policies.
"""

import unittest

import numpy as np
import pytest

from patchlib.converter import (
    ConversionOptions,
    convert_audio_format,
    get_effective_bit_depth,
    get_effective_channels,
    get_effective_sample_rate,
    needs_conversion,
    remap_channels,
    render_offline,
    target_frame_count,
)
from patchlib.exceptions import ConversionError, InvalidParameter
from patchlib.pcm import PcmBuffer


def zero_renderer(buffer, channels, frame_count, sample_rate):
    """Renders silence of the requested shape."""
    return PcmBuffer(np.zeros((channels, frame_count)), sample_rate)


class TestEffectiveSampleRate(unittest.TestCase):

    def test_keep_original(self):
        for selected in ("0", 0, None, "keep"):
            self.assertEqual(get_effective_sample_rate(44100, selected), 44100)

    def test_never_upsamples(self):
        self.assertEqual(get_effective_sample_rate(22050, "44100"), 22050)
        self.assertEqual(get_effective_sample_rate(44100, 96000), 44100)

    def test_downsamples(self):
        self.assertEqual(get_effective_sample_rate(44100, "22050"), 22050)

    def test_hardware_rate_may_go_anywhere(self):
        self.assertEqual(get_effective_sample_rate(48000, "96000"), 96000)
        self.assertEqual(get_effective_sample_rate(48000, 22050), 22050)

    def test_invalid_selection(self):
        with self.assertRaises(InvalidParameter):
            get_effective_sample_rate(44100, "fast")
        with self.assertRaises(InvalidParameter):
            get_effective_sample_rate(44100, -1)


class TestEffectiveBitDepthAndChannels(unittest.TestCase):

    def test_bit_depth_keep(self):
        self.assertEqual(get_effective_bit_depth(8, "keep"), 16)
        self.assertEqual(get_effective_bit_depth(16, None), 16)
        self.assertEqual(get_effective_bit_depth(24, "keep"), 24)
        self.assertEqual(get_effective_bit_depth(32, "keep"), 24)

    def test_bit_depth_never_increases(self):
        self.assertEqual(get_effective_bit_depth(16, 24), 16)
        self.assertEqual(get_effective_bit_depth(24, "16"), 16)

    def test_bit_depth_invalid(self):
        with self.assertRaises(InvalidParameter):
            get_effective_bit_depth(16, 12)

    def test_channels(self):
        self.assertEqual(get_effective_channels(2, "mono"), 1)
        self.assertEqual(get_effective_channels(1, "Stereo"), 2)
        self.assertEqual(get_effective_channels(2, "keep"), 2)
        self.assertEqual(get_effective_channels(1, 2), 2)
        with self.assertRaises(InvalidParameter):
            get_effective_channels(1, "surround")

    def test_needs_conversion(self):
        self.assertFalse(needs_conversion(44100, 16, 1, 44100, 16, 1))
        self.assertTrue(needs_conversion(44100, 16, 2, 44100, 16, 1))
        self.assertTrue(needs_conversion(44100, 24, 1, 44100, 16, 1))


class TestConversionOptions(unittest.TestCase):

    def test_defaults_keep_everything(self):
        options = ConversionOptions()
        self.assertIsNone(options.sample_rate)

    def test_rejects_bad_values(self):
        with self.assertRaises(InvalidParameter):
            ConversionOptions(sample_rate=0)
        with self.assertRaises(InvalidParameter):
            ConversionOptions(bit_depth=32)
        with self.assertRaises(InvalidParameter):
            ConversionOptions(channels=6)


class TestRemapChannels:

    def test_stereo_to_mono_sums(self):
        samples = np.array([[0.25, 0.5], [0.25, -0.5]])
        np.testing.assert_allclose(remap_channels(samples, 1), [[0.5, 0.0]])

    def test_sum_is_not_normalized(self):
        samples = np.array([[0.75], [0.75]])
        assert remap_channels(samples, 1)[0, 0] == pytest.approx(1.5)

    def test_mono_to_stereo_duplicates(self):
        out = remap_channels(np.array([[0.1, 0.2, 0.3]]), 2)
        assert out.shape == (2, 3)
        np.testing.assert_array_equal(out[0], out[1])

    def test_passthrough_is_a_copy(self):
        samples = np.array([[0.1, 0.2]])
        out = remap_channels(samples, 1)
        out[0, 0] = 9.0
        assert samples[0, 0] == pytest.approx(0.1)

    def test_other_layouts_copy_index_wise(self):
        samples = np.array([[1.0], [2.0], [3.0]])
        np.testing.assert_array_equal(remap_channels(samples, 2), [[1.0], [2.0]])


class TestConvertAudioFormat:

    def test_frame_count_rounds_up(self):
        assert target_frame_count(44100, 44100, 22050) == 22050
        assert target_frame_count(3, 44100, 22050) == 2
        assert target_frame_count(1, 48000, 44100) == 1

    def test_same_rate_skips_renderer(self):
        calls = []

        def renderer(*args):
            calls.append(args)
            return zero_renderer(*args)

        buffer = PcmBuffer(np.ones((2, 10)) * 0.25, 44100)
        out = convert_audio_format(buffer, ConversionOptions(channels=1), renderer=renderer)
        assert calls == []
        assert out.channels == 1
        np.testing.assert_allclose(out.samples[0], 0.5)

    def test_renderer_receives_routed_buffer(self):
        seen = {}

        def renderer(buffer, channels, frame_count, sample_rate):
            seen.update(channels=buffer.channels, frame_count=frame_count, sample_rate=sample_rate)
            return zero_renderer(buffer, channels, frame_count, sample_rate)

        buffer = PcmBuffer(np.zeros(441), 44100)
        out = convert_audio_format(buffer, ConversionOptions(sample_rate=22050, channels=2), renderer=renderer)
        assert seen == {"channels": 2, "frame_count": 221, "sample_rate": 22050}
        assert (out.channels, out.frame_count, out.sample_rate) == (2, 221, 22050)

    def test_renderer_failure_is_wrapped(self):
        def broken(*args):
            raise RuntimeError("audio device lost")

        with pytest.raises(ConversionError) as excinfo:
            convert_audio_format(PcmBuffer(np.zeros(100), 44100), ConversionOptions(sample_rate=22050), broken)
        assert "audio device lost" in str(excinfo.value)

    def test_wrong_shape_is_rejected(self):
        def short(buffer, channels, frame_count, sample_rate):
            return zero_renderer(buffer, channels, frame_count - 1, sample_rate)

        with pytest.raises(ConversionError):
            convert_audio_format(PcmBuffer(np.zeros(100), 44100), ConversionOptions(sample_rate=22050), short)

    def test_render_offline_with_librosa(self):
        t = np.arange(4410) / 44100
        buffer = PcmBuffer(0.5 * np.sin(2 * np.pi * 440 * t), 44100)
        out = convert_audio_format(buffer, ConversionOptions(sample_rate=22050))
        assert out.sample_rate == 22050
        assert out.frame_count == 2205
        assert np.max(np.abs(out.samples)) == pytest.approx(0.5, abs=0.05)

    def test_render_offline_checks_channels(self):
        with pytest.raises(ConversionError):
            render_offline(PcmBuffer(np.zeros(10), 44100), 2, 5, 22050)
