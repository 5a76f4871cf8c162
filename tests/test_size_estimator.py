"""
Tests for patch size estimation and budget warnings.
"""

import unittest

import numpy as np

from patchlib.converter import ConversionOptions
from patchlib.pcm import PcmBuffer
from patchlib.size_estimator import (
    APPROACHING_LIMIT_MESSAGE,
    PATCH_SIZE_LIMIT,
    TOO_LARGE_MESSAGE,
    BufferInfo,
    check_patch_budget,
    estimate_file_size,
    estimate_patch_size,
    format_file_size,
    get_patch_size_warning,
    is_patch_size_valid,
)


class TestEstimateFileSize(unittest.TestCase):

    def test_one_second_mono_16bit(self):
        info = BufferInfo(duration_seconds=1.0, sample_rate=44100, channels=1)
        self.assertEqual(estimate_file_size(info, ConversionOptions()), 44 + 44100 * 2)

    def test_stereo_24bit_at_target_rate(self):
        info = BufferInfo(duration_seconds=2.0, sample_rate=44100, channels=1)
        options = ConversionOptions(sample_rate=22050, bit_depth=24, channels=2)
        self.assertEqual(estimate_file_size(info, options), 44 + 44100 * 2 * 3)

    def test_partial_frames_round_up(self):
        info = BufferInfo(duration_seconds=0.00001, sample_rate=44100, channels=1)
        self.assertEqual(estimate_file_size(info, ConversionOptions()), 44 + 2)

    def test_exact_duration_does_not_round_up(self):
        buffer = PcmBuffer(np.zeros(1000), 44100)
        self.assertEqual(estimate_file_size(buffer, ConversionOptions()), 44 + 2000)

    def test_empty_buffer_is_header_only(self):
        info = BufferInfo(duration_seconds=0.0, sample_rate=44100, channels=2)
        self.assertEqual(estimate_file_size(info, ConversionOptions()), 44)

    def test_patch_is_sum_of_files(self):
        infos = [BufferInfo(1.0, 48000, 1), BufferInfo(0.5, 48000, 2)]
        options = ConversionOptions(bit_depth=16)
        self.assertEqual(
            estimate_patch_size(infos, options),
            (44 + 96000) + (44 + 48000 * 2),
        )

    def test_no_buffers(self):
        self.assertEqual(estimate_patch_size([], ConversionOptions()), 0)


class TestBudget(unittest.TestCase):

    def test_limit_is_8_mib(self):
        self.assertEqual(PATCH_SIZE_LIMIT, 8388608)

    def test_validity_is_inclusive(self):
        self.assertTrue(is_patch_size_valid(PATCH_SIZE_LIMIT))
        self.assertFalse(is_patch_size_valid(PATCH_SIZE_LIMIT + 1))

    def test_warning_thresholds(self):
        self.assertIsNone(get_patch_size_warning(int(PATCH_SIZE_LIMIT * 0.74)))
        self.assertEqual(get_patch_size_warning(int(PATCH_SIZE_LIMIT * 0.75)), APPROACHING_LIMIT_MESSAGE)
        self.assertEqual(get_patch_size_warning(PATCH_SIZE_LIMIT - PATCH_SIZE_LIMIT // 20), TOO_LARGE_MESSAGE)
        self.assertEqual(get_patch_size_warning(PATCH_SIZE_LIMIT * 2), TOO_LARGE_MESSAGE)

    def test_custom_limit(self):
        self.assertEqual(get_patch_size_warning(80, limit=100), APPROACHING_LIMIT_MESSAGE)

    def test_check_patch_budget_returns_warning(self):
        self.assertIsNone(check_patch_budget(1024))
        self.assertEqual(check_patch_budget(PATCH_SIZE_LIMIT + 1), TOO_LARGE_MESSAGE)


class TestFormatFileSize(unittest.TestCase):

    def test_units(self):
        self.assertEqual(format_file_size(0), "0 mb")
        self.assertEqual(format_file_size(512), "512 b")
        self.assertEqual(format_file_size(1536), "1.5 kb")
        self.assertEqual(format_file_size(8388608), "8.0 mb")


if __name__ == "__main__":
    unittest.main()
