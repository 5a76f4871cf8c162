"""
WAV encoding: canonical 44-byte header, 16- or 24-bit little-endian PCM.
"""

import struct

import numpy as np

from patchlib.logger import get_logger
from patchlib.exceptions import UnsupportedBitDepth, UnsupportedChannelLayout
from patchlib.pcm import PcmBuffer

logger = get_logger(__name__)

HEADER_LENGTH = 44
FULL_SCALE = {16: 32767, 24: 8388607}


def wav_header(data_size: int, sample_rate: int, channels: int, bit_depth: int) -> bytes:
    """RIFF/WAVE/fmt/data header for a linear PCM payload of data_size bytes."""
    bytes_per_sample = bit_depth // 8
    block_align = channels * bytes_per_sample
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        data_size + 36,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bit_depth,
        b"data",
        data_size,
    )


def quantize(samples: np.ndarray, bit_depth: int) -> np.ndarray:
    """
    Clamp to [-1, 1], scale by the symmetric full-scale value and round half up.

    Returns int32 values (channels, frames).
    """
    scale = FULL_SCALE[bit_depth]
    clipped = np.clip(np.nan_to_num(np.asarray(samples, dtype=np.float64)), -1.0, 1.0)
    return np.floor(clipped * scale + 0.5).astype(np.int32)


def encode_wav(buffer: PcmBuffer, bit_depth: int = 16) -> bytes:
    """
    Serialize a buffer as a WAV file.

    Args:
        buffer: Mono or stereo audio
        bit_depth: 16 or 24

    Returns:
        Complete WAV file bytes, interleaved by channel

    Raises:
        UnsupportedChannelLayout: If the buffer is not mono or stereo
        UnsupportedBitDepth: If bit_depth is not 16 or 24
    """
    if buffer.channels not in (1, 2):
        raise UnsupportedChannelLayout(
            "Expecting mono or stereo audioBuffer",
            context={"channels": buffer.channels}
        )
    if bit_depth not in FULL_SCALE:
        raise UnsupportedBitDepth(
            f"Unsupported bit depth: {bit_depth}",
            context={"bit_depth": bit_depth}
        )

    ints = quantize(buffer.samples, bit_depth)
    interleaved = ints.T.reshape(-1)

    if bit_depth == 16:
        payload = interleaved.astype("<i2").tobytes()
    else:
        # Low three bytes of each little-endian int32, no padding
        as_bytes = interleaved.astype("<i4").view(np.uint8).reshape(-1, 4)
        payload = as_bytes[:, :3].tobytes()

    header = wav_header(len(payload), buffer.sample_rate, buffer.channels, bit_depth)
    logger.debug(
        f"Encoded {buffer.frame_count} frames, {buffer.channels}ch, {bit_depth}-bit "
        f"({HEADER_LENGTH + len(payload)} bytes)"
    )
    return header + payload
