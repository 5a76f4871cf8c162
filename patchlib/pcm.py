"""
PCM buffer type and the default decode collaborator.

Audio is held as float32 frames in the (channels, frames) layout, one row per
channel, values nominally in [-1, 1].
"""

import io
from dataclasses import dataclass
from typing import Callable

import numpy as np
import soundfile as sf

from patchlib.logger import get_logger
from patchlib.exceptions import DecodeError

logger = get_logger(__name__)


@dataclass(frozen=True)
class PcmBuffer:
    """Decoded audio: per-channel float frames plus the sample rate."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        data = np.asarray(self.samples, dtype=np.float32)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2:
            raise ValueError(f"PCM samples must be 1D or 2D, got {data.ndim}D")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        object.__setattr__(self, "samples", data)

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frame_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        """Frames of one channel."""
        return self.samples[index]

    @classmethod
    def from_interleaved(cls, frames: np.ndarray, sample_rate: int) -> "PcmBuffer":
        """Build from soundfile-style (frames, channels) data."""
        frames = np.asarray(frames)
        if frames.ndim == 1:
            return cls(frames, sample_rate)
        return cls(frames.T, sample_rate)


# Decoder signature: raw container bytes -> PcmBuffer
Decoder = Callable[[bytes], PcmBuffer]


def decode_audio(data: bytes) -> PcmBuffer:
    """
    Decode container bytes (WAV, AIFF, FLAC, ...) with soundfile.

    Args:
        data: Complete file contents

    Returns:
        Decoded PcmBuffer at the file's native sample rate

    Raises:
        DecodeError: If soundfile cannot read the data
    """
    try:
        frames, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (RuntimeError, TypeError, ValueError) as e:
        logger.debug(f"soundfile could not decode {len(data)} bytes: {e}")
        raise DecodeError(
            "Could not decode audio data",
            context={"size_bytes": len(data), "error": str(e)}
        )

    if frames.shape[0] == 0:
        logger.debug("Decoded audio has no frames")

    return PcmBuffer.from_interleaved(frames, int(sr))
