"""
Format conversion: channel routing, resampling, and the export rate/depth/channel policies.

Resampling itself is delegated to a renderer callable with the signature
renderer(buffer, channels, frame_count, sample_rate) -> PcmBuffer. The default,
render_offline, uses librosa. Tests and callers can inject their own.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import librosa
import numpy as np

from patchlib.logger import get_logger
from patchlib.exceptions import ConversionError, InvalidParameter, PatchlibError
from patchlib.pcm import PcmBuffer

logger = get_logger(__name__)


HARDWARE_SAMPLE_RATE = 48000
EMITTED_BIT_DEPTHS = (16, 24)
KEEP = ("0", "keep", "")

Renderer = Callable[[PcmBuffer, int, int, int], PcmBuffer]


@dataclass(frozen=True)
class ConversionOptions:
    """Target format. None in any field keeps the source value."""

    sample_rate: Optional[int] = None
    bit_depth: Optional[int] = None
    channels: Optional[int] = None

    def __post_init__(self):
        if self.sample_rate is not None and (not isinstance(self.sample_rate, int) or self.sample_rate <= 0):
            raise InvalidParameter(
                "sample_rate must be a positive integer",
                context={"sample_rate": self.sample_rate}
            )
        if self.bit_depth is not None and self.bit_depth not in EMITTED_BIT_DEPTHS:
            raise InvalidParameter("bit_depth must be 16 or 24", context={"bit_depth": self.bit_depth})
        if self.channels is not None and self.channels not in (1, 2):
            raise InvalidParameter("channels must be 1 or 2", context={"channels": self.channels})


def target_frame_count(frame_count: int, source_rate: int, target_rate: int) -> int:
    """ceil(duration * target_rate), computed without float rounding error."""
    return -(-frame_count * target_rate // source_rate)


def remap_channels(samples: np.ndarray, target_channels: int) -> np.ndarray:
    """
    Route (channels, frames) data to target_channels.

    stereo -> mono sums both channels (no averaging, no gain compensation);
    mono -> stereo duplicates; equal counts pass through; any other pairing
    copies channels index-wise and leaves the remaining outputs silent.
    """
    source_channels, frames = samples.shape

    if source_channels == target_channels:
        return samples.copy()
    if source_channels == 2 and target_channels == 1:
        return (samples[0] + samples[1])[np.newaxis, :]
    if source_channels == 1 and target_channels == 2:
        return np.vstack((samples[0], samples[0]))

    out = np.zeros((target_channels, frames), dtype=samples.dtype)
    shared = min(source_channels, target_channels)
    out[:shared] = samples[:shared]
    return out


def render_offline(buffer: PcmBuffer, channels: int, frame_count: int, sample_rate: int) -> PcmBuffer:
    """
    Default renderer: resample with librosa and fit the result to frame_count.

    The buffer must already carry `channels` rows.
    """
    if buffer.channels != channels:
        raise ConversionError(
            "Renderer received a buffer with the wrong channel count",
            context={"expected": channels, "actual": buffer.channels}
        )

    data = buffer.samples
    if sample_rate != buffer.sample_rate and buffer.frame_count > 0:
        data = librosa.resample(
            data,
            orig_sr=buffer.sample_rate,
            target_sr=sample_rate,
            res_type="polyphase",
            axis=-1,
        )

    if data.shape[-1] < frame_count:
        data = np.pad(data, ((0, 0), (0, frame_count - data.shape[-1])))
    elif data.shape[-1] > frame_count:
        data = data[:, :frame_count]

    return PcmBuffer(data.astype(np.float32), sample_rate)


def convert_audio_format(
    buffer: PcmBuffer,
    options: ConversionOptions,
    renderer: Renderer = render_offline,
) -> PcmBuffer:
    """
    Convert a buffer to the target sample rate and channel count.

    Bit depth is not applied here; it is a property of the encoded file
    (see patchlib.wav_encoder). No upsampling guard is applied either; use
    get_effective_sample_rate to pick the rate.

    Args:
        buffer: Source audio
        options: Target format
        renderer: Offline rendering capability

    Returns:
        New PcmBuffer with ceil(duration * target_rate) frames

    Raises:
        ConversionError: If rendering fails or returns the wrong shape
    """
    target_rate = options.sample_rate or buffer.sample_rate
    target_channels = options.channels or buffer.channels

    routed = PcmBuffer(remap_channels(buffer.samples, target_channels), buffer.sample_rate)
    frame_count = target_frame_count(buffer.frame_count, buffer.sample_rate, target_rate)

    if target_rate == buffer.sample_rate:
        return routed

    logger.debug(
        f"Rendering {buffer.channels}ch {buffer.sample_rate} Hz -> "
        f"{target_channels}ch {target_rate} Hz ({frame_count} frames)"
    )

    try:
        rendered = renderer(routed, target_channels, frame_count, target_rate)
    except PatchlibError:
        raise
    except Exception as e:
        raise ConversionError(
            "Offline rendering failed",
            context={"target_rate": target_rate, "target_channels": target_channels, "error": str(e)}
        )

    if rendered.channels != target_channels or rendered.frame_count != frame_count:
        raise ConversionError(
            "Renderer returned an unexpected shape",
            context={
                "expected": (target_channels, frame_count),
                "actual": (rendered.channels, rendered.frame_count),
            }
        )
    return rendered


def _is_keep(selected) -> bool:
    if selected is None:
        return True
    if isinstance(selected, str):
        return selected.strip().lower() in KEEP
    return selected == 0


def get_effective_sample_rate(original: int, selected: Union[str, int, None]) -> int:
    """
    Pick the export sample rate without ever upsampling.

    "0" (or 0/None) keeps the original. A 48 kHz source, the hardware's native
    rate, may be converted to any selected rate; every other source gets
    min(original, selected).

    Raises:
        InvalidParameter: If selected is not a rate
    """
    if _is_keep(selected):
        return original

    try:
        target = int(selected)
    except (TypeError, ValueError):
        raise InvalidParameter("Sample rate must be a number or '0'", context={"selected": selected})
    if target <= 0:
        raise InvalidParameter("Sample rate must be positive", context={"selected": selected})

    if original == HARDWARE_SAMPLE_RATE:
        return target
    return min(original, target)


def get_effective_bit_depth(original: int, selected: Union[str, int, None]) -> int:
    """
    Pick the export bit depth (16 or 24) without adding resolution the source lacks.

    "keep" maps 8/16-bit sources to 16 and deeper sources to 24.
    """
    if _is_keep(selected):
        return 16 if original <= 16 else 24

    try:
        target = int(selected)
    except (TypeError, ValueError):
        raise InvalidParameter("Bit depth must be 16, 24 or 'keep'", context={"selected": selected})
    if target not in EMITTED_BIT_DEPTHS:
        raise InvalidParameter("Bit depth must be 16, 24 or 'keep'", context={"selected": selected})

    if target == 24 and original < 24:
        return 16
    return target


def get_effective_channels(original: int, selected: Union[str, int, None]) -> int:
    """'mono' -> 1, 'stereo' -> 2, 'keep' -> original."""
    if _is_keep(selected):
        return original
    if isinstance(selected, str):
        name = selected.strip().lower()
        if name == "mono":
            return 1
        if name == "stereo":
            return 2
    try:
        target = int(selected)
    except (TypeError, ValueError):
        target = -1
    if target in (1, 2):
        return target
    raise InvalidParameter("Channels must be 'keep', 'mono' or 'stereo'", context={"selected": selected})


def needs_conversion(source_rate: int, source_bit_depth: int, source_channels: int,
                     target_rate: int, target_bit_depth: int, target_channels: int) -> bool:
    """True when any dimension changes."""
    return (
        source_rate != target_rate
        or source_bit_depth != target_bit_depth
        or source_channels != target_channels
    )
