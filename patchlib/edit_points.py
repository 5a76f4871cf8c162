"""
Edit-point helpers: snap trim points to nearby zero crossings.
"""

from enum import Enum
from typing import Tuple, Union

import numpy as np

from patchlib.logger import get_logger

logger = get_logger(__name__)

ZERO_THRESHOLD = 0.001
DEFAULT_MAX_DISTANCE = 1000


class SearchDirection(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    BOTH = "both"


def _amplitude(frames: np.ndarray) -> np.ndarray:
    """Absolute amplitude per frame; the loudest channel wins for multichannel input."""
    data = np.asarray(frames, dtype=np.float64)
    if data.ndim == 2:
        amp = np.max(np.abs(data), axis=0)
    else:
        amp = np.abs(data)
    return np.nan_to_num(amp, nan=np.inf)


def _search_order(position: int, length: int, direction: SearchDirection, max_distance: int) -> np.ndarray:
    """Candidate indices ordered by distance from position (earlier side first on ties)."""
    # Nothing lies further than length frames away
    offsets = np.arange(1, min(max(max_distance, 0), length) + 1)
    if direction == SearchDirection.FORWARD:
        others = position + offsets
    elif direction == SearchDirection.BACKWARD:
        others = position - offsets
    else:
        others = np.column_stack((position - offsets, position + offsets)).ravel()

    order = np.concatenate(([position], others))
    return order[(order >= 0) & (order < length)]


def find_nearest_zero_crossing(
    frames: np.ndarray,
    position: int,
    direction: Union[SearchDirection, str] = SearchDirection.BOTH,
    max_distance: int = DEFAULT_MAX_DISTANCE,
    threshold: float = ZERO_THRESHOLD,
) -> int:
    """
    Find the quietest frame near position, stopping early at a near-zero one.

    The window is [position - max_distance, position + max_distance] clipped to
    the buffer; FORWARD and BACKWARD keep only one side of it. Candidates are
    visited outward from position, so the first frame with
    |amplitude| < threshold is also the closest one. Without such a frame the
    minimum-amplitude candidate is returned.

    Args:
        frames: Mono frames (N,) or multichannel (channels, N)
        position: Requested frame index, clamped to [0, N-1]
        direction: SearchDirection or its string value
        max_distance: Search radius in frames
        threshold: Amplitude treated as a zero crossing

    Returns:
        Frame index in [0, N-1]

    Raises:
        ValueError: If the buffer is empty
    """
    amp = _amplitude(frames)
    length = amp.shape[-1]
    if length == 0:
        raise ValueError("Cannot search an empty buffer")

    direction = SearchDirection(direction)
    position = int(min(max(int(position), 0), length - 1))

    candidates = _search_order(position, length, direction, int(max_distance))
    values = amp[candidates]

    hits = np.flatnonzero(values < threshold)
    if hits.size:
        return int(candidates[hits[0]])

    return int(candidates[int(np.argmin(values))])


def snap_trim_points(
    frames: np.ndarray,
    in_point: int,
    out_point: int,
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> Tuple[int, int]:
    """
    Move in/out points onto zero crossings: the in-point searches forward,
    the out-point backward. Returns the originals if snapping would cross them.
    """
    new_in = find_nearest_zero_crossing(frames, in_point, SearchDirection.FORWARD, max_distance)
    new_out = find_nearest_zero_crossing(frames, out_point, SearchDirection.BACKWARD, max_distance)

    if new_in >= new_out:
        logger.debug(f"Snapping crossed trim points ({new_in} >= {new_out}); keeping originals")
        return int(in_point), int(out_point)
    return new_in, new_out
