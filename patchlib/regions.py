"""
Region mapping for drum kits and multisample instruments.

Multisample regions are derived from the loaded samples' root notes: samples
are sorted by root note (highest first) and each one owns the keys between
the midpoints to its neighbours. Drum regions map each loaded slot to one
key, starting at F3 (MIDI 53).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from patchlib.logger import get_logger
from patchlib.exceptions import FilenamePatternError, InvalidParameter, NoteFormatError
from patchlib.notes import parse_filename
from patchlib.packager import sample_filename
from patchlib.pcm import PcmBuffer
from patchlib.wav_parser import SmplChunkData, WavMetadata

logger = get_logger(__name__)

DRUM_SLOT_COUNT = 24
DRUM_FIRST_NOTE = 53
DRUM_KEYCENTER = 60
DEFAULT_ROOT_NOTE = 60
MAX_MIDI_NOTE = 127

TargetRate = Union[None, int, Sequence[Optional[int]]]

DRUM_PLAYMODES = ("oneshot", "group", "loop", "gate")
TUNE_RANGE = (-48, 48)
GAIN_RANGE = (-30.0, 20.0)
PAN_RANGE = (-100, 100)


@dataclass
class LoadedSample:
    """
    One decoded sample plus the edits made to it before export.

    Frame positions (in/out/loop points) are in source frames. None means
    "not edited": full range for in/out, SMPL loop (or full range) for loops.
    """

    buffer: PcmBuffer
    filename: str = ""
    bit_depth: int = 16
    smpl: SmplChunkData = field(default_factory=SmplChunkData)
    root_note: int = -1
    in_point: Optional[int] = None
    out_point: Optional[int] = None
    loop_start: Optional[int] = None
    loop_end: Optional[int] = None
    gain: float = 0.0
    pan: int = 0
    tune: int = 0
    reverse: bool = False

    @classmethod
    def from_metadata(cls, metadata: WavMetadata, **edits) -> "LoadedSample":
        """Wrap parsed WAV metadata; keyword arguments set edit fields."""
        return cls(
            buffer=metadata.buffer,
            filename=metadata.filename or "",
            bit_depth=metadata.bit_depth,
            smpl=metadata.smpl,
            root_note=metadata.midi_note,
            **edits,
        )

    @property
    def frame_count(self) -> int:
        return self.buffer.frame_count

    @property
    def sample_rate(self) -> int:
        return self.buffer.sample_rate

    @property
    def duration_seconds(self) -> float:
        return self.buffer.duration_seconds

    @property
    def channels(self) -> int:
        return self.buffer.channels


@dataclass
class DrumSampleSlot:
    """One of the 24 drum pads. An empty slot has sample=None."""

    sample: Optional[LoadedSample] = None
    in_point: Optional[int] = None
    out_point: Optional[int] = None
    playmode: str = "oneshot"
    reverse: bool = False
    tune: int = 0
    gain: float = 0.0
    pan: int = 0

    @property
    def is_loaded(self) -> bool:
        return self.sample is not None

    def clear(self) -> None:
        self.sample = None
        self.in_point = None
        self.out_point = None

    def validate(self) -> None:
        """
        Check value ranges and trim points.

        Raises:
            InvalidParameter: On the first out-of-range value
        """
        if self.playmode not in DRUM_PLAYMODES:
            raise InvalidParameter(
                f"Unknown drum playmode '{self.playmode}'",
                context={"allowed": ", ".join(DRUM_PLAYMODES)}
            )
        _check_range("tune", self.tune, TUNE_RANGE)
        _check_range("gain", self.gain, GAIN_RANGE)
        _check_range("pan", self.pan, PAN_RANGE)

        if self.sample is None:
            return
        last_frame = self.sample.frame_count - 1
        start, end = self.trim_points()
        if not (0 <= start < end <= last_frame):
            raise InvalidParameter(
                "Trim points must satisfy 0 <= in_point < out_point <= frame_count - 1",
                context={"in_point": start, "out_point": end, "frame_count": self.sample.frame_count}
            )

    def trim_points(self) -> Tuple[int, int]:
        """(in, out) in source frames, defaulting to the whole sample."""
        last_frame = self.sample.frame_count - 1 if self.sample is not None else 0
        start = 0 if self.in_point is None else int(self.in_point)
        end = last_frame if self.out_point is None else int(self.out_point)
        return start, end


@dataclass
class MultisampleRegion:
    root_note: int
    low_key: int
    high_key: int
    sample: str
    frame_count: int
    start_frame: int
    end_frame: int
    loop_start: int
    loop_end: int
    loop_enabled: bool = False
    loop_on_release: bool = False
    gain: float = 0.0
    pan: int = 0
    tune: int = 0
    reverse: bool = False
    source_index: int = -1

    def to_json(self) -> Dict[str, Any]:
        """OP-XY multisampler region. The device has no per-region pan, so pan is not written."""
        return {
            "framecount": self.frame_count,
            "gain": self.gain,
            "hikey": self.high_key,
            "lokey": self.low_key,
            "loop.crossfade": 0,
            "loop.end": self.loop_end,
            "loop.onrelease": self.loop_on_release,
            "loop.enabled": self.loop_enabled,
            "loop.start": self.loop_start,
            "pitch.keycenter": self.root_note,
            "reverse": self.reverse,
            "sample": self.sample,
            "sample.end": self.end_frame,
            "sample.start": self.start_frame,
            "tune": self.tune,
        }


@dataclass
class DrumRegion:
    note: int
    sample: str
    frame_count: int
    playmode: str = "oneshot"
    reverse: bool = False
    tune: int = 0
    gain: float = 0.0
    pan: int = 0
    start_frame: Optional[int] = None
    end_frame: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        region = {
            "fade.in": 0,
            "fade.out": 0,
            "framecount": self.frame_count,
            "gain": self.gain,
            "hikey": self.note,
            "lokey": self.note,
            "pan": self.pan,
            "pitch.keycenter": DRUM_KEYCENTER,
            "playmode": self.playmode,
            "reverse": self.reverse,
            "sample": self.sample,
            "transpose": 0,
            "tune": self.tune,
        }
        if self.start_frame is not None:
            region["sample.start"] = self.start_frame
        if self.end_frame is not None:
            region["sample.end"] = self.end_frame
        return region


def _check_range(name: str, value, bounds) -> None:
    low, high = bounds
    if not (low <= value <= high):
        raise InvalidParameter(
            f"{name} must be between {low} and {high}",
            context={name: value}
        )


def scaled_frame_count(sample: LoadedSample, target_sample_rate: Optional[int] = None) -> int:
    """floor(duration * rate), the frame count written to the descriptor."""
    rate = target_sample_rate or sample.sample_rate
    return sample.frame_count * rate // sample.sample_rate


def _rate_at(target_sample_rate: TargetRate, position: int) -> Optional[int]:
    if target_sample_rate is None or isinstance(target_sample_rate, int):
        return target_sample_rate
    return target_sample_rate[position]


def _scale_position(position: int, source_rate: int, target_rate: int, frame_count: int) -> int:
    scaled = int(position) * target_rate // source_rate
    return max(0, min(scaled, max(frame_count - 1, 0)))


def resolve_root_note(sample: LoadedSample, index: int) -> int:
    """
    Root note for the sample at input position index.

    An explicit root note wins, then the SMPL unity note, then a note parsed
    from the filename, then 60 + index (capped at 127).
    """
    if 0 <= sample.root_note <= MAX_MIDI_NOTE:
        return sample.root_note
    if 0 <= sample.smpl.midi_note <= MAX_MIDI_NOTE:
        return sample.smpl.midi_note
    if sample.filename:
        try:
            _, note = parse_filename(sample.filename)
        except (FilenamePatternError, NoteFormatError):
            note = -1
        if 0 <= note <= MAX_MIDI_NOTE:
            return note
    return min(DEFAULT_ROOT_NOTE + index, MAX_MIDI_NOTE)


Override = Tuple[int, int, int]


def assign_root_notes(samples: Sequence[LoadedSample], warn: bool = True) -> Tuple[Dict[int, int], List[Override]]:
    """
    Resolve every root note and settle collisions.

    Returns:
        ({root_note: winning input index}, [(overridden index, root_note, winning index)])
        A sample loaded later overrides an earlier one with the same root note.
    """
    owners: Dict[int, int] = {}
    overridden: List[Override] = []
    for index, sample in enumerate(samples):
        note = resolve_root_note(sample, index)
        previous = owners.get(note)
        if previous is not None:
            overridden.append((previous, note, index))
            if warn:
                logger.warning(
                    f"Root note {note} of sample {previous + 1} is overridden by sample {index + 1}"
                )
        owners[note] = index
    return owners, overridden


def key_ranges(root_notes: Sequence[int]) -> List[Tuple[int, int]]:
    """
    (low_key, high_key) for distinct root notes sorted highest first.

    The boundary between neighbours lo < hi is (lo + hi) // 2: the lower
    sample plays up to it, the upper one from the next key. The top sample
    extends to 127 and the bottom one down to 0. The boundary rounds toward
    the lower note, not the higher one, so neighbouring ranges never share a key.
    """
    ranges = []
    last = len(root_notes) - 1
    for i, note in enumerate(root_notes):
        high = MAX_MIDI_NOTE if i == 0 else (note + root_notes[i - 1]) // 2
        low = 0 if i == last else (note + root_notes[i + 1]) // 2 + 1
        ranges.append((low, high))
    return ranges


def build_regions(
    samples: Sequence[LoadedSample],
    target_sample_rate: TargetRate = None,
    sample_names: Optional[Sequence[str]] = None,
    loop_enabled: bool = False,
    gain: Optional[float] = None,
    warn_duplicates: bool = True,
) -> List[MultisampleRegion]:
    """
    Build multisample regions, highest root note first.

    Args:
        samples: Loaded samples in input order
        target_sample_rate: Export rate, or one per input sample; frame positions
                            are rescaled to it
        sample_names: Archive name per input sample (default "1.wav", "2.wav", ...)
        loop_enabled: Sets loop.enabled and loop.onrelease on every region
        gain: Preset-wide gain; None uses each sample's own gain
        warn_duplicates: Log a warning for each overridden root note

    Returns:
        One region per sample that kept its root note
    """
    owners, _ = assign_root_notes(samples, warn=warn_duplicates)
    # Roots are distinct once overrides are settled
    ordered = sorted(owners.items(), key=lambda item: item[0], reverse=True)
    ranges = key_ranges([note for note, _ in ordered])

    regions = []
    for (note, index), (low, high) in zip(ordered, ranges):
        sample = samples[index]
        name = sample_names[index] if sample_names is not None else sample_filename(index)
        target = _rate_at(target_sample_rate, index)
        rate = target or sample.sample_rate
        frames = scaled_frame_count(sample, target)

        def scale(position, default):
            value = default if position is None else position
            return _scale_position(value, sample.sample_rate, rate, frames)

        last_source = max(sample.frame_count - 1, 0)
        start = scale(sample.in_point, 0)
        end = scale(sample.out_point, last_source)

        if sample.loop_start is not None or sample.loop_end is not None:
            loop_start = scale(sample.loop_start, 0)
            loop_end = scale(sample.loop_end, last_source)
        elif sample.smpl.has_loop_data:
            loop_start = scale(sample.smpl.loop_start, 0)
            loop_end = scale(sample.smpl.loop_end, last_source)
        else:
            loop_start, loop_end = start, end

        regions.append(MultisampleRegion(
            root_note=note,
            low_key=low,
            high_key=high,
            sample=name,
            frame_count=frames,
            start_frame=start,
            end_frame=end,
            loop_start=loop_start,
            loop_end=loop_end,
            loop_enabled=loop_enabled,
            loop_on_release=loop_enabled,
            gain=sample.gain if gain is None else gain,
            pan=sample.pan,
            tune=sample.tune,
            reverse=sample.reverse,
            source_index=index,
        ))

    logger.debug(f"Built {len(regions)} multisample regions from {len(samples)} samples")
    return regions


def build_drum_regions(
    slots: Sequence[Optional[DrumSampleSlot]],
    target_sample_rate: TargetRate = None,
    first_note: int = DRUM_FIRST_NOTE,
    sample_names: Optional[Sequence[str]] = None,
) -> List[DrumRegion]:
    """
    One single-key region per loaded slot, on consecutive notes from first_note.

    Empty slots are skipped without using a note. sample_names and a
    per-sample target_sample_rate hold one entry per loaded slot in slot order.

    Raises:
        InvalidParameter: More than 24 slots, or a slot fails validation
    """
    if len(slots) > DRUM_SLOT_COUNT:
        raise InvalidParameter(
            f"A drum kit has at most {DRUM_SLOT_COUNT} slots",
            context={"slots": len(slots)}
        )

    regions = []
    for slot in slots:
        if slot is None or not slot.is_loaded:
            continue
        slot.validate()

        position = len(regions)
        note = first_note + position
        if note > MAX_MIDI_NOTE:
            raise InvalidParameter("Drum note out of MIDI range", context={"note": note})

        sample = slot.sample
        target = _rate_at(target_sample_rate, position)
        rate = target or sample.sample_rate
        frames = scaled_frame_count(sample, target)
        start = end = None
        if slot.in_point is not None or slot.out_point is not None:
            trim_in, trim_out = slot.trim_points()
            start = _scale_position(trim_in, sample.sample_rate, rate, frames)
            end = _scale_position(trim_out, sample.sample_rate, rate, frames)

        regions.append(DrumRegion(
            note=note,
            sample=sample_names[position] if sample_names is not None else sample_filename(position),
            frame_count=frames,
            playmode=slot.playmode,
            reverse=slot.reverse,
            tune=slot.tune,
            gain=slot.gain,
            pan=slot.pan,
            start_frame=start,
            end_frame=end,
        ))

    logger.debug(f"Built {len(regions)} drum regions")
    return regions
