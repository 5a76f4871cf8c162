"""
Export pipeline: loaded samples -> converted WAVs + descriptor -> preset archive.

Each sample is converted and encoded on its own worker; a failure is confined
to that sample and reported in PackageResult.diagnostics. Archive names come
from input positions, so completion order never changes the output.
"""

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from patchlib.logger import get_logger, sample_logger
from patchlib.exceptions import InvalidParameter
from patchlib.converter import (
    ConversionOptions,
    Renderer,
    convert_audio_format,
    get_effective_bit_depth,
    get_effective_channels,
    get_effective_sample_rate,
    render_offline,
)
from patchlib.edit_points import DEFAULT_MAX_DISTANCE, snap_trim_points
from patchlib.packager import PackageDiagnostic, PackageResult, package_preset, sample_filename
from patchlib.presets import (
    DrumPresetSettings,
    MultisampleSettings,
    build_drum_descriptor,
    build_multisample_descriptor,
)
from patchlib.regions import (
    DRUM_FIRST_NOTE,
    DRUM_SLOT_COUNT,
    DrumSampleSlot,
    LoadedSample,
    assign_root_notes,
    build_drum_regions,
    build_regions,
    key_ranges,
)
from patchlib.size_estimator import PATCH_SIZE_LIMIT, check_patch_budget, estimate_file_size
from patchlib.wav_encoder import encode_wav

logger = get_logger(__name__)

Selection = Union[str, int, None]


@dataclass(frozen=True)
class ExportOptions:
    """
    User format selection, resolved per sample by the export policies.

    sample_rate: "0"/None keeps, else Hz (never upsamples non-48 kHz sources)
    bit_depth: "keep"/None, 16 or 24 (never adds depth)
    channels: "keep"/None, "mono" or "stereo"
    """

    sample_rate: Selection = None
    bit_depth: Selection = None
    channels: Selection = None
    patch_size_limit: int = PATCH_SIZE_LIMIT
    max_workers: Optional[int] = None
    allow_empty: bool = True
    snap_to_zero_crossing: bool = False
    snap_max_distance: int = DEFAULT_MAX_DISTANCE

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides) -> "ExportOptions":
        """Build from the export and edit_points sections; overrides win when not None."""
        export = config.get("export", {}) or {}
        edit_points = config.get("edit_points", {}) or {}
        values = {
            "sample_rate": export.get("sample_rate"),
            "bit_depth": export.get("bit_depth"),
            "channels": export.get("channels"),
            "patch_size_limit": export.get("patch_size_limit_bytes", PATCH_SIZE_LIMIT),
            "max_workers": export.get("max_workers"),
            "allow_empty": export.get("allow_empty", True),
            "snap_to_zero_crossing": edit_points.get("snap_to_zero_crossing", False),
            "snap_max_distance": edit_points.get("max_distance", DEFAULT_MAX_DISTANCE),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def resolve_target(sample: LoadedSample, options: ExportOptions) -> ConversionOptions:
    """Concrete rate/depth/channels for one sample."""
    return ConversionOptions(
        sample_rate=get_effective_sample_rate(sample.sample_rate, options.sample_rate),
        bit_depth=get_effective_bit_depth(sample.bit_depth, options.bit_depth),
        channels=get_effective_channels(sample.channels, options.channels),
    )


def render_sample(
    sample: LoadedSample,
    target: ConversionOptions,
    renderer: Renderer = render_offline,
) -> bytes:
    """Convert one sample to its target format and encode it."""
    converted = convert_audio_format(
        sample.buffer,
        ConversionOptions(sample_rate=target.sample_rate, channels=target.channels),
        renderer=renderer,
    )
    logger.debug(
        f"Rendered '{sample.filename or 'sample'}' at {target.sample_rate} Hz, "
        f"{target.bit_depth}-bit, {target.channels}ch"
    )
    return encode_wav(converted, target.bit_depth)


def _snap(sample: LoadedSample, in_point: Optional[int], out_point: Optional[int],
          max_distance: int) -> Tuple[Optional[int], Optional[int]]:
    if in_point is None and out_point is None:
        return in_point, out_point
    start = 0 if in_point is None else in_point
    end = sample.frame_count - 1 if out_point is None else out_point
    new_in, new_out = snap_trim_points(sample.buffer.samples, start, end, max_distance)
    return (None if in_point is None else new_in), (None if out_point is None else new_out)


def _budget(samples: Sequence[LoadedSample], targets: Sequence[ConversionOptions],
            limit: int) -> Tuple[int, Optional[str]]:
    size = sum(estimate_file_size(s.buffer, t) for s, t in zip(samples, targets))
    return size, check_patch_budget(size, limit)


def _refit_key_ranges(regions: List[Dict[str, Any]]) -> None:
    """Spread the surviving multisample regions over the whole keyboard again."""
    ordered = sorted(regions, key=lambda r: r["pitch.keycenter"], reverse=True)
    for region, (low, high) in zip(ordered, key_ranges([r["pitch.keycenter"] for r in ordered])):
        region["lokey"] = low
        region["hikey"] = high


def _package(
    descriptor: Dict[str, Any],
    samples: Sequence[LoadedSample],
    targets: Sequence[ConversionOptions],
    positions: Sequence[int],
    preset_name: str,
    options: ExportOptions,
    renderer: Renderer,
    refit_regions=None,
) -> PackageResult:
    with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
        futures = [pool.submit(render_sample, s, t, renderer) for s, t in zip(samples, targets)]
        payloads = [
            (s.filename or sample_filename(i), future.result)
            for i, (s, future) in enumerate(zip(samples, futures))
        ]
        result = package_preset(
            descriptor, payloads, preset_name,
            allow_empty=options.allow_empty, refit_regions=refit_regions,
        )

    # Report diagnostics against the caller's positions
    result.diagnostics = [dataclasses.replace(d, index=positions[d.index]) for d in result.diagnostics]
    return result


def export_drum_preset(
    slots: Sequence[Optional[DrumSampleSlot]],
    preset_name: str,
    options: Optional[ExportOptions] = None,
    settings: Optional[DrumPresetSettings] = None,
    imported: Optional[Dict[str, Any]] = None,
    renderer: Renderer = render_offline,
    first_note: int = DRUM_FIRST_NOTE,
) -> PackageResult:
    """
    Build a drum kit archive from up to 24 slots.

    Loaded slots are packaged in slot order as 1.wav, 2.wav, ... on
    consecutive keys from first_note. Diagnostic indices are slot indices.

    Raises:
        InvalidParameter: A slot fails validation or an option is invalid
        PackagingError: Nothing survived and allow_empty is False
    """
    options = options or ExportOptions()
    settings = settings or DrumPresetSettings()
    if len(slots) > DRUM_SLOT_COUNT:
        raise InvalidParameter(
            f"A drum kit has at most {DRUM_SLOT_COUNT} slots",
            context={"slots": len(slots)}
        )

    loaded: List[Tuple[int, DrumSampleSlot]] = []
    for index, slot in enumerate(slots):
        if slot is None or not slot.is_loaded:
            continue
        if options.snap_to_zero_crossing:
            in_point, out_point = _snap(slot.sample, slot.in_point, slot.out_point, options.snap_max_distance)
            slot = dataclasses.replace(slot, in_point=in_point, out_point=out_point)
        loaded.append((index, slot))

    positions = [index for index, _ in loaded]
    kit = [slot for _, slot in loaded]
    samples = [slot.sample for slot in kit]
    targets = [resolve_target(s, options) for s in samples]

    size, warning = _budget(samples, targets, options.patch_size_limit)
    names = [sample_filename(i) for i in range(len(kit))]
    regions = build_drum_regions(
        kit,
        target_sample_rate=[t.sample_rate for t in targets],
        first_note=first_note,
        sample_names=names,
    )
    descriptor = build_drum_descriptor(preset_name, regions, settings, imported)

    logger.info(f"Exporting drum kit '{preset_name}': {len(kit)} samples, ~{size} bytes")
    result = _package(descriptor, samples, targets, positions, preset_name, options, renderer)
    result.size_warning = warning
    return result


def export_multisample_preset(
    samples: Sequence[LoadedSample],
    preset_name: str,
    options: Optional[ExportOptions] = None,
    settings: Optional[MultisampleSettings] = None,
    imported: Optional[Dict[str, Any]] = None,
    renderer: Renderer = render_offline,
) -> PackageResult:
    """
    Build a multisample instrument archive.

    Samples keep their input order in the archive (1.wav, 2.wav, ...); regions
    are ordered by root note. A sample whose root note is taken over by a later
    sample is left out and reported as a diagnostic.
    When a sample fails to render, the remaining regions are re-ranged so no
    keys are left without a sample.

    Raises:
        InvalidParameter: An option is invalid
        PackagingError: Nothing survived and allow_empty is False
    """
    options = options or ExportOptions()
    settings = settings or MultisampleSettings()

    if options.snap_to_zero_crossing:
        snapped = []
        for sample in samples:
            in_point, out_point = _snap(sample, sample.in_point, sample.out_point, options.snap_max_distance)
            snapped.append(dataclasses.replace(sample, in_point=in_point, out_point=out_point))
        samples = snapped

    owners, overridden = assign_root_notes(samples, warn=False)
    kept = sorted(owners.values())
    skipped = []
    for index, note, winner in overridden:
        message = f"Root note {note} is also used by sample {winner + 1}; the later sample is kept"
        sample_logger(logger, index, samples[index].filename).warning(f"skipped, {message}")
        skipped.append(PackageDiagnostic(index, samples[index].filename, message, "DuplicateRootNote"))

    names: List[str] = [""] * len(samples)
    for position, index in enumerate(kept):
        names[index] = sample_filename(position)

    all_targets = [resolve_target(s, options) for s in samples]
    kept_samples = [samples[i] for i in kept]
    kept_targets = [all_targets[i] for i in kept]

    size, warning = _budget(kept_samples, kept_targets, options.patch_size_limit)
    regions = build_regions(
        samples,
        target_sample_rate=[t.sample_rate for t in all_targets],
        sample_names=names,
        loop_enabled=settings.loop_enabled,
        gain=settings.gain,
        warn_duplicates=False,
    )
    descriptor = build_multisample_descriptor(preset_name, regions, settings, imported)

    logger.info(f"Exporting multisample '{preset_name}': {len(kept_samples)} samples, ~{size} bytes")
    result = _package(
        descriptor, kept_samples, kept_targets, kept, preset_name, options, renderer,
        refit_regions=_refit_key_ranges,
    )
    result.size_warning = warning
    result.diagnostics = sorted(skipped + result.diagnostics, key=lambda d: d.index)
    return result
