#!/usr/bin/env python3
"""
make_preset.py: CLI entrypoint for building OP-XY presets from WAV files.

Usage:
  python make_preset.py drum kick.wav snare.wav hat.wav --name "My Kit"
  python make_preset.py multi piano_C3.wav piano_C4.wav --name Piano
  python make_preset.py estimate *.wav --sample-rate 22050 --channels mono
  python make_preset.py inspect piano_C3.wav
"""

import argparse
import os
import sys
import tempfile
from typing import List, Tuple

from patchlib.logger import configure_root_logger, get_logger, log_success, sample_logger
from patchlib.exceptions import PatchlibError
from patchlib.config import load_or_create_config
from patchlib.export import ExportOptions, export_drum_preset, export_multisample_preset, resolve_target
from patchlib.notes import midi_note_to_string
from patchlib.packager import sanitize_name
from patchlib.presets import DrumPresetSettings, MultisampleSettings, import_preset_json
from patchlib.regions import DRUM_SLOT_COUNT, DrumSampleSlot, LoadedSample
from patchlib.size_estimator import estimate_file_size, format_file_size, get_patch_size_warning, is_patch_size_valid
from patchlib.wav_parser import WavMetadata, read_wav_metadata
from validate_config import validate_config

logger = get_logger(__name__)


def load_wavs(paths: List[str]) -> List[Tuple[str, WavMetadata]]:
    """Parse every path; files that fail are logged and left out."""
    loaded = []
    for path in paths:
        try:
            with open(path, "rb") as f:
                data = f.read()
            loaded.append((path, read_wav_metadata(data, filename=os.path.basename(path))))
        except (OSError, PatchlibError) as e:
            logger.error(f"Rejected {path}: {e}")
    return loaded


def write_archive(archive: bytes, output_path: str) -> None:
    """Write via a temp file in the target directory, then move into place."""
    directory = os.path.dirname(os.path.abspath(output_path))
    os.makedirs(directory, exist_ok=True)
    with tempfile.NamedTemporaryFile(mode="wb", dir=directory, delete=False) as tmp:
        tmp.write(archive)
        tmp_path = tmp.name
    os.replace(tmp_path, output_path)


def _export_options(config: dict, args) -> ExportOptions:
    return ExportOptions.from_config(
        config,
        sample_rate=args.sample_rate,
        bit_depth=args.bit_depth,
        channels=args.channels,
    )


def _imported(args, expected_type: str):
    """(document, settings) from --import-preset, or (None, None)."""
    if not args.import_preset:
        return None, None
    with open(args.import_preset, "r") as f:
        imported = import_preset_json(f.read(), expected_type=expected_type)
    logger.info(f"Imported settings from {args.import_preset}")
    return imported.document, imported.settings


def _finish(result, args, default_name: str) -> int:
    for diagnostic in result.diagnostics:
        sample_logger(logger, diagnostic.index, diagnostic.name).warning(f"skipped, {diagnostic.message}")
    if result.size_warning:
        logger.warning(result.size_warning)

    output = args.output or f"{sanitize_name(args.name or default_name) or 'preset'}.preset.zip"
    write_archive(result.archive, output)
    log_success(logger, f"Wrote {output} ({len(result.sample_files)} samples, {format_file_size(len(result.archive))})")
    return 0 if result.sample_files else 1


def run_drum(config: dict, args) -> int:
    if len(args.files) > DRUM_SLOT_COUNT:
        logger.error(f"A drum kit holds at most {DRUM_SLOT_COUNT} samples ({len(args.files)} given)")
        return 1

    loaded = load_wavs(args.files)
    if not loaded:
        logger.error("No usable WAV files")
        return 1

    document, imported_settings = _imported(args, "drum")
    settings = imported_settings or DrumPresetSettings.from_config(config.get("drum"))
    slots = [DrumSampleSlot(sample=LoadedSample.from_metadata(meta)) for _, meta in loaded]

    name = args.name or "drum-patch"
    result = export_drum_preset(
        slots,
        name,
        options=_export_options(config, args),
        settings=settings,
        imported=document,
        first_note=config.get("drum", {}).get("first_midi_note", 53),
    )
    return _finish(result, args, name)


def run_multi(config: dict, args) -> int:
    loaded = load_wavs(args.files)
    if not loaded:
        logger.error("No usable WAV files")
        return 1

    document, imported_settings = _imported(args, "multisampler")
    settings = imported_settings or MultisampleSettings.from_config(config.get("multisample"))
    samples = [LoadedSample.from_metadata(meta) for _, meta in loaded]

    name = args.name or "multisample-patch"
    result = export_multisample_preset(
        samples,
        name,
        options=_export_options(config, args),
        settings=settings,
        imported=document,
    )
    return _finish(result, args, name)


def run_estimate(config: dict, args) -> int:
    loaded = load_wavs(args.files)
    if not loaded:
        logger.error("No usable WAV files")
        return 1

    options = _export_options(config, args)
    total = 0
    for path, meta in loaded:
        target = resolve_target(LoadedSample.from_metadata(meta), options)
        size = estimate_file_size(meta, target)
        total += size
        logger.info(
            f"{os.path.basename(path)}: {target.sample_rate} Hz, {target.bit_depth}-bit, "
            f"{target.channels}ch -> {format_file_size(size)}"
        )

    limit = options.patch_size_limit
    logger.info(f"Total: {format_file_size(total)} of {format_file_size(limit)} ({total / limit:.0%})")
    warning = get_patch_size_warning(total, limit)
    if warning:
        logger.warning(warning)
    return 0 if is_patch_size_valid(total, limit) else 2


def run_inspect(config: dict, args) -> int:
    loaded = load_wavs(args.files)
    for path, meta in loaded:
        header = meta.header
        logger.info(f"{path}")
        logger.info(
            f"  {header.sample_rate} Hz, {header.bit_depth}-bit, {header.channels}ch, "
            f"{meta.frame_count} frames ({meta.duration_seconds:.3f} s, {format_file_size(meta.file_size_bytes)})"
        )
        if meta.midi_note >= 0:
            source = "smpl" if meta.smpl.midi_note >= 0 else "filename"
            logger.info(f"  Root note: {meta.midi_note} ({midi_note_to_string(meta.midi_note)}, from {source})")
        else:
            logger.info("  Root note: none")
        if meta.smpl.has_loop_data:
            logger.info(f"  Loop: {meta.smpl.loop_start} - {meta.smpl.loop_end}")
    return 0 if len(loaded) == len(args.files) else 1


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Build OP-XY drum and multisample presets from WAV files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python make_preset.py drum kick.wav snare.wav --name "808 Kit"
  python make_preset.py multi piano_*.wav --name Piano --sample-rate 22050
  python make_preset.py estimate pads/*.wav --bit-depth 16 --channels mono
  python make_preset.py inspect piano_C3.wav
        """
    )
    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to config.yaml (default: config.yaml)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity (default: PATCHLIB_LOG_LEVEL or INFO)'
    )

    subparsers = parser.add_subparsers(dest='command')

    def add_format_options(sub):
        sub.add_argument('files', nargs='+', help='WAV files')
        sub.add_argument('--sample-rate', type=str, default=None,
                         help='Target rate in Hz, or 0 to keep (overrides config)')
        sub.add_argument('--bit-depth', type=str, default=None,
                         help='keep, 16 or 24 (overrides config)')
        sub.add_argument('--channels', type=str, default=None,
                         help='keep, mono or stereo (overrides config)')

    for command, help_text in (('drum', 'Build a drum kit (up to 24 samples)'),
                               ('multi', 'Build a multisample instrument')):
        sub = subparsers.add_parser(command, help=help_text)
        add_format_options(sub)
        sub.add_argument('--name', type=str, default=None, help='Preset name')
        sub.add_argument('--output', type=str, default=None,
                         help='Archive path (default: <name>.preset.zip)')
        sub.add_argument('--import-preset', type=str, default=None,
                         help='preset.json whose engine/envelope/fx/lfo settings are carried over')

    add_format_options(subparsers.add_parser('estimate', help='Estimate the preset size'))

    inspect_parser = subparsers.add_parser('inspect', help='Show WAV header and sampler metadata')
    inspect_parser.add_argument('files', nargs='+', help='WAV files')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    configure_root_logger(args.log_level)

    # Load or create config
    config = load_or_create_config(args.config)
    # Validate config early to catch obvious errors
    validate_config(config)

    commands = {
        'drum': run_drum,
        'multi': run_multi,
        'estimate': run_estimate,
        'inspect': run_inspect,
    }
    try:
        return commands[args.command](config, args)
    except PatchlibError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
