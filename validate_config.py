"""
Lightweight config validation to catch obvious mistakes early.
Run automatically by make_preset.py after loading config.
"""

import sys
from patchlib.logger import get_logger
from patchlib.exceptions import InvalidParameter

logger = get_logger(__name__)

KNOWN_RATES = (11025, 22050, 44100, 48000)
ENGINE_PLAYMODES = ("poly", "mono", "legato")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_percent(errors: list, section: dict, prefix: str, key: str) -> None:
    value = section.get(key)
    if value is None:
        return
    if not _is_number(value) or not (0 <= value <= 100):
        errors.append(f"{prefix}.{key} must be a percentage between 0 and 100")


def validate_config(config: dict) -> None:
    errors = []

    # Export format
    export = config.get("export", {}) or {}
    sr = export.get("sample_rate")
    if sr is not None and str(sr).strip().lower() not in ("0", "keep"):
        try:
            sr_value = int(sr)
        except (TypeError, ValueError):
            sr_value = None
        if sr_value is None or sr_value <= 0:
            errors.append("export.sample_rate must be 0 (keep) or a positive rate in Hz")
        elif sr_value < 8000 or sr_value > 192000:
            errors.append(f"export.sample_rate ({sr_value}) outside reasonable range [8000, 192000]")
        elif sr_value not in KNOWN_RATES:
            # Allowed, but the device menus only offer the common rates
            logger.warning(f"export.sample_rate ({sr_value}) is not one of {KNOWN_RATES}")

    bit_depth = export.get("bit_depth")
    if bit_depth is not None and str(bit_depth).strip().lower() not in ("keep", "16", "24"):
        errors.append("export.bit_depth must be keep, 16 or 24")

    channels = export.get("channels")
    if channels is not None and str(channels).strip().lower() not in ("keep", "mono", "stereo", "1", "2"):
        errors.append("export.channels must be keep, mono or stereo")

    limit = export.get("patch_size_limit_bytes")
    if limit is not None:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            errors.append("export.patch_size_limit_bytes must be a positive integer")
        elif limit > 8 * 1024 * 1024:
            # Downgraded to warning - the device may reject the preset, but exporting is still allowed
            logger.warning(f"export.patch_size_limit_bytes ({limit}) exceeds the 8 MiB device budget")

    workers = export.get("max_workers")
    if workers is not None and (not isinstance(workers, int) or isinstance(workers, bool) or workers <= 0):
        errors.append("export.max_workers must be a positive integer or null")

    if not isinstance(export.get("allow_empty", True), bool):
        errors.append("export.allow_empty must be boolean")

    # Edit points
    edit_points = config.get("edit_points", {}) or {}
    if not isinstance(edit_points.get("snap_to_zero_crossing", False), bool):
        errors.append("edit_points.snap_to_zero_crossing must be boolean")
    max_distance = edit_points.get("max_distance")
    if max_distance is not None:
        if not isinstance(max_distance, int) or isinstance(max_distance, bool) or max_distance < 0:
            errors.append("edit_points.max_distance must be a non-negative integer")
        elif max_distance > 48000:
            logger.warning(f"edit_points.max_distance ({max_distance}) is more than a second at 48 kHz")

    # Drum engine
    drum = config.get("drum", {}) or {}
    if drum.get("playmode") is not None and drum.get("playmode") not in ENGINE_PLAYMODES:
        errors.append(f"drum.playmode must be one of {', '.join(ENGINE_PLAYMODES)}")
    for key in ("velocity", "volume", "width"):
        _check_percent(errors, drum, "drum", key)
    transpose = drum.get("transpose")
    if transpose is not None and (not isinstance(transpose, int) or not (-48 <= transpose <= 48)):
        errors.append("drum.transpose must be an integer between -48 and 48")
    first_note = drum.get("first_midi_note")
    if first_note is not None:
        if not isinstance(first_note, int) or isinstance(first_note, bool) or not (0 <= first_note <= 127):
            errors.append("drum.first_midi_note must be a MIDI note (0-127)")
        elif first_note + 23 > 127:
            errors.append(f"drum.first_midi_note ({first_note}) leaves no room for 24 slots")

    # Multisample engine
    multi = config.get("multisample", {}) or {}
    if multi.get("playmode") is not None and multi.get("playmode") not in ENGINE_PLAYMODES:
        errors.append(f"multisample.playmode must be one of {', '.join(ENGINE_PLAYMODES)}")
    if not isinstance(multi.get("loop_enabled", True), bool):
        errors.append("multisample.loop_enabled must be boolean")
    for key in ("velocity", "volume", "width", "highpass", "portamento_amount"):
        _check_percent(errors, multi, "multisample", key)
    transpose = multi.get("transpose")
    if transpose is not None and (not isinstance(transpose, int) or not (-48 <= transpose <= 48)):
        errors.append("multisample.transpose must be an integer between -48 and 48")
    portamento_type = multi.get("portamento_type")
    if portamento_type is not None and (not isinstance(portamento_type, int) or not (0 <= portamento_type <= 32767)):
        errors.append("multisample.portamento_type must be an integer between 0 and 32767")
    gain = multi.get("gain")
    if gain is not None:
        if not _is_number(gain):
            errors.append("multisample.gain must be a number (dB)")
        elif not (-30 <= gain <= 20):
            errors.append(f"multisample.gain ({gain}) must be between -30 and 20 dB")
    for env_name in ("amp_envelope", "filter_envelope"):
        env = multi.get(env_name)
        if env is None:
            continue
        if not isinstance(env, dict):
            errors.append(f"multisample.{env_name} must be a mapping")
            continue
        for key in ("attack", "decay", "sustain", "release"):
            _check_percent(errors, env, f"multisample.{env_name}", key)

    if errors:
        error_msg = "Invalid configuration:\n" + "\n".join([f"- {e}" for e in errors])
        logger.error(error_msg)
        raise InvalidParameter(error_msg, context={"error_count": len(errors)})


if __name__ == "__main__":
    import yaml
    import os
    from patchlib.logger import log_success

    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            try:
                config = yaml.safe_load(f) or {}
                validate_config(config)
                log_success(logger, "Configuration is valid.")
            except Exception as e:
                logger.error(f"Config validation failed: {e}")
                sys.exit(1)
    else:
        logger.error(f"{config_path} not found. Run make_preset.py first to generate it.")
        sys.exit(1)
