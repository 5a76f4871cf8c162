"""
YAML configuration for preset export.

load_or_create_config writes the commented defaults on first run so users
have something to edit; load_config merges a user file over the defaults.
"""

import copy
import os
from typing import Any, Dict, Optional

import yaml

from patchlib.logger import get_logger
from patchlib.exceptions import ConfigurationError
from patchlib.presets import deep_merge

logger = get_logger(__name__)


DEFAULT_CONFIG_YAML = """# Export format
export:
  sample_rate: 0              # 0 = keep source rate, else Hz (44100, 22050, 11025)
                              # Non-48 kHz sources are never upsampled
  bit_depth: keep             # keep, 16 or 24 (never adds depth)
  channels: keep              # keep, mono or stereo (mono sums both channels)
  patch_size_limit_bytes: 8388608   # OP-XY preset budget (8 MiB)
  max_workers: null           # Parallel conversions; null = Python default
  allow_empty: true           # false = fail when no sample could be packaged

# Trim point snapping
edit_points:
  snap_to_zero_crossing: false
  max_distance: 1000          # Search radius in frames

# Drum kit engine settings (percent unless noted)
drum:
  playmode: poly              # poly, mono or legato
  transpose: 0                # Semitones
  velocity: 20
  volume: 69
  width: 0
  first_midi_note: 53         # Key of the first loaded slot

# Multisample engine settings (percent unless noted)
multisample:
  playmode: poly
  loop_enabled: true          # Sets loop.enabled and loop.onrelease on every region
  transpose: 0
  velocity: 15
  volume: 80
  width: 0
  highpass: 0
  portamento_type: 32767      # Raw device value
  portamento_amount: 0
  tuning_root: 0              # Raw device value
  gain: 0                     # dB, applied to every region
  amp_envelope:
    attack: 0
    decay: 0
    sustain: 100
    release: 0
  filter_envelope:
    attack: 0
    decay: 0
    sustain: 100
    release: 0
"""

DEFAULT_CONFIG: Dict[str, Any] = yaml.safe_load(DEFAULT_CONFIG_YAML)


def _read_yaml(config_path: str) -> Dict[str, Any]:
    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Could not parse {config_path}",
                context={"error": str(e)}
            )
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{config_path} must contain a mapping",
            context={"type": type(data).__name__}
        )
    return data


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Defaults merged with the user file (if given and present).

    Raises:
        ConfigurationError: If the file is not a YAML mapping
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        deep_merge(config, _read_yaml(config_path))
        logger.debug(f"Merged {config_path} over defaults")
    return config


def load_or_create_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Load config from file or create default if missing.

    Args:
        config_path: Path to config.yaml

    Returns:
        Configuration dictionary
    """
    if os.path.exists(config_path):
        logger.info(f"Loaded config from {config_path}")
        return load_config(config_path)

    logger.info(f"Config not found, creating default at {config_path}")
    with open(config_path, "w") as f:
        f.write(DEFAULT_CONFIG_YAML)
    return copy.deepcopy(DEFAULT_CONFIG)
