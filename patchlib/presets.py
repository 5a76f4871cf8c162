"""
OP-XY preset descriptors (preset.json).

The field names, nesting and the 0-32767 integer scaling are fixed by the
device. UI-facing values are percentages and are converted with
percent_to_internal / internal_to_percent.
"""

import copy
import json
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, Optional, Union

from patchlib.logger import get_logger
from patchlib.exceptions import InvalidParameter, PresetImportError
from patchlib.packager import sanitize_name

logger = get_logger(__name__)

INTERNAL_MAX = 32767
PRESET_TYPES = ("drum", "multisampler")
MERGED_SECTIONS = ("engine", "envelope", "fx", "lfo", "octave")
ENGINE_PLAYMODES = ("poly", "mono", "legato")


BASE_DRUM_JSON: Dict[str, Any] = {
    "engine": {
        "bendrange": 8191,
        "highpass": 0,
        "modulation": {
            "aftertouch": {"amount": 16383, "target": 0},
            "modwheel": {"amount": 16383, "target": 0},
            "pitchbend": {"amount": 16383, "target": 0},
            "velocity": {"amount": 16383, "target": 0},
        },
        "params": [16384] * 8,
        "playmode": "poly",
        "portamento.amount": 0,
        "portamento.type": 32767,
        "transpose": 0,
        "tuning.root": 0,
        "tuning.scale": 0,
        "velocity.sensitivity": 19660,
        "volume": 18348,
        "width": 0,
    },
    "envelope": {
        "amp": {"attack": 0, "decay": 0, "release": 1000, "sustain": 32767},
        "filter": {"attack": 0, "decay": 3276, "release": 23757, "sustain": 983},
    },
    "fx": {
        "active": False,
        "params": [22014, 0, 30285, 11880, 0, 32767, 0, 0],
        "type": "ladder",
    },
    "lfo": {
        "active": False,
        "params": [20309, 5679, 19114, 15807, 0, 0, 0, 12287],
        "type": "random",
    },
    "octave": 0,
    "platform": "OP-XY",
    "regions": [],
    "type": "drum",
    "version": 4,
}

BASE_MULTISAMPLE_JSON: Dict[str, Any] = {
    "engine": {
        "bendrange": 13653,
        "highpass": 0,
        "modulation": {
            "aftertouch": {"amount": 0, "target": 0},
            "modwheel": {"amount": 0, "target": 0},
            "pitchbend": {"amount": 0, "target": 0},
            "velocity": {"amount": 0, "target": 0},
        },
        "params": [16384] * 8,
        "playmode": "poly",
        "portamento.amount": 0,
        "portamento.type": 32767,
        "transpose": 0,
        "tuning.root": 0,
        "tuning.scale": 0,
        "velocity.sensitivity": 10240,
        "volume": 16466,
        "width": 0,
    },
    "envelope": {
        "amp": {"attack": 0, "decay": 0, "release": 0, "sustain": 0},
        "filter": {"attack": 0, "decay": 0, "release": 0, "sustain": 0},
    },
    "fx": {
        "active": False,
        "params": [0] * 8,
        "type": "svf",
    },
    "lfo": {
        "active": False,
        "params": [0] * 8,
        "type": "element",
    },
    "octave": 0,
    "platform": "OP-XY",
    "regions": [],
    "type": "multisampler",
    "version": 4,
}


def percent_to_internal(percent: float) -> int:
    """0-100 % -> 0-32767, rounding halves up (50 -> 16384)."""
    return int(math.floor(percent / 100 * INTERNAL_MAX + 0.5))


def internal_to_percent(internal: float) -> int:
    """0-32767 -> 0-100 %, rounding halves up (16384 -> 50)."""
    return int(math.floor(internal / INTERNAL_MAX * 100 + 0.5))


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge source into target in place and return target.

    Nested dicts are merged key by key; lists and scalars replace.
    """
    for key, value in source.items():
        if isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


@dataclass
class EnvelopeSettings:
    """ADSR in percent."""

    attack: float = 0
    decay: float = 0
    sustain: float = 100
    release: float = 0

    def to_internal(self) -> Dict[str, int]:
        return {
            "attack": percent_to_internal(self.attack),
            "decay": percent_to_internal(self.decay),
            "sustain": percent_to_internal(self.sustain),
            "release": percent_to_internal(self.release),
        }

    @classmethod
    def from_internal(cls, values: Dict[str, Any]) -> "EnvelopeSettings":
        defaults = cls()
        return cls(**{
            name: internal_to_percent(values[name]) if _is_number(values.get(name)) else getattr(defaults, name)
            for name in ("attack", "decay", "sustain", "release")
        })


@dataclass
class DrumPresetSettings:
    """Kit-wide engine settings; velocity, volume and width in percent."""

    playmode: str = "poly"
    transpose: int = 0
    velocity: float = 20
    volume: float = 69
    width: float = 0

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]]) -> "DrumPresetSettings":
        """From the drum section of the config; unknown keys are ignored."""
        return cls(**_known_fields(cls, section))

    def apply(self, descriptor: Dict[str, Any]) -> None:
        engine = descriptor.setdefault("engine", {})
        if self.playmode:
            engine["playmode"] = self.playmode
        engine["transpose"] = int(self.transpose)
        engine["velocity.sensitivity"] = percent_to_internal(self.velocity)
        engine["volume"] = percent_to_internal(self.volume)
        engine["width"] = percent_to_internal(self.width)


@dataclass
class MultisampleSettings:
    """
    Instrument-wide settings. Percent values except transpose (semitones),
    portamento_type and tuning_root (raw device values) and gain (dB, per region).
    """

    playmode: str = "poly"
    loop_enabled: bool = True
    transpose: int = 0
    velocity: float = 15
    volume: float = 80
    width: float = 0
    highpass: float = 0
    portamento_type: int = 32767
    portamento_amount: float = 0
    tuning_root: int = 0
    gain: float = 0
    amp_envelope: EnvelopeSettings = field(default_factory=EnvelopeSettings)
    filter_envelope: EnvelopeSettings = field(default_factory=EnvelopeSettings)

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]]) -> "MultisampleSettings":
        """From the multisample section of the config; unknown keys are ignored."""
        values = _known_fields(cls, section)
        for name in ("amp_envelope", "filter_envelope"):
            if isinstance(values.get(name), dict):
                values[name] = EnvelopeSettings(**_known_fields(EnvelopeSettings, values[name]))
        return cls(**values)

    def apply(self, descriptor: Dict[str, Any]) -> None:
        engine = descriptor.setdefault("engine", {})
        if self.playmode:
            engine["playmode"] = self.playmode
        engine["transpose"] = int(self.transpose)
        engine["velocity.sensitivity"] = percent_to_internal(self.velocity)
        engine["volume"] = percent_to_internal(self.volume)
        engine["width"] = percent_to_internal(self.width)
        engine["highpass"] = percent_to_internal(self.highpass)
        engine["portamento.amount"] = percent_to_internal(self.portamento_amount)
        engine["portamento.type"] = int(self.portamento_type)
        engine["tuning.root"] = int(self.tuning_root)

        envelope = descriptor.setdefault("envelope", {})
        envelope.setdefault("amp", {}).update(self.amp_envelope.to_internal())
        envelope.setdefault("filter", {}).update(self.filter_envelope.to_internal())


@dataclass
class ImportedPreset:
    """A preset.json loaded from disk: its type, name, UI settings and the raw document."""

    type: str
    name: Optional[str]
    settings: Union[DrumPresetSettings, MultisampleSettings]
    document: Dict[str, Any]


def _known_fields(cls, section: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (section or {}).items() if k in names and v is not None}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _load_document(content: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(content, dict):
        return content
    try:
        document = json.loads(content)
    except (TypeError, ValueError):
        raise PresetImportError("Invalid JSON format")
    if not isinstance(document, dict):
        raise PresetImportError("Invalid JSON format")
    return document


def validate_preset_json(content: Union[str, bytes, Dict[str, Any]]) -> str:
    """
    Check that content is an importable OP-XY preset.

    Returns:
        The preset type ("drum" or "multisampler")

    Raises:
        PresetImportError: Invalid JSON, missing/unsupported type, or no engine object
    """
    document = _load_document(content)
    preset_type = document.get("type")
    if not preset_type:
        raise PresetImportError("Missing preset type")
    if preset_type not in PRESET_TYPES:
        raise PresetImportError(f"Unsupported preset type: {preset_type}")
    if not isinstance(document.get("engine"), dict):
        raise PresetImportError("Missing engine settings")
    return preset_type


def import_preset_json(
    content: Union[str, bytes, Dict[str, Any]],
    expected_type: Optional[str] = None,
) -> ImportedPreset:
    """
    Read a preset.json into UI-scale settings.

    Engine values present in the document replace the defaults; missing or
    non-numeric ones keep them.

    Raises:
        PresetImportError: If the document is invalid or not of expected_type
    """
    document = _load_document(content)
    preset_type = validate_preset_json(document)
    if expected_type and preset_type != expected_type:
        raise PresetImportError(
            f"Invalid preset type: expected {expected_type} preset",
            context={"type": preset_type}
        )

    engine = document["engine"]
    if preset_type == "drum":
        settings = DrumPresetSettings()
    else:
        settings = MultisampleSettings()

    if isinstance(engine.get("playmode"), str) and engine["playmode"]:
        settings.playmode = engine["playmode"]
    if _is_number(engine.get("transpose")):
        settings.transpose = int(engine["transpose"])
    if _is_number(engine.get("velocity.sensitivity")):
        settings.velocity = internal_to_percent(engine["velocity.sensitivity"])
    if _is_number(engine.get("volume")):
        settings.volume = internal_to_percent(engine["volume"])
    if _is_number(engine.get("width")):
        settings.width = internal_to_percent(engine["width"])

    if isinstance(settings, MultisampleSettings):
        if _is_number(engine.get("highpass")):
            settings.highpass = internal_to_percent(engine["highpass"])
        if _is_number(engine.get("portamento.amount")):
            settings.portamento_amount = internal_to_percent(engine["portamento.amount"])
        if _is_number(engine.get("portamento.type")):
            settings.portamento_type = int(engine["portamento.type"])
        if _is_number(engine.get("tuning.root")):
            settings.tuning_root = int(engine["tuning.root"])
        envelope = document.get("envelope")
        if isinstance(envelope, dict):
            if isinstance(envelope.get("amp"), dict):
                settings.amp_envelope = EnvelopeSettings.from_internal(envelope["amp"])
            if isinstance(envelope.get("filter"), dict):
                settings.filter_envelope = EnvelopeSettings.from_internal(envelope["filter"])
        regions = document.get("regions")
        if isinstance(regions, list) and regions and isinstance(regions[0], dict):
            settings.loop_enabled = bool(regions[0].get("loop.enabled", settings.loop_enabled))

    name = document.get("name") if isinstance(document.get("name"), str) else None
    logger.debug(f"Imported {preset_type} preset '{name or ''}'")
    return ImportedPreset(type=preset_type, name=name, settings=settings, document=document)


def merge_imported_settings(descriptor: Dict[str, Any], imported: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Carry engine/envelope/fx/lfo/octave from an imported document into descriptor.

    Dict sections are deep-merged; scalar sections (octave) replace.
    """
    if not imported:
        return descriptor
    for section in MERGED_SECTIONS:
        value = imported.get(section)
        if value is None:
            continue
        if isinstance(value, dict):
            if not isinstance(descriptor.get(section), dict):
                descriptor[section] = {}
            deep_merge(descriptor[section], value)
        else:
            descriptor[section] = copy.deepcopy(value)
    return descriptor


def _build_descriptor(base, name, regions, settings, imported) -> Dict[str, Any]:
    descriptor = copy.deepcopy(base)
    descriptor["name"] = sanitize_name(name)
    merge_imported_settings(descriptor, imported)
    if settings is not None:
        settings.apply(descriptor)
    descriptor["regions"] = [r.to_json() if hasattr(r, "to_json") else dict(r) for r in regions]
    return descriptor


def build_drum_descriptor(
    name: str,
    regions: Iterable = (),
    settings: Optional[DrumPresetSettings] = None,
    imported: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Fresh drum preset.json: base template, imported sections, then settings.

    regions are DrumRegion objects or plain dicts.
    """
    if settings is not None and settings.playmode not in ENGINE_PLAYMODES:
        raise InvalidParameter(f"Unknown engine playmode '{settings.playmode}'")
    return _build_descriptor(BASE_DRUM_JSON, name, regions, settings, imported)


def build_multisample_descriptor(
    name: str,
    regions: Iterable = (),
    settings: Optional[MultisampleSettings] = None,
    imported: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Fresh multisampler preset.json; regions are MultisampleRegion objects or dicts."""
    if settings is not None and settings.playmode not in ENGINE_PLAYMODES:
        raise InvalidParameter(f"Unknown engine playmode '{settings.playmode}'")
    return _build_descriptor(BASE_MULTISAMPLE_JSON, name, regions, settings, imported)
