"""
Preset packaging: descriptor + samples -> one deterministic zip archive.

Layout:
  <sanitized preset name>/
    1.wav
    2.wav
    ...
    preset.json

Samples are named by their 1-based input position, never by completion
order. A sample whose payload cannot be produced is skipped and reported in
PackageResult.diagnostics; the remaining samples are still packaged.
"""

import copy
import io
import json
import re
import zipfile
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from patchlib.logger import get_logger, log_success, sample_logger
from patchlib.exceptions import PackagingError

logger = get_logger(__name__)

DESCRIPTOR_NAME = "preset.json"
FALLBACK_FOLDER = "preset"
# Fixed timestamp so identical inputs produce identical archives
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9 #\-().]+")

Payload = Union[bytes, Callable[[], bytes]]


@dataclass(frozen=True)
class PackageDiagnostic:
    """One skipped sample."""

    index: int
    name: str
    message: str
    error_type: str = "Exception"


@dataclass
class PackageResult:
    """Archive bytes plus what went into it and what was skipped."""

    archive: bytes
    folder: str
    sample_files: List[str] = field(default_factory=list)
    diagnostics: List[PackageDiagnostic] = field(default_factory=list)
    size_warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.diagnostics


def sanitize_name(name: str) -> str:
    """Drop every character outside [A-Za-z0-9 #-().]."""
    return _INVALID_NAME_CHARS.sub("", name)


def sample_filename(index: int) -> str:
    """Archive name for the sample at 0-based input position index."""
    return f"{index + 1}.wav"


def _zip_info(path: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(path, date_time=ZIP_TIMESTAMP)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


def _drop_regions(descriptor: Dict[str, Any], missing: List[str]) -> None:
    regions = descriptor.get("regions")
    if isinstance(regions, list) and missing:
        descriptor["regions"] = [
            r for r in regions if not (isinstance(r, dict) and r.get("sample") in missing)
        ]


def package_preset(
    descriptor: Dict[str, Any],
    samples: Sequence[Tuple[str, Payload]],
    preset_name: str,
    allow_empty: bool = True,
    refit_regions: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
) -> PackageResult:
    """
    Build the preset archive in memory.

    Args:
        descriptor: JSON-serializable preset descriptor; regions whose "sample"
                    names a skipped file are removed from the written copy
        samples: (display name, payload) pairs. A payload is WAV bytes or a
                 zero-argument callable producing them (e.g. Future.result)
        preset_name: Folder name before sanitization
        allow_empty: If False, raise when samples were given but none survived
        refit_regions: Called with the surviving region dicts after some were
                       dropped, to adjust them in place

    Returns:
        PackageResult

    Raises:
        PackagingError: If nothing survived and allow_empty is False
    """
    folder = sanitize_name(preset_name)
    if not folder:
        logger.warning(f"Preset name '{preset_name}' is empty after sanitizing; using '{FALLBACK_FOLDER}'")
        folder = FALLBACK_FOLDER

    written: List[Tuple[str, bytes]] = []
    diagnostics: List[PackageDiagnostic] = []
    missing: List[str] = []

    for index, (name, payload) in enumerate(samples):
        filename = sample_filename(index)
        try:
            data = payload() if callable(payload) else payload
            if not isinstance(data, (bytes, bytearray)):
                raise TypeError(f"sample payload must be bytes, got {type(data).__name__}")
        except Exception as e:
            sample_logger(logger, index, name).warning(f"skipped, {e}")
            diagnostics.append(PackageDiagnostic(index, name, str(e), type(e).__name__))
            missing.append(filename)
            continue
        written.append((filename, bytes(data)))

    if samples and not written and not allow_empty:
        raise PackagingError(
            "No samples could be packaged",
            context={"requested": len(samples), "failed": len(diagnostics)}
        )

    document = copy.deepcopy(descriptor)
    _drop_regions(document, missing)
    if missing and refit_regions is not None and document.get("regions"):
        refit_regions(document["regions"])

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for filename, data in written:
            zf.writestr(_zip_info(f"{folder}/{filename}"), data)
        zf.writestr(_zip_info(f"{folder}/{DESCRIPTOR_NAME}"), json.dumps(document, indent=2))

    log_success(logger, f"Packaged {len(written)}/{len(samples)} samples into '{folder}'")
    return PackageResult(
        archive=buf.getvalue(),
        folder=folder,
        sample_files=[f for f, _ in written],
        diagnostics=diagnostics,
    )
