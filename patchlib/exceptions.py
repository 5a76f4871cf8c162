"""
Custom exception hierarchy for patchlib.

Every error carries a human-readable message plus an optional context dict
(file names, offsets, offending values) so failures can be reported without
re-deriving what went wrong.
"""

from typing import Dict, Any, Optional


class PatchlibError(Exception):
    """
    Base exception for all patchlib errors.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error description
            context: Additional diagnostic information (file names, values, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Format exception with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


# Audio / container errors

class AudioError(PatchlibError):
    """Base class for audio-related errors."""
    pass


class WavParseError(AudioError, ValueError):
    """Base class for RIFF/WAVE parse failures. The file is rejected."""
    pass


class MalformedContainer(WavParseError):
    """
    Raised when the bytes do not start with a RIFF/WAVE header.
    """
    pass


class MissingFormatChunk(WavParseError):
    """
    Raised when the chunk walk finishes without seeing a 'fmt ' chunk.
    """
    pass


class UnsupportedCodec(WavParseError):
    """
    Raised when the 'fmt ' chunk declares anything other than linear PCM.
    """
    pass


class DecodeError(AudioError):
    """
    Raised when the PCM decode collaborator cannot turn bytes into frames.
    """
    pass


# Encoding errors

class EncodingError(PatchlibError, ValueError):
    """Base class for WAV encoding contract violations."""
    pass


class UnsupportedChannelLayout(EncodingError):
    """
    Raised when asked to encode anything other than mono or stereo.
    """
    pass


class UnsupportedBitDepth(EncodingError):
    """
    Raised when asked to encode at a bit depth other than 16 or 24.
    """
    pass


# Processing errors

class ProcessingError(PatchlibError):
    """Base class for signal processing errors."""
    pass


class ConversionError(ProcessingError):
    """
    Raised when rendering a buffer to a new rate/channel layout fails.
    """
    pass


# Metadata errors

class MetadataError(PatchlibError, ValueError):
    """Base class for note / filename metadata errors."""
    pass


class NoteFormatError(MetadataError):
    """
    Raised when a note string such as 'C#3' cannot be parsed.
    """
    pass


class FilenamePatternError(MetadataError):
    """
    Raised when a filename carries neither a note name nor a MIDI number.
    """
    pass


# Configuration errors

class ConfigurationError(PatchlibError):
    """Base class for configuration-related errors."""
    pass


class InvalidParameter(ConfigurationError, ValueError):
    """
    Raised when configuration or a value object contains invalid parameters.
    """
    pass


class PresetImportError(ConfigurationError):
    """
    Raised when an imported preset descriptor is not usable.
    """
    pass


# Packaging errors

class PackagingError(PatchlibError):
    """
    Raised when an archive cannot be assembled at all.

    Per-sample failures are not raised; they are reported as diagnostics.
    """
    pass
