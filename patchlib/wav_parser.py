"""
RIFF/WAVE parsing: format header, sampler (smpl) metadata, PCM frames.

The chunk walker advances by 8 + chunk_size with no pad byte by default,
matching the files the hardware tooling has always accepted. Pass
align=True for RIFF-compliant even alignment.
"""

import io
import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np
import soundfile as sf

from patchlib.logger import get_logger
from patchlib.exceptions import (
    DecodeError,
    MalformedContainer,
    MissingFormatChunk,
    UnsupportedCodec,
    FilenamePatternError,
    NoteFormatError,
)
from patchlib.pcm import PcmBuffer, Decoder, decode_audio
from patchlib.notes import parse_filename

logger = get_logger(__name__)

PCM_FORMAT = 1
RIFF_HEADER_LENGTH = 12
CHUNK_HEADER_LENGTH = 8
# 8-bit WAV is unsigned
PCM_SUBTYPES = {8: "PCM_U8", 16: "PCM_16", 24: "PCM_24", 32: "PCM_32"}


@dataclass(frozen=True)
class WavHeader:
    """Format fields from the 'fmt ' chunk plus the 'data' chunk length."""

    format: int
    sample_rate: int
    bit_depth: int
    channels: int
    data_length: int
    data_offset: int = -1


@dataclass(frozen=True)
class SmplChunkData:
    """Root note and first loop from a 'smpl' chunk. midi_note -1 means absent."""

    midi_note: int = -1
    loop_start: int = 0
    loop_end: int = 0
    has_loop_data: bool = False


@dataclass(frozen=True)
class WavMetadata:
    """Everything known about one uploaded file. Owned by the caller."""

    header: WavHeader
    smpl: SmplChunkData
    buffer: PcmBuffer
    duration_seconds: float
    file_size_bytes: int
    filename: Optional[str] = None
    midi_note: int = -1

    @property
    def sample_rate(self) -> int:
        return self.header.sample_rate

    @property
    def bit_depth(self) -> int:
        return self.header.bit_depth

    @property
    def channels(self) -> int:
        return self.header.channels

    @property
    def frame_count(self) -> int:
        return self.buffer.frame_count


def _check_riff(data: bytes) -> bool:
    return len(data) >= RIFF_HEADER_LENGTH and data[0:4] == b"RIFF" and data[8:12] == b"WAVE"


def iter_chunks(data: bytes, align: bool = False) -> Iterator[Tuple[bytes, int, int]]:
    """
    Walk the chunk sequence after the RIFF header.

    Yields:
        (chunk_id, payload_offset, chunk_size) for every complete chunk header
    """
    offset = RIFF_HEADER_LENGTH
    while offset + CHUNK_HEADER_LENGTH <= len(data):
        chunk_id = data[offset:offset + 4]
        (chunk_size,) = struct.unpack_from("<I", data, offset + 4)
        yield chunk_id, offset + CHUNK_HEADER_LENGTH, chunk_size
        offset += CHUNK_HEADER_LENGTH + chunk_size
        if align:
            offset += chunk_size % 2


def parse_wav_header(data: bytes, align: bool = False) -> WavHeader:
    """
    Parse the RIFF/WAVE container header.

    Args:
        data: Raw file bytes
        align: Honor RIFF pad bytes after odd-sized chunks

    Returns:
        WavHeader; data_length is 0 when no 'data' chunk exists

    Raises:
        MalformedContainer: Not a RIFF/WAVE file, or a truncated 'fmt ' chunk
        MissingFormatChunk: No 'fmt ' chunk found
        UnsupportedCodec: audioFormat is not linear PCM (1)
    """
    if not _check_riff(data):
        raise MalformedContainer(
            "Not a RIFF/WAVE file",
            context={"size_bytes": len(data), "magic": bytes(data[0:4])}
        )

    fmt_offset = -1
    fmt_size = 0
    data_length = 0
    data_offset = -1

    for chunk_id, payload_offset, chunk_size in iter_chunks(data, align):
        if chunk_id == b"fmt " and fmt_offset == -1:
            fmt_offset = payload_offset
            fmt_size = chunk_size
        elif chunk_id == b"data" and data_offset == -1:
            data_offset = payload_offset
            data_length = chunk_size

    if fmt_offset == -1:
        raise MissingFormatChunk("WAV file is missing fmt chunk", context={"size_bytes": len(data)})

    if fmt_size < 16 or fmt_offset + 16 > len(data):
        raise MalformedContainer(
            "fmt chunk is truncated",
            context={"fmt_size": fmt_size, "size_bytes": len(data)}
        )

    audio_format, channels, sample_rate = struct.unpack_from("<HHI", data, fmt_offset)
    (bit_depth,) = struct.unpack_from("<H", data, fmt_offset + 14)

    if audio_format != PCM_FORMAT:
        raise UnsupportedCodec(
            "Only linear PCM WAV files are supported",
            context={"audio_format": audio_format}
        )

    if data_offset == -1:
        logger.debug("No data chunk found; data_length defaults to 0")

    return WavHeader(
        format=audio_format,
        sample_rate=sample_rate,
        bit_depth=bit_depth,
        channels=channels,
        data_length=data_length,
        data_offset=data_offset,
    )


def parse_smpl_chunk(data: bytes, align: bool = False) -> SmplChunkData:
    """
    Read the root note and first loop from a 'smpl' chunk.

    Absence of the chunk (or of a RIFF header at all) is not an error; the
    default SmplChunkData is returned.
    """
    if not _check_riff(data):
        return SmplChunkData()

    for chunk_id, offset, chunk_size in iter_chunks(data, align):
        if chunk_id != b"smpl":
            continue

        if offset + 24 > len(data):
            logger.debug("smpl chunk too short for a root note")
            return SmplChunkData()

        # Unity note at +20 rather than the +12 of the published smpl layout
        (unity_note,) = struct.unpack_from("<I", data, offset + 20)
        midi_note = unity_note if unity_note <= 127 else -1

        if offset + 32 > len(data):
            return SmplChunkData(midi_note=midi_note)

        (num_loops,) = struct.unpack_from("<I", data, offset + 28)
        if num_loops > 0 and offset + 52 <= len(data):
            loop_start, loop_end = struct.unpack_from("<II", data, offset + 44)
            return SmplChunkData(
                midi_note=midi_note,
                loop_start=loop_start,
                loop_end=loop_end,
                has_loop_data=True,
            )
        return SmplChunkData(midi_note=midi_note)

    return SmplChunkData()


def decode_pcm_data(data: bytes, header: Optional[WavHeader] = None) -> PcmBuffer:
    """
    Decode the 'data' chunk of a linear PCM WAV file.

    The chunk located by the header walk is handed to soundfile as raw PCM,
    so files soundfile would reject for their chunk layout still decode.
    Integer samples are scaled by the symmetric full-scale value
    (2**(bits-1) - 1), the exact inverse of patchlib.wav_encoder.

    Args:
        data: Raw file bytes
        header: Pre-parsed header (parsed here when omitted)

    Returns:
        PcmBuffer with header.channels rows

    Raises:
        UnsupportedCodec: If the bit depth is not 8, 16, 24 or 32
        DecodeError: If soundfile cannot read the frames
    """
    if header is None:
        header = parse_wav_header(data)

    subtype = PCM_SUBTYPES.get(header.bit_depth)
    if subtype is None:
        raise UnsupportedCodec(
            "Unsupported PCM bit depth",
            context={"bit_depth": header.bit_depth}
        )
    if header.channels < 1:
        raise MalformedContainer("fmt chunk declares zero channels")

    block_align = header.bit_depth // 8 * header.channels
    if header.data_offset < 0:
        raw = b""
    else:
        end = min(header.data_offset + header.data_length, len(data))
        raw = data[header.data_offset:end]
    frame_count = len(raw) // block_align

    if frame_count == 0:
        return PcmBuffer(np.zeros((header.channels, 0), dtype=np.float32), header.sample_rate)

    try:
        ints, _ = sf.read(
            io.BytesIO(raw[:frame_count * block_align]),
            dtype="int32",
            always_2d=True,
            format="RAW",
            subtype=subtype,
            endian="LITTLE",
            channels=header.channels,
            samplerate=header.sample_rate,
        )
    except (RuntimeError, TypeError, ValueError) as e:
        raise DecodeError(
            "Could not decode PCM frames",
            context={"bit_depth": header.bit_depth, "error": str(e)}
        )

    # soundfile left-justifies integer PCM in 32 bits
    ints = np.right_shift(ints, 32 - header.bit_depth).astype(np.float64)
    scale = float(2 ** (header.bit_depth - 1) - 1)
    return PcmBuffer.from_interleaved(np.clip(ints / scale, -1.0, 1.0), header.sample_rate)


def read_wav_metadata(
    data: bytes,
    filename: Optional[str] = None,
    decoder: Decoder = decode_audio,
    align: bool = False,
) -> WavMetadata:
    """
    Parse header and smpl metadata, then decode the frames.

    When the smpl chunk carries no root note, the filename is tried
    ('piano_C3.wav', 'pad-60.wav'); an unparseable filename leaves it at -1.

    Args:
        data: Raw file bytes
        filename: Original file name, used for root-note fallback
        decoder: PCM decode collaborator (soundfile by default)
        align: Honor RIFF pad bytes while walking chunks

    Returns:
        WavMetadata

    Raises:
        MalformedContainer, MissingFormatChunk, UnsupportedCodec: On bad headers
        DecodeError: If the decoder rejects the data
    """
    header = parse_wav_header(data, align=align)
    smpl = parse_smpl_chunk(data, align=align)
    buffer = decoder(data)

    if buffer.sample_rate != header.sample_rate:
        logger.warning(
            f"Decoder returned {buffer.sample_rate} Hz but header says {header.sample_rate} Hz"
        )

    midi_note = smpl.midi_note
    if midi_note < 0 and filename:
        try:
            _, midi_note = parse_filename(filename)
        except (FilenamePatternError, NoteFormatError):
            logger.debug(f"No root note in filename: {filename}")
            midi_note = -1
        if not 0 <= midi_note <= 127:
            midi_note = -1

    logger.debug(
        f"Parsed {filename or '<bytes>'}: {header.channels}ch {header.bit_depth}-bit "
        f"{header.sample_rate} Hz, root={midi_note}, loop={smpl.has_loop_data}"
    )

    return WavMetadata(
        header=header,
        smpl=smpl,
        buffer=buffer,
        duration_seconds=buffer.duration_seconds,
        file_size_bytes=len(data),
        filename=filename,
        midi_note=midi_note,
    )
