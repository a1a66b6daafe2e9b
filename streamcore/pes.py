"""Packetized elementary stream (PES) headers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO

PACKET_START_CODE_PREFIX = 0x000001

STREAM_ID_VIDEO = 0xE0
STREAM_ID_AUDIO = 0xC0

# Length assumed for a PES packet whose length field is zero (unbounded video).
_UNBOUNDED_LENGTH = 1 << 31
# Optional header bytes that follow the length field: two flag bytes and the
# header data length.
_OPTIONAL_HEADER_BYTES = 3


class PesError(ValueError):
    """A PES header is malformed or cannot be written."""


@dataclass
class PesHeader:
    """Fields of a PES packet header.

    Flag fields hold the bits at their position in the header byte, as they
    appear on the wire (for example ``pts_dts_flags`` is 0x80 or 0xC0).
    """

    packet_start_code_prefix: int = PACKET_START_CODE_PREFIX
    stream_id: int = 0
    pes_packet_length: int = 0

    const_ten: int = 0x80
    pes_scrambling_control: int = 0
    pes_priority: int = 0
    data_alignment_indicator: int = 0
    copyright: int = 0
    original_or_copy: int = 0

    pts_dts_flags: int = 0
    escr_flag: int = 0
    es_rate_flag: int = 0
    dsm_trick_mode_flag: int = 0
    additional_copy_info_flag: int = 0
    pes_crc_flag: int = 0
    pes_extension_flag: int = 0
    pes_header_data_length: int = 0

    pts: int = 0
    dts: int = 0
    es_rate: int = 0
    additional_copy_info: int = 0
    previous_pes_packet_crc: int = 0

    pes_private_data_flag: int = 0
    pack_header_field_flag: int = 0
    program_packet_sequence_counter_flag: int = 0
    pstd_buffer_flag: int = 0
    pes_extension_flag2: int = 0

    # Bytes of payload left after the header; zero when the length is unbounded.
    payload_length: int = 0


@dataclass
class PesPacket:
    """A PES packet: its header, payload read from TS packets, and buffers to write."""

    header: PesHeader = field(default_factory=PesHeader)
    payload: bytearray = field(default_factory=bytearray)
    buffers: list[bytes] = field(default_factory=list)


@dataclass
class PesFrame:
    """Per-stream state used while packing PES packets into TS packets."""

    pid: int = 0
    is_key_frame: bool = False
    continuity_counter: int = 0
    program_clock_reference_base: int = 0


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) < size:
        raise EOFError(f"expected {size} bytes, got {len(data or b'')}")
    return data


class _Cursor:
    """Sequential reader over the optional header bytes."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, size: int) -> bytes:
        if self._pos + size > len(self._data):
            raise EOFError("PES header data ended early")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")


def decode_pts_dts(value: int) -> int:
    """Extract the 33-bit timestamp from its 40-bit marker-bit encoding."""
    return (
        (value >> 3) & (0x7 << 30)
        | (value >> 2) & (0x7FFF << 15)
        | (value >> 1) & 0x7FFF
    )


def encode_pts_dts(value: int) -> int:
    """Spread a 33-bit timestamp over 40 bits with its marker bits set."""
    return (
        (value & 0x1C0000000) << 3
        | (value & 0x3FFF8000) << 2
        | (value & 0x7FFF) << 1
        | 0x100010001
    )


def read_pes_header(stream: BinaryIO) -> PesHeader:
    """Read a PES header, leaving ``stream`` at the start of the payload."""
    header = PesHeader()
    header.packet_start_code_prefix = int.from_bytes(_read_exact(stream, 3), "big")
    if header.packet_start_code_prefix != PACKET_START_CODE_PREFIX:
        raise PesError("read PacketStartCodePrefix is not 0x0000001")
    header.stream_id = _read_exact(stream, 1)[0]
    header.pes_packet_length = int.from_bytes(_read_exact(stream, 2), "big")

    remaining = header.pes_packet_length or _UNBOUNDED_LENGTH
    if remaining < _OPTIONAL_HEADER_BYTES:
        raise EOFError("PES packet length too short for its header")

    flags1, flags2, header_data_length = _read_exact(stream, _OPTIONAL_HEADER_BYTES)
    remaining -= _OPTIONAL_HEADER_BYTES

    header.const_ten = flags1 & 0xC0
    header.pes_scrambling_control = flags1 & 0x30
    header.pes_priority = flags1 & 0x08
    header.data_alignment_indicator = flags1 & 0x04
    header.copyright = flags1 & 0x02
    header.original_or_copy = flags1 & 0x01

    header.pts_dts_flags = flags2 & 0xC0
    header.escr_flag = flags2 & 0x20
    header.es_rate_flag = flags2 & 0x10
    header.dsm_trick_mode_flag = flags2 & 0x08
    header.additional_copy_info_flag = flags2 & 0x04
    header.pes_crc_flag = flags2 & 0x02
    header.pes_extension_flag = flags2 & 0x01
    header.pes_header_data_length = header_data_length

    if header_data_length > remaining:
        raise EOFError("PES header data exceeds the packet length")
    cursor = _Cursor(_read_exact(stream, header_data_length))
    remaining -= header_data_length

    if flags2 & 0x80:
        header.pts = decode_pts_dts(cursor.uint(5))
        if flags2 & 0x40:
            header.dts = decode_pts_dts(cursor.uint(5))

    if header.escr_flag:
        cursor.take(6)
    if header.es_rate_flag:
        header.es_rate = cursor.uint(3)
    if header.additional_copy_info_flag:
        header.additional_copy_info = cursor.uint(1) & 0x7F
    if header.pes_crc_flag:
        header.previous_pes_packet_crc = cursor.uint(2)

    if header.pes_extension_flag:
        ext = cursor.uint(1)
        header.pes_private_data_flag = ext & 0x80
        header.pack_header_field_flag = ext & 0x40
        header.program_packet_sequence_counter_flag = ext & 0x20
        header.pstd_buffer_flag = ext & 0x10
        header.pes_extension_flag2 = ext & 0x01
        if header.pes_private_data_flag:
            cursor.take(16)
        if header.pack_header_field_flag:
            cursor.take(1)
        if header.program_packet_sequence_counter_flag:
            cursor.take(2)
        if header.pstd_buffer_flag:
            cursor.take(2)
        cursor.take(2)  # extension field length and stream id extension flag

    if remaining < 65536:
        header.payload_length = remaining
    return header


def write_pes_header(out: BinaryIO, header: PesHeader) -> int:
    """Write the fixed part of a PES header and its PTS/DTS; return bytes written."""
    if header.packet_start_code_prefix != PACKET_START_CODE_PREFIX:
        raise PesError("write PacketStartCodePrefix is not 0x0000001")
    if header.const_ten != 0x80:
        raise PesError("pes header ConstTen != 0x80")

    flags1 = (
        header.const_ten
        | header.pes_scrambling_control
        | header.pes_priority
        | header.data_alignment_indicator
        | header.copyright
        | header.original_or_copy
    )
    flags2 = (
        header.pts_dts_flags
        | header.escr_flag
        | header.es_rate_flag
        | header.dsm_trick_mode_flag
        | header.additional_copy_info_flag
        | header.pes_crc_flag
        | header.pes_extension_flag
    )
    data = bytearray(PACKET_START_CODE_PREFIX.to_bytes(3, "big"))
    data.append(header.stream_id & 0xFF)
    data += (header.pes_packet_length & 0xFFFF).to_bytes(2, "big")
    data += bytes([flags1 & 0xFF, flags2 & 0xFF, header.pes_header_data_length & 0xFF])

    if header.pts_dts_flags & 0x80:
        if header.pts_dts_flags & 0x40:
            data += (encode_pts_dts(header.pts) | 3 << 36).to_bytes(5, "big")
            data += (encode_pts_dts(header.dts) | 1 << 36).to_bytes(5, "big")
        else:
            data += (encode_pts_dts(header.pts) | 2 << 36).to_bytes(5, "big")

    out.write(bytes(data))
    return len(data)