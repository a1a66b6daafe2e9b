"""Program map table sections and the fixed single-program PMT packet."""

from __future__ import annotations

import enum
import io
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import BinaryIO

from .crc32 import get_crc32
from .psi import (
    TABLE_TSPMS,
    TS_PACKET_SIZE,
    PsiError,
    PsiHeader,
    PsiType,
    read_psi,
    write_psi,
)

PID_PMT = 0x0100
PID_VIDEO = 0x0101
PID_AUDIO = 0x0102

STREAM_TYPE_VIDEO_MPEG1 = 0x01
STREAM_TYPE_VIDEO_MPEG2 = 0x02
STREAM_TYPE_AUDIO_MPEG1 = 0x03
STREAM_TYPE_AUDIO_MPEG2 = 0x04
STREAM_TYPE_PRIVATE_SECTIONS = 0x05
STREAM_TYPE_PRIVATE_DATA = 0x06
STREAM_TYPE_MHEG = 0x07
STREAM_TYPE_H264 = 0x1B
STREAM_TYPE_H265 = 0x24
STREAM_TYPE_AAC = 0x0F
STREAM_TYPE_G711A = 0x90
STREAM_TYPE_G711U = 0x91
STREAM_TYPE_G722_1 = 0x92
STREAM_TYPE_G723_1 = 0x93
STREAM_TYPE_G726 = 0x94
STREAM_TYPE_G729 = 0x99
STREAM_TYPE_ADPCM = 0x11
STREAM_TYPE_PCM = 0x0A
STREAM_TYPE_AC3 = 0x81
STREAM_TYPE_DTS = 0x8A
STREAM_TYPE_LPCM = 0x8B


class VideoCodec(enum.IntEnum):
    H264 = 7
    H265 = 12
    AV1 = 13


class AudioCodec(enum.IntEnum):
    PCMA = 7
    PCMU = 8
    AAC = 10
    OPUS = 13


# TS header of the PMT packet (PID 0x100, payload only) followed by the pointer field.
TS_HEADER = bytes([0x47, 0x40 | (PID_PMT >> 8), PID_PMT & 0xFF, 0x10, 0x00])
# PCR PID 0x101, no program info descriptors.
PMT_FIELDS = bytes([0xE0 | (PID_VIDEO >> 8), PID_VIDEO & 0xFF, 0xF0, 0x00])


def _stream_entry(stream_type: int, pid: int) -> bytes:
    return bytes([stream_type, 0xE0 | (pid >> 8), pid & 0xFF, 0xF0, 0x00])


_VIDEO_ENTRIES = {
    VideoCodec.H264: _stream_entry(STREAM_TYPE_H264, PID_VIDEO),
    VideoCodec.H265: _stream_entry(STREAM_TYPE_H265, PID_VIDEO),
}
_AUDIO_ENTRIES = {
    AudioCodec.AAC: _stream_entry(STREAM_TYPE_AAC, PID_AUDIO),
    AudioCodec.PCMA: _stream_entry(STREAM_TYPE_G711A, PID_AUDIO),
    AudioCodec.PCMU: _stream_entry(STREAM_TYPE_G711U, PID_AUDIO),
}


@dataclass
class Descriptor:
    """A tag/length/data descriptor."""

    tag: int
    data: bytes = b""

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass
class PmtStream:
    """One elementary stream announced by a PMT."""

    stream_type: int
    elementary_pid: int
    descriptors: list[Descriptor] = field(default_factory=list)


@dataclass
class Pmt:
    """Program map table."""

    pcr_pid: int = 0
    program_info_descriptors: list[Descriptor] = field(default_factory=list)
    streams: list[PmtStream] = field(default_factory=list)
    header: PsiHeader = field(default_factory=lambda: PsiHeader(table_id=TABLE_TSPMS))

    @property
    def program_number(self) -> int:
        return self.header.table_id_extension


def _take(body: bytes, offset: int, size: int) -> bytes:
    if offset + size > len(body):
        raise PsiError(f"PMT truncated at offset {offset}")
    return body[offset : offset + size]


def read_pmt_descriptors(data: bytes) -> list[Descriptor]:
    """Split a descriptor loop into its descriptors."""
    descriptors = []
    offset = 0
    while offset < len(data):
        tag, length = _take(data, offset, 2)
        payload = _take(data, offset + 2, length)
        descriptors.append(Descriptor(tag, bytes(payload)))
        offset += 2 + length
    return descriptors


def read_pmt(stream: BinaryIO, check_crc: bool = False) -> Pmt:
    """Read a program map table section."""
    header, body = read_psi(stream, PsiType.PMT, check_crc)
    pcr_pid = int.from_bytes(_take(body, 0, 2), "big") & 0x1FFF
    info_length = int.from_bytes(_take(body, 2, 2), "big") & 0x3FF
    program_info = read_pmt_descriptors(_take(body, 4, info_length))
    offset = 4 + info_length
    streams = []
    while offset < len(body):
        entry = _take(body, offset, 5)
        es_info_length = int.from_bytes(entry[3:5], "big") & 0x3FF
        descriptors = read_pmt_descriptors(_take(body, offset + 5, es_info_length))
        streams.append(
            PmtStream(
                stream_type=entry[0],
                elementary_pid=int.from_bytes(entry[1:3], "big") & 0x1FFF,
                descriptors=descriptors,
            )
        )
        offset += 5 + es_info_length
    return Pmt(
        pcr_pid=pcr_pid,
        program_info_descriptors=program_info,
        streams=streams,
        header=header,
    )


def _encode_descriptors(descriptors: Iterable[Descriptor]) -> bytes:
    buffer = io.BytesIO()
    write_pmt_descriptors(buffer, descriptors)
    return buffer.getvalue()


def write_pmt_descriptors(out: BinaryIO, descriptors: Iterable[Descriptor]) -> None:
    """Write a descriptor loop."""
    for descriptor in descriptors:
        if descriptor.length > 0xFF:
            raise PsiError(f"descriptor data of {descriptor.length} bytes is too long")
        out.write(bytes([descriptor.tag & 0xFF, descriptor.length]) + bytes(descriptor.data))


def write_pmt_body(out: BinaryIO, pmt: Pmt) -> None:
    """Write the PMT fields that follow the common PSI header."""
    info = _encode_descriptors(pmt.program_info_descriptors)
    out.write(((pmt.pcr_pid & 0x1FFF) | 7 << 13).to_bytes(2, "big"))
    out.write((len(info) | 0xF000).to_bytes(2, "big"))
    out.write(info)
    for entry in pmt.streams:
        es_info = _encode_descriptors(entry.descriptors)
        out.write(bytes([entry.stream_type & 0xFF]))
        out.write(((entry.elementary_pid & 0x1FFF) | 7 << 13).to_bytes(2, "big"))
        out.write((len(es_info) | 0xF000).to_bytes(2, "big"))
        out.write(es_info)


def write_pmt(out: BinaryIO, pmt: Pmt) -> None:
    """Write a complete program map table section."""
    body = io.BytesIO()
    write_pmt_body(body, pmt)
    write_psi(out, PsiType.PMT, pmt.header, body.getvalue())


def write_pmt_packet(
    out: BinaryIO,
    video_codec: VideoCodec | int | None,
    audio_codec: AudioCodec | int | None,
) -> None:
    """Write a 188-byte PMT packet for program 1 with the given codecs.

    Codecs without a transport stream mapping are left out of the table.
    """
    entries = []
    if video_codec in _VIDEO_ENTRIES:
        entries.append(_VIDEO_ENTRIES[video_codec])
    if audio_codec in _AUDIO_ENTRIES:
        entries.append(_AUDIO_ENTRIES[audio_codec])
    section_length = 5 + len(PMT_FIELDS) + 5 * len(entries) + 4
    psi = bytes(
        [
            TABLE_TSPMS,
            0xB0 | (section_length >> 8),
            section_length & 0xFF,
            0x00,
            0x01,
            0xC1,
            0x00,
            0x00,
        ]
    )
    section = psi + PMT_FIELDS + b"".join(entries)
    packet = TS_HEADER + section + get_crc32(section).to_bytes(4, "big")
    out.write(packet + b"\xff" * (TS_PACKET_SIZE - len(packet)))