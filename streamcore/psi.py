"""Program specific information sections: the generic PSI frame and the PAT."""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass, field, replace
from typing import BinaryIO

from .crc32 import get_crc32

TS_PACKET_SIZE = 188

TABLE_PAS = 0x00
TABLE_CAS = 0x01
TABLE_TSPMS = 0x02

DEFAULT_PAT_PACKET = (
    bytes(
        [
            # TS header
            0x47, 0x40, 0x00, 0x10,
            # pointer field
            0x00,
            # PSI
            0x00, 0xB0, 0x0D, 0x00, 0x01, 0xC1, 0x00, 0x00,
            # PAT
            0x00, 0x01, 0xE1, 0x00,
            # CRC
            0xE8, 0xF9, 0x5E, 0x7D,
        ]
    )
    + b"\xff" * 167
)


class PsiError(ValueError):
    """A PSI section is malformed or inconsistent."""


class PsiType(enum.IntEnum):
    PAT = 1
    PMT = 2
    NIT = 3
    CAT = 4
    TST = 5
    IPMP_CIT = 6


_EXPECTED_TABLE_ID = {PsiType.PAT: TABLE_PAS, PsiType.PMT: TABLE_TSPMS}

# table_id_extension(16) + version(8) + section_number(8) + last_section_number(8)
_FIXED_SECTION_BYTES = 5
_CRC_BYTES = 4


@dataclass
class PsiHeader:
    """Common fields of a long-form PSI section."""

    table_id: int = TABLE_PAS
    section_syntax_indicator: int = 1
    section_length: int = 0
    table_id_extension: int = 1
    version_number: int = 0
    current_next_indicator: int = 1
    section_number: int = 0
    last_section_number: int = 0
    crc32: int = 0


@dataclass
class PatProgram:
    program_number: int
    network_pid: int = 0
    program_map_pid: int = 0


@dataclass
class Pat:
    """Program association table."""

    programs: list[PatProgram] = field(default_factory=list)
    header: PsiHeader = field(default_factory=lambda: PsiHeader(table_id=TABLE_PAS))

    @property
    def transport_stream_id(self) -> int:
        return self.header.table_id_extension


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) < size:
        raise EOFError(f"expected {size} bytes, got {len(data or b'')}")
    return data


def _check_table_id(psi_type: int, table_id: int) -> None:
    expected = _EXPECTED_TABLE_ID.get(PsiType(psi_type))
    if expected is not None and table_id != expected:
        raise PsiError(f"{PsiType(psi_type).name} table id must be {expected}, got {table_id}")


def read_psi(
    stream: BinaryIO, psi_type: int, check_crc: bool = False
) -> tuple[PsiHeader, bytes]:
    """Read one PSI section, returning its header and the table body.

    The body excludes the trailing CRC, which is stored in the header and
    verified when ``check_crc`` is true.
    """
    pointer_field = _read_exact(stream, 1)[0]
    if pointer_field:
        _read_exact(stream, pointer_field)

    head = _read_exact(stream, 3)
    table_id = head[0]
    flags_and_length = int.from_bytes(head[1:3], "big")
    section_length = flags_and_length & 0x3FF
    if section_length < _FIXED_SECTION_BYTES + _CRC_BYTES:
        raise PsiError(f"section length {section_length} is too short")

    section = _read_exact(stream, section_length)
    _check_table_id(psi_type, table_id)

    version_byte = section[2]
    stored_crc = int.from_bytes(section[-_CRC_BYTES:], "big")
    header = PsiHeader(
        table_id=table_id,
        section_syntax_indicator=(flags_and_length & 0x8000) >> 15,
        section_length=section_length,
        table_id_extension=int.from_bytes(section[0:2], "big"),
        version_number=(version_byte >> 1) & 0x1F,
        current_next_indicator=version_byte & 0x01,
        section_number=section[3],
        last_section_number=section[4],
        crc32=stored_crc,
    )
    if check_crc and get_crc32(head + section[:-_CRC_BYTES]) != stored_crc:
        raise PsiError("crc32 mismatch")
    return header, section[_FIXED_SECTION_BYTES:-_CRC_BYTES]


def write_psi(out: BinaryIO, psi_type: int, header: PsiHeader, data: bytes) -> None:
    """Write a PSI section (pointer field, header, ``data`` and CRC).

    A zero ``section_length`` is replaced by the length implied by ``data``.
    """
    _check_table_id(psi_type, header.table_id)
    section_length = header.section_length or (
        _FIXED_SECTION_BYTES + _CRC_BYTES + len(data)
    )
    section = bytearray()
    section.append(header.table_id & 0xFF)
    section += (
        (header.section_syntax_indicator & 1) << 15 | 3 << 12 | (section_length & 0xFFF)
    ).to_bytes(2, "big")
    section += (header.table_id_extension & 0xFFFF).to_bytes(2, "big")
    section.append(
        0xC0 | (header.version_number & 0x1F) << 1 | (header.current_next_indicator & 1)
    )
    section.append(header.section_number & 0xFF)
    section.append(header.last_section_number & 0xFF)
    section += data
    section += get_crc32(bytes(section)).to_bytes(4, "big")
    out.write(b"\x00" + bytes(section))


def read_pat(stream: BinaryIO, check_crc: bool = False) -> Pat:
    """Read a program association table section."""
    header, body = read_psi(stream, PsiType.PAT, check_crc)
    if len(body) % 4:
        raise PsiError(f"PAT body length {len(body)} is not a multiple of 4")
    programs = []
    for offset in range(0, len(body), 4):
        number = int.from_bytes(body[offset : offset + 2], "big")
        pid = int.from_bytes(body[offset + 2 : offset + 4], "big") & 0x1FFF
        if number == 0:
            programs.append(PatProgram(number, network_pid=pid))
        else:
            programs.append(PatProgram(number, program_map_pid=pid))
    return Pat(programs=programs, header=header)


def write_pat(out: BinaryIO, pat: Pat) -> None:
    """Write a program association table section."""
    body = bytearray()
    for program in pat.programs:
        body += (program.program_number & 0xFFFF).to_bytes(2, "big")
        pid = program.network_pid if program.program_number == 0 else program.program_map_pid
        body += ((pid & 0x1FFF) | 7 << 13).to_bytes(2, "big")
    header = pat.header
    if header.section_length == 0:
        header = replace(
            header, section_length=_FIXED_SECTION_BYTES + _CRC_BYTES + len(body)
        )
    write_psi(out, PsiType.PAT, header, bytes(body))


def write_pat_packet(out: BinaryIO, ts_header: bytes, pat: Pat) -> None:
    """Write a full transport packet carrying ``pat`` after ``ts_header``."""
    if pat.header.table_id != TABLE_PAS:
        raise PsiError("PAT table ID error")
    buffer = io.BytesIO()
    write_pat(buffer, pat)
    payload = buffer.getvalue()
    stuffing = TS_PACKET_SIZE - 4 - len(payload)
    if stuffing < 0:
        raise PsiError(f"PAT of {len(payload)} bytes does not fit in one packet")
    out.write(bytes(ts_header) + payload + b"\xff" * stuffing)


def write_default_pat_packet(out: BinaryIO) -> None:
    """Write the fixed PAT packet announcing program 1 on PID 0x100."""
    out.write(DEFAULT_PAT_PACKET)