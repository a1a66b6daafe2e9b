"""MPEG transport stream packets and a demultiplexer that yields PES packets."""

from __future__ import annotations

import io
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import BinaryIO

from .pes import PesPacket, read_pes_header
from .pmt import Pmt, read_pmt
from .psi import TS_PACKET_SIZE, Pat, read_pat

TS_DVHS_PACKET_SIZE = 192
TS_FEC_PACKET_SIZE = 204
TS_MAX_PACKET_SIZE = 204

PID_PAT = 0x0000
PID_CAT = 0x0001
PID_TSDT = 0x0002

SYNC_BYTE = 0x47


class TsError(ValueError):
    """A transport stream packet header is malformed."""


@dataclass
class TsHeader:
    """Transport packet header with its optional adaptation field.

    Single-bit flags hold 0 or 1.
    """

    sync_byte: int = SYNC_BYTE
    transport_error_indicator: int = 0
    payload_unit_start_indicator: int = 0
    transport_priority: int = 0
    pid: int = 0
    transport_scrambling_control: int = 0
    adaption_field_control: int = 1
    continuity_counter: int = 0

    adaptation_field_length: int = 0
    discontinuity_indicator: int = 0
    random_access_indicator: int = 0
    elementary_stream_priority_indicator: int = 0
    pcr_flag: int = 0
    opcr_flag: int = 0
    splicing_point_flag: int = 0
    transport_private_data_flag: int = 0
    adaptation_field_extension_flag: int = 0

    program_clock_reference_base: int = 0
    program_clock_reference_extension: int = 0
    original_program_clock_reference_base: int = 0
    original_program_clock_reference_extension: int = 0
    splice_countdown: int = 0
    transport_private_data_length: int = 0
    transport_private_data: bytes = b""


@dataclass
class TsPacket:
    """A 188-byte transport packet split into header and payload."""

    header: TsHeader
    payload: bytes = b""


def _read_full(stream: BinaryIO, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = stream.read(size - len(chunks))
        if not chunk:
            break
        chunks += chunk
    return bytes(chunks)


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = _read_full(stream, size)
    if len(data) < size:
        raise EOFError(f"expected {size} bytes, got {len(data)}")
    return data


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, size: int) -> bytes:
        if self._pos + size > len(self._data):
            raise EOFError("adaptation field ended early")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")


def _read_adaptation_field(header: TsHeader, data: bytes) -> None:
    cursor = _Cursor(data)
    flags = cursor.uint(1)
    header.discontinuity_indicator = flags >> 7 & 1
    header.random_access_indicator = flags >> 6 & 1
    header.elementary_stream_priority_indicator = flags >> 5 & 1
    header.pcr_flag = flags >> 4 & 1
    header.opcr_flag = flags >> 3 & 1
    header.splicing_point_flag = flags >> 2 & 1
    header.transport_private_data_flag = flags >> 1 & 1
    header.adaptation_field_extension_flag = flags & 1

    if header.pcr_flag:
        pcr = cursor.uint(6)
        header.program_clock_reference_base = pcr >> 15
        header.program_clock_reference_extension = pcr & 0x1FF
    if header.opcr_flag:
        opcr = cursor.uint(6)
        header.original_program_clock_reference_base = opcr >> 15
        header.original_program_clock_reference_extension = opcr & 0x1FF
    if header.splicing_point_flag:
        header.splice_countdown = cursor.uint(1)
    if header.transport_private_data_flag:
        header.transport_private_data_length = cursor.uint(1)
        header.transport_private_data = cursor.take(header.transport_private_data_length)


def read_ts_header(stream: BinaryIO) -> TsHeader:
    """Read a transport packet header and its adaptation field, if any."""
    h = int.from_bytes(_read_exact(stream, 4), "big")
    header = TsHeader(sync_byte=h >> 24 & 0xFF)
    if header.sync_byte != SYNC_BYTE:
        raise TsError("mpegts header sync error!")
    header.transport_error_indicator = h >> 23 & 1
    header.payload_unit_start_indicator = h >> 22 & 1
    header.transport_priority = h >> 21 & 1
    header.pid = h >> 8 & 0x1FFF
    header.transport_scrambling_control = h >> 6 & 0x3
    header.adaption_field_control = h >> 4 & 0x3
    header.continuity_counter = h & 0xF

    if header.adaption_field_control >= 2:
        header.adaptation_field_length = _read_exact(stream, 1)[0]
        if header.adaptation_field_length > 0:
            data = _read_exact(stream, header.adaptation_field_length)
            _read_adaptation_field(header, data)
    return header


def read_ts_packet(stream: BinaryIO) -> TsPacket:
    """Read one 188-byte transport packet."""
    reader = io.BytesIO(_read_exact(stream, TS_PACKET_SIZE))
    header = read_ts_header(reader)
    return TsPacket(header=header, payload=reader.read())


def write_ts_header(out: BinaryIO, header: TsHeader) -> int:
    """Write a transport packet header; return the number of bytes written.

    Stuffing after the adaptation field is left to the caller.
    """
    if header.sync_byte != SYNC_BYTE:
        raise TsError("mpegts header sync error!")
    h = (
        (header.sync_byte & 0xFF) << 24
        | (header.transport_error_indicator & 1) << 23
        | (header.payload_unit_start_indicator & 1) << 22
        | (header.transport_priority & 1) << 21
        | (header.pid & 0x1FFF) << 8
        | (header.transport_scrambling_control & 0x3) << 6
        | (header.adaption_field_control & 0x3) << 4
        | (header.continuity_counter & 0xF)
    )
    data = bytearray(h.to_bytes(4, "big"))

    if header.adaption_field_control >= 2:
        data.append(header.adaptation_field_length & 0xFF)
        if header.adaptation_field_length > 0:
            flags = (
                (header.discontinuity_indicator & 1) << 7
                | (header.random_access_indicator & 1) << 6
                | (header.elementary_stream_priority_indicator & 1) << 5
                | (header.pcr_flag & 1) << 4
                | (header.opcr_flag & 1) << 3
                | (header.splicing_point_flag & 1) << 2
                | (header.transport_private_data_flag & 1) << 1
                | (header.adaptation_field_extension_flag & 1)
            )
            data.append(flags)
            if header.pcr_flag:
                pcr = (
                    header.program_clock_reference_base << 15
                    | 0x3F << 9
                    | (header.program_clock_reference_extension & 0x1FF)
                )
                data += (pcr & 0xFFFFFFFFFFFF).to_bytes(6, "big")
            if header.opcr_flag:
                opcr = (
                    header.original_program_clock_reference_base << 15
                    | 0x3F << 9
                    | (header.original_program_clock_reference_extension & 0x1FF)
                )
                data += (opcr & 0xFFFFFFFFFFFF).to_bytes(6, "big")

    out.write(bytes(data))
    return len(data)


@dataclass
class TsStream:
    """Demultiplexer state: the tables seen so far and PES packets being assembled."""

    pat: Pat = field(default_factory=Pat)
    pmt: Pmt = field(default_factory=Pmt)
    pes_buffer: dict[int, PesPacket | None] = field(default_factory=dict)

    def feed(self, source: BinaryIO) -> Iterator[PesPacket]:
        """Read transport packets from ``source`` and yield completed PES packets.

        At the end of the input every PES packet still being assembled is
        yielded too. A trailing partial packet raises ``EOFError``.
        """
        while True:
            data = _read_full(source, TS_PACKET_SIZE)
            if not data:
                for pes in self.pes_buffer.values():
                    if pes is not None:
                        yield pes
                return
            if len(data) < TS_PACKET_SIZE:
                raise EOFError(f"partial transport packet of {len(data)} bytes")

            reader = io.BytesIO(data)
            header = read_ts_header(reader)

            if header.pid == PID_PAT:
                self.pat = read_pat(reader)
                continue

            if not self.pmt.streams:
                for program in self.pat.programs:
                    if program.program_map_pid == header.pid:
                        self.pmt = read_pmt(reader)
                        for entry in self.pmt.streams:
                            self.pes_buffer[entry.elementary_pid] = None
            elif header.pid in self.pes_buffer:
                pes = self.pes_buffer[header.pid]
                if header.payload_unit_start_indicator == 1:
                    if pes is not None:
                        yield pes
                    pes = PesPacket(header=read_pes_header(reader))
                    self.pes_buffer[header.pid] = pes
                if pes is not None:
                    pes.payload += reader.read()