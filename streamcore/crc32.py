"""CRC-32/MPEG-2 checksum used by MPEG transport stream sections."""

from __future__ import annotations

from collections.abc import Iterable

_POLYNOMIAL = 0x04C11DB7
_MASK = 0xFFFFFFFF


def _make_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index << 24
        for _ in range(8):
            crc = ((crc << 1) ^ _POLYNOMIAL) if crc & 0x80000000 else (crc << 1)
            crc &= _MASK
        table.append(crc)
    return tuple(table)


CRC32_TABLE: tuple[int, ...] = _make_table()


def _update(crc: int, data: bytes) -> int:
    for byte in data:
        crc = ((crc << 8) & _MASK) ^ CRC32_TABLE[((crc >> 24) ^ byte) & 0xFF]
    return crc


def get_crc32(data: bytes) -> int:
    """Return the MPEG-2 CRC-32 of ``data``."""
    return _update(_MASK, data)


def get_crc32_buffers(buffers: Iterable[bytes]) -> int:
    """Return the MPEG-2 CRC-32 of several buffers taken as one sequence."""
    crc = _MASK
    for buffer in buffers:
        crc = _update(crc, buffer)
    return crc