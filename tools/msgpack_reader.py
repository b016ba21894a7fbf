#!/usr/bin/env python3
"""
msgpack_reader.py - Forward-only cursor over a MessagePack byte buffer

Wire Format (first byte of every value):
    0x00-0x7f   positive fixint         0xc4-0xc6   bin 8/16/32
    0x80-0x8f   fixmap                  0xc7-0xc9   ext 8/16/32
    0x90-0x9f   fixarray                0xca-0xcb   float 32/64
    0xa0-0xbf   fixstr                  0xcc-0xcf   uint 8/16/32/64
    0xc0        nil                     0xd0-0xd3   int 8/16/32/64
    0xc1        (never used)            0xd4-0xd8   fixext 1/2/4/8/16
    0xc2-0xc3   false/true              0xd9-0xdb   str 8/16/32
    0xdc-0xdd   array 16/32             0xde-0xdf   map 16/32
    0xe0-0xff   negative fixint

All multi-byte lengths and numbers are big-endian.

The reader never copies more than it returns and never reads past the end of
the buffer: every short read raises CorruptStreamError with the cursor
position at which the read started.

Usage:
    reader = MsgpackReader(data)
    count = reader.read_array_header()
    version = reader.read_int()
    consumed = reader.pos
"""

import struct
from enum import Enum
from typing import Tuple

from protocol_errors import CorruptStreamError


class ValueType(Enum):
    """Value family of a wire tag."""
    NIL = 'NIL'
    BOOLEAN = 'BOOLEAN'
    INTEGER = 'INTEGER'
    FLOAT = 'FLOAT'
    STRING = 'STRING'
    BINARY = 'BINARY'
    ARRAY = 'ARRAY'
    MAP = 'MAP'
    EXTENSION = 'EXTENSION'
    NEVER_USED = 'NEVER_USED'


NIL = 0xc0
NEVER_USED = 0xc1
FALSE = 0xc2
TRUE = 0xc3
BIN8, BIN16, BIN32 = 0xc4, 0xc5, 0xc6
EXT8, EXT16, EXT32 = 0xc7, 0xc8, 0xc9
FLOAT32, FLOAT64 = 0xca, 0xcb
UINT8, UINT16, UINT32, UINT64 = 0xcc, 0xcd, 0xce, 0xcf
INT8, INT16, INT32, INT64 = 0xd0, 0xd1, 0xd2, 0xd3
FIXEXT1, FIXEXT2, FIXEXT4, FIXEXT8, FIXEXT16 = 0xd4, 0xd5, 0xd6, 0xd7, 0xd8
STR8, STR16, STR32 = 0xd9, 0xda, 0xdb
ARRAY16, ARRAY32 = 0xdc, 0xdd
MAP16, MAP32 = 0xde, 0xdf

# tag -> struct format for fixed-width numbers
INT_FORMATS = {
    UINT8: '>B', UINT16: '>H', UINT32: '>I', UINT64: '>Q',
    INT8: '>b', INT16: '>h', INT32: '>i', INT64: '>q',
}

# tag -> width of the length prefix that follows it
LENGTH_WIDTHS = {
    BIN8: 1, BIN16: 2, BIN32: 4,
    STR8: 1, STR16: 2, STR32: 4,
    EXT8: 1, EXT16: 2, EXT32: 4,
    ARRAY16: 2, ARRAY32: 4,
    MAP16: 2, MAP32: 4,
}

FIXEXT_SIZES = {FIXEXT1: 1, FIXEXT2: 2, FIXEXT4: 4, FIXEXT8: 8, FIXEXT16: 16}

_UNSIGNED = {1: '>B', 2: '>H', 4: '>I'}


def value_type(tag: int) -> ValueType:
    """Classify a wire tag into its value family."""
    if tag <= 0x7f or tag >= 0xe0 or tag in INT_FORMATS:
        return ValueType.INTEGER
    if tag <= 0x8f or tag in (MAP16, MAP32):
        return ValueType.MAP
    if tag <= 0x9f or tag in (ARRAY16, ARRAY32):
        return ValueType.ARRAY
    if tag <= 0xbf or tag in (STR8, STR16, STR32):
        return ValueType.STRING
    if tag == NIL:
        return ValueType.NIL
    if tag in (FALSE, TRUE):
        return ValueType.BOOLEAN
    if tag in (BIN8, BIN16, BIN32):
        return ValueType.BINARY
    if tag in (FLOAT32, FLOAT64):
        return ValueType.FLOAT
    if tag in (EXT8, EXT16, EXT32) or tag in FIXEXT_SIZES:
        return ValueType.EXTENSION
    return ValueType.NEVER_USED


class MsgpackReader:
    """Forward-only reading cursor over one in-memory buffer."""

    def __init__(self, buf: bytes, pos: int = 0):
        self.buf = bytes(buf)
        self.pos = pos

    @property
    def remaining(self) -> int:
        return len(self.buf) - self.pos

    def take(self, size: int) -> bytes:
        """Consume and return exactly `size` bytes."""
        if size > self.remaining:
            raise CorruptStreamError(
                f"need {size} bytes, {self.remaining} left", self.pos,
                {'needed': size, 'available': self.remaining})
        data = self.buf[self.pos:self.pos + size]
        self.pos += size
        return data

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(fmt, self.take(size))[0]

    def peek_tag(self) -> int:
        if self.pos >= len(self.buf):
            raise CorruptStreamError("unexpected end of data", self.pos,
                                     {'needed': 1, 'available': 0})
        return self.buf[self.pos]

    def read_tag(self) -> int:
        tag = self.peek_tag()
        self.pos += 1
        return tag

    def read_length(self, width: int) -> int:
        """Read an unsigned big-endian length prefix of 1, 2 or 4 bytes."""
        return self._unpack(_UNSIGNED[width], width)

    def read_number(self, tag: int) -> int:
        """Read the body of a fixed-width integer whose tag was already consumed."""
        fmt = INT_FORMATS[tag]
        return self._unpack(fmt, struct.calcsize(fmt))

    def read_float(self, tag: int) -> float:
        if tag == FLOAT32:
            return self._unpack('>f', 4)
        return self._unpack('>d', 8)

    def _mismatch(self, expected: str, tag: int, start: int) -> CorruptStreamError:
        found = value_type(tag).value
        return CorruptStreamError(
            f"expected {expected}, found {found} (0x{tag:02x})", start,
            {'expected': expected, 'found': found, 'tag': tag})

    # -- typed reads for fixed envelope fields ------------------------------

    def read_int(self) -> int:
        start = self.pos
        tag = self.read_tag()
        if tag <= 0x7f:
            return tag
        if tag >= 0xe0:
            return tag - 0x100
        if tag in INT_FORMATS:
            return self.read_number(tag)
        self.pos = start
        raise self._mismatch('INTEGER', tag, start)

    def container_size(self, tag: int) -> int:
        """Entry count for an array or map tag already consumed."""
        if tag <= 0x9f:
            return tag & 0x0f
        return self.read_length(LENGTH_WIDTHS[tag])

    def read_array_header(self) -> int:
        start = self.pos
        tag = self.read_tag()
        if 0x90 <= tag <= 0x9f or tag in (ARRAY16, ARRAY32):
            return self.container_size(tag)
        self.pos = start
        raise self._mismatch('ARRAY', tag, start)

    def read_map_header(self) -> int:
        start = self.pos
        tag = self.read_tag()
        if 0x80 <= tag <= 0x8f or tag in (MAP16, MAP32):
            return self.container_size(tag)
        self.pos = start
        raise self._mismatch('MAP', tag, start)

    def read_raw_header(self) -> Tuple[ValueType, int]:
        """Read a str or bin header; returns (family, payload length)."""
        start = self.pos
        tag = self.read_tag()
        if 0xa0 <= tag <= 0xbf:
            return ValueType.STRING, tag & 0x1f
        if tag in (STR8, STR16, STR32):
            return ValueType.STRING, self.read_length(LENGTH_WIDTHS[tag])
        if tag in (BIN8, BIN16, BIN32):
            return ValueType.BINARY, self.read_length(LENGTH_WIDTHS[tag])
        self.pos = start
        raise self._mismatch('STRING or BINARY', tag, start)

    def read_raw(self) -> bytes:
        """Read a str or bin value as raw bytes, whichever header it carries."""
        _, length = self.read_raw_header()
        return self.take(length)

    def read_ext_header(self, tag: int) -> Tuple[int, int]:
        """Read (ext type, payload length) for an ext tag already consumed."""
        if tag in FIXEXT_SIZES:
            length = FIXEXT_SIZES[tag]
        else:
            length = self.read_length(LENGTH_WIDTHS[tag])
        ext_type = self._unpack('>b', 1)
        return ext_type, length
