#!/usr/bin/env python3
"""
value_decoder.py - Schema-less decoding of one MessagePack value

Produces plain Python values from the wire:

    nil                 -> None
    true/false          -> bool
    int / uint (any)    -> int   (uint64 values above 2**63-1 stay exact)
    float32 / float64   -> float
    str                 -> str if the bytes are valid UTF-8, else bytes
    bin                 -> bytes (never interpreted as text)
    array               -> list
    map                 -> dict with str keys, later duplicates overwrite
    ext / fixext        -> bytes of the extension payload, type code dropped

The str/bytes split is decided by content, not by tag: older encoders
write binary data with str headers, so a str whose bytes are not valid
UTF-8 comes back as bytes. A binary blob that happens to be valid UTF-8
inside a str header comes back as text. That ambiguity is accepted.

Usage:
    from msgpack_reader import MsgpackReader
    from value_decoder import ValueDecoder

    reader = MsgpackReader(data)
    value = ValueDecoder(max_depth=64).decode_value(reader)
"""

from typing import Any

from msgpack_reader import (
    MsgpackReader, FALSE, TRUE, NIL, FLOAT32, FLOAT64, INT_FORMATS,
    LENGTH_WIDTHS, FIXEXT_SIZES, STR8, STR16, STR32, BIN8, BIN16, BIN32,
    EXT8, EXT16, EXT32, ARRAY16, ARRAY32, MAP16, MAP32,
)
from protocol_errors import (
    CorruptStreamError, NestingDepthError, UnsupportedValueTypeError,
)

DEFAULT_MAX_DEPTH = 256
# Each nesting level costs one interpreter frame; stay under the default
# recursion limit of 1000 with room for the caller.
MAX_DEPTH_CEILING = 512


def coerce_key(key: Any) -> str:
    """Turn a decoded map key into text."""
    if isinstance(key, str):
        return key
    if isinstance(key, bytes):
        return key.decode('utf-8', errors='replace')
    if key is None:
        return 'null'
    if isinstance(key, bool):
        return 'true' if key else 'false'
    if isinstance(key, (int, float)):
        return str(key)
    # containers have no text form
    return ''


def classify_raw(data: bytes) -> Any:
    """Return str when `data` is valid UTF-8, otherwise the bytes unchanged."""
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return data


class ValueDecoder:
    """Recursive decoder for a single value at the reader's position.

    Holds only configuration, so one instance can be shared between threads;
    all cursor state lives in the MsgpackReader passed to each call.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        if not 1 <= max_depth <= MAX_DEPTH_CEILING:
            raise ValueError(
                f"max_depth must be between 1 and {MAX_DEPTH_CEILING}, got {max_depth}")
        self.max_depth = max_depth

    def decode_value(self, reader: MsgpackReader, depth: int = 0) -> Any:
        """Decode one value and leave the reader just past it.

        `depth` is the number of containers enclosing this value.
        """
        start = reader.pos
        tag = reader.read_tag()

        # Integers
        if tag <= 0x7f:
            return tag
        if tag >= 0xe0:
            return tag - 0x100
        if tag in INT_FORMATS:
            return reader.read_number(tag)

        if tag == NIL:
            return None
        if tag == FALSE:
            return False
        if tag == TRUE:
            return True
        if tag in (FLOAT32, FLOAT64):
            return reader.read_float(tag)

        # Raw strings: classified by content
        if 0xa0 <= tag <= 0xbf:
            return classify_raw(reader.take(tag & 0x1f))
        if tag in (STR8, STR16, STR32):
            length = reader.read_length(LENGTH_WIDTHS[tag])
            return classify_raw(reader.take(length))

        if tag in (BIN8, BIN16, BIN32):
            length = reader.read_length(LENGTH_WIDTHS[tag])
            return reader.take(length)

        # Containers
        if 0x90 <= tag <= 0x9f or tag in (ARRAY16, ARRAY32):
            size = reader.container_size(tag)
            self._check_container(reader, start, depth, size, 1)
            items = []
            for _ in range(size):
                items.append(self.decode_value(reader, depth + 1))
            return items

        if 0x80 <= tag <= 0x8f or tag in (MAP16, MAP32):
            size = reader.container_size(tag)
            self._check_container(reader, start, depth, size, 2)
            result = {}
            for _ in range(size):
                key = coerce_key(self.decode_value(reader, depth + 1))
                result[key] = self.decode_value(reader, depth + 1)
            return result

        if tag in (EXT8, EXT16, EXT32) or tag in FIXEXT_SIZES:
            _, length = reader.read_ext_header(tag)
            return reader.take(length)

        reader.pos = start
        raise UnsupportedValueTypeError(tag, start)

    def _check_container(self, reader: MsgpackReader, start: int, depth: int,
                         size: int, min_item_bytes: int) -> None:
        if depth >= self.max_depth:
            raise NestingDepthError(depth + 1, self.max_depth, start)
        # Each element takes at least one byte on the wire
        if size * min_item_bytes > reader.remaining:
            raise CorruptStreamError(
                f"container declares {size} entries but only "
                f"{reader.remaining} bytes remain", reader.pos,
                {'declared': size, 'available': reader.remaining})


def decode_value(data: bytes, max_depth: int = DEFAULT_MAX_DEPTH) -> Any:
    """Convenience function to decode a standalone value."""
    return ValueDecoder(max_depth).decode_value(MsgpackReader(data))
