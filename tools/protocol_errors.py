"""
protocol_errors.py - Error types raised while decoding protocol messages

Every failure is fatal for the message being decoded. Callers should treat
any DecodeError as "reject this message".
"""

from typing import Any, Dict, Optional


class DecodeError(ValueError):
    """Base class for all protocol decoding failures."""

    code = 'decode_error'

    def __init__(self, message: str, offset: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.offset = offset
        self.details = details or {}


class MalformedEnvelopeError(DecodeError):
    """Outer value is not an array of 5 or 6 elements, or a fixed field has the wrong shape."""

    code = 'malformed_envelope'

    def __init__(self, message: str, value_type: Optional[str] = None,
                 count: Optional[int] = None, offset: Optional[int] = None):
        super().__init__(message, offset,
                         {'value_type': value_type, 'count': count})
        self.value_type = value_type
        self.count = count


class UnknownMessageKindError(DecodeError):
    code = 'unknown_message_kind'

    def __init__(self, kind: int, offset: Optional[int] = None):
        super().__init__(f"unknown protocol type: 0x{kind:04x}", offset,
                         {'kind': kind})
        self.kind = kind


class UnsupportedValueTypeError(DecodeError):
    code = 'unsupported_value_type'

    def __init__(self, tag: int, offset: Optional[int] = None):
        super().__init__(f"unsupported value type 0x{tag:02x} at pos {offset}",
                         offset, {'tag': tag})
        self.tag = tag


class CorruptStreamError(DecodeError):
    """Truncated input or a value of the wrong type where a fixed field was expected."""

    code = 'corrupt_stream'

    def __init__(self, message: str, offset: int,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f"data corrupt at position {offset}: {message}",
                         offset, details)


class NestingDepthError(DecodeError):
    code = 'nesting_too_deep'

    def __init__(self, depth: Optional[int], max_depth: int, offset: Optional[int] = None):
        super().__init__(
            f"payload nesting exceeds {max_depth} levels at pos {offset}",
            offset, {'depth': depth, 'max_depth': max_depth})
        self.depth = depth
        self.max_depth = max_depth
