#!/usr/bin/env python3
"""
protocol_decoder.py - Decoder for signed MessagePack protocol messages

Reads one envelope from an untrusted buffer, validates its shape before
trusting any field, decodes the payload without a schema and keeps the
exact bytes that were signed.

Signed Data:
    The signature covers every byte from the start of the envelope up to,
    but not including, the signature field. Those bytes are sliced from the
    input buffer, never re-encoded: encoders are free to pick integer widths
    and map order, and a re-encoding would not reproduce them.

Usage:
    from protocol_decoder import ProtocolDecoder, decode_message

    msg = decode_message(raw)
    verify_key.verify(msg.signed_data, msg.signature)

    # With settings
    decoder = ProtocolDecoder(DecoderConfig(max_depth=32))
    msg = decoder.decode(raw)
"""

import logging
from typing import Optional

from decoder_config import DecoderConfig
from msgpack_reader import MsgpackReader, ValueType, value_type
from protocol_errors import (
    DecodeError, MalformedEnvelopeError, NestingDepthError, UnknownMessageKindError,
)
from protocol_message import ENVELOPE_SIZES, SENDER_ID_SIZE, MessageKind, ProtocolMessage
from value_decoder import ValueDecoder

logger = logging.getLogger(__name__)


class ProtocolDecoder:
    """Stateless envelope decoder.

    Configuration is fixed at construction; each call to decode() works on
    its own reader, so an instance can be shared freely.
    """

    def __init__(self, config: Optional[DecoderConfig] = None):
        self.config = config or DecoderConfig()
        self.value_decoder = ValueDecoder(self.config.max_depth)

    def decode(self, raw: bytes) -> ProtocolMessage:
        """Decode a protocol message from its raw MessagePack form.

        Raises DecodeError (or a subclass) on any failure; there is no
        partial result.
        """
        reader = MsgpackReader(raw)
        try:
            try:
                return self._decode(reader)
            except RecursionError:
                # caller already deep in its own stack
                raise NestingDepthError(None, self.config.max_depth, reader.pos) from None
        except DecodeError as e:
            logger.debug("rejected message (%d bytes) at pos %s: %s",
                         len(reader.buf), e.offset, e)
            raise

    def _decode(self, reader: MsgpackReader) -> ProtocolMessage:
        tag = reader.peek_tag()
        family = value_type(tag)
        if family != ValueType.ARRAY:
            raise MalformedEnvelopeError(
                f"unknown msgpack envelope format: {family.value}",
                value_type=family.value, offset=0)
        count = reader.read_array_header()
        if count not in ENVELOPE_SIZES.values():
            raise MalformedEnvelopeError(
                f"unknown msgpack envelope format: {family.value}[{count}]",
                value_type=family.value, count=count, offset=0)

        version_pos = reader.pos
        version = reader.read_int()

        sender_pos = reader.pos
        sender_raw = reader.read_raw()
        if len(sender_raw) != SENDER_ID_SIZE:
            raise MalformedEnvelopeError(
                f"sender id must be {SENDER_ID_SIZE} bytes, got {len(sender_raw)}",
                value_type=family.value, count=count, offset=sender_pos)
        sender_id = self.config.sender_uuid(sender_raw)

        nibble = version & 0x0F
        try:
            kind = MessageKind(nibble)
        except ValueError:
            raise UnknownMessageKindError(nibble, offset=version_pos) from None
        if ENVELOPE_SIZES[kind] != count:
            raise MalformedEnvelopeError(
                f"{kind.name} envelope needs {ENVELOPE_SIZES[kind]} elements, "
                f"got {count}", value_type=family.value, count=count, offset=0)

        chain_link = reader.read_raw() if kind == MessageKind.CHAINED else None
        hint = reader.read_int()
        payload = self.value_decoder.decode_value(reader)

        # everything consumed so far is what the sender signed
        signed_data = reader.buf[:reader.pos]
        signature = reader.read_raw()

        if reader.remaining:
            logger.debug("ignoring %d trailing bytes after signature", reader.remaining)

        return ProtocolMessage(
            version=version,
            sender_id=sender_id,
            chain_link=chain_link,
            hint=hint,
            payload=payload,
            signed_data=signed_data,
            signature=signature,
        )


_default_decoder = ProtocolDecoder()


def decode_message(raw: bytes, config: Optional[DecoderConfig] = None) -> ProtocolMessage:
    """Convenience function to decode one message."""
    decoder = ProtocolDecoder(config) if config is not None else _default_decoder
    return decoder.decode(raw)
