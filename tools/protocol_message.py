"""
protocol_message.py - Decoded protocol message

Envelope (MessagePack array, fields in fixed order, no tags):

    SIGNED  [version, sender_id, hint, payload, signature]
    CHAINED [version, sender_id, chain_link, hint, payload, signature]

The low nibble of `version` selects the kind, the upper bits carry the
protocol version (0x22 = version 2 signed, 0x23 = version 2 chained).
"""

import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class MessageKind(IntEnum):
    """Message kind codes (low nibble of the version field)."""
    SIGNED = 0x02
    CHAINED = 0x03


# Element counts of the envelope for each kind
ENVELOPE_SIZES = {
    MessageKind.SIGNED: 5,
    MessageKind.CHAINED: 6,
}

SIGNED_V2 = 0x22
CHAINED_V2 = 0x23

SENDER_ID_SIZE = 16


@dataclass(frozen=True)
class ProtocolMessage:
    version: int
    sender_id: uuid.UUID
    hint: int
    payload: Any
    signed_data: bytes
    signature: bytes
    chain_link: Optional[bytes] = None

    @property
    def kind(self) -> MessageKind:
        return MessageKind(self.version & 0x0F)

    @property
    def protocol_version(self) -> int:
        return self.version >> 4

    @property
    def is_chained(self) -> bool:
        return self.chain_link is not None

    def to_dict(self) -> Dict[str, Any]:
        """Render for display; byte strings become hex."""
        return {
            'version': self.version,
            'kind': self.kind.name,
            'sender_id': str(self.sender_id),
            'chain_link': self.chain_link.hex() if self.chain_link is not None else None,
            'hint': self.hint,
            'payload': _printable(self.payload),
            'signed_data': self.signed_data.hex(),
            'signature': self.signature.hex(),
        }


def _printable(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, list):
        return [_printable(v) for v in value]
    if isinstance(value, dict):
        return {k: _printable(v) for k, v in value.items()}
    return value
