"""
decoder_config.py - Decoder settings

YAML form (the `decoder:` wrapper is optional):

    decoder:
      max_depth: 64
      sender_id_layout: big     # big | little
"""

import uuid
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from value_decoder import DEFAULT_MAX_DEPTH, MAX_DEPTH_CEILING

SENDER_ID_LAYOUTS = ('big', 'little')


@dataclass(frozen=True)
class DecoderConfig:
    max_depth: int = DEFAULT_MAX_DEPTH
    sender_id_layout: str = 'big'

    def __post_init__(self):
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ValueError(f"max_depth must be an integer, got {self.max_depth!r}")
        if not 1 <= self.max_depth <= MAX_DEPTH_CEILING:
            raise ValueError(
                f"max_depth must be between 1 and {MAX_DEPTH_CEILING}, "
                f"got {self.max_depth}")
        if self.sender_id_layout not in SENDER_ID_LAYOUTS:
            raise ValueError(
                f"sender_id_layout must be one of {SENDER_ID_LAYOUTS}, "
                f"got {self.sender_id_layout!r}")

    def sender_uuid(self, raw: bytes) -> uuid.UUID:
        """Interpret 16 raw bytes as a UUID using the configured layout."""
        if self.sender_id_layout == 'little':
            return uuid.UUID(bytes_le=raw)
        return uuid.UUID(bytes=raw)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DecoderConfig':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"decoder config must be a mapping, got {type(data).__name__}")
        if 'decoder' in data:
            return cls.from_dict(data['decoder'])

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown decoder config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'DecoderConfig':
        with open(path) as f:
            return cls.from_dict(yaml.safe_load(f))
