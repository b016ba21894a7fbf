"""
pytest configuration and fixtures for protocol decoder tests.

Provides reusable fixtures for:
- Envelope factories (signed and chained)
- Fixed sender ids
- Hypothesis property-based testing configuration
"""

import os
import sys
import uuid
from pathlib import Path

import msgpack
import pytest
from hypothesis import settings, Verbosity, Phase

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


SENDER_BYTES = bytes(range(16))


def pack(value, use_bin_type=True) -> bytes:
    return msgpack.packb(value, use_bin_type=use_bin_type)


class EnvelopeFactory:
    """Builds raw envelopes field by field so tests can splice in raw bytes."""

    def __init__(self, sender_id: bytes = SENDER_BYTES):
        self.sender_id = sender_id

    def signed_prefix(self, payload=None, version=0x22, hint=1, raw_payload=None,
                      sender_id=None) -> bytes:
        """Everything before the signature of a 5 element envelope."""
        body = raw_payload if raw_payload is not None else pack(payload)
        sid = self.sender_id if sender_id is None else sender_id
        return b'\x95' + pack(version) + pack(sid) + pack(hint) + body

    def chained_prefix(self, payload=None, chain_link=bytes(32), version=0x23,
                       hint=1, raw_payload=None) -> bytes:
        body = raw_payload if raw_payload is not None else pack(payload)
        return (b'\x96' + pack(version) + pack(self.sender_id) + pack(chain_link)
                + pack(hint) + body)

    def signed(self, payload=None, signature=b'\x01\x02\x03\x04', **kwargs) -> bytes:
        return self.signed_prefix(payload, **kwargs) + pack(signature)

    def chained(self, payload=None, signature=b'\x01\x02\x03\x04', **kwargs) -> bytes:
        return self.chained_prefix(payload, **kwargs) + pack(signature)


@pytest.fixture
def envelopes():
    """
    Provide an envelope factory.

    Usage:
        def test_decode(envelopes):
            raw = envelopes.signed({'val': 1})
    """
    return EnvelopeFactory()


@pytest.fixture
def sender_uuid():
    return uuid.UUID(bytes=SENDER_BYTES)


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
