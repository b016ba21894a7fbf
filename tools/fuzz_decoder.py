#!/usr/bin/env python3
"""
fuzz_decoder.py - Fuzz test the protocol message decoder

Verifies the decoder only ever fails with DecodeError on malformed input.
Any other exception (IndexError, RecursionError, struct.error, ...) counts
as a crash.

Usage:
    python tools/fuzz_decoder.py                          # 10 second fuzz
    python tools/fuzz_decoder.py vectors.yaml             # seed from test vectors
    python tools/fuzz_decoder.py --duration 60 --seed 12345

Vector file format:
    test_vectors:
      - payload: "95 22 c4 10 ..."
"""

import argparse
import random
import sys
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

import msgpack
import yaml

from protocol_decoder import ProtocolDecoder
from protocol_errors import DecodeError
from protocol_message import CHAINED_V2, SIGNED_V2


@dataclass
class FuzzStats:
    """Statistics from a fuzz run."""
    total_inputs: int = 0
    decode_success: int = 0
    decode_error: int = 0
    crashes: int = 0
    duration_sec: float = 0.0
    seed: int = 0
    crash_inputs: List[bytes] = field(default_factory=list)

    @property
    def inputs_per_sec(self) -> float:
        if self.duration_sec > 0:
            return self.total_inputs / self.duration_sec
        return 0.0


def build_envelope(payload: Any, hint: int = 0, chain_link: Optional[bytes] = None,
                   sender_id: Optional[bytes] = None, signature: bytes = b'\x00' * 64) -> bytes:
    """Pack a well-formed envelope around `payload`."""
    sender_id = sender_id if sender_id is not None else uuid.uuid4().bytes
    if chain_link is None:
        fields = [SIGNED_V2, sender_id, hint, payload, signature]
    else:
        fields = [CHAINED_V2, sender_id, chain_link, hint, payload, signature]
    return msgpack.packb(fields, use_bin_type=True)


class DecoderFuzzer:
    """Fuzz tester for the protocol decoder."""

    def __init__(self, vectors: Optional[dict] = None, seed: Optional[int] = None,
                 decoder: Optional[ProtocolDecoder] = None):
        self.vectors = vectors or {}
        self.decoder = decoder or ProtocolDecoder()
        self.seed = seed if seed is not None else random.randint(0, 2**32)
        self.rng = random.Random(self.seed)
        self.stats = FuzzStats(seed=self.seed)

    def generate_random_bytes(self, min_len: int = 0, max_len: int = 255) -> bytes:
        length = self.rng.randint(min_len, max_len)
        return bytes(self.rng.randint(0, 255) for _ in range(length))

    def generate_truncated(self, valid: bytes) -> bytes:
        if len(valid) == 0:
            return b''
        return valid[:self.rng.randint(0, len(valid) - 1)]

    def generate_extended(self, valid: bytes) -> bytes:
        return valid + self.generate_random_bytes(1, 50)

    def generate_bitflip(self, valid: bytes) -> bytes:
        """Flip random bits in a valid message."""
        if len(valid) == 0:
            return b''
        data = bytearray(valid)
        num_flips = self.rng.randint(1, max(1, len(data) // 8))
        for _ in range(num_flips):
            pos = self.rng.randint(0, len(data) - 1)
            data[pos] ^= (1 << self.rng.randint(0, 7))
        return bytes(data)

    def generate_deep_nesting(self, depth: int) -> bytes:
        """Envelope whose payload is `depth` nested one-element arrays."""
        head = build_envelope(None)
        # bin8 header + 64 byte signature follow the nil payload
        sig_start = len(head) - 66
        return head[:sig_start - 1] + b'\x91' * depth + b'\xc0' + head[sig_start:]

    def generate_forged_count(self) -> bytes:
        """Valid prefix, then an array32 header claiming billions of entries."""
        head = build_envelope(None)
        return head[:len(head) - 67] + b'\xdd\xff\xff\xff\xff' + bytes(8)

    def get_valid_messages(self) -> List[bytes]:
        """Collect valid messages from test vectors, or build some."""
        messages = []
        for tv in self.vectors.get('test_vectors', []):
            payload = tv.get('payload', '')
            if isinstance(payload, str):
                clean = payload.replace(' ', '').replace('0x', '')
                try:
                    messages.append(bytes.fromhex(clean))
                except ValueError:
                    pass
            elif isinstance(payload, list):
                messages.append(bytes(payload))
        if not messages:
            messages = [
                build_envelope({'val': 1}, hint=1),
                build_envelope([1, 'a', None, 2**64 - 1, -1.5], chain_link=bytes(32)),
                build_envelope({'nested': {'list': [b'\xff\xfe', True, {}]}}),
                build_envelope(msgpack.ExtType(5, b'opaque')),
            ]
        return messages

    def fuzz_one(self, data: bytes) -> bool:
        """
        Fuzz with one input.
        Returns True if decoder handled it safely, False if crash.
        """
        self.stats.total_inputs += 1
        try:
            self.decoder.decode(data)
            self.stats.decode_success += 1
            return True
        except DecodeError:
            self.stats.decode_error += 1
            return True
        except Exception:
            self.stats.crashes += 1
            self.stats.crash_inputs.append(data)
            return False

    def run(self, duration_sec: float = 10.0) -> FuzzStats:
        """Run fuzzing for specified duration."""
        valid = self.get_valid_messages()

        start_time = time.time()
        end_time = start_time + duration_sec

        generators = [
            lambda: self.generate_random_bytes(0, 255),
            lambda: self.generate_random_bytes(0, 10),
            lambda: self.generate_truncated(self.rng.choice(valid)),
            lambda: self.generate_extended(self.rng.choice(valid)),
            lambda: self.generate_bitflip(self.rng.choice(valid)),
            lambda: self.generate_deep_nesting(self.rng.randint(1, 2000)),
            self.generate_forged_count,
            lambda: b'',
            lambda: bytes([0xc1]),
        ]

        while time.time() < end_time:
            self.fuzz_one(self.rng.choice(generators)())

        self.stats.duration_sec = time.time() - start_time
        return self.stats


def print_stats(stats: FuzzStats, name: str):
    """Print fuzzing statistics."""
    print(f"\n{name} Fuzzing Results")
    print("=" * 50)
    print(f"Seed: {stats.seed}")
    print(f"Duration: {stats.duration_sec:.1f}s")
    print(f"Total inputs: {stats.total_inputs}")
    print(f"Rate: {stats.inputs_per_sec:.0f} inputs/sec")
    print(f"Decode success: {stats.decode_success}")
    print(f"Decode errors: {stats.decode_error} (expected)")
    print(f"Crashes: {stats.crashes}")

    if stats.crashes > 0:
        print("\nCRASH INPUTS (reproducible with --seed):")
        for i, data in enumerate(stats.crash_inputs[:5]):
            print(f"  {i+1}: {data.hex()}")
        print("\nFAILED: Decoder crashed on malformed input!")
    else:
        print("\nPASSED: No crashes detected")


def main():
    parser = argparse.ArgumentParser(description='Fuzz test the protocol message decoder')
    parser.add_argument('vectors', nargs='?', help='Path to test vector YAML file')
    parser.add_argument('-d', '--duration', type=float, default=10.0,
                        help='Fuzz duration in seconds (default: 10)')
    parser.add_argument('-s', '--seed', type=int,
                        help='Random seed for reproducibility')
    args = parser.parse_args()

    vectors = None
    if args.vectors:
        with open(args.vectors) as f:
            vectors = yaml.safe_load(f)
        print(f"Fuzzing decoder with vectors from {args.vectors}")

    fuzzer = DecoderFuzzer(vectors, seed=args.seed)
    stats = fuzzer.run(args.duration)
    print_stats(stats, "Decoder")

    sys.exit(1 if stats.crashes > 0 else 0)


if __name__ == '__main__':
    main()
