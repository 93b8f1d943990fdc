#!/usr/bin/env python3
"""
Hash engine and core type tests.
"""

import sys
import os
import hashlib
import unittest
from dataclasses import replace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fluida.codec.cell import Address
from fluida.core import (
    SwapRecord, SwapState, EXIT_CODES, UINT256_MAX,
    hash_lock, generate_secret, verify_preimage, parse_uint256,
)


def _sha_of_uint256_cell(secret: int) -> int:
    digest = hashlib.sha256(b"\x00\x40" + secret.to_bytes(32, "big")).digest()
    return int.from_bytes(digest, "big")


class TestHashLock(unittest.TestCase):

    def test_matches_single_cell_encoding(self):
        for secret in (0, 1, 42, 1 << 200, UINT256_MAX):
            self.assertEqual(hash_lock(secret), _sha_of_uint256_cell(secret))

    def test_deterministic(self):
        self.assertEqual(hash_lock(42), hash_lock(42))

    def test_distinct_secrets_distinct_locks(self):
        self.assertNotEqual(hash_lock(42), hash_lock(43))

    def test_out_of_range(self):
        with self.assertRaises(ValueError):
            hash_lock(-1)
        with self.assertRaises(ValueError):
            hash_lock(UINT256_MAX + 1)


class TestSecrets(unittest.TestCase):

    def test_generate_secret(self):
        preimage, lock = generate_secret()
        self.assertTrue(0 <= preimage <= UINT256_MAX)
        self.assertTrue(verify_preimage(preimage, lock))

    def test_generate_secret_unique(self):
        self.assertNotEqual(generate_secret()[0], generate_secret()[0])

    def test_verify_preimage_wrong(self):
        preimage, lock = generate_secret()
        self.assertFalse(verify_preimage(preimage ^ 1, lock))
        self.assertFalse(verify_preimage(-5, lock))

    def test_parse_uint256(self):
        self.assertEqual(parse_uint256("0x2a"), 42)
        self.assertEqual(parse_uint256("42"), 42)
        self.assertEqual(parse_uint256(" 0X2A "), 42)
        with self.assertRaises(ValueError):
            parse_uint256("0x" + "f" * 65)
        with self.assertRaises(ValueError):
            parse_uint256("-1")
        with self.assertRaises(ValueError):
            parse_uint256("nope")


class TestSwapRecord(unittest.TestCase):

    def setUp(self):
        self.record = SwapRecord(
            initiator=Address(0, b"\x01" * 32),
            recipient=Address(0, b"\x02" * 32),
            amount=1000,
            hash_lock=hash_lock(42),
            time_lock=1_700_000_000,
        )

    def test_derived_state(self):
        self.assertEqual(self.record.state(1_699_999_999), SwapState.PENDING)
        self.assertEqual(self.record.state(1_700_000_000), SwapState.EXPIRED)
        done = replace(self.record, is_completed=True)
        self.assertEqual(done.state(0), SwapState.COMPLETED)
        self.assertEqual(done.state(2_000_000_000), SwapState.COMPLETED)

    def test_dict_roundtrip(self):
        data = self.record.to_dict()
        self.assertTrue(data["hash_lock"].startswith("0x"))
        self.assertEqual(len(data["hash_lock"]), 66)
        self.assertEqual(SwapRecord.from_dict(data), self.record)


class TestExitCodes(unittest.TestCase):

    def test_codes(self):
        self.assertEqual(EXIT_CODES, {
            "UnauthorizedSender": 101,
            "MalformedPayload": 102,
            "SwapNotFound": 103,
            "AlreadyCompleted": 104,
            "HashMismatch": 105,
            "NotYetExpired": 106,
            "CounterExhausted": 107,
            "UnknownOperation": 0xFFFF,
        })


if __name__ == "__main__":
    unittest.main(verbosity=2)
