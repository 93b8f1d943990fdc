#!/usr/bin/env python3
"""
Swap store tests: allocation, lookups, canonical cell layout and JSON
snapshots.
"""

import sys
import os
import json
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fluida.codec.cell import Address
from fluida.codec.hashmap import parse_dict
from fluida.contract.store import SwapStore, load_store, save_store
from fluida.core import SwapRecord, SwapNotFound, CounterExhausted, UINT64_MAX, hash_lock

ALICE = Address(0, b"\xa1" * 32)
BOB = Address(0, b"\xb0" * 32)
WALLET = Address(-1, b"\xc0" * 32)


def _record(secret: int = 42, amount: int = 1000, time_lock: int = 1_700_000_000) -> SwapRecord:
    return SwapRecord(ALICE, BOB, amount, hash_lock(secret), time_lock)


class TestAllocation(unittest.TestCase):

    def test_ids_are_gap_free(self):
        store = SwapStore(custodian=WALLET)
        ids = [store.allocate(_record(i)) for i in range(5)]
        self.assertEqual(ids, [0, 1, 2, 3, 4])
        self.assertEqual(store.swap_counter, 5)
        self.assertEqual([k for k, _ in store.items()], ids)

    def test_counter_exhaustion(self):
        store = SwapStore(swap_counter=UINT64_MAX - 1)
        self.assertEqual(store.allocate(_record()), UINT64_MAX - 1)
        with self.assertRaises(CounterExhausted):
            store.allocate(_record())
        self.assertEqual(store.swap_counter, UINT64_MAX)
        self.assertEqual(len(store), 1)

    def test_get_missing(self):
        store = SwapStore()
        with self.assertRaises(SwapNotFound):
            store.get(0)
        self.assertFalse(store.has(0))

    def test_empty_store_is_falsy_but_usable(self):
        store = SwapStore()
        self.assertEqual(len(store), 0)
        self.assertIsNotNone(store.copy())

    def test_mark_completed(self):
        store = SwapStore()
        swap_id = store.allocate(_record())
        store.mark_completed(swap_id)
        self.assertTrue(store.get(swap_id).is_completed)

    def test_find_by_hashlock_lowest_id(self):
        store = SwapStore()
        store.allocate(_record(1))
        store.allocate(_record(2))
        store.allocate(_record(2))
        self.assertEqual(store.find_by_hashlock(hash_lock(2)), 1)
        self.assertIsNone(store.find_by_hashlock(hash_lock(3)))

    def test_copy_is_isolated(self):
        store = SwapStore(custodian=WALLET)
        store.allocate(_record())
        copy = store.copy()
        copy.allocate(_record(7))
        copy.mark_completed(0)
        copy.set_custodian(ALICE)
        self.assertEqual(store.swap_counter, 1)
        self.assertFalse(store.get(0).is_completed)
        self.assertEqual(store.custodian, WALLET)


class TestCellLayout(unittest.TestCase):

    def test_empty_store(self):
        cell = SwapStore().to_cell()
        # addr_none + counter + empty dict bit
        self.assertEqual(cell.length, 2 + 64 + 1)
        restored = SwapStore.from_cell(cell)
        self.assertIsNone(restored.custodian)
        self.assertEqual(restored.swap_counter, 0)
        self.assertEqual(len(restored), 0)

    def test_roundtrip(self):
        store = SwapStore(custodian=WALLET)
        store.allocate(_record(1, amount=0))
        store.allocate(_record(2, amount=10 ** 12))
        store.mark_completed(1)
        restored = SwapStore.from_cell(store.to_cell())
        self.assertEqual(restored.custodian, WALLET)
        self.assertEqual(restored.swap_counter, 2)
        self.assertEqual(dict(restored.items()), dict(store.items()))
        self.assertEqual(restored.state_hash(), store.state_hash())

    def test_swap_value_layout(self):
        store = SwapStore(custodian=WALLET)
        store.allocate(_record(5, amount=1000, time_lock=77))
        s = store.to_cell().begin_parse()
        self.assertEqual(s.load_address(), WALLET)
        self.assertEqual(s.load_uint(64), 1)
        values = parse_dict(s.load_maybe_ref(), 256)
        value = values[0]
        self.assertEqual(value.load_coins(), 1000)
        self.assertEqual(value.load_uint(256), hash_lock(5))
        self.assertEqual(value.load_uint(64), 77)
        self.assertFalse(value.load_bit())
        parties = value.load_ref().begin_parse()
        self.assertEqual(parties.load_address(), ALICE)
        self.assertEqual(parties.load_address(), BOB)

    def test_state_hash_tracks_changes(self):
        store = SwapStore(custodian=WALLET)
        before = store.state_hash()
        store.allocate(_record())
        self.assertNotEqual(store.state_hash(), before)


class TestSnapshot(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "state" / "swaps.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_and_load(self):
        store = SwapStore(custodian=WALLET)
        store.allocate(_record(1))
        store.allocate(_record(2))
        store.mark_completed(0)
        save_store(store, self.path)

        with open(self.path) as f:
            data = json.load(f)
        self.assertEqual(data["swap_counter"], 2)
        self.assertEqual(data["custodian"], WALLET.to_raw())

        loaded = load_store(self.path)
        self.assertEqual(loaded.state_hash(), store.state_hash())
        self.assertTrue(loaded.get(0).is_completed)

    def test_missing_file(self):
        loaded = load_store(self.path)
        self.assertEqual(loaded.swap_counter, 0)
        self.assertIsNone(loaded.custodian)

    def test_from_dict_sorts_ids(self):
        data = {
            "custodian": None,
            "swap_counter": 2,
            "swaps": {"1": _record(1).to_dict(), "0": _record(0).to_dict()},
        }
        store = SwapStore.from_dict(data)
        self.assertEqual([k for k, _ in store.items()], [0, 1])


if __name__ == "__main__":
    unittest.main(verbosity=2)
