"""
Swap Store: the contract's persisted state.

    custodian:MsgAddress  swap_counter:uint64  swaps:(HashmapE 256 SwapValue)

    SwapValue = amount:Coins hash_lock:uint256 time_lock:uint64
                is_completed:Bool ^[initiator:MsgAddress recipient:MsgAddress]

Records are only written through the state machine (create, complete,
refund) and the custodian only through the reconfiguration op. The
dispatcher works on a copy() and commits it after a successful message.
"""

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, Tuple

from ..codec.cell import Address, Cell, CellError, Slice, begin_cell
from ..codec.hashmap import load_dict, store_dict
from ..core import SwapRecord, SwapNotFound, CounterExhausted, SWAP_ID_BITS, SWAP_COUNTER_BITS, UINT64_MAX

log = logging.getLogger(__name__)


class SwapStore:
    """Custodian + swap counter + insertion-ordered swap table."""

    def __init__(self, custodian: Optional[Address] = None, swap_counter: int = 0,
                 swaps: Dict[int, SwapRecord] = None):
        self.custodian = custodian
        self.swap_counter = swap_counter
        self._swaps: Dict[int, SwapRecord] = dict(swaps or {})

    def copy(self) -> "SwapStore":
        # Records are frozen, a shallow copy of the table is enough
        return SwapStore(self.custodian, self.swap_counter, self._swaps)

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get(self, swap_id: int) -> SwapRecord:
        record = self._swaps.get(swap_id)
        if record is None:
            raise SwapNotFound(f"Swap {swap_id} not found")
        return record

    def has(self, swap_id: int) -> bool:
        return swap_id in self._swaps

    def items(self) -> Iterator[Tuple[int, SwapRecord]]:
        return iter(self._swaps.items())

    def __len__(self) -> int:
        return len(self._swaps)

    def find_by_hashlock(self, hash_lock: int) -> Optional[int]:
        """Lowest swap id using this hash lock, or None."""
        for swap_id, record in self._swaps.items():
            if record.hash_lock == hash_lock:
                return swap_id
        return None

    # -------------------------------------------------------------------------
    # Mutation (state machine / reconfiguration only)
    # -------------------------------------------------------------------------

    def allocate(self, record: SwapRecord) -> int:
        swap_id = self.swap_counter
        if swap_id > UINT64_MAX - 1:
            raise CounterExhausted(f"Swap counter exhausted at {swap_id}")
        self._swaps[swap_id] = record
        self.swap_counter = swap_id + 1
        return swap_id

    def mark_completed(self, swap_id: int) -> SwapRecord:
        record = replace(self.get(swap_id), is_completed=True)
        self._swaps[swap_id] = record
        return record

    def set_custodian(self, custodian: Address) -> None:
        self.custodian = custodian

    # -------------------------------------------------------------------------
    # Canonical cell layout
    # -------------------------------------------------------------------------

    def to_cell(self) -> Cell:
        values = {swap_id: _record_to_cell(record) for swap_id, record in self._swaps.items()}
        b = begin_cell()
        b.store_address(self.custodian)
        b.store_uint(self.swap_counter, SWAP_COUNTER_BITS)
        store_dict(b, values, SWAP_ID_BITS)
        return b.end_cell()

    @classmethod
    def from_cell(cls, cell: Cell) -> "SwapStore":
        s = cell.begin_parse()
        custodian = s.load_address()
        counter = s.load_uint(SWAP_COUNTER_BITS)
        swaps = load_dict(s, SWAP_ID_BITS, _record_from_slice)
        return cls(custodian, counter, swaps)

    def state_hash(self) -> str:
        return self.to_cell().hash().hex()

    # -------------------------------------------------------------------------
    # JSON snapshot
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "custodian": self.custodian.to_raw() if self.custodian else None,
            "swap_counter": self.swap_counter,
            "swaps": {str(k): v.to_dict() for k, v in self._swaps.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapStore":
        custodian = data.get("custodian")
        swaps = {int(k): SwapRecord.from_dict(v) for k, v in data.get("swaps", {}).items()}
        return cls(
            custodian=Address.parse(custodian) if custodian else None,
            swap_counter=int(data.get("swap_counter", 0)),
            swaps=dict(sorted(swaps.items())),
        )


def _record_to_cell(record: SwapRecord) -> Cell:
    parties = (begin_cell()
               .store_address(record.initiator)
               .store_address(record.recipient)
               .end_cell())
    return (begin_cell()
            .store_coins(record.amount)
            .store_uint(record.hash_lock, 256)
            .store_uint(record.time_lock, 64)
            .store_bit(record.is_completed)
            .store_ref(parties)
            .end_cell())


def _record_from_slice(s: Slice) -> SwapRecord:
    amount = s.load_coins()
    hash_lock = s.load_uint(256)
    time_lock = s.load_uint(64)
    is_completed = s.load_bit()
    parties = s.load_ref().begin_parse()
    initiator = parties.load_address()
    recipient = parties.load_address()
    if initiator is None or recipient is None:
        raise CellError("Swap record with empty party address")
    return SwapRecord(initiator, recipient, amount, hash_lock, time_lock, is_completed)


def save_store(store: SwapStore, path: Path) -> None:
    """Persist the store snapshot to disk (JSON)."""
    path = Path(os.path.expanduser(str(path)))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(store.to_dict(), f, indent=2)
        os.replace(tmp, path)
    except OSError as e:
        log.error(f"Failed to save swap store to {path}: {e}")
        raise


def load_store(path: Path) -> SwapStore:
    """Load the store snapshot from disk; empty store if the file is missing."""
    path = Path(os.path.expanduser(str(path)))
    if not path.exists():
        log.info(f"No swap store at {path}, starting empty")
        return SwapStore()
    with open(path, "r") as f:
        store = SwapStore.from_dict(json.load(f))
    log.info(f"Loaded {len(store)} swaps from {path} (counter={store.swap_counter})")
    return store
