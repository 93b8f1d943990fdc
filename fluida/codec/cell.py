"""
Cell codec for Fluida.

Messages and persisted state are trees of cells: up to 1023 data bits and
up to 4 references to child cells. This module provides:

- Builder: append bits, integers, coins, addresses and references
- Slice: read them back in the same order
- Cell: immutable result with its representation hash

Only ordinary (non-exotic, level 0) cells are supported, which is all the
swap engine ever produces or consumes.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional, Tuple

MAX_BITS = 1023
MAX_REFS = 4

# MsgAddress tags (2 bits)
ADDR_NONE = 0b00
ADDR_STD = 0b10


class CellError(ValueError):
    """Raised on overflow, underflow or unsupported cell content."""


@dataclass(frozen=True)
class Address:
    """Internal account address: workchain + 256-bit account hash."""
    workchain: int
    hash_part: bytes

    def __post_init__(self):
        if not -128 <= self.workchain <= 127:
            raise ValueError(f"Workchain out of range: {self.workchain}")
        if len(self.hash_part) != 32:
            raise ValueError(f"Account hash must be 32 bytes, got {len(self.hash_part)}")

    @classmethod
    def parse(cls, raw: str) -> "Address":
        """Parse raw form '<workchain>:<64 hex chars>'."""
        try:
            wc, hex_part = raw.strip().split(":")
            return cls(int(wc), bytes.fromhex(hex_part))
        except (ValueError, AttributeError) as e:
            raise ValueError(f"Invalid raw address: {raw!r}") from e

    def to_raw(self) -> str:
        return f"{self.workchain}:{self.hash_part.hex()}"

    def __str__(self) -> str:
        return self.to_raw()


class Cell:
    """Immutable cell: `length` data bits stored in `value`, plus refs."""

    __slots__ = ("value", "length", "refs", "_hash", "_depth")

    def __init__(self, value: int = 0, length: int = 0, refs: Tuple["Cell", ...] = ()):
        if length > MAX_BITS:
            raise CellError(f"Cell data overflow: {length} bits")
        if len(refs) > MAX_REFS:
            raise CellError(f"Cell refs overflow: {len(refs)}")
        self.value = value
        self.length = length
        self.refs = tuple(refs)
        self._hash: Optional[bytes] = None
        self._depth: Optional[int] = None

    def begin_parse(self) -> "Slice":
        return Slice(self)

    def data_bytes(self) -> bytes:
        """Data bits padded to whole bytes (a 1 bit, then zeros)."""
        if self.length % 8 == 0:
            return self.value.to_bytes(self.length // 8, "big")
        pad = 8 - self.length % 8
        padded = (self.value << pad) | (1 << (pad - 1))
        return padded.to_bytes((self.length + pad) // 8, "big")

    def depth(self) -> int:
        if self._depth is None:
            self._depth = 0 if not self.refs else 1 + max(r.depth() for r in self.refs)
        return self._depth

    def hash(self) -> bytes:
        """Representation hash: SHA256(d1 d2 data depths(refs) hashes(refs))."""
        if self._hash is None:
            d1 = len(self.refs)
            d2 = (self.length + 7) // 8 + self.length // 8
            repr_bytes = bytes([d1, d2]) + self.data_bytes()
            for ref in self.refs:
                repr_bytes += ref.depth().to_bytes(2, "big")
            for ref in self.refs:
                repr_bytes += ref.hash()
            self._hash = hashlib.sha256(repr_bytes).digest()
        return self._hash

    def __eq__(self, other) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.hash() == other.hash()

    def __hash__(self) -> int:
        return int.from_bytes(self.hash()[:8], "big")

    def __repr__(self) -> str:
        return f"Cell(bits={self.length}, refs={len(self.refs)}, hash={self.hash().hex()[:16]}...)"


class Builder:
    """Append-only cell builder. All store_* methods return self."""

    def __init__(self):
        self._value = 0
        self._length = 0
        self._refs = []

    @property
    def bits(self) -> int:
        return self._length

    def store_uint(self, value: int, bits: int) -> "Builder":
        if value < 0 or value >= (1 << bits):
            raise CellError(f"Value {value} does not fit in uint{bits}")
        if self._length + bits > MAX_BITS:
            raise CellError(f"Cell data overflow: {self._length + bits} bits")
        self._value = (self._value << bits) | value
        self._length += bits
        return self

    def store_int(self, value: int, bits: int) -> "Builder":
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1))
        if not lo <= value < hi:
            raise CellError(f"Value {value} does not fit in int{bits}")
        return self.store_uint(value & ((1 << bits) - 1), bits)

    def store_bit(self, bit) -> "Builder":
        return self.store_uint(1 if bit else 0, 1)

    def store_coins(self, amount: int) -> "Builder":
        """VarUInteger 16: 4-bit byte length, then the value."""
        if amount < 0:
            raise CellError(f"Coins cannot be negative: {amount}")
        byte_len = (amount.bit_length() + 7) // 8
        if byte_len > 15:
            raise CellError(f"Coins value too large: {amount}")
        self.store_uint(byte_len, 4)
        if byte_len:
            self.store_uint(amount, byte_len * 8)
        return self

    def store_address(self, address: Optional[Address]) -> "Builder":
        """addr_none$00 for None, else addr_std$10 without anycast."""
        if address is None:
            return self.store_uint(ADDR_NONE, 2)
        self.store_uint(ADDR_STD, 2)
        self.store_bit(0)
        self.store_int(address.workchain, 8)
        self.store_uint(int.from_bytes(address.hash_part, "big"), 256)
        return self

    def store_ref(self, cell: Cell) -> "Builder":
        if len(self._refs) >= MAX_REFS:
            raise CellError("Cell refs overflow")
        self._refs.append(cell)
        return self

    def store_maybe_ref(self, cell: Optional[Cell]) -> "Builder":
        if cell is None:
            return self.store_bit(0)
        self.store_bit(1)
        return self.store_ref(cell)

    def store_slice(self, src: "Slice") -> "Builder":
        """Append the unread remainder of a slice (bits and refs)."""
        bits = src.remaining_bits
        if bits:
            self.store_uint(src.load_uint(bits), bits)
        while src.remaining_refs:
            self.store_ref(src.load_ref())
        return self

    def end_cell(self) -> Cell:
        return Cell(self._value, self._length, tuple(self._refs))


def begin_cell() -> Builder:
    return Builder()


class Slice:
    """Sequential reader over a cell."""

    def __init__(self, cell: Cell):
        self.cell = cell
        self._bit_pos = 0
        self._ref_pos = 0

    @property
    def remaining_bits(self) -> int:
        return self.cell.length - self._bit_pos

    @property
    def remaining_refs(self) -> int:
        return len(self.cell.refs) - self._ref_pos

    def is_empty(self) -> bool:
        return self.remaining_bits == 0 and self.remaining_refs == 0

    def preload_uint(self, bits: int) -> int:
        if bits > self.remaining_bits:
            raise CellError(f"Cell underflow: need {bits} bits, have {self.remaining_bits}")
        shift = self.cell.length - self._bit_pos - bits
        return (self.cell.value >> shift) & ((1 << bits) - 1)

    def load_uint(self, bits: int) -> int:
        value = self.preload_uint(bits)
        self._bit_pos += bits
        return value

    def load_int(self, bits: int) -> int:
        value = self.load_uint(bits)
        if value >= (1 << (bits - 1)):
            value -= (1 << bits)
        return value

    def load_bit(self) -> bool:
        return self.load_uint(1) == 1

    def load_coins(self) -> int:
        byte_len = self.load_uint(4)
        return self.load_uint(byte_len * 8) if byte_len else 0

    def load_address(self) -> Optional[Address]:
        tag = self.load_uint(2)
        if tag == ADDR_NONE:
            return None
        if tag != ADDR_STD:
            raise CellError(f"Unsupported address kind: {tag:02b}")
        if self.load_bit():
            raise CellError("Anycast addresses are not supported")
        workchain = self.load_int(8)
        hash_part = self.load_uint(256).to_bytes(32, "big")
        return Address(workchain, hash_part)

    def load_ref(self) -> Cell:
        if not self.remaining_refs:
            raise CellError("Cell underflow: no more references")
        ref = self.cell.refs[self._ref_pos]
        self._ref_pos += 1
        return ref

    def load_maybe_ref(self) -> Optional[Cell]:
        return self.load_ref() if self.load_bit() else None
