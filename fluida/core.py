"""
Core types and interfaces for the Fluida swap engine.
"""

import secrets
from enum import Enum, IntEnum
from dataclasses import dataclass
from typing import Optional, Dict, Any, Tuple

from .codec.cell import Address, begin_cell

UINT256_MAX = (1 << 256) - 1
UINT64_MAX = (1 << 64) - 1


class Op(IntEnum):
    """Inbound operation codes (32 bits)."""
    SET_CUSTODIAN = 0x00000001
    DEPOSIT_NOTIFICATION = 0xDEADBEEF
    COMPLETE_SWAP = 0x87654321
    REFUND_SWAP = 0xABCDEF12
    TRANSFER_NOTIFICATION = 0x7362D09C  # token protocol envelope


# Outbound token protocol op
OP_TOKEN_TRANSFER = 0x0F8A7EA5


class SwapState(Enum):
    """Derived swap state (read-only view, never persisted)."""
    PENDING = "pending"         # Locked, claimable, not yet refundable
    EXPIRED = "expired"         # Locked, time lock reached, refundable
    COMPLETED = "completed"     # Funds released (claim or refund)


@dataclass(frozen=True)
class SwapRecord:
    """One locked swap."""
    initiator: Address      # Funded the swap, refund destination
    recipient: Address      # Receives funds on preimage reveal
    amount: int             # Token units, fixed at creation
    hash_lock: int          # 256-bit commitment to the preimage
    time_lock: int          # Absolute unix timestamp
    is_completed: bool = False

    def state(self, now: int) -> SwapState:
        if self.is_completed:
            return SwapState.COMPLETED
        if now >= self.time_lock:
            return SwapState.EXPIRED
        return SwapState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initiator": self.initiator.to_raw(),
            "recipient": self.recipient.to_raw(),
            "amount": self.amount,
            "hash_lock": f"0x{self.hash_lock:064x}",
            "time_lock": self.time_lock,
            "is_completed": self.is_completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapRecord":
        return cls(
            initiator=Address.parse(data["initiator"]),
            recipient=Address.parse(data["recipient"]),
            amount=int(data["amount"]),
            hash_lock=int(data["hash_lock"], 16),
            time_lock=int(data["time_lock"]),
            is_completed=bool(data["is_completed"]),
        )


@dataclass(frozen=True)
class DepositParams:
    """Swap parameters extracted from a validated deposit."""
    initiator: Address
    recipient: Address
    amount: int
    hash_lock: int
    time_lock: int


@dataclass(frozen=True)
class OutboundTransfer:
    """Token release produced by a successful complete/refund."""
    swap_id: int
    destination: Address
    amount: int
    reason: str             # "claim" or "refund"


@dataclass(frozen=True)
class SwapEvent:
    """State transition record (created, claimed, refunded)."""
    kind: str
    swap_id: int
    amount: int
    account: Optional[Address] = None


# =============================================================================
# Errors
# =============================================================================

class SwapError(Exception):
    """Base class: terminal for the current message, no state change."""
    exit_code = 100


class UnauthorizedSender(SwapError):
    exit_code = 101


class MalformedPayload(SwapError):
    exit_code = 102


class SwapNotFound(SwapError):
    exit_code = 103


class AlreadyCompleted(SwapError):
    exit_code = 104


class HashMismatch(SwapError):
    exit_code = 105


class NotYetExpired(SwapError):
    exit_code = 106


class CounterExhausted(SwapError):
    """No swap id left in the 64-bit counter."""
    exit_code = 107


class UnknownOperation(SwapError):
    exit_code = 0xFFFF


# =============================================================================
# Hash Engine
# =============================================================================

def hash_lock(secret: int) -> int:
    """
    Hash lock for a 256-bit secret.

    The secret is stored as a 256-bit big-endian uint in a single cell and
    the cell's representation hash is returned as an int. Equivalent to
    SHA256(0x00 0x40 || secret_be32).
    """
    if not 0 <= secret <= UINT256_MAX:
        raise ValueError(f"Secret must be a 256-bit unsigned integer, got {secret}")
    cell = begin_cell().store_uint(secret, 256).end_cell()
    return int.from_bytes(cell.hash(), "big")


def generate_secret() -> Tuple[int, int]:
    """
    Generate a random preimage and its hash lock.

    Returns:
        (preimage, hash_lock)
    """
    preimage = int.from_bytes(secrets.token_bytes(32), "big")
    return preimage, hash_lock(preimage)


def verify_preimage(preimage: int, expected: int) -> bool:
    """Check that hash_lock(preimage) == expected."""
    try:
        return hash_lock(preimage) == expected
    except ValueError:
        return False


def parse_uint256(value: str) -> int:
    """Parse a 256-bit value given as 0x-hex or decimal text."""
    text = value.strip().lower()
    n = int(text, 16) if text.startswith("0x") else int(text)
    if not 0 <= n <= UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return n


# =============================================================================
# Constants
# =============================================================================

# Exit codes by error name, for hosts that report numeric results
EXIT_CODES = {
    cls.__name__: cls.exit_code
    for cls in (UnauthorizedSender, MalformedPayload, SwapNotFound,
                AlreadyCompleted, HashMismatch, NotYetExpired, CounterExhausted,
                UnknownOperation)
}

SWAP_ID_BITS = 256
SWAP_COUNTER_BITS = 64
