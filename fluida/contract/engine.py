"""
Swap State Machine for Fluida.

Each swap is either open (is_completed=False) or released. Release happens
exactly once, by one of:
- complete: anyone presenting a preimage whose hash equals the hash lock,
  funds go to the fixed recipient
- refund: anyone once now >= time_lock, funds go back to the initiator

Completion stays legal after the time lock as long as no refund happened;
whichever message is processed first wins.
"""

import logging
from typing import List

from ..codec.cell import Address
from ..core import (
    SwapRecord, SwapEvent, OutboundTransfer,
    AlreadyCompleted, HashMismatch, NotYetExpired, MalformedPayload,
    hash_lock as compute_hash_lock, UINT256_MAX, UINT64_MAX,
)
from .store import SwapStore

log = logging.getLogger(__name__)


class SwapStateMachine:
    """
    Applies create / complete / refund to a SwapStore.

    Every check runs before the store is touched, so a raised error never
    leaves a partial change behind.
    """

    def __init__(self, store: SwapStore):
        self.store = store
        self.events: List[SwapEvent] = []

    def create(self, initiator: Address, recipient: Address, amount: int,
               hash_lock: int, time_lock: int) -> int:
        """
        Lock a new swap.

        Hash locks are not required to be unique: the same secret may back
        several swaps.

        Returns:
            New swap id
        """
        if amount < 0:
            raise MalformedPayload(f"Negative amount: {amount}")
        if not 0 <= hash_lock <= UINT256_MAX:
            raise MalformedPayload("Hash lock out of uint256 range")
        if not 0 <= time_lock <= UINT64_MAX:
            raise MalformedPayload("Time lock out of uint64 range")

        record = SwapRecord(
            initiator=initiator,
            recipient=recipient,
            amount=amount,
            hash_lock=hash_lock,
            time_lock=time_lock,
        )
        swap_id = self.store.allocate(record)
        self.events.append(SwapEvent("created", swap_id, amount, initiator))

        hashlock_hex = f"{hash_lock:064x}"
        log.info(f"Swap {swap_id} created: amount={amount}, "
                 f"hashlock={hashlock_hex[:16]}..., recipient={recipient}, "
                 f"timelock={time_lock}")
        return swap_id

    def complete(self, swap_id: int, preimage: int, now: int) -> OutboundTransfer:
        """
        Release funds to the recipient against the preimage.

        Raises:
            SwapNotFound, AlreadyCompleted, HashMismatch
        """
        record = self.store.get(swap_id)
        if record.is_completed:
            raise AlreadyCompleted(f"Swap {swap_id} already completed")
        if not 0 <= preimage <= UINT256_MAX or compute_hash_lock(preimage) != record.hash_lock:
            raise HashMismatch(f"Preimage does not match hash lock of swap {swap_id}")

        self.store.mark_completed(swap_id)
        self.events.append(SwapEvent("claimed", swap_id, record.amount, record.recipient))

        late = " (after time lock)" if now >= record.time_lock else ""
        log.info(f"Swap {swap_id} claimed{late}: {record.amount} -> {record.recipient}")
        return OutboundTransfer(swap_id, record.recipient, record.amount, "claim")

    def refund(self, swap_id: int, now: int) -> OutboundTransfer:
        """
        Return funds to the initiator once the time lock is reached.

        Raises:
            SwapNotFound, AlreadyCompleted, NotYetExpired
        """
        record = self.store.get(swap_id)
        if record.is_completed:
            raise AlreadyCompleted(f"Swap {swap_id} already completed")
        if now < record.time_lock:
            raise NotYetExpired(
                f"Swap {swap_id} refundable at {record.time_lock}, now {now} "
                f"({record.time_lock - now}s left)"
            )

        self.store.mark_completed(swap_id)
        self.events.append(SwapEvent("refunded", swap_id, record.amount, record.initiator))

        log.info(f"Swap {swap_id} refunded: {record.amount} -> {record.initiator}")
        return OutboundTransfer(swap_id, record.initiator, record.amount, "refund")
