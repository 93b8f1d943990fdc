"""
Message Dispatcher for Fluida.

Entry point of the contract. Each inbound message is handled to completion
before the next one:

1. decode the op code into a message variant
2. copy the store and apply the operation to the copy
3. commit the copy on success, or drop it on failure

Successful complete/refund produce exactly one outbound token transfer,
addressed to the custodian wallet, paying the swap amount to the payee.
"""

import os
import time
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Callable

from ..codec.cell import Address, Cell
from ..codec.messages import (
    CompleteSwap, Deploy, DepositNotification, RefundSwap, SetCustodian,
    build_token_transfer, decode_message,
)
from ..core import (
    OutboundTransfer, SwapEvent, SwapRecord, SwapState,
    SwapError, SwapNotFound, UnauthorizedSender,
)
from .engine import SwapStateMachine
from .store import SwapStore
from .validator import DepositValidator

log = logging.getLogger(__name__)


@dataclass
class ContractConfig:
    """Contract configuration."""
    custodian: Optional[Address] = None     # Initial custodian (token wallet)
    owner: Optional[Address] = None         # May reconfigure the custodian
    state_path: Optional[Path] = None       # JSON snapshot, None = memory only

    @classmethod
    def from_env(cls) -> "ContractConfig":
        custodian = os.environ.get("FLUIDA_CUSTODIAN")
        owner = os.environ.get("FLUIDA_OWNER")
        state_path = os.environ.get("FLUIDA_STATE_PATH")
        return cls(
            custodian=Address.parse(custodian) if custodian else None,
            owner=Address.parse(owner) if owner else None,
            state_path=Path(os.path.expanduser(state_path)) if state_path else None,
        )


@dataclass(frozen=True)
class InboundMessage:
    """Message delivered by the host ledger."""
    sender: Address
    body: Cell
    now: Optional[int] = None       # Ledger time; dispatcher clock if None


@dataclass(frozen=True)
class OutboundMessage:
    """Instruction for the host: send `body` to `to`."""
    to: Address
    body: Cell
    transfer: OutboundTransfer


@dataclass
class DispatchResult:
    """Outcome of one committed (or ignored) message."""
    action: str                             # deploy, set_custodian, create, complete, refund, ignored
    swap_id: Optional[int] = None
    outbound: List[OutboundMessage] = field(default_factory=list)
    events: List[SwapEvent] = field(default_factory=list)
    reason: Optional[str] = None            # Why an ignored message was dropped


class MessageDispatcher:
    """
    Routes inbound messages and serves read-only get-methods.

    The store is replaced only after a message fully succeeds.
    """

    def __init__(self, store: SwapStore = None, config: ContractConfig = None,
                 clock: Callable[[], int] = None):
        self.config = config or ContractConfig()
        self.store = store if store is not None else SwapStore(custodian=self.config.custodian)
        self.clock = clock or (lambda: int(time.time()))

    def handle(self, msg: InboundMessage) -> DispatchResult:
        """
        Process one message atomically.

        Returns:
            DispatchResult (action "ignored" for unauthorized deposits)

        Raises:
            SwapError subclasses; the committed store is unchanged
        """
        now = msg.now if msg.now is not None else self.clock()
        try:
            decoded = decode_message(msg.body)
        except SwapError as e:
            log.warning(f"Rejected message from {msg.sender}: {type(e).__name__}: {e}")
            raise

        working = self.store.copy()
        engine = SwapStateMachine(working)

        try:
            result = self._route(decoded, msg.sender, now, working, engine)
        except UnauthorizedSender as e:
            if isinstance(decoded, DepositNotification):
                # Not a swap; the token protocol decides what happens to the value
                log.warning(f"Ignoring deposit: {e}")
                return DispatchResult(action="ignored", reason=str(e))
            log.warning(f"Rejected {type(decoded).__name__} from {msg.sender}: {e}")
            raise
        except SwapError as e:
            log.warning(f"Rejected {type(decoded).__name__} from {msg.sender}: "
                        f"{type(e).__name__}: {e}")
            raise

        self.store = working
        result.events = list(engine.events)
        return result

    def _route(self, decoded, sender: Address, now: int,
               working: SwapStore, engine: SwapStateMachine) -> DispatchResult:
        if isinstance(decoded, Deploy):
            return DispatchResult(action="deploy")

        if isinstance(decoded, SetCustodian):
            self._check_reconfigure(sender, working)
            working.set_custodian(decoded.custodian)
            log.info(f"Custodian set to {decoded.custodian} by {sender}")
            return DispatchResult(action="set_custodian")

        if isinstance(decoded, DepositNotification):
            validator = DepositValidator(working.custodian)
            swap_id = validator.accept(sender, decoded, engine)
            return DispatchResult(action="create", swap_id=swap_id)

        if isinstance(decoded, CompleteSwap):
            transfer = engine.complete(decoded.swap_id, decoded.preimage, now)
            return DispatchResult(action="complete", swap_id=decoded.swap_id,
                                  outbound=[self._outbound(transfer, working)])

        if isinstance(decoded, RefundSwap):
            transfer = engine.refund(decoded.swap_id, now)
            return DispatchResult(action="refund", swap_id=decoded.swap_id,
                                  outbound=[self._outbound(transfer, working)])

        raise TypeError(f"Unhandled message variant: {decoded!r}")

    def _check_reconfigure(self, sender: Address, working: SwapStore) -> None:
        owner = self.config.owner
        if owner is not None:
            if sender != owner:
                raise UnauthorizedSender(f"Only owner {owner} may set the custodian")
        elif working.custodian is not None:
            raise UnauthorizedSender("Custodian already initialized and no owner configured")

    @staticmethod
    def _outbound(transfer: OutboundTransfer, working: SwapStore) -> OutboundMessage:
        body = build_token_transfer(
            query_id=transfer.swap_id,
            amount=transfer.amount,
            destination=transfer.destination,
        )
        return OutboundMessage(to=working.custodian, body=body, transfer=transfer)

    # -------------------------------------------------------------------------
    # Get-methods
    # -------------------------------------------------------------------------

    def get_swap_counter(self) -> int:
        return self.store.swap_counter

    def get_custodian(self) -> Optional[Address]:
        return self.store.custodian

    def get_swap(self, swap_id: int) -> SwapRecord:
        return self.store.get(swap_id)

    def has_swap(self, swap_id: int) -> bool:
        return self.store.has(swap_id)

    def get_swap_by_hashlock(self, hash_lock: int) -> int:
        swap_id = self.store.find_by_hashlock(hash_lock)
        if swap_id is None:
            raise SwapNotFound(f"No swap with hash lock 0x{hash_lock:064x}")
        return swap_id

    def get_last_swap_id(self) -> int:
        if self.store.swap_counter == 0:
            raise SwapNotFound("No swaps created yet")
        return self.store.swap_counter - 1

    def get_swap_state(self, swap_id: int, now: int = None) -> SwapState:
        return self.store.get(swap_id).state(now if now is not None else self.clock())
