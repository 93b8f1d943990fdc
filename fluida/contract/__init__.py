"""
The Fluida contract: swap store, deposit validation, swap state machine
and the message dispatcher that drives them.

Each inbound message runs to completion against a copy of the store; the
copy replaces the store only when the message succeeds.
"""

from .store import SwapStore, save_store, load_store
from .engine import SwapStateMachine
from .validator import DepositValidator
from .dispatcher import (
    MessageDispatcher, ContractConfig, InboundMessage, OutboundMessage, DispatchResult,
)

__all__ = [
    "SwapStore",
    "save_store",
    "load_store",
    "SwapStateMachine",
    "DepositValidator",
    "MessageDispatcher",
    "ContractConfig",
    "InboundMessage",
    "OutboundMessage",
    "DispatchResult",
]
