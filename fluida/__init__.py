"""
Fluida - HTLC Atomic Swap Engine

Locks a fungible token behind a hash lock and a time lock:
- deposits forwarded by the custodian token wallet create swaps
- revealing the preimage releases the funds to the recipient
- after the time lock, the funds can be refunded to the initiator

Usage:
    from fluida import MessageDispatcher, ContractConfig, InboundMessage
    from fluida import generate_secret
    from fluida.codec import messages

    dispatcher = MessageDispatcher(config=ContractConfig(custodian=wallet))

    preimage, lock = generate_secret()
    payload = messages.build_deposit_payload(1000, alice, bob, lock, expiry)
    body = messages.build_transfer_notification(1000, alice, payload)
    result = dispatcher.handle(InboundMessage(sender=wallet, body=body))

    claim = messages.build_complete_swap(result.swap_id, preimage)
    dispatcher.handle(InboundMessage(sender=bob, body=claim))
"""

from .core import (
    Op,
    SwapState,
    SwapRecord,
    DepositParams,
    OutboundTransfer,
    SwapEvent,
    SwapError,
    UnauthorizedSender,
    MalformedPayload,
    SwapNotFound,
    AlreadyCompleted,
    HashMismatch,
    NotYetExpired,
    CounterExhausted,
    UnknownOperation,
    hash_lock,
    generate_secret,
    verify_preimage,
)

from .codec.cell import Address, Cell

from .contract import (
    SwapStore,
    SwapStateMachine,
    DepositValidator,
    MessageDispatcher,
    ContractConfig,
    InboundMessage,
    OutboundMessage,
    DispatchResult,
)

__version__ = "0.1.0"
__all__ = [
    # Core types
    "Op",
    "SwapState",
    "SwapRecord",
    "DepositParams",
    "OutboundTransfer",
    "SwapEvent",
    "Address",
    "Cell",
    # Errors
    "SwapError",
    "UnauthorizedSender",
    "MalformedPayload",
    "SwapNotFound",
    "AlreadyCompleted",
    "HashMismatch",
    "NotYetExpired",
    "CounterExhausted",
    "UnknownOperation",
    # Hash engine
    "hash_lock",
    "generate_secret",
    "verify_preimage",
    # Contract
    "SwapStore",
    "SwapStateMachine",
    "DepositValidator",
    "MessageDispatcher",
    "ContractConfig",
    "InboundMessage",
    "OutboundMessage",
    "DispatchResult",
]
