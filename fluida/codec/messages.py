"""
Message bodies for the Fluida contract.

Inbound (op:uint32 first):
    set_custodian         0x00000001  custodian:MsgAddress
    deposit_notification  0xDEADBEEF  amount:uint128 depositor:MsgAddress
                                      ^[recipient:MsgAddress]
                                      hash_lock:uint256 time_lock:uint64
    complete_swap         0x87654321  swap_id:uint256 preimage:uint256
    refund_swap           0xABCDEF12  swap_id:uint256
    transfer_notification 0x7362d09c  query_id:uint64 amount:Coins
                                      from:MsgAddress
                                      forward_payload:(Either Cell ^Cell)

Outbound token transfer (token protocol, sent to the custodian wallet):
    transfer 0x0f8a7ea5 query_id:uint64 amount:Coins destination:MsgAddress
             response_destination:MsgAddress custom_payload:(Maybe ^Cell)
             forward_ton_amount:Coins forward_payload:(Either Cell ^Cell)

Deposit bodies are not parsed at decode time: the sender must be
authorized first, so decoding only classifies them.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .cell import Address, Cell, CellError, Slice, begin_cell
from ..core import (
    Op, OP_TOKEN_TRANSFER, MalformedPayload, UnknownOperation,
)


@dataclass(frozen=True)
class Deploy:
    """Empty body: deployment or plain top-up, nothing to do."""


@dataclass(frozen=True)
class SetCustodian:
    custodian: Address


@dataclass(frozen=True)
class DepositNotification:
    body: Cell
    enveloped: bool         # True when wrapped in a token transfer_notification


@dataclass(frozen=True)
class CompleteSwap:
    swap_id: int
    preimage: int


@dataclass(frozen=True)
class RefundSwap:
    swap_id: int


Message = Union[Deploy, SetCustodian, DepositNotification, CompleteSwap, RefundSwap]


@dataclass(frozen=True)
class DepositPayload:
    amount: int
    depositor: Optional[Address]
    recipient: Optional[Address]
    hash_lock: int
    time_lock: int


@dataclass(frozen=True)
class TransferNotification:
    query_id: int
    amount: int
    sender: Optional[Address]
    forward_payload: Slice


@dataclass(frozen=True)
class TokenTransfer:
    query_id: int
    amount: int
    destination: Optional[Address]
    response_destination: Optional[Address]


# =============================================================================
# Decoding
# =============================================================================

def decode_message(body: Cell) -> Message:
    """
    Classify an inbound body by op code.

    Raises:
        UnknownOperation: op code missing or not recognised
        MalformedPayload: known op with an unparseable body
    """
    s = body.begin_parse()
    if s.is_empty():
        return Deploy()
    if s.remaining_bits < 32:
        raise UnknownOperation(f"Body too short for an op code ({s.remaining_bits} bits)")

    raw_op = s.load_uint(32)
    try:
        op = Op(raw_op)
    except ValueError:
        raise UnknownOperation(f"Unknown op 0x{raw_op:08x}") from None

    if op == Op.DEPOSIT_NOTIFICATION:
        return DepositNotification(body=body, enveloped=False)
    if op == Op.TRANSFER_NOTIFICATION:
        return DepositNotification(body=body, enveloped=True)

    try:
        if op == Op.SET_CUSTODIAN:
            custodian = s.load_address()
            if custodian is None:
                raise MalformedPayload("Custodian address must not be empty")
            return SetCustodian(custodian)
        if op == Op.COMPLETE_SWAP:
            return CompleteSwap(swap_id=s.load_uint(256), preimage=s.load_uint(256))
        return RefundSwap(swap_id=s.load_uint(256))
    except CellError as e:
        raise MalformedPayload(f"Bad {op.name.lower()} body: {e}") from e


def _load_either(s: Slice) -> Slice:
    """Either Cell ^Cell: inline remainder or referenced cell."""
    if s.load_bit():
        return s.load_ref().begin_parse()
    return s


def parse_transfer_notification(body: Cell) -> TransferNotification:
    """Parse a token transfer_notification body (CellError on failure)."""
    s = body.begin_parse()
    op = s.load_uint(32)
    if op != Op.TRANSFER_NOTIFICATION:
        raise CellError(f"Not a transfer notification: 0x{op:08x}")
    query_id = s.load_uint(64)
    amount = s.load_coins()
    sender = s.load_address()
    return TransferNotification(query_id, amount, sender, _load_either(s))


def parse_deposit_payload(s: Slice) -> DepositPayload:
    """Parse a 0xDEADBEEF deposit payload starting at its op (CellError on failure)."""
    op = s.load_uint(32)
    if op != Op.DEPOSIT_NOTIFICATION:
        raise CellError(f"Not a deposit payload: 0x{op:08x}")
    amount = s.load_uint(128)
    depositor = s.load_address()
    recipient = s.load_ref().begin_parse().load_address()
    hash_lock = s.load_uint(256)
    time_lock = s.load_uint(64)
    return DepositPayload(amount, depositor, recipient, hash_lock, time_lock)


def parse_token_transfer(body: Cell) -> TokenTransfer:
    s = body.begin_parse()
    op = s.load_uint(32)
    if op != OP_TOKEN_TRANSFER:
        raise CellError(f"Not a token transfer: 0x{op:08x}")
    query_id = s.load_uint(64)
    amount = s.load_coins()
    destination = s.load_address()
    response_destination = s.load_address()
    return TokenTransfer(query_id, amount, destination, response_destination)


# =============================================================================
# Encoding
# =============================================================================

def build_set_custodian(custodian: Address) -> Cell:
    return (begin_cell()
            .store_uint(Op.SET_CUSTODIAN, 32)
            .store_address(custodian)
            .end_cell())


def build_deposit_payload(amount: int, depositor: Address, recipient: Address,
                          hash_lock: int, time_lock: int) -> Cell:
    recipient_box = begin_cell().store_address(recipient).end_cell()
    return (begin_cell()
            .store_uint(Op.DEPOSIT_NOTIFICATION, 32)
            .store_uint(amount, 128)
            .store_address(depositor)
            .store_ref(recipient_box)
            .store_uint(hash_lock, 256)
            .store_uint(time_lock, 64)
            .end_cell())


def build_transfer_notification(amount: int, sender: Address, forward_payload: Cell,
                                query_id: int = 0) -> Cell:
    """Token wallet notification carrying the payload by reference."""
    return (begin_cell()
            .store_uint(Op.TRANSFER_NOTIFICATION, 32)
            .store_uint(query_id, 64)
            .store_coins(amount)
            .store_address(sender)
            .store_bit(1)
            .store_ref(forward_payload)
            .end_cell())


def build_complete_swap(swap_id: int, preimage: int) -> Cell:
    return (begin_cell()
            .store_uint(Op.COMPLETE_SWAP, 32)
            .store_uint(swap_id, 256)
            .store_uint(preimage, 256)
            .end_cell())


def build_refund_swap(swap_id: int) -> Cell:
    return (begin_cell()
            .store_uint(Op.REFUND_SWAP, 32)
            .store_uint(swap_id, 256)
            .end_cell())


def build_token_transfer(query_id: int, amount: int, destination: Address,
                         response_destination: Optional[Address] = None) -> Cell:
    """Token transfer instruction: no custom payload, no forward amount."""
    return (begin_cell()
            .store_uint(OP_TOKEN_TRANSFER, 32)
            .store_uint(query_id, 64)
            .store_coins(amount)
            .store_address(destination)
            .store_address(response_destination or destination)
            .store_maybe_ref(None)
            .store_coins(0)
            .store_bit(0)
            .end_cell())
