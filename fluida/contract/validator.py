"""
Deposit Validator for Fluida.

Only token deposits forwarded by the configured custodian (the token wallet
owned by this contract) fund swaps. Two shapes are accepted:

- transfer_notification from the custodian, whose forward payload is a
  0xDEADBEEF deposit payload; the locked amount is the notified amount and
  the payload depositor must be the token sender named in the envelope
- a bare 0xDEADBEEF body from the custodian; the locked amount is the
  payload's own amount field

The sender is checked before anything is parsed, so no payload from any
other account can create a swap.
"""

import logging
from typing import Optional

from ..codec.cell import Address, CellError
from ..codec.messages import (
    DepositNotification, parse_deposit_payload, parse_transfer_notification,
)
from ..core import DepositParams, MalformedPayload, UnauthorizedSender
from .engine import SwapStateMachine

log = logging.getLogger(__name__)


class DepositValidator:
    """Authenticates deposit notifications and extracts swap parameters."""

    def __init__(self, custodian: Optional[Address]):
        self.custodian = custodian

    def validate(self, sender: Address, notification: DepositNotification) -> DepositParams:
        """
        Raises:
            UnauthorizedSender: sender is not the custodian (or none is set)
            MalformedPayload: body does not match the deposit layout
        """
        if self.custodian is None:
            raise UnauthorizedSender("No custodian configured, deposits are not accepted")
        if sender != self.custodian:
            raise UnauthorizedSender(f"Deposit from {sender}, expected custodian {self.custodian}")

        try:
            if notification.enveloped:
                envelope = parse_transfer_notification(notification.body)
                payload = parse_deposit_payload(envelope.forward_payload)
                if payload.amount != envelope.amount:
                    raise MalformedPayload(
                        f"Payload amount {payload.amount} != forwarded amount {envelope.amount}"
                    )
                if payload.depositor != envelope.sender:
                    # Refunds go to the depositor, which must be whoever sent the tokens
                    raise MalformedPayload(
                        f"Payload depositor {payload.depositor} != token sender {envelope.sender}"
                    )
                amount = envelope.amount
            else:
                payload = parse_deposit_payload(notification.body.begin_parse())
                amount = payload.amount
        except CellError as e:
            raise MalformedPayload(f"Bad deposit payload: {e}") from e

        if payload.depositor is None:
            raise MalformedPayload("Deposit payload has no depositor address")
        if payload.recipient is None:
            raise MalformedPayload("Deposit payload has no recipient address")

        return DepositParams(
            initiator=payload.depositor,
            recipient=payload.recipient,
            amount=amount,
            hash_lock=payload.hash_lock,
            time_lock=payload.time_lock,
        )

    def accept(self, sender: Address, notification: DepositNotification,
               engine: SwapStateMachine) -> int:
        """Validate and hand the deposit to the state machine. Returns swap id."""
        params = self.validate(sender, notification)
        log.info(f"Deposit of {params.amount} from {params.initiator} accepted")
        return engine.create(
            params.initiator, params.recipient, params.amount,
            params.hash_lock, params.time_lock,
        )
