#!/usr/bin/env python3
"""
Deposit validator tests: custodian gating and payload extraction.
"""

import sys
import os
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fluida.codec.cell import Address, begin_cell
from fluida.codec import messages
from fluida.codec.messages import DepositNotification
from fluida.contract.validator import DepositValidator
from fluida.core import MalformedPayload, UnauthorizedSender, hash_lock

ALICE = Address(0, b"\xa1" * 32)
BOB = Address(0, b"\xb0" * 32)
WALLET = Address(0, b"\xc0" * 32)
MALLORY = Address(0, b"\xee" * 32)
T = 1_700_000_000


def _enveloped(amount=1000, notified=None, recipient=BOB, token_sender=ALICE):
    payload = messages.build_deposit_payload(amount, ALICE, recipient, hash_lock(42), T)
    body = messages.build_transfer_notification(
        amount if notified is None else notified, token_sender, payload)
    return DepositNotification(body, enveloped=True)


def _bare(amount=1000):
    body = messages.build_deposit_payload(amount, ALICE, BOB, hash_lock(42), T)
    return DepositNotification(body, enveloped=False)


class TestAuthorization(unittest.TestCase):

    def test_wrong_sender(self):
        with self.assertRaises(UnauthorizedSender):
            DepositValidator(WALLET).validate(MALLORY, _enveloped())

    def test_no_custodian(self):
        with self.assertRaises(UnauthorizedSender):
            DepositValidator(None).validate(WALLET, _enveloped())

    def test_sender_checked_before_parsing(self):
        garbage = DepositNotification(begin_cell().store_uint(0xDEADBEEF, 32).end_cell(), False)
        with self.assertRaises(UnauthorizedSender):
            DepositValidator(WALLET).validate(MALLORY, garbage)

    def test_accept_never_creates_for_stranger(self):
        engine = MagicMock()
        with self.assertRaises(UnauthorizedSender):
            DepositValidator(WALLET).accept(MALLORY, _enveloped(), engine)
        engine.create.assert_not_called()


class TestExtraction(unittest.TestCase):

    def test_enveloped(self):
        params = DepositValidator(WALLET).validate(WALLET, _enveloped())
        self.assertEqual(params.initiator, ALICE)
        self.assertEqual(params.recipient, BOB)
        self.assertEqual(params.amount, 1000)
        self.assertEqual(params.hash_lock, hash_lock(42))
        self.assertEqual(params.time_lock, T)

    def test_bare(self):
        params = DepositValidator(WALLET).validate(WALLET, _bare(55))
        self.assertEqual(params.amount, 55)

    def test_amount_mismatch(self):
        with self.assertRaises(MalformedPayload):
            DepositValidator(WALLET).validate(WALLET, _enveloped(1000, notified=999))

    def test_depositor_must_be_token_sender(self):
        """Tokens sent by one account cannot be made refundable to another."""
        with self.assertRaises(MalformedPayload):
            DepositValidator(WALLET).validate(WALLET, _enveloped(token_sender=MALLORY))

    def test_bare_payload_has_no_envelope_sender(self):
        params = DepositValidator(WALLET).validate(WALLET, _bare())
        self.assertEqual(params.initiator, ALICE)

    def test_truncated_payload(self):
        body = begin_cell().store_uint(0xDEADBEEF, 32).store_uint(5, 128).end_cell()
        with self.assertRaises(MalformedPayload):
            DepositValidator(WALLET).validate(WALLET, DepositNotification(body, False))

    def test_empty_recipient(self):
        body = messages.build_deposit_payload(1, ALICE, None, 0, T)
        with self.assertRaises(MalformedPayload):
            DepositValidator(WALLET).validate(WALLET, DepositNotification(body, False))

    def test_accept_hands_off_to_engine(self):
        engine = MagicMock()
        engine.create.return_value = 0
        swap_id = DepositValidator(WALLET).accept(WALLET, _enveloped(), engine)
        self.assertEqual(swap_id, 0)
        engine.create.assert_called_once_with(ALICE, BOB, 1000, hash_lock(42), T)


if __name__ == "__main__":
    unittest.main(verbosity=2)
