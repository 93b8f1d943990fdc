#!/usr/bin/env python3
"""
Fluida Server
HTLC atomic swap engine exposed over HTTP.

The server plays the host ledger: each POST encodes a message body, delivers
it to the contract with the given sender, and returns the committed result
(swap id, outbound token transfers, events). A message whose snapshot
cannot be written is rolled back and reported as a 500.

Senders are taken from the request as declared: this is a ledger simulator,
not a gateway. Any client can claim to be the custodian or the owner, so
the sender checks only mean something when messages come from a real ledger
or the server sits behind a trusted caller.

Endpoints:
  GET  /api/status                      - Health check, counter, state hash
  GET  /api/custodian                   - Configured custodian wallet
  GET  /api/swap/counter                - Next swap id
  GET  /api/swap/last                   - Last created swap id
  GET  /api/swap/by-hashlock/{lock}     - First swap id using a hash lock
  GET  /api/swap/{id}                   - Swap record + derived state
  GET  /api/swap/{id}/exists            - Whether a swap id is in use

  POST /api/custodian                   - Set / reconfigure the custodian
  POST /api/deposit                     - Deliver a custodian deposit
  POST /api/swap/complete               - Claim with the preimage
  POST /api/swap/refund                 - Refund after the time lock
"""

import os
import time
import logging
import threading
from typing import Optional, Dict, Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from fluida import (
    Address, ContractConfig, DispatchResult, InboundMessage, MessageDispatcher,
    OutboundMessage, SwapError, SwapEvent, SwapNotFound, UnauthorizedSender,
    MalformedPayload, AlreadyCompleted, HashMismatch, NotYetExpired, CounterExhausted,
    UnknownOperation,
    __version__,
)
from fluida.codec import messages
from fluida.contract import SwapStore, load_store, save_store
from fluida.core import parse_uint256

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

# HTTP status per contract error
HTTP_STATUS = {
    UnauthorizedSender: 403,
    MalformedPayload: 400,
    SwapNotFound: 404,
    AlreadyCompleted: 409,
    HashMismatch: 400,
    NotYetExpired: 409,
    CounterExhausted: 409,
    UnknownOperation: 400,
}

# =============================================================================
# STATE
# =============================================================================

_ledger_lock = threading.Lock()  # One message at a time, like the ledger
config: ContractConfig = ContractConfig()
dispatcher: MessageDispatcher = MessageDispatcher()


def init_dispatcher(cfg: ContractConfig) -> MessageDispatcher:
    """(Re)build the dispatcher from config, loading the snapshot if any."""
    global config, dispatcher
    if cfg.state_path:
        store = load_store(cfg.state_path)
        if store.custodian is None and cfg.custodian is not None:
            store.set_custodian(cfg.custodian)
    else:
        store = SwapStore(custodian=cfg.custodian)
    config = cfg
    dispatcher = MessageDispatcher(store=store, config=cfg)
    log.info(f"Contract ready: custodian={store.custodian}, "
             f"owner={cfg.owner}, swaps={len(store)}")
    return dispatcher


def _save_state():
    """Persist the store snapshot after a committed message."""
    if not config.state_path:
        return
    save_store(dispatcher.store, config.state_path)


# =============================================================================
# MODELS
# =============================================================================

class SetCustodianRequest(BaseModel):
    """Reconfigure the custodian token wallet."""
    sender: str = Field(..., description="Raw address of the caller (wc:hex)")
    custodian: str = Field(..., description="Raw address of the custodian wallet")


class DepositRequest(BaseModel):
    """Token deposit delivered by the custodian wallet."""
    sender: str = Field(..., description="Raw address delivering the message (the custodian)")
    amount: int = Field(..., ge=0, description="Token units locked")
    depositor: str = Field(..., description="Initiator, refund destination")
    recipient: str = Field(..., description="Receives the funds on preimage reveal")
    hash_lock: str = Field(..., description="256-bit hash lock, 0x-hex or decimal")
    time_lock: int = Field(..., ge=0, description="Unix timestamp from which refund is allowed")
    enveloped: bool = Field(True, description="Wrap the payload in a transfer_notification")
    now: Optional[int] = Field(None, description="Ledger time, server clock if omitted")


class CompleteSwapRequest(BaseModel):
    """Claim a swap by revealing the preimage."""
    sender: str
    swap_id: int = Field(..., ge=0)
    preimage: str = Field(..., description="256-bit preimage, 0x-hex or decimal")
    now: Optional[int] = None


class RefundSwapRequest(BaseModel):
    """Refund a swap whose time lock is reached."""
    sender: str
    swap_id: int = Field(..., ge=0)
    now: Optional[int] = None


# =============================================================================
# HELPERS
# =============================================================================

def _address(value: str, name: str) -> Address:
    try:
        return Address.parse(value)
    except ValueError:
        raise HTTPException(400, f"Invalid {name} address: {value}")


def _uint256(value: str, name: str) -> int:
    try:
        return parse_uint256(value)
    except ValueError:
        raise HTTPException(400, f"Invalid {name}: {value}")


def _http_error(e: SwapError) -> HTTPException:
    status = HTTP_STATUS.get(type(e), 400)
    return HTTPException(status, f"{type(e).__name__} (exit {e.exit_code}): {e}")


def _outbound_to_dict(out: OutboundMessage) -> Dict[str, Any]:
    return {
        "to": out.to.to_raw(),
        "destination": out.transfer.destination.to_raw(),
        "amount": out.transfer.amount,
        "reason": out.transfer.reason,
        "query_id": out.transfer.swap_id,
        "body_hash": out.body.hash().hex(),
    }


def _event_to_dict(ev: SwapEvent) -> Dict[str, Any]:
    return {
        "kind": ev.kind,
        "swap_id": ev.swap_id,
        "amount": ev.amount,
        "account": ev.account.to_raw() if ev.account else None,
    }


def _result_to_dict(result: DispatchResult) -> Dict[str, Any]:
    return {
        "action": result.action,
        "swap_id": result.swap_id,
        "outbound": [_outbound_to_dict(o) for o in result.outbound],
        "events": [_event_to_dict(e) for e in result.events],
        "reason": result.reason,
    }


def _submit(sender: Address, body, now: Optional[int] = None) -> Dict[str, Any]:
    """Deliver one message under the ledger lock and persist on commit."""
    with _ledger_lock:
        previous = dispatcher.store
        try:
            result = dispatcher.handle(InboundMessage(sender=sender, body=body, now=now))
        except SwapError as e:
            raise _http_error(e) from e
        if result.action != "ignored":
            try:
                _save_state()
            except OSError as e:
                # Not durable, so not committed
                dispatcher.store = previous
                raise HTTPException(500, f"State not persisted, message rolled back: {e}")
    return _result_to_dict(result)


# =============================================================================
# APP SETUP
# =============================================================================

app = FastAPI(
    title="Fluida",
    description="HTLC atomic swap engine for custodian-held tokens",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# QUERY ENDPOINTS
# =============================================================================

@app.get("/api/status")
async def get_status():
    """Health check."""
    store = dispatcher.store
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": int(time.time()),
        "custodian": store.custodian.to_raw() if store.custodian else None,
        "swap_counter": store.swap_counter,
        "swaps_total": len(store),
        "swaps_open": len([r for _, r in store.items() if not r.is_completed]),
        "state_hash": store.state_hash(),
    }


@app.get("/api/custodian")
async def get_custodian():
    custodian = dispatcher.get_custodian()
    return {"custodian": custodian.to_raw() if custodian else None}


@app.get("/api/swap/counter")
async def get_swap_counter():
    return {"swap_counter": dispatcher.get_swap_counter()}


@app.get("/api/swap/last")
async def get_last_swap_id():
    try:
        return {"swap_id": dispatcher.get_last_swap_id()}
    except SwapNotFound as e:
        raise HTTPException(404, str(e))


@app.get("/api/swap/by-hashlock/{hash_lock}")
async def get_swap_by_hashlock(hash_lock: str):
    """First swap id locked with this hash lock."""
    lock = _uint256(hash_lock, "hash lock")
    try:
        return {"swap_id": dispatcher.get_swap_by_hashlock(lock), "hash_lock": f"0x{lock:064x}"}
    except SwapNotFound as e:
        raise HTTPException(404, str(e))


@app.get("/api/swap/{swap_id}")
async def get_swap(swap_id: int):
    """Swap record with its derived state at server time."""
    try:
        record = dispatcher.get_swap(swap_id)
    except SwapNotFound:
        raise HTTPException(404, "Swap not found")
    return {
        "swap_id": swap_id,
        **record.to_dict(),
        "state": record.state(int(time.time())).value,
    }


@app.get("/api/swap/{swap_id}/exists")
async def has_swap(swap_id: int):
    return {"swap_id": swap_id, "exists": dispatcher.has_swap(swap_id)}


# =============================================================================
# MESSAGE ENDPOINTS
# =============================================================================

@app.post("/api/custodian")
async def set_custodian(req: SetCustodianRequest):
    sender = _address(req.sender, "sender")
    custodian = _address(req.custodian, "custodian")
    return _submit(sender, messages.build_set_custodian(custodian))


@app.post("/api/deposit")
async def deposit(req: DepositRequest):
    """
    Deliver a deposit as the custodian wallet would.

    Unauthorized senders are not an HTTP error: the contract ignores the
    message and the response action is "ignored".
    """
    sender = _address(req.sender, "sender")
    depositor = _address(req.depositor, "depositor")
    recipient = _address(req.recipient, "recipient")
    lock = _uint256(req.hash_lock, "hash lock")

    try:
        body = messages.build_deposit_payload(req.amount, depositor, recipient, lock, req.time_lock)
        if req.enveloped:
            body = messages.build_transfer_notification(req.amount, depositor, body)
    except ValueError as e:
        raise HTTPException(400, f"Cannot encode deposit: {e}")

    return _submit(sender, body, req.now)


@app.post("/api/swap/complete")
async def complete_swap(req: CompleteSwapRequest):
    sender = _address(req.sender, "sender")
    preimage = _uint256(req.preimage, "preimage")
    try:
        body = messages.build_complete_swap(req.swap_id, preimage)
    except ValueError as e:
        raise HTTPException(400, f"Cannot encode claim: {e}")
    return _submit(sender, body, req.now)


@app.post("/api/swap/refund")
async def refund_swap(req: RefundSwapRequest):
    sender = _address(req.sender, "sender")
    try:
        body = messages.build_refund_swap(req.swap_id)
    except ValueError as e:
        raise HTTPException(400, f"Cannot encode refund: {e}")
    return _submit(sender, body, req.now)


# =============================================================================
# MAIN
# =============================================================================

init_dispatcher(ContractConfig.from_env())

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    log.info(f"Starting Fluida on port {port}")
    log.info(f"Docs: http://0.0.0.0:{port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=port)
