"""Single-slot holder for the payload a signing session signs."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Optional, Tuple

from mpc_relay.errors import NotYetStaged, SessionNotFound

from .session_store import SessionKind, SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizeReceipt:
    session_id: str
    transaction_length: int
    signature_length: int
    signature: bytes


class TransactionStage:
    """Stage, fetch and finalize the payload of signing sessions.

    Finalize is terminal: the session is removed from the store. With
    ``idempotent_finalize`` the receipt is kept, and a repeated finalize of
    the same session returns it instead of failing with SessionNotFound.
    Receipts expire with the store TTL and at most ``max_receipts`` are kept.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        idempotent_finalize: bool = False,
        max_receipts: int = 1024,
    ):
        if store.kind is not SessionKind.SIGNING:
            raise ValueError("TransactionStage requires a signing session store")
        self.store = store
        self.idempotent_finalize = idempotent_finalize
        self.max_receipts = max_receipts
        self._receipts: "OrderedDict[str, Tuple[float, FinalizeReceipt]]" = OrderedDict()
        self._receipts_lock = Lock()

    def stage(self, session_id: str, payload: bytes) -> None:
        """Store the payload to sign, replacing anything staged before."""
        with self.store.locked(session_id) as session:
            replaced = session.transaction is not None
            session.transaction = bytes(payload)
        if replaced:
            logger.warning(f"Replaced staged transaction for session {session_id}")
        logger.info(f"Staged {len(payload)}-byte transaction for session {session_id}")

    def fetch(self, session_id: str) -> bytes:
        with self.store.locked(session_id) as session:
            if session.transaction is None:
                raise NotYetStaged(f"Transaction not yet broadcasted for session {session_id}")
            return session.transaction

    def finalize(self, session_id: str, signature: bytes) -> FinalizeReceipt:
        """Record the signature and delete the session."""
        try:
            with self.store.locked(session_id) as session:
                if session.transaction is None:
                    raise NotYetStaged(f"No transaction found for session {session_id}")
                session.signature = bytes(signature)
                receipt = FinalizeReceipt(
                    session_id=session_id,
                    transaction_length=len(session.transaction),
                    signature_length=len(session.signature),
                    signature=session.signature,
                )
                self.store.remove(session)
        except SessionNotFound:
            if self.idempotent_finalize:
                previous = self.recorded_receipt(session_id)
                if previous is not None:
                    logger.info(f"Session {session_id} already finalized, returning recorded receipt")
                    return previous
            raise

        if self.idempotent_finalize:
            now = self.store.now()
            with self._receipts_lock:
                self._receipts[session_id] = (now, receipt)
                self._prune_receipts_locked(now)

        logger.info(
            f"Finalized session {session_id}: transaction {receipt.transaction_length} bytes, "
            f"signature {receipt.signature_length} bytes ({receipt.signature.hex()})"
        )
        return receipt

    def recorded_receipt(self, session_id: str) -> Optional[FinalizeReceipt]:
        now = self.store.now()
        with self._receipts_lock:
            self._prune_receipts_locked(now)
            entry = self._receipts.get(session_id)
        return entry[1] if entry is not None else None

    def _prune_receipts_locked(self, now: float) -> None:
        ttl = self.store.ttl_seconds
        if ttl is not None:
            while self._receipts:
                finalized_at, _ = next(iter(self._receipts.values()))
                if now - finalized_at <= ttl:
                    break
                self._receipts.popitem(last=False)
        while len(self._receipts) > self.max_receipts:
            self._receipts.popitem(last=False)
