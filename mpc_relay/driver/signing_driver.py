"""Per-party driver for threshold signing sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from mpc_relay.errors import ProtocolViolation, SessionExists, SessionNotFound, SignatureInvalid

from .base import CancelToken, DriverOptions, DriverState, SignatureVerifier, SigningProtocolFactory
from .client import RelayClient
from .round_driver import RoundDriver
from .share_store import KeyShare

logger = logging.getLogger(__name__)


def signing_round_complete(message_counts: dict, round_no: int, threshold: int) -> bool:
    """Signing rounds count as complete once ``t`` messages are present."""
    return message_counts.get(round_no, 0) >= threshold


@dataclass(frozen=True)
class SigningResult:
    session_id: str
    party_id: int
    message: bytes
    signature: bytes
    finalized: bool = False


class SigningDriver(RoundDriver):
    """Joins a signing session and produces a verified signature.

    The initiator (the party constructed with a ``payload``) stages the
    payload before round 1 and finalizes the session once the signature
    verifies. Every round is a broadcast; a round is complete once the
    session status shows at least ``t`` messages for it.
    """

    kind = "signing"

    def __init__(
        self,
        client: RelayClient,
        session_id: str,
        share: KeyShare,
        protocol_factory: SigningProtocolFactory,
        verifier: SignatureVerifier,
        *,
        payload: Optional[bytes] = None,
        threshold: Optional[int] = None,
        total_signers: Optional[int] = None,
        signer_ids: Optional[Sequence[int]] = None,
        options: Optional[DriverOptions] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        super().__init__(client, options=options, cancel_token=cancel_token)
        self.session_id = session_id
        self.share = share
        self.party_id = share.party_id
        self.protocol_factory = protocol_factory
        self.verifier = verifier
        self.payload = payload
        self.threshold = threshold or share.threshold
        self.total_parties = total_signers or (len(signer_ids) if signer_ids else self.threshold)
        self.signer_ids = list(signer_ids) if signer_ids is not None else None
        self.message: Optional[bytes] = None

    @property
    def is_initiator(self) -> bool:
        return self.payload is not None

    async def run(self) -> SigningResult:
        self._start()
        try:
            await self._join_or_create()
            await self._await_quorum()

            if self.is_initiator:
                self._transition(DriverState.STAGING, f"{len(self.payload)} bytes")
                await self._read(
                    lambda: self.client.stage_transaction(self.session_id, self.payload),
                    "staging transaction",
                )

            self.message = await self._await_transaction()

            round_function = self.protocol_factory(self.share, list(self.party_ids), self.message)
            signature = await self._run_rounds(round_function)
            if not isinstance(signature, (bytes, bytearray)):
                raise ProtocolViolation(
                    f"Signing round function returned {type(signature).__name__}, expected bytes"
                )
            signature = bytes(signature)

            if not self.verifier(self.share.group_key, self.message, signature):
                raise SignatureInvalid(f"Signature verification failed for session {self.session_id}")
            logger.info(f"Signature verified: {signature.hex()}")

            if self.options.confirm_before_finalize:
                await self._confirm(signature)

            finalized = False
            if self.is_initiator:
                await self._finalize(signature)
                finalized = True

            self._transition(DriverState.FINISHED)
            return SigningResult(
                session_id=self.session_id,
                party_id=self.party_id,
                message=self.message,
                signature=signature,
                finalized=finalized,
            )
        except Exception:
            self._transition(DriverState.FAILED)
            raise

    async def _join_or_create(self) -> None:
        """Join; if the session does not exist yet, create it and join once more."""
        try:
            await self._read(lambda: self.client.join_signing(self.session_id, self.party_id), "joining session")
        except SessionNotFound:
            logger.info(f"Signing session {self.session_id} not found, attempting to initiate it")
            try:
                await self._write(
                    lambda: self.client.initiate_signing(
                        self.session_id, self.threshold, self.total_parties, self.signer_ids
                    ),
                    "creating signing session",
                )
            except SessionExists:
                logger.info(f"Signing session {self.session_id} was created by another party")
            await self._read(lambda: self.client.join_signing(self.session_id, self.party_id), "joining session")
        self._transition(DriverState.JOINED)

    async def _finalize(self, signature: bytes) -> None:
        attempts = 0

        async def finalize():
            nonlocal attempts
            attempts += 1
            try:
                return await self.client.finalize(self.session_id, signature)
            except SessionNotFound:
                if attempts == 1:
                    raise
                # An earlier attempt was applied and its response lost.
                logger.warning(f"Session {self.session_id} was already finalized by an earlier attempt")
                return None

        receipt = await self._write(finalize, "finalizing session")
        if receipt is not None:
            logger.info(
                f"Finalized session {self.session_id} "
                f"(transaction {receipt.transaction_length} bytes, signature {receipt.signature_length} bytes)"
            )

    async def _confirm(self, signature: bytes) -> None:
        """Broadcast the verified signature in one extra round.

        Finalize deletes the session, so the initiator holds it back until
        every signer has confirmed, and checks that all of them ended up
        with the same signature.
        """
        confirm_round = self.rounds_completed + 1
        await self._write(
            lambda: self.client.submit_messages(
                self.kind, self.session_id, self.party_id, confirm_round, [(0, signature)]
            ),
            "confirming signature",
        )
        if not self.is_initiator:
            return

        self._transition(DriverState.AWAITING_ROUND_COMPLETION, f"confirmation round {confirm_round}")

        async def check():
            status = await self.client.status(self.kind, self.session_id)
            return True if status.messages.get(confirm_round, 0) >= status.total_parties else None

        await self._poll(check, self.options.round_poll_interval, "waiting for signer confirmations")
        confirmations = await self._read(
            lambda: self.client.retrieve_messages(self.kind, self.session_id, self.party_id, confirm_round),
            "retrieving signer confirmations",
        )
        if any(item != signature for item in confirmations):
            raise SignatureInvalid(f"Signers disagree on the signature for session {self.session_id}")

    async def _await_transaction(self) -> bytes:
        self._transition(DriverState.AWAITING_TRANSACTION)

        async def check():
            status = await self.client.status(self.kind, self.session_id)
            return True if status.has_transaction else None

        await self._poll(check, self.options.transaction_poll_interval, "waiting for the transaction")
        message = await self._read(lambda: self.client.fetch_transaction(self.session_id), "fetching transaction")
        logger.info(f"Received transaction message: {message.hex()}")
        return message

    def _address(self, round_no: int, outbound: List[bytes]) -> List[Tuple[int, bytes]]:
        return self._broadcast(outbound)

    async def _await_round(self, round_no: int) -> List[bytes]:
        async def check():
            status = await self.client.status(self.kind, self.session_id)
            if signing_round_complete(status.messages, round_no, status.threshold):
                return True
            logger.debug(
                f"Waiting for round {round_no} completion: "
                f"{status.messages.get(round_no, 0)}/{status.total_parties} messages (threshold: {status.threshold})"
            )
            return None

        await self._poll(check, self.options.round_poll_interval, f"waiting for round {round_no} completion")
        return await self._read(
            lambda: self.client.retrieve_messages(self.kind, self.session_id, self.party_id, round_no),
            f"retrieving round {round_no}",
        )
