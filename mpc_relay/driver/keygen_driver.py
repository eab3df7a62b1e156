"""Per-party driver for distributed key generation sessions."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from mpc_relay.errors import InvalidParameters, ProtocolViolation

from .base import CancelToken, DriverOptions, DriverState, KeygenProtocolFactory
from .client import RelayClient
from .round_driver import RoundDriver
from .share_store import KeyShare, ShareStore

logger = logging.getLogger(__name__)


class KeygenDriver(RoundDriver):
    """Joins a keygen session and runs the DKG round function to a KeyShare.

    Addressing follows the DKG message pattern: round 1 is all broadcast,
    round 2 carries one directed message per other party (paired
    positionally with ``party_ids`` minus self), any later round broadcasts.
    Round completion is gated by the coordinator, so waiting for a round is
    simply retrying retrieval until it stops answering RoundIncomplete.
    """

    kind = "keygen"

    def __init__(
        self,
        client: RelayClient,
        protocol_factory: KeygenProtocolFactory,
        *,
        session_id: Optional[str] = None,
        threshold: Optional[int] = None,
        total_parties: Optional[int] = None,
        share_store: Optional[ShareStore] = None,
        options: Optional[DriverOptions] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        super().__init__(client, options=options, cancel_token=cancel_token)
        if session_id is None and (threshold is None or total_parties is None):
            raise InvalidParameters("Either a session ID or both threshold and total_parties are required")
        self.session_id = session_id
        self.threshold = threshold
        self.total_parties = total_parties
        self.protocol_factory = protocol_factory
        self.share_store = share_store
        self.share_path = None
        self.join_token = uuid.uuid4().hex

    async def create_session(self) -> str:
        """Create the session this driver will join (initiator only)."""
        self.session_id = await self._write(
            lambda: self.client.initiate_keygen(self.threshold, self.total_parties),
            "creating keygen session",
        )
        logger.info(f"Created keygen session {self.session_id} (t={self.threshold}, n={self.total_parties})")
        return self.session_id

    async def run(self) -> KeyShare:
        self._start()
        try:
            if self.session_id is None:
                await self.create_session()

            join = await self._write(
                lambda: self.client.join_keygen(self.session_id, self.join_token), "joining session"
            )
            self.party_id = join.party_id
            self._transition(DriverState.JOINED, f"t={join.threshold}, n={join.total_parties}")

            await self._await_quorum()
            logger.info(
                f"Joined session {self.session_id} as party {self.party_id} "
                f"with parties {self.party_ids} and threshold {self.threshold}"
            )

            round_function = self.protocol_factory(self.party_id, list(self.party_ids), self.threshold)
            result = await self._run_rounds(round_function)
            if not isinstance(result, KeyShare):
                raise ProtocolViolation(f"Keygen round function returned {type(result).__name__}, expected KeyShare")

            logger.info(f"Group key: {result.group_key.hex()}")
            if self.share_store is not None:
                self.share_path = await self.share_store.save(result)

            self._transition(DriverState.FINISHED)
            return result
        except Exception:
            self._transition(DriverState.FAILED)
            raise

    def _address(self, round_no: int, outbound: List[bytes]) -> List[Tuple[int, bytes]]:
        if round_no != 2:
            return self._broadcast(outbound)

        others = [pid for pid in self.party_ids if pid != self.party_id]
        if len(outbound) != len(others):
            raise ProtocolViolation(
                f"Round 2 needs one message per other party ({len(others)}), got {len(outbound)}"
            )
        return list(zip(others, outbound))

    async def _await_round(self, round_no: int) -> List[bytes]:
        return await self._poll(
            lambda: self.client.retrieve_messages(self.kind, self.session_id, self.party_id, round_no),
            self.options.round_poll_interval,
            f"waiting for round {round_no} messages",
        )
