"""Shared join / quorum / round-loop machinery of the party drivers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from mpc_relay.api.models.session import SessionStatusResponse
from mpc_relay.errors import ProtocolViolation

from .base import CancelToken, DriverOptions, DriverState, RoundFunction
from .client import RelayClient
from .polling import (
    RETRYABLE_READ_ERRORS,
    RETRYABLE_WRITE_ERRORS,
    Deadline,
    call_with_retry,
    poll_until,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BROADCAST = 0


class RoundDriver(ABC):
    """One party's client-side state machine.

    Subclasses decide how outbound messages are addressed and how a round is
    recognised as complete; the loop itself is shared.
    """

    kind: str = "unknown"

    def __init__(
        self,
        client: RelayClient,
        *,
        options: Optional[DriverOptions] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.client = client
        self.options = options or DriverOptions()
        self.cancel_token = cancel_token or CancelToken()
        self.state = DriverState.IDLE
        self.session_id: Optional[str] = None
        self.party_id: Optional[int] = None
        self.party_ids: List[int] = []
        self.threshold: Optional[int] = None
        self.total_parties: Optional[int] = None
        self.rounds_completed = 0
        self._deadline = Deadline(self.options.timeout_seconds)

    @abstractmethod
    async def run(self) -> Any:
        """Drive the protocol to completion and return its artifact."""

    @abstractmethod
    def _address(self, round_no: int, outbound: List[bytes]) -> List[Tuple[int, bytes]]:
        """Pair each outbound message with its recipient (0 = broadcast)."""

    @abstractmethod
    async def _await_round(self, round_no: int) -> List[bytes]:
        """Wait until the round is complete and return the inbound messages."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._deadline = Deadline(self.options.timeout_seconds)

    def _transition(self, state: DriverState, detail: str = "") -> None:
        self.state = state
        suffix = f" ({detail})" if detail else ""
        logger.info(f"[{self.kind} {self.session_id} party {self.party_id}] -> {state.value}{suffix}")

    async def _poll(self, check: Callable[[], Awaitable[Optional[T]]], interval: float, description: str) -> T:
        return await poll_until(
            check,
            interval=interval,
            description=description,
            cancel_token=self.cancel_token,
            deadline=self._deadline,
        )

    async def _read(self, call: Callable[[], Awaitable[T]], description: str) -> T:
        """Idempotent request: retried on any network failure."""
        return await call_with_retry(
            call,
            interval=self.options.round_poll_interval,
            description=description,
            cancel_token=self.cancel_token,
            deadline=self._deadline,
            retry_on=RETRYABLE_READ_ERRORS,
        )

    async def _write(self, call: Callable[[], Awaitable[T]], description: str) -> T:
        """State-changing request, resent on transport failures until the deadline."""
        return await call_with_retry(
            call,
            interval=self.options.round_poll_interval,
            description=description,
            cancel_token=self.cancel_token,
            deadline=self._deadline,
            retry_on=RETRYABLE_WRITE_ERRORS,
        )

    async def _await_quorum(self) -> SessionStatusResponse:
        """Poll status until every party of the session has joined."""
        self._transition(DriverState.AWAITING_QUORUM)

        async def check():
            status = await self.client.status(self.kind, self.session_id)
            joined = len(status.joined_parties)
            if joined >= status.total_parties:
                return status
            logger.info(f"Waiting for other parties to join session {self.session_id} ({joined}/{status.total_parties})")
            return None

        status = await self._poll(check, self.options.quorum_poll_interval, "waiting for quorum")
        self.party_ids = list(status.party_ids)
        self.threshold = status.threshold
        self.total_parties = status.total_parties
        return status

    async def _run_rounds(self, round_function: RoundFunction) -> Any:
        """Advance the round function until it yields a result."""
        inbound: List[bytes] = []
        for round_no in range(1, self.options.max_rounds + 1):
            self._transition(DriverState.ROUND, f"round {round_no}")
            output = round_function.advance(list(inbound))
            if output.done:
                if output.outbound:
                    logger.warning(
                        f"Round function produced {len(output.outbound)} message(s) with its result; not relayed"
                    )
                return output.result

            messages = self._address(round_no, list(output.outbound))
            if messages:
                await self._write(
                    lambda: self.client.submit_messages(self.kind, self.session_id, self.party_id, round_no, messages),
                    f"submitting round {round_no}",
                )
                logger.info(f"Submitted {len(messages)} message(s) for round {round_no}")

            self._transition(DriverState.AWAITING_ROUND_COMPLETION, f"round {round_no}")
            inbound = await self._await_round(round_no)
            self.rounds_completed = round_no
            logger.info(f"Retrieved {len(inbound)} message(s) for round {round_no}")

        raise ProtocolViolation(f"Round function produced no result after {self.options.max_rounds} rounds")

    @staticmethod
    def _broadcast(outbound: Sequence[bytes]) -> List[Tuple[int, bytes]]:
        return [(BROADCAST, content) for content in outbound]
