"""Base contracts for per-party round drivers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

if TYPE_CHECKING:
    from mpc_relay.api.config import Settings
    from .share_store import KeyShare


@dataclass(frozen=True)
class RoundOutput:
    """Result of one ``advance`` call.

    ``result`` stays None until the protocol finishes; the call that yields
    it is the last one and its ``outbound`` is not relayed.
    """

    outbound: List[bytes] = field(default_factory=list)
    result: Optional[Any] = None

    @property
    def done(self) -> bool:
        return self.result is not None


class RoundFunction(ABC):
    """The cryptographic round function of one party.

    Deterministic given its internal state and the inbound messages; the
    driver never looks inside the bytes it produces or consumes.
    """

    @abstractmethod
    def advance(self, inbound: List[bytes]) -> RoundOutput:
        """Consume the previous round's inbound messages (empty for round 1)."""


# (party_id, party_ids, threshold) -> round function producing a KeyShare
KeygenProtocolFactory = Callable[[int, List[int], int], RoundFunction]

# (share, signer party_ids, message) -> round function producing signature bytes
SigningProtocolFactory = Callable[["KeyShare", List[int], bytes], RoundFunction]

# (group_key, message, signature) -> valid?
SignatureVerifier = Callable[[bytes, bytes, bytes], bool]


@dataclass
class CancelToken:
    """Cooperative cancellation token checked by every driver wait loop."""

    is_cancelled: bool = False
    reason: str = "cancelled"

    def cancel(self, reason: Optional[str] = None) -> None:
        """Mark the token as cancelled with an optional reason."""
        self.is_cancelled = True
        if reason:
            self.reason = str(reason).strip() or self.reason


class DriverState(str, Enum):
    IDLE = "idle"
    JOINED = "joined"
    AWAITING_QUORUM = "awaiting_quorum"
    STAGING = "staging"
    AWAITING_TRANSACTION = "awaiting_transaction"
    ROUND = "round"
    AWAITING_ROUND_COMPLETION = "awaiting_round_completion"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True)
class DriverOptions:
    """Polling cadence and limits for a driver run."""

    quorum_poll_interval: float = 2.0
    round_poll_interval: float = 2.0
    transaction_poll_interval: float = 1.0
    timeout_seconds: Optional[float] = 600.0
    max_rounds: int = 16
    confirm_before_finalize: bool = True

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DriverOptions":
        return cls(
            quorum_poll_interval=settings.quorum_poll_interval,
            round_poll_interval=settings.round_poll_interval,
            transaction_poll_interval=settings.transaction_poll_interval,
            timeout_seconds=settings.driver_timeout_seconds,
            max_rounds=settings.max_rounds,
            confirm_before_finalize=settings.confirm_before_finalize,
        )

