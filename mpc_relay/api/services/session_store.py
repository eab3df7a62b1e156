"""In-memory session registry for threshold protocol sessions.

A store owns every session of one kind (keygen or signing). Keygen and
signing use two separate store instances, so their ID spaces never mix.

Locking:
- ``_registry_lock`` guards the ``session_id -> Session`` map and is held
  only for the map operation itself.
- each ``Session`` carries its own lock; all reads and writes of one session
  happen under it, so requests touching different sessions never contend.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from mpc_relay.errors import (
    InvalidParameters,
    SessionExists,
    SessionFull,
    SessionNotFound,
    UnknownParty,
)

logger = logging.getLogger(__name__)

BROADCAST = 0


class SessionKind(str, Enum):
    KEYGEN = "keygen"
    SIGNING = "signing"


@dataclass
class Message:
    """One relayed protocol message. ``recipient == 0`` means broadcast."""

    sender: int
    recipient: int
    round: int
    content: bytes

    def visible_to(self, party_id: int) -> bool:
        return self.recipient == BROADCAST or self.recipient == party_id


@dataclass
class Session:
    """Mutable session state. Only touch it while holding ``lock``."""

    id: str
    kind: SessionKind
    threshold: int
    total_parties: int
    party_ids: List[int]
    joined_parties: List[int] = field(default_factory=list)
    join_tokens: Dict[str, int] = field(default_factory=dict)
    messages: Dict[int, List[Message]] = field(default_factory=dict)
    transaction: Optional[bytes] = None
    signature: Optional[bytes] = None
    group_key: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0
    closed: bool = False
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def message_counts(self) -> Dict[int, int]:
        return {round_no: len(items) for round_no, items in sorted(self.messages.items())}


@dataclass(frozen=True)
class SessionStatus:
    """Read-only snapshot of a session."""

    session_id: str
    kind: SessionKind
    threshold: int
    total_parties: int
    party_ids: Tuple[int, ...]
    joined_parties: Tuple[int, ...]
    message_counts: Dict[int, int]
    has_transaction: bool


@dataclass(frozen=True)
class JoinResult:
    party_id: int
    threshold: int
    total_parties: int


def validate_parameters(threshold: int, total_parties: int) -> None:
    if threshold < 1 or total_parties < threshold:
        raise InvalidParameters(
            f"Invalid threshold or number of parties: t={threshold}, n={total_parties}"
        )


class SessionStore:
    """Registry of sessions of a single kind, keyed by session ID."""

    def __init__(
        self,
        kind: SessionKind,
        *,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.kind = SessionKind(kind)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._registry_lock = Lock()
        self._next_sweep_at = 0.0

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------
    # Creation / lookup
    # ------------------------------------------------------------------

    def create_session(
        self,
        threshold: int,
        total_parties: int,
        *,
        session_id: Optional[str] = None,
        party_ids: Optional[Sequence[int]] = None,
    ) -> str:
        """Create a session and return its ID.

        Keygen sessions get a generated ID; signing sessions are created under
        the caller-chosen ``session_id``. ``party_ids`` defaults to ``1..n``.
        """
        validate_parameters(threshold, total_parties)

        if party_ids is None:
            ids = list(range(1, total_parties + 1))
        else:
            ids = [int(pid) for pid in party_ids]
            if len(ids) != total_parties or len(set(ids)) != len(ids) or any(pid < 1 for pid in ids):
                raise InvalidParameters(
                    f"partyIDs must be {total_parties} distinct positive integers, got {ids}"
                )

        if self.kind is SessionKind.KEYGEN:
            session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        elif not session_id:
            raise InvalidParameters("sessionID is required for signing sessions")

        now = self._clock()
        session = Session(
            id=session_id,
            kind=self.kind,
            threshold=threshold,
            total_parties=total_parties,
            party_ids=ids,
            created_at=now,
            updated_at=now,
        )

        with self._registry_lock:
            self._purge_expired_locked(now)
            if session_id in self._sessions:
                raise SessionExists(f"Session ID already exists: {session_id}")
            self._sessions[session_id] = session

        logger.info(
            f"Created {self.kind.value} session {session_id} (t={threshold}, n={total_parties}, parties={ids})"
        )
        return session_id

    def get(self, session_id: str) -> Session:
        """Look up a session without locking it."""
        now = self._clock()
        with self._registry_lock:
            self._purge_expired_locked(now)
            session = self._sessions.get(session_id)
            if session is not None and self._is_expired(session, now):
                self._sessions.pop(session_id).closed = True
                logger.info(f"Expired {self.kind.value} session {session_id}")
                session = None
        if session is None:
            raise SessionNotFound(f"{self.kind.value.capitalize()} session not found: {session_id}")
        return session

    @contextmanager
    def locked(self, session_id: str) -> Iterator[Session]:
        """Yield the session with its lock held.

        Raises SessionNotFound if the session was removed while waiting for
        the lock.
        """
        session = self.get(session_id)
        with session.lock:
            if session.closed:
                raise SessionNotFound(f"{self.kind.value.capitalize()} session not found: {session_id}")
            yield session
            session.updated_at = self._clock()

    def remove(self, session: Session) -> None:
        """Drop a session from the registry. Caller must hold ``session.lock``."""
        session.closed = True
        with self._registry_lock:
            if self._sessions.get(session.id) is session:
                del self._sessions[session.id]
        logger.info(f"Removed {self.kind.value} session {session.id}")

    def purge_expired(self) -> int:
        """Remove sessions idle for longer than the TTL. Returns the count."""
        with self._registry_lock:
            return self._sweep_locked(self._clock())

    def _is_expired(self, session: Session, now: float) -> bool:
        return self.ttl_seconds is not None and now - session.updated_at > self.ttl_seconds

    def _purge_expired_locked(self, now: float) -> int:
        """Sweep on the request path, at most once per half TTL.

        Lookups check their own session's expiry, so between sweeps the
        registry lock only covers the map operation.
        """
        if self.ttl_seconds is None or now < self._next_sweep_at:
            return 0
        return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        if self.ttl_seconds is None:
            return 0
        self._next_sweep_at = now + self.ttl_seconds / 2
        expired = [sid for sid, session in self._sessions.items() if self._is_expired(session, now)]
        for sid in expired:
            self._sessions.pop(sid).closed = True
        if expired:
            logger.info(f"Purged {len(expired)} expired {self.kind.value} session(s): {expired}")
        return len(expired)

    # ------------------------------------------------------------------
    # Join / status
    # ------------------------------------------------------------------

    def join(
        self,
        session_id: str,
        party_id: Optional[int] = None,
        *,
        join_token: Optional[str] = None,
    ) -> JoinResult:
        """Register a party in the session.

        Keygen sessions hand out the next unclaimed ID from ``party_ids``; a
        repeated ``join_token`` gets the ID it was given the first time.
        Signing sessions take the caller's declared ``party_id``, which must
        be one of ``party_ids``; joining twice with the same ID is a no-op.
        """
        with self.locked(session_id) as session:
            if self.kind is SessionKind.KEYGEN:
                if join_token is not None and join_token in session.join_tokens:
                    assigned = session.join_tokens[join_token]
                    logger.info(f"Party {assigned} re-joined session {session_id} with the same token")
                else:
                    if len(session.joined_parties) >= session.total_parties:
                        raise SessionFull(f"Session is full: {session_id}")
                    assigned = session.party_ids[len(session.joined_parties)]
                    session.joined_parties.append(assigned)
                    if join_token is not None:
                        session.join_tokens[join_token] = assigned
            else:
                if party_id is None:
                    raise InvalidParameters("partyID is required to join a signing session")
                assigned = int(party_id)
                if assigned not in session.joined_parties:
                    if len(session.joined_parties) >= session.total_parties:
                        raise SessionFull(f"Signing session is full: {session_id}")
                    if assigned not in session.party_ids:
                        raise UnknownParty(
                            f"Party {assigned} is not a member of session {session_id} ({session.party_ids})"
                        )
                    session.joined_parties.append(assigned)
                else:
                    logger.info(f"Party {assigned} re-joined session {session_id}")

            joined = len(session.joined_parties)
            result = JoinResult(
                party_id=assigned,
                threshold=session.threshold,
                total_parties=session.total_parties,
            )

        logger.info(f"Party {assigned} joined {self.kind.value} session {session_id} ({joined}/{result.total_parties})")
        return result

    def status(self, session_id: str) -> SessionStatus:
        with self.locked(session_id) as session:
            return SessionStatus(
                session_id=session.id,
                kind=session.kind,
                threshold=session.threshold,
                total_parties=session.total_parties,
                party_ids=tuple(session.party_ids),
                joined_parties=tuple(session.joined_parties),
                message_counts=session.message_counts(),
                has_transaction=session.transaction is not None,
            )
