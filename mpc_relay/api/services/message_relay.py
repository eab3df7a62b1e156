"""Message relay: addressing and round-completeness rules on top of a SessionStore.

Keygen and signing deliberately use different completeness rules:

- keygen: the relay itself refuses ``retrieve`` (RoundIncomplete) until the
  round holds its expected message count, see ``expected_message_count``.
- signing: retrieval is never gated here; drivers poll ``status`` until the
  round holds at least ``t`` messages before retrieving.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from mpc_relay.errors import ConflictingSubmission, InvalidParameters, RoundIncomplete, UnknownParty

from .session_store import BROADCAST, Message, Session, SessionKind, SessionStore

logger = logging.getLogger(__name__)


def expected_message_count(total_parties: int, round_no: int) -> int:
    """Messages a keygen round must hold before it can be retrieved.

    Round 1 is one broadcast per party, round 2 is one directed message from
    every party to every other party. Later rounds fall back to ``n``.
    """
    if round_no == 1:
        return total_parties
    if round_no == 2:
        return total_parties * (total_parties - 1)
    return total_parties


@dataclass(frozen=True)
class OutboundMessage:
    recipient: int
    content: bytes


class MessageRelay:
    """Submit/retrieve protocol messages for one session store."""

    def __init__(self, store: SessionStore, *, validate_sender: bool = True):
        self.store = store
        self.validate_sender = validate_sender

    @property
    def gates_retrieval(self) -> bool:
        return self.store.kind is SessionKind.KEYGEN

    def submit(
        self,
        session_id: str,
        sender: int,
        round_no: int,
        messages: Sequence[Tuple[int, bytes]],
    ) -> int:
        """Append one message per ``(recipient, content)`` pair to the round.

        Each party submits one batch per round. Resending the same batch is a
        no-op, so a driver may retry a submit whose response was lost; a
        different batch for the same round raises ConflictingSubmission.
        Returns the round's message count after the append.
        """
        if round_no < 1:
            raise InvalidParameters(f"Round must be >= 1, got {round_no}")

        outbound = [OutboundMessage(recipient=int(to), content=bytes(content)) for to, content in messages]

        with self.store.locked(session_id) as session:
            if self.validate_sender:
                self._check_addressing(session, sender, outbound)

            bucket = session.messages.setdefault(round_no, [])
            previous = [
                OutboundMessage(recipient=msg.recipient, content=msg.content)
                for msg in bucket if msg.sender == sender
            ]
            if previous:
                if previous != outbound:
                    raise ConflictingSubmission(
                        f"Party {sender} already submitted a different batch for round {round_no}"
                    )
                count = len(bucket)
                logger.info(
                    f"Ignored repeated round {round_no} batch from party {sender} "
                    f"in session {session_id} ({count} total)"
                )
                return count

            for item in outbound:
                bucket.append(
                    Message(sender=sender, recipient=item.recipient, round=round_no, content=item.content)
                )
            count = len(bucket)
            complete = self._is_complete(session, round_no, count)

        logger.info(
            f"Received {len(outbound)} message(s) for {self.store.kind.value} session {session_id}, "
            f"round {round_no} from party {sender} ({count} total)"
        )
        if complete:
            logger.info(f"Round {round_no} of session {session_id} is complete")
        return count

    def retrieve(self, session_id: str, party_id: int, round_no: int) -> List[bytes]:
        """Return every message of the round addressed to ``party_id`` or broadcast.

        Messages are returned in submission order.
        """
        with self.store.locked(session_id) as session:
            items = session.messages.get(round_no, [])
            if self.gates_retrieval:
                expected = expected_message_count(session.total_parties, round_no)
                if len(items) < expected:
                    raise RoundIncomplete(
                        f"Not all messages have been submitted for round {round_no}: "
                        f"{len(items)}/{expected}"
                    )
            return [msg.content for msg in items if msg.visible_to(party_id)]

    def _is_complete(self, session: Session, round_no: int, count: int) -> bool:
        if self.gates_retrieval:
            return count == expected_message_count(session.total_parties, round_no)
        return count == session.threshold

    @staticmethod
    def _check_addressing(session: Session, sender: int, outbound: Sequence[OutboundMessage]) -> None:
        if sender not in session.joined_parties:
            raise UnknownParty(f"Party {sender} has not joined session {session.id}")
        for item in outbound:
            if item.recipient != BROADCAST and item.recipient not in session.party_ids:
                raise UnknownParty(f"Recipient {item.recipient} is not a member of session {session.id}")
