"""Helpers shared by the keygen and signing routers."""

import logging
from typing import List, Tuple

from fastapi import HTTPException

from mpc_relay.codec import decode_bytes
from mpc_relay.errors import RelayError

from ..models.session import OutboundMessage, SessionStatusResponse
from ..services.session_store import SessionStatus

logger = logging.getLogger(__name__)


def relay_http_error(error: RelayError) -> HTTPException:
    """Translate a relay error into an HTTP error carrying its wire code."""
    if error.status_code >= 500:
        logger.error(f"Relay error: {error}")
    else:
        logger.info(f"Rejected request ({error.code}): {error}")
    return HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": str(error)},
    )


def decode_outbound(messages: List[OutboundMessage]) -> List[Tuple[int, bytes]]:
    """Decode a whole submission before anything is appended."""
    return [(item.to, decode_bytes(item.content)) for item in messages]


def status_response(status: SessionStatus) -> SessionStatusResponse:
    return SessionStatusResponse(
        party_ids=list(status.party_ids),
        joined_parties=list(status.joined_parties),
        messages=status.message_counts,
        threshold=status.threshold,
        total_parties=status.total_parties,
        has_transaction=status.has_transaction,
    )
