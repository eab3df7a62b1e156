"""Distributed key generation session endpoints."""

from fastapi import APIRouter, Depends, Query, Request
from typing import Optional
import logging

from mpc_relay.codec import encode_bytes
from mpc_relay.errors import RelayError

from ..models.session import (
    AckResponse,
    KeygenInitiateRequest,
    KeygenInitiateResponse,
    KeygenJoinRequest,
    KeygenJoinResponse,
    RetrieveMessagesResponse,
    SessionStatusResponse,
    SubmitMessagesRequest,
)
from ..services.message_relay import MessageRelay
from ..services.session_store import SessionStore
from .common import decode_outbound, relay_http_error, status_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/keygen", tags=["keygen"])


def get_keygen_store(request: Request) -> SessionStore:
    """Dependency injection for the keygen SessionStore."""
    return request.app.state.keygen_store


def get_keygen_relay(request: Request) -> MessageRelay:
    """Dependency injection for the keygen MessageRelay."""
    return request.app.state.keygen_relay


@router.post("/initiate", response_model=KeygenInitiateResponse)
async def initiate_keygen(
    request: KeygenInitiateRequest,
    store: SessionStore = Depends(get_keygen_store)
):
    """
    Create a keygen session with party IDs 1..n.

    Raises:
        400: Invalid threshold or number of parties
    """
    try:
        session_id = store.create_session(request.threshold, request.total_parties)
        return KeygenInitiateResponse(session_id=session_id)
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/join", response_model=KeygenJoinResponse)
async def join_keygen(
    session_id: str,
    request: Optional[KeygenJoinRequest] = None,
    store: SessionStore = Depends(get_keygen_store)
):
    """
    Join a keygen session and receive the next unclaimed party ID.

    A join repeated with the same ``joinToken`` returns the party ID of the
    first one.

    Raises:
        404: Session not found
        409: Session is full
    """
    try:
        join_token = request.join_token if request is not None else None
        result = store.join(session_id, join_token=join_token)
        return KeygenJoinResponse(
            party_id=result.party_id,
            threshold=result.threshold,
            total_parties=result.total_parties,
        )
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/messages", response_model=AckResponse)
async def submit_keygen_messages(
    session_id: str,
    request: SubmitMessagesRequest,
    relay: MessageRelay = Depends(get_keygen_relay)
):
    """Append round messages from one party."""
    try:
        messages = decode_outbound(request.messages)
        relay.submit(session_id, request.party_id, request.round, messages)
        return AckResponse(message="Messages received")
    except RelayError as e:
        raise relay_http_error(e)


@router.get("/{session_id}/messages", response_model=RetrieveMessagesResponse)
async def retrieve_keygen_messages(
    session_id: str,
    party_id: int = Query(..., alias="partyID"),
    round: int = Query(...),
    relay: MessageRelay = Depends(get_keygen_relay)
):
    """
    Retrieve the round's messages addressed to the party or broadcast.

    Raises:
        400: Round incomplete (retry later)
        404: Session not found
    """
    try:
        contents = relay.retrieve(session_id, party_id, round)
        return RetrieveMessagesResponse(messages=[encode_bytes(c) for c in contents])
    except RelayError as e:
        raise relay_http_error(e)


@router.get("/{session_id}/status", response_model=SessionStatusResponse)
async def keygen_status(
    session_id: str,
    store: SessionStore = Depends(get_keygen_store)
):
    """Snapshot of joined parties and per-round message counts."""
    try:
        return status_response(store.status(session_id))
    except RelayError as e:
        raise relay_http_error(e)
