"""Threshold signing session endpoints."""

from fastapi import APIRouter, Depends, Query, Request
import logging

from mpc_relay.codec import decode_bytes, encode_bytes
from mpc_relay.errors import RelayError

from ..models.session import (
    AckResponse,
    FinalizeRequest,
    FinalizeResponse,
    RetrieveMessagesResponse,
    SessionStatusResponse,
    SigningInitiateRequest,
    SigningInitiateResponse,
    SigningJoinRequest,
    SigningJoinResponse,
    StageTransactionRequest,
    SubmitMessagesRequest,
    TransactionResponse,
)
from ..services.message_relay import MessageRelay
from ..services.session_store import SessionStore
from ..services.transaction_stage import TransactionStage
from .common import decode_outbound, relay_http_error, status_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sign", tags=["signing"])


def get_signing_store(request: Request) -> SessionStore:
    """Dependency injection for the signing SessionStore."""
    return request.app.state.signing_store


def get_signing_relay(request: Request) -> MessageRelay:
    """Dependency injection for the signing MessageRelay."""
    return request.app.state.signing_relay


def get_transaction_stage(request: Request) -> TransactionStage:
    """Dependency injection for the TransactionStage."""
    return request.app.state.transaction_stage


@router.post("/initiate", response_model=SigningInitiateResponse)
async def initiate_signing(
    request: SigningInitiateRequest,
    store: SessionStore = Depends(get_signing_store)
):
    """
    Create a signing session under a caller-chosen ID.

    Raises:
        400: Invalid threshold, party count or party IDs
        409: Session ID already exists
    """
    try:
        store.create_session(
            request.threshold,
            request.total_parties,
            session_id=request.session_id,
            party_ids=request.party_ids,
        )
        return SigningInitiateResponse(
            session_id=request.session_id,
            threshold=request.threshold,
            total_parties=request.total_parties,
        )
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/join", response_model=SigningJoinResponse)
async def join_signing(
    session_id: str,
    request: SigningJoinRequest,
    store: SessionStore = Depends(get_signing_store)
):
    """
    Join a signing session under a declared party ID.

    Raises:
        400: Party is not a member of the session
        404: Signing session not found
        409: Signing session is full
    """
    try:
        result = store.join(session_id, request.party_id)
        return SigningJoinResponse(party_id=result.party_id, total_parties=result.total_parties)
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/broadcast", response_model=AckResponse)
async def stage_transaction(
    session_id: str,
    request: StageTransactionRequest,
    stage: TransactionStage = Depends(get_transaction_stage)
):
    """Stage the payload every signer will sign."""
    try:
        stage.stage(session_id, decode_bytes(request.transaction))
        return AckResponse(message="Transaction broadcasted successfully")
    except RelayError as e:
        raise relay_http_error(e)


@router.get("/{session_id}/transaction", response_model=TransactionResponse)
async def fetch_transaction(
    session_id: str,
    stage: TransactionStage = Depends(get_transaction_stage)
):
    """
    Fetch the staged payload.

    Raises:
        404: Signing session not found, or nothing staged yet
    """
    try:
        return TransactionResponse(message=encode_bytes(stage.fetch(session_id)))
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/messages", response_model=AckResponse)
async def submit_signing_messages(
    session_id: str,
    request: SubmitMessagesRequest,
    relay: MessageRelay = Depends(get_signing_relay)
):
    """Append round messages from one signer."""
    try:
        messages = decode_outbound(request.messages)
        relay.submit(session_id, request.party_id, request.round, messages)
        return AckResponse(message="Signing messages received")
    except RelayError as e:
        raise relay_http_error(e)


@router.get("/{session_id}/messages", response_model=RetrieveMessagesResponse)
async def retrieve_signing_messages(
    session_id: str,
    party_id: int = Query(..., alias="partyID"),
    round: int = Query(...),
    relay: MessageRelay = Depends(get_signing_relay)
):
    """Retrieve the round's messages; completeness is left to the caller."""
    try:
        contents = relay.retrieve(session_id, party_id, round)
        return RetrieveMessagesResponse(messages=[encode_bytes(c) for c in contents])
    except RelayError as e:
        raise relay_http_error(e)


@router.get("/{session_id}/status", response_model=SessionStatusResponse)
async def signing_status(
    session_id: str,
    store: SessionStore = Depends(get_signing_store)
):
    """Snapshot of joined signers, message counts and staging state."""
    try:
        return status_response(store.status(session_id))
    except RelayError as e:
        raise relay_http_error(e)


@router.post("/{session_id}/finalize", response_model=FinalizeResponse)
async def finalize_signing(
    session_id: str,
    request: FinalizeRequest,
    stage: TransactionStage = Depends(get_transaction_stage)
):
    """
    Record the final signature and delete the session.

    Raises:
        404: Signing session not found (including already finalized)
    """
    try:
        receipt = stage.finalize(session_id, decode_bytes(request.signature))
        return FinalizeResponse(
            transaction_length=receipt.transaction_length,
            signature_length=receipt.signature_length,
            signature=encode_bytes(receipt.signature),
        )
    except RelayError as e:
        raise relay_http_error(e)
