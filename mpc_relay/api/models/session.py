"""
Session wire models

Defines Pydantic request/response models for the keygen and signing
endpoint families. Field aliases carry the camelCase wire names; opaque
payloads travel as base64 strings.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


class WireModel(BaseModel):
    """Base model accepting both wire aliases and attribute names"""
    model_config = ConfigDict(populate_by_name=True)


class AckResponse(WireModel):
    """Generic acknowledgement"""
    message: str


# =============================================================================
# Session lifecycle
# =============================================================================

class KeygenInitiateRequest(WireModel):
    """Create keygen session request"""
    threshold: int = Field(..., alias="t", description="Threshold t")
    total_parties: int = Field(..., alias="n", description="Total number of parties n")


class KeygenInitiateResponse(WireModel):
    """Create keygen session response"""
    session_id: str = Field(..., alias="sessionID")
    message: str = "Session created. Parties can now join."


class SigningInitiateRequest(WireModel):
    """Create signing session request"""
    session_id: str = Field(..., alias="sessionID")
    threshold: int = Field(..., alias="t")
    total_parties: int = Field(..., alias="n")
    party_ids: Optional[List[int]] = Field(None, alias="partyIDs", description="Signer IDs (default 1..n)")


class SigningInitiateResponse(WireModel):
    """Create signing session response"""
    session_id: str = Field(..., alias="sessionID")
    threshold: int = Field(..., alias="t")
    total_parties: int = Field(..., alias="n")
    message: str = "Signing session created. Parties can now join."


class KeygenJoinRequest(WireModel):
    """Join keygen session request"""
    join_token: Optional[str] = Field(
        None, alias="joinToken", description="Client-chosen token; repeating it returns the same party ID"
    )


class KeygenJoinResponse(WireModel):
    """Join keygen session response"""
    party_id: int = Field(..., alias="partyID")
    threshold: int = Field(..., alias="t")
    total_parties: int = Field(..., alias="n")
    message: str = "Party joined successfully"


class SigningJoinRequest(WireModel):
    """Join signing session request"""
    party_id: int = Field(..., alias="partyID")


class SigningJoinResponse(WireModel):
    """Join signing session response"""
    party_id: int = Field(..., alias="partyID")
    total_parties: int = Field(..., alias="n")
    message: str = "Party joined signing session successfully"


class SessionStatusResponse(WireModel):
    """Session status snapshot"""
    party_ids: List[int] = Field(..., alias="partyIDs")
    joined_parties: List[int] = Field(..., alias="joinedParties")
    messages: Dict[int, int] = Field(default_factory=dict, description="Message count per round")
    threshold: int = Field(..., alias="t")
    total_parties: int = Field(..., alias="n")
    has_transaction: bool = Field(False, alias="hasTransaction")


# =============================================================================
# Messages
# =============================================================================

class OutboundMessage(WireModel):
    """One message of a submission; ``to == 0`` broadcasts"""
    to: int = 0
    content: str = Field(..., description="Base64 encoded payload")


class SubmitMessagesRequest(WireModel):
    """Submit round messages request"""
    party_id: int = Field(..., alias="partyID")
    round: int
    messages: List[OutboundMessage] = Field(default_factory=list)


class RetrieveMessagesResponse(WireModel):
    """Messages visible to the caller for one round"""
    messages: List[str] = Field(default_factory=list, description="Base64 encoded payloads")


# =============================================================================
# Transaction stage
# =============================================================================

class StageTransactionRequest(WireModel):
    """Stage payload request"""
    transaction: str = Field(..., description="Base64 encoded payload to sign")


class TransactionResponse(WireModel):
    """Staged payload"""
    message: str = Field(..., description="Base64 encoded payload to sign")


class FinalizeRequest(WireModel):
    """Finalize signing session request"""
    signature: str = Field(..., description="Base64 encoded signature")


class FinalizeResponse(WireModel):
    """Finalize signing session response"""
    message: str = "Transaction finalized successfully"
    transaction_length: int = Field(..., alias="transactionLength")
    signature_length: int = Field(..., alias="signatureLength")
    signature: str
