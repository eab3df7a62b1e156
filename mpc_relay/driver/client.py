"""
Async HTTP client for the coordinator.

Wraps both endpoint families (``/keygen`` and ``/sign``). Error responses
are turned back into the ``mpc_relay.errors`` class the coordinator raised;
network failures surface as ``httpx.TransportError`` for the caller's retry
policy to handle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from mpc_relay.api.models.session import (
    FinalizeResponse,
    KeygenInitiateResponse,
    KeygenJoinResponse,
    RetrieveMessagesResponse,
    SessionStatusResponse,
    SigningJoinResponse,
    TransactionResponse,
)
from mpc_relay.codec import decode_bytes, encode_bytes
from mpc_relay.errors import DecodeError, RelayError, SessionNotFound, error_from_code

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_PREFIXES = {"keygen": "/keygen", "signing": "/sign"}


@dataclass(frozen=True)
class JoinInfo:
    party_id: int
    total_parties: int
    threshold: Optional[int] = None


@dataclass(frozen=True)
class FinalizeInfo:
    transaction_length: int
    signature_length: int
    signature: bytes


class RelayClient:
    """Coordinator API client used by one party's driver."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(max(1.0, float(timeout_seconds))),
        )

    @classmethod
    def from_settings(cls, settings) -> "RelayClient":
        return cls(settings.relay_url, timeout_seconds=settings.request_timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Keygen family
    # ------------------------------------------------------------------

    async def initiate_keygen(self, threshold: int, total_parties: int) -> str:
        data = await self._request("POST", "/keygen/initiate", json={"t": threshold, "n": total_parties})
        return self._parse(KeygenInitiateResponse, data).session_id

    async def join_keygen(self, session_id: str, join_token: Optional[str] = None) -> JoinInfo:
        payload = {"joinToken": join_token} if join_token is not None else {}
        data = await self._request("POST", f"/keygen/{session_id}/join", json=payload)
        parsed = self._parse(KeygenJoinResponse, data)
        return JoinInfo(party_id=parsed.party_id, total_parties=parsed.total_parties, threshold=parsed.threshold)

    # ------------------------------------------------------------------
    # Signing family
    # ------------------------------------------------------------------

    async def initiate_signing(
        self,
        session_id: str,
        threshold: int,
        total_parties: int,
        party_ids: Optional[Sequence[int]] = None,
    ) -> None:
        payload: Dict[str, Any] = {"sessionID": session_id, "t": threshold, "n": total_parties}
        if party_ids is not None:
            payload["partyIDs"] = list(party_ids)
        await self._request("POST", "/sign/initiate", json=payload)

    async def join_signing(self, session_id: str, party_id: int) -> JoinInfo:
        data = await self._request("POST", f"/sign/{session_id}/join", json={"partyID": party_id})
        parsed = self._parse(SigningJoinResponse, data)
        return JoinInfo(party_id=parsed.party_id, total_parties=parsed.total_parties)

    async def stage_transaction(self, session_id: str, payload: bytes) -> None:
        await self._request("POST", f"/sign/{session_id}/broadcast", json={"transaction": encode_bytes(payload)})

    async def fetch_transaction(self, session_id: str) -> bytes:
        data = await self._request("GET", f"/sign/{session_id}/transaction")
        return decode_bytes(self._parse(TransactionResponse, data).message)

    async def finalize(self, session_id: str, signature: bytes) -> FinalizeInfo:
        data = await self._request("POST", f"/sign/{session_id}/finalize", json={"signature": encode_bytes(signature)})
        parsed = self._parse(FinalizeResponse, data)
        return FinalizeInfo(
            transaction_length=parsed.transaction_length,
            signature_length=parsed.signature_length,
            signature=decode_bytes(parsed.signature),
        )

    # ------------------------------------------------------------------
    # Shared by both families
    # ------------------------------------------------------------------

    async def status(self, kind: str, session_id: str) -> SessionStatusResponse:
        data = await self._request("GET", f"{self._prefix(kind)}/{session_id}/status")
        return self._parse(SessionStatusResponse, data)

    async def submit_messages(
        self,
        kind: str,
        session_id: str,
        party_id: int,
        round_no: int,
        messages: Sequence[Tuple[int, bytes]],
    ) -> None:
        payload = {
            "partyID": party_id,
            "round": round_no,
            "messages": [{"to": to, "content": encode_bytes(content)} for to, content in messages],
        }
        await self._request("POST", f"{self._prefix(kind)}/{session_id}/messages", json=payload)

    async def retrieve_messages(self, kind: str, session_id: str, party_id: int, round_no: int) -> List[bytes]:
        data = await self._request(
            "GET",
            f"{self._prefix(kind)}/{session_id}/messages",
            params={"partyID": party_id, "round": round_no},
        )
        return [decode_bytes(item) for item in self._parse(RetrieveMessagesResponse, data).messages]

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def _prefix(kind: str) -> str:
        try:
            return _PREFIXES[str(getattr(kind, "value", kind))]
        except KeyError:
            raise ValueError(f"Unknown session kind '{kind}'")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = await self._client.request(method, path, json=json, params=params)
        if response.status_code >= 400:
            raise self._error_from_response(response)
        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {method} {path}: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError(f"Unexpected response from {method} {path}: {data!r}")
        return data

    @staticmethod
    def _parse(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"Invalid {model.__name__}: {e}") from e

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RelayError:
        code = None
        message = response.text
        try:
            detail = response.json().get("detail")
        except (ValueError, AttributeError):
            detail = None
        if isinstance(detail, dict):
            code = detail.get("code")
            message = str(detail.get("message") or message)
        elif detail:
            message = str(detail)

        if code is None and response.status_code == 404:
            return SessionNotFound(message)
        error = error_from_code(code, message)
        logger.debug(f"Coordinator replied {response.status_code} ({error.code}): {message}")
        return error
