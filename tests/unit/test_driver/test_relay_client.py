"""Unit tests for the coordinator HTTP client."""

import json

import httpx
import pytest

from mpc_relay.codec import encode_bytes
from mpc_relay.driver.client import RelayClient
from mpc_relay.errors import (
    DecodeError,
    NotYetStaged,
    RelayError,
    RoundIncomplete,
    SessionFull,
    SessionNotFound,
)


def _client(handler) -> RelayClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay.test")
    return RelayClient(http_client=http_client)


def _error(status_code, code, message="rejected"):
    return httpx.Response(status_code, json={"detail": {"code": code, "message": message}})


@pytest.mark.asyncio
async def test_join_keygen_parses_assignment():
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/keygen/session-1/join"
        return httpx.Response(200, json={"partyID": 2, "t": 2, "n": 3, "message": "ok"})

    info = await _client(handler).join_keygen("session-1")

    assert info.party_id == 2
    assert info.threshold == 2
    assert info.total_parties == 3


@pytest.mark.asyncio
async def test_join_keygen_sends_join_token():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"partyID": 1, "t": 2, "n": 3})

    client = _client(handler)
    await client.join_keygen("session-1", "token-1")
    await client.join_keygen("session-1")

    assert bodies == [{"joinToken": "token-1"}, {}]


@pytest.mark.parametrize(
    "status_code,code,expected",
    [
        (409, "SessionFull", SessionFull),
        (400, "RoundIncomplete", RoundIncomplete),
        (404, "NotYetStaged", NotYetStaged),
        (404, "SessionNotFound", SessionNotFound),
    ],
)
@pytest.mark.asyncio
async def test_error_codes_map_back_to_exceptions(status_code, code, expected):
    client = _client(lambda request: _error(status_code, code, "server says no"))

    with pytest.raises(expected) as exc_info:
        await client.status("keygen", "session-1")

    assert str(exc_info.value) == "server says no"


@pytest.mark.asyncio
async def test_plain_404_is_session_not_found():
    client = _client(lambda request: httpx.Response(404, json={"detail": "Not Found"}))

    with pytest.raises(SessionNotFound):
        await client.fetch_transaction("sign-1")


@pytest.mark.asyncio
async def test_unexpected_server_error_is_relay_error():
    client = _client(lambda request: httpx.Response(500, text="Internal Server Error"))

    with pytest.raises(RelayError):
        await client.join_keygen("session-1")


@pytest.mark.asyncio
async def test_submit_encodes_messages():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": "ok"})

    await _client(handler).submit_messages("signing", "sign-1", 1, 2, [(0, b"abc"), (3, b"\x00")])

    assert seen["path"] == "/sign/sign-1/messages"
    assert seen["body"] == {
        "partyID": 1,
        "round": 2,
        "messages": [{"to": 0, "content": "YWJj"}, {"to": 3, "content": "AA=="}],
    }


@pytest.mark.asyncio
async def test_retrieve_decodes_messages():
    def handler(request):
        assert request.url.params["partyID"] == "1"
        assert request.url.params["round"] == "2"
        return httpx.Response(200, json={"messages": [encode_bytes(b"one"), encode_bytes(b"two")]})

    assert await _client(handler).retrieve_messages("keygen", "session-1", 1, 2) == [b"one", b"two"]


@pytest.mark.asyncio
async def test_status_parses_round_counts():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "partyIDs": [1, 2],
                "joinedParties": [1],
                "messages": {"1": 2},
                "t": 2,
                "n": 2,
                "hasTransaction": True,
            },
        )

    status = await _client(handler).status("signing", "sign-1")

    assert status.messages == {1: 2}
    assert status.joined_parties == [1]
    assert status.has_transaction is True


@pytest.mark.asyncio
async def test_malformed_payload_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, json={"messages": ["%%%"]}))

    with pytest.raises(DecodeError):
        await client.retrieve_messages("signing", "sign-1", 1, 1)


@pytest.mark.asyncio
async def test_invalid_json_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(DecodeError):
        await client.initiate_keygen(2, 3)


@pytest.mark.asyncio
async def test_network_failure_is_left_to_the_retry_policy():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(httpx.ConnectError):
        await _client(handler).status("keygen", "session-1")


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        RelayClient._prefix("other")
