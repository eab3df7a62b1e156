"""Unit tests for the signing endpoint family."""

import pytest
from fastapi.testclient import TestClient

from mpc_relay.codec import encode_bytes


@pytest.fixture
def client(app):
    return TestClient(app)


def _initiate(client, session_id="sign-1", t=2, n=2, party_ids=None):
    payload = {"sessionID": session_id, "t": t, "n": n}
    if party_ids is not None:
        payload["partyIDs"] = party_ids
    return client.post("/sign/initiate", json=payload)


def _join_all(client, session_id="sign-1", party_ids=(1, 2)):
    for pid in party_ids:
        response = client.post(f"/sign/{session_id}/join", json={"partyID": pid})
        assert response.status_code == 200


def test_initiate_echoes_parameters(client):
    response = _initiate(client)

    assert response.status_code == 200
    body = response.json()
    assert body["sessionID"] == "sign-1"
    assert body["t"] == 2
    assert body["n"] == 2


def test_initiate_twice_conflicts(client):
    _initiate(client)

    response = _initiate(client)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "SessionExists"


def test_join_with_non_member_is_rejected(client):
    _initiate(client, party_ids=[1, 3])

    response = client.post("/sign/sign-1/join", json={"partyID": 2})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "UnknownParty"


def test_join_returns_declared_party(client):
    _initiate(client, party_ids=[1, 3])

    body = client.post("/sign/sign-1/join", json={"partyID": 3}).json()

    assert body["partyID"] == 3
    assert body["n"] == 2


def test_transaction_not_yet_staged(client):
    _initiate(client)

    response = client.get("/sign/sign-1/transaction")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NotYetStaged"


def test_stage_fetch_and_finalize(client):
    _initiate(client)
    _join_all(client)
    payload = bytes(range(10))

    response = client.post("/sign/sign-1/broadcast", json={"transaction": encode_bytes(payload)})
    assert response.status_code == 200

    assert client.get("/sign/sign-1/status").json()["hasTransaction"] is True
    assert client.get("/sign/sign-1/transaction").json()["message"] == encode_bytes(payload)

    signature = b"\x01" * 64
    response = client.post("/sign/sign-1/finalize", json={"signature": encode_bytes(signature)})

    assert response.status_code == 200
    body = response.json()
    assert body["transactionLength"] == 10
    assert body["signatureLength"] == 64
    assert body["signature"] == encode_bytes(signature)

    response = client.get("/sign/sign-1/status")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "SessionNotFound"

    response = client.post("/sign/sign-1/finalize", json={"signature": encode_bytes(signature)})
    assert response.status_code == 404


def test_messages_are_not_gated(client):
    _initiate(client)
    _join_all(client)

    response = client.get("/sign/sign-1/messages", params={"partyID": 1, "round": 1})
    assert response.status_code == 200
    assert response.json()["messages"] == []

    client.post(
        "/sign/sign-1/messages",
        json={"partyID": 2, "round": 1, "messages": [{"to": 0, "content": encode_bytes(b"m2")}]},
    )

    response = client.get("/sign/sign-1/messages", params={"partyID": 1, "round": 1})
    assert response.json()["messages"] == [encode_bytes(b"m2")]
    assert client.get("/sign/sign-1/status").json()["messages"] == {"1": 1}


def test_invalid_transaction_encoding(client):
    _initiate(client)

    response = client.post("/sign/sign-1/broadcast", json={"transaction": "not base64!"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "DecodeError"
    assert client.get("/sign/sign-1/status").json()["hasTransaction"] is False


def test_signing_and_keygen_sessions_do_not_mix(client):
    _initiate(client)

    response = client.get("/keygen/sign-1/status")

    assert response.status_code == 404
