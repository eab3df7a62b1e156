"""Deterministic stand-ins for the DKG and signing round functions."""

import hashlib
from typing import List, Optional

from mpc_relay.driver import KeyShare, RoundFunction, RoundOutput


class FakeDkg(RoundFunction):
    """Three-step stand-in for a DKG.

    Round 1 broadcasts a commitment, round 2 sends one directed message to
    every other party, and the group key is the hash of all commitments.
    """

    def __init__(self, party_id: int, party_ids: List[int], threshold: int):
        self.party_id = party_id
        self.party_ids = list(party_ids)
        self.threshold = threshold
        self.step = 0
        self.commitments: List[bytes] = []
        self.received: List[bytes] = []

    def advance(self, inbound: List[bytes]) -> RoundOutput:
        self.step += 1
        if self.step == 1:
            assert inbound == []
            return RoundOutput(outbound=[fake_commitment(self.party_id)])
        if self.step == 2:
            assert len(inbound) == len(self.party_ids)
            self.commitments = sorted(inbound)
            others = [pid for pid in self.party_ids if pid != self.party_id]
            return RoundOutput(outbound=[f"share:{self.party_id}->{pid}".encode() for pid in others])

        assert len(inbound) == len(self.party_ids) - 1
        assert all(item.endswith(f"->{self.party_id}".encode()) for item in inbound)
        self.received = list(inbound)
        return RoundOutput(
            result=KeyShare(
                party_id=self.party_id,
                threshold=self.threshold,
                party_ids=self.party_ids,
                group_key=fake_group_key(self.commitments),
                secret_share=hashlib.sha256(b"secret" + bytes([self.party_id])).digest(),
                public_shares={pid: fake_commitment(pid) for pid in self.party_ids},
            )
        )


class FakeSigning(RoundFunction):
    """Three broadcast rounds, then ``sha256(group_key + message)``."""

    rounds = 3

    def __init__(self, share: KeyShare, party_ids: List[int], message: bytes):
        self.share = share
        self.party_ids = list(party_ids)
        self.message = message
        self.step = 0

    def advance(self, inbound: List[bytes]) -> RoundOutput:
        self.step += 1
        if self.step <= self.rounds:
            return RoundOutput(outbound=[f"sign:{self.share.party_id}:{self.step}".encode()])
        return RoundOutput(result=fake_signature(self.share.group_key, self.message))


def fake_commitment(party_id: int) -> bytes:
    return hashlib.sha256(f"commit-{party_id}".encode()).digest()


def fake_group_key(commitments: List[bytes]) -> bytes:
    return hashlib.sha256(b"".join(sorted(commitments))).digest()


def fake_signature(group_key: bytes, message: bytes) -> bytes:
    return hashlib.sha256(group_key + message).digest()


def fake_verifier(group_key: bytes, message: bytes, signature: bytes) -> bool:
    return signature == fake_signature(group_key, message)


def make_share(party_id: int, party_ids: Optional[List[int]] = None, threshold: int = 2) -> KeyShare:
    party_ids = party_ids or [1, 2, 3]
    return KeyShare(
        party_id=party_id,
        threshold=threshold,
        party_ids=party_ids,
        group_key=fake_group_key([fake_commitment(pid) for pid in party_ids]),
        secret_share=bytes([party_id]) * 32,
        public_shares={pid: fake_commitment(pid) for pid in party_ids},
    )
