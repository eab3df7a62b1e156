"""Key share persistence.

Each party's share is one JSON file ``party-{id}-share.json`` readable only
by its owner; binary fields are base64 encoded.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import aiofiles

from mpc_relay.codec import decode_bytes, encode_bytes
from mpc_relay.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass
class KeyShare:
    """Output of a finished key generation for one party."""

    party_id: int
    threshold: int
    party_ids: List[int]
    group_key: bytes
    secret_share: bytes
    public_shares: Dict[int, bytes] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "party_id": self.party_id,
            "threshold": self.threshold,
            "party_ids": list(self.party_ids),
            "group_key": encode_bytes(self.group_key),
            "secret_share": encode_bytes(self.secret_share),
            "public_shares": {str(pid): encode_bytes(share) for pid, share in sorted(self.public_shares.items())},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyShare":
        try:
            return cls(
                party_id=int(data["party_id"]),
                threshold=int(data["threshold"]),
                party_ids=[int(pid) for pid in data["party_ids"]],
                group_key=decode_bytes(data["group_key"]),
                secret_share=decode_bytes(data["secret_share"]),
                public_shares={
                    int(pid): decode_bytes(share)
                    for pid, share in (data.get("public_shares") or {}).items()
                },
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Invalid key share data: {e}") from e


class ShareStore:
    """Reads and writes key share files under one directory."""

    def __init__(self, share_dir: Union[str, Path]):
        self.share_dir = Path(share_dir)

    def path_for(self, party_id: int) -> Path:
        return self.share_dir / f"party-{party_id}-share.json"

    async def save(self, share: KeyShare) -> Path:
        """Write the share with owner-only permissions and return its path."""
        self.share_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = self.path_for(share.party_id)

        # Create the file 0600 before any secret is written to it.
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.close(fd)

        async with aiofiles.open(path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(share.to_dict(), indent=2))

        logger.info(f"Share for party {share.party_id} saved to {path}")
        return path

    async def load(self, path: Union[str, Path]) -> KeyShare:
        path = Path(path)
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            content = await f.read()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid key share file {path}: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError(f"Invalid key share file {path}: expected an object")
        return KeyShare.from_dict(data)

    async def load_party(self, party_id: int) -> KeyShare:
        return await self.load(self.path_for(party_id))
