"""Unit tests for key share persistence."""

import json
import os
import stat
import sys

import pytest

from mpc_relay.driver.share_store import KeyShare, ShareStore
from mpc_relay.errors import DecodeError
from tests.fakes import make_share


@pytest.mark.asyncio
async def test_save_and_load(temp_share_dir):
    store = ShareStore(temp_share_dir / "party")
    share = make_share(2)

    path = await store.save(share)

    assert path.name == "party-2-share.json"
    assert await store.load_party(2) == share


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
@pytest.mark.asyncio
async def test_share_file_is_owner_only(temp_share_dir):
    path = await ShareStore(temp_share_dir).save(make_share(1))

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


@pytest.mark.asyncio
async def test_share_file_uses_base64_fields(temp_share_dir):
    path = await ShareStore(temp_share_dir).save(make_share(1))

    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["party_id"] == 1
    assert data["party_ids"] == [1, 2, 3]
    assert data["secret_share"] == "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE="
    assert set(data["public_shares"]) == {"1", "2", "3"}


@pytest.mark.asyncio
async def test_corrupt_file_raises_decode_error(temp_share_dir):
    path = temp_share_dir / "party-1-share.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(DecodeError):
        await ShareStore(temp_share_dir).load(path)


def test_missing_field_raises_decode_error():
    with pytest.raises(DecodeError):
        KeyShare.from_dict({"party_id": 1})
