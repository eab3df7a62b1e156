"""Unit tests for the command line entry point."""

import asyncio

import httpx
import pytest

from mpc_relay.driver import RelayClient, ShareStore
from mpc_relay.main import build_parser, load_object, main
from tests.fakes import FakeDkg, make_share


def test_load_object_resolves_module_attribute():
    assert load_object("tests.fakes:FakeDkg") is FakeDkg


@pytest.mark.parametrize("path", ["tests.fakes", "tests.fakes:", ":FakeDkg"])
def test_load_object_rejects_malformed_paths(path):
    with pytest.raises(ValueError):
        load_object(path)


def test_keygen_session_is_optional():
    args = build_parser().parse_args(["keygen", "--protocol", "tests.fakes:FakeDkg", "--t", "2", "--n", "3"])

    assert args.session_id is None
    assert args.t == 2
    assert args.n == 3


def test_sign_accepts_signer_ids():
    args = build_parser().parse_args([
        "sign", "sign-1",
        "--share-file", "shares/party-1-share.json",
        "--protocol", "tests.fakes:FakeSigning",
        "--verifier", "tests.fakes:fake_verifier",
        "--initiate", "--payload-hex", "deadbeef",
        "--signers", "1", "3",
    ])

    assert args.signers == [1, 3]
    assert args.initiate is True
    assert args.payload_hex == "deadbeef"


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_initiator_without_payload_fails(test_settings, temp_share_dir):
    path = asyncio.run(ShareStore(temp_share_dir).save(make_share(1)))

    code = main(
        [
            "sign", "sign-1",
            "--share-file", str(path),
            "--protocol", "tests.fakes:FakeSigning",
            "--verifier", "tests.fakes:fake_verifier",
            "--initiate",
        ],
        settings=test_settings,
    )

    assert code == 1


def test_invalid_hex_payload_fails(test_settings, temp_share_dir):
    path = asyncio.run(ShareStore(temp_share_dir).save(make_share(1)))

    code = main(
        [
            "sign", "sign-1",
            "--share-file", str(path),
            "--protocol", "tests.fakes:FakeSigning",
            "--verifier", "tests.fakes:fake_verifier",
            "--initiate", "--payload-hex", "xyz",
        ],
        settings=test_settings,
    )

    assert code == 1


def test_network_failure_exits_with_error(test_settings, monkeypatch):
    async def timed_out(self, threshold, total_parties):
        raise httpx.ReadTimeout("relay did not answer")

    monkeypatch.setattr(RelayClient, "initiate_keygen", timed_out)

    assert main(["initiate-keygen", "--t", "2", "--n", "3"], settings=test_settings) == 1
