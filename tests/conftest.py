"""Shared pytest fixtures for all tests."""

import shutil
import uuid
from pathlib import Path

import pytest

from mpc_relay.api.config import Settings
from mpc_relay.api.main import create_app
from mpc_relay.api.services.message_relay import MessageRelay
from mpc_relay.api.services.session_store import SessionKind, SessionStore
from mpc_relay.api.services.transaction_stage import TransactionStage
from mpc_relay.driver import DriverOptions
from tests.fakes import FakeDkg, FakeSigning, fake_verifier


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_share_dir():
    """Create temporary directory for key share files."""
    temp_dir = _create_workspace_temp_dir("shares")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_settings(tmp_path):
    """Settings with fast polling and logs kept out of the repository."""
    return Settings(
        _env_file=None,
        log_dir=tmp_path / "logs",
        share_dir=tmp_path / "shares",
        quorum_poll_interval=0.01,
        round_poll_interval=0.01,
        transaction_poll_interval=0.01,
        driver_timeout_seconds=10.0,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def keygen_store():
    return SessionStore(SessionKind.KEYGEN)


@pytest.fixture
def signing_store():
    return SessionStore(SessionKind.SIGNING)


@pytest.fixture
def keygen_relay(keygen_store):
    return MessageRelay(keygen_store)


@pytest.fixture
def signing_relay(signing_store):
    return MessageRelay(signing_store)


@pytest.fixture
def transaction_stage(signing_store):
    return TransactionStage(signing_store)


@pytest.fixture
def fast_options():
    return DriverOptions(
        quorum_poll_interval=0.01,
        round_poll_interval=0.01,
        transaction_poll_interval=0.01,
        timeout_seconds=10.0,
    )


@pytest.fixture
def dkg_factory():
    return FakeDkg


@pytest.fixture
def signing_factory():
    return FakeSigning


@pytest.fixture
def verifier():
    return fake_verifier
