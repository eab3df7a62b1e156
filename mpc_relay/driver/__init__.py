"""Client-side round drivers: one instance per party."""

from .base import (
    CancelToken,
    DriverOptions,
    DriverState,
    KeygenProtocolFactory,
    RoundFunction,
    RoundOutput,
    SignatureVerifier,
    SigningProtocolFactory,
)
from .client import RelayClient
from .keygen_driver import KeygenDriver
from .share_store import KeyShare, ShareStore
from .signing_driver import SigningDriver, SigningResult

__all__ = [
    "CancelToken",
    "DriverOptions",
    "DriverState",
    "KeygenProtocolFactory",
    "RoundFunction",
    "RoundOutput",
    "SignatureVerifier",
    "SigningProtocolFactory",
    "RelayClient",
    "KeygenDriver",
    "KeyShare",
    "ShareStore",
    "SigningDriver",
    "SigningResult",
]
