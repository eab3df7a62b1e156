"""Base64 helpers for opaque protocol payloads."""

import base64
import binascii

from .errors import DecodeError


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_bytes(text: str) -> bytes:
    """Strictly decode standard base64, raising DecodeError on bad input."""
    if not isinstance(text, str):
        raise DecodeError(f"Expected base64 string, got {type(text).__name__}")
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise DecodeError(f"Invalid base64 content: {e}") from e
