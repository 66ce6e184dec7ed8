"""Unpadded base64url coding and big-endian integer helpers."""

from __future__ import annotations

import base64
import re

from .errors import JoseError

_URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(bytes(data)).rstrip(b"=").decode("ascii")


def b64url_decode(text: str | bytes) -> bytes:
    """Decode unpadded base64url text, raising JoseError on malformed input."""
    if isinstance(text, bytes):
        try:
            text = text.decode("ascii")
        except UnicodeDecodeError as exc:
            raise JoseError("webjose: illegal base64 data") from exc
    text = text.replace("\r", "").replace("\n", "")
    if not _URL_ALPHABET.fullmatch(text) or len(text) % 4 == 1:
        raise JoseError(f"webjose: illegal base64url data: {text!r}")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def to_fixed_size(data: bytes, length: int) -> bytes:
    """Left-pad data with zero bytes to exactly length bytes."""
    if len(data) > length:
        raise JoseError("webjose: value too large for fixed size buffer")
    return bytes(length - len(data)) + bytes(data)


def int_to_bytes(value: int) -> bytes:
    """Minimal big-endian encoding of a non-negative integer (zero is empty)."""
    if value < 0:
        raise JoseError("webjose: negative integer cannot be encoded")
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def bytes_to_int(data: bytes) -> int:
    """Interpret bytes as a big-endian unsigned integer."""
    return int.from_bytes(data, "big")