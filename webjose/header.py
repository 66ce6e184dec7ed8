"""JOSE header handling: raw header maps and their sanitized form."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from cryptography import x509

from .errors import JoseError
from .jwk import JSONWebKey

_WHITESPACE = re.compile(r"[\t\n\f\r ]")


def strip_whitespace(text: str) -> str:
    """Remove every space, tab, newline, carriage return and form feed."""
    return _WHITESPACE.sub("", text)


def _parse_certificate_chain(value: Any) -> list:
    if not isinstance(value, list):
        raise JoseError("webjose: failed to unmarshal x5c header: not a list")
    certificates = []
    for entry in value:
        try:
            der = base64.b64decode(entry, validate=True)
            certificates.append(x509.load_der_x509_certificate(der))
        except (ValueError, TypeError, binascii.Error) as exc:
            raise JoseError(f"webjose: failed to unmarshal x5c header: {exc}") from None
    return certificates


@dataclass
class Header:
    """Sanitized header values of a JWE or JWS object."""

    key_id: str = ""
    json_web_key: JSONWebKey | None = None
    algorithm: str = ""
    nonce: str = ""
    certificates: list = field(default_factory=list)
    extra_headers: dict = field(default_factory=dict)


class RawHeader(dict):
    """Header parameters exactly as decoded from JSON."""

    def _is_set(self, name: str) -> bool:
        return self.get(name) is not None

    def _string(self, name: str) -> str:
        value = self.get(name)
        return value if isinstance(value, str) else ""

    @property
    def algorithm(self) -> str:
        """The "alg" parameter, or an empty string."""
        return self._string("alg")

    @property
    def encryption(self) -> str:
        """The "enc" parameter, or an empty string."""
        return self._string("enc")

    @property
    def nonce(self) -> str:
        """The "nonce" parameter, or an empty string."""
        return self._string("nonce")

    @property
    def b64(self) -> bool:
        """The "b64" parameter; True when absent, JoseError when not a boolean."""
        value = self.get("b64")
        if value is None:
            return True
        if not isinstance(value, bool):
            raise JoseError(f"webjose: invalid b64 header value: {value!r}")
        return value

    def merge(self, other: "RawHeader | None") -> None:
        """Copy parameters from other that are not already set here."""
        if other is None:
            return
        for name, value in other.items():
            if self._is_set(name):
                continue
            self[name] = value

    def sanitized(self) -> Header:
        """Convert into a Header, validating the registered parameters."""
        header = Header()
        for name, value in self.items():
            if value is None:
                continue
            if name == "jwk":
                try:
                    header.json_web_key = JSONWebKey.from_dict(value)
                except JoseError as exc:
                    raise JoseError(f"webjose: failed to unmarshal JWK: {exc}") from None
            elif name in ("kid", "alg", "nonce"):
                if not isinstance(value, str):
                    raise JoseError(f"webjose: failed to unmarshal {name} header: {value!r}")
                if name == "kid":
                    header.key_id = value
                elif name == "alg":
                    header.algorithm = value
                else:
                    header.nonce = value
            elif name == "x5c":
                header.certificates = _parse_certificate_chain(value)
            else:
                header.extra_headers[name] = value
        return header

    def to_json(self) -> str:
        """Compact JSON text with parameters in sorted order."""
        return json.dumps(dict(self), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str | bytes) -> "RawHeader":
        """Parse a header from JSON text holding an object."""
        try:
            value = json.loads(data)
        except ValueError as exc:
            raise JoseError(f"webjose: invalid header JSON: {exc}") from None
        if not isinstance(value, dict):
            raise JoseError("webjose: header must be a JSON object")
        return cls(value)


def _quoted(values: Iterable[Any]) -> str:
    return "[" + " ".join(json.dumps(str(v)) for v in values) + "]"


def validate_alg_enc(headers: RawHeader, key_algorithms, content_encryption) -> None:
    """Raise JoseError when "alg" or "enc" is not among the accepted values."""
    key_algorithms = list(key_algorithms)
    content_encryption = list(content_encryption)
    alg = headers.algorithm
    enc = headers.encryption
    if alg and alg not in key_algorithms:
        raise JoseError(
            f"unexpected key algorithm {json.dumps(alg)}; expected {_quoted(key_algorithms)}"
        )
    if alg and enc not in content_encryption:
        raise JoseError(
            f"unexpected content encryption algorithm {json.dumps(enc)}; "
            f"expected {_quoted(content_encryption)}"
        )


__all__ = ["Header", "RawHeader", "strip_whitespace", "validate_alg_enc"]