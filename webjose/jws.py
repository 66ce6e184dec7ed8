"""Parsing and serialization of JWS objects."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable

from .b64 import b64url_decode, b64url_encode
from .errors import JoseError, NotSupportedError, UnprotectedNonceError
from .header import Header, RawHeader, strip_whitespace


@dataclass
class _RawSignatureInfo:
    protected: bytes | None = None
    header: RawHeader | None = None
    signature: bytes | None = None


@dataclass
class _RawSignature:
    payload: bytes | None = None
    signatures: list = field(default_factory=list)
    protected: bytes | None = None
    header: RawHeader | None = None
    signature: bytes | None = None


def _json_header(raw: dict, name: str) -> RawHeader | None:
    value = raw.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise JoseError(f"webjose: '{name}' must be a JSON object")
    return RawHeader(value)


def _json_bytes(raw: dict, name: str, keep_empty: bool = False) -> bytes | None:
    value = raw.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise JoseError(f"webjose: '{name}' must be a string")
    if value == "":
        return b"" if keep_empty else None
    return b64url_decode(value.rstrip("="))


def _raw_from_dict(raw: dict) -> _RawSignature:
    entries = raw.get("signatures") or []
    if not isinstance(entries, list):
        raise JoseError("webjose: 'signatures' must be a JSON array")
    signatures = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise JoseError("webjose: signature entry must be a JSON object")
        signatures.append(
            _RawSignatureInfo(
                protected=_json_bytes(entry, "protected", keep_empty=True),
                header=_json_header(entry, "header"),
                signature=_json_bytes(entry, "signature"),
            )
        )
    return _RawSignature(
        payload=_json_bytes(raw, "payload", keep_empty=True),
        signatures=signatures,
        protected=_json_bytes(raw, "protected", keep_empty=True),
        header=_json_header(raw, "header"),
        signature=_json_bytes(raw, "signature"),
    )


def _load_header(data: bytes) -> RawHeader:
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise JoseError(f"webjose: invalid protected header: {exc}") from None
    if value is None:
        return RawHeader()
    if not isinstance(value, dict):
        raise JoseError("webjose: protected header must be a JSON object")
    return RawHeader(value)


def _quoted(values: Iterable) -> str:
    return "[" + " ".join(json.dumps(str(v)) for v in values) + "]"


@dataclass
class Signature:
    """One signature over the payload, with its headers."""

    header: Header = field(default_factory=Header)
    protected: Header = field(default_factory=Header)
    unprotected: Header = field(default_factory=Header)
    signature: bytes | None = None
    raw_protected: RawHeader | None = None
    raw_header: RawHeader | None = None
    original: _RawSignatureInfo | None = None

    def merged_headers(self) -> RawHeader:
        """Protected then unprotected header parameters, protected taking precedence."""
        out = RawHeader()
        out.merge(self.raw_protected)
        out.merge(self.raw_header)
        return out


@dataclass
class JSONWebSignature:
    """A signed JWS object after parsing."""

    payload: bytes | None = None
    signatures: list = field(default_factory=list)

    def compute_auth_data(self, payload: bytes, signature: Signature) -> bytes:
        """The signing input for the given payload and signature."""
        protected_header = RawHeader()
        prefix = ""
        if signature.original is not None and signature.original.protected is not None:
            protected_header = _load_header(signature.original.protected)
            prefix = b64url_encode(signature.original.protected)
        elif signature.raw_protected is not None:
            protected_header = signature.raw_protected
            prefix = b64url_encode(protected_header.to_json().encode("utf-8"))

        try:
            needs_base64 = protected_header.b64
        except JoseError:
            needs_base64 = True

        payload = bytes(payload or b"")
        body = b64url_encode(payload).encode("ascii") if needs_base64 else payload
        return prefix.encode("ascii") + b"." + body

    def _compact_serialize(self, detached: bool) -> str:
        if (
            len(self.signatures) != 1
            or self.signatures[0].raw_header is not None
            or self.signatures[0].raw_protected is None
        ):
            raise NotSupportedError()
        only = self.signatures[0]
        parts = (
            only.raw_protected.to_json().encode("utf-8"),
            None if detached else self.payload,
            only.signature,
        )
        return ".".join(b64url_encode(part or b"") for part in parts)

    def compact_serialize(self) -> str:
        """Serialize in JWS Compact Serialization."""
        return self._compact_serialize(False)

    def detached_compact_serialize(self) -> str:
        """Serialize in compact form with the payload left out."""
        return self._compact_serialize(True)

    def full_serialize(self) -> str:
        """Serialize in JWS JSON Serialization (flattened for one signature)."""
        raw: dict = {}
        if self.payload is not None:
            raw["payload"] = b64url_encode(self.payload)
        if len(self.signatures) == 1:
            only = self.signatures[0]
            if only.raw_protected is not None:
                raw["protected"] = b64url_encode(only.raw_protected.to_json().encode("utf-8"))
            if only.raw_header is not None:
                raw["header"] = dict(sorted(only.raw_header.items()))
            if only.signature is not None:
                raw["signature"] = b64url_encode(only.signature)
        elif self.signatures:
            entries = []
            for sig in self.signatures:
                entry: dict = {}
                if sig.raw_protected is not None:
                    entry["protected"] = b64url_encode(sig.raw_protected.to_json().encode("utf-8"))
                if sig.raw_header is not None:
                    entry["header"] = dict(sorted(sig.raw_header.items()))
                if sig.signature is not None:
                    entry["signature"] = b64url_encode(sig.signature)
                entries.append(entry)
            raw["signatures"] = entries
        return json.dumps(raw, separators=(",", ":"), ensure_ascii=False)


def _check_algorithm(header: Header, algorithms: list) -> None:
    if header.algorithm not in algorithms:
        raise JoseError(
            f"webjose: unexpected signature algorithm {json.dumps(header.algorithm)}; "
            f"expected {_quoted(algorithms)}"
        )


def _check_embedded_jwk(header: Header) -> None:
    jwk = header.json_web_key
    if jwk is not None and (not jwk.valid() or not jwk.is_public()):
        raise JoseError("webjose: invalid embedded jwk, must be public key")


def _sanitize(parsed: _RawSignature, signature_algorithms) -> JSONWebSignature:
    algorithms = list(signature_algorithms or ())
    if not algorithms:
        raise JoseError("webjose: no signature algorithms specified")
    if parsed.payload is None:
        raise JoseError("webjose: missing payload in JWS message")

    obj = JSONWebSignature(payload=parsed.payload)

    if not parsed.signatures:
        sig = Signature()
        if parsed.protected:
            sig.raw_protected = _load_header(parsed.protected)
        if parsed.header is not None and parsed.header.nonce:
            raise UnprotectedNonceError()
        sig.raw_header = parsed.header
        sig.signature = parsed.signature
        # Keep the original protected bytes so the signing input is reproduced exactly.
        sig.original = _RawSignatureInfo(parsed.protected, parsed.header, parsed.signature)
        sig.header = sig.merged_headers().sanitized()
        _check_algorithm(sig.header, algorithms)
        if sig.raw_header is not None:
            sig.unprotected = sig.raw_header.sanitized()
        if sig.raw_protected is not None:
            sig.protected = sig.raw_protected.sanitized()
        _check_embedded_jwk(sig.header)
        obj.signatures.append(sig)

    for entry in parsed.signatures:
        sig = Signature()
        if entry.protected:
            sig.raw_protected = _load_header(entry.protected)
        if entry.header is not None and entry.header.nonce:
            raise UnprotectedNonceError()
        # The per-signature unprotected header is attached only after validation.
        sig.header = sig.merged_headers().sanitized()
        _check_algorithm(sig.header, algorithms)
        if sig.raw_protected is not None:
            sig.protected = sig.raw_protected.sanitized()
        sig.signature = entry.signature
        _check_embedded_jwk(sig.header)
        sig.raw_header = entry.header
        sig.original = _RawSignatureInfo(entry.protected, entry.header, entry.signature)
        obj.signatures.append(sig)

    return obj


def _parse_compact(text: str, payload: bytes | None, signature_algorithms) -> JSONWebSignature:
    parts = text.split(".")
    if len(parts) != 3:
        raise JoseError("webjose: compact JWS format must have three parts")
    if parts[1] != "" and payload is not None:
        raise JoseError("webjose: payload is not detached")
    protected = b64url_decode(parts[0])
    if payload is None:
        payload = b64url_decode(parts[1])
    signature = b64url_decode(parts[2])
    raw = _RawSignature(payload=bytes(payload), protected=protected, signature=signature)
    return _sanitize(raw, signature_algorithms)


def parse_signed(signature: str, signature_algorithms) -> JSONWebSignature:
    """Parse a JWS in compact or JSON serialization."""
    signature = strip_whitespace(signature)
    if signature.startswith("{"):
        return parse_signed_json(signature, signature_algorithms)
    return _parse_compact(signature, None, signature_algorithms)


def parse_signed_compact(signature: str, signature_algorithms) -> JSONWebSignature:
    """Parse a JWS in compact serialization."""
    return _parse_compact(signature, None, signature_algorithms)


def parse_signed_json(text: str, signature_algorithms) -> JSONWebSignature:
    """Parse a JWS in JSON serialization."""
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise JoseError(f"webjose: invalid JSON: {exc}") from None
    if not isinstance(raw, dict):
        raise JoseError("webjose: JWS JSON serialization must be an object")
    return _sanitize(_raw_from_dict(raw), signature_algorithms)


def parse_detached(signature: str, payload: bytes | None, signature_algorithms) -> JSONWebSignature:
    """Parse a compact JWS whose payload is supplied separately."""
    if payload is None:
        raise JoseError("webjose: nil payload")
    return _parse_compact(strip_whitespace(signature), bytes(payload), signature_algorithms)


__all__ = [
    "JSONWebSignature",
    "Signature",
    "parse_detached",
    "parse_signed",
    "parse_signed_compact",
    "parse_signed_json",
]