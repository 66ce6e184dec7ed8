"""Parsing and serialization of JWE objects."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from .b64 import b64url_decode, b64url_encode
from .errors import JoseError, NotSupportedError, UnprotectedNonceError
from .header import Header, RawHeader, strip_whitespace, validate_alg_enc


@dataclass
class RecipientInfo:
    """Per-recipient header and encrypted key."""

    header: RawHeader | None = None
    encrypted_key: bytes | None = None


@dataclass
class _RawRecipient:
    header: RawHeader | None
    encrypted_key: str


@dataclass
class _RawEncryption:
    protected: bytes | None = None
    unprotected: RawHeader | None = None
    header: RawHeader | None = None
    recipients: list = field(default_factory=list)
    aad: bytes | None = None
    encrypted_key: bytes | None = None
    iv: bytes | None = None
    ciphertext: bytes | None = None
    tag: bytes | None = None


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


def _raw_from_dict(raw: dict) -> _RawEncryption:
    recipients = []
    for entry in raw.get("recipients") or []:
        if not isinstance(entry, dict):
            raise JoseError("webjose: recipient must be a JSON object")
        key = entry.get("encrypted_key")
        if key is None:
            key = ""
        if not isinstance(key, str):
            raise JoseError("webjose: recipient 'encrypted_key' must be a string")
        recipients.append(_RawRecipient(_json_header(entry, "header"), key))
    return _RawEncryption(
        protected=_json_bytes(raw, "protected", keep_empty=True),
        unprotected=_json_header(raw, "unprotected"),
        header=_json_header(raw, "header"),
        recipients=recipients,
        aad=_json_bytes(raw, "aad"),
        encrypted_key=_json_bytes(raw, "encrypted_key"),
        iv=_json_bytes(raw, "iv"),
        ciphertext=_json_bytes(raw, "ciphertext"),
        tag=_json_bytes(raw, "tag"),
    )


def _load_protected(data: bytes) -> RawHeader | None:
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise JoseError(
            f"webjose: invalid protected header: {exc}, {b64url_encode(data)}"
        ) from None
    if value is None:
        return None
    if not isinstance(value, dict):
        raise JoseError(
            f"webjose: invalid protected header: not a JSON object, {b64url_encode(data)}"
        )
    return RawHeader(value)


def _sorted_header(header: RawHeader) -> dict:
    return dict(sorted(header.items()))


@dataclass
class JSONWebEncryption:
    """An encrypted JWE object after parsing."""

    header: Header = field(default_factory=Header)
    protected: RawHeader | None = None
    unprotected: RawHeader | None = None
    recipients: list = field(default_factory=list)
    aad: bytes | None = None
    iv: bytes | None = None
    ciphertext: bytes | None = None
    tag: bytes | None = None
    original: _RawEncryption | None = None

    def auth_data(self) -> bytes | None:
        """A copy of the optional additional authenticated data."""
        return bytes(self.aad) if self.aad is not None else None

    def merged_headers(self, recipient: RecipientInfo | None) -> RawHeader:
        """Protected, shared unprotected and recipient headers merged in that order."""
        out = RawHeader()
        out.merge(self.protected)
        out.merge(self.unprotected)
        if recipient is not None:
            out.merge(recipient.header)
        return out

    def compute_auth_data(self) -> bytes:
        """The additional authenticated data input for content encryption."""
        if self.original is not None and self.original.protected is not None:
            protected = b64url_encode(self.original.protected)
        elif self.protected is not None:
            protected = b64url_encode(self.protected.to_json().encode("utf-8"))
        else:
            protected = ""
        output = protected.encode("ascii")
        if self.aad is not None:
            output += b"." + b64url_encode(self.aad).encode("ascii")
        return output

    def compact_serialize(self) -> str:
        """Serialize in JWE Compact Serialization."""
        if (
            len(self.recipients) != 1
            or self.unprotected is not None
            or self.protected is None
            or self.recipients[0].header is not None
        ):
            raise NotSupportedError()
        parts = (
            self.protected.to_json().encode("utf-8"),
            self.recipients[0].encrypted_key,
            self.iv,
            self.ciphertext,
            self.tag,
        )
        return ".".join(b64url_encode(part or b"") for part in parts)

    def full_serialize(self) -> str:
        """Serialize in JWE JSON Serialization (flattened for one recipient)."""
        if not self.recipients:
            raise NotSupportedError("webjose: no recipients to serialize")
        first = self.recipients[0]
        raw: dict = {}
        if self.protected is not None:
            raw["protected"] = b64url_encode(self.protected.to_json().encode("utf-8"))
        if self.unprotected is not None:
            raw["unprotected"] = _sorted_header(self.unprotected)
        if len(self.recipients) > 1:
            entries = []
            for recipient in self.recipients:
                entry: dict = {}
                if recipient.header is not None:
                    entry["header"] = _sorted_header(recipient.header)
                if recipient.encrypted_key:
                    entry["encrypted_key"] = b64url_encode(recipient.encrypted_key)
                entries.append(entry)
            raw["recipients"] = entries
        elif first.header is not None:
            raw["header"] = _sorted_header(first.header)
        for name, value in (
            ("aad", self.aad),
            ("encrypted_key", first.encrypted_key),
            ("iv", self.iv),
            ("ciphertext", self.ciphertext),
            ("tag", self.tag),
        ):
            if value is not None:
                raw[name] = b64url_encode(value)
        ordered = {
            name: raw[name]
            for name in (
                "protected", "unprotected", "header", "recipients",
                "aad", "encrypted_key", "iv", "ciphertext", "tag",
            )
            if name in raw
        }
        return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


def _sanitize(parsed: _RawEncryption, key_algorithms, content_encryption) -> JSONWebEncryption:
    key_algorithms = list(key_algorithms or ())
    content_encryption = list(content_encryption or ())
    if not key_algorithms:
        raise JoseError("webjose: no key algorithms provided")
    if not content_encryption:
        raise JoseError("webjose: no content encryption algorithms provided")

    for unprotected in (parsed.unprotected, parsed.header):
        if unprotected is not None and unprotected.nonce:
            raise UnprotectedNonceError()

    obj = JSONWebEncryption(unprotected=parsed.unprotected, original=parsed)
    if parsed.protected:
        obj.protected = _load_protected(parsed.protected)

    merged = obj.merged_headers(None)
    try:
        obj.header = merged.sanitized()
    except JoseError as exc:
        raise JoseError(
            f"webjose: cannot sanitize merged headers: {exc} ({dict(merged)})"
        ) from None

    if not parsed.recipients:
        obj.recipients = [RecipientInfo(parsed.header, parsed.encrypted_key)]
    else:
        for entry in parsed.recipients:
            encrypted_key = b64url_decode(entry.encrypted_key)
            if entry.header is not None and entry.header.nonce:
                raise UnprotectedNonceError()
            obj.recipients.append(RecipientInfo(entry.header, encrypted_key))

    for index, recipient in enumerate(obj.recipients):
        headers = obj.merged_headers(recipient)
        if not headers.algorithm:
            raise JoseError(f'webjose: recipient {index}: missing header "alg"')
        if not headers.encryption:
            raise JoseError(f'webjose: recipient {index}: missing header "enc"')
        try:
            validate_alg_enc(headers, key_algorithms, content_encryption)
        except JoseError as exc:
            raise JoseError(f"webjose: recipient {index}: {exc}") from None

    for label, header in (("protected", obj.protected), ("unprotected", obj.unprotected)):
        if header is None:
            continue
        try:
            validate_alg_enc(header, key_algorithms, content_encryption)
        except JoseError as exc:
            raise JoseError(f"webjose: {label} header: {exc}") from None

    obj.iv = parsed.iv
    obj.ciphertext = parsed.ciphertext
    obj.tag = parsed.tag
    obj.aad = parsed.aad
    return obj


def parse_encrypted(text: str, key_algorithms, content_encryption) -> JSONWebEncryption:
    """Parse a JWE in compact or JSON serialization."""
    text = strip_whitespace(text)
    if text.startswith("{"):
        return parse_encrypted_json(text, key_algorithms, content_encryption)
    return parse_encrypted_compact(text, key_algorithms, content_encryption)


def parse_encrypted_json(text: str, key_algorithms, content_encryption) -> JSONWebEncryption:
    """Parse a JWE in JSON serialization."""
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise JoseError(f"webjose: invalid JSON: {exc}") from None
    if not isinstance(raw, dict):
        raise JoseError("webjose: JWE JSON serialization must be an object")
    return _sanitize(_raw_from_dict(raw), key_algorithms, content_encryption)


def parse_encrypted_compact(text: str, key_algorithms, content_encryption) -> JSONWebEncryption:
    """Parse a JWE in compact serialization."""
    parts = text.split(".")
    if len(parts) != 5:
        raise JoseError("webjose: compact JWE format must have five parts")
    protected, encrypted_key, iv, ciphertext, tag = (b64url_decode(part) for part in parts)
    raw = _RawEncryption(
        protected=protected,
        encrypted_key=encrypted_key,
        iv=iv,
        ciphertext=ciphertext,
        tag=tag,
    )
    return _sanitize(raw, key_algorithms, content_encryption)


__all__ = [
    "JSONWebEncryption",
    "RecipientInfo",
    "parse_encrypted",
    "parse_encrypted_compact",
    "parse_encrypted_json",
]