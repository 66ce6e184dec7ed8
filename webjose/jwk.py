"""JSON Web Keys and key sets."""

from __future__ import annotations

import base64
import binascii
import copy
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from .b64 import b64url_decode, b64url_encode, bytes_to_int, int_to_bytes, to_fixed_size
from .errors import JoseError, UnsupportedKeyTypeError

_CURVES_BY_NAME = {"P-256": ec.SECP256R1, "P-384": ec.SECP384R1, "P-521": ec.SECP521R1}
_NAMES_BY_CURVE = {"secp256r1": "P-256", "secp384r1": "P-384", "secp521r1": "P-521"}

_SHA1_SIZE = 20
_SHA256_SIZE = 32

_FIELD_ORDER = (
    "use", "kty", "kid", "crv", "alg", "k", "x", "y", "n", "e",
    "d", "p", "q", "dp", "dq", "qi", "x5c", "x5u", "x5t", "x5t#S256",
)


def curve_size(curve: ec.EllipticCurve) -> int:
    """Size in bytes of a coordinate on the curve."""
    return (curve.key_size + 7) // 8


def curve_name(curve: ec.EllipticCurve) -> str:
    """JWA name of a supported curve."""
    try:
        return _NAMES_BY_CURVE[curve.name]
    except (KeyError, AttributeError):
        raise JoseError("webjose: unsupported/unknown elliptic curve") from None


def d_size(curve: ec.EllipticCurve) -> int:
    """Size in bytes of the private scalar for the curve."""
    return (curve.key_size + 7) // 8


def _curve_from_name(name: str) -> ec.EllipticCurve:
    try:
        return _CURVES_BY_NAME[name]()
    except KeyError:
        raise JoseError(f"webjose: unsupported elliptic curve '{name}'") from None


def _public_identity(key: Any) -> Any:
    if isinstance(key, ed25519.Ed25519PublicKey):
        return ("OKP", key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw))
    if isinstance(key, ec.EllipticCurvePublicKey):
        nums = key.public_numbers()
        return ("EC", key.curve.name, nums.x, nums.y)
    if isinstance(key, rsa.RSAPublicKey):
        nums = key.public_numbers()
        return ("RSA", nums.n, nums.e)
    return ("other", id(key))


def _cert_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def _check_url(text: str) -> str:
    if text.startswith(":"):
        raise JoseError(
            f'webjose: invalid JWK, x5u header is invalid URL: parse "{text}": missing protocol scheme'
        )
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in text):
        raise JoseError(
            f'webjose: invalid JWK, x5u header is invalid URL: parse "{text}": invalid control character in URL'
        )
    return text


class _RawKey:
    """Accessor for the members of a decoded JWK object."""

    def __init__(self, raw: dict) -> None:
        if not isinstance(raw, dict):
            raise JoseError("webjose: JWK must be a JSON object")
        self.raw = raw

    def text(self, name: str) -> str:
        value = self.raw.get(name)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise JoseError(f"webjose: JWK member '{name}' must be a string")
        return value

    def buf(self, name: str) -> bytes | None:
        value = self.raw.get(name)
        if value is None:
            return None
        if not isinstance(value, str):
            raise JoseError(f"webjose: JWK member '{name}' must be a string")
        return b64url_decode(value)


def _ec_public(raw: _RawKey) -> ec.EllipticCurvePublicKey:
    curve = _curve_from_name(raw.text("crv"))
    x, y = raw.buf("x"), raw.buf("y")
    if x is None or y is None:
        raise JoseError("webjose: invalid EC key, missing x/y values")
    if len(x) != curve_size(curve):
        raise JoseError("webjose: invalid EC public key, wrong length for x")
    if len(y) != curve_size(curve):
        raise JoseError("webjose: invalid EC public key, wrong length for y")
    try:
        return ec.EllipticCurvePublicNumbers(bytes_to_int(x), bytes_to_int(y), curve).public_key()
    except ValueError:
        raise JoseError("webjose: invalid EC key, X/Y are not on declared curve") from None


def _ec_private(raw: _RawKey) -> ec.EllipticCurvePrivateKey:
    curve = _curve_from_name(raw.text("crv"))
    x, y, d = raw.buf("x"), raw.buf("y"), raw.buf("d")
    if x is None or y is None or d is None:
        raise JoseError("webjose: invalid EC private key, missing x/y/d values")
    if len(x) != curve_size(curve):
        raise JoseError("webjose: invalid EC private key, wrong length for x")
    if len(y) != curve_size(curve):
        raise JoseError("webjose: invalid EC private key, wrong length for y")
    if len(d) != d_size(curve):
        raise JoseError("webjose: invalid EC private key, wrong length for d")
    public = ec.EllipticCurvePublicNumbers(bytes_to_int(x), bytes_to_int(y), curve)
    try:
        public.public_key()
    except ValueError:
        raise JoseError("webjose: invalid EC key, X/Y are not on declared curve") from None
    try:
        return ec.EllipticCurvePrivateNumbers(bytes_to_int(d), public).private_key()
    except ValueError as exc:
        raise JoseError(f"webjose: invalid EC private key: {exc}") from None


def _rsa_public(raw: _RawKey) -> rsa.RSAPublicKey:
    n, e = raw.buf("n"), raw.buf("e")
    if n is None or e is None:
        raise JoseError("webjose: invalid RSA key, missing n/e values")
    try:
        return rsa.RSAPublicNumbers(bytes_to_int(e), bytes_to_int(n)).public_key()
    except ValueError as exc:
        raise JoseError(f"webjose: invalid RSA key: {exc}") from None


def _rsa_private(raw: _RawKey) -> rsa.RSAPrivateKey:
    values = {name: raw.buf(name) for name in ("n", "e", "d", "p", "q")}
    missing = next((name.upper() for name, value in values.items() if value is None), None)
    if missing:
        raise JoseError(f"webjose: invalid RSA private key, missing {missing} value(s)")
    n, e, d, p, q = (bytes_to_int(values[name]) for name in ("n", "e", "d", "p", "q"))
    dp, dq, qi = raw.buf("dp"), raw.buf("dq"), raw.buf("qi")
    try:
        dmp1 = bytes_to_int(dp) if dp is not None else rsa.rsa_crt_dmp1(d, p)
        dmq1 = bytes_to_int(dq) if dq is not None else rsa.rsa_crt_dmq1(d, q)
        iqmp = bytes_to_int(qi) if qi is not None else rsa.rsa_crt_iqmp(p, q)
        numbers = rsa.RSAPrivateNumbers(p, q, d, dmp1, dmq1, iqmp, rsa.RSAPublicNumbers(e, n))
        return numbers.private_key()
    except (ValueError, ZeroDivisionError) as exc:
        raise JoseError(f"webjose: invalid RSA private key: {exc}") from None


def _ed_private(raw: _RawKey) -> ed25519.Ed25519PrivateKey:
    d, x = raw.buf("d"), raw.buf("x")
    if d is None:
        raise JoseError("webjose: invalid Ed25519 private key, missing D value(s)")
    if x is None:
        raise JoseError("webjose: invalid Ed25519 private key, missing X value(s)")
    try:
        return ed25519.Ed25519PrivateKey.from_private_bytes(to_fixed_size(d, 32))
    except ValueError as exc:
        raise JoseError(f"webjose: invalid Ed25519 private key: {exc}") from None


def _ed_public(raw: _RawKey) -> ed25519.Ed25519PublicKey:
    x = raw.buf("x")
    if x is None:
        raise JoseError("webjose: invalid Ed key, missing x value")
    try:
        return ed25519.Ed25519PublicKey.from_public_bytes(x)
    except ValueError as exc:
        raise JoseError(f"webjose: invalid Ed key: {exc}") from None


def _ed_raw(pub: ed25519.Ed25519PublicKey) -> bytes:
    return pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


def _decode_thumbprint(text: str, size: int, label: str) -> bytes:
    try:
        value = b64url_decode(text)
    except JoseError:
        raise JoseError(f"webjose: invalid JWK, {label} header has invalid encoding") from None
    if len(value) == 2 * size:
        try:
            value = bytes.fromhex(value.decode("ascii"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise JoseError(f"webjose: invalid JWK, unable to hex decode {label}: {exc}") from None
    if value and len(value) != size:
        raise JoseError(f"webjose: invalid JWK, {label} header is of incorrect size")
    return value


@dataclass
class JSONWebKey:
    """A public, private or symmetric key with its JWK metadata."""

    key: Any = None
    key_id: str = ""
    algorithm: str = ""
    use: str = ""
    certificates: list = field(default_factory=list)
    certificates_url: str | None = None
    certificate_thumbprint_sha1: bytes = b""
    certificate_thumbprint_sha256: bytes = b""

    def _key_members(self) -> dict:
        key = self.key
        if isinstance(key, ed25519.Ed25519PublicKey):
            return {"kty": "OKP", "crv": "Ed25519", "x": b64url_encode(_ed_raw(key))}
        if isinstance(key, ed25519.Ed25519PrivateKey):
            members = {"kty": "OKP", "crv": "Ed25519", "x": b64url_encode(_ed_raw(key.public_key()))}
            members["d"] = b64url_encode(
                key.private_bytes(
                    serialization.Encoding.Raw,
                    serialization.PrivateFormat.Raw,
                    serialization.NoEncryption(),
                )
            )
            return members
        if isinstance(key, (ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey)):
            public = key.public_key() if isinstance(key, ec.EllipticCurvePrivateKey) else key
            size = curve_size(public.curve)
            nums = public.public_numbers()
            members = {
                "kty": "EC",
                "crv": curve_name(public.curve),
                "x": b64url_encode(to_fixed_size(int_to_bytes(nums.x), size)),
                "y": b64url_encode(to_fixed_size(int_to_bytes(nums.y), size)),
            }
            if isinstance(key, ec.EllipticCurvePrivateKey):
                d = key.private_numbers().private_value
                members["d"] = b64url_encode(to_fixed_size(int_to_bytes(d), d_size(public.curve)))
            return members
        if isinstance(key, (rsa.RSAPublicKey, rsa.RSAPrivateKey)):
            public = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
            nums = public.public_numbers()
            members = {"kty": "RSA", "n": b64url_encode(int_to_bytes(nums.n)), "e": b64url_encode(int_to_bytes(nums.e))}
            if isinstance(key, rsa.RSAPrivateKey):
                priv = key.private_numbers()
                for name, value in (
                    ("d", priv.d), ("p", priv.p), ("q", priv.q),
                    ("dp", priv.dmp1), ("dq", priv.dmq1), ("qi", priv.iqmp),
                ):
                    members[name] = b64url_encode(int_to_bytes(value))
            return members
        if isinstance(key, (bytes, bytearray)):
            return {"kty": "oct", "k": b64url_encode(bytes(key))}
        raise JoseError(f"webjose: unknown key type '{type(key).__name__}'")

    def to_dict(self) -> dict:
        """JWK members of this key as a dict in canonical member order."""
        members = self._key_members()
        members["kid"] = self.key_id
        members["alg"] = self.algorithm
        members["use"] = self.use
        if self.certificates:
            members["x5c"] = [base64.b64encode(_cert_der(c)).decode("ascii") for c in self.certificates]
        sha1 = bytes(self.certificate_thumbprint_sha1 or b"")
        sha256 = bytes(self.certificate_thumbprint_sha256 or b"")
        if sha1:
            if len(sha1) != _SHA1_SIZE:
                raise JoseError(
                    f"webjose: invalid SHA-1 thumbprint (must be {_SHA1_SIZE} bytes, not {len(sha1)})"
                )
            members["x5t"] = b64url_encode(sha1)
        if sha256:
            if len(sha256) != _SHA256_SIZE:
                raise JoseError(
                    f"webjose: invalid SHA-256 thumbprint (must be {_SHA256_SIZE} bytes, not {len(sha256)})"
                )
            members["x5t#S256"] = b64url_encode(sha256)
        if self.certificates:
            leaf = _cert_der(self.certificates[0])
            if sha1 and sha1 != hashlib.sha1(leaf).digest():
                raise JoseError("webjose: invalid SHA-1 thumbprint, does not match cert chain")
            if sha256 and sha256 != hashlib.sha256(leaf).digest():
                raise JoseError("webjose: invalid SHA-256 thumbprint, does not match cert chain")
        if self.certificates_url is not None:
            members["x5u"] = self.certificates_url
        return {name: members[name] for name in _FIELD_ORDER if members.get(name, "") != ""}

    def to_json(self) -> str:
        """Compact JSON text of this key."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, raw: dict) -> "JSONWebKey":
        """Build a key from decoded JWK members, validating them."""
        rk = _RawKey(raw)
        x5c = raw.get("x5c") or []
        if not isinstance(x5c, list):
            raise JoseError("webjose: failed to unmarshal x5c field: not a list")
        certs = []
        for entry in x5c:
            try:
                certs.append(x509.load_der_x509_certificate(base64.b64decode(entry, validate=True)))
            except (ValueError, TypeError, binascii.Error) as exc:
                raise JoseError(f"webjose: failed to unmarshal x5c field: {exc}") from None
        cert_pub = certs[0].public_key() if certs else None

        kty = rk.text("kty")
        key_pub: Any = None
        if kty == "EC":
            if rk.buf("d") is not None:
                key = _ec_private(rk)
                key_pub = key.public_key()
            else:
                key = key_pub = _ec_public(rk)
        elif kty == "RSA":
            if rk.buf("d") is not None:
                key = _rsa_private(rk)
                key_pub = key.public_key()
            else:
                key = key_pub = _rsa_public(rk)
        elif kty == "oct":
            if cert_pub is not None:
                raise JoseError("webjose: invalid JWK, found 'oct' (symmetric) key with cert chain")
            k = rk.buf("k")
            if k is None:
                raise JoseError("webjose: invalid OCT (symmetric) key, missing k value")
            key = k
        elif kty == "OKP":
            if rk.text("crv") == "Ed25519" and rk.buf("x") is not None:
                if rk.buf("d") is not None:
                    key = _ed_private(rk)
                    key_pub = key.public_key()
                else:
                    key = key_pub = _ed_public(rk)
            else:
                raise JoseError(f"webjose: unknown curve {rk.text('crv')}'")
        else:
            raise JoseError(f"webjose: unknown json web key type '{kty}'")

        if cert_pub is not None and key_pub is not None:
            if _public_identity(cert_pub) != _public_identity(key_pub):
                raise JoseError("webjose: invalid JWK, public keys in key and x5c fields do not match")

        x5u = rk.text("x5u")
        jwk = cls(
            key=key,
            key_id=rk.text("kid"),
            algorithm=rk.text("alg"),
            use=rk.text("use"),
            certificates=certs,
            certificates_url=_check_url(x5u) if x5u else None,
            certificate_thumbprint_sha1=_decode_thumbprint(rk.text("x5t"), _SHA1_SIZE, "x5t"),
            certificate_thumbprint_sha256=_decode_thumbprint(rk.text("x5t#S256"), _SHA256_SIZE, "x5t#S256"),
        )
        if certs:
            leaf = _cert_der(certs[0])
            if jwk.certificate_thumbprint_sha1 and jwk.certificate_thumbprint_sha1 != hashlib.sha1(leaf).digest():
                raise JoseError("webjose: invalid JWK, x5c thumbprint does not match x5t value")
            if jwk.certificate_thumbprint_sha256 and jwk.certificate_thumbprint_sha256 != hashlib.sha256(leaf).digest():
                raise JoseError("webjose: invalid JWK, x5c thumbprint does not match x5t#S256 value")
        return jwk

    @classmethod
    def from_json(cls, data: str | bytes) -> "JSONWebKey":
        """Parse a key from JWK JSON text."""
        try:
            raw = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise JoseError(f"webjose: invalid JSON: {exc}") from None
        return cls.from_dict(raw)

    def thumbprint(self, hash_name: str = "sha256") -> bytes:
        """RFC 7638 thumbprint of the key under the named hash."""
        key = self.key
        if isinstance(key, ed25519.Ed25519PrivateKey):
            key = key.public_key()
        if isinstance(key, ed25519.Ed25519PublicKey):
            text = '{"crv":"Ed25519","kty":"OKP","x":"%s"}' % b64url_encode(_ed_raw(key))
        elif isinstance(key, (ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey)):
            public = key.public_key() if isinstance(key, ec.EllipticCurvePrivateKey) else key
            size = curve_size(public.curve)
            nums = public.public_numbers()
            text = '{"crv":"%s","kty":"EC","x":"%s","y":"%s"}' % (
                curve_name(public.curve),
                b64url_encode(to_fixed_size(int_to_bytes(nums.x), size)),
                b64url_encode(to_fixed_size(int_to_bytes(nums.y), size)),
            )
        elif isinstance(key, (rsa.RSAPublicKey, rsa.RSAPrivateKey)):
            public = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
            nums = public.public_numbers()
            text = '{"e":"%s","kty":"RSA","n":"%s"}' % (
                b64url_encode(int_to_bytes(nums.e)),
                b64url_encode(int_to_bytes(nums.n)),
            )
        elif callable(getattr(key, "public", None)) and not isinstance(key, (bytes, bytearray)):
            return key.public().thumbprint(hash_name)
        else:
            raise JoseError(f"webjose: unknown key type '{type(key).__name__}'")
        return hashlib.new(hash_name, text.encode("ascii")).digest()

    def is_public(self) -> bool:
        """True when the key is an asymmetric public key."""
        return isinstance(
            self.key, (ec.EllipticCurvePublicKey, rsa.RSAPublicKey, ed25519.Ed25519PublicKey)
        )

    def public(self) -> "JSONWebKey":
        """A copy holding the public half; an empty key if there is none."""
        if self.is_public():
            return copy.copy(self)
        if isinstance(
            self.key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey, ed25519.Ed25519PrivateKey)
        ):
            result = copy.copy(self)
            result.key = self.key.public_key()
            return result
        return JSONWebKey()

    def valid(self) -> bool:
        """True when the key is a usable asymmetric key."""
        return isinstance(
            self.key,
            (
                ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey,
                rsa.RSAPublicKey, rsa.RSAPrivateKey,
                ed25519.Ed25519PublicKey, ed25519.Ed25519PrivateKey,
            ),
        )


@dataclass
class JSONWebKeySet:
    """A JWK Set."""

    keys: list = field(default_factory=list)

    def key(self, kid: str) -> list:
        """All keys carrying the given key ID."""
        return [k for k in self.keys if k.key_id == kid]

    def to_json(self) -> str:
        """Compact JSON text of the set."""
        return json.dumps({"keys": [k.to_dict() for k in self.keys]}, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> "JSONWebKeySet":
        """Parse a set from JSON text."""
        try:
            raw = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise JoseError(f"webjose: invalid JSON: {exc}") from None
        if not isinstance(raw, dict):
            raise JoseError("webjose: JWK Set must be a JSON object")
        return cls([JSONWebKey.from_dict(item) for item in raw.get("keys") or []])


__all__ = [
    "JSONWebKey", "JSONWebKeySet", "curve_size", "curve_name", "d_size", "UnsupportedKeyTypeError",
]