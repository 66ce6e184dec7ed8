# webjose

Parse, validate and serialize JOSE objects:

- **JSON Web Keys** (RFC 7517): RSA, EC (P-256, P-384, P-521), Ed25519 and
  symmetric (`oct`) keys, key sets, X.509 certificate chains (`x5c`),
  certificate URLs (`x5u`) and thumbprints (`x5t`, `x5t#S256`), and JWK
  thumbprints (RFC 7638).
- **JSON Web Encryption** (RFC 7516) in compact and JSON serialization.
- **JSON Web Signature** (RFC 7515) in compact, JSON and detached-payload
  serialization.

Keys are held as objects from the `cryptography` library
(`RSAPublicKey`, `EllipticCurvePrivateKey`, `Ed25519PublicKey`, ...) or as
`bytes` for symmetric keys.

## Installation

```
pip install webjose
```

## Keys

```python
from cryptography.hazmat.primitives.asymmetric import ec
from webjose.jwk import JSONWebKey, JSONWebKeySet

symmetric = JSONWebKey.from_json('{"kty":"oct","alg":"A128KW","k":"secret"}')
print(symmetric.algorithm)     # "A128KW"
print(symmetric.key)           # the raw key bytes
print(symmetric.to_json())

signing = JSONWebKey(key=ec.generate_private_key(ec.SECP256R1()), key_id="k1", use="sig")
print(signing.valid(), signing.is_public())   # True False
public = signing.public()                     # copy holding the public half
digest = public.thumbprint("sha256")          # RFC 7638 thumbprint
text = public.to_json()

key_set = JSONWebKeySet.from_json('{"keys": [%s]}' % text)
matches = key_set.key("k1")                   # every key with that kid
```

`JSONWebKey.from_dict` and `to_dict` work with already-decoded JSON objects.
Parsing checks coordinate and scalar lengths, that EC points lie on their
curve, that RSA private keys are consistent, that a certificate chain's leaf
key matches the JWK's key, and that thumbprints have the right size and match
the leaf certificate.

`thumbprint` works for RSA, EC and Ed25519 keys (private keys use their
public half); symmetric keys raise an error. The helpers `curve_size`,
`curve_name` and `d_size` give coordinate sizes and JWA names for the
supported curves.

## Encrypted messages

```python
from webjose.jwe import parse_encrypted

obj = parse_encrypted(token, ["RSA-OAEP"], ["A128GCM"])
print(obj.header.algorithm)
print(obj.compact_serialize())
print(obj.full_serialize())
```

Both lists of accepted algorithms must be non-empty; every `alg` and `enc`
found in the protected, shared unprotected and per-recipient headers must be
among them, and every recipient must end up with both. A `nonce` in any
unprotected header is rejected with `UnprotectedNonceError`.
`parse_encrypted_compact` and `parse_encrypted_json` take one serialization
only. `compute_auth_data` gives the additional authenticated data input and
`auth_data` a copy of the optional `aad` value.

## Signed messages

```python
from webjose.jws import parse_signed, parse_detached

obj = parse_signed(token, ["RS256", "ES256"])
for signature in obj.signatures:
    print(signature.protected.algorithm, signature.unprotected.extra_headers)

detached = obj.detached_compact_serialize()
again = parse_detached(detached, obj.payload, ["RS256", "ES256"])
print(again.compact_serialize())
```

Each signature's `alg` must be among the accepted algorithms, and embedded
`jwk` headers must hold valid public keys. `compute_auth_data` gives the
signing input for a payload and signature, honouring the `b64` header.
Objects that cannot be written in compact form (several signatures or
recipients, unprotected headers, no protected header) raise
`NotSupportedError` from `compact_serialize`.

## Other modules

- `webjose.header`: `RawHeader` (header parameters as decoded, with
  `merge`, `sanitized`, `to_json`, `from_json`), the sanitized `Header`,
  `strip_whitespace` and `validate_alg_enc`.
- `webjose.b64`: unpadded base64url coding (`b64url_encode`,
  `b64url_decode`) and big-endian helpers (`to_fixed_size`,
  `int_to_bytes`, `bytes_to_int`).
- `webjose.errors`: `JoseError` (a `ValueError`) and its subclasses
  `UnsupportedKeyTypeError`, `NotSupportedError`, `UnprotectedNonceError`
  and `KidNotFoundError`.

## What it does not do

This package handles the structure of JOSE objects only. It does not
encrypt or decrypt JWE content, does not sign payloads or verify
signatures, and does not validate certificate chains against trusted roots.
It has no command-line interface.

## Running the tests

```
pip install -e ".[test]"
pytest
```