"""Parsing, validation and serialization of JSON Web Keys, Encryption and Signatures."""

__version__ = "0.1.0"

__all__ = ["b64", "errors", "header", "jwe", "jwk", "jws"]