"""Exception types raised by the package."""


class JoseError(ValueError):
    """Base class for every error raised while handling JOSE objects."""


class UnsupportedKeyTypeError(JoseError):
    """The key has a type or shape that cannot be used here."""

    def __init__(self, message: str = "webjose: unsupported key type/format") -> None:
        super().__init__(message)


class NotSupportedError(JoseError):
    """The requested operation is not supported for this object."""

    def __init__(self, message: str = "webjose: compact serialization not supported for object") -> None:
        super().__init__(message)


class UnprotectedNonceError(JoseError):
    """A nonce parameter appeared in an unprotected header."""

    def __init__(
        self, message: str = "webjose: Nonce parameter included in unprotected header"
    ) -> None:
        super().__init__(message)


class KidNotFoundError(JoseError):
    """No key in a key set carries the requested key ID."""

    def __init__(
        self, message: str = "webjose: JWK with matching kid not found in JWK Set"
    ) -> None:
        super().__init__(message)