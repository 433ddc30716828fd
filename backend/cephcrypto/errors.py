class CephCryptoError(Exception):
    """Base class for every error raised by cephcrypto."""


class InvalidArgument(CephCryptoError, ValueError):
    """Malformed or missing input."""


class Unavailable(CephCryptoError):
    """A required collaborator (random source, key store, key material) is missing."""


class FormatError(CephCryptoError, ValueError):
    """An encoded string or byte layout could not be parsed."""


class OperationFailure(CephCryptoError):
    """The cipher reported an authentication or integrity failure."""


__all__ = [
    "CephCryptoError",
    "InvalidArgument",
    "Unavailable",
    "FormatError",
    "OperationFailure",
]
