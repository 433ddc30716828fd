from .errors import (
    CephCryptoError,
    InvalidArgument,
    Unavailable,
    FormatError,
    OperationFailure,
)
from .digest import sha256_bytes
from .password import hash_password, check_password, query_password_salt
from .symmetric import encrypt_data, decrypt_data, open_data
from .keys import PUBLIC_PREFIX, PRIVATE_PREFIX, PublicKeyHandle, PrivateKeyHandle
from .hybrid import seal_object, open_object
from .results import Decrypted, AuthenticationFailed, MalformedInput
from .store import KeyBundle, KeyStore, MemoryKeyStore, JsonFileKeyStore
from .session import (
    CryptoSession,
    NoKeys,
    PublicOnly,
    FullPair,
    serve_public_object,
    serve_full_object,
)

__version__ = "1.0.0"
__all__ = [
    "CephCryptoError",
    "InvalidArgument",
    "Unavailable",
    "FormatError",
    "OperationFailure",
    "sha256_bytes",
    "hash_password",
    "check_password",
    "query_password_salt",
    "encrypt_data",
    "decrypt_data",
    "open_data",
    "PUBLIC_PREFIX",
    "PRIVATE_PREFIX",
    "PublicKeyHandle",
    "PrivateKeyHandle",
    "seal_object",
    "open_object",
    "Decrypted",
    "AuthenticationFailed",
    "MalformedInput",
    "KeyBundle",
    "KeyStore",
    "MemoryKeyStore",
    "JsonFileKeyStore",
    "CryptoSession",
    "NoKeys",
    "PublicOnly",
    "FullPair",
    "serve_public_object",
    "serve_full_object",
]
