"""
session.py
----------

``CryptoSession`` owns one RSA key pair and the envelope operations that
need it. A session is either empty, holds only a public key (enough to
encrypt for someone else), or holds a full pair (needed to decrypt).

Sessions are not safe for overlapping lifecycle calls; callers serialize
``generate_key_pair``/``import_*``/``load_key_pair``/``remove_key_pair`` per
session. Different access paths are independent.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from . import config
from .digest import fingerprint
from .errors import FormatError, InvalidArgument, Unavailable
from .hybrid import open_object, seal_object
from .keys import (
    PRIVATE_PREFIX,
    PUBLIC_PREFIX,
    PrivateKeyHandle,
    PublicKeyHandle,
    gen_rsa_keypair,
    import_private_jwk,
    import_public_key_string,
    modulus_of,
    public_key_string,
)
from .logger_config import envelope_logger, keys_logger
from .results import AuthenticationFailed, Decrypted
from .store import COLLECTION, JsonFileKeyStore, KeyBundle, KeyStore
from .symmetric import cipher_for, decrypt_data, encrypt_data
from .utils import dumps, loads, random_bytes


@dataclass(frozen=True)
class NoKeys:
    pass


@dataclass(frozen=True)
class PublicOnly:
    public: PublicKeyHandle
    public_export: str


@dataclass(frozen=True)
class FullPair:
    public: PublicKeyHandle
    private: PrivateKeyHandle
    public_export: str
    private_export: Optional[str] = None


KeyState = Union[NoKeys, PublicOnly, FullPair]

def _state_from_bundle(bundle: KeyBundle) -> KeyState:
    if bundle.public is None or not bundle.public_export:
        return NoKeys()
    if bundle.private is None:
        return PublicOnly(bundle.public, bundle.public_export)
    return FullPair(bundle.public, bundle.private, bundle.public_export, bundle.private_export)

def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and value != ""

def _parse_jwk(plain: str) -> Dict[str, Any]:
    try:
        jwk = loads(plain)
    except ValueError as e:
        raise FormatError(f"private key export does not hold a JSON Web Key: {e}") from e
    if not isinstance(jwk, dict) or not _non_empty(jwk.get("n")):
        raise FormatError("private key export does not hold a JSON Web Key")
    return jwk


class CryptoSession:

    def __init__(self, database_name: Optional[str] = None, store: Optional[KeyStore] = None):
        """
        Args:
            database_name: Key store database holding this session's key pair,
                or None for a session limited to operations without storage.
            store: Key store backend; a JSON file store under
                ``config.DATA_DIR`` by default. A store serves one database.
        """
        if database_name is not None and not _non_empty(database_name):
            raise InvalidArgument("database name must be a non-empty string")

        self._state: KeyState = NoKeys()
        self.db_name = database_name
        self.store = store
        if self.db_name is not None:
            if self.store is None:
                self.store = JsonFileKeyStore()
            self.store.init(self.db_name, COLLECTION)
        self.access_path = "default"

    # -------------------- state --------------------

    @staticmethod
    def is_available() -> bool:
        try:
            random_bytes(1)
        except Unavailable:
            return False
        return True

    @property
    def state(self) -> KeyState:
        return self._state

    def set_access_path(self, access_path: str) -> "CryptoSession":
        if not _non_empty(access_path):
            raise InvalidArgument("access path must be a non-empty string")
        self.access_path = access_path
        return self

    def has_key_pair(self) -> bool:
        return isinstance(self._state, FullPair)

    def has_public_key(self) -> bool:
        return isinstance(self._state, (PublicOnly, FullPair))

    def get_public_key_string(self) -> Optional[str]:
        return None if isinstance(self._state, NoKeys) else self._state.public_export

    def get_private_key_string(self) -> Optional[str]:
        return self._state.private_export if isinstance(self._state, FullPair) else None

    def _clear(self):
        self._state = NoKeys()

    def _require_store(self):
        if self.db_name is None or self.store is None or not self.store.is_ready():
            raise Unavailable("key store is not available for this session")

    # -------------------- key lifecycle --------------------

    async def generate_key_pair(self, export_password: Optional[str] = None) -> None:
        """Generate and store a new RSA-OAEP key pair.

        With ``export_password`` the private key is exported once as a JWK,
        encrypted under that password (see ``get_private_key_string``) and
        re-imported as non-extractable. Without it the private key is never
        extractable and cannot be recovered outside the key store.
        """
        if export_password is not None and not _non_empty(export_password):
            raise InvalidArgument("export password must be a non-empty string or None")
        self._require_store()
        self._clear()

        exportable = export_password is not None
        private, public = await asyncio.to_thread(gen_rsa_keypair, exportable)

        private_export = None
        if exportable:
            jwk = private.to_jwk()
            private = import_private_jwk(jwk, extractable=False)
            private_export = PRIVATE_PREFIX + await encrypt_data(dumps(jwk), export_password)

        bundle = KeyBundle(public, private, public_key_string(public), private_export)
        await self.store.write_item(self.access_path, bundle)
        self._state = _state_from_bundle(bundle)

        keys_logger.info(
            f"[KEYPAIR_GENERATED] access_path={self.access_path} exportable={exportable} "
            f"fingerprint={fingerprint(bundle.public_export)}"
        )

    async def load_key_pair(self) -> None:
        self._require_store()
        self._clear()

        bundle = await self.store.read_item(self.access_path)
        if bundle is None:
            keys_logger.info(f"[KEYPAIR_NOT_FOUND] access_path={self.access_path}")
            return
        self._state = _state_from_bundle(bundle)
        keys_logger.info(f"[KEYPAIR_LOADED] access_path={self.access_path} full_pair={self.has_key_pair()}")

    async def import_public_key(self, key_string: str) -> None:
        modulus_of(key_string)
        self._clear()
        public = import_public_key_string(key_string)
        self._state = PublicOnly(public, key_string)
        keys_logger.info(f"[PUBLIC_KEY_IMPORTED] fingerprint={fingerprint(key_string)}")

    async def import_private_key(self, export_string: str, export_password: str) -> bool:
        """Restore the key pair from a private key export.

        Returns False, leaving the session empty, when ``export_password``
        doesn't decrypt the export.
        """
        if not _non_empty(export_string) or not export_string.startswith(PRIVATE_PREFIX):
            raise InvalidArgument(f"private key export must start with {PRIVATE_PREFIX!r}")
        if not _non_empty(export_password):
            raise InvalidArgument("export password must be a non-empty string")
        self._require_store()
        self._clear()

        plain = await decrypt_data(export_string[len(PRIVATE_PREFIX):], export_password)
        if plain is None:
            keys_logger.warning(f"[PRIVATE_KEY_REJECTED] access_path={self.access_path} wrong password or corrupt export")
            return False

        jwk = _parse_jwk(plain)
        private = import_private_jwk(jwk, extractable=False)
        public_export = PUBLIC_PREFIX + jwk["n"]
        public = import_public_key_string(public_export)

        bundle = KeyBundle(public, private, public_export, export_string)
        await self.store.write_item(self.access_path, bundle)
        self._state = _state_from_bundle(bundle)

        keys_logger.info(
            f"[PRIVATE_KEY_IMPORTED] access_path={self.access_path} fingerprint={fingerprint(public_export)}"
        )
        return True

    async def check_export_password(self, export_password: str) -> bool:
        if not _non_empty(export_password):
            raise InvalidArgument("export password must be a non-empty string")
        private_export = self.get_private_key_string()
        if private_export is None or not private_export.startswith(PRIVATE_PREFIX):
            raise Unavailable("no private key export held by this session")

        plain = await decrypt_data(private_export[len(PRIVATE_PREFIX):], export_password)
        if plain is None:
            return False
        # The export must belong to the key pair currently held.
        return self._state.public_export == PUBLIC_PREFIX + _parse_jwk(plain)["n"]

    async def remove_key_pair(self) -> None:
        self._require_store()
        self._clear()
        await self.store.remove_item(self.access_path)
        keys_logger.info(f"[KEYPAIR_REMOVED] access_path={self.access_path}")

    # -------------------- envelopes --------------------

    async def encrypt_object(self, obj: Dict[str, Any], version: Optional[int] = None) -> Dict[str, str]:
        """Encrypt ``obj`` for the held public key.

        Returns ``{"message": ..., "key": ...}``, both base64; ``message``
        carries a ``<version>$`` tag.
        """
        version = config.DEFAULT_CIPHER_VERSION if version is None else version
        if not isinstance(obj, dict):
            raise InvalidArgument("only dict payloads can be encrypted")
        cipher_for(version)
        if not self.has_public_key():
            raise Unavailable("no public key loaded, encryption is not available")

        envelope = seal_object(self._state.public, obj, version)
        envelope_logger.debug(f"[OBJECT_ENCRYPTED] version={version} recipient={fingerprint(self._state.public_export)}")
        return envelope

    async def decrypt_object(self, key_string: str, message_string: str) -> Union[Dict[str, Any], bool]:
        """Decrypt an envelope from ``encrypt_object``.

        Returns False when the envelope was not encrypted for this key pair.
        Malformed envelopes raise.
        """
        if not isinstance(key_string, str) or not isinstance(message_string, str):
            raise InvalidArgument("key and message must be strings")
        if not self.has_key_pair():
            raise Unavailable("the private key is missing, decryption is not available")

        result = open_object(self._state.private, key_string, message_string)
        if isinstance(result, Decrypted):
            return result.value
        if isinstance(result, AuthenticationFailed):
            envelope_logger.warning(f"[OBJECT_DECRYPT_FAILED] access_path={self.access_path} {result.reason}")
            return False
        raise FormatError(result.reason)

    async def encrypt_data(self, plain: str, password: str, version: Optional[int] = None) -> str:
        return await encrypt_data(plain, password, version)

    async def decrypt_data(self, encoded: str, password: str) -> Optional[str]:
        return await decrypt_data(encoded, password)


_public_sessions: Dict[Any, CryptoSession] = {}
_full_sessions: Dict[str, CryptoSession] = {}

def serve_public_object(id: Any = 0) -> CryptoSession:
    """Shared session without key storage, one per ``id``."""
    if id not in _public_sessions:
        _public_sessions[id] = CryptoSession()
    return _public_sessions[id]

def serve_full_object(database_name: str) -> CryptoSession:
    """Shared session backed by the key store database ``database_name``."""
    if database_name not in _full_sessions:
        _full_sessions[database_name] = CryptoSession(database_name)
    return _full_sessions[database_name]

__all__ = [
    "NoKeys",
    "PublicOnly",
    "FullPair",
    "KeyState",
    "CryptoSession",
    "serve_public_object",
    "serve_full_object",
]
