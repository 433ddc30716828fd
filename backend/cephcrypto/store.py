import json
import os
import pathlib
import tempfile
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import config
from .errors import FormatError, Unavailable
from .keys import PrivateKeyHandle, PublicKeyHandle, import_public_key_string, load_private_pem, private_pem
from .logger_config import store_logger

COLLECTION = "crypto"


@dataclass
class KeyBundle:
    public: Optional[PublicKeyHandle] = None
    private: Optional[PrivateKeyHandle] = None
    public_export: Optional[str] = None
    private_export: Optional[str] = None


class KeyStore:
    """Key-value store of KeyBundles, keyed by access path."""

    def __init__(self):
        self.database_name = None
        self.collection_name = None
        self._opened = False

    def init(self, database_name: str, collection_name: str) -> bool:
        if self._opened and self.database_name != database_name:
            raise Unavailable("can't reconfigure store, it is already connected to another database")
        self.database_name = database_name
        self.collection_name = collection_name
        return True

    def is_ready(self) -> bool:
        return self.database_name is not None and self.collection_name is not None

    def _require_ready(self):
        if not self.is_ready():
            raise Unavailable("key store is not initialized")
        self._opened = True

    async def write_item(self, key: str, value: KeyBundle) -> None:
        raise NotImplementedError

    async def read_item(self, key: str) -> Optional[KeyBundle]:
        raise NotImplementedError

    async def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyStore(KeyStore):
    """Keeps bundles, handles included, in process memory."""

    def __init__(self):
        super().__init__()
        self._items: Dict[tuple, Dict[str, KeyBundle]] = {}

    def _records(self) -> Dict[str, KeyBundle]:
        self._require_ready()
        return self._items.setdefault((self.database_name, self.collection_name), {})

    async def write_item(self, key: str, value: KeyBundle) -> None:
        self._records()[key] = value

    async def read_item(self, key: str) -> Optional[KeyBundle]:
        return self._records().get(key)

    async def remove_item(self, key: str) -> None:
        self._records().pop(key, None)


# One lock per database file, shared by every store instance pointing at it
_file_locks: Dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()

def _lock_for(path: pathlib.Path) -> threading.Lock:
    key = str(path.resolve())
    with _file_locks_guard:
        return _file_locks.setdefault(key, threading.Lock())


class JsonFileKeyStore(KeyStore):
    """One JSON file per database: ``{collection: {access_path: record}}``.

    Private keys are written as PKCS8 PEM encrypted with ``secret``; without
    a secret the store only holds public records and refuses private keys.
    Each write is a locked load/modify/replace of the whole file.
    """

    def __init__(self, data_dir: Optional[str] = None, secret: Optional[str] = None):
        super().__init__()
        self.data_dir = pathlib.Path(data_dir or config.DATA_DIR)
        secret = secret if secret is not None else config.STORE_SECRET
        self._secret = secret.encode("utf-8") if secret else None

    @property
    def path(self) -> pathlib.Path:
        return self.data_dir / f"{self.database_name}.json"

    def _lock(self) -> threading.Lock:
        return _lock_for(self.path)

    def load_db(self) -> Dict[str, Any]:
        self._require_ready()
        if self.path.exists():
            try:
                return json.loads(self.path.read_text(encoding="utf-8"))
            except ValueError as e:
                raise FormatError(f"corrupt key store file {self.path}: {e}") from e
        return {}

    def save_db(self, db: Dict[str, Any]):
        """Write ``db`` to a temp file and move it over the database file."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(self.data_dir),
            delete=False,
            suffix=".json",
        ) as tmp:
            json.dump(db, tmp, ensure_ascii=False, indent=2)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name
        os.replace(tmp_name, self.path)

    def _encode(self, bundle: KeyBundle) -> Dict[str, Any]:
        if bundle.private is not None and self._secret is None:
            raise Unavailable("refusing to store a private key without CEPHCRYPTO_STORE_SECRET")
        return {
            "publicExport": bundle.public_export,
            "privateExport": bundle.private_export,
            "private": private_pem(bundle.private, self._secret) if bundle.private else None,
        }

    def _decode(self, rec: Dict[str, Any]) -> KeyBundle:
        public_export = rec.get("publicExport")
        private = load_private_pem(rec["private"], self._secret) if rec.get("private") else None
        return KeyBundle(
            public=import_public_key_string(public_export) if public_export else None,
            private=private,
            public_export=public_export,
            private_export=rec.get("privateExport"),
        )

    async def write_item(self, key: str, value: KeyBundle) -> None:
        record = self._encode(value)
        with self._lock():
            db = self.load_db()
            db.setdefault(self.collection_name, {})[key] = record
            self.save_db(db)
        store_logger.debug(f"[STORE_WRITE] {self.database_name}/{self.collection_name}/{key}")

    async def read_item(self, key: str) -> Optional[KeyBundle]:
        rec = self.load_db().get(self.collection_name, {}).get(key)
        return self._decode(rec) if rec is not None else None

    async def remove_item(self, key: str) -> None:
        with self._lock():
            db = self.load_db()
            removed = db.get(self.collection_name, {}).pop(key, None) is not None
            if removed:
                self.save_db(db)
        if removed:
            store_logger.debug(f"[STORE_REMOVE] {self.database_name}/{self.collection_name}/{key}")

__all__ = ["COLLECTION", "KeyBundle", "KeyStore", "MemoryKeyStore", "JsonFileKeyStore"]
