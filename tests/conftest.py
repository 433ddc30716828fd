"""
Test configuration: key store files and logs go to a temporary directory,
set before cephcrypto is imported.
"""

import asyncio
import os
import tempfile

import pytest

_TMP = tempfile.mkdtemp(prefix="cephcrypto-tests-")
os.environ["CEPHCRYPTO_DATA_DIR"] = os.path.join(_TMP, "data")
os.environ["CEPHCRYPTO_LOG_DIR"] = os.path.join(_TMP, "logs")
os.environ["CEPHCRYPTO_LOG_LEVEL"] = "WARNING"
os.environ.pop("CEPHCRYPTO_STORE_SECRET", None)
os.environ.pop("CEPHCRYPTO_CIPHER_VERSION", None)

from cephcrypto import CryptoSession, MemoryKeyStore  # noqa: E402

EXPORT_PASSWORD = "s3cr3t"


@pytest.fixture
def memory_store():
    return MemoryKeyStore()


@pytest.fixture
def session(memory_store):
    """Empty session backed by an in-memory store."""
    return CryptoSession("test-db", memory_store)


@pytest.fixture(scope="module")
def exportable_session():
    """Session holding a key pair generated with EXPORT_PASSWORD (one RSA keygen per module)."""
    s = CryptoSession("fixture-db", MemoryKeyStore())
    asyncio.run(s.generate_key_pair(EXPORT_PASSWORD))
    return s


@pytest.fixture(scope="module")
def other_session():
    """A second, unrelated key pair without export password."""
    s = CryptoSession("other-db", MemoryKeyStore())
    asyncio.run(s.generate_key_pair())
    return s
