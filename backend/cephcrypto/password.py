import hmac
import re
from typing import Optional, Tuple

from .digest import sha256_bytes
from .errors import FormatError, InvalidArgument
from .logger_config import password_logger
from .utils import b64d, b64e, from_hex, random_bytes, to_hex

HASH_PREFIX = "$ceph1$"
ENCODINGS = ("base64", "hex")
SALT_BYTES = 16

_HASH_RE = re.compile(r"^\$ceph1\$([^$]+)\$([^$]+)\$([^$]+)$")
_UNPADDED_RE = re.compile(r"^([^=]+)=*$")

def _strip_padding(encoded: str) -> str:
    m = _UNPADDED_RE.match(encoded)
    if not m:
        raise FormatError("encoding failed")
    return m.group(1)

def _decode(encoded: str, encoding: str) -> bytes:
    if encoding == "base64":
        bare = _strip_padding(encoded)
        return b64d(bare + "=" * (-len(bare) % 4))
    return from_hex(encoded)

def _encode(raw: bytes, encoding: str) -> str:
    if encoding == "base64":
        return _strip_padding(b64e(raw))
    return to_hex(raw)

def _salted_digest(password: str, salt: bytes) -> bytes:
    # one byte per UTF-16 code unit, low byte kept
    return sha256_bytes(password.encode("utf-16-le")[0::2] + salt)

def _parse(hash_string: str) -> Optional[Tuple[str, str, str]]:
    m = _HASH_RE.match(hash_string)
    if not m or m.group(1) not in ENCODINGS:
        return None
    return m.group(1), m.group(2), m.group(3)

async def hash_password(password: str, salt: Optional[str] = None, encoding: str = "base64") -> str:
    """Hash ``password`` with a salt into ``$ceph1$<encoding>$<salt>$<hash>``.

    Without ``salt`` a fresh 16 byte salt is generated. A given salt must be
    encoded in ``encoding``; re-hashing with the salt of an existing hash
    string reproduces that string.
    """
    if not isinstance(password, str) or password == "":
        raise InvalidArgument("password must be a non-empty string")
    if salt is not None and (not isinstance(salt, str) or salt == ""):
        raise InvalidArgument("salt must be a non-empty string or None")
    if encoding not in ENCODINGS:
        raise InvalidArgument(f"unsupported encoding: {encoding!r}")

    if salt is None:
        raw_salt = random_bytes(SALT_BYTES)
        salt_encoded = _encode(raw_salt, encoding)
    else:
        try:
            raw_salt = _decode(salt, encoding)
            salt_encoded = _strip_padding(salt) if encoding == "base64" else salt
        except FormatError as e:
            raise InvalidArgument(f"salt is not valid {encoding}: {e}") from e

    hash_encoded = _encode(_salted_digest(password, raw_salt), encoding)
    password_logger.debug(f"[HASH_OK] encoding={encoding} fresh_salt={salt is None}")
    return f"{HASH_PREFIX}{encoding}${salt_encoded}${hash_encoded}"

async def check_password(password: str, hash_string: str) -> bool:
    if not isinstance(password, str) or password == "":
        raise InvalidArgument("password must be a non-empty string")
    if not isinstance(hash_string, str) or hash_string == "":
        raise InvalidArgument("hash must be a non-empty string")

    parsed = _parse(hash_string)
    if parsed is None:
        raise InvalidArgument("hash string is not in $ceph1$<encoding>$<salt>$<hash> format")
    encoding, salt_encoded, hash_encoded = parsed

    try:
        raw_salt = _decode(salt_encoded, encoding)
        expected = _decode(hash_encoded, encoding)
    except FormatError as e:
        raise InvalidArgument(f"hash string is not decodable: {e}") from e

    ok = hmac.compare_digest(_salted_digest(password, raw_salt), expected)
    if not ok:
        password_logger.info("[CHECK_FAILED] password does not match hash")
    return ok

def query_password_salt(hash_string: str) -> Optional[str]:
    """Salt of ``hash_string`` as unpadded base64, or None if it is malformed."""
    if not isinstance(hash_string, str) or hash_string == "":
        raise InvalidArgument("hash must be a non-empty string")

    parsed = _parse(hash_string)
    if parsed is None:
        return None
    encoding, salt_encoded, _ = parsed
    if encoding == "base64":
        return salt_encoded
    try:
        return _encode(from_hex(salt_encoded), "base64")
    except FormatError:
        return None

__all__ = ["hash_password", "check_password", "query_password_salt"]
