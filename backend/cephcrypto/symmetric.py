import re
from dataclasses import dataclass
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from . import config
from .errors import FormatError, InvalidArgument, OperationFailure
from .logger_config import envelope_logger
from .results import AuthenticationFailed, Decrypted, DecryptResult, MalformedInput
from .utils import from_hex, from_object, random_bytes, to_hex, to_object


@dataclass(frozen=True)
class CipherSpec:
    name: str
    iv_bytes: int
    key_bytes: int = 32


# Version tag -> symmetric cipher. Untagged data is version 1.
CIPHERS = {
    1: CipherSpec("AES-CBC", 16),
    2: CipherSpec("AES-GCM", 12),
}
LEGACY_VERSION = 1

_VERSION_RE = re.compile(r"^(\d+)\$(.+)$", re.DOTALL)

def cipher_for(version: int) -> CipherSpec:
    spec = CIPHERS.get(version) if isinstance(version, int) and not isinstance(version, bool) else None
    if spec is None:
        raise InvalidArgument(f"unsupported cipher version: {version!r}")
    return spec

def split_version(tagged: str) -> Tuple[int, str]:
    m = _VERSION_RE.match(tagged)
    if m is None:
        return LEGACY_VERSION, tagged
    return int(m.group(1)), m.group(2)

def aes_encrypt(version: int, key: bytes, iv: bytes, data: bytes) -> bytes:
    spec = cipher_for(version)
    if spec.name == "AES-GCM":
        return AESGCM(key).encrypt(iv, data, None)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()

def aes_decrypt(version: int, key: bytes, iv: bytes, data: bytes) -> bytes:
    """Decrypt ``data``; a wrong key or tampered data raises OperationFailure."""
    spec = cipher_for(version)
    if len(iv) != spec.iv_bytes:
        raise FormatError(f"{spec.name} needs a {spec.iv_bytes} byte IV, got {len(iv)}")
    try:
        if spec.name == "AES-GCM":
            return AESGCM(key).decrypt(iv, data, None)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except (InvalidTag, ValueError) as e:
        raise OperationFailure(f"{spec.name} decryption failed") from e

def derive_password_key(password: str, length: int = 32) -> bytes:
    """Fill ``length`` bytes by repeating the password's code units.

    Only the low byte of each UTF-16 code unit is used. This is not a real
    key derivation function; it is kept so that existing export strings stay
    readable and must not be used for new formats.
    """
    units = password.encode("utf-16-le")[0::2]
    return bytes(units[i % len(units)] for i in range(length))

async def encrypt_data(plain: str, password: str, version: Optional[int] = None) -> str:
    if not isinstance(plain, str) or not isinstance(password, str) or password == "":
        raise InvalidArgument("encrypt_data() needs a string and a non-empty password")
    version = config.DEFAULT_CIPHER_VERSION if version is None else version
    spec = cipher_for(version)

    iv = random_bytes(spec.iv_bytes)
    key = derive_password_key(password, spec.key_bytes)
    ct = aes_encrypt(version, key, iv, from_object({"data": plain}, True))
    return f"{version}${to_hex(iv)}{to_hex(ct)}"

async def open_data(encoded: str, password: str) -> DecryptResult:
    if not isinstance(encoded, str) or encoded == "" or not isinstance(password, str) or password == "":
        raise InvalidArgument("open_data() needs encoded data and a non-empty password")
    version, body = split_version(encoded)
    spec = cipher_for(version)

    try:
        iv = from_hex(body[:spec.iv_bytes * 2])
        ct = from_hex(body[spec.iv_bytes * 2:])
        plain = aes_decrypt(version, derive_password_key(password, spec.key_bytes), iv, ct)
    except OperationFailure as e:
        return AuthenticationFailed(str(e))
    except FormatError as e:
        return MalformedInput(str(e))

    try:
        obj = to_object(plain)
    except FormatError as e:
        if spec.name == "AES-CBC":
            return AuthenticationFailed(str(e))
        return MalformedInput(str(e))
    if not isinstance(obj.get("data"), str):
        return MalformedInput("decrypted object has no string 'data' field")
    return Decrypted(obj["data"])

async def decrypt_data(encoded: str, password: str) -> Optional[str]:
    """Reverse ``encrypt_data``.

    Returns None when the password is wrong or the data is corrupted. Use
    ``open_data`` to tell the two apart.
    """
    result = await open_data(encoded, password)
    if isinstance(result, Decrypted):
        return result.value
    envelope_logger.info(f"[DATA_DECRYPT_FAILED] {result.reason}")
    return None

__all__ = [
    "CipherSpec",
    "CIPHERS",
    "cipher_for",
    "split_version",
    "aes_encrypt",
    "aes_decrypt",
    "derive_password_key",
    "encrypt_data",
    "open_data",
    "decrypt_data",
]
