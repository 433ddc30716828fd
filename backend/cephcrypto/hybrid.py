from typing import Any, Dict

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import FormatError, InvalidArgument, OperationFailure
from .keys import PrivateKeyHandle, PublicKeyHandle
from .results import AuthenticationFailed, Decrypted, DecryptResult, MalformedInput
from .symmetric import aes_decrypt, aes_encrypt, cipher_for, split_version
from .utils import b64d, b64e, concat, from_object, random_bytes, split_in_two, to_object

def _wrap_key(pub: PublicKeyHandle, iv: bytes, aes_key: bytes) -> str:
    return b64e(pub.encrypt(concat(iv, aes_key)))

def _unwrap_key(priv: PrivateKeyHandle, b64wrapped: str, iv_bytes: int):
    wrapped = b64d(b64wrapped)
    try:
        blob = priv.decrypt(wrapped)
    except ValueError as e:
        raise OperationFailure("RSA-OAEP unwrap failed") from e
    return split_in_two(blob, iv_bytes)

def seal_object(pub: PublicKeyHandle, obj: Dict[str, Any], version: int) -> Dict[str, str]:
    """Encrypt ``obj`` under a fresh AES key and wrap IV ++ key with ``pub``."""
    if not isinstance(obj, dict):
        raise InvalidArgument("only dict payloads can be encrypted")
    spec = cipher_for(version)
    aes_key = AESGCM.generate_key(bit_length=spec.key_bytes * 8)
    iv = random_bytes(spec.iv_bytes)
    ct = aes_encrypt(version, aes_key, iv, from_object(obj, True))
    return {
        "message": f"{version}$" + b64e(ct),
        "key": _wrap_key(pub, iv, aes_key),
    }

def open_object(priv: PrivateKeyHandle, key_string: str, message_string: str) -> DecryptResult:
    if not isinstance(key_string, str) or not isinstance(message_string, str):
        raise InvalidArgument("key and message must be strings")
    version, body = split_version(message_string)
    spec = cipher_for(version)

    try:
        ct = b64d(body)
        iv, aes_key = _unwrap_key(priv, key_string, spec.iv_bytes)
        plain = aes_decrypt(version, aes_key, iv, ct)
    except OperationFailure as e:
        return AuthenticationFailed(str(e))
    except FormatError as e:
        return MalformedInput(str(e))

    try:
        return Decrypted(to_object(plain))
    except FormatError as e:
        # CBC has no tag, a wrong key shows up as garbage plaintext
        if spec.name == "AES-CBC":
            return AuthenticationFailed(str(e))
        return MalformedInput(str(e))

__all__ = ["seal_object", "open_object"]
