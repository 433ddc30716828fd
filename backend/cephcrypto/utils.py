import base64
import binascii
import json
import os
import re
from typing import Any, Dict, Tuple

from .errors import FormatError, InvalidArgument, Unavailable

# Bytes that may never appear in noise, so the JSON body stays isolatable.
NON_NOISE_BYTES = (ord("{"), ord("}"), 0)
NOISE_FILLER = 0x20
NOISE_MIN = 15
NOISE_SPAN = 50

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise FormatError(f"invalid base64: {e}") from e

def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")

def b64url_decode(s: str) -> bytes:
    if not _B64URL_RE.match(s):
        raise FormatError("invalid base64url")
    try:
        return base64.urlsafe_b64decode((s + "=" * (-len(s) % 4)).encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise FormatError(f"invalid base64url: {e}") from e

def dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":"), sort_keys=True)

def loads(s: str) -> Any:
    return json.loads(s)

def random_bytes(n: int) -> bytes:
    try:
        return os.urandom(n)
    except NotImplementedError as e:
        raise Unavailable("no secure random source on this system") from e

def concat(*buffers: bytes) -> bytes:
    if not buffers:
        raise InvalidArgument("concat() needs at least one buffer")
    for buf in buffers:
        if not isinstance(buf, (bytes, bytearray, memoryview)):
            raise InvalidArgument(f"concat() got {type(buf).__name__}, expected bytes")
    return b"".join(bytes(buf) for buf in buffers)

def split_in_two(buffer: bytes, cut_pos: int) -> Tuple[bytes, bytes]:
    """Cut ``buffer`` at ``cut_pos``.

    Negative positions count from the end, positions outside the buffer are
    clamped to its bounds.
    """
    if not isinstance(buffer, (bytes, bytearray, memoryview)) or not isinstance(cut_pos, int):
        raise InvalidArgument("split_in_two() needs a buffer and an integer position")
    buf = bytes(buffer)
    return buf[:cut_pos], buf[cut_pos:]

def from_ascii(text: str) -> bytes:
    if not isinstance(text, str):
        raise InvalidArgument("from_ascii() needs a string")
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError as e:
        raise InvalidArgument("string holds code points above 255") from e

def to_ascii(buffer: bytes) -> str:
    if not isinstance(buffer, (bytes, bytearray, memoryview)):
        raise InvalidArgument("to_ascii() needs a buffer")
    return bytes(buffer).decode("latin-1")

def from_hex(text: str) -> bytes:
    if not isinstance(text, str):
        raise InvalidArgument("from_hex() needs a string")
    if len(text) % 2 or not _HEX_RE.match(text):
        raise FormatError("invalid hex string")
    return bytes.fromhex(text)

def to_hex(buffer: bytes) -> str:
    if not isinstance(buffer, (bytes, bytearray, memoryview)):
        raise InvalidArgument("to_hex() needs a buffer")
    return bytes(buffer).hex()

def _noise(length: int) -> bytes:
    return bytes(NOISE_FILLER if b in NON_NOISE_BYTES else b for b in random_bytes(length))

def from_object(obj: Dict[str, Any], add_noise: bool = False) -> bytes:
    """Serialize ``obj`` as JSON bytes, optionally framed by random noise.

    The noise before and after the body is 15 to 64 bytes each. Braces and
    NUL never occur in it, so ``to_object`` finds the body again by taking
    everything from the first ``{`` to the last ``}``.
    """
    if not isinstance(obj, dict):
        raise InvalidArgument("only dict payloads can be framed")
    data = dumps(obj).encode("ascii")
    if not add_noise:
        return data
    config = random_bytes(2)
    before = (config[0] % NOISE_SPAN) + NOISE_MIN
    after = (config[1] % NOISE_SPAN) + NOISE_MIN
    head, tail = split_in_two(_noise(before + after), before)
    return concat(head, data, tail)

def to_object(buffer: bytes) -> Dict[str, Any]:
    text = to_ascii(buffer)
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise FormatError("no JSON object in buffer")
    try:
        return json.loads(text[start:end + 1])
    except ValueError as e:
        raise FormatError(f"invalid JSON object: {e}") from e

__all__ = [
    "b64e",
    "b64d",
    "b64url_encode",
    "b64url_decode",
    "dumps",
    "loads",
    "random_bytes",
    "concat",
    "split_in_two",
    "from_ascii",
    "to_ascii",
    "from_hex",
    "to_hex",
    "from_object",
    "to_object",
]
