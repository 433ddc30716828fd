from typing import Any, Dict, Optional, Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import FormatError, InvalidArgument
from .utils import b64url_decode, b64url_encode

PUBLIC_EXPONENT = 65537
KEY_SIZE = 2048
JWK_ALG = "RSA-OAEP-256"

PUBLIC_PREFIX = "$ceph1-publ$jwk$"
PRIVATE_PREFIX = "$ceph1-priv$hex$"

def oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class _KeyHandle:
    """Opaque wrapper around RSA key material.

    A handle only allows the operations in ``usages`` and refuses to export
    its key unless it was created ``extractable``.
    """

    def __init__(self, key, extractable: bool, usages: Tuple[str, ...]):
        self._key = key
        self.extractable = extractable
        self.usages = usages

    def _require(self, usage: str):
        if usage not in self.usages:
            raise InvalidArgument(f"key does not allow {usage!r}")

    def __repr__(self):
        return f"<{type(self).__name__} extractable={self.extractable} usages={list(self.usages)}>"


class PublicKeyHandle(_KeyHandle):

    def __init__(self, key: rsa.RSAPublicKey, extractable: bool = True):
        super().__init__(key, extractable, ("encrypt",))

    def encrypt(self, data: bytes) -> bytes:
        self._require("encrypt")
        return self._key.encrypt(data, oaep())

    def to_jwk(self) -> Dict[str, Any]:
        if not self.extractable:
            raise InvalidArgument("key is not extractable")
        return public_jwk(self._key)


class PrivateKeyHandle(_KeyHandle):

    def __init__(self, key: rsa.RSAPrivateKey, extractable: bool = False):
        super().__init__(key, extractable, ("decrypt",))

    def decrypt(self, data: bytes) -> bytes:
        self._require("decrypt")
        return self._key.decrypt(data, oaep())

    def to_jwk(self) -> Dict[str, Any]:
        if not self.extractable:
            raise InvalidArgument("key is not extractable")
        return private_jwk(self._key)

    def public_handle(self) -> PublicKeyHandle:
        return PublicKeyHandle(self._key.public_key())


def _int_b64(value: int) -> str:
    return b64url_encode(value.to_bytes((value.bit_length() + 7) // 8 or 1, "big"))

def _b64_int(value: str) -> int:
    return int.from_bytes(b64url_decode(value), "big")

def public_jwk(pub: rsa.RSAPublicKey) -> Dict[str, Any]:
    nums = pub.public_numbers()
    return {
        "alg": JWK_ALG,
        "e": _int_b64(nums.e),
        "ext": True,
        "key_ops": ["encrypt"],
        "kty": "RSA",
        "n": _int_b64(nums.n),
    }

def private_jwk(priv: rsa.RSAPrivateKey) -> Dict[str, Any]:
    nums = priv.private_numbers()
    return {
        "alg": JWK_ALG,
        "d": _int_b64(nums.d),
        "dp": _int_b64(nums.dmp1),
        "dq": _int_b64(nums.dmq1),
        "e": _int_b64(nums.public_numbers.e),
        "ext": True,
        "key_ops": ["decrypt"],
        "kty": "RSA",
        "n": _int_b64(nums.public_numbers.n),
        "p": _int_b64(nums.p),
        "q": _int_b64(nums.q),
        "qi": _int_b64(nums.iqmp),
    }

def gen_rsa_keypair(extractable: bool = False, bits: int = KEY_SIZE) -> Tuple[PrivateKeyHandle, PublicKeyHandle]:
    priv = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=bits)
    return PrivateKeyHandle(priv, extractable=extractable), PublicKeyHandle(priv.public_key())

def import_private_jwk(jwk: Dict[str, Any], extractable: bool = False) -> PrivateKeyHandle:
    if not isinstance(jwk, dict) or jwk.get("kty") != "RSA":
        raise FormatError("not an RSA JSON Web Key")
    try:
        public = rsa.RSAPublicNumbers(_b64_int(jwk["e"]), _b64_int(jwk["n"]))
        numbers = rsa.RSAPrivateNumbers(
            p=_b64_int(jwk["p"]),
            q=_b64_int(jwk["q"]),
            d=_b64_int(jwk["d"]),
            dmp1=_b64_int(jwk["dp"]),
            dmq1=_b64_int(jwk["dq"]),
            iqmp=_b64_int(jwk["qi"]),
            public_numbers=public,
        )
        return PrivateKeyHandle(numbers.private_key(), extractable=extractable)
    except (KeyError, TypeError, ValueError) as e:
        raise FormatError(f"invalid RSA private JWK: {e}") from e

def public_key_string(pub: PublicKeyHandle) -> str:
    return PUBLIC_PREFIX + pub.to_jwk()["n"]

def modulus_of(key_string: str) -> str:
    if not isinstance(key_string, str) or not key_string.startswith(PUBLIC_PREFIX):
        raise InvalidArgument(f"public key must start with {PUBLIC_PREFIX!r}")
    n = key_string[len(PUBLIC_PREFIX):]
    if not n:
        raise InvalidArgument("public key string has no modulus")
    return n

def import_public_key_string(key_string: str) -> PublicKeyHandle:
    """Rebuild an encrypt-only key from ``$ceph1-publ$jwk$<n>`` (e is always 65537)."""
    n = modulus_of(key_string)
    try:
        pub = rsa.RSAPublicNumbers(PUBLIC_EXPONENT, _b64_int(n)).public_key()
    except (FormatError, ValueError) as e:
        raise InvalidArgument(f"invalid public key modulus: {e}") from e
    return PublicKeyHandle(pub)

def private_pem(priv: PrivateKeyHandle, password: Optional[bytes] = None) -> str:
    enc = serialization.NoEncryption() if not password else serialization.BestAvailableEncryption(password)
    return priv._key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        enc,
    ).decode("ascii")

def load_private_pem(pem: str, password: Optional[bytes] = None) -> PrivateKeyHandle:
    try:
        key = serialization.load_pem_private_key(pem.encode("ascii"), password=password)
    except (TypeError, ValueError) as e:
        raise FormatError(f"cannot load private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise FormatError("stored private key is not an RSA key")
    return PrivateKeyHandle(key)

__all__ = [
    "PUBLIC_PREFIX",
    "PRIVATE_PREFIX",
    "PublicKeyHandle",
    "PrivateKeyHandle",
    "oaep",
    "public_jwk",
    "private_jwk",
    "gen_rsa_keypair",
    "import_private_jwk",
    "public_key_string",
    "modulus_of",
    "import_public_key_string",
    "private_pem",
    "load_private_pem",
]
