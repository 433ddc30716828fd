from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Decrypted:
    value: Any


@dataclass(frozen=True)
class AuthenticationFailed:
    reason: str = "authentication failed"


@dataclass(frozen=True)
class MalformedInput:
    reason: str


DecryptResult = Union[Decrypted, AuthenticationFailed, MalformedInput]

__all__ = ["Decrypted", "AuthenticationFailed", "MalformedInput", "DecryptResult"]
