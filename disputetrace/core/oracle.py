"""Preimage oracle key classification.

Oracle keys are 32 bytes whose leading byte names the key type.  Local keys
address data bound to the dispute itself (the L1 head, the disputed claim and
so on) and are served from the game's local inputs; every other type is
content addressed and fetched from the global preimage oracle.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict

from .state import HASH_LENGTH, to_hex


class KeyType(IntEnum):
    LOCAL = 1
    KECCAK256 = 2
    GLOBAL_GENERIC = 3
    PRECOMPILE = 4
    SHA256 = 5
    BLOB = 6


class LocalKey(IntEnum):
    """Identifiers of the local inputs exposed to the program."""

    L1_HEAD = 1
    L2_OUTPUT_ROOT = 2
    L2_CLAIM = 3
    L2_CLAIM_BLOCK_NUMBER = 4
    L2_CHAIN_ID = 5


@dataclass(frozen=True)
class OracleDatum:
    """Oracle request/response pair for a single step transition."""

    is_local: bool
    oracle_key: bytes
    oracle_data: bytes
    oracle_offset: int = 0

    @property
    def empty(self) -> bool:
        return not self.oracle_key and not self.oracle_data

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_local": self.is_local,
            "oracle_key": to_hex(self.oracle_key),
            "oracle_data": to_hex(self.oracle_data),
            "oracle_offset": self.oracle_offset,
        }


def key_type(key: bytes) -> KeyType | None:
    """Return the type tag of ``key`` or ``None`` if it is unknown."""

    if not key:
        return None
    try:
        return KeyType(key[0])
    except ValueError:
        return None


def is_local_key(key: bytes) -> bool:
    return key_type(key) is KeyType.LOCAL


def local_key(ident: int) -> bytes:
    """Build the local oracle key for local input ``ident``."""

    if not 0 <= ident < 1 << 8 * (HASH_LENGTH - 1):
        raise ValueError(f"local key identifier out of range: {ident}")
    return bytes([KeyType.LOCAL]) + ident.to_bytes(HASH_LENGTH - 1, "big")


def local_key_ident(key: bytes) -> int | None:
    """Return the local input identifier carried by ``key``."""

    if not is_local_key(key):
        return None
    return int.from_bytes(key[1:], "big")


def new_oracle_datum(key: bytes | None, value: bytes | None, offset: int | None) -> OracleDatum:
    """Classify a proof record's raw oracle fields.

    Steps without an oracle read carry no key or value; they yield an empty,
    non-local datum.
    """

    key = key or b""
    return OracleDatum(
        is_local=is_local_key(key),
        oracle_key=key,
        oracle_data=value or b"",
        oracle_offset=offset or 0,
    )


__all__ = [
    "KeyType",
    "LocalKey",
    "OracleDatum",
    "is_local_key",
    "key_type",
    "local_key",
    "local_key_ident",
    "new_oracle_datum",
]
