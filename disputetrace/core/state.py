"""Machine state snapshots and their witness encoding.

The witness is the fixed-layout binary form of a :class:`MachineState` whose
keccak-256 hash is the state commitment posted on chain.  The layout is::

    memRoot        32 bytes
    preimageKey    32 bytes
    preimageOffset  4 bytes  (big endian, as are all integers below)
    pc              4 bytes
    nextPC          4 bytes
    lo              4 bytes
    hi              4 bytes
    heap            4 bytes
    exitCode        1 byte
    exited          1 byte
    step            8 bytes
    registers      32 x 4 bytes

States are persisted as JSON objects using the camel-case keys above (with
``exit`` for the exit code).  Decoding ignores keys it does not know so the
generator may add fields without breaking older readers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from Crypto.Hash import keccak

HASH_LENGTH = 32
REGISTER_COUNT = 32
WITNESS_LENGTH = 2 * HASH_LENGTH + 6 * 4 + 1 + 1 + 8 + REGISTER_COUNT * 4

_UINT8_MAX = 0xFF
_UINT32_MAX = 0xFFFF_FFFF
_UINT64_MAX = 0xFFFF_FFFF_FFFF_FFFF
_ZERO_HASH = bytes(HASH_LENGTH)


def keccak256(data: bytes) -> bytes:
    """Return the keccak-256 digest of ``data``."""

    hasher = keccak.new(digest_bits=256)
    hasher.update(data)
    return hasher.digest()


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def parse_hex(value: Any, field_name: str) -> bytes:
    """Decode a ``0x``-prefixed (or bare) hex string into bytes."""

    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a hex string, got {type(value).__name__}")
    text = value[2:] if value[:2] in ("0x", "0X") else value
    if len(text) % 2:
        text = "0" + text
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise ValueError(f"{field_name} is not valid hex: {value!r}") from exc


@dataclass(frozen=True)
class MachineState:
    """Snapshot of the register machine at a single trace step."""

    mem_root: bytes = _ZERO_HASH
    preimage_key: bytes = _ZERO_HASH
    preimage_offset: int = 0
    pc: int = 0
    next_pc: int = 0
    lo: int = 0
    hi: int = 0
    heap: int = 0
    exit_code: int = 0
    exited: bool = False
    step: int = 0
    registers: Tuple[int, ...] = field(default=(0,) * REGISTER_COUNT)

    def __post_init__(self) -> None:
        for name in ("mem_root", "preimage_key"):
            if len(getattr(self, name)) != HASH_LENGTH:
                raise ValueError(f"{name} must be {HASH_LENGTH} bytes")
        for name in ("preimage_offset", "pc", "next_pc", "lo", "hi", "heap"):
            _check_range(name, getattr(self, name), _UINT32_MAX)
        _check_range("exit_code", self.exit_code, _UINT8_MAX)
        _check_range("step", self.step, _UINT64_MAX)
        if len(self.registers) != REGISTER_COUNT:
            raise ValueError(f"registers must hold exactly {REGISTER_COUNT} values")
        for index, value in enumerate(self.registers):
            _check_range(f"registers[{index}]", value, _UINT32_MAX)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MachineState":
        if not isinstance(data, Mapping):
            raise ValueError("machine state must be a JSON object")
        registers = data.get("registers", [0] * REGISTER_COUNT)
        if not isinstance(registers, list):
            raise ValueError("registers must be a list")
        return cls(
            mem_root=parse_hex(data.get("memRoot", _ZERO_HASH), "memRoot"),
            preimage_key=parse_hex(data.get("preimageKey", _ZERO_HASH), "preimageKey"),
            preimage_offset=_int_field(data, "preimageOffset"),
            pc=_int_field(data, "pc"),
            next_pc=_int_field(data, "nextPC"),
            lo=_int_field(data, "lo"),
            hi=_int_field(data, "hi"),
            heap=_int_field(data, "heap"),
            exit_code=_int_field(data, "exit"),
            exited=_bool_field(data, "exited"),
            step=_int_field(data, "step"),
            registers=tuple(_as_int(value, "registers") for value in registers),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memRoot": to_hex(self.mem_root),
            "preimageKey": to_hex(self.preimage_key),
            "preimageOffset": self.preimage_offset,
            "pc": self.pc,
            "nextPC": self.next_pc,
            "lo": self.lo,
            "hi": self.hi,
            "heap": self.heap,
            "exit": self.exit_code,
            "exited": self.exited,
            "step": self.step,
            "registers": list(self.registers),
        }

    def encode_witness(self) -> bytes:
        out = bytearray()
        out += self.mem_root
        out += self.preimage_key
        for value in (self.preimage_offset, self.pc, self.next_pc, self.lo, self.hi, self.heap):
            out += value.to_bytes(4, "big")
        out.append(self.exit_code)
        out.append(1 if self.exited else 0)
        out += self.step.to_bytes(8, "big")
        for value in self.registers:
            out += value.to_bytes(4, "big")
        return bytes(out)

    def commitment(self) -> bytes:
        """Return the keccak-256 commitment to this state's witness."""

        return witness_commitment(self.encode_witness())


def witness_commitment(witness: bytes) -> bytes:
    if len(witness) != WITNESS_LENGTH:
        raise ValueError(f"witness must be {WITNESS_LENGTH} bytes, got {len(witness)}")
    return keccak256(witness)


def _check_range(name: str, value: int, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} out of range: {value}")


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def _int_field(data: Mapping[str, Any], name: str) -> int:
    return _as_int(data.get(name, 0), name)


def _bool_field(data: Mapping[str, Any], name: str) -> bool:
    value = data.get(name, False)
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a boolean, got {value!r}")
    return value


__all__ = [
    "HASH_LENGTH",
    "MachineState",
    "REGISTER_COUNT",
    "WITNESS_LENGTH",
    "keccak256",
    "parse_hex",
    "to_hex",
    "witness_commitment",
]
