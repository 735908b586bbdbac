from __future__ import annotations

import pytest

from disputetrace.core.state import (
    REGISTER_COUNT,
    WITNESS_LENGTH,
    MachineState,
    keccak256,
    parse_hex,
    to_hex,
    witness_commitment,
)


def test_keccak256_known_vector():
    assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_witness_layout():
    state = MachineState(
        mem_root=bytes([0x11]) * 32,
        preimage_key=bytes([0x22]) * 32,
        preimage_offset=0x01020304,
        pc=4,
        next_pc=8,
        lo=1,
        hi=2,
        heap=0x20000000,
        exit_code=7,
        exited=True,
        step=0x0102030405060708,
        registers=tuple(range(REGISTER_COUNT)),
    )
    witness = state.encode_witness()
    assert len(witness) == WITNESS_LENGTH == 226
    assert witness[:32] == bytes([0x11]) * 32
    assert witness[32:64] == bytes([0x22]) * 32
    assert witness[64:68] == bytes([1, 2, 3, 4])
    assert witness[68:72] == (4).to_bytes(4, "big")
    assert witness[88] == 7
    assert witness[89] == 1
    assert witness[90:98] == bytes([1, 2, 3, 4, 5, 6, 7, 8])
    assert witness[98:102] == bytes(4)
    assert witness[-4:] == (31).to_bytes(4, "big")
    assert state.commitment() == keccak256(witness)


def test_commitment_is_deterministic_across_json():
    state = MachineState(pc=12, next_pc=16, step=99, registers=(5,) * REGISTER_COUNT)
    restored = MachineState.from_dict(state.to_dict())
    assert restored == state
    assert restored.commitment() == state.commitment()


def test_from_dict_ignores_unknown_keys_and_defaults_missing():
    state = MachineState.from_dict({"step": 3, "exited": True, "memory": [], "future": {"a": 1}})
    assert state.step == 3
    assert state.exited
    assert state.registers == (0,) * REGISTER_COUNT


@pytest.mark.parametrize(
    "payload",
    [
        {"registers": [0] * 31},
        {"pc": -1},
        {"pc": 2**32},
        {"exited": "yes"},
        {"step": "7"},
        {"memRoot": "0x1234"},
        {"preimageKey": "0xzz"},
        [],
    ],
)
def test_from_dict_rejects_malformed_state(payload):
    with pytest.raises(ValueError):
        MachineState.from_dict(payload)


def test_witness_commitment_checks_length():
    with pytest.raises(ValueError):
        witness_commitment(b"\x00" * 10)


def test_hex_helpers():
    assert parse_hex("0x0a0b", "field") == b"\x0a\x0b"
    assert parse_hex("a0b", "field") == b"\x0a\x0b"
    assert parse_hex("0x", "field") == b""
    assert to_hex(b"\xde\xad") == "0xdead"
    with pytest.raises(ValueError):
        parse_hex(12, "field")
