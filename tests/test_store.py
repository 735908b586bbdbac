from __future__ import annotations

import json
from pathlib import Path

import pytest

from disputetrace.core.context import Context
from disputetrace.core.errors import InvalidRecord, PreStateInvalid
from disputetrace.core.state import MachineState
from disputetrace.core.store import ProofRecord, ProofStore


@pytest.fixture
def store(tmp_path: Path) -> ProofStore:
    return ProofStore(tmp_path)


def test_missing_records_read_as_none(store: ProofStore) -> None:
    ctx = Context.background()
    assert store.read_proof(ctx, 0) is None
    assert store.read_terminal(ctx) is None


def test_record_decoding_is_forward_compatible(store: ProofStore) -> None:
    store.proofs_dir.mkdir()
    store.proof_path(4).write_text(
        json.dumps({"post": "0x" + "ab" * 32, "state-data": "0x01", "new-field": {"x": 1}}),
        encoding="utf-8",
    )
    record = store.read_proof(Context.background(), 4)
    assert record == ProofRecord(claim_value=bytes([0xAB]) * 32, state_data=b"\x01")
    assert record.oracle_key is None


@pytest.mark.parametrize(
    "content",
    [
        "{broken",
        "[1, 2]",
        json.dumps({"post": 12}),
        json.dumps({"state-data": "0xnothex"}),
        json.dumps({"oracle-offset": -1}),
        json.dumps({"oracle-offset": "4"}),
    ],
)
def test_malformed_records_are_invalid(store: ProofStore, content: str) -> None:
    store.proofs_dir.mkdir()
    store.proof_path(4).write_text(content, encoding="utf-8")
    with pytest.raises(InvalidRecord):
        store.read_proof(Context.background(), 4)


def test_malformed_terminal_is_invalid(store: ProofStore) -> None:
    store.terminal_path.write_text(json.dumps({"registers": "nope"}), encoding="utf-8")
    with pytest.raises(InvalidRecord):
        store.read_terminal(Context.background())


def test_directory_in_place_of_record_is_invalid(store: ProofStore) -> None:
    store.proof_path(5).mkdir(parents=True)
    store.terminal_path.mkdir()
    with pytest.raises(InvalidRecord) as excinfo:
        store.read_proof(Context.background(), 5)
    assert isinstance(excinfo.value.__cause__, OSError)
    with pytest.raises(InvalidRecord):
        store.read_terminal(Context.background())


def test_directory_in_place_of_prestate_is_invalid(store: ProofStore) -> None:
    store.prestate_path("state.json").mkdir(parents=True)
    with pytest.raises(PreStateInvalid):
        store.read_prestate(Context.background(), "state.json")


def test_zero_oracle_offset_is_kept(store: ProofStore) -> None:
    record = ProofRecord(oracle_key=bytes(32), oracle_value=b"\x01", oracle_offset=0)
    assert record.to_dict()["oracle-offset"] == 0
    assert store.write_proof(2, record)
    assert store.read_proof(Context.background(), 2) == record


def test_proof_records_are_write_once(store: ProofStore) -> None:
    first = ProofRecord(claim_value=bytes(32), state_data=b"\x01", oracle_offset=3)
    second = ProofRecord(claim_value=bytes([1]) * 32)
    assert store.write_proof(1, first)
    assert not store.write_proof(1, second)
    assert store.read_proof(Context.background(), 1) == first
    assert [path.name for path in store.proofs_dir.iterdir()] == ["1.json"]


def test_terminal_record_is_write_once(store: ProofStore) -> None:
    first = MachineState(step=10, exited=True)
    assert store.write_terminal(first)
    assert not store.write_terminal(MachineState(step=20, exited=True))
    assert store.read_terminal(Context.background()) == first


def test_terminal_record_must_have_exited(store: ProofStore) -> None:
    with pytest.raises(ValueError):
        store.write_terminal(MachineState(step=10))
    assert not store.terminal_path.exists()


def test_publish_keeps_existing_target(store: ProofStore, tmp_path: Path) -> None:
    source = tmp_path / "source.json"
    target = tmp_path / "nested" / "target.json"
    source.write_text("new", encoding="utf-8")
    assert store.publish(source, target)
    assert target.read_text(encoding="utf-8") == "new"

    source.write_text("newer", encoding="utf-8")
    assert not store.publish(source, target)
    assert target.read_text(encoding="utf-8") == "new"
    assert not source.exists()
