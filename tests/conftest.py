from __future__ import annotations

import shutil
from pathlib import Path
from typing import List

import pytest

from disputetrace.core.context import Context
from disputetrace.core.generator import ProofGenerator
from disputetrace.core.provider import TraceProvider
from disputetrace.core.state import MachineState
from disputetrace.core.store import PROOFS_DIR, ProofRecord, ProofStore

TEST_DATA = Path(__file__).parent / "test_data"


class StubGenerator(ProofGenerator):
    """Records requested steps and writes records the way the executor does."""

    def __init__(self) -> None:
        self.generated: List[int] = []
        self.final_state: MachineState | None = None
        self.proof: ProofRecord | None = None

    def generate_proof(self, ctx: Context, directory: Path, index: int) -> None:
        self.generated.append(index)
        store = ProofStore(directory)
        if self.final_state is not None and self.final_state.step <= index:
            store.write_terminal(self.final_state)
            return
        if self.proof is not None:
            store.write_proof(index, self.proof)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "trace"
    shutil.copytree(TEST_DATA / "proofs", directory / PROOFS_DIR)
    return directory


@pytest.fixture
def generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def provider(data_dir: Path, generator: StubGenerator) -> TraceProvider:
    return TraceProvider(data_dir, generator, prestate="state.json")


@pytest.fixture
def ctx() -> Context:
    return Context.background()
