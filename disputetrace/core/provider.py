"""Trace proof resolution for the fault dispute game.

:class:`TraceProvider` answers the three per-step queries a dispute game
needs (state commitment, preimage oracle data, and the raw state/proof
pair) plus the absolute pre-state commitment.  Proofs are read from the
trace directory and generated on demand when missing; whatever the generator
writes is reused by every later query for the same step.

The one subtle case is a request past the end of the trace.  The generator
then writes the terminal state instead of a proof.  A commitment query is
answered by the terminal state itself, since every index at or beyond its
step commits to the same resting state.  Oracle and preimage queries need the
last real transition, so they fall back to the proof for ``step - 1``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Tuple, Union

from ..configuration import AppConfig
from .context import Context
from .errors import (
    GenerationFailed,
    InvalidRecord,
    MissingCommitment,
    MissingStateData,
    TraceProviderError,
)
from .generator import Executor, ProofGenerator
from .oracle import OracleDatum, new_oracle_datum
from .state import HASH_LENGTH, MachineState
from .store import ProofRecord, ProofStore

logger = logging.getLogger(__name__)

DEFAULT_PRESTATE = "state.json"


class Need(str, Enum):
    """What a query extracts from the resolved record."""

    COMMITMENT = "commitment"
    ORACLE = "oracle"
    PREIMAGE = "preimage"


@dataclass(frozen=True)
class StepProof:
    index: int
    record: ProofRecord


@dataclass(frozen=True)
class TerminalState:
    state: MachineState


Resolution = Union[StepProof, TerminalState]


class TraceProvider:
    """Serves per-step commitments and oracle data for one trace directory."""

    def __init__(
        self,
        directory: str | os.PathLike[str],
        generator: ProofGenerator,
        prestate: str | os.PathLike[str] = DEFAULT_PRESTATE,
    ) -> None:
        self.store = ProofStore(directory)
        self.generator = generator
        self.prestate = prestate

    @classmethod
    def from_config(cls, config: AppConfig) -> "TraceProvider":
        store = ProofStore(config.trace.directory)
        executor = Executor(
            config.generator,
            store.prestate_path(config.trace.prestate),
            config.local_inputs,
        )
        return cls(config.trace.directory, executor, config.trace.prestate)

    @property
    def directory(self) -> Path:
        return self.store.directory

    # -- queries ----------------------------------------------------------

    def get(self, ctx: Context, index: int) -> bytes:
        """Return the 32-byte commitment to the post-state at ``index``."""

        resolved = self.resolve(ctx, index, Need.COMMITMENT)
        if isinstance(resolved, TerminalState):
            return resolved.state.commitment()
        claim = resolved.record.claim_value
        if not claim:
            raise MissingCommitment(resolved.index)
        if len(claim) != HASH_LENGTH:
            raise InvalidRecord(
                self.store.proof_path(resolved.index),
                f"post must be {HASH_LENGTH} bytes, got {len(claim)}",
            )
        return claim

    def get_oracle_data(self, ctx: Context, index: int) -> OracleDatum:
        """Return the oracle request/response of the transition into ``index``."""

        resolved = self._resolve_transition(ctx, index, Need.ORACLE)
        record = resolved.record
        return new_oracle_datum(record.oracle_key, record.oracle_value, record.oracle_offset)

    def get_preimage(self, ctx: Context, index: int) -> Tuple[bytes, bytes]:
        """Return the ``(state_data, proof_data)`` pair for ``index``."""

        resolved = self._resolve_transition(ctx, index, Need.PREIMAGE)
        record = resolved.record
        if not record.state_data:
            raise MissingStateData(resolved.index)
        return record.state_data, record.proof_data or b""

    def absolute_pre_state_bytes(self, ctx: Context) -> bytes:
        """Return the witness encoding of the absolute pre-state."""

        return self.store.read_prestate(ctx, self.prestate).encode_witness()

    def absolute_pre_state(self, ctx: Context) -> bytes:
        """Return the commitment to the absolute pre-state."""

        return self.store.read_prestate(ctx, self.prestate).commitment()

    # -- resolution -------------------------------------------------------

    def resolve(self, ctx: Context, index: int, need: Need) -> Resolution:
        """Locate the record answering ``need`` at ``index``, generating it if missing.

        The generator runs at most once for the requested index and at most
        once more for the last transition when the trace turns out to end
        before ``index``.
        """

        if index < 0:
            raise ValueError(f"step index must not be negative: {index}")

        terminal = self._terminal_covering(ctx, index)
        if terminal is not None:
            if need is Need.COMMITMENT:
                return TerminalState(terminal)
            index = self._last_transition(terminal, index)

        record = self.store.read_proof(ctx, index)
        if record is None:
            self._generate(ctx, index)
            terminal = self._terminal_covering(ctx, index)
            if terminal is not None:
                if need is Need.COMMITMENT:
                    return TerminalState(terminal)
                index = self._last_transition(terminal, index)
                record = self.store.read_proof(ctx, index)
                if record is None:
                    self._generate(ctx, index)
                    record = self.store.read_proof(ctx, index)
            else:
                record = self.store.read_proof(ctx, index)

        if record is None:
            final = self.store.read_terminal(ctx)
            if final is not None and not final.exited:
                raise GenerationFailed(
                    f"expected proof not generated but final state was not exited, "
                    f"requested step {index}, final state at step {final.step}"
                )
            raise GenerationFailed(f"expected proof for step {index} was not generated")
        return StepProof(index, record)

    def _resolve_transition(self, ctx: Context, index: int, need: Need) -> StepProof:
        resolved = self.resolve(ctx, index, need)
        if not isinstance(resolved, StepProof):  # pragma: no cover - only commitments resolve to a terminal state
            raise TypeError(f"{need.value} query resolved to a terminal state")
        return resolved

    def _terminal_covering(self, ctx: Context, index: int) -> MachineState | None:
        terminal = self.store.read_terminal(ctx)
        # A final state that has not exited does not end the trace.
        if terminal is None or not terminal.exited:
            return None
        if index >= terminal.step:
            return terminal
        return None

    def _last_transition(self, terminal: MachineState, index: int) -> int:
        if terminal.step == 0:
            raise GenerationFailed(f"program exited at its pre-state; step {index} has no transition")
        logger.warning(
            "Requested step %d is after the program exited, using last step %d",
            index,
            terminal.step - 1,
        )
        return terminal.step - 1

    def _generate(self, ctx: Context, index: int) -> None:
        logger.info("Proof for step %d not found, generating", index)
        ctx.check()
        try:
            self.generator.generate_proof(ctx, self.store.directory, index)
        except TraceProviderError:
            raise
        except Exception as exc:
            raise GenerationFailed(f"generate proof at step {index}: {exc}") from exc


__all__ = [
    "DEFAULT_PRESTATE",
    "Need",
    "Resolution",
    "StepProof",
    "TerminalState",
    "TraceProvider",
]
