"""On-disk proof records for a single trace directory.

Layout::

    <directory>/proofs/<index>.json   one ProofRecord per generated step
    <directory>/final.json            terminal state once the machine halted
    <directory>/snapshots/<step>.json generator restart points
    <directory>/<prestate>            absolute pre-state

Records are write-once.  Writers publish through a temporary file and an
atomic rename so readers observe either a complete file or none at all; a
reader therefore never needs a lock.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

from .context import Context
from .errors import InvalidRecord, PreStateInvalid, PreStateUnavailable
from .state import MachineState, parse_hex, to_hex

logger = logging.getLogger(__name__)

PROOFS_DIR = "proofs"
SNAPSHOTS_DIR = "snapshots"
FINAL_STATE = "final.json"

_BYTES_FIELDS = {
    "post": "claim_value",
    "state-data": "state_data",
    "proof-data": "proof_data",
    "oracle-key": "oracle_key",
    "oracle-value": "oracle_value",
}


@dataclass(frozen=True)
class ProofRecord:
    """Persisted proof for a single step.

    Every field is optional at decode time; queries validate only the fields
    they need.
    """

    claim_value: bytes | None = None
    state_data: bytes | None = None
    proof_data: bytes | None = None
    oracle_key: bytes | None = None
    oracle_value: bytes | None = None
    oracle_offset: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProofRecord":
        if not isinstance(data, Mapping):
            raise ValueError("proof record must be a JSON object")
        values: Dict[str, Any] = {}
        for key, attribute in _BYTES_FIELDS.items():
            raw = data.get(key)
            if raw is not None:
                values[attribute] = parse_hex(raw, key)
        offset = data.get("oracle-offset")
        if offset is not None:
            if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
                raise ValueError(f"oracle-offset must be a non-negative integer, got {offset!r}")
            values["oracle_offset"] = offset
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, attribute in _BYTES_FIELDS.items():
            value = getattr(self, attribute)
            if value is not None:
                result[key] = to_hex(value)
        if self.oracle_offset is not None:
            result["oracle-offset"] = self.oracle_offset
        return result


class ProofStore:
    """Reads and writes the records of one trace directory."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    @property
    def proofs_dir(self) -> Path:
        return self.directory / PROOFS_DIR

    @property
    def snapshots_dir(self) -> Path:
        return self.directory / SNAPSHOTS_DIR

    @property
    def terminal_path(self) -> Path:
        return self.directory / FINAL_STATE

    def proof_path(self, index: int) -> Path:
        return self.proofs_dir / f"{index}.json"

    def prestate_path(self, filename: str | os.PathLike[str]) -> Path:
        return self.directory / filename

    # -- reads ------------------------------------------------------------

    def read_proof(self, ctx: Context, index: int) -> ProofRecord | None:
        """Return the proof for ``index`` or ``None`` if not yet generated."""

        path = self.proof_path(index)
        data = self._read_json(ctx, path)
        if data is None:
            return None
        try:
            return ProofRecord.from_dict(data)
        except ValueError as exc:
            raise InvalidRecord(path, str(exc)) from exc

    def read_terminal(self, ctx: Context) -> MachineState | None:
        """Return the final state or ``None`` if none has been written."""

        path = self.terminal_path
        data = self._read_json(ctx, path)
        if data is None:
            return None
        try:
            return MachineState.from_dict(data)
        except ValueError as exc:
            raise InvalidRecord(path, str(exc)) from exc

    def read_prestate(self, ctx: Context, filename: str | os.PathLike[str]) -> MachineState:
        ctx.check()
        path = self.prestate_path(filename)
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError as exc:
            raise PreStateUnavailable(f"cannot open state file ({path})") from exc
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PreStateInvalid(f"invalid machine state ({path}): {exc}") from exc
        try:
            return MachineState.from_dict(data)
        except ValueError as exc:
            raise PreStateInvalid(f"invalid machine state ({path}): {exc}") from exc

    # -- writes -----------------------------------------------------------

    def write_proof(self, index: int, record: ProofRecord) -> bool:
        return self._write_once(self.proof_path(index), record.to_dict())

    def write_terminal(self, state: MachineState) -> bool:
        if not state.exited:
            raise ValueError("terminal state must have exited")
        return self._write_once(self.terminal_path, state.to_dict())

    def publish(self, source: Path, target: Path) -> bool:
        """Move a fully written ``source`` file into place unless ``target`` exists."""

        if target.exists():
            logger.debug("Keeping existing record %s", target)
            source.unlink()
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        return True

    # -- internals --------------------------------------------------------

    def _read_json(self, ctx: Context, path: Path) -> Any:
        ctx.check()
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidRecord(path, str(exc)) from exc

    def _write_once(self, target: Path, payload: Mapping[str, Any]) -> bool:
        if target.exists():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
            return self.publish(Path(tmp_name), target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


__all__ = [
    "FINAL_STATE",
    "PROOFS_DIR",
    "ProofRecord",
    "ProofStore",
    "SNAPSHOTS_DIR",
]
