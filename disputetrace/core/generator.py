"""Gateway to the external trace generator.

The generator is expensive: it replays the program from the closest snapshot
up to the requested step.  :class:`Executor` runs it as a subprocess writing
into a private scratch directory, then publishes the produced files into the
trace directory with write-once renames so concurrent readers never observe a
partially written record.  It performs no caching of its own; deciding
whether generation is needed at all is up to the caller.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

from ..configuration import GeneratorConfig, LocalInputs
from .context import Context
from .errors import Cancelled, GenerationFailed
from .state import MachineState
from .store import PROOFS_DIR, SNAPSHOTS_DIR, ProofStore

logger = logging.getLogger(__name__)

_RECORD_NAME = re.compile(r"^[0-9]+\.json$")
_OUTPUT_STATE = "out.json"
_LOG_FILE = "generator.log"
_LOG_TAIL_BYTES = 2048


class ProofGenerator(ABC):
    """Produces the proof record for a step, or the terminal state."""

    @abstractmethod
    def generate_proof(self, ctx: Context, directory: Path, index: int) -> None:
        """Generate the record for ``index`` inside ``directory``.

        On return ``directory`` holds either ``proofs/<index>.json`` or a
        terminal ``final.json`` whose step is at most ``index``.
        """


class Executor(ProofGenerator):
    """Runs the generator binary for a single step."""

    def __init__(
        self,
        config: GeneratorConfig,
        prestate: str | os.PathLike[str],
        local_inputs: LocalInputs | None = None,
        *,
        poll_interval: float = 0.1,
        kill_grace: float = 5.0,
    ) -> None:
        self.config = config
        self.prestate = Path(prestate)
        self.local_inputs = local_inputs
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def generate_proof(self, ctx: Context, directory: Path, index: int) -> None:
        if index < 0:
            raise ValueError("step index must not be negative")
        ctx.check()
        if self.config.timeout_seconds > 0:
            ctx = ctx.with_timeout(self.config.timeout_seconds)

        store = ProofStore(directory)
        store.directory.mkdir(parents=True, exist_ok=True)
        start = find_starting_snapshot(store.snapshots_dir, self.prestate, index)
        scratch = Path(tempfile.mkdtemp(prefix=".generate-", dir=store.directory))
        try:
            (scratch / PROOFS_DIR).mkdir()
            (scratch / SNAPSHOTS_DIR).mkdir()
            args = self.build_args(start, scratch, index)
            logger.info("Generating trace with proof at %d from %s", index, start)
            logger.debug("Generator command: %s", args)
            self._run(ctx, args, scratch, index)
            self._publish(store, scratch, index)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def build_args(self, start: Path, scratch: Path, index: int) -> List[str]:
        args = [
            self.config.binary,
            "run",
            "--input", str(start),
            "--output", str(scratch / _OUTPUT_STATE),
            "--meta", "",
            "--info-at", f"%{self.config.info_freq}",
            "--proof-at", f"={index}",
            "--proof-fmt", str(scratch / PROOFS_DIR / "%d.json"),
            "--snapshot-at", f"%{self.config.snapshot_freq}",
            "--snapshot-fmt", str(scratch / SNAPSHOTS_DIR / "%d.json"),
            "--stop-at", f"={index + 1}",
            "--",
            self.config.server,
            "--server",
            *self.config.server_args,
        ]
        if self.local_inputs is not None:
            args.extend(self.local_inputs.to_args())
        return args

    # -- internals --------------------------------------------------------

    def _run(self, ctx: Context, args: Sequence[str], scratch: Path, index: int) -> None:
        log_path = scratch / _LOG_FILE
        with log_path.open("wb") as log_fh:
            try:
                proc = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=log_fh,
                    stderr=subprocess.STDOUT,
                )
            except OSError as exc:
                raise GenerationFailed(f"generate trace with proof at {index}: {exc}") from exc
            try:
                returncode = self._wait(ctx, proc)
            finally:
                if proc.poll() is None:
                    self._terminate(proc)
        if returncode != 0:
            raise GenerationFailed(
                f"generate trace with proof at {index}: generator exited with status "
                f"{returncode}: {_tail(log_path)}"
            )

    def _wait(self, ctx: Context, proc: subprocess.Popen) -> int:
        while True:
            try:
                return proc.wait(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                reason = ctx.reason()
                if reason is not None:
                    logger.warning("Stopping generator (pid %d): %s", proc.pid, reason)
                    raise Cancelled(reason) from None

    def _terminate(self, proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    def _publish(self, store: ProofStore, scratch: Path, index: int) -> None:
        for subdir, target_dir in ((PROOFS_DIR, store.proofs_dir), (SNAPSHOTS_DIR, store.snapshots_dir)):
            for path in sorted((scratch / subdir).iterdir()):
                if _RECORD_NAME.match(path.name):
                    store.publish(path, target_dir / path.name)

        output = scratch / _OUTPUT_STATE
        if not output.exists():
            return
        try:
            with output.open("r", encoding="utf-8") as fh:
                state = MachineState.from_dict(json.load(fh))
        except (UnicodeDecodeError, ValueError) as exc:
            raise GenerationFailed(f"generate trace with proof at {index}: invalid output state: {exc}") from exc
        if state.exited:
            logger.info("Program exited at step %d", state.step)
            store.publish(output, store.terminal_path)


def find_starting_snapshot(snapshots_dir: Path, prestate: Path, index: int) -> Path:
    """Return the newest snapshot strictly before ``index``, else ``prestate``."""

    try:
        entries = list(snapshots_dir.iterdir())
    except FileNotFoundError:
        return prestate

    best = 0
    for entry in entries:
        if entry.is_dir():
            logger.warning("Unexpected directory in snapshots dir: %s", entry)
            continue
        if not _RECORD_NAME.match(entry.name):
            logger.warning("Unexpected file in snapshots dir: %s", entry)
            continue
        step = int(entry.name[: -len(".json")])
        if best < step < index:
            best = step
    if best == 0:
        return prestate
    return snapshots_dir / f"{best}.json"


def _tail(path: Path) -> str:
    try:
        with path.open("rb") as fh:
            fh.seek(0, os.SEEK_END)
            size = fh.tell()
            fh.seek(max(0, size - _LOG_TAIL_BYTES))
            return fh.read().decode("utf-8", errors="replace").strip()
    except OSError:
        return ""


__all__ = ["Executor", "ProofGenerator", "find_starting_snapshot"]
