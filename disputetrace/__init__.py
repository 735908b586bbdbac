"""Lazily generated, disk-cached trace proofs for fault dispute games."""

from .configuration import (
    AppConfig,
    GeneratorConfig,
    LocalInputs,
    TraceSection,
    build_default_config,
    load_config,
    parse_overrides,
)
from .core.context import Context
from .core.errors import (
    Cancelled,
    GenerationFailed,
    InvalidRecord,
    MissingCommitment,
    MissingRequiredField,
    MissingStateData,
    PreStateInvalid,
    PreStateUnavailable,
    TraceProviderError,
)
from .core.generator import Executor, ProofGenerator
from .core.oracle import OracleDatum, is_local_key, new_oracle_datum
from .core.provider import TraceProvider
from .core.state import MachineState, keccak256
from .core.store import ProofRecord, ProofStore

__all__ = [
    "AppConfig",
    "GeneratorConfig",
    "LocalInputs",
    "TraceSection",
    "build_default_config",
    "load_config",
    "parse_overrides",
    "Context",
    "Cancelled",
    "GenerationFailed",
    "InvalidRecord",
    "MissingCommitment",
    "MissingRequiredField",
    "MissingStateData",
    "PreStateInvalid",
    "PreStateUnavailable",
    "TraceProviderError",
    "Executor",
    "ProofGenerator",
    "OracleDatum",
    "is_local_key",
    "new_oracle_datum",
    "TraceProvider",
    "MachineState",
    "keccak256",
    "ProofRecord",
    "ProofStore",
]
