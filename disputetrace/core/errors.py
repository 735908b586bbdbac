"""Error taxonomy for trace proof resolution.

A record that simply has not been generated yet is never an error: the store
returns ``None`` and the provider asks the generator for it.  Everything below
is surfaced to the caller unchanged.
"""

from __future__ import annotations


class TraceProviderError(Exception):
    """Base class for all errors raised by :mod:`disputetrace`."""


class MissingRequiredField(TraceProviderError):
    """A proof record exists but lacks the field a query needs."""

    def __init__(self, message: str, *, field: str, index: int) -> None:
        super().__init__(f"{message} (step {index})")
        self.field = field
        self.index = index


class MissingCommitment(MissingRequiredField):
    def __init__(self, index: int) -> None:
        super().__init__("proof missing post hash", field="post", index=index)


class MissingStateData(MissingRequiredField):
    def __init__(self, index: int) -> None:
        super().__init__("proof missing state data", field="state-data", index=index)


class InvalidRecord(TraceProviderError):
    """A record file is present but cannot be decoded."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"invalid record {path}: {reason}")
        self.path = path
        self.reason = reason


class GenerationFailed(TraceProviderError):
    """The generator failed or did not produce the expected record."""


class PreStateUnavailable(TraceProviderError):
    """The absolute pre-state file does not exist."""


class PreStateInvalid(TraceProviderError):
    """The absolute pre-state file exists but is not a valid machine state."""


class Cancelled(TraceProviderError):
    """The caller's context was cancelled or its deadline passed."""


__all__ = [
    "Cancelled",
    "GenerationFailed",
    "InvalidRecord",
    "MissingCommitment",
    "MissingRequiredField",
    "MissingStateData",
    "PreStateInvalid",
    "PreStateUnavailable",
    "TraceProviderError",
]
