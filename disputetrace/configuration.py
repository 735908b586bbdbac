"""Configuration loading and validation for disputetrace."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Tuple

import yaml

from .core.state import HASH_LENGTH, parse_hex, to_hex


@dataclass(frozen=True)
class TraceSection:
    directory: Path
    prestate: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TraceSection":
        return cls(
            directory=Path(_require_str(data, "directory")),
            prestate=_require_str(data, "prestate"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"directory": str(self.directory), "prestate": self.prestate}


@dataclass(frozen=True)
class GeneratorConfig:
    """How to invoke the external trace generator."""

    binary: str
    server: str
    server_args: Tuple[str, ...]
    snapshot_freq: int
    info_freq: int
    timeout_seconds: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeneratorConfig":
        server_args = data.get("server_args", [])
        if not isinstance(server_args, list) or not all(isinstance(arg, str) for arg in server_args):
            raise ValueError("server_args must be a list of strings")
        return cls(
            binary=_require_str(data, "binary"),
            server=_require_str(data, "server"),
            server_args=tuple(server_args),
            snapshot_freq=_require_positive_int(data, "snapshot_freq"),
            info_freq=_require_positive_int(data, "info_freq"),
            timeout_seconds=_require_non_negative_float(data, "timeout_seconds"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "binary": self.binary,
            "server": self.server,
            "server_args": list(self.server_args),
            "snapshot_freq": self.snapshot_freq,
            "info_freq": self.info_freq,
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass(frozen=True)
class LocalInputs:
    """Dispute-specific inputs handed to the program as local oracle data."""

    l1_head: bytes
    l2_head: bytes
    l2_output_root: bytes
    l2_claim: bytes
    l2_block_number: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LocalInputs":
        return cls(
            l1_head=_require_hash(data, "l1_head"),
            l2_head=_require_hash(data, "l2_head"),
            l2_output_root=_require_hash(data, "l2_output_root"),
            l2_claim=_require_hash(data, "l2_claim"),
            l2_block_number=_require_non_negative_int(data, "l2_block_number"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "l1_head": to_hex(self.l1_head),
            "l2_head": to_hex(self.l2_head),
            "l2_output_root": to_hex(self.l2_output_root),
            "l2_claim": to_hex(self.l2_claim),
            "l2_block_number": self.l2_block_number,
        }

    def to_args(self) -> List[str]:
        """Render the inputs as generator server flags."""

        return [
            "--l1.head", to_hex(self.l1_head),
            "--l2.head", to_hex(self.l2_head),
            "--l2.outputroot", to_hex(self.l2_output_root),
            "--l2.claim", to_hex(self.l2_claim),
            "--l2.blocknumber", str(self.l2_block_number),
        ]


@dataclass(frozen=True)
class AppConfig:
    trace: TraceSection
    generator: GeneratorConfig
    local_inputs: LocalInputs | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppConfig":
        if "trace" not in data:
            raise ValueError("Configuration missing 'trace' section")
        if "generator" not in data:
            raise ValueError("Configuration missing 'generator' section")
        local_inputs = None
        if data.get("local_inputs") is not None:
            local_inputs = LocalInputs.from_dict(_require_mapping(data, "local_inputs"))
        return cls(
            trace=TraceSection.from_dict(_require_mapping(data, "trace")),
            generator=GeneratorConfig.from_dict(_require_mapping(data, "generator")),
            local_inputs=local_inputs,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "trace": self.trace.to_dict(),
            "generator": self.generator.to_dict(),
        }
        if self.local_inputs is not None:
            result["local_inputs"] = self.local_inputs.to_dict()
        return result


def load_config(path: str | Path, overrides: Mapping[str, Any] | None = None) -> AppConfig:
    """Load an :class:`AppConfig` from ``path`` applying optional overrides."""

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"configuration file not found: {config_path}")

    raw_data = _load_yaml(config_path)
    if not isinstance(raw_data, MutableMapping):
        raise ValueError("Configuration root must be a mapping")

    merged = dict(raw_data)
    if overrides:
        merged = _apply_overrides(merged, overrides)

    return AppConfig.from_dict(merged)


def build_default_config(overrides: Mapping[str, Any] | None = None) -> AppConfig:
    """Construct an :class:`AppConfig` from the built-in defaults."""

    base = _deep_copy_mapping(_DEFAULTS)
    if overrides:
        base = _apply_overrides(base, overrides)
    return AppConfig.from_dict(base)


def _apply_overrides(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = _deep_copy_mapping(base)
    for key, value in overrides.items():
        parts = key.split(".")
        if not all(parts):
            raise ValueError(f"Invalid override key: {key!r}")
        cursor: Dict[str, Any] = result
        for part in parts[:-1]:
            if part not in cursor or not isinstance(cursor[part], dict):
                cursor[part] = {}
            cursor = cursor[part]
        cursor[parts[-1]] = value
    return result


def _load_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def _require_str(data: Mapping[str, Any], field: str) -> str:
    value = _require_value(data, field)
    if isinstance(value, Path):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Field {field} must be a non-empty string")
    return value


def _require_hash(data: Mapping[str, Any], field: str) -> bytes:
    value = parse_hex(_require_value(data, field), field)
    if len(value) != HASH_LENGTH:
        raise ValueError(f"{field} must be {HASH_LENGTH} bytes")
    return value


def _require_non_negative_int(data: Mapping[str, Any], field: str) -> int:
    value = _require_value(data, field)
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a valid integer for {field}")
    if isinstance(value, (int, float)) and int(value) == value:
        ivalue = int(value)
    elif isinstance(value, str) and value.strip():
        try:
            ivalue = int(value.replace("_", ""), 10)
        except ValueError as exc:
            raise ValueError(f"Invalid integer for {field}: {value!r}") from exc
    else:
        raise ValueError(f"Invalid integer for {field}: {value!r}")
    if ivalue < 0:
        raise ValueError(f"{field} must be >= 0")
    return ivalue


def _require_positive_int(data: Mapping[str, Any], field: str) -> int:
    ivalue = _require_non_negative_int(data, field)
    if ivalue == 0:
        raise ValueError(f"{field} must be > 0")
    return ivalue


def _require_non_negative_float(data: Mapping[str, Any], field: str) -> float:
    value = _require_value(data, field)
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a valid number for {field}")
    try:
        fvalue = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid number for {field}: {value!r}") from exc
    if fvalue < 0:
        raise ValueError(f"{field} must be >= 0")
    return fvalue


def _require_mapping(data: Mapping[str, Any], field: str) -> Mapping[str, Any]:
    value = _require_value(data, field)
    if not isinstance(value, Mapping):
        raise ValueError(f"Field {field} must be a mapping")
    return value


def _require_value(data: Mapping[str, Any], field: str) -> Any:
    if field not in data:
        raise ValueError(f"Missing required field: {field}")
    return data[field]


def _deep_copy_mapping(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Create a deep copy of ``data`` using YAML round-tripping."""

    return yaml.safe_load(yaml.safe_dump(dict(data)))


def parse_overrides(items: Iterable[str]) -> Dict[str, Any]:
    """Parse CLI style ``key=value`` override pairs into a mapping."""

    overrides: Dict[str, Any] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"Override '{item}' is not in key=value format")
        key, raw_value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override key must not be empty")
        overrides[key] = _coerce_value(raw_value.strip())
    return overrides


def _coerce_value(value: str) -> Any:
    # Hex strings stay strings so hashes survive untouched.
    if value.lower().startswith("0x"):
        return value
    try:
        return _require_non_negative_int({"value": value}, "value")
    except ValueError:
        pass
    return value


_DEFAULTS: Dict[str, Any] = {
    "trace": {
        "directory": "./trace-data",
        "prestate": "state.json",
    },
    "generator": {
        "binary": "./cannon/bin/cannon",
        "server": "./op-program/bin/op-program",
        "server_args": [],
        "snapshot_freq": 1_000_000_000,
        "info_freq": 10_000_000,
        "timeout_seconds": 0,
    },
}


__all__ = [
    "AppConfig",
    "GeneratorConfig",
    "LocalInputs",
    "TraceSection",
    "build_default_config",
    "load_config",
    "parse_overrides",
]
