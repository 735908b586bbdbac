"""Tests for the disputetrace CLI interface."""
from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from conftest import TEST_DATA
from disputetrace.configuration import load_config
from disputetrace.core.state import MachineState
from disputetrace.ops.cli import format_config, main

CONFIG_PATH = Path(__file__).parent.parent / "configs" / "disputetrace.default.yaml"


@pytest.fixture
def trace_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "trace"
    shutil.copytree(TEST_DATA / "proofs", directory / "proofs")
    shutil.copy(TEST_DATA / "state.json", directory / "state.json")
    return directory


def run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, str, str]:
    exit_code = main(["--config", str(CONFIG_PATH), *argv])
    captured = capsys.readouterr()
    return exit_code, captured.out, captured.err


def test_default_config_file_exists() -> None:
    assert CONFIG_PATH.exists()


@pytest.mark.parametrize("fmt", ["human", "json", "yaml"])
def test_format_config(fmt: str) -> None:
    rendered = format_config(load_config(CONFIG_PATH), fmt)
    assert "snapshot_freq" in rendered


def test_cli_validate_only(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code, out, _ = run(capsys, "--validate-only")
    assert exit_code == 0
    assert out == ""


def test_cli_prints_config_with_override(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code, out, _ = run(capsys, "--set", "generator.info_freq=77", "--format", "json")
    assert exit_code == 0
    assert json.loads(out)["generator"]["info_freq"] == 77


def test_cli_get(capsys: pytest.CaptureFixture[str], trace_dir: Path) -> None:
    exit_code, out, _ = run(capsys, "--dir", str(trace_dir), "--get", "0", "--format", "json")
    assert exit_code == 0
    assert json.loads(out) == {
        "index": 0,
        "commitment": "0x45fd9aa59768331c726e719e76aa343e73123af888804604785ae19506e65e87",
    }


def test_cli_oracle_data(capsys: pytest.CaptureFixture[str], trace_dir: Path) -> None:
    exit_code, out, _ = run(capsys, "--dir", str(trace_dir), "--oracle-data", "420", "--format", "yaml")
    assert exit_code == 0
    assert "is_local: false" in out
    assert "oracle_offset: 4" in out


def test_cli_preimage(capsys: pytest.CaptureFixture[str], trace_dir: Path) -> None:
    exit_code, out, _ = run(capsys, "--dir", str(trace_dir), "--preimage", "2", "--format", "json")
    assert exit_code == 0
    assert json.loads(out)["state_data"] == "0x" + "cc" * 32


def test_cli_absolute_prestate(capsys: pytest.CaptureFixture[str], trace_dir: Path) -> None:
    exit_code, out, _ = run(capsys, "--dir", str(trace_dir), "--absolute-prestate")
    assert exit_code == 0
    expected = MachineState(preimage_key=bytes([0xCC]) * 32, next_pc=1).commitment()
    assert "0x" + expected.hex() in out


def test_cli_query_error(capsys: pytest.CaptureFixture[str], trace_dir: Path) -> None:
    exit_code, out, err = run(capsys, "--dir", str(trace_dir), "--get", "1")
    assert exit_code == 1
    assert out == ""
    assert "missing post hash" in err


def test_cli_queries_are_mutually_exclusive(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        main(["--get", "1", "--preimage", "1"])


def test_cli_rejects_non_positive_timeout(trace_dir: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--config", str(CONFIG_PATH), "--dir", str(trace_dir), "--get", "0", "--timeout", "0"])


def test_cli_missing_config(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--config", str(tmp_path / "absent.yaml")])
