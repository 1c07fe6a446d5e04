from __future__ import annotations

import os
from pathlib import Path

import pytest
from click.testing import CliRunner
from pydantic import ValidationError

from suiterun.cli import cli
from suiterun.config import RunConfig

needs_fork = pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")

PASSING = '''
from suiterun import case, group, wf


def check_connect(case):
    return 0


def check_send(case):
    assert 2 + 2 == 4


def suite():
    return wf(
        group("net", case("connect", check_connect), case("send", check_send, needs=["connect"])),
        group("disk", case("write")),
        group("api", case("get"), needs=["net"]),
    )
'''

FAILING = '''
from suiterun import case, group, wf

GROUPS = wf(
    group("G1", case("A", lambda c: 1), case("B", needs=["A"])),
)
'''

CYCLIC = '''
from suiterun import build

GROUPS = [
    build("G")
    .register("A")
    .register("B")
    .case_depends_on("A", "B")
    .case_depends_on("B", "A")
    .build()
]
'''


def _write_suite(tmp_path: Path, body: str, name: str = "demo_suite.py") -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return path


def test_passing_suite_exits_zero(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)
    report = tmp_path / "out.txt"

    result = CliRunner().invoke(cli, [str(suite), "-s", "-o", str(report)])

    assert result.exit_code == 0, result.output
    text = report.read_text(encoding="utf-8")
    assert text.splitlines()[0] == "demo_suite"
    assert "\t\tsend: PASS" in text
    assert "total=4 pass=4" in text
    assert "RESULTS" in result.output


def test_failing_suite_exits_one(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, FAILING)

    result = CliRunner().invoke(cli, [str(suite), "-s", "-o", "-"])

    assert result.exit_code == 1
    assert "\t\tA: FAIL" in result.output
    assert "\t\tB: SKIP" in result.output


def test_xml_to_stdout(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-s", "-f", "xml", "-o", "-"])

    assert result.exit_code == 0, result.output
    assert '<?xml version="1.0" encoding="UTF-8"?>' in result.output
    assert '<case id="connect" status="PASS"' in result.output


def test_group_selection_pulls_in_dependencies(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-s", "-g", "api", "-o", "-"])

    assert result.exit_code == 0, result.output
    assert "\tnet: PASS" in result.output
    assert "\tapi: PASS" in result.output
    assert "\tdisk:" not in result.output


def test_unknown_group_is_a_setup_error(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-s", "-g", "ghost", "-o", "-"])

    assert result.exit_code == 1
    assert "Setup failed" in result.output


def test_list_only(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "--list"])

    assert result.exit_code == 0
    assert "api (needs: net)" in result.output
    assert "    send (needs: connect)" in result.output
    assert "RUN STARTED" not in result.output


def test_cycle_runs_nothing(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, CYCLIC)
    report = tmp_path / "out.txt"

    result = CliRunner().invoke(cli, [str(suite), "-s", "-o", str(report)])

    assert result.exit_code == 1
    assert "Setup failed" in result.output
    assert "dependency loop" in result.output
    assert not report.exists()


def test_invalid_parallelism(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-p", "0"])

    assert result.exit_code == 2
    assert "Invalid options" in result.output


def test_missing_suite_file(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, [str(tmp_path / "nope.py")])

    assert result.exit_code == 1
    assert "Suite file not found" in result.output


def test_suite_discovery(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        Path("suiterun_suite.py").write_text(PASSING, encoding="utf-8")
        result = runner.invoke(cli, ["-s", "-o", "found.txt"])

        assert result.exit_code == 0, result.output
        assert "Suite: suiterun_suite.py" in result.output
        assert Path("found.txt").read_text(encoding="utf-8").startswith("suiterun_suite\n")


def test_suite_must_define_groups(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, "VALUE = 1\n")

    result = CliRunner().invoke(cli, [str(suite), "-s"])

    assert result.exit_code == 1
    assert "Setup failed" in result.output


@needs_fork
def test_sandboxed_run(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-p", "2", "-v", "-o", "-"])

    assert result.exit_code == 0, result.output
    assert "sandboxed (max 2 in parallel)" in result.output
    assert "utime=" in result.output


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------

def test_config_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SUITERUN_PARALLEL", "3")
    config = RunConfig()
    assert config.max_parallel == 3
    assert config.sandboxed


def test_config_rejects_bad_values() -> None:
    with pytest.raises(ValidationError):
        RunConfig(max_parallel=0)
    with pytest.raises(ValidationError):
        RunConfig(format="pdf")
    with pytest.raises(ValidationError):
        RunConfig(outfile="")


@needs_fork
def test_sandboxed_flag_overrides_simple(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite), "-s", "--sandboxed", "-p", "1", "-o", "-"])

    assert result.exit_code == 0, result.output
    assert "mode: sandboxed" in result.output


def test_bad_parallel_env_is_an_option_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SUITERUN_PARALLEL", "many")
    suite = _write_suite(tmp_path, PASSING)

    with pytest.raises(ValidationError):
        RunConfig()
    result = CliRunner().invoke(cli, [str(suite), "-s"])

    assert result.exit_code == 2
    assert "max_parallel" in result.output


def test_default_suite_wins_over_other_suites(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        Path("suiterun_suite.py").write_text(PASSING, encoding="utf-8")
        Path("other_suite.py").write_text(FAILING, encoding="utf-8")
        result = runner.invoke(cli, ["--list"])

        assert result.exit_code == 0, result.output
        assert "api (needs: net)" in result.output


def test_ambiguous_suites(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        Path("a_suite.py").write_text(PASSING, encoding="utf-8")
        Path("b_suite.py").write_text(FAILING, encoding="utf-8")
        result = runner.invoke(cli, ["--list"])

        assert result.exit_code == 1
        assert "Ambiguous suite" in result.output
        assert "a_suite.py" in result.output


def test_suffix_may_be_omitted(tmp_path: Path) -> None:
    suite = _write_suite(tmp_path, PASSING)

    result = CliRunner().invoke(cli, [str(suite.with_suffix("")), "--list"])

    assert result.exit_code == 0, result.output
