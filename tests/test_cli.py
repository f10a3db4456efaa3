"""CLI tests: dispatcher surface and the end-to-end skip scenario."""

import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

import setup_runner.lifecycle
from setup_runner.cli import cli

SRC_DIR = Path(setup_runner.lifecycle.__file__).resolve().parents[1]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, config):
    """Invoke the CLI against the isolated layout."""

    def _invoke(*args):
        return runner.invoke(
            cli,
            [
                "--root", str(config.target_root),
                "--logs-root", str(config.logs_root),
                "--state-root", str(config.state_root),
                "--tz", "UTC",
                *args,
            ],
        )

    return _invoke


@pytest.fixture
def importable_src(monkeypatch):
    """Let stub action processes import setup_runner."""
    monkeypatch.setenv("PYTHONPATH", str(SRC_DIR))


def write_lifecycle_action(catalog_dir: Path, name: str, marker: Path) -> None:
    catalog_dir.mkdir(parents=True, exist_ok=True)
    (catalog_dir / f"{name}.py").write_text(textwrap.dedent(f"""\
        from setup_runner.lifecycle import action_main


        def work(ctx):
            \"\"\"Writes a marker file.\"\"\"
            with open({str(marker)!r}, "a") as f:
                f.write("ran\\n")


        action_main({name!r}, work, version="1.0.0")
    """))


class TestHelpAndVersion:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "setup-runner list" in result.output

    def test_short_help(self, runner):
        result = runner.invoke(cli, ["-h"])
        assert result.exit_code == 0
        assert "Usage" in result.output

    def test_version_unknown_when_not_staged(self, invoke):
        result = invoke("version")
        assert result.exit_code == 0
        assert result.output.strip() == "unknown"

    def test_version_from_file(self, invoke, config):
        config.target_root.mkdir(parents=True)
        (config.target_root / "VERSION").write_text("3.1.4\n")
        assert invoke("version").output.strip() == "3.1.4"


class TestList:
    def test_missing_catalog_exits_1(self, invoke):
        result = invoke("list")
        assert result.exit_code == 1
        assert "Action catalog not found" in result.output

    def test_empty_catalog(self, invoke, config):
        config.catalog_dir.mkdir(parents=True)
        result = invoke("list")
        assert result.exit_code == 0
        assert result.output == ""

    def test_one_name_per_line(self, invoke, config, stub):
        for name in ("b", "a"):
            stub(config.catalog_dir, name)
        result = invoke("list")
        assert result.output.splitlines() == ["a", "b"]


class TestRun:
    @pytest.mark.parametrize("code", [0, 1, 2, 127])
    def test_exit_code_passthrough(self, invoke, config, stub, code):
        stub(config.catalog_dir, "stub", f"sys.exit({code})")
        assert invoke("run", "stub").exit_code == code

    def test_shorthand(self, invoke, config, stub):
        stub(config.catalog_dir, "stub", "sys.exit(3)")
        assert invoke("stub").exit_code == 3

    def test_unknown_action_prints_usage(self, invoke, config):
        config.catalog_dir.mkdir(parents=True)
        result = invoke("run", "does-not-exist")
        assert result.exit_code != 0
        assert "Unknown action: does-not-exist" in result.output
        assert "Usage:" in result.output
        assert not config.log_path("does-not-exist").exists()
        assert not config.state_path("does-not-exist").exists()

    def test_unknown_shorthand(self, invoke, config):
        config.catalog_dir.mkdir(parents=True)
        result = invoke("does-not-exist")
        assert result.exit_code == 1
        assert "Unknown action" in result.output

    def test_force_forwarded_once(self, invoke, config, stub, tmp_path):
        out = tmp_path / "argv.txt"
        stub(config.catalog_dir, "echo-args", f"open({str(out)!r}, 'w').write(' '.join(sys.argv[1:]))")
        assert invoke("run", "--force", "echo-args", "--", "--user", "aryan").exit_code == 0
        assert out.read_text() == "--user aryan --force"
        assert invoke("echo-args", "--force", "--", "--multi").exit_code == 0
        assert out.read_text() == "--force --multi"


class TestEndToEnd:
    """Fresh environment: run, then re-run skips, then --force re-runs."""

    def test_install_then_skip_then_force(self, invoke, config, tmp_path, importable_src):
        marker = tmp_path / "marker.txt"
        write_lifecycle_action(config.catalog_dir, "install-x", marker)

        result = invoke("run", "install-x")
        assert result.exit_code == 0, result.output
        assert marker.read_text() == "ran\n"
        state = config.state_path("install-x").read_text()
        assert "status=success\n" in state
        assert "rc=0\n" in state
        mtime = marker.stat().st_mtime_ns

        assert invoke("run", "install-x").exit_code == 0
        assert marker.read_text() == "ran\n"
        assert marker.stat().st_mtime_ns == mtime
        assert "status=skipped\n" in config.state_path("install-x").read_text()

        assert invoke("install-x", "--force").exit_code == 0
        assert marker.read_text() == "ran\nran\n"

        status = invoke("status", "install-x")
        assert status.exit_code == 0
        assert "success" in status.output

    def test_action_help_has_no_side_effects(self, invoke, config, tmp_path, importable_src):
        marker = tmp_path / "marker.txt"
        write_lifecycle_action(config.catalog_dir, "install-x", marker)
        result = invoke("run", "install-x", "--help")
        assert result.exit_code == 0
        assert not marker.exists()
        assert not config.state_path("install-x").exists()


class TestStageCommand:
    def test_stage_then_list(self, invoke, config, stub, tmp_path):
        repo = tmp_path / "repo"
        for name in ("one", "two", "three"):
            stub(repo / "actions", name)
        result = invoke("stage", str(repo), "--no-path")
        assert result.exit_code == 0, result.output
        assert invoke("list").output.splitlines() == ["one", "three", "two"]


class TestStatusAndLogs:
    def test_status_never_run(self, invoke):
        result = invoke("status", "install-x")
        assert result.exit_code == 1
        assert "never run" in result.output

    def test_status_table_empty(self, invoke):
        result = invoke("status")
        assert result.exit_code == 0
        assert "No state records found." in result.output

    def test_wrap_records_and_skips(self, invoke, config, python_exe):
        result = invoke("wrap", "say-hi", "--", python_exe, "-c", "print('hi')")
        assert result.exit_code == 0, result.output
        table = invoke("status")
        assert "say-hi" in table.output
        assert "success" in table.output

        invoke("wrap", "say-hi", "--", python_exe, "-c", "print('hi')")
        assert "status=skipped" in config.state_path("say-hi").read_text()

        logs = invoke("logs", "say-hi", "--lines", "0")
        assert logs.exit_code == 0
        assert "Previous success recorded; skipping" in logs.output

    def test_wrap_multiline_command_is_recorded(self, invoke, config, python_exe, tmp_path):
        marker = tmp_path / "marker.txt"
        script = f"import pathlib\np = pathlib.Path({str(marker)!r})\np.write_text('ran')"
        result = invoke("wrap", "multi", "--", python_exe, "-c", script)
        assert result.exit_code == 0, result.output
        assert marker.read_text() == "ran"
        record = config.state_path("multi").read_text()
        assert "status=success\n" in record
        command_line = [l for l in record.splitlines() if l.startswith("command=")]
        assert len(command_line) == 1
        assert "p.write_text" in command_line[0]

    def test_wrap_failure_rc(self, invoke, config, python_exe):
        result = invoke("wrap", "fails", "--", python_exe, "-c", "import sys; sys.exit(4)")
        assert result.exit_code == 4
        assert "status=failed" in config.state_path("fails").read_text()

    def test_logs_missing(self, invoke):
        assert invoke("logs", "install-x").exit_code == 1

    def test_dispatcher_log(self, invoke, config, stub):
        stub(config.catalog_dir, "stub")
        invoke("run", "stub")
        result = invoke("logs", "dispatcher")
        assert result.exit_code == 0
        assert "run stub" in result.output
