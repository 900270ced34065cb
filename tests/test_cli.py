import yaml
from typer.testing import CliRunner

from playground.cli import EXIT_TIMEOUT, app

runner = CliRunner()


def test_run_prints_output(tmp_path) -> None:
    script = tmp_path / "hello.py"
    script.write_text("print('hello from sandbox')\n")

    result = runner.invoke(app, ["run", str(script)])

    assert result.exit_code == 0
    assert "hello from sandbox" in result.output


def test_run_reads_stdin() -> None:
    result = runner.invoke(app, ["run", "-"], input="print(6 * 7)\n")

    assert result.exit_code == 0
    assert "42" in result.output


def test_run_user_error_exits_nonzero(tmp_path) -> None:
    script = tmp_path / "fail.py"
    script.write_text("raise KeyError('missing')\n")

    result = runner.invoke(app, ["run", str(script)])

    assert result.exit_code == 1
    assert "KeyError" in result.output


def test_run_timeout_exit_code(tmp_path) -> None:
    script = tmp_path / "loop.py"
    script.write_text("while True:\n    pass\n")

    result = runner.invoke(app, ["run", str(script), "--timeout-ms", "1000"])

    assert result.exit_code == EXIT_TIMEOUT
    assert "Timed out" in result.output


def test_run_rejects_unsupported_timeout(tmp_path) -> None:
    script = tmp_path / "hello.py"
    script.write_text("print(1)\n")

    result = runner.invoke(app, ["run", str(script), "--timeout-ms", "1234"])

    assert result.exit_code == 2


def test_run_empty_file(tmp_path) -> None:
    script = tmp_path / "empty.py"
    script.write_text("   \n")

    result = runner.invoke(app, ["run", str(script)])

    assert result.exit_code == 1
    assert "Please write some code first!" in result.output


def test_run_missing_file() -> None:
    result = runner.invoke(app, ["run", "/nonexistent/snippet.py"])

    assert result.exit_code == 1
    assert "File not found" in result.output


def test_check_reports_ready() -> None:
    result = runner.invoke(app, ["check"])

    assert result.exit_code == 0
    assert "Ready" in result.output


def test_check_reports_bootstrap_failure(tmp_path) -> None:
    config_file = tmp_path / "config.yaml"
    with open(config_file, "w") as f:
        yaml.dump({"engine": "no_such_engine_module:Engine"}, f)

    result = runner.invoke(app, ["check", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "Failed to load Python" in result.output


def test_shell_runs_snippets_until_quit() -> None:
    result = runner.invoke(app, ["shell"], input="print('one')\n\nprint('two')\n\n:quit\n")

    assert result.exit_code == 0
    assert "one" in result.output
    assert "two" in result.output
