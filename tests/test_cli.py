import pytest
from click.testing import CliRunner

from smt_session.cli import cli


@pytest.fixture
def script(tmp_path):
    def _script(text):
        path = tmp_path / "script.smt2"
        path.write_text(text)
        return str(path)

    return _script


class TestCli:
    def test_runs_script(self, script):
        path = script(
            """
            (set-logic QF_LIA)
            (declare-const x Int)
            (assert (= (* 2 x) 6))
            (check-sat)
            (get-value (x))
            (exit)
            """
        )
        result = CliRunner().invoke(cli, [path])
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["sat", "((x 3))"]

    def test_error_stops_execution(self, script):
        path = script('(set-logic QF_LIA)\n(assert y)\n(echo "unreachable")')
        result = CliRunner().invoke(cli, [path])
        assert result.exit_code == 1
        assert result.stdout.startswith('(error "')
        assert "unreachable" not in result.stdout

    def test_command_line_options(self, script):
        path = script(
            """
            (set-logic QF_LIA)
            (assert false)
            (check-sat)
            (get-unsat-core)
            (get-option :produce-unsat-cores)
            """
        )
        result = CliRunner().invoke(cli, ["--option", "produce-unsat-cores=true", path])
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["unsat", "false", "true"]

    def test_malformed_option(self, script):
        result = CliRunner().invoke(cli, ["--option", "produce-models", script("(exit)")])
        assert result.exit_code == 2

    def test_log_file(self, script, tmp_path):
        log_file = tmp_path / "session.log"
        result = CliRunner().invoke(cli, ["--log", "DEBUG", "--log-file", str(log_file), script("(exit)")])
        assert result.exit_code == 0
