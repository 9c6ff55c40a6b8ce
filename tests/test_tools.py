"""Tests for tool argument handling, confirmation and the two tools."""

import shutil
import sys
import time
from unittest.mock import patch

import pytest

from chalk_cli.tools import (
    COMMAND_DENIED,
    NO_OUTPUT,
    WRITE_DENIED,
    InvalidArgs,
    RunCommandArgs,
    UnknownTool,
    WriteFileArgs,
    classify,
    confirm,
    dispatch,
    parse_arguments,
    run_shell_command,
    write_file,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh")


@pytest.fixture
def approve():
    with patch("chalk_cli.tools.confirm", return_value=True) as mock_confirm:
        yield mock_confirm


@pytest.fixture
def deny():
    with patch("chalk_cli.tools.confirm", return_value=False) as mock_confirm:
        yield mock_confirm


# ---------------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------------


class TestParseArguments:
    def test_json_string(self):
        assert parse_arguments('{"command": "ls"}') == {"command": "ls"}

    def test_mapping_passes_through(self):
        params = {"filepath": "a.txt", "content": ""}
        assert parse_arguments(params) is params

    def test_malformed_json_is_empty(self):
        assert parse_arguments("{oops") == {}

    def test_non_object_json_is_empty(self):
        assert parse_arguments("[1, 2]") == {}

    def test_none_is_empty(self):
        assert parse_arguments(None) == {}


class TestClassify:
    def test_run_command(self):
        assert classify("tool_run", {"command": "ls -la"}) == RunCommandArgs("ls -la")

    def test_write_file(self):
        assert classify("tool_edit", {"filepath": "a.py", "content": ""}) == WriteFileArgs(
            "a.py", ""
        )

    def test_missing_command(self):
        args = classify("tool_run", {})
        assert isinstance(args, InvalidArgs)
        assert "command" in args.reason

    def test_non_string_command(self):
        assert isinstance(classify("tool_run", {"command": ["ls"]}), InvalidArgs)

    def test_missing_content(self):
        args = classify("tool_edit", {"filepath": "a.py"})
        assert isinstance(args, InvalidArgs)
        assert "content" in args.reason

    def test_unknown(self):
        assert classify("tool_delete", {}) == UnknownTool("tool_delete")


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


class TestConfirm:
    @pytest.mark.parametrize("answer", ["", "y", "yes", "Y", "sure", "  "])
    def test_anything_but_no_approves(self, answer):
        with patch("chalk_cli.fmt.ask", return_value=answer):
            assert confirm("Run this command?") is True

    @pytest.mark.parametrize("answer", ["n", "no", "N", "NO", " no "])
    def test_no_denies(self, answer):
        with patch("chalk_cli.fmt.ask", return_value=answer):
            assert confirm("Run this command?") is False

    def test_eof_denies(self):
        with patch("chalk_cli.fmt.ask", side_effect=EOFError):
            assert confirm("Write this file?") is False

    def test_question_shows_default(self):
        with patch("chalk_cli.fmt.ask", return_value="") as mock_ask:
            confirm("Run this command?")
        assert "(Y/n)" in mock_ask.call_args.args[0]


# ---------------------------------------------------------------------------
# tool_run
# ---------------------------------------------------------------------------


@posix_only
class TestRunShellCommand:
    def test_success_returns_stdout(self, tmp_path, approve):
        result = run_shell_command("echo hello", str(tmp_path))
        assert result.success is True
        assert result.output == "hello"

    def test_no_output_placeholder(self, tmp_path, approve):
        result = run_shell_command("true", str(tmp_path))
        assert result.success is True
        assert result.output == NO_OUTPUT

    def test_stdout_and_stderr_joined(self, tmp_path, approve):
        result = run_shell_command("echo out; echo err >&2", str(tmp_path))
        assert result.output == "out\nerr"

    def test_nonzero_exit_reports_output(self, tmp_path, approve):
        result = run_shell_command("echo broken >&2; exit 3", str(tmp_path))
        assert result.success is False
        assert result.output == "broken"

    def test_nonzero_exit_without_output(self, tmp_path, approve):
        result = run_shell_command("exit 4", str(tmp_path))
        assert result.success is False
        assert "exit code 4" in result.output

    def test_runs_in_base_dir(self, tmp_path, approve):
        result = run_shell_command("pwd", str(tmp_path))
        assert result.output == str(tmp_path.resolve())

    def test_shell_features(self, tmp_path, approve):
        result = run_shell_command("printf 'a\\nb\\n' | wc -l", str(tmp_path))
        assert result.output.strip() == "2"

    def test_timeout(self, tmp_path, approve):
        result = run_shell_command("sleep 5", str(tmp_path), timeout=0.5)
        assert result.success is False
        assert "timed out" in result.output

    def test_timeout_keeps_partial_output(self, tmp_path, approve):
        result = run_shell_command("echo started; sleep 5", str(tmp_path), timeout=0.5)
        assert result.success is False
        assert "started" in result.output

    @pytest.mark.skipif(shutil.which("setsid") is None, reason="needs setsid")
    def test_detached_background_job_does_not_block(self, tmp_path, approve):
        start = time.monotonic()
        run_shell_command("setsid sleep 6 &", str(tmp_path), timeout=1)
        assert time.monotonic() - start < 5

    def test_background_job_does_not_hold_result(self, tmp_path, approve):
        start = time.monotonic()
        result = run_shell_command("sleep 6 & echo started", str(tmp_path), timeout=10)
        assert time.monotonic() - start < 5
        assert result.success is True
        assert result.output == "started"

    def test_denied_does_not_run(self, tmp_path, deny):
        marker = tmp_path / "marker"
        result = run_shell_command(f"touch {marker}", str(tmp_path))
        assert result.success is False
        assert result.output == COMMAND_DENIED
        assert not marker.exists()

    def test_prints_command_before_asking(self, tmp_path, approve, capsys):
        run_shell_command("echo hi", str(tmp_path))
        assert "$ echo hi" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# tool_edit
# ---------------------------------------------------------------------------


class TestWriteFile:
    def test_creates_parent_directories(self, tmp_path, approve):
        result = write_file("src/pkg/mod.py", "x = 1\n", str(tmp_path))
        target = tmp_path / "src" / "pkg" / "mod.py"
        assert result.success is True
        assert target.read_text() == "x = 1\n"
        assert str(target.resolve()) in result.output

    def test_overwrites_existing(self, tmp_path, approve):
        target = tmp_path / "notes.txt"
        target.write_text("old contents that are longer")
        write_file("notes.txt", "new", str(tmp_path))
        assert target.read_text() == "new"

    def test_line_count(self, tmp_path, approve):
        result = write_file("a.txt", "one\ntwo\nthree", str(tmp_path))
        assert result.output.endswith("(3 lines)")

    def test_empty_content(self, tmp_path, approve):
        result = write_file("empty.txt", "", str(tmp_path))
        assert result.success is True
        assert (tmp_path / "empty.txt").read_text() == ""

    def test_absolute_path(self, tmp_path, approve):
        target = tmp_path / "abs.txt"
        write_file(str(target), "data", "/nonexistent-base")
        assert target.read_text() == "data"

    def test_denied_leaves_file_untouched(self, tmp_path, deny):
        target = tmp_path / "keep.txt"
        target.write_text("kept as is")
        result = write_file("keep.txt", "replaced", str(tmp_path))
        assert result.output == WRITE_DENIED
        assert target.read_text() == "kept as is"

    def test_write_failure(self, tmp_path, approve):
        (tmp_path / "blocker").write_text("a file, not a directory")
        result = write_file("blocker/child.txt", "x", str(tmp_path))
        assert result.success is False
        assert result.output.startswith("Failed to write:")


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_unknown_tool(self, tmp_path):
        result = dispatch("rm_rf", {}, str(tmp_path))
        assert result.success is False
        assert result.output == "Unknown tool: rm_rf"

    def test_invalid_arguments(self, tmp_path):
        result = dispatch("tool_edit", {"content": "x"}, str(tmp_path))
        assert result.success is False
        assert result.output.startswith("Invalid arguments for tool_edit")

    def test_routes_write(self, tmp_path, approve):
        result = dispatch("tool_edit", {"filepath": "f.txt", "content": "hi"}, str(tmp_path))
        assert result.success is True
        assert (tmp_path / "f.txt").read_text() == "hi"
