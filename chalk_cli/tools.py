"""Tool definitions and implementations for the chat loop.

Two capabilities are exposed to the model: running a shell command and
writing a file. Both ask the user for confirmation first.
"""

import json
import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from . import fmt

RUN_TOOL = "tool_run"
EDIT_TOOL = "tool_edit"

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": RUN_TOOL,
            "description": (
                "Execute a terminal command in the user's shell. Use for: npm, pip, brew, cargo, git, "
                "python, node, compiling, testing, installing packages, or any CLI operation. "
                "The command runs in the user's current working directory."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The shell command to execute",
                    },
                },
                "required": ["command"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": EDIT_TOOL,
            "description": (
                "Create or overwrite a file with the given content. Automatically creates parent "
                "directories. Use for writing code, config files, docs, or any text file."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "filepath": {
                        "type": "string",
                        "description": "File path (relative to cwd or absolute)",
                    },
                    "content": {
                        "type": "string",
                        "description": "The full file content to write",
                    },
                },
                "required": ["filepath", "content"],
            },
        },
    },
]

TOOL_NAMES = [t["function"]["name"] for t in TOOLS]

COMMAND_TIMEOUT = 120  # seconds
NO_OUTPUT = "(completed, no output)"
COMMAND_DENIED = "User denied command execution."
WRITE_DENIED = "User denied file write."

_KILL_WAIT_TIMEOUT = 5  # seconds to wait for process to die after kill signals
_DRAIN_TIMEOUT = 2  # seconds to collect remaining output once the shell is gone


@dataclass
class ToolResult:
    output: str
    success: bool


# -- Argument shapes ---------------------------------------------------------


@dataclass
class RunCommandArgs:
    command: str


@dataclass
class WriteFileArgs:
    filepath: str
    content: str


@dataclass
class InvalidArgs:
    """Arguments that do not fit the named tool (missing or mistyped fields)."""

    tool: str
    reason: str


@dataclass
class UnknownTool:
    name: str


ToolArgs = RunCommandArgs | WriteFileArgs | InvalidArgs | UnknownTool


def parse_arguments(raw) -> dict:
    """Decode tool-call arguments: a JSON string or an already-decoded mapping.

    Anything unparseable becomes an empty parameter set.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _require_str(params: dict, key: str) -> str | None:
    value = params.get(key)
    return value if isinstance(value, str) else None


def classify(name: str, params: dict) -> ToolArgs:
    """Map a tool name and its parameters onto one of the known argument shapes."""
    if name == RUN_TOOL:
        command = _require_str(params, "command")
        if command is None or not command.strip():
            return InvalidArgs(name, "missing required string argument 'command'")
        return RunCommandArgs(command)
    if name == EDIT_TOOL:
        filepath = _require_str(params, "filepath")
        if filepath is None or not filepath.strip():
            return InvalidArgs(name, "missing required string argument 'filepath'")
        content = _require_str(params, "content")
        if content is None:
            return InvalidArgs(name, "missing required string argument 'content'")
        return WriteFileArgs(filepath, content)
    return UnknownTool(name)


# -- Confirmation ------------------------------------------------------------


def confirm(question: str) -> bool:
    """Ask a yes/no question. Only an explicit "n" or "no" denies.

    A closed input stream counts as a denial.
    """
    try:
        answer = fmt.ask(f"  {question} (Y/n) ")
    except EOFError:
        return False
    return answer.strip().lower() not in ("n", "no")


# -- run command -------------------------------------------------------------


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill a process and its descendants, then wait for exit.

    On Unix, uses process groups (via start_new_session=True) to kill the
    entire tree. On Windows, uses taskkill /T /F to kill the process tree.
    """
    if sys.platform != "win32":
        import signal

        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            pass  # already exited
    else:
        try:
            subprocess.run(
                ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=5,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass  # best-effort
    try:
        proc.kill()
    except OSError:
        pass
    try:
        proc.wait(timeout=_KILL_WAIT_TIMEOUT)
    except subprocess.TimeoutExpired:
        pass  # unkillable


def _drain(stream, chunks: list[bytes]) -> None:
    try:
        while True:
            chunk = stream.read(4096)
            if not chunk:
                break
            chunks.append(chunk)
    except (OSError, ValueError):
        pass  # pipe closed/broken after kill


def _capture_process(proc: subprocess.Popen, timeout: float) -> tuple[bytes, bytes, bool]:
    """Wait for the shell itself, not for its pipes, to finish.

    Background jobs that inherit the pipes can keep them open long after
    the shell exits; their output is collected for at most _DRAIN_TIMEOUT
    more seconds. Returns (stdout, stderr, timed_out).
    """
    out_chunks: list[bytes] = []
    err_chunks: list[bytes] = []
    readers = [
        threading.Thread(target=_drain, args=(proc.stdout, out_chunks), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, err_chunks), daemon=True),
    ]
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(proc)

    deadline = time.monotonic() + _DRAIN_TIMEOUT
    for reader in readers:
        reader.join(timeout=max(0.0, deadline - time.monotonic()))
    proc.stdout.close()
    proc.stderr.close()
    return b"".join(out_chunks), b"".join(err_chunks), timed_out


def _join_streams(stdout: bytes | None, stderr: bytes | None) -> str:
    parts = [
        (s or b"").decode("utf-8", errors="replace").rstrip() for s in (stdout, stderr)
    ]
    return "\n".join(p for p in parts if p)


def run_shell_command(
    command: str, base_dir: str | None = None, timeout: int = COMMAND_TIMEOUT
) -> ToolResult:
    """Execute `command` through the platform shell after confirmation."""
    fmt.tool_call(f"$ {command}")
    if not confirm("Run this command?"):
        fmt.tool_error(COMMAND_DENIED)
        return ToolResult(COMMAND_DENIED, False)

    if sys.platform == "win32":
        shell_cmd = ["powershell.exe", "-NoProfile", "-Command", command]
    else:
        shell_cmd = ["/bin/sh", "-c", command]

    popen_kwargs: dict = dict(
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        cwd=base_dir or os.getcwd(),
        bufsize=0,
    )
    if sys.platform != "win32":
        popen_kwargs["start_new_session"] = True

    try:
        proc = subprocess.Popen(shell_cmd, **popen_kwargs)
    except OSError as e:
        msg = f"failed to start shell command: {e}"
        fmt.tool_error(msg)
        return ToolResult(msg, False)

    stdout, stderr, timed_out = _capture_process(proc, timeout)
    if timed_out:
        msg = _join_streams(stdout, stderr) or f"command timed out after {timeout}s"
        fmt.tool_error(msg)
        return ToolResult(msg, False)

    output = _join_streams(stdout, stderr)
    if proc.returncode != 0:
        msg = output or f"command failed with exit code {proc.returncode}"
        fmt.tool_error(msg)
        return ToolResult(msg, False)

    fmt.tool_output(output or NO_OUTPUT)
    return ToolResult(output or NO_OUTPUT, True)


# -- write file --------------------------------------------------------------


def resolve_path(filepath: str, base_dir: str | None = None) -> Path:
    path = Path(filepath).expanduser()
    if not path.is_absolute():
        path = Path(base_dir or os.getcwd()) / path
    return path.resolve()


def write_file(filepath: str, content: str, base_dir: str | None = None) -> ToolResult:
    """Create or overwrite a file after confirmation, creating parent directories."""
    resolved = resolve_path(filepath, base_dir)
    line_count = len(content.split("\n"))
    fmt.tool_call(f"Write: {resolved} ({line_count} lines)")
    if not confirm("Write this file?"):
        fmt.tool_error(WRITE_DENIED)
        return ToolResult(WRITE_DENIED, False)

    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_bytes(content.encode("utf-8"))
    except OSError as e:
        msg = f"Failed to write: {e}"
        fmt.tool_error(msg)
        return ToolResult(msg, False)

    msg = f"File written: {resolved} ({line_count} lines)"
    fmt.tool_success(msg)
    return ToolResult(msg, True)


# -- dispatch ----------------------------------------------------------------


def dispatch(name: str, params: dict, base_dir: str | None = None) -> ToolResult:
    """Route a tool call to its implementation. Never raises for bad input."""
    args = classify(name, params)
    if isinstance(args, RunCommandArgs):
        return run_shell_command(args.command, base_dir)
    if isinstance(args, WriteFileArgs):
        return write_file(args.filepath, args.content, base_dir)
    if isinstance(args, InvalidArgs):
        msg = f"Invalid arguments for {args.tool}: {args.reason}"
        fmt.tool_error(msg)
        return ToolResult(msg, False)
    msg = f"Unknown tool: {args.name}"
    fmt.tool_error(msg)
    return ToolResult(msg, False)
