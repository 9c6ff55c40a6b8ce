"""ANSI-formatted terminal output using Rich.

Diagnostics go to stderr; replies, banners and command output go to stdout.
"""

from rich.console import Console
from rich.markup import escape
from rich.text import Text

_console = Console(stderr=True)
_out = Console()


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level consoles from CLI flags.

    Call once at startup, before any output.
    """
    global _console, _out
    kwargs: dict = {}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(stderr=True, **kwargs)
    _out = Console(**kwargs)


def out_console() -> Console:
    """Return the stdout console (used by the dialog renderer)."""
    return _out


# -- Banner and replies ------------------------------------------------------

_LOGO = r"""
   _____ _           _ _
  / ____| |         | | |
 | |    | |__   __ _| | | __
 | |    | '_ \ / _` | | |/ /
 | |____| | | | (_| | |   <
  \_____|_| |_|\__,_|_|_|\_\ """


def banner(product: str, model: str, cwd: str) -> None:
    _out.print(Text(_LOGO, style="bold cyan"))
    _out.print()
    _out.print(Text(f"  {product} | Model: {model}", style="dim"))
    _out.print(Text("  Type / for commands, ``` for multi-line", style="dim"))
    _out.print(Text(f"  Working in: {cwd}", style="dim"))
    _out.print()


def reply(text: str) -> None:
    line = Text()
    line.append("\nChalk: ", style="bold green")
    line.append(text)
    _out.print(line)


def out(text: str = "", style: str | None = None) -> None:
    _out.print(Text(text, style=style or ""))


def prompt(text: str) -> None:
    """Write the input prompt glyph without a trailing newline."""
    _out.print(Text(text, style="bold cyan"), end="")
    _out.file.flush()


def clear_screen() -> None:
    _out.clear()


def llm_spinner(label: str = "Thinking..."):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots", spinner_style="cyan")


def ask(question: str, *, password: bool = False) -> str:
    """Read one cooked line from the user after a yellow prompt.

    Raises EOFError when the input stream is closed.
    """
    return _out.input(f"[yellow]{escape(question)}[/yellow]", password=password)


# -- Tool calls --------------------------------------------------------------


def tool_call(summary: str) -> None:
    _out.print()
    _out.print(Text(f"  {summary}", style="dim"))


def tool_output(text: str) -> None:
    indented = "\n  ".join(text.split("\n"))
    _out.print(Text(f"  {indented}", style="dim"))


def tool_success(msg: str) -> None:
    _out.print(Text(f"  {msg}", style="green"))


def tool_error(msg: str) -> None:
    indented = "\n  ".join(msg.split("\n"))
    _out.print(Text(f"  {indented}", style="red"))


def llm_timing(elapsed: float, finish_reason: str | None) -> None:
    style = "green" if finish_reason in ("stop", "end_turn") else "yellow"
    text = Text()
    text.append(f"  model responded in {elapsed:.1f}s", style=style)
    text.append(f"  finish_reason={finish_reason}", style=style)
    _console.print(text)


# -- Diagnostics -------------------------------------------------------------


def success(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="green"))


def warning(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="yellow"))


def api_error(msg: str) -> None:
    _console.print(Text(f"\n  [error] {msg}", style="red"))


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def fatal(msg: str) -> None:
    line = Text()
    line.append("Fatal: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)
