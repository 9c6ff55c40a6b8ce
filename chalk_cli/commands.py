"""Slash-command catalog, name resolution, and handlers."""

import os
import platform
import sys
from dataclasses import dataclass, field

from . import fmt
from .agents import manage_agents
from .config import ChalkConfig, config_summary
from .project import PRODUCT_NAME, get_project_context
from .session import Session, estimate_tokens

PREFIX = "/"


@dataclass(frozen=True)
class SlashCommand:
    name: str
    description: str


SLASH_COMMANDS = [
    SlashCommand("/help", "Show available commands and usage"),
    SlashCommand("/clear", "Clear the terminal screen"),
    SlashCommand("/agents", "Manage custom agents"),
    SlashCommand("/config", "Show configuration and paths"),
    SlashCommand("/model", "Show current AI model"),
    SlashCommand("/tree", "Show project file tree"),
    SlashCommand("/cost", "Show token usage this session"),
    SlashCommand("/compact", "Truncate conversation to save context"),
    SlashCommand("/new", "Start a new conversation"),
    SlashCommand("/exit", "Exit Chalk"),
]


def palette_entries() -> list[tuple[str, str]]:
    return [(c.name, c.description) for c in SLASH_COMMANDS]


@dataclass
class Resolution:
    kind: str  # "exact", "prefix", "ambiguous" or "unknown"
    name: str | None = None
    candidates: list[str] = field(default_factory=list)


def resolve(text: str) -> Resolution:
    """Match typed input against the catalog.

    An exact name wins; otherwise a unique prefix match is accepted.
    Only the first whitespace-separated token is considered.
    """
    parts = text.strip().split(None, 1)
    token = parts[0] if parts else ""
    for c in SLASH_COMMANDS:
        if c.name == token:
            return Resolution("exact", c.name)
    partial = [c.name for c in SLASH_COMMANDS if c.name.startswith(token)]
    if len(partial) == 1:
        return Resolution("prefix", partial[0])
    if partial:
        return Resolution("ambiguous", candidates=partial)
    return Resolution("unknown")


@dataclass
class CommandContext:
    session: Session
    config: ChalkConfig
    base_dir: str = field(default_factory=os.getcwd)


# -- Handlers ----------------------------------------------------------------


def _help(ctx: CommandContext) -> None:
    fmt.out(f"\n  Chalk CLI - {PRODUCT_NAME}\n", style="cyan")
    fmt.out("  Usage:", style="cyan")
    fmt.out("    Type your message and press Enter.", style="cyan")
    fmt.out("    Chalk can run commands and edit files for you.\n", style="cyan")
    fmt.out("  Slash Commands:", style="cyan")
    for c in SLASH_COMMANDS:
        fmt.out(f"    {c.name:<14} {c.description}")
    fmt.out()
    fmt.out('  One-shot:    chalk "your prompt here"', style="dim")
    fmt.out("  Multi-line:  Start with ```, end with ```\n", style="dim")


def _clear(ctx: CommandContext) -> None:
    fmt.clear_screen()


def _agents(ctx: CommandContext) -> None:
    fmt.out(
        f"  Python {platform.python_version()} | {sys.platform} | PID {os.getpid()}",
        style="dim",
    )
    manage_agents(ctx.config, ctx.base_dir)


def _config(ctx: CommandContext) -> None:
    summary = config_summary(ctx.config, ctx.base_dir)
    fmt.out("\n" + "\n".join(f"  {line}" for line in summary.split("\n")) + "\n", style="dim")


def _model(ctx: CommandContext) -> None:
    fmt.out(f"  Model: {ctx.config.model}", style="dim")


def _tree(ctx: CommandContext) -> None:
    project = get_project_context(ctx.base_dir)
    fmt.out(f"\n  {project.cwd}\n", style="cyan")
    fmt.out("\n".join(f"  {line}" for line in project.tree.split("\n")), style="dim")
    fmt.out()


def _cost(ctx: CommandContext) -> None:
    s = ctx.session
    fmt.out(
        f"  Session tokens: {s.total_tokens} "
        f"(prompt: {s.prompt_tokens}, completion: {s.completion_tokens})",
        style="dim",
    )
    if s.messages:
        fmt.out(
            f"  Conversation: {len(s.messages)} messages, ~{estimate_tokens(s.messages)} tokens",
            style="dim",
        )


def _compact(ctx: CommandContext) -> None:
    kept = ctx.session.compact()
    if kept is None:
        fmt.out("  Conversation is already short.", style="dim")
    else:
        fmt.out(f"  Compacted. Kept last {kept} messages.", style="dim")


def _new(ctx: CommandContext) -> None:
    ctx.session.reset()
    fmt.out("  New conversation started.", style="green")


def _exit(ctx: CommandContext) -> None:
    fmt.out("  Goodbye!", style="dim")
    sys.exit(0)


HANDLERS = {
    "/help": _help,
    "/clear": _clear,
    "/agents": _agents,
    "/config": _config,
    "/model": _model,
    "/tree": _tree,
    "/cost": _cost,
    "/compact": _compact,
    "/new": _new,
    "/exit": _exit,
}


def run_command(name: str, ctx: CommandContext) -> None:
    handler = HANDLERS.get(name)
    if handler is None:
        fmt.warning(f"Unknown command: {name}")
        return
    handler(ctx)


def handle_slash_input(text: str, ctx: CommandContext) -> Resolution:
    """Resolve typed slash input and run the matching handler, if any."""
    resolution = resolve(text)
    if resolution.kind in ("exact", "prefix"):
        run_command(resolution.name, ctx)
    elif resolution.kind == "ambiguous":
        fmt.warning(f"Ambiguous. Did you mean: {', '.join(resolution.candidates)}?")
    else:
        fmt.warning(f"Unknown command: {text.strip()}. Type / to see all commands.")
    return resolution
