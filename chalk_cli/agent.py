import argparse
import json
import os
import sys
import time
from dataclasses import dataclass
from importlib import metadata

from . import fmt
from .commands import (
    PREFIX,
    CommandContext,
    handle_slash_input,
    palette_entries,
    run_command,
)
from .config import (
    DEFAULT_MODEL,
    ChalkConfig,
    config_summary,
    load_config,
    save_config_value,
)
from .dialogs import command_palette
from .errors import AgentError, ConfigError
from .project import PRODUCT_NAME, build_system_prompt, get_project_context
from .session import Session
from .terminal import read_interactive_line, read_line
from .thinking import strip_thinking
from .tools import TOOLS, ToolResult, dispatch, parse_arguments

REQUEST_TIMEOUT = 120  # seconds
COMPLETION_REASONS = ("stop", "end_turn")
MULTILINE_FENCE = "```"

CLIENT_HEADERS = {
    "HTTP-Referer": "https://github.com/chalk-cli",
    "X-Title": "Chalk CLI",
}


@dataclass
class TurnResult:
    """Final assistant text of a turn plus the usage of its last response."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    exhausted: bool = False  # True when max_rounds stopped the turn


def _get(obj, name, default=None):
    """Read a field from an SDK object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _usage_counts(response) -> tuple[int, int, int]:
    usage = _get(response, "usage")
    counts = []
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = _get(usage, key)
        counts.append(int(value) if isinstance(value, (int, float)) else 0)
    return counts[0], counts[1], counts[2]


def _tool_call_dict(tool_call) -> dict:
    """Serialize a tool call for the next request, keeping arguments as JSON text."""
    fn = _get(tool_call, "function")
    arguments = _get(fn, "arguments")
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments if arguments is not None else {})
    return {
        "id": _get(tool_call, "id"),
        "type": "function",
        "function": {"name": _get(fn, "name"), "arguments": arguments},
    }


def call_llm(config: ChalkConfig, messages: list, tools: list, timeout: int = REQUEST_TIMEOUT):
    """Send one chat-completion request through LiteLLM and return the response.

    Raises AgentError for transport failures, timeouts and non-2xx replies.
    """
    import litellm

    litellm.suppress_debug_info = True

    try:
        return litellm.completion(
            # Any OpenAI-compatible endpoint, OpenRouter by default.
            model=f"openai/{config.model}",
            messages=messages,
            tools=tools,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_key=config.api_key,
            api_base=config.base_url,
            timeout=timeout,
            extra_headers=CLIENT_HEADERS,
        )
    except Exception as e:
        raise AgentError(f"LLM call failed: {e}")


def handle_tool_call(tool_call, base_dir: str | None) -> dict:
    """Run one tool call and return the tool-role message for the transcript."""
    fn = _get(tool_call, "function")
    name = _get(fn, "name") or ""
    params = parse_arguments(_get(fn, "arguments"))
    try:
        result = dispatch(name, params, base_dir)
    except Exception as e:
        fmt.tool_error(f"{name} failed: {e}")
        result = ToolResult(f"error: {e}", False)
    return {
        "role": "tool",
        "content": result.output,
        "tool_call_id": _get(tool_call, "id"),
    }


def run_turn(
    config: ChalkConfig,
    system_prompt: str,
    conversation: list[dict],
    *,
    base_dir: str | None = None,
    verbose: bool = False,
) -> TurnResult | None:
    """Drive model round-trips until a final answer.

    `conversation` is not modified; tool traffic stays in a local
    transcript. Returns None when a request fails or the reply has no
    choice. Without max_rounds the loop has no upper bound.
    """
    transcript = [{"role": "system", "content": system_prompt}]
    transcript += [{"role": m["role"], "content": m["content"]} for m in conversation]

    rounds = 0
    last_text = ""
    last_usage = (0, 0, 0)

    while True:
        if config.max_rounds is not None and rounds >= config.max_rounds:
            fmt.warning(f"max rounds exceeded ({config.max_rounds}), stopping this turn.")
            return TurnResult(last_text, *last_usage, exhausted=True)
        rounds += 1

        t0 = time.monotonic()
        try:
            with fmt.llm_spinner():
                response = call_llm(config, transcript, TOOLS)
        except AgentError as e:
            fmt.api_error(str(e))
            return None

        choices = _get(response, "choices") or []
        message = _get(choices[0], "message") if choices else None
        if message is None:
            fmt.api_error("No response from model.")
            return None

        finish_reason = _get(choices[0], "finish_reason")
        if verbose:
            fmt.llm_timing(time.monotonic() - t0, finish_reason)

        raw_content = _get(message, "content")
        text = strip_thinking(raw_content)
        tool_calls = _get(message, "tool_calls") or []
        last_usage = _usage_counts(response)

        if not tool_calls:
            if text:
                fmt.reply(text)
            return TurnResult(text, *last_usage)

        if text:
            fmt.reply(text)
            last_text = text

        transcript.append(
            {
                "role": "assistant",
                "content": raw_content or None,
                "tool_calls": [_tool_call_dict(tc) for tc in tool_calls],
            }
        )
        for tool_call in tool_calls:
            transcript.append(handle_tool_call(tool_call, base_dir))

        if finish_reason in COMPLETION_REASONS:
            return TurnResult(text, *last_usage)


# ---------------------------------------------------------------------------
# Interactive mode
# ---------------------------------------------------------------------------


def read_multiline() -> str | None:
    """Collect lines until a lone ``` line. None on end of input."""
    fmt.out("  Multi-line mode. Type ``` on a new line to finish.\n", style="dim")
    lines = []
    while True:
        line = read_line("  ... ")
        if line is None:
            return None
        if line.strip() == MULTILINE_FENCE:
            break
        lines.append(line)
    return "\n".join(lines)


def repl_loop(
    config: ChalkConfig,
    system_prompt: str,
    *,
    base_dir: str,
    session: Session | None = None,
    verbose: bool = False,
) -> Session:
    """Interactive read-eval-print loop. Returns the session at end of input."""
    session = session if session is not None else Session()
    ctx = CommandContext(session=session, config=config, base_dir=base_dir)

    while True:
        line = read_interactive_line("\n> ")
        if line is None:
            fmt.out("\n  Goodbye!", style="dim")
            break

        if line.is_slash_trigger:
            name = command_palette(palette_entries())
            if name:
                run_command(name, ctx)
            continue

        text = line.text.strip()
        if not text:
            continue

        if text.startswith(PREFIX):
            handle_slash_input(text, ctx)
            continue

        if text == MULTILINE_FENCE:
            try:
                text = read_multiline()
            except KeyboardInterrupt:
                text = None
            if not text:
                continue

        session.add_user(text)
        try:
            result = run_turn(
                config, system_prompt, session.messages, base_dir=base_dir, verbose=verbose
            )
        except KeyboardInterrupt:
            fmt.warning("interrupted, question aborted.")
            continue

        if result is not None:
            if result.content:
                session.add_assistant(result.content)
            session.record_usage(
                result.prompt_tokens, result.completion_tokens, result.total_tokens
            )

    return session


def run_interactive(config: ChalkConfig, base_dir: str, verbose: bool = False) -> Session:
    with fmt.llm_spinner("Mapping project..."):
        project = get_project_context(base_dir)
    fmt.success(f"Mapped {project.item_count} items in {project.cwd}")

    system_prompt = build_system_prompt(project)
    fmt.banner(PRODUCT_NAME, config.model, project.cwd)
    return repl_loop(config, system_prompt, base_dir=base_dir, verbose=verbose)


def run_one_shot(config: ChalkConfig, prompt: str, base_dir: str, verbose: bool = False) -> int:
    """Answer a single prompt. Returns the process exit status."""
    project = get_project_context(base_dir)
    system_prompt = build_system_prompt(project, one_shot=True)
    result = run_turn(
        config,
        system_prompt,
        [{"role": "user", "content": prompt}],
        base_dir=base_dir,
        verbose=verbose,
    )
    return 0 if result is not None else 1


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def run_login() -> bool:
    """Prompt for an API key and model and persist them. False if cancelled."""
    fmt.out("\n  Chalk CLI - First-Time Setup\n", style="cyan")
    fmt.out("  Chalk needs an OpenRouter API key to connect to AI models.")
    fmt.out("  Get one free at: https://openrouter.ai/keys\n")

    try:
        api_key = fmt.ask("  Enter your OpenRouter API key: ", password=True).strip()
    except EOFError:
        api_key = ""
    if not api_key:
        fmt.error("No key entered. Setup cancelled.")
        return False
    path = save_config_value("api_key", api_key)

    try:
        model = fmt.ask(f"  Model ID [{DEFAULT_MODEL}]: ").strip()
    except EOFError:
        model = ""
    save_config_value("model", model or DEFAULT_MODEL)

    fmt.success(f"Config saved to {path}")
    fmt.out('  Run "chalk" to start.\n')
    return True


def _version() -> str:
    try:
        return metadata.version("chalk-cli")
    except metadata.PackageNotFoundError:
        return "unknown"


EPILOG = """\
commands:
  chalk                       Interactive mode
  chalk "fix the bug"         One-shot prompt
  chalk login                 Set up your API key
  chalk config                Show configuration

in interactive mode:
  Type / to open the command menu
  Type ``` for multi-line input
  Ctrl+D or /exit to quit
"""


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="chalk",
        usage='%(prog)s [options] ["prompt" | login | config]',
        description=f"Chalk - AI coding assistant powered by {PRODUCT_NAME}.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "prompt",
        nargs="*",
        help='One-shot prompt, or the "login" / "config" subcommand.',
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help=f"Model identifier (default: {DEFAULT_MODEL}).",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="OpenAI-compatible API base URL (default: OpenRouter).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key (overrides config and OPENROUTER_API_KEY).",
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=None,
        help="Stop a turn after this many model requests (default: no limit).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show model timing diagnostics.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        help="Force ANSI color even when output is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color even when output is a TTY.",
    )
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    # Handle --version first
    if args.version:
        print(f"Chalk v{_version()} ({PRODUCT_NAME})")
        sys.exit(0)

    if args.max_rounds is not None and args.max_rounds < 1:
        parser.error("--max-rounds must be at least 1")

    fmt.init(color=args.color, no_color=args.no_color)

    try:
        sys.exit(_run_main(args))
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print(file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        fmt.fatal(str(e))
        sys.exit(1)


def _run_main(args) -> int:
    base_dir = os.getcwd()
    overrides = {
        "model": args.model,
        "base_url": args.base_url,
        "api_key": args.api_key,
        "max_rounds": args.max_rounds,
    }

    if args.prompt == ["login"]:
        return 0 if run_login() else 1

    config = load_config(base_dir, overrides)

    if args.prompt == ["config"]:
        summary = config_summary(config, base_dir)
        fmt.out("\n" + "\n".join(f"  {line}" for line in summary.split("\n")) + "\n", style="dim")
        return 0

    if not config.api_key:
        if not run_login():
            return 1
        config = load_config(base_dir, overrides)
        if not config.api_key:
            raise ConfigError("API key not configured.")

    if args.prompt:
        return run_one_shot(config, " ".join(args.prompt), base_dir, verbose=args.verbose)

    run_interactive(config, base_dir, verbose=args.verbose)
    return 0


if __name__ == "__main__":
    main()
