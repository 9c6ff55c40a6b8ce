"""Custom agent definitions: JSON records in a project or personal store.

Records are created once through the /agents dialog and only ever listed
afterwards. They are not wired into the chat loop.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from . import fmt
from .config import ChalkConfig, global_config_dir
from .dialogs import prompt_text, select_from_list
from .errors import AgentError
from .terminal import is_interactive
from .tools import EDIT_TOOL, RUN_TOOL, TOOL_NAMES

SCOPES = ("project", "personal")
MAX_AGENT_NAME_CHARS = 64

_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

TOOL_CHOICES: list[tuple[str, list[str]]] = [
    ("All tools", [RUN_TOOL, EDIT_TOOL]),
    ("Run commands only", [RUN_TOOL]),
    ("Write files only", [EDIT_TOOL]),
    ("No tools", []),
]

SCOPE_CHOICES: list[tuple[str, str]] = [
    ("Project (.chalk/agents)", "project"),
    ("Personal (~/.config/chalk/agents)", "personal"),
]


@dataclass
class AgentRecord:
    name: str
    description: str
    model: str
    tools: list[str] = field(default_factory=list)
    created_at: str = ""
    scope: str = "project"  # not persisted; implied by the store it was read from
    path: Path | None = None  # not persisted

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "model": self.model,
            "tools": sorted(set(self.tools)),
            "createdAt": self.created_at,
        }


def validate_agent_name(name: str) -> str | None:
    """Return an error string, or None if `name` is usable as a file stem."""
    if not name:
        return "name is empty"
    if len(name) > MAX_AGENT_NAME_CHARS:
        return f"name exceeds {MAX_AGENT_NAME_CHARS} characters"
    if not _NAME_RE.match(name) or "--" in name:
        return f"name {name!r} must be lowercase alphanumeric with single hyphens"
    return None


def scope_dir(scope: str, base_dir: str | Path = ".", config_dir: Path | None = None) -> Path:
    if scope == "project":
        return Path(base_dir).resolve() / ".chalk" / "agents"
    if scope == "personal":
        return (config_dir or global_config_dir()) / "agents"
    raise AgentError(f"unknown agent scope {scope!r}")


def save_agent(
    record: AgentRecord, base_dir: str | Path = ".", config_dir: Path | None = None
) -> Path:
    """Write a new record. Existing records are never overwritten."""
    error = validate_agent_name(record.name)
    if error:
        raise AgentError(f"invalid agent name: {error}")
    unknown = set(record.tools) - set(TOOL_NAMES)
    if unknown:
        raise AgentError(f"unknown tools: {', '.join(sorted(unknown))}")

    path = scope_dir(record.scope, base_dir, config_dir) / f"{record.name}.json"
    if path.exists():
        raise AgentError(f"agent {record.name!r} already exists at {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record.to_dict(), indent=2) + "\n", encoding="utf-8")
    record.path = path
    return path


def _parse_record(path: Path, scope: str) -> AgentRecord | str:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return f"unreadable: {e}"
    if not isinstance(data, dict):
        return "expected a JSON object"
    for key in ("name", "description", "model"):
        if not isinstance(data.get(key), str):
            return f"missing string field {key!r}"
    tools = data.get("tools", [])
    if not isinstance(tools, list) or not all(isinstance(t, str) for t in tools):
        return "'tools' must be a list of strings"
    return AgentRecord(
        name=data["name"],
        description=data["description"],
        model=data["model"],
        tools=tools,
        created_at=str(data.get("createdAt", "")),
        scope=scope,
        path=path,
    )


def load_agents(base_dir: str | Path = ".", config_dir: Path | None = None) -> list[AgentRecord]:
    """Read all records, project scope first, each scope sorted by file name."""
    records: list[AgentRecord] = []
    for scope in SCOPES:
        directory = scope_dir(scope, base_dir, config_dir)
        if not directory.is_dir():
            continue
        for path in sorted(directory.glob("*.json")):
            parsed = _parse_record(path, scope)
            if isinstance(parsed, str):
                fmt.warning(f"skipping agent {path}: {parsed}")
                continue
            records.append(parsed)
    return records


def format_agent_listing(records: list[AgentRecord]) -> str:
    if not records:
        return "No custom agents defined."
    lines = []
    for r in records:
        tools = ", ".join(r.tools) if r.tools else "(none)"
        lines.append(f"{r.name:<20} [{r.scope}] {r.description}")
        lines.append(f"{'':<20} model: {r.model} | tools: {tools}")
    return "\n".join(lines)


def create_agent_dialog(
    config: ChalkConfig, base_dir: str | Path = "."
) -> AgentRecord | None:
    """Collect a new agent definition through boxed dialogs and save it."""
    title = "Create agent"
    name = prompt_text(title, "Name (lowercase letters, digits, hyphens)", "code-reviewer")
    if name is None:
        return None
    name = name.strip()
    error = validate_agent_name(name)
    if error:
        fmt.warning(f"invalid agent name: {error}")
        return None

    description = prompt_text(title, f"When should {name} be used?", "Reviews changes before commit")
    if description is None:
        return None

    model = prompt_text(title, "Model (Enter keeps the current model)", config.model)
    if model is None:
        return None

    tools_idx = select_from_list(title, "Tools this agent may request", [c[0] for c in TOOL_CHOICES])
    if tools_idx is None:
        return None

    scope_idx = select_from_list(title, "Where should it be saved?", [c[0] for c in SCOPE_CHOICES])
    if scope_idx is None:
        return None

    record = AgentRecord(
        name=name,
        description=description.strip(),
        model=model.strip() or config.model,
        tools=list(TOOL_CHOICES[tools_idx][1]),
        created_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        scope=SCOPE_CHOICES[scope_idx][1],
    )
    try:
        path = save_agent(record, base_dir, config.config_dir)
    except (AgentError, OSError) as e:
        fmt.warning(f"could not save agent: {e}")
        return None
    fmt.success(f"Agent {name} saved to {path}")
    return record


def manage_agents(config: ChalkConfig, base_dir: str | Path = ".") -> None:
    """The /agents command: list records and offer to create a new one."""
    records = load_agents(base_dir, config.config_dir)
    if not is_interactive():
        fmt.out(format_agent_listing(records), style="dim")
        return

    items = ["+ Create new agent"] + [f"{r.name}  [{r.scope}]  {r.description}" for r in records]
    choice = select_from_list("Agents", f"{len(records)} custom agent(s)", items)
    if choice is None:
        return
    if choice == 0:
        create_agent_dialog(config, base_dir)
        return
    fmt.out(format_agent_listing([records[choice - 1]]), style="dim")
