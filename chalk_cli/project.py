"""Project context: bounded directory listing, manifest metadata, system prompts."""

import json
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

PRODUCT_NAME = "Fin 0.1"
MAX_TREE_DEPTH = 3
MAX_TREE_FILES = 200

IGNORED_DIRS = {
    "node_modules", ".git", ".next", ".nuxt", "__pycache__", ".venv",
    "venv", "dist", "build", ".cache", ".turbo", "target", ".svelte-kit",
    "coverage", ".pytest_cache", ".mypy_cache", "vendor", ".idea",
    ".vscode", ".DS_Store", "env", ".env", ".tox", "out",
}  # fmt: skip

LANGUAGE_MARKERS = [
    ("package.json", "Node.js"),
    ("Cargo.toml", "Rust"),
    ("pyproject.toml", "Python"),
    ("requirements.txt", "Python"),
    ("go.mod", "Go"),
    ("pom.xml", "Java (Maven)"),
    ("build.gradle", "Java (Gradle)"),
    ("Gemfile", "Ruby"),
    ("composer.json", "PHP"),
]


@dataclass
class ProjectContext:
    cwd: str
    tree: str  # "(empty directory)" when nothing was listed
    project_info: str  # manifest summary, may be ""
    lang_info: str  # "Detected: ..." line, may be ""

    @property
    def item_count(self) -> int:
        return len(self.tree.split("\n"))


def scan_file_tree(directory: Path, depth: int = 0, prefix: str = "") -> list[str]:
    """List `directory` recursively, directories first, two spaces per level."""
    if depth > MAX_TREE_DEPTH:
        return []
    try:
        entries = list(os.scandir(directory))
    except OSError:
        return []

    def _is_dir(entry: os.DirEntry) -> bool:
        try:
            return entry.is_dir()
        except OSError:
            return False

    entries.sort(key=lambda e: (not _is_dir(e), e.name.lower()))

    lines: list[str] = []
    count = 0
    for entry in entries:
        if count >= MAX_TREE_FILES:
            lines.append(f"{prefix}  ... (truncated)")
            break
        if entry.name in IGNORED_DIRS:
            continue
        is_dir = _is_dir(entry)
        if is_dir and entry.name.startswith("."):
            continue

        if is_dir:
            lines.append(f"{prefix}{entry.name}/")
            lines.extend(scan_file_tree(Path(entry.path), depth + 1, prefix + "  "))
        else:
            lines.append(f"{prefix}{entry.name}")
        count += 1
    return lines


def _package_json_info(path: Path) -> str:
    try:
        pkg = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return ""
    if not isinstance(pkg, dict):
        return ""
    info = f"Project: {pkg.get('name') or 'unknown'} v{pkg.get('version') or '?'}\n"
    if pkg.get("description"):
        info += f"Description: {pkg['description']}\n"
    if isinstance(pkg.get("scripts"), dict) and pkg["scripts"]:
        info += f"Scripts: {', '.join(pkg['scripts'])}\n"
    return info


def _pyproject_info(path: Path) -> str:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return ""
    project = data.get("project")
    if not isinstance(project, dict):
        return ""
    info = f"Project: {project.get('name') or 'unknown'} v{project.get('version') or '?'}\n"
    if project.get("description"):
        info += f"Description: {project['description']}\n"
    return info


def get_project_context(base_dir: str | Path | None = None) -> ProjectContext:
    cwd = Path(base_dir or os.getcwd()).resolve()
    tree = scan_file_tree(cwd)
    tree_str = "\n".join(tree) if tree else "(empty directory)"

    project_info = ""
    if (cwd / "package.json").is_file():
        project_info = _package_json_info(cwd / "package.json")
    elif (cwd / "pyproject.toml").is_file():
        project_info = _pyproject_info(cwd / "pyproject.toml")

    detected: list[str] = []
    for marker, lang in LANGUAGE_MARKERS:
        if (cwd / marker).exists() and lang not in detected:
            detected.append(lang)
    lang_info = f"Detected: {', '.join(detected)}\n" if detected else ""

    return ProjectContext(
        cwd=str(cwd), tree=tree_str, project_info=project_info, lang_info=lang_info
    )


def build_system_prompt(project: ProjectContext, *, one_shot: bool = False) -> str:
    """Assistant persona plus the live project context."""
    if one_shot:
        lines = [
            f"You are Chalk, a powerful AI coding assistant powered by {PRODUCT_NAME}.",
            "You help users build, debug, and manage software projects.",
            "You can execute commands using tool_run and create/edit files using tool_edit.",
            "Be direct and concise.",
            f"Working directory: {project.cwd}",
            project.lang_info,
            project.project_info,
        ]
    else:
        lines = [
            f"You are Chalk, a powerful AI coding assistant powered by {PRODUCT_NAME}.",
            "You help users build, debug, and manage software projects from the terminal.",
            "You can execute commands using tool_run and create/edit files using tool_edit.",
            "Always explain what you're about to do before calling a tool.",
            "Be direct and concise. If unsure, say so.",
            "",
            f"The user's working directory is: {project.cwd}",
            project.lang_info,
            project.project_info,
        ]
    lines += ["File tree:", project.tree]
    return "\n".join(lines)
