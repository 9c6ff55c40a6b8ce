"""Fixed-width boxed dialogs drawn in place with cursor movement.

Each dialog remembers how many lines it last drew. A repaint moves the
cursor up by exactly that many lines, clears to the end of the screen and
draws again, so nothing above the dialog is touched.
"""

from rich.console import Console
from rich.text import Text

from . import fmt
from .terminal import Key, RawMode, is_interactive, is_printable, read_key

BOX_WIDTH = 64
NAME_COLUMN = 14

LIST_FOOTER = "↑/↓ move · Enter select · Esc cancel"
TEXT_FOOTER = "Enter confirm · Esc cancel"


class _Canvas:
    """Tracks the rendered height of a dialog so it can be redrawn in place."""

    def __init__(self, console: Console):
        self.console = console
        self.rendered = 0

    def _clear(self) -> None:
        if self.rendered:
            self.console.file.write(f"\x1b[{self.rendered}A\r\x1b[J")
            self.rendered = 0

    def paint(self, lines: list[Text]) -> None:
        self._clear()
        for line in lines:
            self.console.print(line, no_wrap=True, overflow="crop", crop=True)
        self.rendered = len(lines)
        self.console.file.flush()

    def erase(self) -> None:
        self._clear()
        self.console.file.flush()


def _box_width(console: Console) -> int:
    return max(8, min(BOX_WIDTH, console.size.width - 1))


def _body_rows(console: Console, title: str, subtitle: str, footer: str, width: int) -> int:
    """Body lines that fit on screen once the border and headings are drawn."""
    chrome = len(render_box(title, subtitle, [], footer, width))
    return max(1, console.size.height - chrome - 1)


def _window(count: int, selected: int, rows: int) -> tuple[int, int]:
    """Slice of `count` items, `rows` long, that keeps `selected` in view."""
    if count <= rows:
        return 0, count
    start = min(max(0, selected - rows // 2), count - rows)
    return start, start + rows


def _row(content: Text, inner: int) -> Text:
    content = content.copy()
    content.truncate(inner, overflow="ellipsis", pad=True)
    return Text.assemble(("│ ", "cyan"), content, (" │", "cyan"))


def render_box(
    title: str,
    subtitle: str,
    body: list[Text],
    footer: str,
    width: int = BOX_WIDTH,
) -> list[Text]:
    """Build the lines of a bordered panel. Every entry is one screen line."""
    inner = width - 4
    lines = [Text("╭" + "─" * (width - 2) + "╮", style="cyan")]
    lines.append(_row(Text(title, style="bold"), inner))
    if subtitle:
        lines.append(_row(Text(subtitle, style="dim"), inner))
    lines.append(_row(Text(""), inner))
    lines.extend(_row(item, inner) for item in body)
    lines.append(_row(Text(""), inner))
    if footer:
        lines.append(_row(Text(footer, style="dim"), inner))
    lines.append(Text("╰" + "─" * (width - 2) + "╯", style="cyan"))
    return lines


def _list_body(items: list[str], selected: int) -> list[Text]:
    body = []
    for i, item in enumerate(items):
        if i == selected:
            body.append(Text(f"❯ {item}", style="bold cyan"))
        else:
            body.append(Text(f"  {item}", style="dim"))
    return body


def select_from_list(
    title: str,
    subtitle: str,
    items: list[str],
    footer: str = LIST_FOOTER,
    *,
    console: Console | None = None,
) -> int | None:
    """Let the user pick one of `items`; returns its index or None if cancelled."""
    if not items or not is_interactive():
        return None
    console = console or fmt.out_console()
    canvas = _Canvas(console)
    width = _box_width(console)
    rows = _body_rows(console, title, subtitle, footer, width)
    selected = 0

    with RawMode() as guard:
        try:
            dirty = True
            while True:
                if dirty:
                    start, end = _window(len(items), selected, rows)
                    body = _list_body(items[start:end], selected - start)
                    canvas.paint(render_box(title, subtitle, body, footer, width))
                key = read_key(guard.fd)
                previous = selected
                if key == Key.UP:
                    selected = max(0, selected - 1)
                elif key == Key.DOWN:
                    selected = min(len(items) - 1, selected + 1)
                elif key == Key.ENTER:
                    return selected
                elif key in (Key.ESCAPE, Key.INTERRUPT, Key.EOF):
                    return None
                dirty = selected != previous
        finally:
            canvas.erase()


def _field(buffer: str, placeholder: str) -> Text:
    field = Text("> ", style="bold cyan")
    if buffer:
        field.append(buffer)
        field.append("▏", style="cyan")
    else:
        field.append("▏", style="cyan")
        field.append(placeholder, style="dim italic")
    return field


def prompt_text(
    title: str,
    subtitle: str,
    placeholder: str = "",
    footer: str = TEXT_FOOTER,
    *,
    console: Console | None = None,
) -> str | None:
    """Edit a single line of text inside a box; returns it or None if cancelled."""
    if not is_interactive():
        return None
    console = console or fmt.out_console()
    canvas = _Canvas(console)
    width = _box_width(console)
    buffer: list[str] = []

    with RawMode() as guard:
        try:
            dirty = True
            while True:
                if dirty:
                    canvas.paint(
                        render_box(
                            title, subtitle, [_field("".join(buffer), placeholder)], footer, width
                        )
                    )
                key = read_key(guard.fd)
                dirty = True
                if key == Key.ENTER:
                    return "".join(buffer)
                if key in (Key.ESCAPE, Key.INTERRUPT, Key.EOF):
                    return None
                if key == Key.BACKSPACE:
                    if buffer:
                        buffer.pop()
                    else:
                        dirty = False
                elif is_printable(key):
                    buffer.append(key)
                else:
                    dirty = False
        finally:
            canvas.erase()


def filter_entries(entries: list[tuple[str, str]], term: str) -> list[tuple[str, str]]:
    """Palette filter: substring of the name (without "/") or of the description."""
    term = term.lower()
    return [
        (name, desc)
        for name, desc in entries
        if term in name[1:].lower() or term in desc.lower()
    ]


def _palette_body(filtered: list[tuple[str, str]], selected: int) -> list[Text]:
    if not filtered:
        return [Text("No matching commands", style="dim")]
    body = []
    for i, (name, desc) in enumerate(filtered):
        line = Text()
        if i == selected:
            line.append(f"❯ {name.ljust(NAME_COLUMN)} ", style="bold cyan")
            line.append(desc)
        else:
            line.append(f"  {name.ljust(NAME_COLUMN)} ", style="dim")
            line.append(desc, style="dim")
        body.append(line)
    return body


def command_palette(
    entries: list[tuple[str, str]], *, console: Console | None = None
) -> str | None:
    """Filterable slash-command menu opened by a lone "/".

    Returns the chosen command name, or None when cancelled or when stdin
    is not a terminal.
    """
    if not is_interactive():
        return None
    console = console or fmt.out_console()
    canvas = _Canvas(console)
    width = _box_width(console)
    rows = _body_rows(console, "/", "Commands", LIST_FOOTER, width)
    term = ""
    filtered = list(entries)
    selected = 0

    with RawMode() as guard:
        try:
            while True:
                start, end = _window(len(filtered), selected, rows)
                body = _palette_body(filtered[start:end], selected - start)
                canvas.paint(render_box(f"/{term}", "Commands", body, LIST_FOOTER, width))
                key = read_key(guard.fd)
                if key in (Key.ESCAPE, Key.INTERRUPT, Key.EOF):
                    return None
                if key == Key.ENTER:
                    return filtered[selected][0] if filtered else None
                if key == Key.BACKSPACE:
                    if not term:
                        return None
                    term = term[:-1]
                    filtered = filter_entries(entries, term)
                    selected = 0
                elif key == Key.UP:
                    selected = max(0, selected - 1)
                elif key == Key.DOWN:
                    selected = max(0, min(len(filtered) - 1, selected + 1))
                elif is_printable(key):
                    term += key
                    filtered = filter_entries(entries, term)
                    selected = 0
        finally:
            canvas.erase()
