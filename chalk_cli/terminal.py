"""Raw keystroke input without a line-editing library.

The terminal is switched into unbuffered, no-echo mode only inside a
`RawMode` block. Every block saves the mode it found and puts it back on
exit, so blocks nest (palette inside line input, dialog inside a command).
"""

import os
import select
import sys
from dataclasses import dataclass

from . import fmt

SLASH = "/"
ESCAPE_TIMEOUT = 0.05  # seconds to wait for the rest of an escape sequence


class Key:
    """Names for non-printable keys returned by read_key()."""

    UP = "<up>"
    DOWN = "<down>"
    LEFT = "<left>"
    RIGHT = "<right>"
    HOME = "<home>"
    END = "<end>"
    DELETE = "<delete>"
    ENTER = "<enter>"
    TAB = "<tab>"
    BACKSPACE = "<backspace>"
    ESCAPE = "<escape>"
    INTERRUPT = "<ctrl-c>"
    EOF = "<ctrl-d>"
    UNKNOWN = "<unknown>"


_ESCAPE_SEQUENCES = {
    "[A": Key.UP,
    "[B": Key.DOWN,
    "[C": Key.RIGHT,
    "[D": Key.LEFT,
    "OA": Key.UP,
    "OB": Key.DOWN,
    "OC": Key.RIGHT,
    "OD": Key.LEFT,
    "[H": Key.HOME,
    "[F": Key.END,
    "OH": Key.HOME,
    "OF": Key.END,
    "[1~": Key.HOME,
    "[4~": Key.END,
    "[3~": Key.DELETE,
}

_CONTROL_KEYS = {
    0x03: Key.INTERRUPT,
    0x04: Key.EOF,
    0x08: Key.BACKSPACE,
    0x09: Key.TAB,
    0x0A: Key.ENTER,
    0x0D: Key.ENTER,
    0x7F: Key.BACKSPACE,
}


@dataclass
class LineResult:
    text: str
    is_slash_trigger: bool = False


def is_interactive(stream=None) -> bool:
    """True when `stream` (default stdin) is a terminal we can put in raw mode."""
    if sys.platform == "win32":
        return False
    stream = stream if stream is not None else sys.stdin
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


class RawMode:
    """Scoped acquisition of raw input mode on a terminal file descriptor.

    Input echo, line buffering, signal keys and CR->NL translation are
    turned off; output processing is left alone so "\\n" still starts a
    new line. The mode found on entry is restored on every exit path.
    """

    def __init__(self, fd: int | None = None):
        self.fd = sys.stdin.fileno() if fd is None else fd
        self._saved = None

    def __enter__(self) -> "RawMode":
        import termios

        self._saved = termios.tcgetattr(self.fd)
        mode = list(self._saved)
        mode[6] = list(self._saved[6])
        mode[0] &= ~(termios.ICRNL | termios.IXON)
        mode[3] &= ~(termios.ECHO | termios.ICANON | termios.ISIG | termios.IEXTEN)
        mode[6][termios.VMIN] = 1
        mode[6][termios.VTIME] = 0
        termios.tcsetattr(self.fd, termios.TCSANOW, mode)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        import termios

        if self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
            self._saved = None
        return False


def _read_byte(fd: int, timeout: float | None = None) -> bytes:
    if timeout is not None:
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            return b""
    return os.read(fd, 1)


def _read_escape(fd: int) -> str:
    nxt = _read_byte(fd, ESCAPE_TIMEOUT)
    if nxt not in (b"[", b"O"):
        # Lone Escape, or Alt+key which we drop.
        return Key.ESCAPE
    seq = nxt.decode("ascii")
    while True:
        b = _read_byte(fd, ESCAPE_TIMEOUT)
        if not b:
            break
        seq += b.decode("latin-1")
        if 0x40 <= b[0] <= 0x7E:
            break
    return _ESCAPE_SEQUENCES.get(seq, Key.UNKNOWN)


def _utf8_length(lead: int) -> int:
    if lead >= 0xF0:
        return 4
    if lead >= 0xE0:
        return 3
    if lead >= 0xC0:
        return 2
    return 1


def read_key(fd: int | None = None) -> str:
    """Block until one keystroke arrives; return the character or a Key name."""
    fd = sys.stdin.fileno() if fd is None else fd
    b = os.read(fd, 1)
    if not b:
        return Key.EOF
    code = b[0]
    if code == 0x1B:
        return _read_escape(fd)
    if code in _CONTROL_KEYS:
        return _CONTROL_KEYS[code]
    if code < 0x20:
        return Key.UNKNOWN
    if code < 0x80:
        return chr(code)
    for _ in range(_utf8_length(code) - 1):
        b += _read_byte(fd, ESCAPE_TIMEOUT)
    return b.decode("utf-8", errors="replace")


def is_printable(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _read_buffered_line(prompt: str) -> LineResult | None:
    fmt.prompt(prompt)
    line = sys.stdin.readline()
    if not line:
        return None
    return LineResult(line.rstrip("\r\n"))


def read_interactive_line(prompt: str = "> ") -> LineResult | None:
    """Read one line of input a keystroke at a time.

    Returns None on end of input (Ctrl+D). Ctrl+C gives an empty result so
    the caller can redraw its prompt. A "/" typed as the very first key
    returns immediately with is_slash_trigger set.
    """
    if not is_interactive():
        return _read_buffered_line(prompt)

    fmt.prompt(prompt)
    buffer: list[str] = []
    keystrokes = 0
    with RawMode() as guard:
        while True:
            key = read_key(guard.fd)
            keystrokes += 1
            if key == Key.EOF:
                _write("\n")
                return None
            if key == Key.INTERRUPT:
                _write("^C\n")
                return LineResult("")
            if key == Key.ENTER:
                _write("\n")
                return LineResult("".join(buffer))
            if key == Key.BACKSPACE:
                if buffer:
                    buffer.pop()
                    _write("\b \b")
                continue
            if not is_printable(key):
                # Cursor keys, Tab, Escape: no history or completion here.
                continue
            buffer.append(key)
            _write(key)
            if keystrokes == 1 and buffer == [SLASH]:
                _write("\n")
                return LineResult(SLASH, is_slash_trigger=True)


def read_line(prompt: str) -> str | None:
    """Read one cooked line; None on end of input."""
    try:
        return input(prompt)
    except EOFError:
        return None
