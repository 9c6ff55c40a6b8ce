"""Removal of <think>...</think> reasoning spans from model output."""

import re

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

_CLOSED_SPAN = re.compile(re.escape(OPEN_TAG) + r".*?" + re.escape(CLOSE_TAG), re.DOTALL)
_UNTERMINATED_SPAN = re.compile(re.escape(OPEN_TAG) + r".*", re.DOTALL)


def strip_thinking(text: str | None) -> str:
    """Drop reasoning spans and trim the result.

    Each closed span is removed (shortest match). An opening tag left
    without a matching close removes everything after it.
    """
    if not text:
        return ""
    text = _CLOSED_SPAN.sub("", text)
    text = _UNTERMINATED_SPAN.sub("", text)
    return text.strip()
