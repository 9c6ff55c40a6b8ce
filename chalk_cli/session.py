"""Conversation state for one interactive run."""

import functools
from dataclasses import dataclass, field

import tiktoken

COMPACT_THRESHOLD = 6
COMPACT_KEEP = 4


@functools.lru_cache(maxsize=1)
def _encoder():
    return tiktoken.get_encoding("cl100k_base")


def estimate_tokens(messages: list[dict]) -> int:
    """Count tokens across message contents using tiktoken."""
    total = 0
    for m in messages:
        total += len(_encoder().encode(m.get("content") or ""))
    # Per-message overhead (role, separators): ~4 tokens each
    total += 4 * len(messages)
    return total


@dataclass
class Session:
    """Message history and running token counters.

    Only user and assistant text is kept here; tool traffic lives in the
    per-turn request transcript built by the chat loop.
    """

    messages: list[dict] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add_user(self, content: str) -> None:
        self.messages.append({"role": "user", "content": content})

    def add_assistant(self, content: str) -> None:
        self.messages.append({"role": "assistant", "content": content})

    def record_usage(self, prompt: int, completion: int, total: int) -> None:
        self.prompt_tokens += max(0, prompt)
        self.completion_tokens += max(0, completion)
        self.total_tokens += max(0, total)

    def compact(self) -> int | None:
        """Keep the last four messages when more than six exist.

        Returns the number of messages kept, or None when nothing changed.
        """
        if len(self.messages) <= COMPACT_THRESHOLD:
            return None
        self.messages = self.messages[-COMPACT_KEEP:]
        return len(self.messages)

    def reset(self) -> None:
        self.messages = []
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
