from __future__ import annotations

from typing import Protocol

from .store import ObservationMatch

CONTEXT_HEADER = "<memory_context>"
CONTEXT_FOOTER = "</memory_context>"
CONTEXT_INTRO = "Relevant past observations:"
DEFAULT_CONTEXT_LIMIT = 5


class ObservationSearch(Protocol):
    def search(self, query: str, limit: int | None = None) -> list[ObservationMatch]: ...


def format_observation_line(item: ObservationMatch) -> str:
    return f"[{item.type}] {item.content} ({item.created_at})"


class ContextInjector:
    """Builds the prior-knowledge block prepended to an outbound chat turn.

    The search runs synchronously on the hot path of every turn, so the
    result count is capped by ``limit``.
    """

    def __init__(self, search: ObservationSearch, limit: int = DEFAULT_CONTEXT_LIMIT) -> None:
        self.search = search
        self.limit = max(int(limit), 0)

    def build_context(self, utterance: str) -> str:
        """Return the delimited context block, or ``""`` when nothing matched."""
        if not utterance or not utterance.strip() or self.limit == 0:
            return ""
        relevant = self.search.search(utterance, self.limit)
        if not relevant:
            return ""
        lines = "\n".join(format_observation_line(item) for item in relevant[: self.limit])
        return f"\n{CONTEXT_HEADER}\n{CONTEXT_INTRO}\n{lines}\n{CONTEXT_FOOTER}\n"

    def inject(self, prompt: str) -> str:
        context = self.build_context(prompt)
        if not context:
            return prompt
        return f"{context.strip()}\n\n{prompt}"
