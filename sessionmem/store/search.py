from __future__ import annotations

import difflib
import logging
import re
from typing import TYPE_CHECKING

from .types import MessageMatch, Observation, ObservationMatch

if TYPE_CHECKING:
    from ._store import MemoryStore

logger = logging.getLogger(__name__)

FUZZY_CANDIDATE_LIMIT = 200
FTS_OPERATORS = {"and", "or", "not", "near"}
TOKEN_RE = re.compile(r"\w+")
LIKE_ESCAPE = "\\"


def _expand_query(query: str) -> str:
    tokens = [token for token in TOKEN_RE.findall(query) if token.lower() not in FTS_OPERATORS]
    if not tokens:
        return ""
    # Space-separated phrases: FTS5 requires every token to match.
    return " ".join(f'"{token}"' for token in tokens)


def _like_pattern(query: str) -> str:
    escaped = (
        query.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"


def _placeholders(values: list[int]) -> str:
    return ", ".join("?" for _ in values)


def search(store: MemoryStore, query: str, limit: int = 10) -> list[ObservationMatch]:
    """Cascade exact, indexed and (optionally) fuzzy layers up to ``limit``.

    Exact matches always come first, then indexed matches not already
    returned, then fuzzy matches. Each id appears once.
    """
    if limit <= 0 or not query or not query.strip():
        return []
    results = _exact_layer(store, query, limit)
    if len(results) >= limit:
        return results
    seen = [item.id for item in results]
    results.extend(_indexed_layer(store, query, limit - len(results), exclude=seen))
    if len(results) >= limit or not store.config.fuzzy_search_enabled:
        return results
    seen = [item.id for item in results]
    results.extend(_fuzzy_layer(store, query, limit - len(results), exclude=seen))
    return results


def _exact_layer(store: MemoryStore, query: str, limit: int) -> list[ObservationMatch]:
    rows = store.query(
        f"""
        SELECT * FROM observations
        WHERE content LIKE ? ESCAPE '{LIKE_ESCAPE}'
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (_like_pattern(query), limit),
    )
    return [
        ObservationMatch.from_observation(Observation.from_row(row), "exact") for row in rows
    ]


def _indexed_layer(
    store: MemoryStore, query: str, limit: int, *, exclude: list[int]
) -> list[ObservationMatch]:
    expanded = _expand_query(query)
    if not expanded or limit <= 0:
        return []
    exclude_clause = ""
    if exclude:
        exclude_clause = f"AND observations.id NOT IN ({_placeholders(exclude)})"
    rows = store.query(
        f"""
        SELECT observations.*, bm25(observations_fts) AS score
        FROM observations_fts
        JOIN observations ON observations.id = observations_fts.rowid
        WHERE observations_fts MATCH ?
        {exclude_clause}
        ORDER BY score, observations.id DESC
        LIMIT ?
        """,
        (expanded, *exclude, limit),
    )
    return [
        ObservationMatch.from_observation(
            Observation.from_row(row), "indexed", float(row["score"] or 0.0)
        )
        for row in rows
    ]


def _fuzzy_score(query_tokens: list[str], query: str, text: str) -> float:
    text_lower = text.lower()
    if not text_lower.strip():
        return 0.0
    match_tokens = set(TOKEN_RE.findall(text_lower))
    overlap = 0.0
    if query_tokens:
        overlap = len(set(query_tokens) & match_tokens) / max(len(query_tokens), 1)
    ratio = difflib.SequenceMatcher(None, query.lower(), text_lower).ratio()
    return max(overlap, ratio)


def _fuzzy_layer(
    store: MemoryStore, query: str, limit: int, *, exclude: list[int]
) -> list[ObservationMatch]:
    if limit <= 0:
        return []
    query_tokens = [token.lower() for token in TOKEN_RE.findall(query)]
    exclude_clause = f"WHERE id NOT IN ({_placeholders(exclude)})" if exclude else ""
    rows = store.query(
        f"""
        SELECT * FROM observations
        {exclude_clause}
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (*exclude, max(FUZZY_CANDIDATE_LIMIT, limit * 10)),
    )
    scored: list[tuple[float, Observation]] = []
    for row in rows:
        observation = Observation.from_row(row)
        score = _fuzzy_score(query_tokens, query, observation.content)
        if score >= store.config.fuzzy_min_score:
            scored.append((score, observation))
    # sort is stable, so equal scores keep recency order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    logger.debug("fuzzy layer scored %d of %d candidates", len(scored), len(rows))
    return [
        ObservationMatch.from_observation(observation, "fuzzy", score)
        for score, observation in scored[:limit]
    ]


def search_messages(store: MemoryStore, query: str, limit: int = 10) -> list[MessageMatch]:
    expanded = _expand_query(query or "")
    if limit <= 0 or not expanded:
        return []
    rows = store.query(
        """
        SELECT messages.*, conversations.title AS conversation_title,
               bm25(messages_fts) AS score
        FROM messages_fts
        JOIN messages ON messages.id = messages_fts.rowid
        JOIN conversations ON conversations.id = messages.conversation_id
        WHERE messages_fts MATCH ?
        ORDER BY score, messages.id DESC
        LIMIT ?
        """,
        (expanded, limit),
    )
    return [MessageMatch.from_row(row) for row in rows]
