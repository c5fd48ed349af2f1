from __future__ import annotations

import difflib
from typing import Any, Optional, Sequence

from .constants import AUTOCOMPLETE_MAX_CHOICES, AUTOCOMPLETE_MAX_MATCHES

NO_RESULTS_CHOICE = {
    "name": "Search returned no results. Please try again with a different query.",
    "value": "null",
}
TOO_MANY_RESULTS_CHOICE = {
    "name": "Search returned too many results (over 500). Please refine your search results.",
    "value": "null",
}
FUZZY_CUTOFF = 0.6


def _choice(result: dict[str, Any]) -> dict[str, Any]:
    name = str(result.get("name", ""))
    value = result.get("value")
    return {"name": name, "value": name if value is None else value}


def _score(name: str, needle: str) -> Optional[tuple[int, float, int]]:
    haystack = name.lower()
    position = haystack.find(needle)
    if position >= 0:
        return (0, float(position), len(haystack))
    ratio = difflib.SequenceMatcher(None, needle, haystack).ratio()
    if ratio >= FUZZY_CUTOFF:
        return (1, -ratio, len(haystack))
    return None


def rank_choices(
    results: Sequence[dict[str, Any]],
    query: object,
    *,
    per_page: Optional[int] = None,
    allow_empty_search: bool = False,
) -> list[dict[str, Any]]:
    """Filter and order autocomplete ``results`` against the typed ``query``.

    Substring hits rank first (earlier and shorter matches higher), followed by
    close fuzzy matches. Placeholder choices valued ``"null"`` stand in for an
    empty result or an over-broad query.
    """

    limit = min(per_page or AUTOCOMPLETE_MAX_CHOICES, AUTOCOMPLETE_MAX_CHOICES)
    if not results:
        return [dict(NO_RESULTS_CHOICE)]

    needle = "" if query is None else str(query).strip().lower()
    if not needle and allow_empty_search:
        return [_choice(result) for result in results[:limit]]

    scored: list[tuple[tuple[int, float, int], int, dict[str, Any]]] = []
    for index, result in enumerate(results):
        score = _score(str(result.get("name", "")), needle)
        if score is not None:
            scored.append((score, index, result))

    if not scored:
        return [dict(NO_RESULTS_CHOICE)]
    if len(scored) > AUTOCOMPLETE_MAX_MATCHES:
        return [dict(TOO_MANY_RESULTS_CHOICE)]

    scored.sort(key=lambda item: (item[0], item[1]))
    return [_choice(result) for _score_key, _index, result in scored[:limit]]
