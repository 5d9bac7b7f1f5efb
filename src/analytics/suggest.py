"""Tag suggestions for a partially typed query."""

from __future__ import annotations

from collections.abc import Iterable, Mapping


def suggest_tags(
    query: str,
    vocabulary: Iterable[str],
    *,
    selected: Iterable[str] = (),
    usage: Mapping[str, int] | None = None,
    limit: int = 8,
) -> list[str]:
    """Rank vocabulary tags matching ``query``.

    Matching is case-insensitive substring containment.  Ranking: tags that
    start with the query first, then higher historical ``usage``, then
    vocabulary order.  Tags already in ``selected`` are never suggested.
    An empty query ranks the whole vocabulary by usage.
    """
    if limit <= 0:
        return []
    needle = query.strip().casefold()
    taken = set(selected)
    usage = usage or {}

    candidates: list[tuple[int, int, int, str]] = []
    for pos, tag in enumerate(vocabulary):
        if tag in taken:
            continue
        folded = tag.casefold()
        if needle not in folded:
            continue
        prefix_rank = 0 if folded.startswith(needle) else 1
        candidates.append((prefix_rank, -usage.get(tag, 0), pos, tag))

    candidates.sort()
    return [tag for *_, tag in candidates[:limit]]
