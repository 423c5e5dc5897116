from collections.abc import Sequence
from difflib import get_close_matches

from clido.core.errors import AmbiguousError
from clido.core.models import Project

__all__ = ["find_in_pool", "find_in_pool_exact"]

FUZZY_MATCH_CUTOFF = 0.8


def _match_substring(ref: str, pool: Sequence[Project]) -> Project | None:
    ref_lower = ref.lower()
    exact = [item for item in pool if item.name.lower() == ref_lower]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        raise AmbiguousError(ref, count=len(exact), sample=[f"{p.name} ({p.id})" for p in exact[:3]])
    matches = [item for item in pool if ref_lower in item.name.lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        sample = [item.name for item in matches[:3]]
        raise AmbiguousError(ref, count=len(matches), sample=sample)
    return None


def _match_fuzzy(ref: str, pool: Sequence[Project]) -> Project | None:
    ref_lower = ref.lower()
    names = [item.name.lower() for item in pool]
    matches = get_close_matches(ref_lower, names, n=1, cutoff=FUZZY_MATCH_CUTOFF)
    if matches:
        return next(item for item in pool if item.name.lower() == matches[0])
    return None


def find_in_pool(ref: str, pool: Sequence[Project]) -> Project | None:
    if not pool:
        return None
    return _match_substring(ref, pool) or _match_fuzzy(ref, pool)


def find_in_pool_exact(ref: str, pool: Sequence[Project]) -> Project | None:
    if not pool:
        return None
    return _match_substring(ref, pool)
