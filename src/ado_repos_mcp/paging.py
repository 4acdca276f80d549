"""Deterministic ordering and offset/limit slicing of fully fetched collections.

Azure DevOps applies ``$skip``/``$top`` on some endpoints only, so every listing is re-sorted and
re-sliced here. All sorts are stable: ties keep their backend order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")


def paginate(items: Iterable[T], *, skip: int = 0, top: int = 100) -> list[T]:
    """Return ``items[skip:skip + top]``; out-of-range or empty windows give ``[]``."""
    seq = list(items)
    if top <= 0 or skip < 0 or skip >= len(seq):
        return []
    return seq[skip : skip + top]


def name_sort_key(name: object) -> tuple[int, str, str]:
    """Case-aware ordering: alphabetical ignoring case, lowercase before uppercase on ties.

    Missing names sort first.
    """
    if not isinstance(name, str):
        return (0, "", "")
    return (1, name.casefold(), name.swapcase())


def _id_key(item: Any) -> int:
    raw = item.get("id") if isinstance(item, dict) else None
    return raw if isinstance(raw, int) and not isinstance(raw, bool) else 0


def sort_repositories(repositories: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(repositories, key=lambda repo: name_sort_key(repo.get("name")))


def sort_branch_names(names: Iterable[str]) -> list[str]:
    """Short branch names, descending."""
    return sorted(names, key=name_sort_key, reverse=True)


def sort_by_id(items: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Threads and comments: numeric id ascending, missing id as 0."""
    return sorted(items, key=_id_key)


def page(
    items: Iterable[T],
    *,
    order: Callable[[Iterable[T]], list[T]],
    skip: int = 0,
    top: int = 100,
) -> list[T]:
    """Sort with ``order`` (one of the ``sort_*`` helpers) and slice."""
    return paginate(order(items), skip=skip, top=top)
