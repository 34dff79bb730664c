from __future__ import annotations

from typing import Hashable, Iterable, Iterator, List, TypeVar

K = TypeVar("K", bound=Hashable)


def unique_keys(keys: Iterable[K]) -> List[K]:
    """Drop None/'' and duplicates, keep first-seen order."""
    seen = set()
    out: List[K] = []
    for key in keys:
        if key is None or key == "" or key in seen:
            continue
        seen.add(key)
        out.append(key)
    return out


def iter_key_chunks(keys: Iterable[K], size: int) -> Iterator[List[K]]:
    """Bounded batches of unique keys; every recalculation path goes through here."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    batch = unique_keys(keys)
    for idx in range(0, len(batch), size):
        yield batch[idx: idx + size]
