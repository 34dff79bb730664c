from __future__ import annotations

import math
from typing import Any, Dict, Optional

_PAGE_COUNT_KEYS = ("pageCount", "totalPages", "pages", "page_count")
_TOTAL_KEYS = ("totalCount", "total", "itemsTotal")
_PER_PAGE_KEYS = ("itemsPerPage", "perPage", "per_page")


def _numeric(paginator: Dict[str, Any], keys) -> Optional[int]:
    for key in keys:
        value = paginator.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
            return int(value)
    return None


def current_page(paginator: Optional[Dict[str, Any]], requested: int) -> int:
    page = _numeric(paginator or {}, ("page", "pageNumber"))
    return page if page and page > 0 else requested


def resolve_total_pages(paginator: Optional[Dict[str, Any]], page: int, items_count: int) -> int:
    """
    Total pages from the paginator block, never less than the current page:
      explicit page count -> total / per page -> "one more page" while pages are non-empty
    """
    paginator = paginator or {}

    page_count = _numeric(paginator, _PAGE_COUNT_KEYS)
    if page_count is not None:
        return max(page, page_count)

    total = _numeric(paginator, _TOTAL_KEYS)
    per_page = _numeric(paginator, _PER_PAGE_KEYS)
    if total is not None and per_page:
        return max(page, math.ceil(total / max(1, per_page)))

    if items_count == 0:
        return page
    return page + 1
