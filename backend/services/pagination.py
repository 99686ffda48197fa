"""
Pagination helpers shared by list endpoints.
"""

import re
from typing import List, Tuple

MAX_PAGE_SIZE = 100


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """(skip, limit) for a 1-based page, limit capped at MAX_PAGE_SIZE."""
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or 10)))
    return (page - 1) * limit, limit


def pagination_meta(page: int, limit: int, total_items: int) -> dict:
    page = max(1, int(page or 1))
    _, limit = page_window(page, limit)
    total_pages = (total_items + limit - 1) // limit if total_items else 0
    return {
        "current": page,
        "total": total_pages,
        "limit": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
        "total_items": total_items,
    }


def regex_filter(fields: List[str], search: str) -> dict:
    """Case-insensitive "contains" over several fields."""
    pattern = re.escape(search.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}
