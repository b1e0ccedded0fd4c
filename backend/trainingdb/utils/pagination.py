from __future__ import annotations

import math
from typing import Tuple

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_page(
    page: int,
    limit: int,
    *,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE,
) -> Tuple[int, int, int]:
    """
    Clamp page/limit to safe bounds and return (page, limit, offset).
    Pages are 1-based.
    """
    if page is None or page < 1:
        page = 1
    if limit is None or limit <= 0:
        limit = default_limit
    if limit > max_limit:
        limit = max_limit
    return page, limit, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    if total <= 0 or limit <= 0:
        return 0
    return math.ceil(total / limit)
