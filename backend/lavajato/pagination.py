# Paginação simples por página/limite (page começa em 1)
import math

MAX_LIMIT = 100


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def page_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }
