from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def paginate(session: Session, query, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> dict:
    """
    Run a select() as one page.

    Out-of-range page numbers clamp to 1; out-of-range sizes fall back to the
    default. `items` holds ORM instances; callers serialize.
    """
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE

    total = session.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).scalar_one()
    rows = list(session.scalars(query.offset((page - 1) * page_size).limit(page_size)))
    total_pages = (total + page_size - 1) // page_size

    return {
        "items": rows,
        "total_count": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "has_previous_page": page > 1,
        "has_next_page": page < total_pages,
    }
