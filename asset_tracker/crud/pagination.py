from __future__ import annotations

from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from ..core.config import settings


def normalize_page(page: int | None, page_size: int | None) -> tuple[int, int]:
    """Clamp 1-based page numbers and sizes to the configured limits."""

    page = max(int(page or 1), 1)
    size = int(page_size or settings.DEFAULT_PAGE_SIZE)
    size = min(max(size, 1), settings.MAX_PAGE_SIZE)
    return page, size


def paginate(db: Session, stmt: Select, page: int | None, page_size: int | None) -> dict[str, Any]:
    """Run ``stmt`` for one page and return ``{data, total, page, page_size}``."""

    page, size = normalize_page(page, page_size)
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = db.execute(count_stmt).scalar_one()
    rows = db.execute(stmt.limit(size).offset((page - 1) * size)).unique().scalars().all()
    return {"data": rows, "total": int(total or 0), "page": page, "page_size": size}
