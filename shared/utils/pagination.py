"""Paginación por offset para consultas SQLAlchemy"""
import math
from typing import Any, Dict

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def normalize_page(page: int, limit: int) -> tuple:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_LIMIT), 1), MAX_LIMIT)
    return page, limit


async def paginate(db: AsyncSession, stmt: Select, page: int = 1, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    """
    Ejecutar stmt paginado.

    Returns:
        {"data": [...], "meta": {"total", "page", "limit", "totalPages"}}
    """
    page, limit = normalize_page(page, limit)

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar_one()

    result = await db.execute(stmt.offset((page - 1) * limit).limit(limit))
    items = list(result.scalars().all())

    return {
        "data": items,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


def empty_page(page: int = 1, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    return {"data": [], "meta": {"total": 0, "page": page, "limit": limit, "totalPages": 0}}
