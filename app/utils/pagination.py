# app/utils/pagination.py
from sqlalchemy import func, select, Select
from sqlalchemy.ext.asyncio import AsyncSession


def page_count(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page


async def paginate(db: AsyncSession, query: Select, page: int, per_page: int) -> dict:
    """
    Exécute `query` avec offset/limit et retourne le dictionnaire de pagination
    commun à toutes les listes : items, total, page, per_page, pages.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar_one()

    result = await db.execute(query.offset((page - 1) * per_page).limit(per_page))
    items = result.scalars().unique().all()

    return {
        "items": items,
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": page_count(total, per_page),
    }
