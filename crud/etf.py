"""
ETFRepository for database operations on the ETF model
"""

from typing import Iterable, List

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import ETF


class ETFRepository:
    """Read path for the dashboard plus the bulk write used by the CSV import."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_etfs(self) -> List[ETF]:
        """All funds, most recently updated first."""
        result = await self.db.execute(
            select(ETF).order_by(ETF.updated_at.desc(), ETF.ticker)
        )
        return list(result.scalars().all())

    async def delete_all(self) -> int:
        result = await self.db.execute(delete(ETF))
        await self.db.flush()
        return result.rowcount or 0

    async def insert_many(self, rows: Iterable[dict]) -> int:
        etfs = [ETF(**row) for row in rows]
        self.db.add_all(etfs)
        await self.db.flush()
        return len(etfs)

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(ETF))
        return result.scalar_one()
