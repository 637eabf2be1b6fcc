"""
Dashboard Router - gated ETF table, stats strip and CSV export
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, get_optional_user, has_paid_access
from config.settings import TIER_FREE
from crud.etf import ETFRepository
from database import get_db
from database_models import User
from models.etf import ETFListResponse, ETFRow
from models.user import Subscription
from services import dashboard_service
from services.dashboard_service import DEFAULT_DIRECTION, DEFAULT_SORT

logger = logging.getLogger(__name__)

dashboard_router = APIRouter(prefix="/api", tags=["dashboard"])


async def _all_rows(db: AsyncSession) -> List[dict]:
    etfs = await ETFRepository(db).list_etfs()
    return [ETFRow.model_validate(etf).model_dump() for etf in etfs]


def _filter_and_sort(
    rows: List[dict],
    status: Optional[str],
    search: Optional[str],
    issuer: Optional[str],
    sort: str,
    direction: str,
) -> List[dict]:
    rows = dashboard_service.filter_rows(rows, status=status, search=search, issuer=issuer)
    try:
        return dashboard_service.sort_rows(rows, sort, direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@dashboard_router.get("/etfs", response_model=ETFListResponse)
async def list_etfs(
    status: Optional[str] = Query(None, description="Healthy, Dying, Dead or all"),
    search: Optional[str] = Query(None, description="Ticker or name substring"),
    issuer: Optional[str] = Query(None, description="Exact issuer name or all"),
    sort: str = Query(DEFAULT_SORT),
    direction: str = Query(DEFAULT_DIRECTION),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    ETF table for the dashboard. Verified paid users see every metric; everyone
    else sees the free-sample tickers in full and the rest with paid metrics blanked.
    """
    is_paid = has_paid_access(user)
    all_rows = await _all_rows(db)
    rows = _filter_and_sort(all_rows, status, search, issuer, sort, direction)
    return ETFListResponse(
        count=len(rows),
        is_paid=is_paid,
        subscription_tier=user.subscription_tier if is_paid else TIER_FREE,
        sort=sort,
        direction=direction,
        issuers=dashboard_service.issuer_options(all_rows),
        etfs=[dashboard_service.gate_row(row, is_paid) for row in rows],
    )


@dashboard_router.get("/etfs/stats")
async def etf_stats(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    issuer: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Status counts and average yields for the filtered set."""
    rows = await _all_rows(db)
    return dashboard_service.summarize(
        dashboard_service.filter_rows(rows, status=status, search=search, issuer=issuer)
    )


@dashboard_router.get("/etfs/export.csv")
async def export_etfs(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    issuer: Optional[str] = Query(None),
    sort: str = Query(DEFAULT_SORT),
    direction: str = Query(DEFAULT_DIRECTION),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """CSV of the currently filtered and sorted table. Verified paid users only."""
    if not has_paid_access(user):
        raise HTTPException(status_code=403, detail="Upgrade required to export data")

    rows = _filter_and_sort(await _all_rows(db), status, search, issuer, sort, direction)
    filename = dashboard_service.export_filename()
    logger.info(f"CSV export of {len(rows)} ETFs for {user.email}")
    return Response(
        content=dashboard_service.export_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )



@dashboard_router.get("/me/subscription", response_model=Subscription)
async def my_subscription(user: User = Depends(get_current_user)):
    """The caller's entitlement record."""
    return Subscription.model_validate(user)
