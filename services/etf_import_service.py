"""
ETF Import Service - turns the upstream grid export (CSV) into etfs rows
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.etf import ETFRepository

logger = logging.getLogger(__name__)

BATCH_SIZE = 10

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%b %d, %Y", "%B %d, %Y", "%d-%b-%Y")


def parse_percentage(value: Any) -> Optional[float]:
    """'12.5%' -> 0.125"""
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(str(value).strip().replace("%", "").replace(",", "")) / 100
    except ValueError:
        return None


def parse_aum(value: Any) -> Optional[float]:
    """AUM is exported in millions: '$1,234.5' -> 1234500000.0"""
    if value is None:
        return None
    digits = re.sub(r"[^0-9.]", "", str(value))
    if not digits:
        return None
    try:
        return float(digits) * 1_000_000
    except ValueError:
        return None


def parse_number(value: Any) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(str(value).strip().replace(",", "").replace("$", ""))
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    text = (value or "").strip() if isinstance(value, str) else value
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def parse_canary_status(value: Any) -> Optional[str]:
    status = (value or "").strip().lower()
    return {"healthy": "Healthy", "dying": "Dying", "dead": "Dead"}.get(status)


def _text(value: Any) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def row_from_csv(record: Dict[str, str]) -> Dict[str, Any]:
    """Map one export record (keyed by column header) to etfs columns."""
    return {
        "ticker": _text(record.get("Ticker")),
        "name": _text(record.get("Name")),
        "issuer": _text(record.get("Issuer")),
        "inception_date": parse_date(record.get("Inception Date")),
        "aum": parse_aum(record.get("AUM")),
        "expense_ratio": parse_percentage(record.get("Expense Ratio")),
        "roc_latest": parse_percentage(record.get("ROC % (latest)")),
        "roc_date": parse_date(record.get("ROC Date")),
        "canary_health": parse_canary_status(record.get("Canary Health") or record.get("Canary Status")),
        "latest_date": parse_date(record.get("Latest Date")),
        "latest_adj_close": parse_number(record.get("Latest Adj Close")),
        "dividends_last_12mo": parse_number(record.get("Dividends Last 12Mo")),
        "dividends_ytd": parse_number(record.get("Dividends YTD")),
        "dividends_since_inception": parse_number(record.get("Dividends Since Inception")),
        "price_1y_ago": parse_number(record.get("Price 1Y Ago")),
        "price_ytd_start": parse_number(record.get("Price YTD Start")),
        "price_at_inception": parse_number(record.get("Price at Inception")),
        "headline_yield_ttm": parse_percentage(record.get("Headline Yield (TTM)")),
        "true_income_yield": parse_percentage(record.get("True Income Yield")),
        "death_clock_years": parse_number(record.get("Death Clock (years left)")),
        "total_return_1y": parse_percentage(record.get("Total Return 1Y")),
        "spent_dividends_return_1y": parse_percentage(record.get("Spent-the-Dividends Return 1Y")),
        "take_home_return_1y": parse_percentage(record.get("Take-Home Return 1Y")),
        "take_home_cash_return_1y": parse_percentage(record.get("Take-Home Cash Return 1Y")),
        "total_return_ytd": parse_percentage(record.get("Total Return YTD")),
        "spent_dividends_return_ytd": parse_percentage(record.get("Spent-the-Dividends Return YTD")),
        "take_home_return_ytd": parse_percentage(record.get("Take-Home Return YTD")),
        "take_home_cash_return_ytd": parse_percentage(record.get("Take-Home Cash Return YTD")),
        "total_return_inception": parse_percentage(record.get("Total Return Since Inception")),
        "spent_dividends_return_inception": parse_percentage(record.get("Spent-the-Dividends Return Inception")),
        "take_home_return_inception": parse_percentage(record.get("Take-Home Return Inception")),
        "take_home_cash_return_inception": parse_percentage(record.get("Take-Home Cash Return Inception")),
    }


def parse_csv(text: str) -> List[Dict[str, Any]]:
    """Parse an export, dropping records without a ticker and duplicate tickers."""
    reader = csv.DictReader(io.StringIO(text.lstrip("﻿")))
    rows: List[Dict[str, Any]] = []
    seen = set()
    for record in reader:
        if not any((v or "").strip() for v in record.values() if isinstance(v, str)):
            continue
        row = row_from_csv(record)
        if not row["ticker"]:
            continue
        if row["ticker"] in seen:
            logger.warning(f"Duplicate ticker {row['ticker']} in import; keeping the first")
            continue
        seen.add(row["ticker"])
        rows.append(row)
    return rows


@dataclass
class ImportReport:
    parsed: int = 0
    inserted: int = 0
    failed_batches: List[int] = field(default_factory=list)


async def replace_etfs(db: AsyncSession, rows: List[Dict[str, Any]], batch_size: int = BATCH_SIZE) -> ImportReport:
    """
    Replace the etfs table with `rows`, committing one batch at a time.
    A failed batch is rolled back and reported; later batches still run.
    """
    report = ImportReport(parsed=len(rows))
    repo = ETFRepository(db)

    deleted = await repo.delete_all()
    await db.commit()
    logger.info(f"Cleared {deleted} existing ETF rows")

    for start in range(0, len(rows), batch_size):
        number = start // batch_size + 1
        batch = rows[start:start + batch_size]
        try:
            report.inserted += await repo.insert_many(batch)
            await db.commit()
            logger.info(f"Inserted batch {number} ({len(batch)} records)")
        except SQLAlchemyError as e:
            await db.rollback()
            report.failed_batches.append(number)
            logger.error(f"Error inserting batch {number}: {e}; first record: {batch[0]['ticker']}")

    return report
