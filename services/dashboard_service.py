"""
Dashboard Service - filter, sort, gate and export ETF rows
"""

import csv
import io
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from models.etf import (
    CANARY_STATUSES,
    FREE_SAMPLE_TICKERS,
    GATED_FIELDS,
    NUMERIC_FIELDS,
    SORTABLE_FIELDS,
)

logger = logging.getLogger(__name__)

DEFAULT_SORT = "take_home_cash_return_1y"
DEFAULT_DIRECTION = "desc"

CSV_COLUMNS = [
    ("Ticker", "ticker"),
    ("Name", "name"),
    ("Canary Status", "canary_health"),
    ("Death Clock (years)", "death_clock_years"),
    ("True Income Yield", "true_income_yield"),
    ("Total Return 1Y", "total_return_1y"),
    ("Take-Home Cash 1Y", "take_home_cash_return_1y"),
    ("Latest Price", "latest_adj_close"),
    ("Headline Yield", "headline_yield_ttm"),
    ("ROC %", "roc_latest"),
    ("AUM", "aum"),
    ("Expense Ratio", "expense_ratio"),
]


def is_unlocked(is_paid: bool, ticker: str) -> bool:
    return is_paid or ticker in FREE_SAMPLE_TICKERS


def filter_rows(
    rows: Iterable[Dict[str, Any]],
    status: Optional[str] = None,
    search: Optional[str] = None,
    issuer: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Keep rows whose canary status equals `status` and whose issuer equals
    `issuer` (None or "all" keeps everything), and whose ticker or name
    contains `search`, case-insensitively.
    """
    query = (search or "").strip().lower()
    wanted = None if not status or status.lower() == "all" else status
    wanted_issuer = None if not issuer or issuer.lower() == "all" else issuer

    def _match(row: Dict[str, Any]) -> bool:
        if wanted is not None and row.get("canary_health") != wanted:
            return False
        if wanted_issuer is not None and row.get("issuer") != wanted_issuer:
            return False
        if query:
            ticker = (row.get("ticker") or "").lower()
            name = (row.get("name") or "").lower()
            return query in ticker or query in name
        return True

    return [row for row in rows if _match(row)]


def issuer_options(rows: Iterable[Dict[str, Any]]) -> List[str]:
    """Distinct issuers for the issuer filter, sorted."""
    return sorted({row["issuer"] for row in rows if row.get("issuer")})


def _sort_partition(rows: List[Dict[str, Any]], field: str, descending: bool) -> List[Dict[str, Any]]:
    present = [r for r in rows if r.get(field) is not None]
    missing = [r for r in rows if r.get(field) is None]
    if field in NUMERIC_FIELDS:
        key = lambda r: r[field]  # noqa: E731
    else:
        key = lambda r: str(r[field]).casefold()  # noqa: E731
    # sorted() is stable for reverse=True as well, so ties keep their order
    return sorted(present, key=key, reverse=descending) + missing


def sort_rows(
    rows: Sequence[Dict[str, Any]],
    sort_key: str = DEFAULT_SORT,
    direction: str = DEFAULT_DIRECTION,
) -> List[Dict[str, Any]]:
    """
    Free-sample tickers always come first; each partition is then sorted by
    `sort_key`. Rows missing the value sort last in either direction.

    Raises:
        ValueError: If sort_key is not a sortable column or direction is not asc/desc
    """
    if sort_key not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by '{sort_key}'")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")

    descending = direction == "desc"
    samples = [r for r in rows if r.get("ticker") in FREE_SAMPLE_TICKERS]
    others = [r for r in rows if r.get("ticker") not in FREE_SAMPLE_TICKERS]
    return _sort_partition(samples, sort_key, descending) + _sort_partition(others, sort_key, descending)


def gate_row(row: Dict[str, Any], is_paid: bool) -> Dict[str, Any]:
    """Blank out the paid metrics of a locked row."""
    gated = dict(row)
    unlocked = is_unlocked(is_paid, row.get("ticker") or "")
    gated["locked"] = not unlocked
    if not unlocked:
        for field in GATED_FIELDS:
            gated[field] = None
    return gated


def summarize(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Status counts and average yields for the stats strip above the table."""
    counts = {status: 0 for status in CANARY_STATUSES}
    for row in rows:
        if row.get("canary_health") in counts:
            counts[row["canary_health"]] += 1

    def _avg(field: str) -> Optional[float]:
        values = [r[field] for r in rows if r.get(field) is not None]
        return sum(values) / len(values) if values else None

    return {
        "total": len(rows),
        "healthy": counts["Healthy"],
        "dying": counts["Dying"],
        "dead": counts["Dead"],
        "avg_true_income_yield": _avg("true_income_yield"),
        "avg_take_home_cash_return_1y": _avg("take_home_cash_return_1y"),
    }


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def export_csv(rows: Sequence[Dict[str, Any]]) -> str:
    """
    Serialize rows in the fixed export column order.

    Fields containing a comma, quote or line break are quoted and inner quotes
    doubled. Records are separated by CRLF with no terminator after the last one.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for row in rows:
        writer.writerow([_csv_value(row.get(field)) for _, field in CSV_COLUMNS])
    return buffer.getvalue().removesuffix("\r\n")


def export_filename(today: Optional[date] = None) -> str:
    return f"yield-canary-etfs-{(today or date.today()).isoformat()}.csv"
