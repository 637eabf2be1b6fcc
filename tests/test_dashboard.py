"""
Tests for the gated ETF table, stats and CSV export
"""
import csv
import io
from datetime import date

import pytest

from auth_utils import create_jwt
from crud.etf import ETFRepository
from crud.user import UserRepository
from services import dashboard_service
from services.dashboard_service import CSV_COLUMNS, export_csv, export_filename


def etf(ticker, status="Healthy", cash_1y=None, **fields):
    return {
        "ticker": ticker,
        "name": f"{ticker} Option Income Strategy ETF",
        "issuer": "YieldMax",
        "canary_health": status,
        "take_home_cash_return_1y": cash_1y,
        "true_income_yield": fields.pop("true_income_yield", 0.05),
        "death_clock_years": fields.pop("death_clock_years", 7.5),
        "total_return_1y": fields.pop("total_return_1y", 0.10),
        "roc_latest": fields.pop("roc_latest", 0.2),
        "latest_adj_close": fields.pop("latest_adj_close", 12.34),
        **fields,
    }


SEED = [
    etf("TSLY", "Dying", 0.02),
    etf("AAAA", "Healthy", 0.30, issuer="Global X"),
    etf("QYLD", "Healthy", None, issuer="Global X"),
    etf("BBBB", "Dead", -0.15),
    etf("CCCC", "Healthy", None, issuer="Roundhill"),
    etf("DDDD", "Dying", 0.12, name="Covered Call, \"Monthly\" Income"),
]


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        await ETFRepository(session).insert_many(SEED)
        await session.commit()


async def auth_headers(session_factory, email, tier=None, verified=True):
    async with session_factory() as session:
        repo = UserRepository(session)
        if tier:
            user = await repo.grant_entitlement(email, tier)
        else:
            user = await repo.ensure_user(email)
        if verified:
            user = await repo.update_user(user, {"email_verified": True})
        await session.commit()
    return {"Authorization": f"Bearer {create_jwt(str(user.id))}"}


def test_filter_by_status_and_search():
    rows = [dict(r) for r in SEED]

    assert {r["ticker"] for r in dashboard_service.filter_rows(rows, status="Dying")} == {"TSLY", "DDDD"}
    assert len(dashboard_service.filter_rows(rows, status="all")) == len(rows)
    assert len(dashboard_service.filter_rows(rows, status=None)) == len(rows)
    assert [r["ticker"] for r in dashboard_service.filter_rows(rows, search="bbb")] == ["BBBB"]
    assert {r["ticker"] for r in dashboard_service.filter_rows(rows, search="monthly")} == {"DDDD"}
    assert dashboard_service.filter_rows(rows, status="Dead", search="tsly") == []


def test_filter_by_issuer():
    rows = [dict(r) for r in SEED]

    assert {r["ticker"] for r in dashboard_service.filter_rows(rows, issuer="Global X")} == {"AAAA", "QYLD"}
    assert len(dashboard_service.filter_rows(rows, issuer="all")) == len(rows)
    assert dashboard_service.filter_rows(rows, issuer="global x") == []
    assert [r["ticker"] for r in dashboard_service.filter_rows(rows, status="Healthy", issuer="Roundhill")] == ["CCCC"]


def test_issuer_options_are_distinct_and_sorted():
    rows = [dict(r) for r in SEED] + [{"ticker": "NONE", "issuer": None}, {"ticker": "BLNK", "issuer": ""}]

    assert dashboard_service.issuer_options(rows) == ["Global X", "Roundhill", "YieldMax"]


def test_free_samples_sort_first_and_missing_values_last():
    rows = [dict(r) for r in SEED]

    desc = [r["ticker"] for r in dashboard_service.sort_rows(rows, "take_home_cash_return_1y", "desc")]
    asc = [r["ticker"] for r in dashboard_service.sort_rows(rows, "take_home_cash_return_1y", "asc")]

    assert desc == ["TSLY", "QYLD", "AAAA", "DDDD", "BBBB", "CCCC"]
    assert asc == ["TSLY", "QYLD", "BBBB", "DDDD", "AAAA", "CCCC"]


def test_text_sort_is_case_insensitive_and_stable():
    rows = [
        {"ticker": "X1", "name": "beta"},
        {"ticker": "X2", "name": "Alpha"},
        {"ticker": "X3", "name": "alpha"},
    ]

    ordered = dashboard_service.sort_rows(rows, "name", "asc")

    assert [r["ticker"] for r in ordered] == ["X2", "X3", "X1"]


def test_unknown_sort_key_is_rejected():
    with pytest.raises(ValueError):
        dashboard_service.sort_rows([], "drop table", "desc")
    with pytest.raises(ValueError):
        dashboard_service.sort_rows([], "ticker", "sideways")


@pytest.mark.parametrize("is_paid", [True, False])
def test_gate_row(is_paid):
    locked_row = dashboard_service.gate_row(dict(SEED[1]), is_paid)
    sample_row = dashboard_service.gate_row(dict(SEED[0]), is_paid)

    assert sample_row["locked"] is False
    assert sample_row["death_clock_years"] == 7.5
    assert locked_row["locked"] is (not is_paid)
    if is_paid:
        assert locked_row["take_home_cash_return_1y"] == 0.30
    else:
        for field in ("death_clock_years", "true_income_yield", "total_return_1y", "take_home_cash_return_1y", "roc_latest"):
            assert locked_row[field] is None
        assert locked_row["latest_adj_close"] == 12.34


def test_export_csv_quotes_and_crlf():
    rows = [dict(SEED[5]), dict(SEED[2])]

    text = export_csv(rows)

    # CRLF between records, none after the last one
    assert text.count("\r\n") == 2
    assert not text.endswith("\r\n")
    assert text.split("\r\n")[0] == ",".join(header for header, _ in CSV_COLUMNS)
    assert '"Covered Call, ""Monthly"" Income"' in text

    parsed = list(csv.reader(io.StringIO(text, newline="")))
    assert parsed[1][:3] == ["DDDD", 'Covered Call, "Monthly" Income', "Dying"]
    # Missing values are empty fields
    assert parsed[2][CSV_COLUMNS.index(("Take-Home Cash 1Y", "take_home_cash_return_1y"))] == ""


def test_export_csv_keeps_embedded_newlines_in_one_field():
    name = "a,\"b\"\nc"

    text = export_csv([{"ticker": "NLNL", "name": name, "canary_health": "Dead"}])

    parsed = list(csv.reader(io.StringIO(text, newline="")))
    assert len(parsed) == 2
    assert parsed[1][:3] == ["NLNL", name, "Dead"]


def test_export_filename():
    assert export_filename(date(2026, 10, 19)) == "yield-canary-etfs-2026-10-19.csv"


def test_summarize():
    stats = dashboard_service.summarize([dict(r) for r in SEED])

    assert stats["total"] == 6
    assert (stats["healthy"], stats["dying"], stats["dead"]) == (3, 2, 1)
    assert stats["avg_take_home_cash_return_1y"] == pytest.approx((0.02 + 0.30 - 0.15 + 0.12) / 4)
    assert dashboard_service.summarize([])["avg_true_income_yield"] is None


@pytest.mark.asyncio
async def test_anonymous_table_is_gated(client, seeded):
    response = await client.get("/api/etfs")

    assert response.status_code == 200
    body = response.json()
    assert body["is_paid"] is False
    assert body["subscription_tier"] == "free"
    assert body["sort"] == "take_home_cash_return_1y"
    assert body["direction"] == "desc"
    assert body["count"] == 6

    by_ticker = {row["ticker"]: row for row in body["etfs"]}
    assert [row["ticker"] for row in body["etfs"]][:2] == ["TSLY", "QYLD"]
    assert by_ticker["TSLY"]["locked"] is False
    assert by_ticker["TSLY"]["death_clock_years"] == 7.5
    assert by_ticker["AAAA"]["locked"] is True
    assert by_ticker["AAAA"]["take_home_cash_return_1y"] is None
    assert by_ticker["AAAA"]["roc_latest"] is None
    assert by_ticker["AAAA"]["latest_adj_close"] == 12.34


@pytest.mark.asyncio
async def test_paid_user_sees_everything(client, seeded, session_factory):
    headers = await auth_headers(session_factory, "pro@example.com", tier="basic")

    response = await client.get("/api/etfs", headers=headers)

    body = response.json()
    assert body["is_paid"] is True
    assert body["subscription_tier"] == "basic"
    assert all(row["locked"] is False for row in body["etfs"])
    assert {row["ticker"]: row for row in body["etfs"]}["AAAA"]["take_home_cash_return_1y"] == 0.30


@pytest.mark.asyncio
async def test_table_filters_and_sorts(client, seeded):
    response = await client.get(
        "/api/etfs", params={"status": "Healthy", "sort": "ticker", "direction": "asc"}
    )

    assert [row["ticker"] for row in response.json()["etfs"]] == ["QYLD", "AAAA", "CCCC"]


@pytest.mark.asyncio
async def test_table_rejects_unknown_sort(client, seeded):
    response = await client.get("/api/etfs", params={"sort": "password"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_stats_endpoint(client, seeded):
    response = await client.get("/api/etfs/stats", params={"status": "Dying"})

    assert response.status_code == 200
    assert response.json()["total"] == 2
    assert response.json()["dying"] == 2


@pytest.mark.asyncio
async def test_export_requires_paid_access(client, seeded, session_factory):
    anonymous = await client.get("/api/etfs/export.csv")
    headers = await auth_headers(session_factory, "free@example.com")
    free = await client.get("/api/etfs/export.csv", headers=headers)

    assert anonymous.status_code == 401
    assert free.status_code == 403


@pytest.mark.asyncio
async def test_export_for_paid_user(client, seeded, session_factory):
    headers = await auth_headers(session_factory, "pro@example.com", tier="advanced")

    response = await client.get("/api/etfs/export.csv", params={"status": "Dying"}, headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="yield-canary-etfs-' in response.headers["content-disposition"]
    lines = response.text.split("\r\n")
    assert lines[0].startswith("Ticker,Name,Canary Status")
    assert [line.split(",")[0] for line in lines[1:3]] == ["TSLY", "DDDD"]


@pytest.mark.asyncio
async def test_my_subscription(client, session_factory):
    headers = await auth_headers(session_factory, "pro@example.com", tier="advanced")

    response = await client.get("/api/me/subscription", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "pro@example.com"
    assert body["is_paid"] is True
    assert body["subscription_tier"] == "advanced"


@pytest.mark.asyncio
async def test_table_filters_by_issuer_and_lists_issuers(client, seeded):
    response = await client.get("/api/etfs", params={"issuer": "Global X", "sort": "ticker", "direction": "asc"})

    assert response.status_code == 200
    body = response.json()
    assert [row["ticker"] for row in body["etfs"]] == ["QYLD", "AAAA"]
    assert body["count"] == 2
    # The issuer list covers the whole table, not just the filtered rows
    assert body["issuers"] == ["Global X", "Roundhill", "YieldMax"]


@pytest.mark.asyncio
async def test_stats_and_export_honour_issuer(client, seeded, session_factory):
    stats = await client.get("/api/etfs/stats", params={"issuer": "YieldMax"})
    headers = await auth_headers(session_factory, "pro@example.com", tier="basic")
    export = await client.get("/api/etfs/export.csv", params={"issuer": "Roundhill"}, headers=headers)

    assert stats.json()["total"] == 3
    assert (stats.json()["healthy"], stats.json()["dying"], stats.json()["dead"]) == (0, 2, 1)
    assert export.status_code == 200
    parsed = list(csv.reader(io.StringIO(export.text, newline="")))
    assert [row[0] for row in parsed[1:]] == ["CCCC"]


@pytest.mark.asyncio
async def test_unverified_paid_record_stays_gated(client, seeded, session_factory):
    headers = await auth_headers(session_factory, "claimed@example.com", tier="advanced", verified=False)

    table = await client.get("/api/etfs", headers=headers)
    export = await client.get("/api/etfs/export.csv", headers=headers)

    assert table.json()["is_paid"] is False
    assert table.json()["subscription_tier"] == "free"
    assert {row["ticker"]: row for row in table.json()["etfs"]}["AAAA"]["locked"] is True
    assert export.status_code == 403
