"""
Replace the etfs table with the contents of an upstream grid export.

Usage:
    python import_etfs.py path/to/export.csv
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from database import AsyncSessionLocal, init_db
from services.etf_import_service import BATCH_SIZE, parse_csv, replace_etfs

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger("import_etfs")


async def run_import(csv_path: Path, batch_size: int = BATCH_SIZE) -> int:
    rows = parse_csv(csv_path.read_text(encoding="utf-8"))
    logger.info(f"Parsed {len(rows)} ETF records from {csv_path}")

    await init_db()
    async with AsyncSessionLocal() as db:
        report = await replace_etfs(db, rows, batch_size=batch_size)

    if report.failed_batches:
        logger.error(f"Import finished with failed batches: {report.failed_batches}")
        return 1
    logger.info(f"Import complete: {report.inserted} records inserted")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import ETF data from a CSV export")
    parser.add_argument("csv_path", type=Path, help="CSV export with one row per fund")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    args = parser.parse_args(argv)

    if not args.csv_path.is_file():
        logger.error(f"File not found: {args.csv_path}")
        return 2
    return asyncio.run(run_import(args.csv_path, args.batch_size))


if __name__ == "__main__":
    sys.exit(main())
