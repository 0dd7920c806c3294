"""
Dagschema Planner — Entry Point.

    python main.py schedule.txt            # preview what an import would create
    python main.py schedule.txt --apply    # create projects/workers and store the day
    cat schedule.txt | python main.py -    # read the schedule from stdin
"""

import argparse
import asyncio
import logging
import sys

from src.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.adapters.sqlite_registry import SQLiteRegistryAdapter
from src.core.import_service import ScheduleImportService, format_preview
from src.data.db import RegistryDB, ScheduleDB
from src.ports.registry_port import RegistryError

logger = logging.getLogger("dagschema")


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as fh:
        return fh.read()


async def run(path: str, apply: bool, db_path: str) -> int:
    service = ScheduleImportService(
        registry=SQLiteRegistryAdapter(RegistryDB(db_path)),
        schedule_db=ScheduleDB(db_path),
    )
    text = _read_text(path)

    try:
        if apply:
            report = await service.import_text(text)
            print(report.message)
        else:
            preview = await service.preview(text)
            print(format_preview(preview))
    except RegistryError as exc:
        logger.error("Import failed: %s", exc)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Parse and import a Dutch daily schedule")
    parser.add_argument("schedule", help="schedule text file, or - for stdin")
    parser.add_argument("--apply", action="store_true", help="create missing entities and store the day")
    parser.add_argument("--db", default=settings.DATABASE_PATH, help="SQLite database path")
    args = parser.parse_args(argv)
    return asyncio.run(run(args.schedule, args.apply, args.db))


if __name__ == "__main__":
    sys.exit(main())
