"""
Dagschema Planner — Schedule Import Service.

UI-agnostic orchestration of a schedule import:
parse text -> preview new projects/workers -> create them -> store the day.

Each front end (CLI, web, chat) calls this service and renders the returned
objects in its own way.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.core.parser import ParsedSchedule, parse_dagschema
from src.core.reconciler import AutoImportResult, NewItemsPreview, ScheduleReconciler
from src.ports.registry_port import CreationFailure, RegistryError

if TYPE_CHECKING:
    from datetime import date

    from src.data.db import ScheduleDB
    from src.ports.registry_port import EntityRegistry

logger = logging.getLogger(__name__)


@dataclass
class ImportPreview:
    schedule: ParsedSchedule
    new_projects: list[str] = field(default_factory=list)
    new_workers: list[str] = field(default_factory=list)
    worker_count: int = 0
    message: str = ""


@dataclass
class ImportReport:
    schedule: ParsedSchedule
    result: AutoImportResult
    schedule_id: str | None = None
    message: str = ""


def summary_message(schedule: ParsedSchedule) -> str:
    return (
        f"Found {len(schedule.items)} schedule items "
        f"and {len(schedule.absences)} absences"
    )


def format_preview(preview: ImportPreview) -> str:
    """Render a preview as plain text, one block per address."""
    schedule = preview.schedule
    lines = [
        f"Schedule for {schedule.work_date.strftime('%A %d %B %Y')}",
        preview.message or summary_message(schedule),
        "",
    ]
    for item in schedule.items:
        lines.append(f"{item.address} [{item.category}] {item.start_time} - {item.end_time}")
        for worker in item.workers:
            marker = " (assist)" if worker.is_assistant else ""
            lines.append(f"  - {worker.name}{marker}")
    if schedule.absences:
        lines.append("")
        lines.append("Absences:")
        for absence in schedule.absences:
            reason = f" ({absence.reason})" if absence.reason else ""
            lines.append(f"  - {absence.worker_name}{reason}")
    if preview.new_projects:
        lines.append("")
        lines.append(f"New projects ({len(preview.new_projects)}): " + ", ".join(preview.new_projects))
    if preview.new_workers:
        lines.append("")
        lines.append(f"New workers ({len(preview.new_workers)}): " + ", ".join(preview.new_workers))
    return "\n".join(lines)


class ScheduleImportService:
    """Stateless service: parse, reconcile and store schedule text."""

    def __init__(
        self,
        registry: EntityRegistry,
        schedule_db: ScheduleDB | None = None,
        reconciler: ScheduleReconciler | None = None,
    ) -> None:
        self._registry = registry
        self._schedule_db = schedule_db
        self._reconciler = reconciler or ScheduleReconciler()

    async def preview(self, text: str, today: date | None = None) -> ImportPreview:
        """Parse text and report which projects and workers would be created."""
        schedule = parse_dagschema(text, today=today)
        new_items: NewItemsPreview = await self._reconciler.preview(schedule, self._registry)
        return ImportPreview(
            schedule=schedule,
            new_projects=new_items.new_projects,
            new_workers=new_items.new_workers,
            worker_count=schedule.worker_count,
            message=summary_message(schedule),
        )

    async def import_text(self, text: str, today: date | None = None) -> ImportReport:
        """Parse, create missing entities, and store the day.

        Raises LookupFailure/CreationFailure; nothing is stored for the day
        when the registry step fails.
        """
        schedule = parse_dagschema(text, today=today)
        if not schedule.items and not schedule.absences:
            logger.info("Nothing to import for %s", schedule.work_date.isoformat())
            return ImportReport(
                schedule=schedule,
                result=AutoImportResult(),
                message=summary_message(schedule),
            )

        result = await self._reconciler.apply(schedule, self._registry)

        schedule_id = None
        if self._schedule_db is not None:
            try:
                stored = await asyncio.to_thread(
                    self._schedule_db.save_schedule,
                    schedule,
                    result.project_mapping,
                    result.worker_mapping,
                )
            except RegistryError:
                raise
            except Exception as exc:
                logger.error("Failed to store schedule for %s: %s", schedule.work_date, exc)
                raise CreationFailure(f"Failed to store schedule: {exc}") from exc
            schedule_id = stored.id if stored else None

        message = (
            f"Imported {len(schedule.items)} schedule items for "
            f"{schedule.work_date.strftime('%b %d, %Y')}: "
            f"{result.created_projects} new project(s), "
            f"{result.created_workers} new worker(s)"
        )
        logger.info("%s", message)
        return ImportReport(
            schedule=schedule,
            result=result,
            schedule_id=schedule_id,
            message=message,
        )
