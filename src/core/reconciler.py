"""
Dagschema Planner — Schedule Reconciler.

Matches the addresses and worker names of a parsed schedule against the
registry and, when applying, creates the projects and placeholder workers
that are missing and links every scheduled worker to its project.

Matching is case-insensitive on the whitespace-normalized name; there is no
fuzzy matching. "Hoofdstraat 123" and "hoofdstraat  123 " are the same
entity, "Hoofdstraat 123 Amsterdam" is a different one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Awaitable, TypeVar

from src.ports.registry_port import (
    CreationFailure,
    LookupFailure,
    PhaseSpec,
    ProjectSpec,
    RegistryError,
    WorkerSpec,
)

if TYPE_CHECKING:
    from src.core.parser import ParsedSchedule
    from src.ports.registry_port import EntityLookup, EntityRef, EntityRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class NewItemsPreview:
    """Names in a schedule that do not exist in the registry yet."""

    new_projects: list[str] = field(default_factory=list)
    new_workers: list[str] = field(default_factory=list)


@dataclass
class AutoImportResult:
    """Outcome of applying a schedule to the registry.

    The mappings cover every address and worker name of the schedule, reused
    or newly created. Each spelling found in the text is a key both as parsed
    and whitespace-normalized.
    """

    created_projects: int = 0
    created_workers: int = 0
    project_mapping: dict[str, str] = field(default_factory=dict)
    worker_mapping: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------

def normalize_name(name: str) -> str:
    """Collapse whitespace runs to a single space and trim."""
    return " ".join(name.split())


def match_key(name: str) -> str:
    return normalize_name(name).casefold()


def _unique(names: list[str]) -> list[str]:
    """Normalized names, first spelling kept, duplicates (any case) dropped."""
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        normalized = normalize_name(name)
        key = normalized.casefold()
        if not normalized or key in seen:
            continue
        seen.add(key)
        result.append(normalized)
    return result


def _mapping(names: list[str], resolved: dict[str, str]) -> dict[str, str]:
    """Spelling -> id, keyed both as parsed and whitespace-normalized."""
    mapping: dict[str, str] = {}
    for name in names:
        entity_id = resolved.get(match_key(name))
        if entity_id is None:
            continue
        mapping.setdefault(name, entity_id)
        mapping.setdefault(normalize_name(name), entity_id)
    return mapping


def _all_addresses(schedule: ParsedSchedule) -> list[str]:
    return [item.address for item in schedule.items]


def _all_worker_names(schedule: ParsedSchedule) -> list[str]:
    names = [w.name for item in schedule.items for w in item.workers]
    names.extend(absence.worker_name for absence in schedule.absences)
    return names


def collect_addresses(schedule: ParsedSchedule) -> list[str]:
    """Unique normalized addresses in order of first appearance."""
    return _unique(_all_addresses(schedule))


def collect_worker_names(schedule: ParsedSchedule) -> list[str]:
    """Unique normalized worker names from rosters and absences."""
    return _unique(_all_worker_names(schedule))


def _index(refs: list[EntityRef]) -> dict[str, str]:
    """match key -> id; the first entity wins when the registry holds duplicates."""
    index: dict[str, str] = {}
    for ref in refs:
        index.setdefault(match_key(ref.name), ref.id)
    return index


# ---------------------------------------------------------------------------
# Collaborator calls: every failure leaves as a typed RegistryError
# ---------------------------------------------------------------------------

async def _lookup(call: Awaitable[T], what: str) -> T:
    try:
        return await call
    except RegistryError:
        raise
    except Exception as exc:
        logger.error("Registry lookup of %s failed: %s", what, exc)
        raise LookupFailure(f"Failed to look up {what}: {exc}") from exc


async def _create(call: Awaitable[T], what: str) -> T:
    try:
        return await call
    except RegistryError:
        raise
    except Exception as exc:
        logger.error("Registry write for %s failed: %s", what, exc)
        raise CreationFailure(f"Failed to create {what}: {exc}") from exc


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------

class ScheduleReconciler:
    """Computes and creates the registry entities a schedule needs.

    Holds only configuration; safe to share between concurrent callers.
    """

    def __init__(
        self,
        project_budget: float | None = None,
        project_duration_days: int | None = None,
        phase_name: str | None = None,
        worker_role: str | None = None,
    ) -> None:
        if None in (project_budget, project_duration_days, phase_name, worker_role):
            from src.config import settings

            if project_budget is None:
                project_budget = settings.DEFAULT_PROJECT_BUDGET
            if project_duration_days is None:
                project_duration_days = settings.PROJECT_DURATION_DAYS
            phase_name = phase_name or settings.DEFAULT_PHASE_NAME
            worker_role = worker_role or settings.DEFAULT_WORKER_ROLE

        self.project_budget = project_budget
        self.project_duration_days = project_duration_days
        self.phase_name = phase_name
        self.worker_role = worker_role

    # -- specs ---------------------------------------------------------------

    def project_spec(self, address: str, schedule: ParsedSchedule) -> ProjectSpec:
        work_date = schedule.work_date
        return ProjectSpec(
            name=address,
            description=f"Auto-created from schedule for {work_date.isoformat()}",
            status="planning",
            start_date=work_date,
            end_date=work_date + timedelta(days=self.project_duration_days),
            budget=self.project_budget,
        )

    def phase_spec(self) -> PhaseSpec:
        return PhaseSpec(
            name=self.phase_name,
            description=f"Phase: {self.phase_name}",
            status="planning",
            budget=0.0,
        )

    def worker_spec(self, name: str) -> WorkerSpec:
        return WorkerSpec(name=name, role=self.worker_role, is_placeholder=True)

    # -- preview -------------------------------------------------------------

    async def preview(
        self, schedule: ParsedSchedule, lookup: EntityLookup,
    ) -> NewItemsPreview:
        """Return the addresses and worker names missing from the registry.

        Read-only. Raises LookupFailure when the registry cannot be queried.
        """
        addresses = collect_addresses(schedule)
        workers = collect_worker_names(schedule)

        existing_projects: dict[str, str] = {}
        if addresses:
            existing_projects = _index(await _lookup(
                lookup.find_projects_by_name(addresses), "projects",
            ))
        existing_workers: dict[str, str] = {}
        if workers:
            existing_workers = _index(await _lookup(
                lookup.find_workers_by_name(workers), "workers",
            ))

        preview = NewItemsPreview(
            new_projects=[a for a in addresses if a.casefold() not in existing_projects],
            new_workers=[w for w in workers if w.casefold() not in existing_workers],
        )
        logger.info(
            "Preview: %d new project(s), %d new worker(s)",
            len(preview.new_projects), len(preview.new_workers),
        )
        return preview

    # -- apply ---------------------------------------------------------------

    async def _resolve_projects(
        self, schedule: ParsedSchedule, registry: EntityRegistry,
    ) -> tuple[dict[str, str], int]:
        addresses = collect_addresses(schedule)
        if not addresses:
            return {}, 0

        resolved = _index(await _lookup(
            registry.find_projects_by_name(addresses), "projects",
        ))
        created = 0
        for address in addresses:
            key = address.casefold()
            if key in resolved:
                continue
            project = await _create(
                registry.create_project(self.project_spec(address, schedule)),
                f"project '{address}'",
            )
            await _create(
                registry.create_default_phase(project.id, self.phase_spec()),
                f"default phase of '{address}'",
            )
            resolved[key] = project.id
            created += 1
            logger.info("Created project '%s' (%s)", address, project.id)
        return resolved, created

    async def _resolve_workers(
        self, schedule: ParsedSchedule, registry: EntityRegistry,
    ) -> tuple[dict[str, str], int]:
        names = collect_worker_names(schedule)
        if not names:
            return {}, 0

        resolved = _index(await _lookup(
            registry.find_workers_by_name(names), "workers",
        ))
        created = 0
        for name in names:
            key = name.casefold()
            if key in resolved:
                continue
            worker = await _create(
                registry.create_worker_placeholder(self.worker_spec(name)),
                f"worker '{name}'",
            )
            resolved[key] = worker.id
            created += 1
            logger.info("Created placeholder worker '%s' (%s)", name, worker.id)
        return resolved, created

    async def apply(
        self, schedule: ParsedSchedule, registry: EntityRegistry,
    ) -> AutoImportResult:
        """Create missing projects and workers, then link workers to projects.

        Work happens in a fixed order: projects (each with its default
        phase), then workers, then links. The first failure aborts the call
        with LookupFailure or CreationFailure. Re-applying the same schedule
        creates nothing new.
        """
        projects, created_projects = await self._resolve_projects(schedule, registry)
        workers, created_workers = await self._resolve_workers(schedule, registry)

        links: list[tuple[str, str]] = []
        for item in schedule.items:
            project_id = projects.get(match_key(item.address))
            if project_id is None:
                continue
            for worker in item.workers:
                worker_id = workers.get(match_key(worker.name))
                if worker_id is None or (worker_id, project_id) in links:
                    continue
                links.append((worker_id, project_id))

        for worker_id, project_id in links:
            await _create(
                registry.link_worker_to_project(worker_id, project_id, self.worker_role),
                f"link {worker_id} -> {project_id}",
            )

        result = AutoImportResult(
            created_projects=created_projects,
            created_workers=created_workers,
            project_mapping=_mapping(_all_addresses(schedule), projects),
            worker_mapping=_mapping(_all_worker_names(schedule), workers),
        )
        logger.info(
            "Auto-import for %s: %d project(s) and %d worker(s) created, %d link(s)",
            schedule.work_date.isoformat(), created_projects, created_workers, len(links),
        )
        return result


# ---------------------------------------------------------------------------
# Module-level shortcuts using configured defaults
# ---------------------------------------------------------------------------

async def get_new_items_preview(
    schedule: ParsedSchedule, lookup: EntityLookup,
) -> NewItemsPreview:
    return await ScheduleReconciler().preview(schedule, lookup)


async def auto_create_missing_projects_and_workers(
    schedule: ParsedSchedule, registry: EntityRegistry,
) -> AutoImportResult:
    return await ScheduleReconciler().apply(schedule, registry)
