"""SQLite registry adapter — implements EntityRegistry over RegistryDB.

All storage-specific logic lives here. Core modules never import this
directly; they depend on the EntityLookup/EntityRegistry protocols.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3

from src.data.db import RegistryDB
from src.ports.registry_port import (
    CreationFailure,
    EntityRef,
    LookupFailure,
    PhaseSpec,
    ProjectSpec,
    WorkerSpec,
)

logger = logging.getLogger(__name__)


class SQLiteRegistryAdapter:
    """SQLite implementation of EntityRegistry.

    Each call runs in a worker thread with its own connection.
    """

    def __init__(self, db: RegistryDB | None = None) -> None:
        self._db = db if db is not None else RegistryDB()

    @property
    def db(self) -> RegistryDB:
        return self._db

    async def find_projects_by_name(self, names: list[str]) -> list[EntityRef]:
        try:
            projects = await asyncio.to_thread(self._db.find_projects, names)
        except sqlite3.Error as exc:
            logger.error("Failed to look up projects: %s", exc)
            raise LookupFailure(f"Failed to look up projects: {exc}") from exc
        return [EntityRef(id=p.id, name=p.name) for p in projects]

    async def find_workers_by_name(self, names: list[str]) -> list[EntityRef]:
        try:
            workers = await asyncio.to_thread(self._db.find_workers, names)
        except sqlite3.Error as exc:
            logger.error("Failed to look up workers: %s", exc)
            raise LookupFailure(f"Failed to look up workers: {exc}") from exc
        return [EntityRef(id=w.id, name=w.name) for w in workers]

    async def create_project(self, spec: ProjectSpec) -> EntityRef:
        try:
            project = await asyncio.to_thread(
                self._db.add_project,
                spec.name,
                description=spec.description,
                status=spec.status,
                start_date=spec.start_date,
                end_date=spec.end_date,
                budget=spec.budget,
            )
        except sqlite3.Error as exc:
            logger.error("Failed to create project '%s': %s", spec.name, exc)
            raise CreationFailure(f"Failed to create project '{spec.name}': {exc}") from exc
        return EntityRef(id=project.id, name=project.name)

    async def create_default_phase(self, project_id: str, spec: PhaseSpec) -> EntityRef:
        try:
            phase = await asyncio.to_thread(
                self._db.add_phase,
                project_id,
                spec.name,
                description=spec.description,
                status=spec.status,
                budget=spec.budget,
            )
        except sqlite3.Error as exc:
            logger.error("Failed to create phase for project %s: %s", project_id, exc)
            raise CreationFailure(f"Failed to create phase for {project_id}: {exc}") from exc
        return EntityRef(id=phase.id, name=phase.name)

    async def create_worker_placeholder(self, spec: WorkerSpec) -> EntityRef:
        try:
            worker = await asyncio.to_thread(
                self._db.add_worker,
                spec.name,
                role=spec.role,
                is_placeholder=spec.is_placeholder,
            )
        except sqlite3.Error as exc:
            logger.error("Failed to create worker '%s': %s", spec.name, exc)
            raise CreationFailure(f"Failed to create worker '{spec.name}': {exc}") from exc
        return EntityRef(id=worker.id, name=worker.name)

    async def link_worker_to_project(
        self, worker_id: str, project_id: str, role: str
    ) -> None:
        try:
            await asyncio.to_thread(self._db.link_worker, worker_id, project_id, role)
        except sqlite3.Error as exc:
            logger.error("Failed to link worker %s to project %s: %s", worker_id, project_id, exc)
            raise CreationFailure(
                f"Failed to link worker {worker_id} to project {project_id}: {exc}"
            ) from exc
