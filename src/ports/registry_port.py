"""Registry port — abstract interface for the project/worker registry.

The reconciler depends on these protocols, never on a specific store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Protocol


class RegistryError(Exception):
    """Base class for registry failures surfaced to callers."""


class LookupFailure(RegistryError):
    """Raised when the registry cannot be queried."""


class CreationFailure(RegistryError):
    """Raised when creating an entity or a link fails."""


@dataclass(frozen=True)
class EntityRef:
    """Identity of an existing or newly created registry entity."""

    id: str
    name: str


@dataclass(frozen=True)
class ProjectSpec:
    name: str
    description: str
    status: str
    start_date: date
    end_date: date
    budget: float = 0.0


@dataclass(frozen=True)
class PhaseSpec:
    name: str
    description: str = ""
    status: str = "planning"
    budget: float = 0.0


@dataclass(frozen=True)
class WorkerSpec:
    name: str
    role: str = "worker"
    is_placeholder: bool = True


class EntityLookup(Protocol):
    """Read-only registry access used for previews."""

    async def find_projects_by_name(self, names: list[str]) -> list[EntityRef]: ...

    async def find_workers_by_name(self, names: list[str]) -> list[EntityRef]: ...


class EntityRegistry(EntityLookup, Protocol):
    """Read+write registry access used when applying an import."""

    async def create_project(self, spec: ProjectSpec) -> EntityRef: ...

    async def create_default_phase(
        self, project_id: str, spec: PhaseSpec
    ) -> EntityRef: ...

    async def create_worker_placeholder(self, spec: WorkerSpec) -> EntityRef: ...

    async def link_worker_to_project(
        self, worker_id: str, project_id: str, role: str
    ) -> None: ...
