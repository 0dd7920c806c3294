"""Shared test fixtures and configuration.

Sets fake environment variables before any src imports, and provides temp
SQLite stores plus an in-memory registry fake.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("DEFAULT_PROJECT_BUDGET", "0")
os.environ.setdefault("PROJECT_DURATION_DAYS", "30")

import itertools

import pytest

from src.ports.registry_port import CreationFailure, EntityRef


SAMPLE_MONDAY_TEXT = """
Dagschema Maandag:

Hoofdstraat 123 Amsterdam 08:00-16:00:
- Jan de Vries
- Piet Janssen [assist]
- Maria van der Berg

Kerkstraat 45 Utrecht 09:00-17:00:
- Tom Bakker
- Lisa de Jong
- Frank Peters [assist material check]

Materiaaldepot Almere 07:30-15:30:
- Sandra Visser
- Robert Klein
- Mike de Groot [assist]

Storing Nieuwegein 10:00-14:00:
- Carlos Mendez
- Emma de Wit

Special Project Rotterdam 08:30-16:30:
- Alex Johnson
- Sophie van Dam
- Tim Verhoeven [assist coordination]
"""


class FakeRegistry:
    """In-memory EntityRegistry with call recording and failure injection."""

    def __init__(self, projects=(), workers=()):
        self._ids = itertools.count(1)
        self.projects: dict[str, str] = {}       # id -> name
        self.phases: list[tuple[str, str]] = []  # (project_id, phase name)
        self.workers: dict[str, str] = {}        # id -> name
        self.worker_specs: list = []
        self.project_specs: list = []
        self.links: set[tuple[str, str]] = set()
        self.link_calls = 0
        self.calls: list[str] = []
        self.fail_on: str | None = None
        for name in projects:
            self.projects[self._next("p")] = name
        for name in workers:
            self.workers[self._next("w")] = name

    def _next(self, prefix):
        return f"{prefix}{next(self._ids)}"

    def _maybe_fail(self, op):
        self.calls.append(op)
        if self.fail_on == op:
            raise CreationFailure(f"{op} failed")

    @staticmethod
    def _matches(stored, names):
        keys = {" ".join(n.split()).casefold() for n in names}
        return " ".join(stored.split()).casefold() in keys

    async def find_projects_by_name(self, names):
        self.calls.append("find_projects")
        return [EntityRef(id=i, name=n) for i, n in self.projects.items() if self._matches(n, names)]

    async def find_workers_by_name(self, names):
        self.calls.append("find_workers")
        return [EntityRef(id=i, name=n) for i, n in self.workers.items() if self._matches(n, names)]

    async def create_project(self, spec):
        self._maybe_fail("create_project")
        project_id = self._next("p")
        self.projects[project_id] = spec.name
        self.project_specs.append(spec)
        return EntityRef(id=project_id, name=spec.name)

    async def create_default_phase(self, project_id, spec):
        self._maybe_fail("create_default_phase")
        self.phases.append((project_id, spec.name))
        return EntityRef(id=self._next("ph"), name=spec.name)

    async def create_worker_placeholder(self, spec):
        self._maybe_fail("create_worker_placeholder")
        worker_id = self._next("w")
        self.workers[worker_id] = spec.name
        self.worker_specs.append(spec)
        return EntityRef(id=worker_id, name=spec.name)

    async def link_worker_to_project(self, worker_id, project_id, role):
        self._maybe_fail("link_worker_to_project")
        self.link_calls += 1
        self.links.add((worker_id, project_id))


@pytest.fixture
def sample_text():
    return SAMPLE_MONDAY_TEXT


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def registry_factory():
    """Build a FakeRegistry pre-seeded with project and worker names."""
    return FakeRegistry


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_planner.db")


@pytest.fixture
def registry_db(tmp_db_path):
    """Return a RegistryDB instance backed by a temp file."""
    from src.data.db import RegistryDB
    return RegistryDB(db_path=tmp_db_path)


@pytest.fixture
def schedule_db(tmp_db_path):
    """Return a ScheduleDB sharing the registry's temp file."""
    from src.data.db import ScheduleDB
    return ScheduleDB(db_path=tmp_db_path)


@pytest.fixture
def sqlite_registry(registry_db):
    from src.adapters.sqlite_registry import SQLiteRegistryAdapter
    return SQLiteRegistryAdapter(registry_db)
