"""Tests for src.data.db — RegistryDB and ScheduleDB (SQLite storage)."""

import sqlite3
from datetime import date

import pytest

from src.core.parser import parse_dagschema
from src.data.db import normalize
from src.ports.registry_port import CreationFailure, LookupFailure

WEDNESDAY = date(2026, 10, 14)


class TestNormalize:
    def test_casefold_and_whitespace(self):
        assert normalize("  Hoofdstraat   123 ") == "hoofdstraat 123"


# ---------------------------------------------------------------------------
# RegistryDB
# ---------------------------------------------------------------------------


class TestRegistryDBProjects:
    def test_add_project_returns_project(self, registry_db):
        project = registry_db.add_project(
            "Hoofdstraat 123",
            description="Auto-created",
            start_date=date(2026, 10, 19),
            end_date=date(2026, 11, 18),
            budget=500.0,
        )
        assert project.id
        assert project.name == "Hoofdstraat 123"
        assert project.status == "planning"
        assert project.start_date == "2026-10-19"
        assert project.end_date == "2026-11-18"

    def test_get_project(self, registry_db):
        added = registry_db.add_project("Kerkstraat 45")
        fetched = registry_db.get_project(added.id)
        assert fetched == added

    def test_get_project_not_found(self, registry_db):
        assert registry_db.get_project("missing") is None

    def test_find_projects_case_insensitive(self, registry_db):
        registry_db.add_project("Hoofdstraat 123")
        registry_db.add_project("Kerkstraat 45")
        found = registry_db.find_projects(["HOOFDSTRAAT  123", "Nowhere 1"])
        assert [p.name for p in found] == ["Hoofdstraat 123"]

    def test_find_projects_empty_names(self, registry_db):
        registry_db.add_project("Hoofdstraat 123")
        assert registry_db.find_projects([]) == []
        assert registry_db.find_projects(["  "]) == []

    def test_list_projects(self, registry_db):
        registry_db.add_project("A")
        registry_db.add_project("B")
        assert {p.name for p in registry_db.list_projects()} == {"A", "B"}


class TestRegistryDBPhases:
    def test_add_and_list_phases(self, registry_db):
        project = registry_db.add_project("A")
        registry_db.add_phase(project.id, "General", description="Phase: General")
        phases = registry_db.list_phases(project.id)
        assert len(phases) == 1
        assert phases[0].name == "General"
        assert phases[0].description == "Phase: General"
        assert phases[0].spent == 0
        assert phases[0].progress == 0


class TestRegistryDBWorkers:
    def test_add_placeholder_worker(self, registry_db):
        worker = registry_db.add_worker("Jan de Vries", is_placeholder=True)
        assert worker.role == "worker"
        assert worker.is_placeholder is True

    def test_find_workers_case_insensitive(self, registry_db):
        registry_db.add_worker("Jan de Vries")
        found = registry_db.find_workers(["jan DE vries"])
        assert len(found) == 1
        assert found[0].is_placeholder is False

    def test_list_workers_by_role(self, registry_db):
        registry_db.add_worker("Jan")
        registry_db.add_worker("Mia", role="manager")
        assert [w.name for w in registry_db.list_workers(role="worker")] == ["Jan"]
        assert len(registry_db.list_workers()) == 2


class TestRegistryDBLinks:
    def test_link_worker(self, registry_db):
        project = registry_db.add_project("A")
        worker = registry_db.add_worker("Jan")
        assert registry_db.link_worker(worker.id, project.id) is True
        assert [w.name for w in registry_db.list_project_workers(project.id)] == ["Jan"]

    def test_link_is_idempotent(self, registry_db):
        project = registry_db.add_project("A")
        worker = registry_db.add_worker("Jan")
        registry_db.link_worker(worker.id, project.id)
        assert registry_db.link_worker(worker.id, project.id) is False
        assert len(registry_db.list_project_workers(project.id)) == 1


# ---------------------------------------------------------------------------
# ScheduleDB
# ---------------------------------------------------------------------------


@pytest.fixture
def imported(registry_db, sample_text):
    """Parsed sample schedule with every address and worker registered."""
    schedule = parse_dagschema(sample_text + "\nAfwezig: Peter van der Laan\n", today=WEDNESDAY)
    projects = {
        item.address: registry_db.add_project(item.address).id for item in schedule.items
    }
    workers = {
        w.name: registry_db.add_worker(w.name).id
        for item in schedule.items for w in item.workers
    }
    workers["Peter van der Laan"] = registry_db.add_worker("Peter van der Laan").id
    return schedule, projects, workers


class TestScheduleDBSave:
    def test_save_and_get(self, schedule_db, imported):
        schedule, projects, workers = imported
        stored = schedule_db.save_schedule(schedule, projects, workers)

        assert stored.work_date == "2026-10-19"
        assert [i.address for i in stored.items] == [i.address for i in schedule.items]
        first = stored.items[0]
        assert first.project_id == projects["Hoofdstraat 123 Amsterdam"]
        assert [w.name for w in first.workers] == ["Jan de Vries", "Piet Janssen", "Maria van der Berg"]
        assert [w.is_assistant for w in first.workers] == [False, True, False]
        assert [a.name for a in stored.absences] == ["Peter van der Laan"]

    def test_resave_replaces_day(self, schedule_db, imported):
        schedule, projects, workers = imported
        first = schedule_db.save_schedule(schedule, projects, workers)
        second = schedule_db.save_schedule(schedule, projects, workers)

        assert second.id == first.id
        assert len(second.items) == 5
        assert len(second.absences) == 1

    def test_unresolved_workers_skipped(self, schedule_db, imported):
        schedule, projects, _ = imported
        stored = schedule_db.save_schedule(schedule, projects, {})
        assert len(stored.items) == 5
        assert all(item.workers == [] for item in stored.items)
        assert stored.absences == []

    def test_mapping_keys_matched_case_insensitively(self, schedule_db, imported):
        schedule, projects, workers = imported
        upper = {k.upper(): v for k, v in workers.items()}
        stored = schedule_db.save_schedule(schedule, projects, upper)
        assert stored.items[0].workers[0].name == "Jan de Vries"

    def test_get_schedule_missing(self, schedule_db):
        assert schedule_db.get_schedule(date(2030, 1, 1)) is None


class TestScheduleDBUnassigned:
    def test_unassigned_workers(self, registry_db, schedule_db, imported):
        schedule, projects, workers = imported
        registry_db.add_worker("Vrije Willem")
        registry_db.add_worker("Manager Mia", role="manager")
        schedule_db.save_schedule(schedule, projects, workers)

        unassigned = schedule_db.unassigned_workers(schedule.work_date)
        assert [w.name for w in unassigned] == ["Vrije Willem"]

    def test_everyone_unassigned_on_other_day(self, schedule_db, imported):
        schedule, projects, workers = imported
        schedule_db.save_schedule(schedule, projects, workers)
        assert len(schedule_db.unassigned_workers("2030-01-01")) == 15


class TestScheduleDBErrors:
    def _execute(self, db_path, sql):
        conn = sqlite3.connect(db_path)
        try:
            conn.execute(sql)
            conn.commit()
        finally:
            conn.close()

    def test_failed_save_raises_and_keeps_day(self, schedule_db, imported, tmp_db_path):
        schedule, projects, workers = imported
        schedule_db.save_schedule(schedule, projects, workers)
        self._execute(tmp_db_path, """
            CREATE TRIGGER reject_absences BEFORE INSERT ON absences
            BEGIN SELECT RAISE(ABORT, 'absences locked'); END
        """)

        with pytest.raises(CreationFailure, match="absences locked"):
            schedule_db.save_schedule(schedule, projects, workers)

        stored = schedule_db.get_schedule(schedule.work_date)
        assert len(stored.items) == 5
        assert [a.name for a in stored.absences] == ["Peter van der Laan"]

    def test_read_errors_are_lookup_failures(self, schedule_db, tmp_db_path):
        self._execute(tmp_db_path, "DROP TABLE schedules")

        with pytest.raises(LookupFailure):
            schedule_db.get_schedule(date(2026, 10, 19))
        with pytest.raises(LookupFailure):
            schedule_db.unassigned_workers("2026-10-19")
