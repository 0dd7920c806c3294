"""
Dagschema Planner — SQLite storage.

RegistryDB holds projects, their phases, worker profiles and the
worker-to-project roles. ScheduleDB holds imported days (blocks, rostered
workers, absences) and shares the registry's database file.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from src.data.models import (
    Absence,
    Phase,
    Project,
    Schedule,
    ScheduledWorker,
    ScheduleItem,
    Worker,
)
from src.ports.registry_port import CreationFailure, LookupFailure

if TYPE_CHECKING:
    from src.core.parser import ParsedSchedule

logger = logging.getLogger(__name__)


def normalize(name: str) -> str:
    """Lookup key: whitespace collapsed, trimmed and casefolded."""
    return " ".join(name.split()).casefold()


def _new_id() -> str:
    return str(uuid.uuid4())


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


class RegistryDB:
    """SQLite-backed storage for projects, phases and workers."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def create_tables(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id              TEXT PRIMARY KEY,
                name            TEXT NOT NULL,
                name_normalized TEXT NOT NULL,
                description     TEXT NOT NULL DEFAULT '',
                status          TEXT NOT NULL DEFAULT 'planning',
                start_date      TEXT,
                end_date        TEXT,
                budget          REAL NOT NULL DEFAULT 0,
                created_at      TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS project_phases (
                id          TEXT PRIMARY KEY,
                project_id  TEXT NOT NULL REFERENCES projects(id),
                name        TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                status      TEXT NOT NULL DEFAULT 'planning',
                budget      REAL NOT NULL DEFAULT 0,
                spent       REAL NOT NULL DEFAULT 0,
                progress    INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id              TEXT PRIMARY KEY,
                name            TEXT NOT NULL,
                name_normalized TEXT NOT NULL,
                role            TEXT NOT NULL DEFAULT 'worker',
                is_placeholder  INTEGER NOT NULL DEFAULT 0,
                created_at      TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_project_role (
                user_id    TEXT NOT NULL REFERENCES profiles(id),
                project_id TEXT NOT NULL REFERENCES projects(id),
                role       TEXT NOT NULL DEFAULT 'worker',
                UNIQUE (user_id, project_id)
            )
        """)

    def _init_db(self) -> None:
        with self._connect() as conn:
            self.create_tables(conn)
        logger.debug("Registry tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            status=row["status"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            budget=row["budget"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_phase(row: sqlite3.Row) -> Phase:
        return Phase(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            description=row["description"],
            status=row["status"],
            budget=row["budget"],
            spent=row["spent"],
            progress=row["progress"],
        )

    @staticmethod
    def _row_to_worker(row: sqlite3.Row) -> Worker:
        return Worker(
            id=row["id"],
            name=row["name"],
            role=row["role"],
            is_placeholder=bool(row["is_placeholder"]),
            created_at=row["created_at"],
        )

    # -- projects ------------------------------------------------------------

    def add_project(
        self,
        name: str,
        description: str = "",
        status: str = "planning",
        start_date: date | None = None,
        end_date: date | None = None,
        budget: float = 0.0,
    ) -> Project:
        """Insert a new project and return it."""
        project = Project(
            id=_new_id(),
            name=name.strip(),
            description=description,
            status=status,
            start_date=start_date.isoformat() if start_date else None,
            end_date=end_date.isoformat() if end_date else None,
            budget=budget,
            created_at=datetime.now().isoformat(),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO projects
                    (id, name, name_normalized, description, status,
                     start_date, end_date, budget, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    project.id, project.name, normalize(project.name),
                    project.description, project.status,
                    project.start_date, project.end_date,
                    project.budget, project.created_at,
                ),
            )
        logger.info("Project added: %s '%s'", project.id, project.name)
        return project

    def get_project(self, project_id: str) -> Project | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_project(row)

    def find_projects(self, names: list[str]) -> list[Project]:
        """Case-insensitive exact match on the normalized project name."""
        keys = sorted({normalize(n) for n in names if n.strip()})
        if not keys:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM projects WHERE name_normalized IN ({_placeholders(keys)}) "
                "ORDER BY created_at",
                keys,
            ).fetchall()
        return [self._row_to_project(r) for r in rows]

    def list_projects(self) -> list[Project]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM projects ORDER BY created_at"
            ).fetchall()
        return [self._row_to_project(r) for r in rows]

    # -- phases --------------------------------------------------------------

    def add_phase(
        self,
        project_id: str,
        name: str,
        description: str = "",
        status: str = "planning",
        budget: float = 0.0,
    ) -> Phase:
        """Insert a phase for a project."""
        phase = Phase(
            id=_new_id(),
            project_id=project_id,
            name=name,
            description=description,
            status=status,
            budget=budget,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO project_phases
                    (id, project_id, name, description, status, budget, spent, progress)
                VALUES (?, ?, ?, ?, ?, ?, 0, 0)
                """,
                (phase.id, project_id, name, description, status, budget),
            )
        logger.info("Phase added: '%s' for project %s", name, project_id)
        return phase

    def list_phases(self, project_id: str) -> list[Phase]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM project_phases WHERE project_id = ? ORDER BY rowid",
                (project_id,),
            ).fetchall()
        return [self._row_to_phase(r) for r in rows]

    # -- workers -------------------------------------------------------------

    def add_worker(
        self, name: str, role: str = "worker", is_placeholder: bool = False,
    ) -> Worker:
        """Insert a worker profile."""
        worker = Worker(
            id=_new_id(),
            name=name.strip(),
            role=role,
            is_placeholder=is_placeholder,
            created_at=datetime.now().isoformat(),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles
                    (id, name, name_normalized, role, is_placeholder, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    worker.id, worker.name, normalize(worker.name),
                    role, int(is_placeholder), worker.created_at,
                ),
            )
        logger.info(
            "Worker added: %s '%s'%s",
            worker.id, worker.name, " (placeholder)" if is_placeholder else "",
        )
        return worker

    def find_workers(self, names: list[str]) -> list[Worker]:
        """Case-insensitive exact match on the normalized worker name."""
        keys = sorted({normalize(n) for n in names if n.strip()})
        if not keys:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM profiles WHERE name_normalized IN ({_placeholders(keys)}) "
                "ORDER BY created_at",
                keys,
            ).fetchall()
        return [self._row_to_worker(r) for r in rows]

    def list_workers(self, role: str | None = None) -> list[Worker]:
        query = "SELECT * FROM profiles"
        params: list = []
        if role is not None:
            query += " WHERE role = ?"
            params.append(role)
        query += " ORDER BY name"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_worker(r) for r in rows]

    # -- project roles -------------------------------------------------------

    def link_worker(self, user_id: str, project_id: str, role: str = "worker") -> bool:
        """Give a worker a role on a project. Returns False if already linked."""
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO user_project_role (user_id, project_id, role) "
                "VALUES (?, ?, ?)",
                (user_id, project_id, role),
            )
        linked = cursor.rowcount > 0
        if linked:
            logger.info("Worker %s linked to project %s as %s", user_id, project_id, role)
        return linked

    def list_project_workers(self, project_id: str) -> list[Worker]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT p.* FROM profiles p
                JOIN user_project_role r ON r.user_id = p.id
                WHERE r.project_id = ?
                ORDER BY p.name
                """,
                (project_id,),
            ).fetchall()
        return [self._row_to_worker(r) for r in rows]


class ScheduleDB:
    """SQLite-backed storage for imported daily schedules."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            # Worker names and roles are joined from the registry tables
            RegistryDB.create_tables(conn)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schedules (
                    id         TEXT PRIMARY KEY,
                    work_date  TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schedule_items (
                    id          TEXT PRIMARY KEY,
                    schedule_id TEXT NOT NULL REFERENCES schedules(id),
                    position    INTEGER NOT NULL,
                    project_id  TEXT,
                    address     TEXT NOT NULL,
                    category    TEXT NOT NULL DEFAULT 'normal',
                    start_time  TEXT NOT NULL,
                    end_time    TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schedule_item_workers (
                    schedule_item_id TEXT NOT NULL REFERENCES schedule_items(id),
                    user_id          TEXT NOT NULL,
                    is_assistant     INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (schedule_item_id, user_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS absences (
                    work_date TEXT NOT NULL,
                    user_id   TEXT NOT NULL,
                    reason    TEXT,
                    UNIQUE (work_date, user_id)
                )
            """)
        logger.debug("Schedule tables initialized at %s", self._db_path)

    def save_schedule(
        self,
        schedule: ParsedSchedule,
        project_mapping: dict[str, str],
        worker_mapping: dict[str, str],
    ) -> Schedule:
        """Store a parsed day, replacing whatever was stored for that date.

        Mapping keys are matched on the normalized name, so the mappings
        returned by the reconciler can be passed as-is. Workers and absences
        whose name is not in worker_mapping are skipped.

        Raises CreationFailure when the database rejects the write; the day
        is then left as it was.
        """
        try:
            return self._write_schedule(schedule, project_mapping, worker_mapping)
        except sqlite3.Error as exc:
            logger.error("Failed to store schedule for %s: %s", schedule.work_date, exc)
            raise CreationFailure(f"Failed to store schedule: {exc}") from exc

    def get_schedule(self, work_date: date | str) -> Schedule | None:
        """Fetch a stored day with its items, rostered workers and absences."""
        if isinstance(work_date, date):
            work_date = work_date.isoformat()
        try:
            return self._read_schedule(work_date)
        except sqlite3.Error as exc:
            logger.error("Failed to read schedule for %s: %s", work_date, exc)
            raise LookupFailure(f"Failed to read schedule: {exc}") from exc

    def unassigned_workers(self, work_date: date | str, role: str = "worker") -> list[Worker]:
        """Workers with the given role who are neither scheduled nor absent on a date."""
        if isinstance(work_date, date):
            work_date = work_date.isoformat()
        try:
            return self._query_unassigned(work_date, role)
        except sqlite3.Error as exc:
            logger.error("Failed to list unassigned workers for %s: %s", work_date, exc)
            raise LookupFailure(f"Failed to list unassigned workers: {exc}") from exc

    def _write_schedule(
        self,
        schedule: ParsedSchedule,
        project_mapping: dict[str, str],
        worker_mapping: dict[str, str],
    ) -> Schedule:
        work_date = schedule.work_date.isoformat()
        projects = {normalize(k): v for k, v in project_mapping.items()}
        workers = {normalize(k): v for k, v in worker_mapping.items()}
        skipped = 0

        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO schedules (id, work_date, created_at) VALUES (?, ?, ?)",
                (_new_id(), work_date, datetime.now().isoformat()),
            )
            schedule_id = conn.execute(
                "SELECT id FROM schedules WHERE work_date = ?", (work_date,)
            ).fetchone()["id"]

            conn.execute(
                """
                DELETE FROM schedule_item_workers WHERE schedule_item_id IN
                    (SELECT id FROM schedule_items WHERE schedule_id = ?)
                """,
                (schedule_id,),
            )
            conn.execute("DELETE FROM schedule_items WHERE schedule_id = ?", (schedule_id,))
            conn.execute("DELETE FROM absences WHERE work_date = ?", (work_date,))

            for position, item in enumerate(schedule.items):
                item_id = _new_id()
                conn.execute(
                    """
                    INSERT INTO schedule_items
                        (id, schedule_id, position, project_id, address,
                         category, start_time, end_time)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item_id, schedule_id, position,
                        projects.get(normalize(item.address)),
                        item.address, item.category, item.start_time, item.end_time,
                    ),
                )
                for worker in item.workers:
                    user_id = workers.get(normalize(worker.name))
                    if user_id is None:
                        skipped += 1
                        continue
                    conn.execute(
                        "INSERT OR IGNORE INTO schedule_item_workers "
                        "(schedule_item_id, user_id, is_assistant) VALUES (?, ?, ?)",
                        (item_id, user_id, int(worker.is_assistant)),
                    )

            for absence in schedule.absences:
                user_id = workers.get(normalize(absence.worker_name))
                if user_id is None:
                    skipped += 1
                    continue
                conn.execute(
                    """
                    INSERT INTO absences (work_date, user_id, reason) VALUES (?, ?, ?)
                    ON CONFLICT (work_date, user_id) DO UPDATE SET reason = excluded.reason
                    """,
                    (work_date, user_id, absence.reason),
                )

        if skipped:
            logger.warning("Schedule %s: %d unresolved worker name(s) skipped", work_date, skipped)
        logger.info(
            "Schedule saved for %s: %d item(s), %d absence(s)",
            work_date, len(schedule.items), len(schedule.absences),
        )
        return self._read_schedule(work_date)

    def _read_schedule(self, work_date: str) -> Schedule | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM schedules WHERE work_date = ?", (work_date,)
            ).fetchone()
            if row is None:
                return None

            item_rows = conn.execute(
                "SELECT * FROM schedule_items WHERE schedule_id = ? ORDER BY position",
                (row["id"],),
            ).fetchall()
            worker_rows = conn.execute(
                """
                SELECT w.schedule_item_id, w.user_id, w.is_assistant, p.name
                FROM schedule_item_workers w
                JOIN schedule_items i ON i.id = w.schedule_item_id
                JOIN profiles p ON p.id = w.user_id
                WHERE i.schedule_id = ?
                ORDER BY w.rowid
                """,
                (row["id"],),
            ).fetchall()
            absence_rows = conn.execute(
                """
                SELECT a.user_id, a.reason, p.name FROM absences a
                JOIN profiles p ON p.id = a.user_id
                WHERE a.work_date = ?
                ORDER BY a.rowid
                """,
                (work_date,),
            ).fetchall()

        items = {
            r["id"]: ScheduleItem(
                id=r["id"],
                address=r["address"],
                category=r["category"],
                start_time=r["start_time"],
                end_time=r["end_time"],
                project_id=r["project_id"],
            )
            for r in item_rows
        }
        for r in worker_rows:
            items[r["schedule_item_id"]].workers.append(
                ScheduledWorker(
                    user_id=r["user_id"],
                    name=r["name"],
                    is_assistant=bool(r["is_assistant"]),
                )
            )

        return Schedule(
            id=row["id"],
            work_date=row["work_date"],
            items=list(items.values()),
            absences=[
                Absence(user_id=r["user_id"], name=r["name"], reason=r["reason"])
                for r in absence_rows
            ],
        )

    def _query_unassigned(self, work_date: str, role: str) -> list[Worker]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM profiles
                WHERE role = ?
                  AND id NOT IN (
                      SELECT w.user_id FROM schedule_item_workers w
                      JOIN schedule_items i ON i.id = w.schedule_item_id
                      JOIN schedules s ON s.id = i.schedule_id
                      WHERE s.work_date = ?
                  )
                  AND id NOT IN (SELECT user_id FROM absences WHERE work_date = ?)
                ORDER BY name
                """,
                (role, work_date, work_date),
            ).fetchall()
        return [RegistryDB._row_to_worker(r) for r in rows]
