"""
Dagschema Planner — Data Models.

Registry entities (projects, phases, workers) and imported schedules as
stored in SQLite. Parsed schedule text lives in src.core.parser; these are
the persisted counterparts.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Project:
    """A construction project. Schedule addresses map 1:1 onto projects."""

    id: str
    name: str
    description: str = ""
    status: str = "planning"
    start_date: str | None = None     # ISO date YYYY-MM-DD
    end_date: str | None = None       # ISO date YYYY-MM-DD
    budget: float = 0.0
    created_at: str = ""


@dataclass
class Phase:
    """A phase of a project; auto-created projects get one default phase."""

    id: str
    project_id: str
    name: str
    description: str = ""
    status: str = "planning"
    budget: float = 0.0
    spent: float = 0.0
    progress: int = 0


@dataclass
class Worker:
    """A worker profile.

    Placeholders are created from schedule text before the person has an
    onboarded account.
    """

    id: str
    name: str
    role: str = "worker"
    is_placeholder: bool = False
    created_at: str = ""


@dataclass
class ScheduledWorker:
    user_id: str
    name: str
    is_assistant: bool = False


@dataclass
class ScheduleItem:
    id: str
    address: str
    category: str
    start_time: str    # HH:MM
    end_time: str      # HH:MM
    project_id: str | None = None
    workers: list[ScheduledWorker] = field(default_factory=list)


@dataclass
class Absence:
    user_id: str
    name: str
    reason: str | None = None


@dataclass
class Schedule:
    """One imported day."""

    id: str
    work_date: str     # ISO date YYYY-MM-DD
    items: list[ScheduleItem] = field(default_factory=list)
    absences: list[Absence] = field(default_factory=list)
