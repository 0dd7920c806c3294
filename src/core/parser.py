"""
Dagschema Planner — Schedule Text Parser.

Converts a hand-typed Dutch daily schedule ("dagschema") into structured
blocks: one block per address/time range with its worker roster, plus the
absences for the day.

Example input:

    Dagschema Maandag:

    Hoofdstraat 123 Amsterdam 08:00-16:00:
    - Jan de Vries
    - Piet Janssen [assist]

    Afwezig: Peter van der Laan

The parser is tolerant: it never raises, unknown lines are skipped, and an
empty or unreadable text yields an empty schedule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

Category = Literal["normal", "materials", "storingen", "specials"]

UNKNOWN_ADDRESS = "Unknown Address"


# ---------------------------------------------------------------------------
# Parsed schedule: shared contract with the reconciler and schedule store
# ---------------------------------------------------------------------------

class ParsedWorker(BaseModel):
    """One worker's appearance in one schedule block."""

    model_config = ConfigDict(frozen=True)

    name: str
    is_assistant: bool = False


class ParsedScheduleItem(BaseModel):
    """One address/time-range block of the day.

    JSON example:
    {
        "address": "Hoofdstraat 123 Amsterdam",
        "category": "normal",
        "start_time": "08:00",
        "end_time": "16:00",
        "workers": [{"name": "Jan de Vries", "is_assistant": false}]
    }
    """

    model_config = ConfigDict(frozen=True)

    address: str
    category: Category = "normal"
    start_time: str    # HH:MM in 24h format
    end_time: str      # HH:MM in 24h format
    workers: tuple[ParsedWorker, ...] = ()


class ParsedAbsence(BaseModel):
    """A worker marked absent for the day. ``reason`` is never filled by the parser."""

    model_config = ConfigDict(frozen=True)

    worker_name: str
    reason: str | None = None


class ParsedSchedule(BaseModel):
    """Full result of parsing one day's schedule text."""

    model_config = ConfigDict(frozen=True)

    work_date: date
    items: tuple[ParsedScheduleItem, ...] = ()
    absences: tuple[ParsedAbsence, ...] = ()

    @property
    def worker_count(self) -> int:
        return sum(len(item.workers) for item in self.items)


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

# Checked in this order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "materials": ("materiaal", "material", "materials"),
    "storingen": ("storing", "storingen", "emergency", "urgent"),
    "specials": ("special", "specials", "bijzonder", "extra"),
}

# Dutch weekday name -> ISO weekday (Monday=1 ... Sunday=7)
WEEKDAYS: dict[str, int] = {
    "maandag": 1,
    "dinsdag": 2,
    "woensdag": 3,
    "donderdag": 4,
    "vrijdag": 5,
    "zaterdag": 6,
    "zondag": 7,
}

_HEADER_WORDS = ("dagschema", "schema")
_ABSENCE_WORDS = ("afwezig", "absent")

_TIME_RANGE_RE = re.compile(r"(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})")
_ADDRESS_RE = re.compile(r"^(.+?)\s+\d{1,2}:\d{2}-\d{1,2}:\d{2}")

_BRACKET_ASSIST_RE = re.compile(r"\[[^\]]*assist[^\]]*\]", re.IGNORECASE)
_PAREN_ASSIST_RE = re.compile(r"\([^)]*assist[^)]*\)", re.IGNORECASE)
# A bare "assist" annotation runs to the end of the line ("Alice Brown assist only")
_BARE_ASSIST_RE = re.compile(r"\bassist.*$", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[.,;:]+$")

_ABSENCE_WORD_RE = re.compile(r"afwezig|absent", re.IGNORECASE)
_ABSENCE_PUNCT_RE = re.compile(r"[-:]")


# ---------------------------------------------------------------------------
# Line helpers
# ---------------------------------------------------------------------------

class LineKind(Enum):
    HEADER = "header"
    BLOCK_START = "block_start"
    WORKER = "worker"
    ABSENCE = "absence"
    OTHER = "other"


def classify_line(line: str) -> LineKind:
    """Classify a trimmed, non-empty schedule line.

    Precedence: header, time range, worker ("-" prefix), absence keyword.
    """
    lowered = line.lower()
    if any(word in lowered for word in _HEADER_WORDS):
        return LineKind.HEADER
    if _TIME_RANGE_RE.search(line):
        return LineKind.BLOCK_START
    if line.startswith("-"):
        return LineKind.WORKER
    if any(word in lowered for word in _ABSENCE_WORDS):
        return LineKind.ABSENCE
    return LineKind.OTHER


def detect_category(address: str) -> Category:
    """Return the schedule category for an address based on keywords."""
    address_lower = address.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in address_lower for keyword in keywords):
            return category  # type: ignore[return-value]
    return "normal"


def _format_time(hour: str, minute: str) -> str | None:
    """Zero-pad to HH:MM, or None when the value is not a valid 24h time."""
    h, m = int(hour), int(minute)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return f"{h:02d}:{m:02d}"


def parse_time_range(line: str) -> tuple[str | None, str | None] | None:
    """Extract (start, end) from the first H(H):MM-H(H):MM in a line.

    Returns None when the line has no time range. A component that is not a
    valid 24h time comes back as None.
    """
    match = _TIME_RANGE_RE.search(line)
    if not match:
        return None
    start_hour, start_min, end_hour, end_min = match.groups()
    return _format_time(start_hour, start_min), _format_time(end_hour, end_min)


def extract_address(line: str) -> str:
    """Everything before the time range, or UNKNOWN_ADDRESS."""
    match = _ADDRESS_RE.match(line)
    if not match:
        return UNKNOWN_ADDRESS
    return match.group(1).strip() or UNKNOWN_ADDRESS


def parse_worker_line(line: str) -> ParsedWorker | None:
    """Parse "- Name [assist ...]" into a ParsedWorker, or None if no name remains."""
    trimmed = line.strip()
    if not trimmed.startswith("-"):
        return None

    worker_text = trimmed[1:].strip()
    is_assistant = "assist" in worker_text.lower()

    name = _BRACKET_ASSIST_RE.sub("", worker_text)
    name = _PAREN_ASSIST_RE.sub("", name)
    name = _BARE_ASSIST_RE.sub("", name)
    name = " ".join(name.split())
    name = _TRAILING_PUNCT_RE.sub("", name).strip()

    if not name:
        return None
    return ParsedWorker(name=name, is_assistant=is_assistant)


def parse_absence_line(line: str) -> ParsedAbsence | None:
    """Strip the absence keyword and separators; the remainder is the worker name."""
    name = _ABSENCE_WORD_RE.sub("", line)
    name = _ABSENCE_PUNCT_RE.sub("", name).strip()
    if not name:
        return None
    return ParsedAbsence(worker_name=name)


# ---------------------------------------------------------------------------
# Work date
# ---------------------------------------------------------------------------

def next_monday(today: date) -> date:
    """The first Monday strictly after ``today``."""
    days_ahead = 7 - today.weekday()
    return today + timedelta(days=days_ahead)


def parse_work_date(text: str, today: date | None = None) -> date:
    """Resolve the schedule's work date from a Dutch weekday name.

    The week starting next Monday is used as anchor; with no weekday name in
    the text the result is next Monday itself.
    """
    if today is None:
        today = date.today()
    anchor = next_monday(today)

    text_lower = text.lower()
    for day_name, iso_weekday in WEEKDAYS.items():
        if day_name in text_lower:
            return anchor + timedelta(days=iso_weekday - 1)

    return anchor


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

@dataclass
class _BlockAccumulator:
    """The block currently being filled during the forward scan."""

    address: str
    category: Category
    start_time: str | None
    end_time: str | None
    workers: list[ParsedWorker] = field(default_factory=list)

    def is_complete(self) -> bool:
        return bool(self.address and self.start_time and self.end_time)

    def build(self) -> ParsedScheduleItem:
        return ParsedScheduleItem(
            address=self.address,
            category=self.category,
            start_time=self.start_time,
            end_time=self.end_time,
            workers=tuple(self.workers),
        )


def _open_block(line: str) -> _BlockAccumulator:
    start, end = parse_time_range(line)  # type: ignore[misc]
    address = extract_address(line)
    return _BlockAccumulator(
        address=address,
        category=detect_category(address),
        start_time=start,
        end_time=end,
    )


def parse_dagschema(raw: str, today: date | None = None) -> ParsedSchedule:
    """Parse raw schedule text into a ParsedSchedule.

    Args:
        raw: The schedule text as pasted or uploaded.
        today: Reference date for the work date; defaults to date.today().

    Returns:
        ParsedSchedule. Never raises on malformed input.
    """
    raw = raw or ""
    lines = [line.strip() for line in raw.splitlines()]
    lines = [line for line in lines if line]
    work_date = parse_work_date(raw, today)

    items: list[ParsedScheduleItem] = []
    absences: list[ParsedAbsence] = []
    current: _BlockAccumulator | None = None

    def _flush() -> None:
        if current is None:
            return
        if current.is_complete():
            items.append(current.build())
        else:
            logger.debug("Dropping incomplete block at '%s'", current.address)

    for line in lines:
        kind = classify_line(line)

        if kind is LineKind.BLOCK_START:
            _flush()
            current = _open_block(line)
        elif kind is LineKind.WORKER:
            worker = parse_worker_line(line)
            if worker is None:
                continue
            if current is None:
                logger.debug("Worker line before any block ignored: %s", line)
                continue
            current.workers.append(worker)
        elif kind is LineKind.ABSENCE:
            absence = parse_absence_line(line)
            if absence is not None:
                absences.append(absence)

    _flush()

    schedule = ParsedSchedule(
        work_date=work_date,
        items=tuple(items),
        absences=tuple(absences),
    )
    logger.info(
        "Parsed schedule for %s: %d block(s), %d worker(s), %d absence(s)",
        work_date.isoformat(), len(schedule.items),
        schedule.worker_count, len(schedule.absences),
    )
    return schedule
