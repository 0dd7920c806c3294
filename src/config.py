"""
Dagschema Planner — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite: registry (projects, phases, workers) and imported schedules
    DATABASE_PATH: str = "data/planner.db"

    # Defaults for projects auto-created from a schedule
    DEFAULT_PROJECT_BUDGET: float = 0.0
    PROJECT_DURATION_DAYS: int = 30
    DEFAULT_PHASE_NAME: str = "General"

    # Role given to placeholder workers and to their project links
    DEFAULT_WORKER_ROLE: str = "worker"

    LOG_LEVEL: str = "INFO"

    @field_validator("DEFAULT_PROJECT_BUDGET", mode="before")
    @classmethod
    def parse_budget(cls, v: str | float) -> float:
        if isinstance(v, str) and not v.strip():
            return 0.0
        return float(v)

    @field_validator("PROJECT_DURATION_DAYS", mode="before")
    @classmethod
    def parse_duration(cls, v: str | int) -> int:
        days = int(v)
        if days <= 0:
            raise ValueError(f"PROJECT_DURATION_DAYS must be positive, got {days}")
        return days

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planner.db"),
        DEFAULT_PROJECT_BUDGET=os.getenv("DEFAULT_PROJECT_BUDGET", "0"),
        PROJECT_DURATION_DAYS=os.getenv("PROJECT_DURATION_DAYS", "30"),
        DEFAULT_PHASE_NAME=os.getenv("DEFAULT_PHASE_NAME", "General"),
        DEFAULT_WORKER_ROLE=os.getenv("DEFAULT_WORKER_ROLE", "worker"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
