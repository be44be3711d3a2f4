from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from structlog.testing import capture_logs

from src.availability.config import AvailabilityConfig
from src.availability.models import Snapshot, StudioSettings

# 2026-02-09 is a Monday; the fixtures below use that week.
MONDAY = "2026-02-09"
TUESDAY = "2026-02-10"
WEDNESDAY = "2026-02-11"
THURSDAY = "2026-02-12"
SATURDAY = "2026-02-14"
SUNDAY = "2026-02-15"

THURSDAY_TABLE: dict[str, Any] = {
    "Thursday": [{"time": "10:00", "technique": "potters_wheel"}],
}


@pytest.fixture(autouse=True)
def captured_logs() -> Iterator[list[dict[str, Any]]]:
    # Keeps structlog off stdout and lets tests assert on emitted events.
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def thursday_snapshot() -> Callable[..., Snapshot]:
    """Snapshot factory: Thursday 10:00 potter's wheel class plus extras."""

    def _make(
        *,
        bookings: list[dict[str, Any]] | None = None,
        overrides: dict[str, Any] | None = None,
        capacity: dict[str, Any] | None = None,
        course_sessions: list[dict[str, Any]] | None = None,
    ) -> Snapshot:
        return Snapshot.model_validate(
            {
                "settings": StudioSettings.model_validate(
                    {
                        "availability": THURSDAY_TABLE,
                        "scheduleOverrides": overrides or {},
                        "classCapacity": capacity or {},
                    }
                ),
                "bookings": bookings or [],
                "course_sessions": course_sessions or [],
            }
        )

    return _make


@pytest.fixture
def data_dir(tmp_path: Path) -> Callable[..., Path]:
    """Write a JSON snapshot directory and return its path."""

    def _write(
        *,
        settings: dict[str, Any] | None = None,
        bookings: list[Any] | None = None,
        course_sessions: list[Any] | None = None,
    ) -> Path:
        (tmp_path / "settings.json").write_text(
            json.dumps(settings if settings is not None else {"availability": THURSDAY_TABLE}),
            encoding="utf-8",
        )
        (tmp_path / "bookings.json").write_text(json.dumps(bookings or []), encoding="utf-8")
        if course_sessions is not None:
            (tmp_path / "course_sessions.json").write_text(
                json.dumps(course_sessions), encoding="utf-8"
            )
        return tmp_path

    return _write


@pytest.fixture
def config(tmp_path: Path) -> AvailabilityConfig:
    return AvailabilityConfig(_env_file=None, data_dir=str(tmp_path))
