"""Snapshot stores: where settings, bookings and course sessions come from.

JsonFileStore reads a data directory (local development, tests, exports):
  data/settings.json         {"availability": ..., "scheduleOverrides": ..., "classCapacity": ...}
  data/bookings.json         [booking, ...]
  data/course_sessions.json  [{"scheduledDate", "startTime", "endTime"}, ...]

HttpSnapshotStore reads the studio's data API:
  GET  {base}/api/data?key=availability | scheduleOverrides | classCapacity | bookings | courseSessions
  POST {base}/api/data?action=addBooking

Both return a fresh Snapshot on every load; nothing is cached.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import requests
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.availability.config import AvailabilityConfig
from src.availability.errors import (
    AuthenticationError,
    PermanentError,
    RateLimitError,
    TransientError,
)
from src.availability.logging import get_logger
from src.availability.models import Booking, CourseSession, Snapshot, StudioSettings

logger = get_logger(__name__)

SETTING_KEYS: tuple[str, ...] = ("availability", "scheduleOverrides", "classCapacity")


def _parse_bookings(rows: Any) -> list[Booking]:
    """Validate booking rows one by one; a broken row is skipped, not fatal."""
    if not isinstance(rows, list):
        raise PermanentError(f"Expected a list of bookings, got {type(rows).__name__}")

    bookings: list[Booking] = []
    for row in rows:
        try:
            bookings.append(Booking.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "booking_row_skipped",
                booking_id=row.get("id") if isinstance(row, dict) else None,
                errors=e.error_count(),
            )
    return bookings


def _parse_course_sessions(rows: Any) -> list[CourseSession]:
    if not isinstance(rows, list):
        return []
    sessions: list[CourseSession] = []
    for row in rows:
        if isinstance(row, dict) and row.get("status") == "cancelled":
            continue
        try:
            sessions.append(CourseSession.model_validate(row))
        except ValidationError:
            logger.warning("course_session_skipped", row=row)
    return sessions


class SnapshotStore:
    """Interface shared by the stores."""

    def load_snapshot(self) -> Snapshot:
        raise NotImplementedError

    def save_booking(self, booking: Booking) -> None:
        raise NotImplementedError


class JsonFileStore(SnapshotStore):
    """Snapshot kept as JSON files in a directory."""

    def __init__(self, data_dir: str = "data") -> None:
        self.data_dir = Path(data_dir)
        self.settings_file = self.data_dir / "settings.json"
        self.bookings_file = self.data_dir / "bookings.json"
        self.course_sessions_file = self.data_dir / "course_sessions.json"
        # read-append-replace of bookings.json must not interleave
        self._write_lock = threading.Lock()

    def _read(self, path: Path, default: Any) -> Any:
        if not path.exists():
            logger.debug("snapshot_file_missing", path=str(path))
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise PermanentError(f"Malformed JSON in {path}: {e}") from e

    def load_settings(self) -> StudioSettings:
        raw = self._read(self.settings_file, {})
        if not isinstance(raw, dict):
            raise PermanentError(f"{self.settings_file} must hold an object")
        return StudioSettings.model_validate(
            {key: raw[key] for key in SETTING_KEYS if raw.get(key) is not None}
        )

    def load_bookings(self) -> list[Booking]:
        return _parse_bookings(self._read(self.bookings_file, []))

    def load_course_sessions(self) -> list[CourseSession]:
        return _parse_course_sessions(self._read(self.course_sessions_file, []))

    def load_snapshot(self) -> Snapshot:
        snapshot = Snapshot(
            settings=self.load_settings(),
            bookings=self.load_bookings(),
            course_sessions=self.load_course_sessions(),
        )
        logger.debug(
            "snapshot_loaded",
            source=str(self.data_dir),
            bookings=len(snapshot.bookings),
            course_sessions=len(snapshot.course_sessions),
        )
        return snapshot

    def save_booking(self, booking: Booking) -> None:
        """Append a booking, replacing bookings.json atomically."""
        with self._write_lock:
            rows = self._read(self.bookings_file, [])
            if not isinstance(rows, list):
                raise PermanentError(f"{self.bookings_file} must hold a list")
            rows.append(booking.model_dump(mode="json", by_alias=True, exclude_none=True))

            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(rows, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.bookings_file)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise

        logger.info("booking_saved", booking_id=booking.id, path=str(self.bookings_file))


class HttpSnapshotStore(SnapshotStore):
    """Snapshot read from the studio's data API."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = f"{base_url.rstrip('/')}/api/data"
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _classify(self, resp: requests.Response) -> None:
        if resp.status_code == 429:
            raise RateLimitError(f"Data API rate limited: {resp.text[:200]}")
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Data API refused credentials ({resp.status_code})")
        if resp.status_code >= 500:
            raise TransientError(f"Data API error {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentError(f"Data API error {resp.status_code}: {resp.text[:200]}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=5),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def _get(self, params: dict[str, str]) -> Any:
        try:
            resp = self.session.get(self.endpoint, params=params, timeout=self.timeout_seconds)
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("data_api_unreachable", params=params, error=str(e))
            raise TransientError(f"Data API unreachable: {e}") from e

        self._classify(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise PermanentError(f"Data API returned non-JSON for {params}") from e

    def load_settings(self) -> StudioSettings:
        raw = {key: self._get({"key": key}) for key in SETTING_KEYS}
        return StudioSettings.model_validate({k: v for k, v in raw.items() if v is not None})

    def load_bookings(self) -> list[Booking]:
        return _parse_bookings(self._get({"key": "bookings"}))

    def load_course_sessions(self) -> list[CourseSession]:
        return _parse_course_sessions(self._get({"key": "courseSessions"}))

    def load_snapshot(self) -> Snapshot:
        snapshot = Snapshot(
            settings=self.load_settings(),
            bookings=self.load_bookings(),
            course_sessions=self.load_course_sessions(),
        )
        logger.debug(
            "snapshot_loaded",
            source=self.endpoint,
            bookings=len(snapshot.bookings),
            course_sessions=len(snapshot.course_sessions),
        )
        return snapshot

    def save_booking(self, booking: Booking) -> None:
        """POST the booking; not retried, a duplicate insert is worse than a failure."""
        payload = booking.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            resp = self.session.post(
                self.endpoint,
                params={"action": "addBooking"},
                json=payload,
                timeout=self.timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"Data API unreachable: {e}") from e

        self._classify(resp)
        logger.info("booking_saved", booking_id=booking.id, endpoint=self.endpoint)


def get_store(config: AvailabilityConfig) -> SnapshotStore:
    """HTTP store when a data API URL is configured, JSON files otherwise."""
    if config.data_api_url:
        return HttpSnapshotStore(
            config.data_api_url,
            token=config.data_api_token,
            timeout_seconds=config.data_api_timeout_seconds,
        )
    return JsonFileStore(config.data_dir)
