"""Request-level entry points shared by the CLI and the HTTP endpoint.

Each call reads a fresh snapshot from the store, builds a resolver over it and
returns plain JSON-ready dicts in the studio API's camelCase format.

Query parameters (names follow the studio's booking API):
  availability:        technique, participants, [date, time] | [startDate, daysAhead]
  group availability:  pottersWheel, handModeling, painting, [date, time] | [startDate, daysAhead]
"""

from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from pydantic import BaseModel, ValidationError

from src.availability.config import AvailabilityConfig
from src.availability.errors import InvalidRequestError
from src.availability.models import Booking, Technique
from src.availability.reservations import ReservationService
from src.availability.resolver import SlotAvailabilityResolver
from src.availability.store import SnapshotStore
from src.availability.techniques import parse_technique
from src.availability.utils import is_clock_time, parse_iso_date

MIN_GROUP_PARTICIPANTS = 2
MAX_SEARCH_DAYS = 366


def parse_technique_param(value: str | None) -> Technique:
    technique = parse_technique(value)
    if technique is None:
        raise InvalidRequestError(
            f"Unknown technique {value!r}. Valid: {[t.value for t in Technique]}"
        )
    return technique


def parse_count(value: Any, name: str, *, minimum: int = 0, default: int | None = None) -> int:
    if value is None or value == "":
        if default is None:
            raise InvalidRequestError(f"Missing required parameter: {name}")
        return default
    try:
        count = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(f"{name} must be an integer, got {value!r}") from e
    if count < minimum:
        raise InvalidRequestError(f"{name} must be >= {minimum}")
    return count


def parse_date_param(value: str | None, name: str, today: date) -> date:
    if not value:
        return today
    parsed = parse_iso_date(value)
    if parsed is None:
        raise InvalidRequestError(f"{name} must be YYYY-MM-DD, got {value!r}")
    return parsed


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


class AvailabilityService:
    """Availability queries and booking creation over one store."""

    def __init__(
        self,
        store: SnapshotStore,
        config: AvailabilityConfig,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.config = config
        self.today = today
        self.reservations = ReservationService(store, config)

    def resolver(self) -> SlotAvailabilityResolver:
        return SlotAvailabilityResolver.from_config(self.store.load_snapshot(), self.config)

    def _window(self, query: Mapping[str, Any]) -> tuple[date, int]:
        start = parse_date_param(
            query.get("date") or query.get("startDate"), "startDate", self.today()
        )
        default_days = 1 if query.get("date") else self.config.search_days
        days = parse_count(query.get("daysAhead"), "daysAhead", minimum=1, default=default_days)
        if days > MAX_SEARCH_DAYS:
            raise InvalidRequestError(f"daysAhead must be <= {MAX_SEARCH_DAYS}")
        return start, days

    def _time(self, query: Mapping[str, Any]) -> str | None:
        time = query.get("time")
        if time and not is_clock_time(time):
            raise InvalidRequestError(f"time must be HH:MM, got {time!r}")
        return time or None

    def availability(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Decision for one time, or every opening-hours slot over a date range."""
        technique = parse_technique_param(query.get("technique"))
        participants = parse_count(query.get("participants"), "participants", minimum=1)
        time = self._time(query)
        start, days = self._window(query)
        resolver = self.resolver()

        if time is not None:
            decision = resolver.check_slot(start.isoformat(), time, technique, participants)
            return {"success": True, "slot": _dump(decision)}

        decisions = resolver.search(start, days, technique, participants)
        return {
            "success": True,
            "slots": [_dump(d) for d in decisions],
            "searchParams": {
                "technique": technique.value,
                "participants": participants,
                "startDate": start.isoformat(),
                "daysAhead": days,
            },
        }

    def group_availability(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Mixed-technique group: one decision per time covering every pool."""
        potters = parse_count(query.get("pottersWheel"), "pottersWheel", default=0)
        hand_modeling = parse_count(query.get("handModeling"), "handModeling", default=0)
        painting = parse_count(query.get("painting"), "painting", default=0)
        if potters + hand_modeling + painting < MIN_GROUP_PARTICIPANTS:
            raise InvalidRequestError(
                f"Group experiences require at least {MIN_GROUP_PARTICIPANTS} people"
            )

        time = self._time(query)
        start, days = self._window(query)
        resolver = self.resolver()
        counts = {"potters": potters, "hand_modeling": hand_modeling, "painting": painting}

        if time is not None:
            decision = resolver.check_group_slot(start.isoformat(), time, **counts)
            return {"success": True, "slot": _dump(decision)}

        decisions = resolver.group_search(start, days, **counts)
        return {
            "success": True,
            "slots": [_dump(d) for d in decisions],
            "searchParams": {
                "pottersWheel": potters,
                "handModeling": hand_modeling,
                "painting": painting,
                "startDate": start.isoformat(),
                "daysAhead": days,
            },
        }

    def create_booking(self, payload: Any) -> dict[str, Any]:
        """Validate a booking payload and reserve it."""
        if not isinstance(payload, dict):
            raise InvalidRequestError("Booking payload must be a JSON object")
        try:
            booking = Booking.model_validate(payload)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid booking: {e.error_count()} field error(s)") from e
        if not booking.slots:
            raise InvalidRequestError("Booking must have at least one slot")
        for slot in booking.slots:
            if parse_iso_date(slot.date) is None or not is_clock_time(slot.time):
                raise InvalidRequestError(f"Invalid slot {slot.date!r} {slot.time!r}")

        saved = self.reservations.reserve(booking)
        return {
            "success": True,
            "booking": saved.model_dump(mode="json", by_alias=True, exclude_none=True),
        }
