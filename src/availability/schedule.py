"""Fixed class schedule, seat capacities and opening hours.

The weekly availability table lists the studio's recurring ("fixed") classes
per weekday. A schedule override keyed by ISO date can replace that list for
one day, close the day to fixed classes (slots=null) or only change the seat
count (capacity).

Settings shape (as stored by the admin panel):
  availability:      {"Thursday": [{"time": "10:00", "technique": "potters_wheel"}, ...]}
  scheduleOverrides: {"2026-02-12": {"slots": null}, "2026-02-19": {"capacity": 6}}
  classCapacity:     {"potters_wheel": 8, "molding": 22, "introductory_class": 8}
"""

from datetime import date

from src.availability.models import (
    CapacityConfig,
    CapacityPool,
    DayOverride,
    SlotDefinition,
)
from src.availability.utils import minutes_to_time, normalize_time

DEFAULT_POTTERS_CAPACITY = 8
DEFAULT_HAND_WORK_CAPACITY = 22

# Potter's wheel intro classes that run every week whatever the table says.
POTTERS_WHEEL_STANDING_CLASSES: dict[str, str] = {
    "Tuesday": "19:00",
    "Wednesday": "11:00",
}

_HAND_WORK_TECHNIQUES = frozenset({"hand_modeling", "painting", "molding"})

# (open hour, last start hour) per date.weekday(); missing = closed
BUSINESS_HOURS: dict[int, tuple[int, int]] = {
    1: (10, 19),  # Tuesday
    2: (10, 19),
    3: (10, 19),
    4: (10, 19),  # Friday
    5: (9, 18),  # Saturday
    6: (10, 16),  # Sunday
}


def capacity_pool(technique: str | None) -> CapacityPool | None:
    """Map a technique (including the legacy "molding") to its seat pool."""
    if technique == "potters_wheel":
        return CapacityPool.POTTERS_WHEEL
    if technique in _HAND_WORK_TECHNIQUES:
        return CapacityPool.HAND_WORK
    return None


def base_slots_for_date(
    date_str: str,
    weekday: str,
    availability: dict[str, list[SlotDefinition]],
    overrides: dict[str, DayOverride],
) -> list[SlotDefinition]:
    """Slot definitions in force on a date, before technique filtering."""
    override = overrides.get(date_str)
    if override is not None:
        if override.closes_day:
            return []
        if override.replaces_slots:
            return list(override.slots or [])
    return list(availability.get(weekday) or [])


def fixed_slot_times(
    date_str: str,
    weekday: str,
    availability: dict[str, list[SlotDefinition]],
    overrides: dict[str, DayOverride],
    technique: str,
) -> list[str]:
    """Sorted, de-duplicated "HH:MM" times of fixed classes for a technique.

    Hand modeling and painting share their tables, so a hand-work request
    sees every hand-work fixed class of the day.

    Args:
        date_str: Target date (YYYY-MM-DD).
        weekday: English weekday name of that date.
        availability: Weekly table.
        overrides: Schedule overrides keyed by date.
        technique: Requested technique.

    Returns:
        Fixed class start times; empty when the day is closed by an override.
    """
    override = overrides.get(date_str)
    if override is not None and override.closes_day:
        return []

    pool = capacity_pool(technique)
    if pool is None:
        return []

    times = [
        normalize_time(slot.time)
        for slot in base_slots_for_date(date_str, weekday, availability, overrides)
        if capacity_pool(slot.technique) is pool and slot.time
    ]

    if pool is CapacityPool.POTTERS_WHEEL and weekday in POTTERS_WHEEL_STANDING_CLASSES:
        times.append(POTTERS_WHEEL_STANDING_CLASSES[weekday])

    return sorted(set(times))


def pool_capacity(
    pool: CapacityPool,
    capacity: CapacityConfig,
    *,
    default_potters: int = DEFAULT_POTTERS_CAPACITY,
    default_hand_work: int = DEFAULT_HAND_WORK_CAPACITY,
) -> int:
    if pool is CapacityPool.POTTERS_WHEEL:
        return capacity.potters_wheel or default_potters
    return capacity.molding or default_hand_work


def resolve_capacity(
    date_str: str,
    technique: str,
    capacity: CapacityConfig,
    overrides: dict[str, DayOverride],
    *,
    default_potters: int = DEFAULT_POTTERS_CAPACITY,
    default_hand_work: int = DEFAULT_HAND_WORK_CAPACITY,
) -> int:
    """Total seats for a technique on a date.

    A positive capacity on the date's override wins over the pool setting.
    """
    override = overrides.get(date_str)
    if override is not None and override.capacity is not None and override.capacity > 0:
        return override.capacity

    pool = capacity_pool(technique) or CapacityPool.HAND_WORK
    return pool_capacity(
        pool,
        capacity,
        default_potters=default_potters,
        default_hand_work=default_hand_work,
    )


def business_hours_for_day(day: date) -> list[str]:
    """Candidate start times every 30 minutes while the studio is open.

    The last start is on the closing hour itself (no ":30" after it).
    Mondays are closed.
    """
    hours = BUSINESS_HOURS.get(day.weekday())
    if hours is None:
        return []

    open_hour, last_hour = hours
    return [
        minutes_to_time(minute)
        for minute in range(open_hour * 60, last_hour * 60 + 1, 30)
    ]
