"""SlotAvailabilityResolver - can N more people book this technique at this time?

Pure computation over one snapshot (settings, bookings, course sessions).
Nothing is cached between calls and nothing is written; the same snapshot
and request always give the same decision.

Rules for a candidate start time, first blocking reason wins:

  course_conflict       a course session overlaps [start, start + window)
  fixed_class_conflict  groups below the private threshold must take a fixed
                        class time exactly; larger groups must not start
                        within the window of a fixed class (its own start
                        time is allowed)
  booking_overlap       an existing booking of the same pool starts within
                        the window but not at the same time
  capacity              seats left at this exact time < requested

Times that cannot be parsed never block anything.
"""

from collections.abc import Iterable, Sequence
from datetime import date

from src.availability.bookings import aggregate_contributions
from src.availability.config import AvailabilityConfig
from src.availability.logging import get_logger
from src.availability.models import (
    BlockedReason,
    BookingContribution,
    CourseSession,
    GroupSlotDecision,
    SlotDecision,
    Snapshot,
    Technique,
)
from src.availability.schedule import (
    DEFAULT_HAND_WORK_CAPACITY,
    DEFAULT_POTTERS_CAPACITY,
    business_hours_for_day,
    capacity_pool,
    fixed_slot_times,
    resolve_capacity,
)
from src.availability.utils import (
    date_range,
    normalize_time,
    parse_iso_date,
    time_to_minutes,
    weekday_key,
    within_window,
)

log = get_logger(__name__)

PROTECTION_WINDOW_MINUTES = 120
PRIVATE_BOOKING_THRESHOLD = 3


def _first(current: BlockedReason, candidate: BlockedReason) -> BlockedReason:
    return candidate if current is BlockedReason.NONE else current


def is_fixed_class_conflict(
    candidate: int, fixed_minutes: Iterable[int], window: int = PROTECTION_WINDOW_MINUTES
) -> bool:
    """Candidate starts inside a fixed class's window without matching its start."""
    return any(
        candidate != fixed and within_window(candidate, fixed, window)
        for fixed in fixed_minutes
    )


def has_course_overlap(
    date_str: str, start: int, end: int, sessions: Iterable[CourseSession]
) -> bool:
    for session in sessions:
        if session.scheduled_date != date_str:
            continue
        session_start = time_to_minutes(session.start_time)
        session_end = time_to_minutes(session.end_time)
        if session_start is None or session_end is None:
            continue
        if start < session_end and session_start < end:
            return True
    return False


def evaluate_slot(
    date_str: str,
    candidate_time: str,
    technique: Technique,
    requested: int,
    fixed_times: Sequence[str],
    contributions: Iterable[BookingContribution],
    total_capacity: int,
    *,
    total_participants: int | None = None,
    course_sessions: Iterable[CourseSession] = (),
    window: int = PROTECTION_WINDOW_MINUTES,
    private_threshold: int = PRIVATE_BOOKING_THRESHOLD,
) -> SlotDecision:
    """Decide whether `requested` seats of `technique` fit at `candidate_time`.

    Args:
        date_str: Date being booked (YYYY-MM-DD).
        candidate_time: Requested start time ("H:MM" or "HH:MM").
        technique: Requested technique; its pool decides which bookings count.
        requested: Seats needed in this technique's pool.
        fixed_times: Fixed class times of the same pool on that date.
        contributions: Seats taken by existing bookings on that date.
        total_capacity: Seats in the pool on that date.
        total_participants: Whole party size (mixed groups); the private
            threshold is checked against this. Defaults to `requested`.
        course_sessions: Course sessions that block the studio.
        window: Protection window in minutes.
        private_threshold: Party size from which off-schedule starts are allowed.

    Returns:
        SlotDecision; never raises for bad data.
    """
    party = requested if total_participants is None else total_participants
    pool = capacity_pool(technique)
    time = normalize_time(candidate_time)
    start = time_to_minutes(time)
    reason = BlockedReason.NONE

    if start is not None and has_course_overlap(date_str, start, start + window, course_sessions):
        reason = BlockedReason.COURSE_CONFLICT

    fixed = {normalize_time(t) for t in fixed_times}
    if party < private_threshold:
        if time not in fixed:
            reason = _first(reason, BlockedReason.FIXED_CLASS_CONFLICT)
    elif start is not None:
        fixed_minutes = [m for m in (time_to_minutes(t) for t in fixed) if m is not None]
        if is_fixed_class_conflict(start, fixed_minutes, window):
            reason = _first(reason, BlockedReason.FIXED_CLASS_CONFLICT)

    booked = 0
    if start is not None and pool is not None:
        for contribution in contributions:
            seats = contribution.count_for(pool)
            if seats <= 0:
                continue
            for booking_time in contribution.times:
                booking_start = time_to_minutes(booking_time)
                if booking_start is None:
                    continue
                if booking_start == start:
                    booked += seats
                elif within_window(start, booking_start, window):
                    reason = _first(reason, BlockedReason.BOOKING_OVERLAP)

    available = max(0, total_capacity - booked)
    if available < requested:
        reason = _first(reason, BlockedReason.CAPACITY)

    return SlotDecision(
        date=date_str,
        time=time,
        technique=technique,
        can_book=reason is BlockedReason.NONE and available >= requested,
        blocked_reason=reason,
        booked_count=booked,
        available_count=available,
        total_capacity=total_capacity,
    )


class SlotAvailabilityResolver:
    """Availability answers for one snapshot of settings and bookings."""

    def __init__(
        self,
        snapshot: Snapshot,
        *,
        protection_window_minutes: int = PROTECTION_WINDOW_MINUTES,
        private_booking_threshold: int = PRIVATE_BOOKING_THRESHOLD,
        default_potters_capacity: int = DEFAULT_POTTERS_CAPACITY,
        default_hand_work_capacity: int = DEFAULT_HAND_WORK_CAPACITY,
    ) -> None:
        self.snapshot = snapshot
        self.window = protection_window_minutes
        self.private_threshold = private_booking_threshold
        self.default_potters_capacity = default_potters_capacity
        self.default_hand_work_capacity = default_hand_work_capacity

    @classmethod
    def from_config(
        cls, snapshot: Snapshot, config: AvailabilityConfig
    ) -> "SlotAvailabilityResolver":
        return cls(
            snapshot,
            protection_window_minutes=config.protection_window_minutes,
            private_booking_threshold=config.private_booking_threshold,
            default_potters_capacity=config.default_potters_capacity,
            default_hand_work_capacity=config.default_hand_work_capacity,
        )

    def fixed_times(self, date_str: str, technique: Technique) -> list[str]:
        day = parse_iso_date(date_str)
        if day is None:
            return []
        settings = self.snapshot.settings
        return fixed_slot_times(
            date_str,
            weekday_key(day),
            settings.availability,
            settings.schedule_overrides,
            technique,
        )

    def capacity(self, date_str: str, technique: Technique) -> int:
        settings = self.snapshot.settings
        return resolve_capacity(
            date_str,
            technique,
            settings.class_capacity,
            settings.schedule_overrides,
            default_potters=self.default_potters_capacity,
            default_hand_work=self.default_hand_work_capacity,
        )

    def contributions(self, date_str: str) -> list[BookingContribution]:
        return aggregate_contributions(self.snapshot.bookings, date_str)

    def check_slot(
        self,
        date_str: str,
        time: str,
        technique: Technique,
        participants: int,
        *,
        total_participants: int | None = None,
        contributions: list[BookingContribution] | None = None,
    ) -> SlotDecision:
        """Decision for one candidate time."""
        if contributions is None:
            contributions = self.contributions(date_str)
        return evaluate_slot(
            date_str,
            time,
            technique,
            participants,
            self.fixed_times(date_str, technique),
            contributions,
            self.capacity(date_str, technique),
            total_participants=total_participants,
            course_sessions=self.snapshot.course_sessions,
            window=self.window,
            private_threshold=self.private_threshold,
        )

    def check_group_slot(
        self,
        date_str: str,
        time: str,
        *,
        potters: int = 0,
        hand_modeling: int = 0,
        painting: int = 0,
        contributions: list[BookingContribution] | None = None,
    ) -> GroupSlotDecision:
        """Decision for a mixed group; each requested pool must have room.

        The private threshold applies to the whole party, not per pool.
        """
        if contributions is None:
            contributions = self.contributions(date_str)
        hand_work = hand_modeling + painting
        party = potters + hand_work

        potters_decision = None
        if potters > 0:
            potters_decision = self.check_slot(
                date_str,
                time,
                Technique.POTTERS_WHEEL,
                potters,
                total_participants=party,
                contributions=contributions,
            )

        hand_decision = None
        if hand_work > 0:
            hand_technique = (
                Technique.PAINTING if hand_modeling == 0 else Technique.HAND_MODELING
            )
            hand_decision = self.check_slot(
                date_str,
                time,
                hand_technique,
                hand_work,
                total_participants=party,
                contributions=contributions,
            )

        decisions = [d for d in (potters_decision, hand_decision) if d is not None]
        reason = BlockedReason.NONE
        for decision in decisions:
            reason = _first(reason, decision.blocked_reason)

        return GroupSlotDecision(
            date=date_str,
            time=normalize_time(time),
            can_book=bool(decisions) and all(d.can_book for d in decisions),
            blocked_reason=reason,
            potters=potters_decision,
            hand_work=hand_decision,
        )

    def _open_candidates(self, day: date) -> list[str]:
        override = self.snapshot.settings.schedule_overrides.get(day.isoformat())
        if override is not None and override.closes_day:
            return []
        return business_hours_for_day(day)

    def day_availability(
        self, day: date, technique: Technique, participants: int
    ) -> list[SlotDecision]:
        """One decision per opening-hours start time; empty on closed days."""
        date_str = day.isoformat()
        candidates = self._open_candidates(day)
        if not candidates:
            return []

        contributions = self.contributions(date_str)
        decisions = [
            self.check_slot(
                date_str, time, technique, participants, contributions=contributions
            )
            for time in candidates
        ]
        log.debug(
            "day_evaluated",
            date=date_str,
            technique=technique.value,
            candidates=len(decisions),
            bookable=sum(1 for d in decisions if d.can_book),
        )
        return decisions

    def group_day_availability(
        self, day: date, *, potters: int = 0, hand_modeling: int = 0, painting: int = 0
    ) -> list[GroupSlotDecision]:
        date_str = day.isoformat()
        candidates = self._open_candidates(day)
        if not candidates:
            return []

        contributions = self.contributions(date_str)
        return [
            self.check_group_slot(
                date_str,
                time,
                potters=potters,
                hand_modeling=hand_modeling,
                painting=painting,
                contributions=contributions,
            )
            for time in candidates
        ]

    def search(
        self, start: date, days: int, technique: Technique, participants: int
    ) -> list[SlotDecision]:
        """Day availability for every date in [start, start + days)."""
        decisions: list[SlotDecision] = []
        for day in date_range(start, days):
            decisions.extend(self.day_availability(day, technique, participants))
        log.info(
            "availability_searched",
            start=start.isoformat(),
            days=days,
            technique=technique.value,
            participants=participants,
            bookable=sum(1 for d in decisions if d.can_book),
            total=len(decisions),
        )
        return decisions

    def group_search(
        self,
        start: date,
        days: int,
        *,
        potters: int = 0,
        hand_modeling: int = 0,
        painting: int = 0,
    ) -> list[GroupSlotDecision]:
        decisions: list[GroupSlotDecision] = []
        for day in date_range(start, days):
            decisions.extend(
                self.group_day_availability(
                    day, potters=potters, hand_modeling=hand_modeling, painting=painting
                )
            )
        log.info(
            "group_availability_searched",
            start=start.isoformat(),
            days=days,
            potters=potters,
            hand_modeling=hand_modeling,
            painting=painting,
            bookable=sum(1 for d in decisions if d.can_book),
            total=len(decisions),
        )
        return decisions
