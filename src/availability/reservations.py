"""Booking creation with re-validation under a per-day, per-pool lock.

Availability is read-only and unsynchronised; two customers can both be told
a slot is free. Reserving closes that gap inside one process: every
(date, pool) the booking touches is locked, the snapshot is re-read, each
slot is re-checked with the resolver, and only then is the booking written.

The key has no time component because the overlap window reaches across
start times: a 12:00 and a 13:00 booking of the same pool conflict. Locks are
acquired in sorted key order so two bookings sharing keys cannot deadlock,
and a key's entry is dropped once nobody holds or waits for it.

Across several processes the lock does not help; there the write side needs a
unique constraint or advisory lock in the database on the same key.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta

from src.availability.config import AvailabilityConfig
from src.availability.errors import SlotUnavailableError
from src.availability.logging import get_logger
from src.availability.models import (
    Booking,
    BookingSlot,
    CapacityPool,
    MixedTechniques,
    SingleTechnique,
    SlotDecision,
    Technique,
)
from src.availability.resolver import SlotAvailabilityResolver
from src.availability.schedule import capacity_pool
from src.availability.store import SnapshotStore
from src.availability.techniques import participant_count, stamp_technique
from src.availability.utils import normalize_time

log = get_logger(__name__)

# (date, pool)
LockKey = tuple[str, str]


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


def slot_start(slot: BookingSlot) -> datetime | None:
    """Naive local datetime of a booking slot; date-only if the time is unusable."""
    try:
        day = datetime.fromisoformat(slot.date)
    except ValueError:
        return None
    time = normalize_time(slot.time)
    try:
        hours, minutes = (int(p) for p in time.split(":"))
    except ValueError:
        return day
    return day.replace(hour=hours, minute=minutes)


def requires_no_refund(
    slots: list[BookingSlot], now: datetime, horizon_hours: int = 48
) -> bool:
    """True when any slot starts less than horizon_hours from now.

    Such bookings are accepted on a no-refund, no-reschedule basis.
    """
    horizon = now + timedelta(hours=horizon_hours)
    for slot in slots:
        start = slot_start(slot)
        if start is not None and start < horizon:
            return True
    return False


def seats_by_technique(booking: Booking) -> dict[Technique, int]:
    """Seats the booking asks for, per technique to validate."""
    resolved = booking.resolved_technique
    if isinstance(resolved, MixedTechniques):
        seats: dict[Technique, int] = {}
        if resolved.potters:
            seats[Technique.POTTERS_WHEEL] = resolved.potters
        if resolved.hand_work:
            seats[Technique.HAND_MODELING] = resolved.hand_work
        return seats
    if isinstance(resolved, SingleTechnique):
        return {resolved.technique: participant_count(booking)}
    # Unknown technique takes seats in both pools.
    count = participant_count(booking)
    return {Technique.POTTERS_WHEEL: count, Technique.HAND_MODELING: count}


class ReservationService:
    """Validates and stores new bookings one (date, pool) at a time."""

    def __init__(
        self,
        store: SnapshotStore,
        config: AvailabilityConfig,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock
        self._locks: dict[LockKey, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _held(self, key: LockKey) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def _keys(self, booking: Booking, seats: dict[Technique, int]) -> list[LockKey]:
        pools: set[CapacityPool] = set()
        for technique in seats:
            pool = capacity_pool(technique)
            if pool is not None:
                pools.add(pool)
        return sorted({(slot.date, pool.value) for slot in booking.slots for pool in pools})

    def validate(self, booking: Booking, resolver: SlotAvailabilityResolver) -> list[SlotDecision]:
        """Check every slot of the booking; raise on the first blocked one."""
        seats = seats_by_technique(booking)
        if isinstance(booking.resolved_technique, MixedTechniques):
            party = sum(seats.values())
        else:
            party = participant_count(booking)

        decisions: list[SlotDecision] = []
        for slot in booking.slots:
            for technique, count in seats.items():
                decision = resolver.check_slot(
                    slot.date,
                    slot.time,
                    technique,
                    count,
                    total_participants=party,
                )
                if not decision.can_book:
                    raise SlotUnavailableError(decision)
                decisions.append(decision)
        return decisions

    def reserve(self, booking: Booking) -> Booking:
        """Stamp, re-validate under lock, and save a new booking.

        Raises:
            SlotUnavailableError: A slot of the booking has no room any more.
        """
        booking = stamp_technique(booking)
        booking = booking.model_copy(
            update={
                "accepted_no_refund": requires_no_refund(
                    booking.slots, self.clock(), self.config.no_refund_horizon_hours
                ),
                "status": booking.status or "active",
            }
        )

        seats = seats_by_technique(booking)
        keys = self._keys(booking, seats)

        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._held(key))

            resolver = SlotAvailabilityResolver.from_config(
                self.store.load_snapshot(), self.config
            )
            try:
                self.validate(booking, resolver)
            except SlotUnavailableError as e:
                log.info(
                    "reservation_rejected",
                    booking_id=booking.id,
                    date=e.decision.date,
                    time=e.decision.time,
                    reason=e.decision.blocked_reason.value,
                )
                raise

            self.store.save_booking(booking)

        log.info(
            "reservation_accepted",
            booking_id=booking.id,
            slots=len(booking.slots),
            no_refund=booking.accepted_no_refund,
        )
        return booking
