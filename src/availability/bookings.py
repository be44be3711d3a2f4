"""Seats consumed by existing bookings on a given date."""

from collections.abc import Iterable

from src.availability.models import (
    Booking,
    BookingContribution,
    MixedTechniques,
    SingleTechnique,
    Technique,
)
from src.availability.techniques import participant_count, resolve_technique
from src.availability.utils import normalize_time


def bookings_on_date(bookings: Iterable[Booking], date_str: str) -> list[Booking]:
    """Non-expired bookings with at least one slot on the date."""
    return [b for b in bookings if b.is_active and b.slots_on(date_str)]


def booking_contribution(booking: Booking, date_str: str) -> BookingContribution:
    """Per-pool seat counts of one booking plus its slot times on the date.

    A booking whose technique cannot be resolved is counted against both
    pools rather than neither.
    """
    resolved = resolve_technique(booking)

    if isinstance(resolved, MixedTechniques):
        potters, hand_work = resolved.potters, resolved.hand_work
    else:
        count = participant_count(booking)
        if isinstance(resolved, SingleTechnique):
            if resolved.technique is Technique.POTTERS_WHEEL:
                potters, hand_work = count, 0
            else:
                potters, hand_work = 0, count
        else:
            potters, hand_work = count, count

    return BookingContribution(
        booking_id=booking.id,
        potters_count=potters,
        hand_work_count=hand_work,
        times=[normalize_time(s.time) for s in booking.slots_on(date_str)],
    )


def aggregate_contributions(
    bookings: Iterable[Booking], date_str: str
) -> list[BookingContribution]:
    """Contributions of every active booking touching the date."""
    return [booking_contribution(b, date_str) for b in bookings_on_date(bookings, date_str)]
