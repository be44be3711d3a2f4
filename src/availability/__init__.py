"""Booking-slot availability for a ceramics studio.

Decides whether a number of people can book a technique (potter's wheel,
hand modeling, painting) at a given date and time, given the fixed class
schedule, existing bookings, course sessions and seat capacities.
"""

from src.availability.models import BlockedReason, Booking, SlotDecision, Technique
from src.availability.resolver import SlotAvailabilityResolver, evaluate_slot
from src.availability.schedule import fixed_slot_times, resolve_capacity
from src.availability.service import AvailabilityService

__all__ = [
    "SlotAvailabilityResolver",
    "AvailabilityService",
    "evaluate_slot",
    "fixed_slot_times",
    "resolve_capacity",
    "Booking",
    "SlotDecision",
    "BlockedReason",
    "Technique",
]
