"""Pydantic models for studio settings, bookings and slot decisions.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Field names are snake_case in Python; JSON coming from the studio data API is
camelCase (scheduleOverrides, groupClassMetadata, ...) and is accepted through
aliases. Dump with by_alias=True to get the wire format back.
"""

from __future__ import annotations

import json
from datetime import date as date_type
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Technique(str, Enum):
    POTTERS_WHEEL = "potters_wheel"
    HAND_MODELING = "hand_modeling"
    PAINTING = "painting"


class CapacityPool(str, Enum):
    """Seat pools. Hand modeling and painting share the "molding" tables."""

    POTTERS_WHEEL = "potters_wheel"
    HAND_WORK = "molding"


class BlockedReason(str, Enum):
    NONE = "none"
    FIXED_CLASS_CONFLICT = "fixed_class_conflict"
    BOOKING_OVERLAP = "booking_overlap"
    CAPACITY = "capacity"
    COURSE_CONFLICT = "course_conflict"


class TechniqueSource(str, Enum):
    """Which link of the derivation chain decided a booking's technique."""

    ASSIGNMENTS = "assignments"
    TECHNIQUE_FIELD = "technique_field"
    PRODUCT_NAME = "product_name"
    PRODUCT_DETAILS = "product_details"
    PRODUCT_TYPE = "product_type"


def _decode_json(value: Any, fallback: Any) -> Any:
    """Decode JSON text columns; undecodable text becomes the fallback."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return fallback
    return value


def _normalize_date(value: Any) -> Any:
    # "2026-02-12T00:00:00.000Z" -> "2026-02-12"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date_type):
        return value.isoformat()
    if isinstance(value, str):
        return value.split("T")[0]
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class SlotDefinition(_WireModel):
    """One fixed class in the weekly table or in a date override."""

    time: str = ""
    technique: str = ""
    instructor_id: int | None = None

    @field_validator("time", "technique", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class DayOverride(_WireModel):
    """Date-specific replacement for the weekday table.

    slots=None (explicitly present) closes the day to fixed classes.
    An override that only carries capacity keeps the weekday slots.
    """

    slots: list[SlotDefinition] | None = None
    capacity: int | None = None

    @property
    def closes_day(self) -> bool:
        return "slots" in self.model_fields_set and self.slots is None

    @property
    def replaces_slots(self) -> bool:
        return self.slots is not None


class CapacityConfig(BaseModel):
    """The classCapacity setting. Keys are stored snake_case."""

    model_config = ConfigDict(extra="ignore")

    potters_wheel: int | None = None
    molding: int | None = None
    introductory_class: int | None = None


class StudioSettings(_WireModel):
    """The three setting rows the resolver reads."""

    availability: dict[str, list[SlotDefinition]] = Field(default_factory=dict)
    schedule_overrides: dict[str, DayOverride] = Field(default_factory=dict)
    class_capacity: CapacityConfig = Field(default_factory=CapacityConfig)

    @field_validator("availability", mode="before")
    @classmethod
    def _weekly_table(cls, value: Any) -> Any:
        value = _decode_json(value, {})
        if not isinstance(value, dict):
            return {}
        # {"Monday": null} means no fixed classes that weekday
        return {
            day: [s for s in slots if isinstance(s, (dict, SlotDefinition))]
            for day, slots in value.items()
            if isinstance(slots, list)
        }

    @field_validator("schedule_overrides", mode="before")
    @classmethod
    def _override_mapping(cls, value: Any) -> Any:
        value = _decode_json(value, {})
        if not isinstance(value, dict):
            return {}
        return {d: o for d, o in value.items() if isinstance(o, (dict, DayOverride))}

    @field_validator("class_capacity", mode="before")
    @classmethod
    def _capacity_mapping(cls, value: Any) -> Any:
        value = _decode_json(value, {})
        return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------
class BookingSlot(_WireModel):
    date: str
    time: str = ""
    instructor_id: int | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _normalize_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def _time_text(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class ProductDetails(_WireModel):
    technique: str | None = None


class Product(_WireModel):
    id: str | int | None = None
    type: str | None = None
    name: str = ""
    details: ProductDetails | None = None
    min_participants: int | None = None

    @field_validator("details", mode="before")
    @classmethod
    def _details_object(cls, value: Any) -> Any:
        value = _decode_json(value, None)
        return value if isinstance(value, dict) else None

    @field_validator("name", mode="before")
    @classmethod
    def _name_text(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""


class TechniqueAssignment(_WireModel):
    technique: str = ""
    participant_name: str | None = None


class GroupClassMetadata(_WireModel):
    technique_assignments: list[TechniqueAssignment] = Field(default_factory=list)
    total_participants: int | None = None

    @field_validator("technique_assignments", mode="before")
    @classmethod
    def _assignment_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


class SingleTechnique(_WireModel):
    kind: Literal["single"] = "single"
    technique: Technique
    source: TechniqueSource


class MixedTechniques(_WireModel):
    """Group class whose participants picked techniques individually."""

    kind: Literal["mixed"] = "mixed"
    potters: int
    hand_work: int
    source: TechniqueSource = TechniqueSource.ASSIGNMENTS


class UnknownTechnique(_WireModel):
    """Nothing in the booking names a technique; it counts against both pools."""

    kind: Literal["unknown"] = "unknown"


ResolvedTechnique = Annotated[
    Union[SingleTechnique, MixedTechniques, UnknownTechnique],
    Field(discriminator="kind"),
]


class Booking(_WireModel):
    """A customer's reservation as stored by the studio.

    Slots, product and groupClassMetadata may arrive as JSON text (raw
    database columns); they are decoded here, and undecodable values become
    empty so a single broken row never takes the whole snapshot down.
    """

    id: str | int | None = None
    product_id: str | int | None = None
    product_type: str | None = None
    product: Product | None = None
    slots: list[BookingSlot] = Field(default_factory=list)
    technique: str | None = None
    participants: int | None = None
    group_class_metadata: GroupClassMetadata | None = None
    status: str = "active"
    accepted_no_refund: bool = False
    resolved_technique: ResolvedTechnique | None = None

    @field_validator("slots", mode="before")
    @classmethod
    def _slot_list(cls, value: Any) -> Any:
        value = _decode_json(value, [])
        if not isinstance(value, list):
            return []
        return [
            s
            for s in value
            if isinstance(s, BookingSlot) or (isinstance(s, dict) and s.get("date"))
        ]

    @field_validator("product", "group_class_metadata", mode="before")
    @classmethod
    def _object_column(cls, value: Any) -> Any:
        value = _decode_json(value, None)
        return value if isinstance(value, (dict, BaseModel)) else None

    @field_validator("status", mode="before")
    @classmethod
    def _status_default(cls, value: Any) -> Any:
        return value or "active"

    @property
    def is_active(self) -> bool:
        return self.status != "expired"

    def slots_on(self, date_str: str) -> list[BookingSlot]:
        return [s for s in self.slots if s.date == date_str]


class CourseSession(_WireModel):
    """A scheduled session of a multi-week course. Blocks the studio outright."""

    scheduled_date: str
    start_time: str
    end_time: str

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _normalize_date(value)


# ---------------------------------------------------------------------------
# Resolver output
# ---------------------------------------------------------------------------
class BookingContribution(_WireModel):
    """Seats one booking takes on a given date, per pool, and at which times."""

    booking_id: str | int | None = None
    potters_count: int = 0
    hand_work_count: int = 0
    times: list[str] = Field(default_factory=list)

    def count_for(self, pool: CapacityPool) -> int:
        if pool is CapacityPool.POTTERS_WHEEL:
            return self.potters_count
        return self.hand_work_count


class SlotDecision(_WireModel):
    date: str
    time: str
    technique: Technique
    can_book: bool
    blocked_reason: BlockedReason = BlockedReason.NONE
    booked_count: int = 0
    available_count: int = 0
    total_capacity: int = 0


class GroupSlotDecision(_WireModel):
    """Decision for a mixed group: every requested pool must be bookable."""

    date: str
    time: str
    can_book: bool
    blocked_reason: BlockedReason = BlockedReason.NONE
    potters: SlotDecision | None = None
    hand_work: SlotDecision | None = None


class Snapshot(BaseModel):
    """Everything one resolution reads, loaded fresh for every request."""

    settings: StudioSettings = Field(default_factory=StudioSettings)
    bookings: list[Booking] = Field(default_factory=list)
    course_sessions: list[CourseSession] = Field(default_factory=list)
