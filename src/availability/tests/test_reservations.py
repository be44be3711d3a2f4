from __future__ import annotations

import json
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from src.availability.config import AvailabilityConfig
from src.availability.errors import SlotUnavailableError
from src.availability.models import BlockedReason, Booking, BookingSlot, MixedTechniques, Snapshot
from src.availability.reservations import ReservationService, requires_no_refund
from src.availability.store import JsonFileStore

from conftest import THURSDAY

EARLY = datetime(2026, 2, 1, 9, 0)


def _service(path: Path, config: AvailabilityConfig, now: datetime = EARLY) -> ReservationService:
    return ReservationService(JsonFileStore(str(path)), config, clock=lambda: now)


def _wheel(booking_id: str, participants: int, time: str = "10:00") -> Booking:
    return Booking(
        id=booking_id,
        technique="potters_wheel",
        participants=participants,
        slots=[{"date": THURSDAY, "time": time}],
    )


def _stored(path: Path) -> list[dict[str, Any]]:
    return json.loads((path / "bookings.json").read_text(encoding="utf-8"))


def test_requires_no_refund_inside_horizon() -> None:
    slots = [BookingSlot(date=THURSDAY, time="10:00")]

    assert requires_no_refund(slots, datetime(2026, 2, 11, 12, 0))
    assert not requires_no_refund(slots, datetime(2026, 2, 10, 9, 0))
    assert not requires_no_refund([BookingSlot(date="garbage", time="10:00")], EARLY)


def test_reserve_stamps_and_saves(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()

    saved = _service(path, config).reserve(_wheel("b1", 4))

    assert saved.resolved_technique is not None
    assert saved.resolved_technique.kind == "single"
    assert saved.accepted_no_refund is False
    rows = _stored(path)
    assert rows[0]["id"] == "b1"
    assert rows[0]["resolvedTechnique"]["technique"] == "potters_wheel"


def test_saturated_slot_is_rejected_without_write(
    data_dir: Callable[..., Path], config: AvailabilityConfig, captured_logs: list[dict]
) -> None:
    path = data_dir(bookings=[_wheel("full", 8).model_dump(mode="json", by_alias=True)])

    with pytest.raises(SlotUnavailableError) as exc_info:
        _service(path, config).reserve(_wheel("late", 2))

    assert exc_info.value.decision.blocked_reason is BlockedReason.CAPACITY
    assert [r["id"] for r in _stored(path)] == ["full"]
    assert any(e["event"] == "reservation_rejected" for e in captured_logs)


def test_second_reservation_sees_the_first(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()
    service = _service(path, config)

    service.reserve(_wheel("first", 5))
    with pytest.raises(SlotUnavailableError):
        service.reserve(_wheel("second", 4))

    assert [r["id"] for r in _stored(path)] == ["first"]


def test_off_schedule_small_group_is_rejected(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()

    with pytest.raises(SlotUnavailableError) as exc_info:
        _service(path, config).reserve(_wheel("b1", 2, time="15:00"))

    assert exc_info.value.decision.blocked_reason is BlockedReason.FIXED_CLASS_CONFLICT
    assert "fixed_class_conflict" in str(exc_info.value)


def test_short_notice_booking_is_no_refund(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()

    saved = _service(path, config, now=datetime(2026, 2, 11, 18, 0)).reserve(_wheel("b1", 4))

    assert saved.accepted_no_refund is True
    assert _stored(path)[0]["acceptedNoRefund"] is True


def test_mixed_group_checks_both_pools(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()
    booking = Booking.model_validate(
        {
            "id": "g1",
            "slots": [{"date": THURSDAY, "time": "10:00"}],
            "groupClassMetadata": {
                "techniqueAssignments": [
                    {"technique": "potters_wheel"},
                    {"technique": "potters_wheel"},
                    {"technique": "painting"},
                    {"technique": "hand_modeling"},
                ]
            },
        }
    )

    saved = _service(path, config).reserve(booking)

    assert saved.resolved_technique == MixedTechniques(potters=2, hand_work=2)
    assert _stored(path)[0]["resolvedTechnique"]["kind"] == "mixed"


def test_concurrent_reservations_do_not_overbook(
    data_dir: Callable[..., Path], config: AvailabilityConfig
) -> None:
    path = data_dir()
    service = _service(path, config)
    outcomes: list[str] = []

    def _attempt(booking_id: str) -> None:
        try:
            service.reserve(_wheel(booking_id, 5))
            outcomes.append("ok")
        except SlotUnavailableError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=_attempt, args=(f"b{i}",)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected", "rejected", "rejected"]
    assert len(_stored(path)) == 1


class _SlowStore(JsonFileStore):
    """Holds each snapshot load until a second reader arrives or the wait times out."""

    def __init__(self, data_dir: str) -> None:
        super().__init__(data_dir)
        self.barrier = threading.Barrier(2, timeout=0.5)

    def load_snapshot(self) -> Snapshot:
        snapshot = super().load_snapshot()
        try:
            self.barrier.wait()
        except threading.BrokenBarrierError:
            pass
        return snapshot


def test_concurrent_overlapping_times_do_not_both_book(
    data_dir: Callable[..., Path], config: AvailabilityConfig
) -> None:
    path = data_dir()
    service = ReservationService(_SlowStore(str(path)), config, clock=lambda: EARLY)
    outcomes: dict[str, str] = {}

    def _attempt(booking_id: str, time: str) -> None:
        try:
            service.reserve(_wheel(booking_id, 3, time=time))
            outcomes[booking_id] = "ok"
        except SlotUnavailableError as e:
            outcomes[booking_id] = e.decision.blocked_reason.value

    threads = [
        threading.Thread(target=_attempt, args=("noon", "12:00")),
        threading.Thread(target=_attempt, args=("one", "13:00")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()) == ["booking_overlap", "ok"]
    assert len(_stored(path)) == 1


def test_lock_entries_are_released(data_dir: Callable[..., Path], config: AvailabilityConfig) -> None:
    path = data_dir()
    service = _service(path, config)

    service.reserve(_wheel("b1", 4))
    with pytest.raises(SlotUnavailableError):
        service.reserve(_wheel("b2", 2, time="15:00"))

    assert service._locks == {}


def test_parallel_saves_keep_every_booking(data_dir: Callable[..., Path]) -> None:
    path = data_dir()
    store = JsonFileStore(str(path))

    threads = [
        threading.Thread(target=store.save_booking, args=(_wheel(f"b{i}", 1, time=f"{10 + i}:00"),))
        for i in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(r["id"] for r in _stored(path)) == sorted(f"b{i}" for i in range(8))
