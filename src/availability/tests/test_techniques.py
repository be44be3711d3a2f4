from __future__ import annotations

import json
from typing import Any

import pytest

from src.availability.bookings import aggregate_contributions, booking_contribution
from src.availability.models import (
    Booking,
    CapacityPool,
    MixedTechniques,
    SingleTechnique,
    Technique,
    TechniqueSource,
    UnknownTechnique,
)
from src.availability.techniques import (
    derive_technique,
    parse_technique,
    participant_count,
    resolve_technique,
    stamp_technique,
)

from conftest import THURSDAY


def _booking(**fields: Any) -> Booking:
    fields.setdefault("slots", [{"date": THURSDAY, "time": "10:00"}])
    return Booking.model_validate(fields)


def test_parse_technique_maps_legacy_molding() -> None:
    assert parse_technique("molding") is Technique.HAND_MODELING
    assert parse_technique("painting") is Technique.PAINTING
    assert parse_technique("raku") is None
    assert parse_technique(None) is None


def test_assignments_win_and_split_into_pools() -> None:
    booking = _booking(
        technique="painting",
        groupClassMetadata={
            "techniqueAssignments": [
                {"technique": "potters_wheel", "participantName": "Ana"},
                {"technique": "potters_wheel", "participantName": "Luis"},
                {"technique": "painting", "participantName": "Eva"},
            ]
        },
    )

    resolved = derive_technique(booking)

    assert resolved == MixedTechniques(potters=2, hand_work=1)


def test_technique_field_beats_product_name() -> None:
    booking = _booking(technique="painting", product={"name": "Clase de Torno"})

    resolved = derive_technique(booking)

    assert resolved == SingleTechnique(
        technique=Technique.PAINTING, source=TechniqueSource.TECHNIQUE_FIELD
    )


@pytest.mark.parametrize(
    "product, expected, source",
    [
        ({"name": "Experiencia de Torno"}, Technique.POTTERS_WHEEL, TechniqueSource.PRODUCT_NAME),
        ({"name": "Pintura de cerámica"}, Technique.PAINTING, TechniqueSource.PRODUCT_NAME),
        ({"name": "Modelado a mano"}, Technique.HAND_MODELING, TechniqueSource.PRODUCT_NAME),
        (
            {"name": "Gift card", "details": json.dumps({"technique": "molding"})},
            Technique.HAND_MODELING,
            TechniqueSource.PRODUCT_DETAILS,
        ),
        ({"name": "Intro", "type": "INTRODUCTORY_CLASS"}, Technique.POTTERS_WHEEL, TechniqueSource.PRODUCT_TYPE),
    ],
)
def test_product_fallbacks(product: dict[str, Any], expected: Technique, source: TechniqueSource) -> None:
    resolved = derive_technique(_booking(product=product))

    assert isinstance(resolved, SingleTechnique)
    assert resolved.technique is expected
    assert resolved.source is source


def test_unresolvable_booking_is_unknown() -> None:
    assert isinstance(derive_technique(_booking(product={"name": "Gift card"})), UnknownTechnique)


def test_stored_resolution_wins_over_heuristics() -> None:
    booking = _booking(
        product={"name": "Clase de Torno"},
        resolvedTechnique={"kind": "single", "technique": "painting", "source": "technique_field"},
    )

    resolved = resolve_technique(booking)

    assert resolved.technique is Technique.PAINTING


def test_stamp_returns_copy_with_resolution(captured_logs: list[dict[str, Any]]) -> None:
    booking = _booking(id="b1", technique="potters_wheel")

    stamped = stamp_technique(booking)

    assert booking.resolved_technique is None
    assert stamped.resolved_technique == SingleTechnique(
        technique=Technique.POTTERS_WHEEL, source=TechniqueSource.TECHNIQUE_FIELD
    )
    assert stamped.model_dump(by_alias=True)["resolvedTechnique"]["kind"] == "single"
    assert any(e["event"] == "booking_technique_stamped" for e in captured_logs)


def test_participant_count_chain() -> None:
    assert participant_count(_booking(participants=4)) == 4
    assert participant_count(_booking(groupClassMetadata={"totalParticipants": 6})) == 6
    assert participant_count(_booking(product={"name": "x", "minParticipants": 2})) == 2
    assert participant_count(_booking()) == 1


def test_booking_decodes_json_text_columns() -> None:
    booking = Booking.model_validate(
        {
            "id": 7,
            "slots": json.dumps([{"date": f"{THURSDAY}T00:00:00.000Z", "time": "9:00"}, {"time": "11:00"}]),
            "product": json.dumps({"name": "Torno"}),
            "groupClassMetadata": "{broken",
        }
    )

    assert [(s.date, s.time) for s in booking.slots] == [(THURSDAY, "9:00")]
    assert booking.product is not None and booking.product.name == "Torno"
    assert booking.group_class_metadata is None


def test_contribution_single_technique_uses_its_pool() -> None:
    contribution = booking_contribution(_booking(technique="painting", participants=3), THURSDAY)

    assert contribution.count_for(CapacityPool.HAND_WORK) == 3
    assert contribution.count_for(CapacityPool.POTTERS_WHEEL) == 0
    assert contribution.times == ["10:00"]


def test_contribution_unknown_counts_against_both_pools() -> None:
    contribution = booking_contribution(_booking(participants=2), THURSDAY)

    assert contribution.potters_count == 2
    assert contribution.hand_work_count == 2


def test_contribution_mixed_splits_by_assignment() -> None:
    booking = _booking(
        groupClassMetadata={
            "techniqueAssignments": [
                {"technique": "potters_wheel"},
                {"technique": "hand_modeling"},
                {"technique": "painting"},
            ]
        }
    )

    contribution = booking_contribution(booking, THURSDAY)

    assert (contribution.potters_count, contribution.hand_work_count) == (1, 2)


def test_aggregate_skips_expired_and_other_dates() -> None:
    bookings = [
        _booking(id="a", technique="potters_wheel", slots=[{"date": THURSDAY, "time": "9:00"}]),
        _booking(id="b", technique="potters_wheel", status="expired"),
        _booking(id="c", technique="potters_wheel", slots=[{"date": "2026-02-13", "time": "10:00"}]),
    ]

    contributions = aggregate_contributions(bookings, THURSDAY)

    assert [c.booking_id for c in contributions] == ["a"]
    assert contributions[0].times == ["09:00"]
