"""Resolve which technique (and so which seat pool) a booking occupies.

Older bookings do not always store their technique, so it is derived through
a fallback chain, first match wins:

  1. per-participant technique assignments (group classes)
  2. the booking's explicit technique field
  3. keywords in the product name ("torno", "pintura", "modelado", ...)
  4. product.details.technique
  5. product type default (intro classes and wheel courses are wheel work)

The result is a tagged union (single / mixed / unknown) that is stamped onto
new bookings when they are created, so later reads never re-run the chain.
"""

from src.availability.logging import get_logger
from src.availability.models import (
    Booking,
    MixedTechniques,
    ResolvedTechnique,
    SingleTechnique,
    Technique,
    TechniqueSource,
    UnknownTechnique,
)

log = get_logger(__name__)

# Checked in order; the first keyword found in the lowercased name decides.
PRODUCT_NAME_KEYWORDS: tuple[tuple[str, Technique], ...] = (
    ("pintura", Technique.PAINTING),
    ("painting", Technique.PAINTING),
    ("torno", Technique.POTTERS_WHEEL),
    ("potter", Technique.POTTERS_WHEEL),
    ("wheel", Technique.POTTERS_WHEEL),
    ("modelado", Technique.HAND_MODELING),
    ("molding", Technique.HAND_MODELING),
    ("hand modeling", Technique.HAND_MODELING),
)

PRODUCT_TYPE_DEFAULTS: dict[str, Technique] = {
    "INTRODUCTORY_CLASS": Technique.POTTERS_WHEEL,
    "WHEEL_COURSE": Technique.POTTERS_WHEEL,
}


def parse_technique(value: str | None) -> Technique | None:
    """Map stored technique strings to Technique; "molding" is hand modeling."""
    if not value:
        return None
    if value == "molding":
        return Technique.HAND_MODELING
    try:
        return Technique(value)
    except ValueError:
        return None


def technique_from_product_name(name: str | None) -> Technique | None:
    lowered = (name or "").lower()
    for keyword, technique in PRODUCT_NAME_KEYWORDS:
        if keyword in lowered:
            return technique
    return None


def participant_count(booking: Booking) -> int:
    """Seats a booking takes: participants, group total, product minimum, else 1."""
    if booking.participants is not None:
        return booking.participants
    metadata = booking.group_class_metadata
    if metadata is not None and metadata.total_participants is not None:
        return metadata.total_participants
    if booking.product is not None and booking.product.min_participants is not None:
        return booking.product.min_participants
    return 1


def derive_technique(booking: Booking) -> ResolvedTechnique:
    """Run the fallback chain on a booking. Never raises."""
    metadata = booking.group_class_metadata
    if metadata is not None and metadata.technique_assignments:
        potters = sum(
            1 for a in metadata.technique_assignments if a.technique == "potters_wheel"
        )
        return MixedTechniques(
            potters=potters,
            hand_work=len(metadata.technique_assignments) - potters,
        )

    explicit = parse_technique(booking.technique)
    if explicit is not None:
        return SingleTechnique(technique=explicit, source=TechniqueSource.TECHNIQUE_FIELD)

    product = booking.product
    if product is not None:
        from_name = technique_from_product_name(product.name)
        if from_name is not None:
            return SingleTechnique(technique=from_name, source=TechniqueSource.PRODUCT_NAME)

        from_details = parse_technique(product.details.technique if product.details else None)
        if from_details is not None:
            return SingleTechnique(
                technique=from_details, source=TechniqueSource.PRODUCT_DETAILS
            )

    product_type = booking.product_type or (product.type if product else None)
    if product_type in PRODUCT_TYPE_DEFAULTS:
        return SingleTechnique(
            technique=PRODUCT_TYPE_DEFAULTS[product_type],
            source=TechniqueSource.PRODUCT_TYPE,
        )

    return UnknownTechnique()


def resolve_technique(booking: Booking) -> ResolvedTechnique:
    """Stored resolution if the booking has one, otherwise derive it now."""
    if booking.resolved_technique is not None:
        return booking.resolved_technique
    resolved = derive_technique(booking)
    if isinstance(resolved, UnknownTechnique):
        log.debug("booking_technique_unknown", booking_id=booking.id)
    return resolved


def stamp_technique(booking: Booking) -> Booking:
    """Copy of the booking with its technique resolved and stored."""
    resolved = derive_technique(booking)
    log.info(
        "booking_technique_stamped",
        booking_id=booking.id,
        kind=resolved.kind,
        source=getattr(resolved, "source", None),
    )
    return booking.model_copy(update={"resolved_technique": resolved})
