"""Classify a claim polygon against the existing territory snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Literal, Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from .config import MINIMUM_AREA_M2, PARTIAL_OVERLAP_THRESHOLD, STEAL_OVERLAP_THRESHOLD
from .geometry import (
    Region,
    contains,
    difference,
    intersection_area,
    largest,
    region_shape,
    to_shape,
    union_all,
)
from .models import Territory

LOGGER = logging.getLogger(__name__)

Classification = Literal["steal", "reinforce", "interior", "new"]


@dataclass(slots=True)
class Overlap:
    """Intersection metrics between the candidate and one existing territory."""

    territory: Territory
    shape: BaseGeometry
    intersection_area: float
    ratio_of_existing: float
    ratio_of_candidate: float
    contains_candidate: bool


@dataclass(slots=True)
class Resolution:
    classification: Classification
    candidate: Region
    claimed: Region
    primary: Optional[Overlap] = None
    interior: Optional[Overlap] = None
    overlaps: List[Overlap] = field(default_factory=list)
    carved_from: List[str] = field(default_factory=list)

    @property
    def target(self) -> Optional[Overlap]:
        """The overlap the rules engine acts on, if any."""

        if self.classification in ("steal", "reinforce"):
            return self.primary
        if self.classification == "interior":
            return self.interior
        return None

    @property
    def overlap_ratio(self) -> float:
        target = self.target
        return target.ratio_of_existing if target is not None else 0.0


def territory_shape(territory: Territory) -> BaseGeometry:
    return to_shape(territory.coordinates, territory.holes)


def measure_overlaps(
    candidate: Region, territories: Sequence[Territory]
) -> List[Overlap]:
    """Intersect the candidate with every territory it touches."""

    candidate_shape = region_shape(candidate)
    candidate_area = candidate.area
    overlaps: List[Overlap] = []
    for territory in territories:
        if len(territory.coordinates) < 3:
            continue
        try:
            shape = territory_shape(territory)
            if not candidate_shape.intersects(shape):
                continue
            shared = intersection_area(candidate_shape, shape)
        except (GEOSException, ValueError):
            LOGGER.warning(
                "Skipping territory %s with unusable geometry", territory.id, exc_info=True
            )
            continue
        if shared <= 0:
            continue
        overlaps.append(
            Overlap(
                territory=territory,
                shape=shape,
                intersection_area=shared,
                ratio_of_existing=shared / territory.area if territory.area > 0 else 0.0,
                ratio_of_candidate=shared / candidate_area if candidate_area > 0 else 0.0,
                contains_candidate=contains(shape, candidate_shape),
            )
        )
    return overlaps


def resolve_claim(
    candidate: Region, territories: Sequence[Territory], caller_id: str
) -> Resolution:
    """Decide whether the candidate steals, reinforces, splits or creates territory.

    Priority: steal, reinforce, interior conquest, new (with partial carve).
    """

    overlaps = measure_overlaps(candidate, territories)
    primary: Optional[Overlap] = None
    for overlap in overlaps:
        if primary is None or overlap.ratio_of_existing > primary.ratio_of_existing:
            primary = overlap

    if primary is not None and primary.ratio_of_existing >= STEAL_OVERLAP_THRESHOLD:
        kind: Classification = (
            "reinforce" if primary.territory.owner_id == caller_id else "steal"
        )
        return Resolution(kind, candidate, candidate, primary=primary, overlaps=overlaps)

    for overlap in overlaps:
        if overlap.contains_candidate and overlap.territory.owner_id != caller_id:
            return Resolution(
                "interior", candidate, candidate, primary=primary, interior=overlap, overlaps=overlaps
            )

    claimed, carved_from = carve_partial_overlaps(candidate, overlaps, caller_id)
    return Resolution(
        "new",
        candidate,
        claimed,
        primary=primary,
        overlaps=overlaps,
        carved_from=carved_from,
    )


def carve_partial_overlaps(
    candidate: Region, overlaps: Sequence[Overlap], caller_id: str
) -> tuple[Region, List[str]]:
    """Remove foreign footprints the candidate only grazes.

    Keeps the largest remaining piece; falls back to the uncarved candidate
    when the remainder is too small.
    """

    foreign = [
        overlap
        for overlap in overlaps
        if overlap.territory.owner_id != caller_id
        and max(overlap.ratio_of_existing, overlap.ratio_of_candidate) > PARTIAL_OVERLAP_THRESHOLD
        and overlap.ratio_of_existing < STEAL_OVERLAP_THRESHOLD
    ]
    if not foreign:
        return candidate, []

    try:
        cutter = union_all([overlap.shape for overlap in foreign])
        remainder = largest(difference(region_shape(candidate), cutter))
    except (GEOSException, ValueError):
        LOGGER.warning("Partial carve failed; keeping original path", exc_info=True)
        return candidate, []

    if remainder is None or remainder.area < MINIMUM_AREA_M2:
        LOGGER.info(
            "Carved remainder below %.0f m2; keeping original path", MINIMUM_AREA_M2
        )
        return candidate, []
    return remainder, [overlap.territory.id for overlap in foreign]
