"""
Spatial Conflict Detection
==========================

Finds pairs of fields whose boxes overlap on the same page, strongly enough
to collide visually when rendered as overlays.

    overlap_area_ratio = intersection_area / min(area_a, area_b)

Severity tiers (defaults):
    ratio <  0.25          -> minor     (resolution: ignore)
    0.25 <= ratio < 0.6    -> moderate  (resolution: reduce_size)
    ratio >= 0.6           -> severe    (resolution: merge, likely duplicate)

One conflict per unordered pair, stored with field_id_a < field_id_b.
Quadratic in fields per page; forms carry at most low hundreds per page.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, Sequence, Tuple

from .geometry import BoundingBox

logger = logging.getLogger(__name__)


class ConflictSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class ConflictResolution(str, Enum):
    """Suggested reviewer action for a conflict."""
    IGNORE = "ignore"
    REDUCE_SIZE = "reduce_size"
    MERGE = "merge"


_RESOLUTIONS = {
    ConflictSeverity.MINOR: ConflictResolution.IGNORE,
    ConflictSeverity.MODERATE: ConflictResolution.REDUCE_SIZE,
    ConflictSeverity.SEVERE: ConflictResolution.MERGE,
}


@dataclass(frozen=True)
class Conflict:
    """Overlap between two positioned fields on the same page."""
    field_id_a: str
    field_id_b: str
    overlap_area_ratio: float
    severity: ConflictSeverity
    page_number: int
    overlap_area: float

    def __post_init__(self):
        # Canonical order makes Conflict(A, B) == Conflict(B, A)
        if self.field_id_b < self.field_id_a:
            a, b = self.field_id_a, self.field_id_b
            object.__setattr__(self, 'field_id_a', b)
            object.__setattr__(self, 'field_id_b', a)

    @property
    def resolution(self) -> ConflictResolution:
        return _RESOLUTIONS[self.severity]

    def involves(self, field_id: str) -> bool:
        return field_id in (self.field_id_a, self.field_id_b)

    def other(self, field_id: str) -> str:
        """Return the id of the other field in the pair."""
        return self.field_id_b if field_id == self.field_id_a else self.field_id_a

    def to_dict(self) -> Dict[str, object]:
        return {
            'field_id_a': self.field_id_a,
            'field_id_b': self.field_id_b,
            'overlap_area_ratio': self.overlap_area_ratio,
            'severity': self.severity.value,
            'page_number': self.page_number,
            'overlap_area': self.overlap_area,
            'resolution': self.resolution.value
        }


@dataclass(frozen=True)
class SeverityThresholds:
    """Lower bounds (inclusive) of the moderate and severe tiers."""
    moderate: float = 0.25
    severe: float = 0.6

    def __post_init__(self):
        if not 0 < self.moderate < self.severe <= 1:
            raise ValueError(
                f"Severity thresholds must satisfy 0 < moderate < severe <= 1, "
                f"got moderate={self.moderate}, severe={self.severe}"
            )

    def classify(self, ratio: float) -> ConflictSeverity:
        if ratio >= self.severe:
            return ConflictSeverity.SEVERE
        if ratio >= self.moderate:
            return ConflictSeverity.MODERATE
        return ConflictSeverity.MINOR


def overlap_ratio(box_a: BoundingBox, box_b: BoundingBox) -> Tuple[float, float]:
    """
    Overlap of two boxes relative to the smaller one.

    Returns:
        Tuple of (overlap_area_ratio in [0, 1], intersection_area)
    """
    intersection = box_a.intersection_area(box_b)
    if intersection <= 0:
        return 0.0, 0.0
    smaller = min(box_a.area, box_b.area)
    return min(1.0, intersection / smaller), intersection


class ConflictDetector:
    """Pairwise overlap detection between positioned fields sharing a page."""

    def __init__(self, thresholds: SeverityThresholds = SeverityThresholds()):
        self.thresholds = thresholds

    def detect(self, positioned: Iterable[Tuple[str, BoundingBox]]) -> List[Conflict]:
        """
        Detect conflicts among (field_id, box) pairs.

        Args:
            positioned: Every positioned field of the document; fields
                without a box must be left out by the caller

        Returns:
            Conflicts sorted by page, then field ids

        Raises:
            ValueError: if boxes in different units are compared
        """
        by_page: Dict[int, List[Tuple[str, BoundingBox]]] = defaultdict(list)
        for field_id, box in positioned:
            by_page[box.page_number].append((field_id, box))

        conflicts: List[Conflict] = []
        for page_number in sorted(by_page):
            page_conflicts = self._detect_on_page(page_number, by_page[page_number])
            if page_conflicts:
                logger.debug(f"Page {page_number}: {len(page_conflicts)} spatial conflicts")
            conflicts.extend(page_conflicts)

        conflicts.sort(key=lambda c: (c.page_number, c.field_id_a, c.field_id_b))
        logger.info(f"Detected {len(conflicts)} spatial conflicts")
        return conflicts

    def _detect_on_page(
        self,
        page_number: int,
        fields: Sequence[Tuple[str, BoundingBox]]
    ) -> List[Conflict]:
        conflicts = []
        for (id_a, box_a), (id_b, box_b) in combinations(fields, 2):
            ratio, area = overlap_ratio(box_a, box_b)
            if ratio <= 0:
                continue
            conflicts.append(Conflict(
                field_id_a=id_a,
                field_id_b=id_b,
                overlap_area_ratio=ratio,
                severity=self.thresholds.classify(ratio),
                page_number=page_number,
                overlap_area=area
            ))
        return conflicts


def conflicts_for(field_id: str, conflicts: Iterable[Conflict]) -> List[Conflict]:
    """Conflicts that involve the given field."""
    return [c for c in conflicts if c.involves(field_id)]
