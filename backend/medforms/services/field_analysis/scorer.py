"""
Document-level scoring and summary statistics.

document_confidence is the mean field confidence; completeness is the share
of fields whose value is non-empty after stripping whitespace.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .capacity_calculator import CapacityInfo
from .conflict_detector import Conflict, ConflictSeverity
from .diagnostics import WarningCode, format_warning

logger = logging.getLogger(__name__)

# Capacity buckets by max_characters: small < 50 <= medium < 200 <= large
SMALL_CAPACITY_LIMIT = 50
MEDIUM_CAPACITY_LIMIT = 200


@dataclass(frozen=True)
class ScoredField:
    """The slice of a field the scorer needs."""
    field_id: str
    field_type: str
    medical_type: str
    value: str
    confidence: float
    capacity: Optional[CapacityInfo] = None
    positioned: bool = True


@dataclass(frozen=True)
class DocumentSummary:
    """Aggregate counts for reviewers and monitoring."""
    total_fields: int
    fields_by_type: Dict[str, int] = field(default_factory=dict)
    fields_by_medical_type: Dict[str, int] = field(default_factory=dict)
    overflow_count: int = 0
    unpositioned_count: int = 0
    conflicts_by_severity: Dict[str, int] = field(default_factory=dict)
    fields_in_conflict: int = 0
    capacity_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            'total_fields': self.total_fields,
            'fields_by_type': dict(self.fields_by_type),
            'fields_by_medical_type': dict(self.fields_by_medical_type),
            'overflow_count': self.overflow_count,
            'unpositioned_count': self.unpositioned_count,
            'conflicts_by_severity': dict(self.conflicts_by_severity),
            'fields_in_conflict': self.fields_in_conflict,
            'capacity_distribution': dict(self.capacity_distribution)
        }


@dataclass(frozen=True)
class DocumentScore:
    document_confidence: float
    completeness: float
    summary: DocumentSummary
    warnings: List[str] = field(default_factory=list)


def capacity_bucket(capacity: CapacityInfo) -> str:
    if capacity.max_characters < SMALL_CAPACITY_LIMIT:
        return 'small'
    if capacity.max_characters < MEDIUM_CAPACITY_LIMIT:
        return 'medium'
    return 'large'


class AggregateScorer:
    """Computes document confidence, completeness and the DocumentSummary."""

    def score(self, fields: Sequence[ScoredField], conflicts: Sequence[Conflict]) -> DocumentScore:
        """
        Score a fully analyzed document.

        Args:
            fields: Every detected field, in document order
            conflicts: Conflicts between those fields

        Returns:
            DocumentScore; an empty field list scores 0/0 with EMPTY_INPUT
        """
        summary = self.summarize(fields, conflicts)

        if not fields:
            logger.warning("No fields detected - document scored as empty")
            return DocumentScore(
                document_confidence=0.0,
                completeness=0.0,
                summary=summary,
                warnings=[format_warning(WarningCode.EMPTY_INPUT, "raw result contains no primitives")]
            )

        document_confidence = sum(f.confidence for f in fields) / len(fields)
        filled = sum(1 for f in fields if f.value.strip())
        completeness = filled / len(fields)

        logger.info(
            f"Document scored: confidence={document_confidence:.3f}, "
            f"completeness={completeness:.3f} ({filled}/{len(fields)} filled)"
        )
        return DocumentScore(
            document_confidence=max(0.0, min(1.0, document_confidence)),
            completeness=completeness,
            summary=summary
        )

    def summarize(self, fields: Sequence[ScoredField], conflicts: Sequence[Conflict]) -> DocumentSummary:
        by_type = Counter(f.field_type for f in fields)
        by_medical_type = Counter(f.medical_type for f in fields)
        by_severity = Counter(c.severity.value for c in conflicts)
        buckets = Counter(capacity_bucket(f.capacity) for f in fields if f.capacity is not None)

        in_conflict = set()
        for conflict in conflicts:
            in_conflict.update((conflict.field_id_a, conflict.field_id_b))

        return DocumentSummary(
            total_fields=len(fields),
            fields_by_type=dict(sorted(by_type.items())),
            fields_by_medical_type=dict(sorted(by_medical_type.items())),
            overflow_count=sum(1 for f in fields if f.capacity is not None and not f.capacity.fits),
            unpositioned_count=sum(1 for f in fields if not f.positioned),
            conflicts_by_severity={s.value: by_severity.get(s.value, 0) for s in ConflictSeverity},
            fields_in_conflict=len(in_conflict),
            capacity_distribution={b: buckets.get(b, 0) for b in ('small', 'medium', 'large')}
        )
