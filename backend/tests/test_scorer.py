import pytest

from medforms.services.field_analysis.capacity_calculator import CapacityInfo
from medforms.services.field_analysis.conflict_detector import Conflict, ConflictSeverity
from medforms.services.field_analysis.scorer import AggregateScorer, ScoredField


def capacity(max_characters, fits=True):
    return CapacityInfo(
        max_characters_per_line=max_characters,
        value_length=0,
        fits=fits,
        overflow_ratio=0.0 if fits else 2.0,
        max_lines=1,
        max_characters=max_characters,
        font_family="default",
        font_size=12.0,
    )


def scored(field_id, value="x", confidence=1.0, field_type="text", medical_type="other", **extra):
    return ScoredField(field_id, field_type, medical_type, value, confidence, **extra)


def test_empty_document():
    score = AggregateScorer().score([], [])
    assert score.document_confidence == 0
    assert score.completeness == 0
    assert len(score.warnings) == 1
    assert score.warnings[0].startswith("EMPTY_INPUT:")
    assert score.summary.total_fields == 0


def test_mean_confidence_and_completeness():
    fields = [
        scored("a", "Ana", 0.9),
        scored("b", "", 0.5),
        scored("c", "   ", 0.7),
    ]
    score = AggregateScorer().score(fields, [])
    assert score.document_confidence == pytest.approx(0.7)
    assert score.completeness == pytest.approx(1 / 3)
    assert score.warnings == []


def test_summary_counts():
    fields = [
        scored("a", field_type="date", medical_type="personal_info", capacity=capacity(10)),
        scored("b", field_type="text", medical_type="personal_info", capacity=capacity(100, fits=False)),
        scored("c", field_type="text", medical_type="diagnosis", capacity=capacity(300)),
        scored("d", positioned=False),
    ]
    conflicts = [Conflict("a", "b", 0.7, ConflictSeverity.SEVERE, 1, 5.0)]
    summary = AggregateScorer().score(fields, conflicts).summary

    assert summary.total_fields == 4
    assert summary.fields_by_type == {"date": 1, "text": 3}
    assert summary.fields_by_medical_type == {"diagnosis": 1, "other": 1, "personal_info": 2}
    assert summary.overflow_count == 1
    assert summary.unpositioned_count == 1
    assert summary.conflicts_by_severity == {"minor": 0, "moderate": 0, "severe": 1}
    assert summary.fields_in_conflict == 2
    assert summary.capacity_distribution == {"small": 1, "medium": 1, "large": 1}


@pytest.mark.parametrize("max_characters,bucket", [(49, "small"), (50, "medium"), (199, "medium"), (200, "large")])
def test_capacity_bucket_boundaries(max_characters, bucket):
    summary = AggregateScorer().summarize([scored("a", capacity=capacity(max_characters))], [])
    assert summary.capacity_distribution[bucket] == 1
