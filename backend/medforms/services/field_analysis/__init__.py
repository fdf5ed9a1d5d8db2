"""
Medical Form Field Analysis
===========================

Turns raw document-analysis output (key/value pairs, table cells and
selection marks detected on scanned medical forms) into a validated,
overlay-ready field model.

Pipeline Stages:
0. PARSE: generic payload, Azure layout result or Textract FORMS blocks
1. GEOMETRY: one axis-aligned box per field in the target unit
2. CLASSIFY: field type by value, medical category by label
3. CAPACITY: characters per line for the field's box and font
4. CONFLICTS: overlapping fields on the same page
5. SCORE: document confidence, completeness, summary and insurer profile

Design Principles:
- Pure stages over immutable inputs
- Configuration (font widths, keyword tables) passed per call, never global
- Deterministic outputs (same input + config = same result)
- Degraded input reported as warnings; only malformed structure raises
"""

from .diagnostics import MalformedInputError, WarningCode
from .geometry import BoundingBox, CoordinateUnit, GeometryNormalizer, PageExtent, Region
from .ontology import (
    ClassificationTables,
    DEFAULT_TABLES,
    FieldType,
    MedicalType,
    ValueValidator,
)
from .field_classifier import FieldClassifier, ClassificationResult
from .document_profile import DocumentProfile, FormType, detect_profile
from .capacity_calculator import CapacityCalculator, CapacityInfo, FontWidthTable
from .conflict_detector import (
    Conflict,
    ConflictDetector,
    ConflictResolution,
    ConflictSeverity,
    SeverityThresholds,
    conflicts_for,
)
from .scorer import AggregateScorer, DocumentSummary
from .raw_input import (
    ConfidenceScale,
    RawAnalysisResult,
    from_azure_layout,
    from_textract_blocks,
    parse_raw_result,
    split_label_value,
)
from .pipeline import (
    AnalysisConfig,
    AnalysisResult,
    DetectedField,
    DocumentStatus,
    FieldAnalysisPipeline,
)

__all__ = [
    'FieldAnalysisPipeline',
    'AnalysisConfig',
    'AnalysisResult',
    'DetectedField',
    'DocumentStatus',
    'MalformedInputError',
    'WarningCode',
    # Geometry
    'BoundingBox',
    'CoordinateUnit',
    'GeometryNormalizer',
    'PageExtent',
    'Region',
    # Classification
    'ClassificationTables',
    'DEFAULT_TABLES',
    'FieldType',
    'MedicalType',
    'ValueValidator',
    'FieldClassifier',
    'ClassificationResult',
    # Capacity
    'CapacityCalculator',
    'CapacityInfo',
    'FontWidthTable',
    # Conflicts
    'Conflict',
    'ConflictDetector',
    'ConflictResolution',
    'ConflictSeverity',
    'SeverityThresholds',
    'conflicts_for',
    # Scoring
    'AggregateScorer',
    'DocumentSummary',
    # Profile
    'DocumentProfile',
    'FormType',
    'detect_profile',
    # Raw input
    'RawAnalysisResult',
    'ConfidenceScale',
    'parse_raw_result',
    'from_azure_layout',
    'from_textract_blocks',
    'split_label_value',
]
