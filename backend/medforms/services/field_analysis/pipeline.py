"""
Medical Form Field Analysis Pipeline
====================================

The orchestrator that turns raw document-analysis output into an
overlay-ready, validated field model.

Pipeline Stages:
----------------
0. PARSE: validate the raw payload into typed primitives
1. GEOMETRY: regions -> one axis-aligned box per field (target unit)
2. CLASSIFY: label/value -> field type, medical category, multiplier
3. CAPACITY: box + font -> characters per line, overflow
4. CONFLICTS: pairwise overlap between fields sharing a page
5. SCORE: document confidence, completeness, summary, insurer and form type

Design Principles:
------------------
- Every stage is pure; configuration is an immutable value
- Only structurally malformed input aborts (MalformedInputError);
  every degraded path is reported as a warning string
- Same raw input + same configuration = equal AnalysisResult
  (input_hash identifies the pair)

Output Schema:
--------------
{
  "status": "analyzed",
  "input_hash": string,
  "insurer": string | null,
  "form_type": "medical-form" | "reembolso-gastos-medicos" | ... ,
  "document_confidence": float,
  "completeness": float,
  "fields": [
    {
      "field_id": string,
      "display_name": string,
      "field_type": "text" | "date" | ... ,
      "medical_type": "personal_info" | ... | "other",
      "value": string,
      "confidence": float,
      "bounding_box": {"x", "y", "width", "height", "page_number", "unit"} | null,
      "capacity": {...} | null
    }
  ],
  "conflicts": [...],
  "warnings": ["CODE: [field_id] message", ...],
  "summary": {...}
}
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .capacity_calculator import CapacityCalculator, CapacityInfo, FontWidthTable
from .conflict_detector import Conflict, ConflictDetector, SeverityThresholds, conflicts_for
from .diagnostics import MalformedInputError, WarningCode, format_warning
from .document_profile import DocumentProfile, FormType, detect_profile
from .field_classifier import DEFAULT_UNCLASSIFIED_PENALTY, FieldClassifier
from .geometry import BoundingBox, CoordinateUnit, GeometryNormalizer
from .ontology import DEFAULT_TABLES, ClassificationTables, MedicalType, normalize_label
from .raw_input import RawAnalysisResult, RawPrimitive, parse_raw_result
from .scorer import AggregateScorer, DocumentSummary, ScoredField

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_CONFIDENCE = 0.5
POINTS_PER_INCH = 72.0


class DocumentStatus(str, Enum):
    """Document lifecycle. The analysis pipeline only ever emits ANALYZED."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    VALIDATED = "validated"
    # Finalized states
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Immutable per-call configuration.

    scale converts source units to the target unit (target = source * scale).
    source_unit, when set, must agree with the unit declared by the input.
    default_font_size None means "estimate from each box's height".
    dpi is the resolution of pixel targets; without it a pixel is taken
    as one point (72 DPI).
    """
    scale: float = 1.0
    source_unit: Optional[CoordinateUnit] = None
    target_unit: CoordinateUnit = CoordinateUnit.PIXEL
    default_font_family: str = 'default'
    default_font_size: Optional[float] = 12.0
    font_widths: FontWidthTable = field(default_factory=FontWidthTable)
    tables: ClassificationTables = DEFAULT_TABLES
    unclassified_penalty: float = DEFAULT_UNCLASSIFIED_PENALTY
    severity_thresholds: SeverityThresholds = field(default_factory=SeverityThresholds)
    default_source_confidence: float = DEFAULT_SOURCE_CONFIDENCE
    clip_to_page: bool = True
    dpi: Optional[float] = None

    def __post_init__(self):
        if self.scale <= 0:
            raise ValueError(f"scale must be positive, got {self.scale}")
        if self.dpi is not None and self.dpi <= 0:
            raise ValueError(f"dpi must be positive, got {self.dpi}")
        if not 0 <= self.default_source_confidence <= 1:
            raise ValueError(
                f"default_source_confidence must be in [0, 1], got {self.default_source_confidence}"
            )
        if self.default_font_size is not None and self.default_font_size <= 0:
            raise ValueError(f"default_font_size must be positive, got {self.default_font_size}")

    @classmethod
    def for_dpi(cls, dpi: float, source_unit: CoordinateUnit, **overrides) -> 'AnalysisConfig':
        """
        Configuration producing pixel boxes at the given DPI.

        Args:
            dpi: Target resolution
            source_unit: Unit of the incoming polygons (inch, point or pixel)
            **overrides: Any other AnalysisConfig field

        Raises:
            ValueError: for page_fraction sources, whose pixel size depends
                on the page and cannot be expressed as one scale
        """
        if dpi <= 0:
            raise ValueError(f"dpi must be positive, got {dpi}")
        source_unit = CoordinateUnit(source_unit)
        if source_unit == CoordinateUnit.INCH:
            scale = float(dpi)
        elif source_unit == CoordinateUnit.POINT:
            scale = dpi / POINTS_PER_INCH
        elif source_unit == CoordinateUnit.PIXEL:
            scale = 1.0
        else:
            raise ValueError(
                "page_fraction coordinates cannot be converted to pixels with a single scale"
            )
        return cls(
            scale=scale,
            source_unit=source_unit,
            target_unit=CoordinateUnit.PIXEL,
            dpi=float(dpi),
            **overrides
        )

    @property
    def points_per_unit(self) -> Optional[float]:
        """Typographic points per target unit; None for page fractions."""
        if self.target_unit == CoordinateUnit.INCH:
            return POINTS_PER_INCH
        if self.target_unit == CoordinateUnit.POINT:
            return 1.0
        if self.target_unit == CoordinateUnit.PIXEL:
            return POINTS_PER_INCH / self.dpi if self.dpi else 1.0
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scale': self.scale,
            'dpi': self.dpi,
            'source_unit': self.source_unit.value if self.source_unit else None,
            'target_unit': self.target_unit.value,
            'default_font_family': self.default_font_family,
            'default_font_size': self.default_font_size,
            'font_widths': self.font_widths.to_dict(),
            'validators': [[v.name, list(v.patterns)] for v in self.tables.validators],
            'label_hints': [[h.field_type.value, list(h.keywords)] for h in self.tables.label_hints],
            'categories': [[r.category, list(r.keywords)] for r in self.tables.categories],
            'unclassified_penalty': self.unclassified_penalty,
            'severity_thresholds': {
                'moderate': self.severity_thresholds.moderate,
                'severe': self.severity_thresholds.severe
            },
            'default_source_confidence': self.default_source_confidence,
            'clip_to_page': self.clip_to_page
        }


@dataclass(frozen=True)
class DetectedField:
    """One analyzed form field."""
    field_id: str
    display_name: str
    label: str
    field_type: str
    medical_type: str
    value: str
    confidence: float
    source_confidence: float
    page_number: int
    bounding_box: Optional[BoundingBox] = None
    capacity: Optional[CapacityInfo] = None
    source_type: str = "primitive"

    @property
    def is_positioned(self) -> bool:
        return self.bounding_box is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'field_id': self.field_id,
            'display_name': self.display_name,
            'label': self.label,
            'field_type': self.field_type,
            'medical_type': self.medical_type,
            'value': self.value,
            'confidence': self.confidence,
            'source_confidence': self.source_confidence,
            'page_number': self.page_number,
            'bounding_box': self.bounding_box.to_dict() if self.bounding_box else None,
            'capacity': self.capacity.to_dict() if self.capacity else None,
            'source_type': self.source_type
        }


@dataclass(frozen=True)
class AnalysisResult:
    """
    Complete analysis of one document.

    conflicts are sorted by page then field ids, so two results compare
    equal exactly when they hold the same conflict set.
    """
    fields: Tuple[DetectedField, ...]
    conflicts: Tuple[Conflict, ...]
    document_confidence: float
    completeness: float
    warnings: Tuple[str, ...]
    summary: DocumentSummary
    input_hash: str = ""
    status: DocumentStatus = DocumentStatus.ANALYZED
    profile: DocumentProfile = field(
        default_factory=lambda: DocumentProfile(insurer=None, form_type=FormType.MEDICAL_FORM)
    )

    def get_field(self, field_id: str) -> Optional[DetectedField]:
        for detected in self.fields:
            if detected.field_id == field_id:
                return detected
        return None

    def fields_on_page(self, page_number: int) -> List[DetectedField]:
        return [f for f in self.fields if f.page_number == page_number]

    def conflicts_for(self, field_id: str) -> List[Conflict]:
        return conflicts_for(field_id, self.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'status': self.status.value,
            'input_hash': self.input_hash,
            'insurer': self.profile.insurer,
            'form_type': self.profile.form_type.value,
            'document_confidence': self.document_confidence,
            'completeness': self.completeness,
            'fields': [f.to_dict() for f in self.fields],
            'conflicts': [c.to_dict() for c in self.conflicts],
            'warnings': list(self.warnings),
            'summary': self.summary.to_dict()
        }


def slugify(label: str, max_length: int = 40) -> str:
    """'Nombre del Paciente:' -> 'nombre_del_paciente'"""
    slug = normalize_label(label).replace(' ', '_')[:max_length].strip('_')
    return slug or 'unlabeled'


class FieldAnalysisPipeline:
    """
    Runs the six analysis stages over one raw result.

    Example usage:

        pipeline = FieldAnalysisPipeline(AnalysisConfig.for_dpi(150, CoordinateUnit.INCH))

        with open('azure_result.json') as f:
            raw = from_azure_layout(json.load(f))

        result = pipeline.analyze(raw)
        output = result.to_dict()
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        """
        Initialize the pipeline.

        Args:
            config: Analysis configuration (defaults: scale 1, pixel target,
                12pt default font, built-in tables)
        """
        self.config = config or AnalysisConfig()

        self.classifier = FieldClassifier(
            tables=self.config.tables,
            unclassified_penalty=self.config.unclassified_penalty
        )
        self.capacity_calculator = CapacityCalculator(
            font_widths=self.config.font_widths,
            default_font_family=self.config.default_font_family,
            default_font_size=self.config.default_font_size,
            points_per_unit=self.config.points_per_unit or 1.0
        )
        self.conflict_detector = ConflictDetector(self.config.severity_thresholds)
        self.scorer = AggregateScorer()

        logger.debug(
            f"Initialized FieldAnalysisPipeline - scale: {self.config.scale}, "
            f"target unit: {self.config.target_unit.value}"
        )

    def analyze(self, raw: Any, config: Optional[AnalysisConfig] = None) -> AnalysisResult:
        """
        Analyze a raw document-analysis result.

        Args:
            raw: RawAnalysisResult, {"pages": [...]} dict or list of pages
            config: Overrides the pipeline's configuration for this call

        Returns:
            AnalysisResult

        Raises:
            MalformedInputError: if the input is structurally invalid
        """
        if config is not None and config != self.config:
            return FieldAnalysisPipeline(config).analyze(raw)

        parsed = parse_raw_result(raw)

        adopted = self._adopt_declared_unit(parsed)
        if adopted is not None:
            return FieldAnalysisPipeline(adopted).analyze(parsed)

        self._check_units(parsed)
        input_hash = self._input_hash(parsed)

        logger.info(
            f"Analyzing document {input_hash}: {len(parsed.pages)} page(s), "
            f"{parsed.total_primitives} primitive(s)"
        )

        normalizer = GeometryNormalizer(
            scale=self.config.scale,
            unit=self.config.target_unit,
            page_extents=parsed.page_extents() if self.config.clip_to_page else None
        )

        warnings: List[str] = []
        fields: List[DetectedField] = []
        used_ids: set = set()
        warned_families: set = set()

        index = 0
        for page in parsed.pages:
            for primitive in page.primitives:
                index += 1
                field_id = self._assign_field_id(primitive, index, used_ids)
                fields.append(self._analyze_primitive(
                    primitive, field_id, page.page_number, normalizer, warnings, warned_families,
                    parsed
                ))

        if self.config.points_per_unit is None and any(f.is_positioned for f in fields):
            warnings.append(format_warning(
                WarningCode.CAPACITY_UNAVAILABLE,
                f"boxes in {self.config.target_unit.value} units have no physical size; "
                f"convert to points or pixels to measure capacity"
            ))
            logger.warning(f"Capacity skipped for {self.config.target_unit.value} boxes")

        # Stage 4 needs every positioned field of the document
        conflicts = self.conflict_detector.detect(
            (f.field_id, f.bounding_box) for f in fields if f.bounding_box is not None
        )

        score = self.scorer.score(
            [
                ScoredField(
                    field_id=f.field_id,
                    field_type=f.field_type,
                    medical_type=f.medical_type,
                    value=f.value,
                    confidence=f.confidence,
                    capacity=f.capacity,
                    positioned=f.is_positioned
                )
                for f in fields
            ],
            conflicts
        )
        warnings.extend(score.warnings)

        profile = detect_profile(text for f in fields for text in (f.label, f.value))

        logger.info(
            f"Analysis complete for {input_hash}: {len(fields)} fields, "
            f"{len(conflicts)} conflicts, {len(warnings)} warnings, "
            f"insurer={profile.insurer}, form_type={profile.form_type.value}"
        )

        return AnalysisResult(
            fields=tuple(fields),
            conflicts=tuple(conflicts),
            document_confidence=score.document_confidence,
            completeness=score.completeness,
            warnings=tuple(warnings),
            summary=score.summary,
            input_hash=input_hash,
            profile=profile
        )

    def _analyze_primitive(
        self,
        primitive: RawPrimitive,
        field_id: str,
        page_number: int,
        normalizer: GeometryNormalizer,
        warnings: List[str],
        warned_families: set,
        parsed: RawAnalysisResult
    ) -> DetectedField:
        """Run stages 1-3 for a single primitive."""
        geometry = normalizer.normalize(
            [r.to_region(page_number) for r in primitive.regions],
            default_page=page_number,
            field_id=field_id
        )
        warnings.extend(geometry.warnings)

        classification = self.classifier.classify(primitive.label, primitive.value)
        source_confidence = primitive.resolved_confidence(
            self.config.default_source_confidence, parsed.confidence_scale
        )
        confidence = max(0.0, min(1.0, source_confidence * classification.confidence_multiplier))

        capacity = None
        if geometry.bounding_box is not None and self.config.points_per_unit is not None:
            family = primitive.font_family or self.config.default_font_family
            if not self.capacity_calculator.is_known_family(family):
                key = family.strip().lower()
                if key not in warned_families:
                    warned_families.add(key)
                    warnings.append(format_warning(
                        WarningCode.UNKNOWN_FONT_FAMILY,
                        f"font family '{family}' not in width table, using default width"
                    ))
                    logger.warning(f"Unknown font family '{family}' - using default width")

            capacity = self.capacity_calculator.calculate(
                geometry.bounding_box,
                primitive.value,
                font_family=family,
                font_size=primitive.font_size
            )
            if not capacity.fits:
                warnings.append(format_warning(
                    WarningCode.CAPACITY_OVERFLOW,
                    f"value of {capacity.value_length} characters exceeds "
                    f"{capacity.max_characters_per_line} per line",
                    field_id
                ))

        logger.debug(
            f"{field_id}: type={classification.field_type.value}, "
            f"category={classification.medical_type}, confidence={confidence:.3f}"
        )

        return DetectedField(
            field_id=field_id,
            display_name=self.classifier.display_name(primitive.label),
            label=primitive.label,
            field_type=classification.field_type.value,
            medical_type=classification.medical_type,
            value=primitive.value,
            confidence=confidence,
            source_confidence=source_confidence,
            page_number=geometry.page_number,
            bounding_box=geometry.bounding_box,
            capacity=capacity,
            source_type=primitive.source_type
        )

    def _assign_field_id(self, primitive: RawPrimitive, index: int, used_ids: set) -> str:
        base = primitive.field_id or f"field_{index:04d}_{slugify(primitive.label)}"
        field_id = base
        suffix = 2
        while field_id in used_ids:
            field_id = f"{base}_{suffix}"
            suffix += 1
        used_ids.add(field_id)
        return field_id

    def _adopt_declared_unit(self, parsed: RawAnalysisResult) -> Optional[AnalysisConfig]:
        """
        Configuration for unscaled input that declares its own unit.

        With scale 1 and no configured source unit the boxes stay in the
        input's unit, so they are labelled with it rather than with the
        configured target. Returns None when the configuration already fits.
        """
        declared = parsed.declared_unit
        if self.config.source_unit is not None or declared is None or self.config.scale != 1.0:
            return None
        if declared == self.config.target_unit:
            return replace(self.config, source_unit=declared)

        logger.info(
            f"Input declares '{declared.value}' with no scale; boxes labelled "
            f"'{declared.value}' instead of '{self.config.target_unit.value}'"
        )
        return replace(self.config, source_unit=declared, target_unit=declared, dpi=None)

    def _check_units(self, parsed: RawAnalysisResult) -> None:
        expected = self.config.source_unit
        if expected is None:
            return
        declared = [parsed.source_unit] + [p.unit for p in parsed.pages]
        for unit in declared:
            if unit is not None and unit != expected:
                raise MalformedInputError(
                    f"Input declares unit '{unit.value}' but the analysis is configured "
                    f"for '{expected.value}'"
                )

    def _input_hash(self, parsed: RawAnalysisResult) -> str:
        """Hash of input + configuration for reproducibility."""
        canonical = json.dumps(
            {'input': parsed.model_dump(mode='json'), 'config': self.config.to_dict()},
            sort_keys=True,
            separators=(',', ':'),
            ensure_ascii=False
        )
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:16]

    def get_statistics(self, result: AnalysisResult) -> Dict[str, Any]:
        """
        Generate statistics summary for an analysis result.

        Useful for monitoring and quality assurance.
        """
        total = len(result.fields)
        unclassified = result.summary.fields_by_medical_type.get(MedicalType.OTHER.value, 0)
        pages = {f.page_number for f in result.fields}

        return {
            'input_hash': result.input_hash,
            'insurer': result.profile.insurer,
            'form_type': result.profile.form_type.value,
            'total_pages': len(pages),
            'total_fields': total,
            'document_confidence': round(result.document_confidence, 4),
            'completeness': round(result.completeness, 4),
            'medical_type_distribution': dict(result.summary.fields_by_medical_type),
            'field_type_distribution': dict(result.summary.fields_by_type),
            'unclassified_count': unclassified,
            'unclassified_rate': unclassified / total if total > 0 else 0.0,
            'unpositioned_count': result.summary.unpositioned_count,
            'overflow_count': result.summary.overflow_count,
            'conflict_count': len(result.conflicts),
            'conflicts_by_severity': dict(result.summary.conflicts_by_severity),
            'warning_count': len(result.warnings)
        }
