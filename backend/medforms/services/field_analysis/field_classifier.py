"""
Field classification for medical form fields.
Assigns a field type from the value and a medical category from the label.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .ontology import (
    ClassificationTables,
    DEFAULT_TABLES,
    FieldType,
    MedicalType,
    normalize_label,
)

logger = logging.getLogger(__name__)

DEFAULT_UNCLASSIFIED_PENALTY = 0.2


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one field."""
    field_type: FieldType
    medical_type: str
    confidence_multiplier: float
    matched_validator: Optional[str] = None
    matched_keyword: Optional[str] = None

    @property
    def is_classified(self) -> bool:
        return self.medical_type != MedicalType.OTHER.value


class FieldClassifier:
    """Service for classifying form fields into field types and medical categories."""

    # Acronyms kept upper-case in display names
    ACRONYMS = {'rfc', 'curp', 'nss', 'cp', 'clabe', 'ine', 'cie', 'icd', 'dob', 'id', 'mrn', 'ssn'}

    def __init__(
        self,
        tables: ClassificationTables = DEFAULT_TABLES,
        unclassified_penalty: float = DEFAULT_UNCLASSIFIED_PENALTY
    ):
        """
        Initialize field classifier.

        Args:
            tables: Validator, label-hint and category tables
            unclassified_penalty: Fraction removed from the confidence of
                fields whose label matches no category (0 < penalty <= 1)
        """
        if not 0 < unclassified_penalty <= 1:
            raise ValueError(f"unclassified_penalty must be in (0, 1], got {unclassified_penalty}")
        self.tables = tables
        self.unclassified_penalty = unclassified_penalty
        logger.debug(
            f"Initialized FieldClassifier with {len(tables.validators)} validators "
            f"and {len(tables.categories)} categories"
        )

    def classify(self, label_text: str, value: str) -> ClassificationResult:
        """
        Classify a field from its label and raw value.

        Args:
            label_text: The label text from the form (e.g., "Nombre del Paciente:")
            value: The raw value string (may be empty)

        Returns:
            ClassificationResult; never raises on unrecognized input
        """
        label_text = label_text or ""
        value = value or ""
        normalized = normalize_label(label_text)

        field_type, validator_name = self.detect_field_type(normalized, value)
        medical_type, keyword = self.detect_medical_type(normalized)

        if keyword is None:
            multiplier = 1.0 - self.unclassified_penalty
            logger.debug(f"No category keyword for '{label_text}' - classifying as 'other'")
        else:
            multiplier = 1.0
            logger.debug(f"Matched '{label_text}' to category '{medical_type}' via '{keyword}'")

        return ClassificationResult(
            field_type=field_type,
            medical_type=medical_type,
            confidence_multiplier=multiplier,
            matched_validator=validator_name,
            matched_keyword=keyword
        )

    def detect_field_type(self, normalized_label: str, value: str) -> Tuple[FieldType, Optional[str]]:
        """
        Pick the field type: first matching value validator, then label hints.

        Returns:
            Tuple of (field_type, name of the validator or hint that decided it)
        """
        for validator in self.tables.validators:
            if validator.matches(value):
                return validator.field_type, validator.name

        if normalized_label:
            for hint in self.tables.label_hints:
                if hint.matches(normalized_label):
                    return hint.field_type, f"label:{hint.field_type.value}"

        return FieldType.TEXT, None

    def detect_medical_type(self, normalized_label: str) -> Tuple[str, Optional[str]]:
        """
        Pick the medical category from the normalized label.

        Returns:
            Tuple of (category, matched keyword or None for 'other')
        """
        if normalized_label:
            for rule in self.tables.categories:
                keyword = rule.match(normalized_label)
                if keyword is not None:
                    return rule.category, keyword
        return MedicalType.OTHER.value, None

    def display_name(self, label_text: str) -> str:
        """
        Normalize a raw label into a display name.

        "nombre  del paciente:" -> "Nombre Del Paciente", "rfc" -> "RFC"
        """
        cleaned = re.sub(r'[^\w\s]', ' ', label_text or '')
        words = cleaned.split()
        if not words:
            return ""
        return ' '.join(
            w.upper() if w.lower() in self.ACRONYMS else w[:1].upper() + w[1:].lower()
            for w in words
        )

    def classify_fields_batch(self, items: List[Tuple[str, str]]) -> List[Tuple[str, ClassificationResult]]:
        """
        Classify multiple (label, value) pairs in batch.

        Returns:
            List of tuples: (label_text, result)
        """
        return [(label, self.classify(label, value)) for label, value in items]
