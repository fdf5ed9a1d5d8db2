"""
Medical Form Field Ontology
===========================

Closed sets of field types and medical categories, plus the immutable tables
used to assign them.

Field types are decided by VALUE: an ordered tuple of named validators is
evaluated top to bottom and the first one that matches wins. The order is
part of the contract:

    checkbox, curp, rfc, nss, date, email, phone, currency, postal_code, number

CURP is checked before RFC because a CURP never matches RFC but both start
with four letters and six digits; NSS (11 digits) before phone (10 digits)
and number; postal_code (5 digits) before the generic number.

Medical categories are decided by LABEL: the label is normalized (lowercase,
accents stripped, punctuation collapsed) and matched word-wise against an
ordered keyword table. First category wins. Keywords are Spanish and English
because the forms come from Mexican insurers.

Default tables:
---------------
The keyword lists below are the documented defaults. Callers extend them with
ClassificationTables.with_category_keywords() / with_validator(), which
return new tables and never mutate the defaults.
"""

import re
import unicodedata
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple


class FieldType(str, Enum):
    """Closed set of value formats."""
    TEXT = "text"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    CURRENCY = "currency"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    RFC = "rfc"                  # Registro Federal de Contribuyentes
    CURP = "curp"                # Clave Unica de Registro de Poblacion
    NSS = "nss"                  # Numero de Seguridad Social
    POSTAL_CODE = "postal_code"


class MedicalType(str, Enum):
    """Built-in medical-domain categories."""
    IDENTIFICATION = "identification"
    SIGNATURE = "signature"
    PROVIDER = "provider"
    INSURANCE = "insurance"
    DIAGNOSIS = "diagnosis"
    TREATMENT = "treatment"
    FINANCIAL = "financial"
    CONTACT = "contact"
    PERSONAL_INFO = "personal_info"
    OTHER = "other"


def normalize_label(text: str) -> str:
    """
    Normalize label text for keyword matching.

    Lowercases, strips accents (diagnóstico -> diagnostico) and replaces every
    non-alphanumeric run with a single space.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize('NFKD', text)
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    normalized = re.sub(r'[^a-z0-9]+', ' ', stripped.lower())
    return normalized.strip()


def _strip_spaces(value: str) -> str:
    return re.sub(r'\s+', '', value)


def _strip_commas(value: str) -> str:
    return value.replace(',', '')


def _upper(value: str) -> str:
    return value.upper()


@dataclass(frozen=True)
class ValueValidator:
    """
    A named value pattern.

    The value is stripped, passed through `prepare` if given, and must fully
    match at least one of `patterns`.
    """
    field_type: FieldType
    patterns: Tuple[str, ...]
    prepare: Optional[Callable[[str], str]] = None
    ignore_case: bool = False
    compiled: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        flags = re.IGNORECASE if self.ignore_case else 0
        object.__setattr__(
            self, 'compiled', tuple(re.compile(p, flags) for p in self.patterns)
        )

    @property
    def name(self) -> str:
        return self.field_type.value

    def matches(self, value: str) -> bool:
        candidate = value.strip()
        if not candidate:
            return False
        if self.prepare is not None:
            candidate = self.prepare(candidate)
        return any(p.fullmatch(candidate) for p in self.compiled)


@dataclass(frozen=True)
class LabelHint:
    """Keywords that suggest a field type when the value gives no answer."""
    field_type: FieldType
    keywords: Tuple[str, ...]
    compiled: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'compiled', _compile_keywords(self.keywords))

    def matches(self, normalized_label: str) -> bool:
        return any(p.search(normalized_label) for p in self.compiled)


@dataclass(frozen=True)
class CategoryRule:
    """Keywords that place a field in a medical category."""
    category: str
    keywords: Tuple[str, ...]
    compiled: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'compiled', _compile_keywords(self.keywords))

    def match(self, normalized_label: str) -> Optional[str]:
        """Return the first keyword found as whole words in the label."""
        for keyword, pattern in zip(self.keywords, self.compiled):
            if pattern.search(normalized_label):
                return keyword
        return None


def _compile_keywords(keywords: Sequence[str]) -> Tuple[Pattern, ...]:
    return tuple(
        re.compile(r'(?<![a-z0-9])' + re.escape(normalize_label(k)) + r'(?![a-z0-9])')
        for k in keywords
    )


DEFAULT_VALIDATORS: Tuple[ValueValidator, ...] = (
    ValueValidator(
        FieldType.CHECKBOX,
        (r':?(un)?selected:?', r'not_selected', r'[☐☑☒]'),
        ignore_case=True
    ),
    ValueValidator(
        FieldType.CURP,
        (r'[A-Z]{4}\d{6}[HM][A-Z]{5}[0-9A-Z]\d',),
        prepare=_upper
    ),
    ValueValidator(
        FieldType.RFC,
        (r'[A-Z&Ñ]{3,4}\d{6}[A-Z0-9]{3}',),
        prepare=_upper
    ),
    ValueValidator(
        FieldType.NSS,
        (r'\d{11}',),
        prepare=_strip_spaces
    ),
    ValueValidator(
        FieldType.DATE,
        (
            r'\d{1,2}/\d{1,2}/\d{2,4}',   # DD/MM/YYYY
            r'\d{1,2}-\d{1,2}-\d{2,4}',   # DD-MM-YYYY
            r'\d{4}-\d{1,2}-\d{1,2}',     # YYYY-MM-DD
        )
    ),
    ValueValidator(
        FieldType.EMAIL,
        (r'[^\s@]+@[^\s@]+\.[^\s@]+',)
    ),
    ValueValidator(
        FieldType.PHONE,
        (
            r'\d{10}',
            r'\+52\d{10}',
            r'\(\d{2,3}\)\d{7,8}',
            r'\d{2,3}[-.]\d{3,4}[-.]\d{4}',
        ),
        prepare=_strip_spaces
    ),
    ValueValidator(
        FieldType.CURRENCY,
        (
            r'\$\s?[\d,]+\.?\d*',
            r'[\d,]+\.?\d*\s*(mxn|usd|pesos?)',
        ),
        ignore_case=True
    ),
    ValueValidator(
        FieldType.POSTAL_CODE,
        (r'\d{5}',)
    ),
    ValueValidator(
        FieldType.NUMBER,
        (r'\d+\.?\d*',),
        prepare=_strip_commas
    ),
)


DEFAULT_LABEL_HINTS: Tuple[LabelHint, ...] = (
    LabelHint(FieldType.CURP, ("curp",)),
    LabelHint(FieldType.RFC, ("rfc", "registro federal")),
    LabelHint(FieldType.NSS, ("nss", "seguro social", "seguridad social")),
    LabelHint(FieldType.DATE, ("fecha", "date", "dob", "nacimiento")),
    LabelHint(FieldType.EMAIL, ("correo", "email", "e mail")),
    LabelHint(FieldType.PHONE, ("telefono", "tel", "celular", "movil", "phone", "mobile")),
    LabelHint(FieldType.CURRENCY, ("monto", "importe", "cantidad", "amount", "total", "suma asegurada")),
    LabelHint(FieldType.POSTAL_CODE, ("codigo postal", "cp", "zip", "postal code")),
)


# Order matters: the first category with a matching keyword wins.
DEFAULT_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(MedicalType.IDENTIFICATION.value, (
        "rfc", "curp", "nss", "seguro social", "seguridad social", "afiliacion",
        "numero de afiliado", "expediente", "credencial", "ine", "pasaporte",
        "passport", "identificacion", "id number", "ssn", "medical record", "mrn",
    )),
    CategoryRule(MedicalType.SIGNATURE.value, (
        "firma", "signature", "signed", "rubrica",
    )),
    CategoryRule(MedicalType.PROVIDER.value, (
        "medico", "doctor", "dr", "hospital", "clinica", "clinic", "especialidad",
        "specialty", "cedula profesional", "physician", "tratante", "sanatorio",
    )),
    CategoryRule(MedicalType.INSURANCE.value, (
        "poliza", "policy", "aseguradora", "insurer", "insurance", "siniestro",
        "claim", "reclamacion", "deducible", "deductible", "coaseguro", "copago",
        "copayment", "cobertura", "coverage", "certificado", "reembolso",
    )),
    CategoryRule(MedicalType.DIAGNOSIS.value, (
        "diagnostico", "diagnosis", "padecimiento", "enfermedad", "sintomas",
        "symptoms", "cie 10", "icd", "antecedentes", "alergias", "allergies",
    )),
    CategoryRule(MedicalType.TREATMENT.value, (
        "tratamiento", "treatment", "procedimiento", "procedure", "cirugia",
        "surgery", "medicamento", "medicamentos", "medication", "dosis", "dose",
        "receta", "prescription", "terapia", "therapy", "hospitalizacion",
    )),
    CategoryRule(MedicalType.FINANCIAL.value, (
        "clabe", "banco", "bank", "cuenta", "account", "factura", "invoice",
        "importe", "monto", "amount", "total", "costo", "cost", "pago", "payment",
    )),
    CategoryRule(MedicalType.CONTACT.value, (
        "telefono", "tel", "phone", "celular", "mobile", "correo", "email",
        "direccion", "domicilio", "address", "colonia", "calle", "street",
        "ciudad", "city", "municipio", "codigo postal", "cp", "zip",
    )),
    CategoryRule(MedicalType.PERSONAL_INFO.value, (
        "nombre", "name", "apellido", "apellidos", "surname", "fecha de nacimiento",
        "nacimiento", "birth", "dob", "edad", "age", "sexo", "sex", "genero",
        "gender", "estado civil", "ocupacion", "occupation", "nacionalidad",
        "paciente", "patient",
    )),
)


@dataclass(frozen=True)
class ClassificationTables:
    """
    Immutable classification configuration.

    Thread-safe: instances are never mutated; the with_* helpers return copies.
    """
    validators: Tuple[ValueValidator, ...] = DEFAULT_VALIDATORS
    label_hints: Tuple[LabelHint, ...] = DEFAULT_LABEL_HINTS
    categories: Tuple[CategoryRule, ...] = DEFAULT_CATEGORY_RULES

    def with_validator(
        self,
        validator: ValueValidator,
        before: Optional[FieldType] = None
    ) -> 'ClassificationTables':
        """
        Return tables with an extra validator.

        Args:
            validator: The validator to add
            before: Insert ahead of the first validator of this type
                    (appended at the end when None or not found)
        """
        validators = list(self.validators)
        position = len(validators)
        if before is not None:
            for index, existing in enumerate(validators):
                if existing.field_type == before:
                    position = index
                    break
        validators.insert(position, validator)
        return replace(self, validators=tuple(validators))

    def with_category_keywords(
        self,
        category: str,
        keywords: Sequence[str],
        before: Optional[str] = None
    ) -> 'ClassificationTables':
        """
        Return tables where `category` also matches `keywords`.

        Existing categories keep their position and get the keywords appended.
        New categories are inserted ahead of `before` (or appended).
        """
        category = category.value if isinstance(category, Enum) else category
        rules: List[CategoryRule] = list(self.categories)
        for index, rule in enumerate(rules):
            if rule.category == category:
                rules[index] = CategoryRule(category, rule.keywords + tuple(keywords))
                return replace(self, categories=tuple(rules))

        position = len(rules)
        if before is not None:
            before = before.value if isinstance(before, Enum) else before
            for index, rule in enumerate(rules):
                if rule.category == before:
                    position = index
                    break
        rules.insert(position, CategoryRule(category, tuple(keywords)))
        return replace(self, categories=tuple(rules))

    @property
    def category_names(self) -> List[str]:
        return [rule.category for rule in self.categories] + [MedicalType.OTHER.value]

    def describe(self) -> Dict[str, object]:
        """Summarize the tables for API consumers."""
        return {
            'validators': [v.name for v in self.validators],
            'label_hints': {h.field_type.value: list(h.keywords) for h in self.label_hints},
            'categories': {r.category: list(r.keywords) for r in self.categories},
        }


DEFAULT_TABLES = ClassificationTables()
