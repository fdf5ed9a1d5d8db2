"""
Document Profile
================

Identifies the insurer and the kind of claim form from the text of the
detected fields. Both are whole-word keyword lookups over the normalized
labels and values; the first insurer in table order wins.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .ontology import normalize_label

logger = logging.getLogger(__name__)


class FormType(str, Enum):
    """Kinds of Mexican medical insurance forms."""
    REIMBURSEMENT = "reembolso-gastos-medicos"
    CLAIM_REPORT = "reporte-siniestro"
    INSURANCE_APPLICATION = "solicitud-seguro"
    MEDICAL_FORM = "medical-form"


# Insurer name -> aliases, checked in order
DEFAULT_INSURERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("AXA", ("axa", "axa seguros")),
    ("MAPFRE", ("mapfre", "tepeyac")),
    ("GNP", ("gnp", "grupo nacional provincial")),
    ("Monterrey", ("seguros monterrey", "monterrey new york life")),
    ("MetLife", ("metlife", "met life")),
    ("INBURSA", ("inbursa", "seguros inbursa")),
    ("Atlas", ("seguros atlas",)),
    ("Banorte", ("banorte", "seguros banorte")),
    ("Plan Seguro", ("plan seguro",)),
)

# Form type -> keywords, checked in order; no match means MEDICAL_FORM
DEFAULT_FORM_TYPES: Tuple[Tuple[FormType, Tuple[str, ...]], ...] = (
    (FormType.REIMBURSEMENT, ("reembolso",)),
    (FormType.CLAIM_REPORT, ("siniestro",)),
    (FormType.INSURANCE_APPLICATION, ("solicitud",)),
)


@dataclass(frozen=True)
class DocumentProfile:
    insurer: Optional[str]
    form_type: FormType

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'insurer': self.insurer, 'form_type': self.form_type.value}


def _contains(text: str, keyword: str) -> bool:
    return re.search(r'\b' + re.escape(normalize_label(keyword)) + r'\b', text) is not None


def detect_profile(
    texts: Iterable[str],
    insurers=DEFAULT_INSURERS,
    form_types=DEFAULT_FORM_TYPES
) -> DocumentProfile:
    """
    Detect insurer and form type.

    Args:
        texts: Field labels and values
        insurers: Ordered (name, aliases) table
        form_types: Ordered (FormType, keywords) table

    Returns:
        DocumentProfile; insurer is None when no alias appears
    """
    text = normalize_label(' '.join(t for t in texts if t))

    insurer = next(
        (name for name, aliases in insurers if any(_contains(text, a) for a in aliases)),
        None
    )
    form_type = next(
        (kind for kind, keywords in form_types if any(_contains(text, k) for k in keywords)),
        FormType.MEDICAL_FORM
    )

    logger.debug(f"Document profile: insurer={insurer}, form_type={form_type.value}")
    return DocumentProfile(insurer=insurer, form_type=form_type)
