"""
Raw Analysis Input
==================

Typed view of the upstream document-analysis output, plus adapters for the
two shapes the system receives in practice.

Generic payload:
----------------
{
  "source_unit": "inch",                       # optional
  "confidence_scale": "fraction",              # optional: fraction | percent
  "pages": [
    {
      "page_number": 1,
      "width": 8.5, "height": 11, "unit": "inch",   # optional extent
      "primitives": [
        {
          "label": "Nombre del Paciente",       # or "key"
          "value": "Juan Pérez García",         # optional
          "confidence": 0.93,                   # optional, see confidence_scale
          "regions": [
            {"page_number": 1, "polygon": [1.0, 2.0, 4.1, 2.0, 4.1, 2.3, 1.0, 2.3]}
          ]
        }
      ]
    }
  ]
}

Polygons may be 8 flat numbers, 4 [x, y] pairs or 4 {"x", "y"} objects.

Adapters:
---------
- from_azure_layout: Azure Document Intelligence prebuilt-layout/document
  results (keyValuePairs, tables, selection marks, document fields and
  "Label: Value" text in paragraphs or lines)
- from_textract_blocks: AWS Textract AnalyzeDocument FORMS blocks
  (KEY_VALUE_SET with WORD / SELECTION_ELEMENT children)

Anything that cannot be parsed raises MalformedInputError.
"""

import logging
import math
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .diagnostics import MalformedInputError
from .geometry import CoordinateUnit, PageExtent, Point, Region

logger = logging.getLogger(__name__)

# Minimum key/value confidence kept from Azure keyValuePairs
AZURE_MIN_KVP_CONFIDENCE = 0.2
# Azure table cells carry no confidence of their own
AZURE_TABLE_CELL_CONFIDENCE = 0.90
AZURE_SELECTION_MARK_CONFIDENCE = 0.95

# Undeclared confidences above this are percentages; up to it, fractions clamped to 1.
# Percent sources reporting under 2% must declare confidence_scale="percent".
PERCENT_CONFIDENCE_CUTOFF = 2.0


class ConfidenceScale(str, Enum):
    """How a payload expresses confidences; None on the result means infer per value."""
    FRACTION = "fraction"
    PERCENT = "percent"


def _is_coordinate(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _coerce_point(raw: Any) -> Point:
    if isinstance(raw, dict):
        x = raw.get('x', raw.get('X'))
        y = raw.get('y', raw.get('Y'))
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        x, y = raw
    else:
        raise ValueError(f"Unrecognized point: {raw!r}")
    if not _is_coordinate(x) or not _is_coordinate(y):
        raise ValueError(f"Point coordinates must be finite numbers: {raw!r}")
    return float(x), float(y)


def coerce_polygon(raw: Any) -> Tuple[Point, Point, Point, Point]:
    """Accept the polygon shapes emitted by upstream services; return 4 points."""
    if not isinstance(raw, (list, tuple)):
        raise ValueError("polygon must be a list")
    if len(raw) == 8 and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw):
        if not all(math.isfinite(v) for v in raw):
            raise ValueError(f"polygon coordinates must be finite: {list(raw)!r}")
        points = [(float(raw[i]), float(raw[i + 1])) for i in range(0, 8, 2)]
    elif len(raw) == 4:
        points = [_coerce_point(p) for p in raw]
    else:
        raise ValueError(
            f"polygon must be 8 numbers or 4 points, got {len(raw)} elements"
        )
    return tuple(points)


class RawRegion(BaseModel):
    """A quadrilateral in source units."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    page_number: Optional[int] = Field(
        None, ge=1, validation_alias=AliasChoices('page_number', 'pageNumber')
    )
    polygon: Tuple[Point, Point, Point, Point]

    @field_validator('polygon', mode='before')
    @classmethod
    def _polygon(cls, value):
        return coerce_polygon(value)

    def to_region(self, default_page: int) -> Region:
        return Region(page_number=self.page_number or default_page, points=self.polygon)


class RawPrimitive(BaseModel):
    """One detected label/value primitive."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    label: str = Field("", validation_alias=AliasChoices('label', 'key'))
    value: str = ""
    confidence: Optional[float] = Field(None, allow_inf_nan=False)
    field_id: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    source_type: str = "primitive"
    regions: List[RawRegion] = Field(default_factory=list)

    @field_validator('label', 'value', mode='before')
    @classmethod
    def _text(cls, value):
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator('regions', mode='before')
    @classmethod
    def _regions(cls, value):
        return [] if value is None else value

    def resolved_confidence(self, default: float, scale: Optional[ConfidenceScale] = None) -> float:
        """
        Confidence in [0, 1].

        Missing -> default. With a declared scale, percent values are divided
        by 100 and fraction values only clamped. Undeclared values above
        PERCENT_CONFIDENCE_CUTOFF are read as percentages (Textract style);
        values between 1 and the cutoff are fractions that overshoot and
        clamp to 1.
        """
        if self.confidence is None:
            return default
        confidence = self.confidence
        if scale == ConfidenceScale.PERCENT or (scale is None and confidence > PERCENT_CONFIDENCE_CUTOFF):
            confidence = confidence / 100.0
        return max(0.0, min(1.0, confidence))


class RawPage(BaseModel):
    """Primitives detected on one page, with the page's declared extent."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    page_number: int = Field(1, ge=1, validation_alias=AliasChoices('page_number', 'pageNumber'))
    width: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    height: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    unit: Optional[CoordinateUnit] = None
    primitives: List[RawPrimitive] = Field(default_factory=list)

    @property
    def extent(self) -> Optional[PageExtent]:
        if self.width is None or self.height is None:
            return None
        return PageExtent(width=self.width, height=self.height)


class RawAnalysisResult(BaseModel):
    """The full raw result for one document."""
    model_config = ConfigDict(frozen=True, extra='ignore')

    source_unit: Optional[CoordinateUnit] = None
    confidence_scale: Optional[ConfidenceScale] = None
    pages: List[RawPage] = Field(default_factory=list)

    @property
    def total_primitives(self) -> int:
        return sum(len(p.primitives) for p in self.pages)

    @property
    def declared_unit(self) -> Optional[CoordinateUnit]:
        """The result-level unit, else the first unit a page declares."""
        if self.source_unit is not None:
            return self.source_unit
        return next((p.unit for p in self.pages if p.unit is not None), None)

    def page_extents(self) -> Dict[int, PageExtent]:
        return {p.page_number: p.extent for p in self.pages if p.extent is not None}


def parse_raw_result(payload: Union[RawAnalysisResult, Dict[str, Any], List[Any]]) -> RawAnalysisResult:
    """
    Validate a raw payload.

    Args:
        payload: RawAnalysisResult, {"pages": [...]}, {"primitives": [...]}
            (single page) or a bare list of pages

    Returns:
        RawAnalysisResult

    Raises:
        MalformedInputError: if the payload is not a recognizable primitive list
    """
    if isinstance(payload, RawAnalysisResult):
        return payload

    if isinstance(payload, list):
        payload = {'pages': payload}
    elif isinstance(payload, dict) and 'pages' not in payload and 'primitives' in payload:
        payload = {'pages': [payload]}

    if not isinstance(payload, dict):
        raise MalformedInputError(
            f"Raw analysis result must be an object or a list of pages, got {type(payload).__name__}"
        )

    try:
        return RawAnalysisResult.model_validate(payload)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.warning(f"Malformed analysis payload: {len(details)} error(s)")
        raise MalformedInputError("Raw analysis result could not be parsed", details) from e


# ============================================================================
# Azure Document Intelligence
# ============================================================================

def _azure_regions(element: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not element:
        return []
    return [
        {'page_number': r.get('pageNumber'), 'polygon': r.get('polygon')}
        for r in element.get('boundingRegions') or []
        if r.get('polygon')
    ]


def _first_page(regions: List[Dict[str, Any]], default: int = 1) -> int:
    for region in regions:
        if region.get('page_number'):
            return region['page_number']
    return default


# Paragraphs and lines carry no per-field confidence
AZURE_PARAGRAPH_FIELD_CONFIDENCE = 0.88
AZURE_LINE_FIELD_CONFIDENCE = 0.85
MIN_TEXT_FIELD_LENGTH = 3
MAX_TEXT_LABEL_LENGTH = 60

# "Label: Value", "Label = Value", "Label - Value" (spaced dash, so "GMM-4471029" stays whole)
_SEPARATED_FIELD_PATTERNS = (
    re.compile(r'^([^:]+):\s*(.+)$'),
    re.compile(r'^([^=]+)=\s*(.+)$'),
    re.compile(r'^(.+?)\s+-\s+(.+)$'),
)

# Mexican medical form labels written without a separator ("RFC LORM850312AB1")
_KNOWN_LABEL_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r'^(nombre\s*completo|nombre\s*del\s*paciente|nombre\s*asegurado)\s+(.+)$',
    r'^(rfc|r\.f\.c\.?)\s+([A-Z&Ñ]{4}\d{6}[A-Z0-9]{3})$',
    r'^(curp|c\.u\.r\.p\.?)\s+([A-Z]{4}\d{6}[HM][A-Z]{5}[0-9A-Z]\d)$',
    r'^(nss|n\.s\.s\.?|seguro\s*social|imss|issste)\s+(\d{11})$',
    r'^(fecha\s*(?:de\s*)?nacimiento|fecha\s*nac\.?)\s+(\d{1,2}/\d{1,2}/\d{4})$',
    r'^(tel[ée]fono|tel\.?|celular)\s+(\d{10})$',
    r'^(p[óo]liza|n[úu]mero\s*(?:de\s*)?p[óo]liza)\s+(.+)$',
    r'^(siniestro|n[úu]mero\s*(?:de\s*)?siniestro|folio\s*siniestro)\s+(.+)$',
    r'^(diagn[óo]stico|cie-?10)\s+(.+)$',
    r'^(hospital|cl[íi]nica|centro\s*m[ée]dico)\s+(.+)$',
    r'^(c[ée]dula\s*profesional)\s+(\d{7,8})$',
    r'^(clabe|clabe\s*bancaria)\s+(\d{18})$',
))


def split_label_value(text: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Split a line of form text into (label, value).

    Returns None for short text, text with an empty side, labels longer than
    MAX_TEXT_LABEL_LENGTH (running prose), or text matching no pattern.
    """
    text = (text or '').strip()
    if len(text) < MIN_TEXT_FIELD_LENGTH:
        return None
    for pattern in _SEPARATED_FIELD_PATTERNS + _KNOWN_LABEL_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        label, value = match.group(1).strip(), match.group(2).strip()
        if label and value and len(label) <= MAX_TEXT_LABEL_LENGTH:
            return label, value
    return None


def _azure_text_fields(result: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Fields written as text: paragraphs, else page lines."""
    primitives = []
    paragraphs = result.get('paragraphs') or []
    for paragraph in paragraphs:
        pair = split_label_value(paragraph.get('content'))
        if pair is None:
            continue
        primitives.append({
            'label': pair[0],
            'value': pair[1],
            'confidence': AZURE_PARAGRAPH_FIELD_CONFIDENCE,
            'source_type': 'paragraph',
            'regions': _azure_regions(paragraph)
        })
    if paragraphs:
        return primitives

    for page in result.get('pages') or []:
        number = page.get('pageNumber', 1)
        for line in page.get('lines') or []:
            pair = split_label_value(line.get('content'))
            if pair is None:
                continue
            polygon = line.get('polygon')
            primitives.append({
                'label': pair[0],
                'value': pair[1],
                'confidence': AZURE_LINE_FIELD_CONFIDENCE,
                'source_type': 'line',
                'regions': [{'page_number': number, 'polygon': polygon}] if polygon else []
            })
    return primitives


def from_azure_layout(result: Dict[str, Any]) -> RawAnalysisResult:
    """
    Convert an Azure Document Intelligence analyze result to RawAnalysisResult.

    Sources, in output order: document fields, key-value pairs, table cells,
    selection marks. Key-value pairs are positioned by the value's regions
    (the area that receives text), falling back to the key's regions.

    Results without key-value pairs or document fields (prebuilt-layout
    without the keyValuePairs feature) also contribute "Label: Value" text
    found in paragraphs, or in page lines when there are no paragraphs.
    Otherwise that text only repeats the pairs.
    """
    if not isinstance(result, dict):
        raise MalformedInputError("Azure analyze result must be an object")

    pages: Dict[int, Dict[str, Any]] = {}
    source_unit = None
    for page in result.get('pages') or []:
        number = page.get('pageNumber', len(pages) + 1)
        unit = page.get('unit')
        if unit and source_unit is None:
            source_unit = unit
        pages[number] = {
            'page_number': number,
            'width': page.get('width'),
            'height': page.get('height'),
            'unit': unit,
            'primitives': []
        }

    def add(primitive: Dict[str, Any]) -> None:
        number = _first_page(primitive['regions'])
        page = pages.setdefault(number, {'page_number': number, 'primitives': []})
        page['primitives'].append(primitive)

    kept_document_fields = 0
    for document in result.get('documents') or []:
        for name, doc_field in (document.get('fields') or {}).items():
            if not doc_field or not doc_field.get('content'):
                continue
            add({
                'label': name,
                'value': doc_field.get('content'),
                'confidence': doc_field.get('confidence'),
                'source_type': 'document',
                'regions': _azure_regions(doc_field)
            })
            kept_document_fields += 1

    kept_pairs = 0
    for kvp in result.get('keyValuePairs') or []:
        key = kvp.get('key') or {}
        confidence = kvp.get('confidence')
        if not key.get('content') or (confidence is not None and confidence < AZURE_MIN_KVP_CONFIDENCE):
            continue
        value = kvp.get('value') or {}
        add({
            'label': key.get('content'),
            'value': value.get('content', ''),
            'confidence': confidence,
            'source_type': 'key_value_pair',
            'regions': _azure_regions(value) or _azure_regions(key)
        })
        kept_pairs += 1

    for table_index, table in enumerate(result.get('tables') or []):
        cells = table.get('cells') or []
        headers = {
            c.get('columnIndex'): c.get('content', '').strip()
            for c in cells
            if c.get('kind') == 'columnHeader' and c.get('content')
        }
        for cell in cells:
            content = (cell.get('content') or '').strip()
            if not content or cell.get('kind') == 'columnHeader':
                continue
            row, column = cell.get('rowIndex'), cell.get('columnIndex')
            label = headers.get(column) or (
                f"table_{table.get('columnCount')}x{table.get('rowCount')}_r{row}_c{column}"
            )
            add({
                'label': label,
                'value': content,
                'confidence': AZURE_TABLE_CELL_CONFIDENCE,
                'field_id': f"table_{table_index}_r{row}_c{column}",
                'source_type': 'table',
                'regions': _azure_regions(cell)
            })

    for page in result.get('pages') or []:
        number = page.get('pageNumber', 1)
        for index, mark in enumerate(page.get('selectionMarks') or []):
            polygon = mark.get('polygon')
            add({
                'label': 'checkbox',
                'value': mark.get('state') or 'unselected',
                'confidence': mark.get('confidence', AZURE_SELECTION_MARK_CONFIDENCE),
                'field_id': f"checkbox_p{number}_{index:03d}",
                'source_type': 'checkbox',
                'regions': [{'page_number': number, 'polygon': polygon}] if polygon else []
            })

    text_fields = 0
    if not kept_pairs and not kept_document_fields:
        for primitive in _azure_text_fields(result):
            add(primitive)
            text_fields += 1

    logger.info(
        f"Azure layout adapter: {len(pages)} page(s), {kept_pairs} key-value pairs kept, "
        f"{text_fields} text fields"
    )
    return parse_raw_result({
        'source_unit': source_unit,
        'confidence_scale': ConfidenceScale.FRACTION.value,
        'pages': [pages[n] for n in sorted(pages)]
    })


# ============================================================================
# AWS Textract
# ============================================================================

def _textract_polygon(block: Dict[str, Any]) -> Optional[List[Dict[str, float]]]:
    geometry = block.get('Geometry') or {}
    polygon = geometry.get('Polygon')
    if polygon and len(polygon) == 4:
        return polygon
    bbox = geometry.get('BoundingBox')
    if not bbox:
        return None
    left, top = bbox.get('Left', 0), bbox.get('Top', 0)
    right, bottom = left + bbox.get('Width', 0), top + bbox.get('Height', 0)
    return [
        {'X': left, 'Y': top}, {'X': right, 'Y': top},
        {'X': right, 'Y': bottom}, {'X': left, 'Y': bottom}
    ]


def _textract_child_text(block: Dict[str, Any], block_map: Dict[str, Dict[str, Any]]) -> str:
    """Join the WORD children of a block; selection elements become their state."""
    parts = []
    for rel in block.get('Relationships') or []:
        if rel.get('Type') != 'CHILD':
            continue
        for child_id in rel.get('Ids', []):
            child = block_map.get(child_id)
            if not child:
                continue
            if child.get('BlockType') == 'WORD':
                word = (child.get('Text') or '').strip()
                if word:
                    parts.append(word)
            elif child.get('BlockType') == 'SELECTION_ELEMENT':
                status = child.get('SelectionStatus', 'NOT_SELECTED')
                parts.append('selected' if status == 'SELECTED' else 'unselected')
    return ' '.join(parts)


def from_textract_blocks(
    blocks: List[Dict[str, Any]],
    page_number: int = 1,
    page_size: Optional[Tuple[float, float]] = None
) -> RawAnalysisResult:
    """
    Convert Textract AnalyzeDocument (FeatureTypes=['FORMS']) blocks.

    Each KEY block becomes a primitive: label from the KEY's words, value and
    position from the linked VALUE block.

    Args:
        blocks: Textract Blocks list
        page_number: Page for blocks that carry no Page attribute
        page_size: (width, height) in points; when given, page-fraction
            geometry is converted to points (e.g. (612, 792) for US Letter)

    Returns:
        RawAnalysisResult in page_fraction units, or points with page_size
    """
    if not isinstance(blocks, list):
        raise MalformedInputError("Textract blocks must be a list")
    if page_size is not None and (page_size[0] <= 0 or page_size[1] <= 0):
        raise ValueError(f"page_size must be positive, got {page_size}")

    width, height = page_size or (1.0, 1.0)
    unit = CoordinateUnit.POINT if page_size else CoordinateUnit.PAGE_FRACTION

    block_map = {b['Id']: b for b in blocks if isinstance(b, dict) and 'Id' in b}
    pages: Dict[int, List[Dict[str, Any]]] = {}

    for block in blocks:
        if not isinstance(block, dict) or block.get('BlockType') != 'KEY_VALUE_SET':
            continue
        if 'KEY' not in (block.get('EntityTypes') or []):
            continue

        value_block = None
        for rel in block.get('Relationships') or []:
            if rel.get('Type') == 'VALUE' and rel.get('Ids'):
                value_block = block_map.get(rel['Ids'][0])
                break

        label = _textract_child_text(block, block_map)
        value = _textract_child_text(value_block, block_map) if value_block else ''

        confidences = [b['Confidence'] for b in (block, value_block) if b and 'Confidence' in b]
        confidence = min(confidences) / 100.0 if confidences else None

        page = block.get('Page', page_number)
        polygon = _textract_polygon(value_block or block)
        regions = []
        if polygon:
            regions.append({
                'page_number': page,
                'polygon': [[p.get('X', 0) * width, p.get('Y', 0) * height] for p in polygon]
            })
        pages.setdefault(page, []).append({
            'label': label,
            'value': value,
            'confidence': confidence,
            'source_type': 'key_value_pair',
            'regions': regions
        })

    logger.info(f"Textract adapter: {sum(len(p) for p in pages.values())} key-value pairs")
    return parse_raw_result({
        'source_unit': unit.value,
        'confidence_scale': ConfidenceScale.FRACTION.value,
        'pages': [
            {'page_number': n, 'width': width, 'height': height,
             'unit': unit.value, 'primitives': pages[n]}
            for n in sorted(pages)
        ]
    })
