"""
Field Capacity Calculation
==========================

Estimates how many characters fit on one line of a field's box, from the box
width, a font family and a font size, and whether the field's current value
overflows.

    max_characters_per_line = floor(width_pt / (average_char_width * font_size))

Font sizes are typographic points. Boxes come in the analysis target unit, so
their dimensions are first converted to points with `points_per_unit`
(72 for inches, 1 for points, 72 / dpi for pixels).

Average character widths are expressed in font-size units (an average glyph
of a 10pt Arial line is about 6pt wide). The defaults are the commonly used
averages for Latin text:

    Arial 0.60, Helvetica 0.60, Times 0.50, Courier 0.60 (monospace advance),
    Calibri 0.55, Verdana 0.65, default 0.55

Unknown families fall back to `default`.
"""

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .geometry import BoundingBox

logger = logging.getLogger(__name__)

DEFAULT_FONT_WIDTHS: Dict[str, float] = {
    'arial': 0.6,
    'helvetica': 0.6,
    'times': 0.5,
    'courier': 0.6,
    'calibri': 0.55,
    'verdana': 0.65,
    'default': 0.55,
}

# Line height as a multiple of font size
LINE_HEIGHT_MULTIPLIER = 1.2

# Clamp range (points) for font sizes estimated from box height
MIN_ESTIMATED_FONT_SIZE = 8
MAX_ESTIMATED_FONT_SIZE = 24

# Absorbs float error in exact multiples (72 / (0.6 * 12) must be 10, not 9)
_EPSILON = 1e-9


@dataclass(frozen=True)
class FontWidthTable:
    """Immutable family -> average character width table (case-insensitive)."""
    widths: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_FONT_WIDTHS))

    def __post_init__(self):
        normalized = {k.strip().lower(): float(v) for k, v in self.widths.items()}
        if 'default' not in normalized:
            normalized['default'] = DEFAULT_FONT_WIDTHS['default']
        for family, width in normalized.items():
            if width <= 0:
                raise ValueError(f"Average width for '{family}' must be positive, got {width}")
        object.__setattr__(self, 'widths', MappingProxyType(normalized))

    def is_known(self, family: Optional[str]) -> bool:
        return bool(family) and family.strip().lower() in self.widths

    def average_width(self, family: Optional[str]) -> float:
        if self.is_known(family):
            return self.widths[family.strip().lower()]
        return self.widths['default']

    def with_family(self, family: str, width: float) -> 'FontWidthTable':
        """Return a table extended (or overridden) with one family."""
        widths = dict(self.widths)
        widths[family.strip().lower()] = width
        return FontWidthTable(widths)

    def to_dict(self) -> Dict[str, float]:
        return dict(sorted(self.widths.items()))


@dataclass(frozen=True)
class CapacityInfo:
    """Per-field text capacity."""
    max_characters_per_line: int
    value_length: int
    fits: bool
    overflow_ratio: float
    max_lines: int
    max_characters: int
    font_family: str
    font_size: float

    def to_dict(self) -> Dict[str, object]:
        return {
            'max_characters_per_line': self.max_characters_per_line,
            'value_length': self.value_length,
            'fits': self.fits,
            'overflow_ratio': self.overflow_ratio if math.isfinite(self.overflow_ratio) else None,
            'max_lines': self.max_lines,
            'max_characters': self.max_characters,
            'font_family': self.font_family,
            'font_size': self.font_size
        }


class CapacityCalculator:
    """
    Computes CapacityInfo for positioned fields.

    Monotone by construction: a wider box never lowers the per-line capacity,
    a larger font never raises it.
    """

    def __init__(
        self,
        font_widths: Optional[FontWidthTable] = None,
        default_font_family: str = 'default',
        default_font_size: Optional[float] = 12.0,
        points_per_unit: float = 1.0
    ):
        """
        Args:
            font_widths: Average character width table
            default_font_family: Family used when a field names none
            default_font_size: Size in points used when a field names none;
                None means estimate it from each box's height
            points_per_unit: Typographic points per box unit
        """
        if default_font_size is not None and default_font_size <= 0:
            raise ValueError(f"default_font_size must be positive, got {default_font_size}")
        if not (math.isfinite(points_per_unit) and points_per_unit > 0):
            raise ValueError(f"points_per_unit must be positive, got {points_per_unit}")
        self.font_widths = font_widths or FontWidthTable()
        self.default_font_family = default_font_family
        self.default_font_size = default_font_size
        self.points_per_unit = points_per_unit

    def is_known_family(self, family: Optional[str]) -> bool:
        return self.font_widths.is_known(family or self.default_font_family)

    def estimate_font_size(self, box: BoundingBox) -> float:
        """Estimate font size in points from box height (height ~ font size * line height)."""
        estimated = round(box.height * self.points_per_unit / LINE_HEIGHT_MULTIPLIER)
        return float(max(MIN_ESTIMATED_FONT_SIZE, min(MAX_ESTIMATED_FONT_SIZE, estimated)))

    def max_characters_per_line(self, width: float, font_family: Optional[str], font_size: float) -> int:
        """Characters of `font_size` points that fit in `width` box units."""
        char_width = self.font_widths.average_width(font_family) * font_size
        return max(0, math.floor(width * self.points_per_unit / char_width + _EPSILON))

    def calculate(
        self,
        box: Optional[BoundingBox],
        value: str,
        font_family: Optional[str] = None,
        font_size: Optional[float] = None
    ) -> Optional[CapacityInfo]:
        """
        Calculate capacity for one field.

        Args:
            box: The field's box; None yields None (capacity is undefined)
            value: Current field value
            font_family: Overrides the default family
            font_size: Overrides the default size (points)

        Returns:
            CapacityInfo, or None for unpositioned fields
        """
        if box is None:
            return None

        family = font_family or self.default_font_family
        size = font_size or self.default_font_size or self.estimate_font_size(box)
        if size <= 0:
            raise ValueError(f"font_size must be positive, got {size}")

        per_line = self.max_characters_per_line(box.width, family, size)
        height_pt = box.height * self.points_per_unit
        max_lines = max(1, math.floor(height_pt / (size * LINE_HEIGHT_MULTIPLIER) + _EPSILON))
        value_length = len(value or "")

        if per_line > 0:
            overflow_ratio = value_length / per_line
        else:
            overflow_ratio = 0.0 if value_length == 0 else math.inf

        return CapacityInfo(
            max_characters_per_line=per_line,
            value_length=value_length,
            fits=overflow_ratio <= 1,
            overflow_ratio=overflow_ratio,
            max_lines=max_lines,
            max_characters=per_line * max_lines,
            font_family=family,
            font_size=size
        )
