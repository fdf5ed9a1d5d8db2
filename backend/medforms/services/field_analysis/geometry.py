"""
Geometry Normalization
======================

Converts raw bounding regions (quadrilaterals in document units, possibly
several per field and possibly spread over pages) into one canonical
axis-aligned box per field.

Rules:
------
- Multi-region fields are merged by union, never by picking one region
- Rotated quadrilaterals become their enclosing axis-aligned rectangle
- Zero-width or zero-height regions are dropped with a warning
- A field is anchored on the lowest page carrying a usable region
- Output is in the target unit: target = source * scale

The computation is pure: the same regions and scale always give the same box,
whatever order the regions arrive in.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .diagnostics import WarningCode, format_warning

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


class CoordinateUnit(str, Enum):
    """Units a box can be expressed in. Never mixed within one comparison."""
    PAGE_FRACTION = "page_fraction"  # 0-1 relative to page size (Textract)
    PIXEL = "pixel"                  # pixels at a given DPI
    POINT = "point"                  # 1/72 inch (PDF user space)
    INCH = "inch"                    # Azure Document Intelligence for PDFs


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in a single coordinate unit.

    Invariant: all coordinates finite, width > 0 and height > 0.
    """
    x: float
    y: float
    width: float
    height: float
    page_number: int
    unit: CoordinateUnit = CoordinateUnit.PIXEL

    def __post_init__(self):
        if not all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height)):
            raise ValueError(
                f"BoundingBox requires finite coordinates, got "
                f"({self.x}, {self.y}, {self.width}, {self.height})"
            )
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"BoundingBox requires positive size, got {self.width}x{self.height}"
            )

    @property
    def right(self) -> float:
        """X coordinate of right edge."""
        return self.x + self.width

    @property
    def bottom(self) -> float:
        """Y coordinate of bottom edge."""
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    def intersection_area(self, other: 'BoundingBox') -> float:
        """Area shared with another box (0 when they only touch or are apart)."""
        if self.unit != other.unit:
            raise ValueError(
                f"Cannot compare boxes in different units: {self.unit.value} vs {other.unit.value}"
            )
        x_overlap = max(0.0, min(self.right, other.right) - max(self.x, other.x))
        y_overlap = max(0.0, min(self.bottom, other.bottom) - max(self.y, other.y))
        return x_overlap * y_overlap

    def to_list(self) -> List[float]:
        """Convert to [x, y, width, height] format."""
        return [self.x, self.y, self.width, self.height]

    def to_dict(self) -> Dict[str, object]:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'page_number': self.page_number,
            'unit': self.unit.value
        }


@dataclass(frozen=True)
class Region:
    """One quadrilateral reported by the upstream analysis, in source units."""
    page_number: int
    points: Tuple[Point, Point, Point, Point]

    def enclosing_rect(self) -> Tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y) of the quadrilateral."""
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return min(xs), min(ys), max(xs), max(ys)


@dataclass(frozen=True)
class PageExtent:
    """Declared page size in source units."""
    width: float
    height: float


@dataclass
class NormalizedGeometry:
    """Result of normalizing one field's regions."""
    bounding_box: Optional[BoundingBox]
    page_number: int
    warnings: List[str] = field(default_factory=list)


class GeometryNormalizer:
    """
    Reduces a field's raw regions to a single BoundingBox.

    Example:

        normalizer = GeometryNormalizer(scale=96.0, unit=CoordinateUnit.PIXEL)
        geometry = normalizer.normalize(regions, default_page=1, field_id="field_0001")
    """

    def __init__(
        self,
        scale: float = 1.0,
        unit: CoordinateUnit = CoordinateUnit.PIXEL,
        page_extents: Optional[Dict[int, PageExtent]] = None
    ):
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")
        self.scale = scale
        self.unit = unit
        self.page_extents = dict(page_extents or {})

    def normalize(
        self,
        regions: Sequence[Region],
        default_page: int = 1,
        field_id: Optional[str] = None
    ) -> NormalizedGeometry:
        """
        Normalize all regions of one field.

        Args:
            regions: Raw regions in source units
            default_page: Page used when the field has no usable region
            field_id: Used to tag warnings

        Returns:
            NormalizedGeometry with the union box (or None) and any warnings
        """
        warnings: List[str] = []
        rects: List[Tuple[int, float, float, float, float]] = []

        for index, region in enumerate(regions):
            rect = self._scaled_rect(region, index, field_id, warnings)
            if rect is not None:
                rects.append((region.page_number,) + rect)

        if not rects:
            reason = "no bounding regions supplied" if not regions else "all bounding regions degenerate"
            warnings.append(format_warning(WarningCode.UNPOSITIONED_FIELD, reason, field_id))
            logger.debug(f"Field {field_id} unpositioned: {reason}")
            return NormalizedGeometry(bounding_box=None, page_number=default_page, warnings=warnings)

        anchor_page = min(r[0] for r in rects)
        on_page = [r for r in rects if r[0] == anchor_page]
        dropped = len(rects) - len(on_page)
        if dropped:
            warnings.append(format_warning(
                WarningCode.CROSS_PAGE_REGION,
                f"{dropped} region(s) outside anchor page {anchor_page} dropped",
                field_id
            ))

        min_x = min(r[1] for r in on_page)
        min_y = min(r[2] for r in on_page)
        max_x = max(r[3] for r in on_page)
        max_y = max(r[4] for r in on_page)

        box = BoundingBox(
            x=min_x,
            y=min_y,
            width=max_x - min_x,
            height=max_y - min_y,
            page_number=anchor_page,
            unit=self.unit
        )
        return NormalizedGeometry(bounding_box=box, page_number=anchor_page, warnings=warnings)

    def _scaled_rect(
        self,
        region: Region,
        index: int,
        field_id: Optional[str],
        warnings: List[str]
    ) -> Optional[Tuple[float, float, float, float]]:
        """Enclosing rectangle of a region in target units, clipped to its page."""
        min_x, min_y, max_x, max_y = region.enclosing_rect()
        min_x, min_y = min_x * self.scale, min_y * self.scale
        max_x, max_y = max_x * self.scale, max_y * self.scale

        extent = self.page_extents.get(region.page_number)
        if extent is not None:
            page_w = extent.width * self.scale
            page_h = extent.height * self.scale
            clipped = (
                max(0.0, min_x), max(0.0, min_y),
                min(page_w, max_x), min(page_h, max_y)
            )
            if clipped != (min_x, min_y, max_x, max_y) and clipped[2] > clipped[0] and clipped[3] > clipped[1]:
                warnings.append(format_warning(
                    WarningCode.REGION_CLIPPED,
                    f"region {index} on page {region.page_number} clipped to page extent",
                    field_id
                ))
            min_x, min_y, max_x, max_y = clipped

        if max_x - min_x <= 0 or max_y - min_y <= 0:
            warnings.append(format_warning(
                WarningCode.DEGENERATE_REGION,
                f"region {index} on page {region.page_number} has zero width or height",
                field_id
            ))
            return None

        return min_x, min_y, max_x, max_y
