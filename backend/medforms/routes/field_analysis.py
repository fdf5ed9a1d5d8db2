"""
Field Analysis API Routes
=========================

REST API endpoints for the medical form field analysis pipeline.

Endpoints:
- POST /api/v1/field-analysis/analyze - Analyze a generic raw primitive payload
- POST /api/v1/field-analysis/analyze-azure - Analyze an Azure Document Intelligence result
- POST /api/v1/field-analysis/analyze-textract - Analyze Textract FORMS blocks
- GET /api/v1/field-analysis/categories - Field types, categories and keyword tables
- GET /api/v1/field-analysis/fonts - Font width table used for capacity

Malformed payloads are rejected with HTTP 422.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from medforms.config import Config
from medforms.services.field_analysis import (
    AnalysisConfig,
    CoordinateUnit,
    FieldAnalysisPipeline,
    FieldType,
    MalformedInputError,
    RawAnalysisResult,
    from_azure_layout,
    from_textract_blocks,
    parse_raw_result,
)
from medforms.services.field_analysis.capacity_calculator import LINE_HEIGHT_MULTIPLIER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/field-analysis", tags=["Field Analysis"])

# US Letter in points
LETTER_WIDTH_PT = 612.0
LETTER_HEIGHT_PT = 792.0


# ============================================================================
# Request/Response Models
# ============================================================================

class AnalysisOptions(BaseModel):
    """Per-request overrides of the environment configuration."""
    dpi: Optional[float] = Field(None, gt=0, description="Produce pixel boxes at this DPI")
    default_font_family: Optional[str] = None
    default_font_size: Optional[float] = Field(None, gt=0)

    def overrides(self) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if self.default_font_family:
            changes['default_font_family'] = self.default_font_family
        if self.default_font_size:
            changes['default_font_size'] = self.default_font_size
        return changes


class AnalyzeRequest(AnalysisOptions):
    """Request for analyzing a generic raw payload."""
    raw: Union[Dict[str, Any], List[Any]] = Field(
        ..., description='{"pages": [...]} or a bare list of pages'
    )
    source_unit: Optional[CoordinateUnit] = Field(
        None, description="Unit of the polygons when the payload does not declare one"
    )


class AzureAnalyzeRequest(AnalysisOptions):
    """Request for analyzing an Azure Document Intelligence analyze result."""
    result: Dict[str, Any] = Field(..., description="The analyzeResult object")


class TextractAnalyzeRequest(AnalysisOptions):
    """Request for analyzing pre-extracted Textract output."""
    blocks: List[Dict[str, Any]]
    page_number: int = Field(1, ge=1)
    page_width: float = Field(LETTER_WIDTH_PT, gt=0, description="Page width in points")
    page_height: float = Field(LETTER_HEIGHT_PT, gt=0, description="Page height in points")


class AnalyzeResponse(BaseModel):
    """Response for the analyze endpoints."""
    success: bool
    result: Optional[Dict[str, Any]] = None
    statistics: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class CategoriesResponse(BaseModel):
    """Classification vocabulary."""
    field_types: List[str]
    medical_types: List[str]
    validators: List[str]
    label_hints: Dict[str, List[str]]
    categories: Dict[str, List[str]]


class FontsResponse(BaseModel):
    """Font width table used for capacity estimates."""
    widths: Dict[str, float]
    default_font_family: str
    default_font_size: Optional[float] = None
    line_height_multiplier: float


# ============================================================================
# Pipeline Instance (Singleton)
# ============================================================================

_pipeline_instance = None


def get_pipeline() -> FieldAnalysisPipeline:
    """Get or create the pipeline instance configured from the environment."""
    global _pipeline_instance

    if _pipeline_instance is None:
        _pipeline_instance = FieldAnalysisPipeline(Config.get_analysis_config())
        logger.info("Initialized FieldAnalysisPipeline singleton")

    return _pipeline_instance


def build_config(
    base: AnalysisConfig,
    source_unit: Optional[CoordinateUnit],
    options: AnalysisOptions
) -> AnalysisConfig:
    """
    Derive the per-request configuration.

    With a DPI (request or environment) and a convertible source unit the
    boxes come out in pixels; otherwise they stay in the source unit.
    """
    changes = options.overrides()
    dpi = options.dpi or (Config.TARGET_DPI if Config.TARGET_DPI > 0 else None)

    if dpi and source_unit is not None and source_unit != CoordinateUnit.PAGE_FRACTION:
        scaled = AnalysisConfig.for_dpi(dpi, source_unit)
        return replace(
            base,
            scale=scaled.scale,
            source_unit=scaled.source_unit,
            target_unit=scaled.target_unit,
            dpi=scaled.dpi,
            **changes
        )

    if options.dpi:
        raise ValueError(
            f"dpi requires inch, point or pixel coordinates, got "
            f"{source_unit.value if source_unit else 'an undeclared unit'}"
        )

    return replace(
        base,
        scale=1.0,
        source_unit=source_unit,
        target_unit=source_unit or base.target_unit,
        dpi=None,
        **changes
    )


def _run_analysis(
    parsed: RawAnalysisResult,
    source_unit: Optional[CoordinateUnit],
    options: AnalysisOptions,
    include_statistics: bool
) -> AnalyzeResponse:
    pipeline = get_pipeline()
    try:
        config = build_config(pipeline.config, source_unit, options)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = pipeline.analyze(parsed, config=config)

    statistics = None
    if include_statistics:
        statistics = pipeline.get_statistics(result)

    return AnalyzeResponse(success=True, result=result.to_dict(), statistics=statistics)


def _malformed(e: MalformedInputError) -> HTTPException:
    logger.warning(f"Rejected malformed payload: {e}")
    return HTTPException(status_code=422, detail={'message': str(e), 'errors': e.details})


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_raw(
    request: AnalyzeRequest,
    include_statistics: bool = Query(True, description="Include statistics summary")
) -> AnalyzeResponse:
    """
    Analyze a generic raw primitive payload.

    Each primitive carries a label, an optional value and confidence, and
    bounding regions as quadrilaterals in the source unit.
    """
    try:
        parsed = parse_raw_result(request.raw)
        logger.info(f"Analyzing raw payload: {parsed.total_primitives} primitives")
        source_unit = request.source_unit or parsed.declared_unit
        return _run_analysis(parsed, source_unit, request, include_statistics)

    except MalformedInputError as e:
        raise _malformed(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Pipeline error: {e}", exc_info=True)
        return AnalyzeResponse(success=False, error=str(e))


@router.post("/analyze-azure", response_model=AnalyzeResponse)
async def analyze_azure(
    request: AzureAnalyzeRequest,
    include_statistics: bool = Query(True, description="Include statistics summary")
) -> AnalyzeResponse:
    """
    Analyze an Azure Document Intelligence result (prebuilt-layout or
    prebuilt-document). PDF results are in inches, images in pixels.
    """
    try:
        parsed = from_azure_layout(request.result)
        if not parsed.total_primitives:
            logger.warning("Azure result contained no key-value pairs, tables or selection marks")
        source_unit = parsed.declared_unit or CoordinateUnit.INCH
        return _run_analysis(parsed, source_unit, request, include_statistics)

    except MalformedInputError as e:
        raise _malformed(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Pipeline error: {e}", exc_info=True)
        return AnalyzeResponse(success=False, error=str(e))


@router.post("/analyze-textract", response_model=AnalyzeResponse)
async def analyze_textract(
    request: TextractAnalyzeRequest,
    include_statistics: bool = Query(True, description="Include statistics summary")
) -> AnalyzeResponse:
    """
    Analyze pre-extracted Textract blocks.

    Use this endpoint when you've already called Textract (FeatureTypes
    FORMS) separately. Page-fraction geometry is converted to points using
    the given page size (US Letter by default).
    """
    try:
        if not request.blocks:
            raise HTTPException(
                status_code=400,
                detail="No Textract blocks provided"
            )

        logger.info(f"Analyzing Textract output: {len(request.blocks)} blocks")
        parsed = from_textract_blocks(
            request.blocks,
            page_number=request.page_number,
            page_size=(request.page_width, request.page_height)
        )
        return _run_analysis(parsed, CoordinateUnit.POINT, request, include_statistics)

    except MalformedInputError as e:
        raise _malformed(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Pipeline error: {e}", exc_info=True)
        return AnalyzeResponse(success=False, error=str(e))


@router.get("/categories", response_model=CategoriesResponse)
async def get_categories() -> CategoriesResponse:
    """
    Get the classification vocabulary.

    Field types are assigned from values by the ordered validators; medical
    types from labels by the ordered keyword table (first match wins).
    """
    tables = get_pipeline().config.tables
    described = tables.describe()

    return CategoriesResponse(
        field_types=[t.value for t in FieldType],
        medical_types=tables.category_names,
        validators=described['validators'],
        label_hints=described['label_hints'],
        categories=described['categories']
    )


@router.get("/fonts", response_model=FontsResponse)
async def get_fonts() -> FontsResponse:
    """Get the font width table (average character width in font-size units)."""
    config = get_pipeline().config

    return FontsResponse(
        widths=config.font_widths.to_dict(),
        default_font_family=config.default_font_family,
        default_font_size=config.default_font_size,
        line_height_multiplier=LINE_HEIGHT_MULTIPLIER
    )
