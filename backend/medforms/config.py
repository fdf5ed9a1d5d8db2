"""
Configuration management for the medical form field analysis service.
Loads analysis defaults and API settings from environment variables.
"""
import logging
import os
from typing import Optional
from dotenv import load_dotenv

from medforms.services.field_analysis.geometry import CoordinateUnit
from medforms.services.field_analysis.pipeline import AnalysisConfig

# Load environment variables from .env file if it exists
load_dotenv()


def _optional_float(name: str, default: Optional[str] = None) -> Optional[float]:
    raw = os.getenv(name, default)
    if raw is None or raw.strip().lower() in ('', 'none', 'auto'):
        return None
    return float(raw)


class Config:
    """Configuration class for analysis defaults and API settings."""

    # Geometry
    # Pixel resolution boxes are produced at. 0 keeps source coordinates
    # (scale 1) labelled with TARGET_UNIT; above 0 TARGET_UNIT is ignored.
    TARGET_DPI: float = float(os.getenv('TARGET_DPI', '0'))
    SOURCE_UNIT: str = os.getenv('SOURCE_UNIT', 'inch')
    TARGET_UNIT: str = os.getenv('TARGET_UNIT', SOURCE_UNIT)

    # Capacity
    DEFAULT_FONT_FAMILY: str = os.getenv('DEFAULT_FONT_FAMILY', 'default')
    # 'auto' estimates the size from each box's height
    DEFAULT_FONT_SIZE: Optional[float] = _optional_float('DEFAULT_FONT_SIZE', '12')

    # Classification
    UNCLASSIFIED_PENALTY: float = float(os.getenv('UNCLASSIFIED_PENALTY', '0.2'))
    DEFAULT_SOURCE_CONFIDENCE: float = float(os.getenv('DEFAULT_SOURCE_CONFIDENCE', '0.5'))

    # API Settings
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '8000'))
    CORS_ORIGINS: list = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def validate(cls) -> bool:
        """
        Validate that configuration values are usable.
        """
        units = [u.value for u in CoordinateUnit]
        if cls.SOURCE_UNIT not in units:
            raise ValueError(f"SOURCE_UNIT must be one of {units}, got '{cls.SOURCE_UNIT}'")
        if cls.TARGET_UNIT not in units:
            raise ValueError(f"TARGET_UNIT must be one of {units}, got '{cls.TARGET_UNIT}'")

        if cls.TARGET_DPI < 0:
            raise ValueError("TARGET_DPI must be 0 (keep source units) or positive.")
        if cls.TARGET_DPI > 0 and cls.SOURCE_UNIT == CoordinateUnit.PAGE_FRACTION.value:
            raise ValueError(
                "TARGET_DPI cannot convert page_fraction coordinates; set TARGET_DPI=0 "
                "and TARGET_UNIT=page_fraction."
            )

        if cls.DEFAULT_FONT_SIZE is not None and cls.DEFAULT_FONT_SIZE <= 0:
            raise ValueError("DEFAULT_FONT_SIZE must be positive or 'auto'.")
        if not 0 < cls.UNCLASSIFIED_PENALTY <= 1:
            raise ValueError("UNCLASSIFIED_PENALTY must be in (0, 1].")
        if not 0 <= cls.DEFAULT_SOURCE_CONFIDENCE <= 1:
            raise ValueError("DEFAULT_SOURCE_CONFIDENCE must be in [0, 1].")

        if not isinstance(logging.getLevelName(cls.LOG_LEVEL), int):
            raise ValueError(f"LOG_LEVEL '{cls.LOG_LEVEL}' is not a logging level.")
        return True

    @classmethod
    def get_analysis_config(cls, **overrides) -> AnalysisConfig:
        """
        Build the AnalysisConfig described by the environment.

        Args:
            **overrides: AnalysisConfig fields that take precedence
        """
        config = {
            'default_font_family': cls.DEFAULT_FONT_FAMILY,
            'default_font_size': cls.DEFAULT_FONT_SIZE,
            'unclassified_penalty': cls.UNCLASSIFIED_PENALTY,
            'default_source_confidence': cls.DEFAULT_SOURCE_CONFIDENCE,
        }
        config.update(overrides)

        if cls.TARGET_DPI > 0:
            return AnalysisConfig.for_dpi(cls.TARGET_DPI, CoordinateUnit(cls.SOURCE_UNIT), **config)

        config.setdefault('target_unit', CoordinateUnit(cls.TARGET_UNIT))
        return AnalysisConfig(**config)
