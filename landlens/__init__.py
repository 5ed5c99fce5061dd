# LandLens - Source Package
"""
LandLens: farm-photo land analysis.

This package turns a single farm-land photograph into:
- a photo quality assessment with improvement suggestions
- an estimated land area with a land-type breakdown
- a terrain classification with land zones, water sources and infrastructure
"""

__version__ = "0.1.0"

from landlens.config import DEFAULT_CONFIG, AnalysisConfig, load_config
from landlens.core.area_estimation import AreaEstimator
from landlens.core.models import (
    AreaBreakdown,
    AreaEstimate,
    AreaEstimationOptions,
    BoundingBox,
    GeoLocation,
    ImageMetadata,
    ProcessingOptions,
    QualityAssessment,
    ReferenceKind,
    ReferenceObject,
    TerrainAnalysisOptions,
    TerrainClassification,
    ValidationResult,
)
from landlens.core.preprocess import ImagePreprocessor
from landlens.core.quality import QualityAnalyzer
from landlens.core.terrain import TerrainClassifier
from landlens.utils.raster import Raster, decode_raster

__all__ = [
    "DEFAULT_CONFIG",
    "AnalysisConfig",
    "AreaBreakdown",
    "AreaEstimate",
    "AreaEstimationOptions",
    "AreaEstimator",
    "BoundingBox",
    "GeoLocation",
    "ImageMetadata",
    "ImagePreprocessor",
    "ProcessingOptions",
    "QualityAnalyzer",
    "QualityAssessment",
    "Raster",
    "ReferenceKind",
    "ReferenceObject",
    "TerrainAnalysisOptions",
    "TerrainClassification",
    "TerrainClassifier",
    "ValidationResult",
    "decode_raster",
    "load_config",
]
