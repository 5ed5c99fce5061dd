"""Value objects returned by the analysis engines.

Every entity is a frozen dataclass created fresh per call. Categorical fields
use ``str`` enums so they compare equal to their wire strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Mapping

import numpy as np

from landlens.utils.geometry import Point, Polygon
from landlens.utils.raster import Raster


def to_plain(value: Any) -> Any:
    """Convert models, enums and arrays into JSON-ready builtins."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class _Model:
    def to_dict(self) -> dict[str, Any]:
        """JSON-ready plain representation."""
        return to_plain(self)


# Enums ---------------------------------------------------------------------


class MetricStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueType(str, Enum):
    BLUR = "blur"
    LIGHTING = "lighting"
    ANGLE = "angle"
    OBSTRUCTION = "obstruction"
    RESOLUTION = "resolution"
    EXPOSURE = "exposure"
    NOISE = "noise"
    COLOR_BALANCE = "color_balance"


class Transform(str, Enum):
    ORIENTATION_CORRECTION = "orientation_correction"
    RESIZE = "resize"
    CONTRAST_ENHANCEMENT = "contrast_enhancement"
    COMPRESSION = "compression"


class EstimationMethod(str, Enum):
    REFERENCE_OBJECT = "reference_object"
    GPS_BOUNDARY = "gps_boundary"
    VISUAL_ESTIMATION = "visual_estimation"


class ReferenceKind(str, Enum):
    PERSON = "person"
    VEHICLE = "vehicle"
    BUILDING = "building"
    TREE = "tree"
    POLE = "pole"


class TerrainPrimary(str, Enum):
    FLAT = "flat"
    HILLY = "hilly"
    MOUNTAINOUS = "mountainous"
    VALLEY = "valley"
    PLATEAU = "plateau"


class Drainage(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


class Accessibility(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    DIFFICULT = "difficult"


class ZoneType(str, Enum):
    CULTIVABLE = "cultivable"
    WATER_BODY = "water_body"
    RESIDENTIAL = "residential"
    FOREST = "forest"
    BARREN = "barren"


class LandType(str, Enum):
    VEGETATION = "vegetation"
    WATER = "water"
    SOIL = "soil"
    INFRASTRUCTURE = "infrastructure"
    ROCK = "rock"
    SAND = "sand"


class WaterSourceType(str, Enum):
    WELL = "well"
    POND = "pond"
    RIVER = "river"
    CANAL = "canal"
    BOREWELL = "borewell"


class WaterAccess(str, Enum):
    DIRECT = "direct"
    NEARBY = "nearby"
    DISTANT = "distant"


class InfrastructureType(str, Enum):
    ROAD = "road"
    BUILDING = "building"
    FENCE = "fence"
    IRRIGATION = "irrigation"


class Condition(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class DrainageDirection(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"
    FLAT = "flat"


class PatternType(str, Enum):
    LINEAR = "linear"
    CIRCULAR = "circular"
    GRID = "grid"
    RANDOM = "random"


# Inputs --------------------------------------------------------------------


@dataclass(frozen=True)
class GeoLocation(_Model):
    latitude: float
    longitude: float


@dataclass(frozen=True)
class BoundingBox(_Model):
    """Pixel-space box."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ReferenceObject(_Model):
    """Object of known real-world size visible in the photo.

    Parameters
    ----------
    kind : ReferenceKind
        What the object is.
    known_size : float
        Real-world size of the object's longest side in meters.
    bounding_box : BoundingBox
        Object extent in source-image pixels.
    """

    kind: ReferenceKind
    known_size: float
    bounding_box: BoundingBox


@dataclass(frozen=True)
class ImageMetadata(_Model):
    """Upload metadata carried alongside the image bytes."""

    filename: str = ""
    size: int = 0
    mime_type: str = ""
    location: GeoLocation | None = None
    device_make: str | None = None
    device_model: str | None = None
    orientation: int | None = None


@dataclass(frozen=True)
class ProcessingOptions(_Model):
    correct_orientation: bool = True
    resize_for_analysis: bool = False
    target_width: int | None = None
    target_height: int | None = None
    enhance_contrast: bool = False
    compression_quality: int | None = None


@dataclass(frozen=True)
class AreaEstimationOptions(_Model):
    use_reference_objects: bool = True
    pixel_to_meter_ratio: float | None = None


@dataclass(frozen=True)
class TerrainAnalysisOptions(_Model):
    enable_slope_analysis: bool = True
    enable_water_detection: bool = True
    enable_infrastructure_detection: bool = True


# Shared results --------------------------------------------------------------


@dataclass(frozen=True)
class ValidationResult(_Model):
    """Outcome of a precondition check; ``errors`` is empty when valid."""

    valid: bool
    errors: tuple[str, ...] = ()


# Quality ---------------------------------------------------------------------


@dataclass(frozen=True)
class MetricAssessment(_Model):
    score: float
    status: MetricStatus
    feedback: str


@dataclass(frozen=True)
class QualityIssue(_Model):
    type: IssueType
    severity: Severity
    description: str
    suggestion: str
    confidence: float


@dataclass(frozen=True)
class ImprovementSuggestions(_Model):
    immediate: tuple[str, ...] = ()
    technical: tuple[str, ...] = ()
    environmental: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualityAssessment(_Model):
    """Photo quality report with six scored metrics."""

    overall_score: float
    issues: tuple[QualityIssue, ...]
    usable_for_analysis: bool
    recommended_actions: tuple[str, ...]
    sharpness: MetricAssessment
    brightness: MetricAssessment
    contrast: MetricAssessment
    resolution: MetricAssessment
    color_balance: MetricAssessment
    noise: MetricAssessment
    improvement_suggestions: ImprovementSuggestions

    def metrics(self) -> dict[str, MetricAssessment]:
        """Metric name to assessment, in report order."""
        return {
            "sharpness": self.sharpness,
            "brightness": self.brightness,
            "contrast": self.contrast,
            "resolution": self.resolution,
            "color_balance": self.color_balance,
            "noise": self.noise,
        }


# Preprocessing ---------------------------------------------------------------


@dataclass(frozen=True)
class ProcessedMetrics(_Model):
    sharpness: float
    brightness: float
    contrast: float
    colorfulness: float


@dataclass(frozen=True)
class ProcessedImage(_Model):
    """Preprocessing result.

    ``to_dict`` reports byte sizes instead of the encoded payloads.
    """

    original: bytes
    processed: bytes
    raster: Raster
    metadata: ImageMetadata
    transforms: tuple[Transform, ...]
    metrics: ProcessedMetrics

    def to_dict(self) -> dict[str, Any]:
        """Plain representation with byte payloads reported as sizes."""
        return {
            "original_size": len(self.original),
            "processed_size": len(self.processed),
            "width": self.raster.width,
            "height": self.raster.height,
            "metadata": self.metadata.to_dict(),
            "transforms": [t.value for t in self.transforms],
            "metrics": self.metrics.to_dict(),
        }


# Area ------------------------------------------------------------------------


@dataclass(frozen=True)
class AreaBreakdown(_Model):
    """Land-type split of an estimate in square meters."""

    cultivable_area: float
    non_cultivable_area: float
    water_bodies: float
    infrastructure: float

    @property
    def total(self) -> float:
        """Sum of the four parts in square meters."""
        return (
            self.cultivable_area
            + self.non_cultivable_area
            + self.water_bodies
            + self.infrastructure
        )


@dataclass(frozen=True)
class AreaEstimate(_Model):
    """One land-area estimate.

    Parameters
    ----------
    total_area : float
        Estimated area in square meters.
    confidence : float
        Confidence in ``[0, 1]``.
    method : EstimationMethod
        Which estimator produced the total.
    breakdown : AreaBreakdown
        Land-type split of ``total_area``.
    degraded : Mapping[str, str]
        Sub-computation name to fallback reason, empty when nothing fell back.
    """

    total_area: float
    confidence: float
    method: EstimationMethod
    breakdown: AreaBreakdown
    degraded: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AreaEstimate:
        """Rebuild an estimate from ``to_dict`` output.

        Raises
        ------
        ValueError
            Raised when a required key is missing or the method is unknown.
        """
        try:
            breakdown = data["breakdown"]
            return cls(
                total_area=float(data["total_area"]),
                confidence=float(data["confidence"]),
                method=EstimationMethod(data["method"]),
                breakdown=AreaBreakdown(
                    cultivable_area=float(breakdown["cultivable_area"]),
                    non_cultivable_area=float(breakdown["non_cultivable_area"]),
                    water_bodies=float(breakdown["water_bodies"]),
                    infrastructure=float(breakdown["infrastructure"]),
                ),
                degraded=dict(data.get("degraded", {})),
            )
        except KeyError as exc:
            raise ValueError(f"area estimate is missing {exc}") from exc


# Terrain ---------------------------------------------------------------------


@dataclass(frozen=True)
class TerrainType(_Model):
    primary: TerrainPrimary
    slope: float
    drainage: Drainage
    accessibility: Accessibility


@dataclass(frozen=True)
class CropSuitability(_Model):
    crops: tuple[str, ...]
    score: float
    limitations: tuple[str, ...] = ()


@dataclass(frozen=True)
class LandZone(_Model):
    id: str
    type: ZoneType
    area: float
    boundaries: Polygon
    characteristics: tuple[str, ...]
    suitability: CropSuitability


@dataclass(frozen=True)
class WaterSource(_Model):
    type: WaterSourceType
    location: Point
    accessibility: WaterAccess


@dataclass(frozen=True)
class InfrastructureFeature(_Model):
    type: InfrastructureType
    condition: Condition
    location: Point


@dataclass(frozen=True)
class ColorDistribution(_Model):
    """Fraction of sampled pixels per land type."""

    vegetation: float = 0.0
    soil: float = 0.0
    water: float = 0.0
    infrastructure: float = 0.0
    rock: float = 0.0
    sand: float = 0.0


@dataclass(frozen=True)
class DominantColor(_Model):
    rgb: tuple[int, int, int]
    percentage: float
    land_type: LandType


@dataclass(frozen=True)
class ColorAnalysis(_Model):
    dominant_colors: tuple[DominantColor, ...]
    distribution: ColorDistribution


@dataclass(frozen=True)
class TexturePattern(_Model):
    type: PatternType
    strength: float
    direction: float | None = None


@dataclass(frozen=True)
class TextureAnalysis(_Model):
    roughness: float
    uniformity: float
    patterns: tuple[TexturePattern, ...] = ()


@dataclass(frozen=True, eq=False)
class SlopeAnalysis(_Model):
    """Slope statistics; ``slope_map`` holds normalized gradient magnitudes."""

    average_slope: float
    slope_variation: float
    slope_map: np.ndarray
    drainage_direction: DrainageDirection


@dataclass(frozen=True)
class TerrainClassification(_Model):
    """Terrain report.

    ``degraded`` maps each sub-analysis that fell back to the reason.
    """

    terrain_type: TerrainType
    zones: tuple[LandZone, ...]
    water_sources: tuple[WaterSource, ...]
    infrastructure: tuple[InfrastructureFeature, ...]
    degraded: Mapping[str, str] = field(default_factory=dict)
