"""Threshold configuration for the LandLens analysis engines.

Every classification boundary used by the engines lives in one of the frozen
structures below. Engines receive them through their constructor, so tests can
swap thresholds without touching algorithm code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from loguru import logger


@dataclass(frozen=True)
class QualityThresholds:
    """Constants for the photo quality analyzer."""

    sharpness_divisor: float = 10000.0
    sharpness_levels: tuple[float, float, float] = (0.8, 0.6, 0.4)
    brightness_excellent: tuple[float, float] = (0.4, 0.7)
    brightness_good: tuple[float, float] = (0.3, 0.8)
    brightness_fair: tuple[float, float] = (0.2, 0.9)
    brightness_dark: float = 0.3
    contrast_divisor: float = 128.0
    contrast_levels: tuple[float, float, float] = (0.7, 0.5, 0.3)
    color_balance_divisor: float = 128.0
    color_balance_levels: tuple[float, float, float] = (0.8, 0.6, 0.4)
    grayscale_color_balance: float = 0.5
    noise_blur_sigma: float = 0.5
    noise_divisor: float = 50.0
    noise_levels: tuple[float, float, float] = (0.8, 0.6, 0.4)
    # (minimum pixel count, score), checked top-down.
    resolution_steps: tuple[tuple[int, float], ...] = (
        (8_000_000, 1.0),
        (5_000_000, 0.9),
        (3_000_000, 0.8),
        (2_000_000, 0.7),
        (1_000_000, 0.6),
        (500_000, 0.4),
    )
    resolution_floor: float = 0.2
    resolution_levels: tuple[float, float, float] = (0.9, 0.7, 0.5)
    usable_overall: float = 0.4
    usable_sharpness: float = 0.3
    usable_resolution: float = 0.4


@dataclass(frozen=True)
class PreprocessLimits:
    """Upload validation bounds and preprocessing defaults."""

    max_file_size: int = 10 * 1024 * 1024
    supported_formats: tuple[str, ...] = ("jpeg", "jpg", "png", "webp", "tiff")
    min_width: int = 640
    min_height: int = 480
    max_width: int = 4096
    max_height: int = 4096
    default_target_width: int = 1024
    default_target_height: int = 768
    thumbnail_size: int = 200
    thumbnail_quality: int = 80


@dataclass(frozen=True)
class AreaThresholds:
    """Constants for the area estimation engine."""

    default_pixel_to_meter_ratio: float = 0.1
    min_ratio: float = 0.01
    max_ratio: float = 1.0
    boundary_working_size: tuple[int, int] = (512, 384)
    edge_magnitude_threshold: float = 50.0
    min_edge_points: int = 10
    default_boundary: tuple[float, float, float, float] = (0.1, 0.1, 0.9, 0.9)
    min_area: float = 100.0
    max_area: float = 1_000_000.0
    reference_base_confidence: float = 0.6
    reference_confidence_step: float = 0.1
    reference_max_confidence: float = 0.9
    reference_priority_confidence: float = 0.4
    edge_confidence: float = 0.6
    heuristic_area: float = 5000.0
    heuristic_confidence: float = 0.4
    heuristic_large_image_pixels: int = 2_000_000
    heuristic_large_image_factor: float = 1.5
    heuristic_confidence_step: float = 0.1
    heuristic_max_confidence: float = 0.8
    fallback_area: float = 3000.0
    fallback_confidence: float = 0.3
    # cultivable, non-cultivable, water, infrastructure
    fallback_split: tuple[float, float, float, float] = (0.75, 0.15, 0.05, 0.05)
    breakdown_size: tuple[int, int] = (256, 256)
    min_cultivable_fraction: float = 0.6
    soil_cultivable_weight: float = 0.8
    vegetation_min_green: int = 100
    water_min_blue: int = 80
    soil_min_red: int = 100
    soil_min_green: int = 80
    soil_max_blue: int = 80
    gray_max_spread: int = 20
    gray_min_red: int = 120
    min_valid_confidence: float = 0.3
    breakdown_tolerance: float = 0.1


@dataclass(frozen=True)
class TerrainThresholds:
    """Constants for the terrain classification engine."""

    color_size: tuple[int, int] = (256, 256)
    texture_size: tuple[int, int] = (128, 128)
    slope_size: tuple[int, int] = (64, 64)
    quantization_step: int = 32
    min_color_share: float = 0.01
    dominant_color_count: int = 10
    vegetation_min_green: int = 80
    water_min_blue: int = 60
    soil_min_red: int = 80
    soil_min_green: int = 60
    soil_max_blue: int = 80
    gray_max_spread: int = 30
    gray_min_red: int = 100
    sand_min_rgb: tuple[int, int, int] = (150, 140, 100)
    sand_min_sum: int = 450
    rock_max_channel: int = 80
    edge_gradient_threshold: float = 30.0
    linear_dominance: float = 0.6
    random_ceiling: float = 0.4
    slope_degree_scale: float = 45.0
    min_drainage_votes: int = 10
    # upper slope bounds in degrees for flat, valley, hilly; above is mountainous
    slope_breakpoints: tuple[float, float, float] = (2.0, 8.0, 15.0)
    poor_drainage_water: float = 0.1
    moderate_drainage_water: float = 0.05
    good_drainage_slope: float = 5.0
    easy_access_slope: float = 3.0
    easy_access_uniformity: float = 0.6
    moderate_access_slope: float = 10.0
    moderate_access_roughness: float = 0.7
    reference_area: float = 10000.0
    cultivable_zone_vegetation: float = 0.2
    water_zone_fraction: float = 0.03
    residential_zone_infrastructure: float = 0.05
    barren_zone_fraction: float = 0.1
    broad_crop_vegetation: float = 0.6
    wide_crop_vegetation: float = 0.8
    flooding_risk_water: float = 0.1
    water_source_fraction: float = 0.02
    pond_fraction: float = 0.1
    well_fraction: float = 0.05
    road_pattern_strength: float = 0.5
    road_infrastructure: float = 0.03
    building_infrastructure: float = 0.08
    building_uniformity: float = 0.6
    fallback_slope: float = 2.0
    fallback_zone_area: float = 7500.0


@dataclass(frozen=True)
class AnalysisConfig:
    """Aggregate threshold set for all engines."""

    quality: QualityThresholds = field(default_factory=QualityThresholds)
    preprocess: PreprocessLimits = field(default_factory=PreprocessLimits)
    area: AreaThresholds = field(default_factory=AreaThresholds)
    terrain: TerrainThresholds = field(default_factory=TerrainThresholds)


DEFAULT_CONFIG = AnalysisConfig()


def _merge_section(section: Any, overrides: dict[str, Any], name: str) -> Any:
    """Apply JSON overrides to one frozen threshold section."""
    known = {f.name: f for f in fields(section)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ValueError(f"unknown {name} settings: {', '.join(unknown)}")
    converted: dict[str, Any] = {}
    for key, value in overrides.items():
        default_value = getattr(section, key)
        if isinstance(default_value, tuple):
            converted[key] = tuple(
                tuple(item) if isinstance(item, list) else item for item in value
            )
        else:
            converted[key] = value
    return replace(section, **converted)


def load_config(config_file: str | Path | None = None) -> AnalysisConfig:
    """Load threshold overrides from a JSON file.

    Parameters
    ----------
    config_file : str | Path | None
        JSON document shaped ``{"quality": {...}, "area": {...}, ...}``.
        ``None`` or a missing path returns the defaults.

    Returns
    -------
    AnalysisConfig
        Defaults with the file's overrides applied.

    Raises
    ------
    ValueError
        Raised when the document names an unknown section or setting.
    """
    if config_file is None:
        return DEFAULT_CONFIG
    config_path = Path(config_file)
    if not config_path.exists():
        logger.warning(f"Config file not found, using defaults: {config_path}")
        return DEFAULT_CONFIG
    with config_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("config document must be a JSON object")

    sections = {f.name: getattr(DEFAULT_CONFIG, f.name) for f in fields(AnalysisConfig)}
    unknown = sorted(set(data) - set(sections))
    if unknown:
        raise ValueError(f"unknown config sections: {', '.join(unknown)}")
    merged = {
        name: _merge_section(section, data.get(name, {}), name)
        for name, section in sections.items()
    }
    logger.info(f"Loaded analysis config overrides from {config_path}")
    return AnalysisConfig(**merged)
