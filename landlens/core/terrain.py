"""Terrain classification, zone identification and feature flags.

Color, texture and slope are analysed independently on small working rasters
and then combined into a terrain type, a list of land zones and threshold-based
water-source and infrastructure flags.

Zone polygons and feature locations are fixed illustrative shapes chosen per
category. They are not derived from where the matching pixels actually are.
"""

from __future__ import annotations

import numpy as np
from loguru import logger

from landlens.config import DEFAULT_CONFIG, TerrainThresholds
from landlens.core.models import (
    Accessibility,
    ColorAnalysis,
    ColorDistribution,
    Condition,
    CropSuitability,
    DominantColor,
    Drainage,
    DrainageDirection,
    ImageMetadata,
    InfrastructureFeature,
    InfrastructureType,
    LandType,
    LandZone,
    PatternType,
    SlopeAnalysis,
    TerrainAnalysisOptions,
    TerrainClassification,
    TerrainPrimary,
    TerrainType,
    TextureAnalysis,
    TexturePattern,
    WaterAccess,
    WaterSource,
    WaterSourceType,
    ZoneType,
)
from landlens.core.outcome import Degraded, Ok, guard
from landlens.utils.geometry import Point, rectangle
from landlens.utils.parallel import fan_out
from landlens.utils.raster import Raster, decode_raster


def classify_color_to_land_type(
    r: int, g: int, b: int, thresholds: TerrainThresholds | None = None
) -> LandType:
    """Map one RGB color to a land type; the first matching rule wins.

    Examples
    --------
    >>> classify_color_to_land_type(0, 200, 0)
    <LandType.VEGETATION: 'vegetation'>
    """
    t = thresholds or DEFAULT_CONFIG.terrain
    r, g, b = int(r), int(g), int(b)
    if g > r and g > b and g > t.vegetation_min_green:
        return LandType.VEGETATION
    if b > r and b > g and b > t.water_min_blue:
        return LandType.WATER
    if r > t.soil_min_red and g > t.soil_min_green and b < t.soil_max_blue and r > b:
        return LandType.SOIL
    if abs(r - g) < t.gray_max_spread and abs(g - b) < t.gray_max_spread and r > t.gray_min_red:
        return LandType.INFRASTRUCTURE
    sand_r, sand_g, sand_b = t.sand_min_rgb
    if r > sand_r and g > sand_g and b > sand_b and r + g + b > t.sand_min_sum:
        return LandType.SAND
    if max(r, g, b) < t.rock_max_channel:
        return LandType.ROCK
    return LandType.SOIL


def _grey_plane(raster: Raster, size: tuple[int, int]) -> np.ndarray:
    return raster.greyscale().resize(*size).as_float()[:, :, 0]


def determine_drainage_direction(
    slope_map: np.ndarray, min_votes: int = 10
) -> DrainageDirection:
    """Cardinal direction with the most strictly steeper neighbours.

    Votes are counted over the interior of ``slope_map``. Ties resolve in the
    order north, south, east, west; fewer than ``min_votes`` gives ``flat``.
    """
    if slope_map.shape[0] < 3 or slope_map.shape[1] < 3:
        return DrainageDirection.FLAT
    center = slope_map[1:-1, 1:-1]
    votes = {
        DrainageDirection.NORTH: int((slope_map[:-2, 1:-1] > center).sum()),
        DrainageDirection.SOUTH: int((slope_map[2:, 1:-1] > center).sum()),
        DrainageDirection.EAST: int((slope_map[1:-1, 2:] > center).sum()),
        DrainageDirection.WEST: int((slope_map[1:-1, :-2] > center).sum()),
    }
    max_votes = max(votes.values())
    if max_votes < min_votes:
        return DrainageDirection.FLAT
    for direction, count in votes.items():
        if count == max_votes:
            return direction
    return DrainageDirection.FLAT


def _zone_crops(vegetation: float, t: TerrainThresholds) -> tuple[str, ...]:
    crops = ["rice", "wheat", "vegetables"]
    if vegetation > t.broad_crop_vegetation:
        crops += ["sugarcane", "cotton", "pulses"]
    if vegetation > t.wide_crop_vegetation:
        crops += ["fruit_trees", "cash_crops"]
    return tuple(crops)


class TerrainClassifier:
    """Classify terrain and identify land zones from one photo.

    Parameters
    ----------
    thresholds : TerrainThresholds, optional
        Color rules, texture and slope cutoffs, zone minimums.
    max_workers : int, optional
        Thread count for the sub-analysis fan-out.
    """

    def __init__(self, thresholds: TerrainThresholds | None = None, max_workers: int | None = None):
        self.thresholds = thresholds or DEFAULT_CONFIG.terrain
        self.max_workers = max_workers

    def classify_terrain(
        self,
        image: Raster | bytes,
        metadata: ImageMetadata | None = None,
        options: TerrainAnalysisOptions | None = None,
        parallel: bool = True,
    ) -> TerrainClassification:
        """Run color, texture and slope analyses and combine them.

        Parameters
        ----------
        image : Raster | bytes
            Decoded raster or encoded image bytes.
        metadata : ImageMetadata, optional
            Accepted for interface symmetry with the area estimator.
        options : TerrainAnalysisOptions, optional
            Switches for slope analysis and water / infrastructure detection.
        parallel : bool
            Run the sub-analyses on a thread pool.

        Returns
        -------
        TerrainClassification
            Always returned. A raster that cannot be decoded or is empty gives
            the fallback classification; a failed sub-analysis only replaces
            its own result and is listed in ``degraded``.
        """
        options = options or TerrainAnalysisOptions()
        decoded = guard(
            "terrain raster decode",
            lambda: decode_raster(image) if isinstance(image, bytes) else image,
            lambda: None,
        )
        raster = decoded.value
        if raster is None or raster.is_empty:
            reason = decoded.reason if isinstance(decoded, Degraded) else "raster is empty"
            logger.warning(f"Terrain classification using fallback: {reason}")
            return self._fallback_classification({"raster": reason})

        tasks = {
            "color": lambda: guard(
                "color analysis",
                lambda: self.analyze_colors(raster),
                self._fallback_color_analysis,
            ),
            "texture": lambda: guard(
                "texture analysis",
                lambda: self.analyze_texture(raster),
                lambda: TextureAnalysis(roughness=0.5, uniformity=0.5),
            ),
        }
        if options.enable_slope_analysis:
            tasks["slope"] = lambda: guard(
                "slope analysis",
                lambda: self.analyze_slope_and_drainage(raster),
                self._fallback_slope_analysis,
            )
        outcomes = fan_out(tasks, max_workers=self.max_workers, parallel=parallel)
        degraded = {
            name: outcome.reason
            for name, outcome in outcomes.items()
            if isinstance(outcome, Degraded)
        }

        colors: ColorAnalysis = outcomes["color"].value
        texture: TextureAnalysis = outcomes["texture"].value
        slope_outcome = outcomes.get("slope", Ok(None))
        slope: SlopeAnalysis | None = slope_outcome.value

        terrain_type = self.classify_terrain_type(colors, texture, slope)
        zones = self.identify_zones(colors)
        water_sources = (
            self.detect_water_sources(colors) if options.enable_water_detection else ()
        )
        infrastructure = (
            self.detect_infrastructure(colors, texture)
            if options.enable_infrastructure_detection
            else ()
        )
        logger.debug(
            f"Terrain {terrain_type.primary.value} at {terrain_type.slope:.2f} deg, "
            f"{len(zones)} zone(s), {len(water_sources)} water source(s), "
            f"{len(infrastructure)} infrastructure feature(s)"
        )
        return TerrainClassification(
            terrain_type=terrain_type,
            zones=zones,
            water_sources=water_sources,
            infrastructure=infrastructure,
            degraded=degraded,
        )

    # -- sub-analyses ---------------------------------------------------------

    def analyze_colors(self, raster: Raster) -> ColorAnalysis:
        """Quantized color histogram mapped to land-type fractions.

        Only buckets holding more than ``min_color_share`` of the pixels count
        toward the distribution.
        """
        t = self.thresholds
        pixels = raster.rgb().resize(*t.color_size).pixels.reshape(-1, 3)
        total_pixels = pixels.shape[0]
        step = t.quantization_step
        quantized = (pixels // step) * step
        buckets, counts = np.unique(quantized, axis=0, return_counts=True)

        shares = {land_type: 0 for land_type in LandType}
        dominant: list[DominantColor] = []
        for bucket, count in zip(buckets, counts):
            percentage = count / total_pixels
            if percentage <= t.min_color_share:
                continue
            r, g, b = (int(v) for v in bucket)
            land_type = classify_color_to_land_type(r, g, b, t)
            shares[land_type] += int(count)
            dominant.append(DominantColor((r, g, b), float(percentage), land_type))

        dominant.sort(key=lambda c: c.percentage, reverse=True)
        distribution = ColorDistribution(
            **{land_type.value: shares[land_type] / total_pixels for land_type in LandType}
        )
        return ColorAnalysis(
            dominant_colors=tuple(dominant[: t.dominant_color_count]),
            distribution=distribution,
        )

    def analyze_texture(self, raster: Raster) -> TextureAnalysis:
        """Mean 8-neighbour difference as roughness, its complement as uniformity."""
        t = self.thresholds
        grey = _grey_plane(raster, t.texture_size)
        height, width = grey.shape
        center = grey[1:-1, 1:-1]
        variation = np.zeros_like(center)
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dy == 0 and dx == 0:
                    continue
                neighbour = grey[1 + dy:height - 1 + dy, 1 + dx:width - 1 + dx]
                variation += np.abs(neighbour - center)
        local = variation / 8.0

        roughness = float(min(1.0, local.mean() / 255.0))
        uniformity = float(min(1.0, (255.0 - local).mean() / 255.0))
        return TextureAnalysis(
            roughness=roughness,
            uniformity=uniformity,
            patterns=self.detect_basic_patterns(grey),
        )

    def detect_basic_patterns(self, grey: np.ndarray) -> tuple[TexturePattern, ...]:
        """Linear or random patterns from central-difference edge counts."""
        t = self.thresholds
        h_grad = np.abs(grey[1:-1, :-2] - grey[1:-1, 2:])
        v_grad = np.abs(grey[:-2, 1:-1] - grey[2:, 1:-1])
        h_edges = h_grad > t.edge_gradient_threshold
        v_edges = v_grad > t.edge_gradient_threshold
        total_edges = int((h_edges | v_edges).sum())
        if total_edges == 0:
            return ()

        h_ratio = float(h_edges.sum() / total_edges)
        v_ratio = float(v_edges.sum() / total_edges)
        patterns: list[TexturePattern] = []
        if h_ratio > t.linear_dominance:
            patterns.append(TexturePattern(PatternType.LINEAR, h_ratio, 0.0))
        if v_ratio > t.linear_dominance:
            patterns.append(TexturePattern(PatternType.LINEAR, v_ratio, 90.0))
        if h_ratio < t.random_ceiling and v_ratio < t.random_ceiling:
            patterns.append(TexturePattern(PatternType.RANDOM, 1.0 - max(h_ratio, v_ratio)))
        return tuple(patterns)

    def analyze_slope_and_drainage(self, raster: Raster) -> SlopeAnalysis:
        """Brightness gradient as a slope proxy.

        Raises
        ------
        ValueError
            Raised when the working raster has no interior pixels.
        """
        t = self.thresholds
        grey = _grey_plane(raster, t.slope_size)
        if grey.shape[0] < 3 or grey.shape[1] < 3:
            raise ValueError("slope raster has no interior pixels")
        gx = grey[1:-1, 2:] - grey[1:-1, :-2]
        gy = grey[2:, 1:-1] - grey[:-2, 1:-1]
        slope_map = np.hypot(gx, gy) / 255.0
        return SlopeAnalysis(
            average_slope=float(slope_map.mean() * t.slope_degree_scale),
            slope_variation=float(slope_map.std()),
            slope_map=slope_map,
            drainage_direction=determine_drainage_direction(slope_map, t.min_drainage_votes),
        )

    # -- classification -------------------------------------------------------

    def classify_terrain_type(
        self,
        colors: ColorAnalysis,
        texture: TextureAnalysis,
        slope: SlopeAnalysis | None,
    ) -> TerrainType:
        """Combine the sub-analyses into primary type, drainage and access.

        Parameters
        ----------
        colors : ColorAnalysis
            Land-type distribution; its water share drives drainage.
        texture : TextureAnalysis
            Roughness and uniformity for the accessibility rating.
        slope : SlopeAnalysis or None
            ``None`` when slope analysis is disabled, treated as 0 degrees.

        Returns
        -------
        TerrainType
            Primary category from the slope breakpoints plus drainage and
            accessibility ratings.
        """
        t = self.thresholds
        degrees = slope.average_slope if slope is not None else 0.0
        flat_below, valley_below, hilly_below = t.slope_breakpoints
        if degrees < flat_below:
            primary = TerrainPrimary.FLAT
        elif degrees < valley_below:
            primary = TerrainPrimary.VALLEY
        elif degrees < hilly_below:
            primary = TerrainPrimary.HILLY
        else:
            primary = TerrainPrimary.MOUNTAINOUS

        water = colors.distribution.water
        if water > t.poor_drainage_water:
            drainage = Drainage.POOR
        elif water > t.moderate_drainage_water:
            drainage = Drainage.MODERATE
        elif degrees > t.good_drainage_slope:
            drainage = Drainage.GOOD
        else:
            drainage = Drainage.MODERATE

        if degrees < t.easy_access_slope and texture.uniformity > t.easy_access_uniformity:
            accessibility = Accessibility.EASY
        elif degrees < t.moderate_access_slope and texture.roughness < t.moderate_access_roughness:
            accessibility = Accessibility.MODERATE
        else:
            accessibility = Accessibility.DIFFICULT

        return TerrainType(primary, degrees, drainage, accessibility)

    def identify_zones(self, colors: ColorAnalysis) -> tuple[LandZone, ...]:
        """One zone per land category above its minimum fraction.

        Polygons are fixed per zone type. With no qualifying category the
        fallback cultivable zone is returned.
        """
        # polygons are fixed per zone type, not traced from the color masks
        t = self.thresholds
        dist = colors.distribution
        zones: list[LandZone] = []

        def add(zone_type, area, bounds, characteristics, suitability):
            zones.append(LandZone(
                id=f"zone_{len(zones) + 1}",
                type=zone_type,
                area=float(area),
                boundaries=rectangle(*bounds),
                characteristics=characteristics,
                suitability=suitability,
            ))

        if dist.vegetation > t.cultivable_zone_vegetation:
            limitations = ("seasonal_flooding_risk",) if dist.water > t.flooding_risk_water else ()
            add(
                ZoneType.CULTIVABLE,
                dist.vegetation * t.reference_area,
                (0.1, 0.1, 0.8, 0.6),
                ("fertile_soil", "good_vegetation_cover", "suitable_for_crops"),
                CropSuitability(
                    crops=_zone_crops(dist.vegetation, t),
                    score=min(0.9, dist.vegetation * 2),
                    limitations=limitations,
                ),
            )
        if dist.water > t.water_zone_fraction:
            add(
                ZoneType.WATER_BODY,
                dist.water * t.reference_area,
                (0.1, 0.7, 0.4, 0.9),
                ("permanent_water", "irrigation_source"),
                CropSuitability(("fish_farming", "lotus", "water_chestnuts"), 0.9),
            )
        if dist.infrastructure > t.residential_zone_infrastructure:
            add(
                ZoneType.RESIDENTIAL,
                dist.infrastructure * t.reference_area,
                (0.6, 0.1, 0.9, 0.3),
                ("built_structures", "access_roads"),
                CropSuitability((), 0.1, ("built_area", "not_suitable_for_cultivation")),
            )
        if dist.rock + dist.sand > t.barren_zone_fraction:
            add(
                ZoneType.BARREN,
                (dist.rock + dist.sand) * t.reference_area,
                (0.5, 0.5, 0.9, 0.9),
                ("rocky_terrain", "poor_soil", "low_fertility"),
                CropSuitability(
                    ("drought_resistant_crops", "medicinal_plants"),
                    0.3,
                    ("poor_soil_quality", "water_scarcity", "difficult_cultivation"),
                ),
            )
        return tuple(zones) if zones else self._fallback_zones()

    def detect_water_sources(self, colors: ColorAnalysis) -> tuple[WaterSource, ...]:
        """At most one water source chosen by the water fraction.

        Parameters
        ----------
        colors : ColorAnalysis
            Color analysis of the photo.

        Returns
        -------
        tuple[WaterSource, ...]
            A pond, well or canal at a fixed location, or empty when water
            covers too little of the photo.
        """
        t = self.thresholds
        water = colors.distribution.water
        if water <= t.water_source_fraction:
            return ()
        if water > t.pond_fraction:
            return (WaterSource(WaterSourceType.POND, Point(0.3, 0.7), WaterAccess.DIRECT),)
        if water > t.well_fraction:
            return (WaterSource(WaterSourceType.WELL, Point(0.5, 0.5), WaterAccess.DIRECT),)
        return (WaterSource(WaterSourceType.CANAL, Point(0.8, 0.2), WaterAccess.NEARBY),)

    def detect_infrastructure(
        self, colors: ColorAnalysis, texture: TextureAnalysis
    ) -> tuple[InfrastructureFeature, ...]:
        """Road and building flags from gray coverage and texture.

        Parameters
        ----------
        colors : ColorAnalysis
            Supplies the infrastructure fraction.
        texture : TextureAnalysis
            A strong linear pattern suggests a road; high uniformity a building.

        Returns
        -------
        tuple[InfrastructureFeature, ...]
            Zero, one or two features at fixed locations.
        """
        t = self.thresholds
        infrastructure = colors.distribution.infrastructure
        features: list[InfrastructureFeature] = []
        has_linear = any(
            p.type is PatternType.LINEAR and p.strength > t.road_pattern_strength
            for p in texture.patterns
        )
        if has_linear and infrastructure > t.road_infrastructure:
            features.append(
                InfrastructureFeature(InfrastructureType.ROAD, Condition.FAIR, Point(0.0, 0.5))
            )
        if infrastructure > t.building_infrastructure and texture.uniformity > t.building_uniformity:
            features.append(
                InfrastructureFeature(InfrastructureType.BUILDING, Condition.GOOD, Point(0.7, 0.2))
            )
        return tuple(features)

    # -- fallbacks ------------------------------------------------------------

    def _fallback_zones(self) -> tuple[LandZone, ...]:
        return (
            LandZone(
                id="zone_1",
                type=ZoneType.CULTIVABLE,
                area=self.thresholds.fallback_zone_area,
                boundaries=rectangle(0.1, 0.1, 0.9, 0.8),
                characteristics=("mixed_terrain", "moderate_fertility"),
                suitability=CropSuitability(
                    ("rice", "wheat", "vegetables"), 0.6, ("requires_soil_testing",)
                ),
            ),
        )

    def _fallback_color_analysis(self) -> ColorAnalysis:
        return ColorAnalysis(
            dominant_colors=(
                DominantColor((100, 150, 80), 0.4, LandType.VEGETATION),
                DominantColor((120, 90, 60), 0.3, LandType.SOIL),
                DominantColor((80, 100, 140), 0.1, LandType.WATER),
            ),
            distribution=ColorDistribution(
                vegetation=0.4, soil=0.3, water=0.1, infrastructure=0.1, rock=0.05, sand=0.05
            ),
        )

    def _fallback_slope_analysis(self) -> SlopeAnalysis:
        return SlopeAnalysis(
            average_slope=self.thresholds.fallback_slope,
            slope_variation=0.1,
            slope_map=np.zeros((0, 0)),
            drainage_direction=DrainageDirection.FLAT,
        )

    def _fallback_classification(self, degraded: dict[str, str]) -> TerrainClassification:
        return TerrainClassification(
            terrain_type=TerrainType(
                TerrainPrimary.FLAT,
                self.thresholds.fallback_slope,
                Drainage.MODERATE,
                Accessibility.MODERATE,
            ),
            zones=self._fallback_zones(),
            water_sources=(),
            infrastructure=(),
            degraded=degraded,
        )

    # -- advice ---------------------------------------------------------------

    def get_terrain_recommendations(
        self, classification: TerrainClassification
    ) -> tuple[str, ...]:
        """Farming advice for a terrain classification.

        Parameters
        ----------
        classification : TerrainClassification
            Result of ``classify_terrain``.

        Returns
        -------
        tuple[str, ...]
            Recommendations on erosion, drainage, zoning, water and access.
        """
        recommendations: list[str] = []
        terrain = classification.terrain_type
        if terrain.slope > 10:
            recommendations.append("Consider contour farming to prevent soil erosion")
            recommendations.append("Install terracing for steep slopes")

        if terrain.drainage is Drainage.POOR:
            recommendations.append("Install drainage systems before monsoon season")
            recommendations.append("Consider crops that tolerate waterlogging")
        elif terrain.drainage is Drainage.EXCELLENT:
            recommendations.append("Implement water conservation measures")
            recommendations.append("Consider drip irrigation systems")

        cultivable = [z for z in classification.zones if z.type is ZoneType.CULTIVABLE]
        if len(cultivable) > 1:
            recommendations.append("Plan crop rotation across different zones")
            recommendations.append("Consider zone-specific fertilization strategies")

        if classification.water_sources:
            recommendations.append("Utilize available water sources for irrigation")
            if any(w.type is WaterSourceType.POND for w in classification.water_sources):
                recommendations.append("Consider fish farming in pond areas")
        else:
            recommendations.append("Consider rainwater harvesting systems")
            recommendations.append("Explore groundwater potential for irrigation")

        if not classification.infrastructure:
            recommendations.append("Plan access roads for better connectivity")
        return tuple(recommendations)
