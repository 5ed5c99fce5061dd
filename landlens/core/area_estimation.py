"""Land area estimation from a single photo.

Three independent estimators each propose an ``AreaEstimate``:

1. reference objects of known size give a pixel-to-meter ratio applied to the
   detected field boundary,
2. the detected field boundary with a default ratio,
3. a resolution heuristic that ignores geometry.

A reference-object candidate with confidence above 0.4 always wins; otherwise
the most confident candidate does. The land-type breakdown is computed from
pixel colors independently of the winner.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from loguru import logger
from scipy import ndimage

from landlens.config import DEFAULT_CONFIG, AreaThresholds
from landlens.core.models import (
    AreaBreakdown,
    AreaEstimate,
    AreaEstimationOptions,
    EstimationMethod,
    ImageMetadata,
    ReferenceObject,
    ValidationResult,
)
from landlens.core.outcome import Degraded, guard
from landlens.utils.geometry import Polygon, bounding_rectangle, polygon_area, rectangle
from landlens.utils.parallel import fan_out
from landlens.utils.raster import Raster, decode_raster

_EMPTY_BREAKDOWN = AreaBreakdown(0.0, 0.0, 0.0, 0.0)


def _no_candidate(method: EstimationMethod) -> AreaEstimate:
    return AreaEstimate(0.0, 0.0, method, _EMPTY_BREAKDOWN)


def _rgb_planes(raster: Raster) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    pixels = raster.rgb().pixels.astype(np.int16)
    return pixels[:, :, 0], pixels[:, :, 1], pixels[:, :, 2]


class AreaEstimator:
    """Estimate field area in square meters.

    Parameters
    ----------
    thresholds : AreaThresholds, optional
        Ratios, confidences, color rules and validation bounds.
    max_workers : int, optional
        Thread count for the estimator fan-out.
    """

    def __init__(self, thresholds: AreaThresholds | None = None, max_workers: int | None = None):
        self.thresholds = thresholds or DEFAULT_CONFIG.area
        self.max_workers = max_workers

    def estimate_area(
        self,
        image: Raster | bytes,
        metadata: ImageMetadata | None = None,
        reference_objects: Sequence[ReferenceObject] | None = None,
        options: AreaEstimationOptions | None = None,
        parallel: bool = True,
    ) -> AreaEstimate:
        """Run all estimators, select one and attach the breakdown.

        Parameters
        ----------
        image : Raster | bytes
            Decoded raster or encoded image bytes.
        metadata : ImageMetadata, optional
            GPS location raises the heuristic confidence.
        reference_objects : Sequence[ReferenceObject], optional
            Objects of known size visible in the photo.
        options : AreaEstimationOptions, optional
            Reference-object switch and pixel-to-meter override.
        parallel : bool
            Run the estimators on a thread pool.

        Returns
        -------
        AreaEstimate
            Always returned; ``total_area`` is at least 100 m² and
            ``degraded`` names every step that fell back.
        """
        options = options or AreaEstimationOptions()
        reference_objects = tuple(reference_objects or ())
        t = self.thresholds

        decoded = guard(
            "area raster decode",
            lambda: decode_raster(image) if isinstance(image, bytes) else image,
            lambda: None,
        )
        raster = decoded.value
        if raster is None or raster.is_empty:
            reason = decoded.reason if isinstance(decoded, Degraded) else "raster is empty"
            logger.warning(f"Area estimation using fallback: {reason}")
            return self._fallback_estimate(degraded={"raster": reason})

        tasks = {
            "reference_object": lambda: guard(
                "reference object estimator",
                lambda: self.estimate_by_reference_objects(raster, reference_objects, options),
                lambda: _no_candidate(EstimationMethod.REFERENCE_OBJECT),
            ),
            "edge_boundary": lambda: guard(
                "edge boundary estimator",
                lambda: self.estimate_by_edge_boundary(raster, options),
                lambda: _no_candidate(EstimationMethod.VISUAL_ESTIMATION),
            ),
            "heuristic": lambda: guard(
                "heuristic estimator",
                lambda: self.estimate_by_image_dimensions(raster, metadata),
                lambda: _no_candidate(EstimationMethod.VISUAL_ESTIMATION),
            ),
        }
        outcomes = fan_out(tasks, max_workers=self.max_workers, parallel=parallel)
        degraded = {
            name: outcome.reason
            for name, outcome in outcomes.items()
            if isinstance(outcome, Degraded)
        }

        best = self.select_best_estimation([o.value for o in outcomes.values()])
        total_area = max(t.min_area, best.total_area)

        breakdown_outcome = guard(
            "area breakdown",
            lambda: self.calculate_area_breakdown(raster, total_area),
            lambda: self._split_breakdown(total_area, t.fallback_split),
        )
        if isinstance(breakdown_outcome, Degraded):
            degraded["breakdown"] = breakdown_outcome.reason

        logger.debug(
            f"Selected {best.method.value} estimate {total_area:.0f} m² "
            f"(confidence {best.confidence:.2f})"
        )
        return AreaEstimate(
            total_area=total_area,
            confidence=best.confidence,
            method=best.method,
            breakdown=breakdown_outcome.value,
            degraded=degraded,
        )

    # -- estimators -----------------------------------------------------------

    def estimate_by_reference_objects(
        self,
        raster: Raster,
        reference_objects: Sequence[ReferenceObject],
        options: AreaEstimationOptions | None = None,
    ) -> AreaEstimate:
        """Boundary area scaled by the reference-object ratio.

        Returns a zero-confidence candidate when no objects are supplied or
        ``options.use_reference_objects`` is off.
        """
        options = options or AreaEstimationOptions()
        if not reference_objects or not options.use_reference_objects:
            return _no_candidate(EstimationMethod.REFERENCE_OBJECT)
        t = self.thresholds

        ratio = self.calculate_pixel_to_meter_ratio(reference_objects)
        boundary = self.detect_field_boundary(raster)
        area = self._boundary_area(boundary, ratio)
        confidence = min(
            t.reference_max_confidence,
            t.reference_base_confidence + t.reference_confidence_step * len(reference_objects),
        )
        return AreaEstimate(
            total_area=float(round(max(t.min_area, area))),
            confidence=confidence,
            method=EstimationMethod.REFERENCE_OBJECT,
            breakdown=_EMPTY_BREAKDOWN,
        )

    def estimate_by_edge_boundary(
        self, raster: Raster, options: AreaEstimationOptions | None = None
    ) -> AreaEstimate:
        """Boundary area scaled by the configured or default ratio.

        The polygon area is in frame-fraction units, so at the default
        0.1 m/px the candidate rounds to zero and is discarded at selection.
        """
        options = options or AreaEstimationOptions()
        boundary = self.detect_field_boundary(raster)
        if len(boundary) < 3:
            return _no_candidate(EstimationMethod.VISUAL_ESTIMATION)
        ratio = options.pixel_to_meter_ratio or self.thresholds.default_pixel_to_meter_ratio
        area = self._boundary_area(boundary, ratio)
        return AreaEstimate(
            total_area=float(round(area)),
            confidence=self.thresholds.edge_confidence,
            method=EstimationMethod.VISUAL_ESTIMATION,
            breakdown=_EMPTY_BREAKDOWN,
        )

    def estimate_by_image_dimensions(
        self, raster: Raster, metadata: ImageMetadata | None = None
    ) -> AreaEstimate:
        """Fixed-size guess nudged by resolution and GPS presence."""
        t = self.thresholds
        area = t.heuristic_area
        confidence = t.heuristic_confidence
        if metadata is not None and metadata.location is not None:
            confidence += t.heuristic_confidence_step
        if raster.pixel_count > t.heuristic_large_image_pixels:
            area = float(round(area * t.heuristic_large_image_factor))
            confidence += t.heuristic_confidence_step
        return AreaEstimate(
            total_area=area,
            confidence=min(confidence, t.heuristic_max_confidence),
            method=EstimationMethod.VISUAL_ESTIMATION,
            breakdown=_EMPTY_BREAKDOWN,
        )

    # -- geometry -------------------------------------------------------------

    def calculate_pixel_to_meter_ratio(
        self, reference_objects: Sequence[ReferenceObject]
    ) -> float:
        """Average ``known_size / max(box side)`` clamped to the ratio bounds.

        Objects without a positive size and box are skipped; with none left the
        default ratio is returned.
        """
        t = self.thresholds
        ratios = []
        for obj in reference_objects:
            pixel_size = max(obj.bounding_box.width, obj.bounding_box.height)
            if pixel_size > 0 and obj.known_size > 0:
                ratios.append(obj.known_size / pixel_size)
        if not ratios:
            return t.default_pixel_to_meter_ratio
        return float(np.clip(np.mean(ratios), t.min_ratio, t.max_ratio))

    def detect_field_boundary(self, raster: Raster) -> Polygon:
        """Bounding rectangle of strong Sobel edges, in frame fractions.

        The raster is converted to greyscale and resampled to the working size.
        Interior pixels with gradient magnitude above the threshold are edge
        points. With more than ``min_edge_points`` of them the boundary is their
        axis-aligned bounding rectangle, otherwise the default rectangle.
        """
        t = self.thresholds
        default = rectangle(*t.default_boundary)
        work_w, work_h = t.boundary_working_size
        grey = raster.greyscale().resize(work_w, work_h).as_float()[:, :, 0]

        gx = ndimage.sobel(grey, axis=1)[1:-1, 1:-1]
        gy = ndimage.sobel(grey, axis=0)[1:-1, 1:-1]
        magnitude = np.hypot(gx, gy)
        rows, cols = np.nonzero(magnitude > t.edge_magnitude_threshold)
        if rows.size <= t.min_edge_points:
            return default

        # interior offset of one pixel
        points = np.column_stack(((cols + 1) / work_w, (rows + 1) / work_h))
        return bounding_rectangle(points)

    @staticmethod
    def _boundary_area(boundary: Polygon, ratio: float) -> float:
        """Shoelace area of a frame-fraction polygon times ``ratio**2``."""
        return polygon_area(boundary) * ratio**2

    # -- selection and breakdown ---------------------------------------------

    def select_best_estimation(self, candidates: Sequence[AreaEstimate]) -> AreaEstimate:
        """Pick the winning candidate.

        Candidates with no area are discarded. A reference-object candidate
        above the priority confidence wins outright; otherwise the highest
        confidence wins and ties keep the earlier candidate. With nothing left
        the fallback estimate is returned.
        """
        t = self.thresholds
        valid = [c for c in candidates if c.total_area > 0]
        if not valid:
            return self._fallback_estimate()
        for candidate in valid:
            if (
                candidate.method is EstimationMethod.REFERENCE_OBJECT
                and candidate.confidence > t.reference_priority_confidence
            ):
                return candidate
        best = valid[0]
        for candidate in valid[1:]:
            if candidate.confidence > best.confidence:
                best = candidate
        return best

    def calculate_area_breakdown(self, raster: Raster, total_area: float) -> AreaBreakdown:
        """Split ``total_area`` by pixel color on a downscaled raster.

        Each pixel takes the first matching rule: vegetation, water, soil,
        infrastructure. Cultivable is at least ``min_cultivable_fraction``;
        water and infrastructure shrink proportionally when the three exceed
        the whole, and non-cultivable takes the remainder.
        """
        t = self.thresholds
        r, g, b = _rgb_planes(raster.resize(*t.breakdown_size))
        total_pixels = r.size

        vegetation = (g > r) & (g > b) & (g > t.vegetation_min_green)
        water = ~vegetation & (b > r) & (b > g) & (b > t.water_min_blue)
        unclaimed = ~vegetation & ~water
        soil = unclaimed & (r > t.soil_min_red) & (g > t.soil_min_green) & (b < t.soil_max_blue)
        gray = (
            unclaimed
            & ~soil
            & (np.abs(r - g) < t.gray_max_spread)
            & (np.abs(g - b) < t.gray_max_spread)
            & (r > t.gray_min_red)
        )

        vegetation_share = vegetation.sum() / total_pixels
        soil_share = soil.sum() / total_pixels
        water_share = float(water.sum() / total_pixels)
        gray_share = float(gray.sum() / total_pixels)

        cultivable = float(
            max(t.min_cultivable_fraction, vegetation_share + t.soil_cultivable_weight * soil_share)
        )
        rest = 1.0 - cultivable
        if water_share + gray_share > rest:
            scale = rest / (water_share + gray_share)
            water_share *= scale
            gray_share *= scale
        non_cultivable = max(0.0, 1.0 - cultivable - water_share - gray_share)
        return self._split_breakdown(
            total_area, (cultivable, non_cultivable, water_share, gray_share)
        )

    @staticmethod
    def _split_breakdown(
        total_area: float, fractions: tuple[float, float, float, float]
    ) -> AreaBreakdown:
        cultivable, non_cultivable, water, infrastructure = fractions
        return AreaBreakdown(
            cultivable_area=float(round(total_area * cultivable)),
            non_cultivable_area=float(round(total_area * non_cultivable)),
            water_bodies=float(round(total_area * water)),
            infrastructure=float(round(total_area * infrastructure)),
        )

    def _fallback_estimate(self, degraded: dict[str, str] | None = None) -> AreaEstimate:
        t = self.thresholds
        return AreaEstimate(
            total_area=t.fallback_area,
            confidence=t.fallback_confidence,
            method=EstimationMethod.VISUAL_ESTIMATION,
            breakdown=self._split_breakdown(t.fallback_area, t.fallback_split),
            degraded=degraded or {},
        )

    # -- post-hoc checks ------------------------------------------------------

    def validate_estimation(self, estimate: AreaEstimate) -> ValidationResult:
        """Flag out-of-range area, low confidence or an inconsistent breakdown."""
        t = self.thresholds
        issues: list[str] = []
        if estimate.total_area < t.min_area:
            issues.append("Estimated area is too small (less than 100 sq meters)")
        elif estimate.total_area > t.max_area:
            issues.append("Estimated area is too large (more than 100 hectares)")

        if estimate.confidence < t.min_valid_confidence:
            issues.append("Area estimation confidence is too low")

        mismatch = abs(estimate.breakdown.total - estimate.total_area)
        if mismatch > estimate.total_area * t.breakdown_tolerance:
            issues.append("Area breakdown does not match total area")
        return ValidationResult(valid=not issues, errors=tuple(issues))

    def get_estimation_recommendations(self, estimate: AreaEstimate) -> tuple[str, ...]:
        """Advice for improving or using an area estimate.

        Parameters
        ----------
        estimate : AreaEstimate
            Result of ``estimate_area``.

        Returns
        -------
        tuple[str, ...]
            Human-readable recommendations, possibly empty.
        """
        recommendations: list[str] = []
        if estimate.confidence < 0.5:
            recommendations.append(
                "Consider adding reference objects (person, vehicle, or known structures) "
                "for more accurate area estimation"
            )
            recommendations.append("Take photos from multiple angles to improve accuracy")

        if estimate.method is EstimationMethod.VISUAL_ESTIMATION:
            recommendations.append(
                "For precise measurements, consider using GPS boundary mapping "
                "or professional surveying"
            )

        if estimate.total_area > 0:
            cultivable_ratio = estimate.breakdown.cultivable_area / estimate.total_area
            if cultivable_ratio > 0.9:
                recommendations.append(
                    "Excellent cultivable land ratio, suitable for diverse crop planning"
                )
            elif cultivable_ratio < 0.5:
                recommendations.append(
                    "Limited cultivable area, focus on high-value crops or land improvement"
                )

        if estimate.breakdown.water_bodies > 0:
            recommendations.append(
                "Water bodies detected, consider aquaculture or irrigation potential"
            )
        return tuple(recommendations)
