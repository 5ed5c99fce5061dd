"""Tests for the area estimation engine."""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from helpers import encode_pixels, solid_pixels
from landlens.config import AreaThresholds
from landlens.core.area_estimation import AreaEstimator
from landlens.core.models import (
    AreaBreakdown,
    AreaEstimate,
    AreaEstimationOptions,
    BoundingBox,
    EstimationMethod,
    GeoLocation,
    ImageMetadata,
    ReferenceKind,
    ReferenceObject,
)
from landlens.utils.geometry import Point
from landlens.utils.raster import Raster


def _reference(size: float, width: float, height: float) -> ReferenceObject:
    return ReferenceObject(ReferenceKind.PERSON, size, BoundingBox(0, 0, width, height))


def _assert_breakdown_consistent(estimate: AreaEstimate) -> None:
    assert estimate.total_area >= 100
    parts = estimate.breakdown
    assert min(
        parts.cultivable_area, parts.non_cultivable_area, parts.water_bodies, parts.infrastructure
    ) >= 0
    assert abs(parts.total - estimate.total_area) <= 0.1 * estimate.total_area


def test_two_meter_object_over_twenty_pixels_gives_tenth_meter_ratio() -> None:
    """Ratio is known size over the longer box side."""
    ratio = AreaEstimator().calculate_pixel_to_meter_ratio([_reference(2.0, 20, 10)])
    assert ratio == pytest.approx(0.1)


@pytest.mark.parametrize(
    ("objects", "expected"),
    [
        ([_reference(100.0, 10, 10)], 1.0),
        ([_reference(0.1, 100, 100)], 0.01),
        ([_reference(0.0, 10, 10), _reference(3.0, 0, 0)], 0.1),
        ([_reference(2.0, 20, 20), _reference(4.0, 20, 20)], 0.15),
    ],
)
def test_pixel_to_meter_ratio_clamps_and_averages(objects, expected: float) -> None:
    """Ratios are averaged over valid objects and clamped to [0.01, 1]."""
    assert AreaEstimator().calculate_pixel_to_meter_ratio(objects) == pytest.approx(expected)


def test_boundary_is_bounding_rectangle_of_edges(field_pixels: np.ndarray) -> None:
    """The bright plot's outline bounds the detected field."""
    boundary = AreaEstimator().detect_field_boundary(Raster.from_array(field_pixels))

    assert len(boundary) == 4
    top_left, _, bottom_right, _ = boundary
    assert top_left.x == pytest.approx(0.25, abs=0.01)
    assert top_left.y == pytest.approx(0.25, abs=0.01)
    assert bottom_right.x == pytest.approx(0.75, abs=0.01)
    assert bottom_right.y == pytest.approx(0.75, abs=0.01)


def test_boundary_without_edges_is_default_rectangle() -> None:
    """A featureless raster falls back to the central 80% rectangle."""
    boundary = AreaEstimator().detect_field_boundary(
        Raster.from_array(solid_pixels(512, 384, (128, 128, 128)))
    )
    assert boundary == (Point(0.1, 0.1), Point(0.9, 0.1), Point(0.9, 0.9), Point(0.1, 0.9))


def test_edge_candidate_rounds_to_zero_at_default_ratio() -> None:
    """Frame-fraction area times 0.01 m² per unit rounds away to nothing."""
    raster = Raster.from_array(solid_pixels(512, 384, (128, 128, 128)))
    estimator = AreaEstimator()

    default = estimator.estimate_by_edge_boundary(raster)
    coarse = estimator.estimate_by_edge_boundary(
        raster, AreaEstimationOptions(pixel_to_meter_ratio=100.0)
    )
    assert default.total_area == 0.0
    assert coarse.total_area == pytest.approx(6400.0)
    assert coarse.confidence == pytest.approx(0.6)


@pytest.mark.parametrize(
    ("size", "total", "confidence"),
    [((512, 384), 5000.0, 0.4), ((2000, 1500), 7500.0, 0.5)],
)
def test_featureless_photo_without_references_uses_heuristic(
    size: tuple[int, int], total: float, confidence: float
) -> None:
    """With the edge candidate discarded the resolution heuristic wins."""
    raster = Raster.from_array(solid_pixels(*size, (128, 128, 128)))
    estimate = AreaEstimator().estimate_area(raster)

    assert estimate.method is EstimationMethod.VISUAL_ESTIMATION
    assert estimate.total_area == total
    assert estimate.confidence == pytest.approx(confidence)
    assert estimate.breakdown == AreaBreakdown(round(0.6 * total), 0.0, 0.0, round(0.4 * total))
    assert estimate.degraded == {}


@pytest.mark.parametrize("size", [(640, 480), (2000, 1500)])
def test_reference_area_does_not_grow_with_resolution(size: tuple[int, int]) -> None:
    """A 1 m/px reference over the default rectangle is floored to 100 m²."""
    raster = Raster.from_array(solid_pixels(*size, (128, 128, 128)))
    estimator = AreaEstimator()
    estimate = estimator.estimate_area(raster, reference_objects=[_reference(100.0, 100, 100)])

    assert estimate.method is EstimationMethod.REFERENCE_OBJECT
    assert estimate.total_area == 100.0
    assert estimate.confidence == pytest.approx(0.7)
    assert estimator.validate_estimation(estimate).valid


def test_reference_candidate_wins_over_more_confident_candidates() -> None:
    """A reference estimate above 0.4 confidence always wins selection."""
    empty = AreaBreakdown(0, 0, 0, 0)
    candidates = [
        AreaEstimate(900, 0.45, EstimationMethod.REFERENCE_OBJECT, empty),
        AreaEstimate(1200, 0.6, EstimationMethod.VISUAL_ESTIMATION, empty),
        AreaEstimate(5000, 0.8, EstimationMethod.VISUAL_ESTIMATION, empty),
    ]
    assert AreaEstimator().select_best_estimation(candidates) is candidates[0]


def test_weak_reference_candidate_loses() -> None:
    """At or below 0.4 confidence the reference estimate competes normally."""
    empty = AreaBreakdown(0, 0, 0, 0)
    candidates = [
        AreaEstimate(900, 0.4, EstimationMethod.REFERENCE_OBJECT, empty),
        AreaEstimate(1200, 0.6, EstimationMethod.VISUAL_ESTIMATION, empty),
    ]
    assert AreaEstimator().select_best_estimation(candidates) is candidates[1]


def test_selection_ties_keep_earlier_candidate() -> None:
    """Equal confidence keeps the first candidate."""
    empty = AreaBreakdown(0, 0, 0, 0)
    candidates = [
        AreaEstimate(1200, 0.6, EstimationMethod.VISUAL_ESTIMATION, empty),
        AreaEstimate(5000, 0.6, EstimationMethod.VISUAL_ESTIMATION, empty),
    ]
    assert AreaEstimator().select_best_estimation(candidates) is candidates[0]


def test_selection_without_valid_candidates_is_fallback() -> None:
    """Zero-area candidates are discarded, leaving the fallback."""
    empty = AreaBreakdown(0, 0, 0, 0)
    best = AreaEstimator().select_best_estimation(
        [AreaEstimate(0, 0.9, EstimationMethod.REFERENCE_OBJECT, empty)]
    )
    assert (best.total_area, best.confidence) == (3000.0, 0.3)
    assert best.breakdown == AreaBreakdown(2250.0, 450.0, 150.0, 150.0)


def test_engine_prefers_reference_objects_even_below_edge_confidence(
    field_pixels: np.ndarray,
) -> None:
    """Priority holds end to end when edges are configured more confident."""
    thresholds = replace(AreaThresholds(), edge_confidence=0.95)
    estimate = AreaEstimator(thresholds).estimate_area(
        Raster.from_array(field_pixels), reference_objects=[_reference(2.0, 20, 10)]
    )
    assert estimate.method is EstimationMethod.REFERENCE_OBJECT
    assert estimate.confidence == pytest.approx(0.7)
    _assert_breakdown_consistent(estimate)


def test_reference_objects_can_be_disabled(field_pixels: np.ndarray) -> None:
    """With reference objects switched off the heuristic estimate wins."""
    estimate = AreaEstimator().estimate_area(
        Raster.from_array(field_pixels),
        reference_objects=[_reference(2.0, 20, 10)],
        options=AreaEstimationOptions(use_reference_objects=False),
    )
    assert estimate.method is EstimationMethod.VISUAL_ESTIMATION
    assert estimate.total_area == 5000.0


def test_reference_confidence_grows_with_object_count(field_pixels: np.ndarray) -> None:
    """Confidence rises 0.1 per object up to 0.9."""
    estimator = AreaEstimator()
    raster = Raster.from_array(field_pixels)
    one = estimator.estimate_by_reference_objects(raster, [_reference(2.0, 20, 10)])
    five = estimator.estimate_by_reference_objects(raster, [_reference(2.0, 20, 10)] * 5)
    assert one.confidence == pytest.approx(0.7)
    assert five.confidence == pytest.approx(0.9)
    assert one.total_area == 100.0


def test_heuristic_rewards_resolution_and_gps() -> None:
    """Large images and GPS each add 0.1 confidence."""
    thresholds = replace(AreaThresholds(), heuristic_large_image_pixels=100)
    estimator = AreaEstimator(thresholds)
    raster = Raster.from_array(solid_pixels(20, 20, (0, 0, 0)))

    plain = estimator.estimate_by_image_dimensions(raster)
    located = estimator.estimate_by_image_dimensions(
        raster, ImageMetadata(location=GeoLocation(18.5, 73.8))
    )
    assert (plain.total_area, plain.confidence) == (7500.0, pytest.approx(0.5))
    assert located.confidence == pytest.approx(0.6)


@pytest.mark.parametrize(
    ("rgb", "expected"),
    [
        ((0, 200, 0), (1000.0, 0.0, 0.0, 0.0)),
        ((150, 100, 50), (800.0, 200.0, 0.0, 0.0)),
        ((0, 0, 255), (600.0, 0.0, 400.0, 0.0)),
        ((200, 200, 200), (600.0, 0.0, 0.0, 400.0)),
    ],
)
def test_breakdown_by_color(rgb: tuple[int, int, int], expected: tuple[float, ...]) -> None:
    """Color rules split the total and the parts always add up."""
    breakdown = AreaEstimator().calculate_area_breakdown(
        Raster.from_array(solid_pixels(64, 64, rgb)), 1000.0
    )
    assert (
        breakdown.cultivable_area,
        breakdown.non_cultivable_area,
        breakdown.water_bodies,
        breakdown.infrastructure,
    ) == expected


@pytest.mark.parametrize("rgb", [(0, 0, 255), (128, 128, 128), (30, 30, 30), (0, 200, 0)])
def test_engine_breakdown_invariant(rgb: tuple[int, int, int]) -> None:
    """Returned estimates satisfy the breakdown and minimum-area invariants."""
    estimate = AreaEstimator().estimate_area(Raster.from_array(solid_pixels(200, 150, rgb)))
    _assert_breakdown_consistent(estimate)
    assert AreaEstimator().validate_estimation(estimate).valid


def test_undecodable_bytes_give_fallback_with_reason() -> None:
    """Decode failures degrade to the fixed fallback estimate."""
    estimate = AreaEstimator().estimate_area(b"definitely not an image")

    assert estimate.total_area == 3000.0
    assert estimate.confidence == 0.3
    assert "raster" in estimate.degraded
    _assert_breakdown_consistent(estimate)


def test_empty_raster_gives_fallback() -> None:
    """Zero-sized rasters degrade to the fallback estimate."""
    estimate = AreaEstimator().estimate_area(Raster.from_array(np.zeros((0, 0, 3), dtype=np.uint8)))
    assert estimate.total_area == 3000.0
    assert estimate.degraded == {"raster": "raster is empty"}


def test_failing_estimator_is_degraded_alone(field_pixels: np.ndarray) -> None:
    """A broken reference object only knocks out its own estimator."""
    broken = ReferenceObject(ReferenceKind.POLE, 2.0, None)
    estimate = AreaEstimator().estimate_area(
        Raster.from_array(field_pixels), reference_objects=[broken]
    )
    assert set(estimate.degraded) == {"reference_object"}
    assert estimate.degraded["reference_object"].startswith("AttributeError")
    assert estimate.method is EstimationMethod.VISUAL_ESTIMATION


def test_bytes_and_raster_inputs_agree(field_pixels: np.ndarray) -> None:
    """Encoded PNG input matches the decoded raster."""
    estimator = AreaEstimator()
    assert estimator.estimate_area(encode_pixels(field_pixels)) == estimator.estimate_area(
        Raster.from_array(field_pixels)
    )


def test_parallel_and_sequential_runs_match(field_pixels: np.ndarray) -> None:
    """Thread fan-out does not change the result."""
    estimator = AreaEstimator()
    raster = Raster.from_array(field_pixels)
    refs = [_reference(1.7, 34, 12)]
    assert estimator.estimate_area(raster, reference_objects=refs, parallel=True) == (
        estimator.estimate_area(raster, reference_objects=refs, parallel=False)
    )


def test_validate_estimation_flags_every_problem() -> None:
    """Small area, low confidence and a mismatched breakdown are all reported."""
    estimate = AreaEstimate(
        50.0, 0.2, EstimationMethod.VISUAL_ESTIMATION, AreaBreakdown(10.0, 0.0, 0.0, 0.0)
    )
    result = AreaEstimator().validate_estimation(estimate)
    assert result.valid is False
    assert result.errors == (
        "Estimated area is too small (less than 100 sq meters)",
        "Area estimation confidence is too low",
        "Area breakdown does not match total area",
    )


def test_validate_estimation_flags_huge_area() -> None:
    """Areas above 100 hectares are flagged."""
    total = 2_000_000.0
    estimate = AreaEstimate(
        total, 0.9, EstimationMethod.REFERENCE_OBJECT, AreaBreakdown(total, 0.0, 0.0, 0.0)
    )
    result = AreaEstimator().validate_estimation(estimate)
    assert result.errors == ("Estimated area is too large (more than 100 hectares)",)


def test_stored_estimate_can_be_revalidated(field_pixels: np.ndarray) -> None:
    """Serialized estimates rebuild to an equal, still-valid value."""
    estimator = AreaEstimator()
    estimate = estimator.estimate_area(Raster.from_array(field_pixels))
    restored = AreaEstimate.from_dict(estimate.to_dict())

    assert restored == estimate
    assert estimator.validate_estimation(restored).valid


def test_from_dict_rejects_incomplete_data() -> None:
    """Missing keys raise ValueError."""
    with pytest.raises(ValueError):
        AreaEstimate.from_dict({"total_area": 100})


def test_recommendations_for_low_confidence_visual_estimate() -> None:
    """Weak visual estimates ask for references and surveying."""
    estimate = AreaEstimate(
        1000.0, 0.4, EstimationMethod.VISUAL_ESTIMATION, AreaBreakdown(400.0, 450.0, 100.0, 50.0)
    )
    recommendations = AreaEstimator().get_estimation_recommendations(estimate)
    assert recommendations[1] == "Take photos from multiple angles to improve accuracy"
    assert any("GPS boundary mapping" in r for r in recommendations)
    assert any("Limited cultivable area" in r for r in recommendations)
    assert any("aquaculture" in r for r in recommendations)
