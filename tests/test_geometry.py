"""Tests for frame-fraction geometry helpers."""

from __future__ import annotations

import numpy as np
import pytest

from landlens.utils.geometry import (
    Point,
    bounding_rectangle,
    polygon_area,
    rectangle,
)


def test_unit_square_area_is_exactly_one() -> None:
    """Shoelace area of the unit square is 1.0."""
    square = [Point(0, 0), Point(1, 0), Point(1, 1), Point(0, 1)]
    assert polygon_area(square) == 1.0


def test_polygon_area_ignores_orientation() -> None:
    """Clockwise and counter-clockwise vertices give the same area."""
    ccw = np.asarray([[0.0, 0.0], [2.0, 0.0], [2.0, 1.0], [0.0, 1.0]])
    assert polygon_area(ccw) == pytest.approx(2.0)
    assert polygon_area(ccw[::-1]) == pytest.approx(2.0)


def test_polygon_area_of_triangle() -> None:
    """Right triangle with legs 1 has area 0.5."""
    assert polygon_area([Point(0, 0), Point(1, 0), Point(0, 1)]) == pytest.approx(0.5)


def test_polygon_area_degenerate_input_is_zero() -> None:
    """Fewer than three vertices enclose nothing."""
    assert polygon_area([Point(0, 0), Point(1, 1)]) == 0.0
    assert polygon_area([]) == 0.0


def test_polygon_area_rejects_bad_shape() -> None:
    """Arrays must have two columns."""
    with pytest.raises(ValueError):
        polygon_area(np.zeros((4, 3)))


def test_bounding_rectangle_corner_order() -> None:
    """Bounding rectangle starts top-left and runs clockwise in image space."""
    points = np.asarray([[0.2, 0.5], [0.7, 0.1], [0.4, 0.9]])
    assert bounding_rectangle(points) == (
        Point(0.2, 0.1),
        Point(0.7, 0.1),
        Point(0.7, 0.9),
        Point(0.2, 0.9),
    )


def test_bounding_rectangle_rejects_empty() -> None:
    """An empty point set has no bounds."""
    with pytest.raises(ValueError):
        bounding_rectangle([])


def test_rectangle_area_matches_sides() -> None:
    """Default field rectangle covers 64% of the frame."""
    assert polygon_area(rectangle(0.1, 0.1, 0.9, 0.9)) == pytest.approx(0.64)
