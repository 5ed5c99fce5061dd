"""Frame-fraction geometry helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class Point:
    """Point in normalized frame coordinates.

    Parameters
    ----------
    x, y : float
        Fractions of image width and height, nominally in ``[0, 1]``.
    """

    x: float
    y: float


Polygon = tuple[Point, ...]


def points_to_array(points: Sequence[Point] | np.ndarray) -> np.ndarray:
    """Convert points into a float array.

    Parameters
    ----------
    points : Sequence[Point] | numpy.ndarray
        Point objects or an array with shape ``(N, 2)``.

    Returns
    -------
    numpy.ndarray
        Float64 coordinates with shape ``(N, 2)``.
    """
    if isinstance(points, np.ndarray):
        points_array = np.asarray(points, dtype=np.float64)
    else:
        points_array = np.asarray([(p.x, p.y) for p in points], dtype=np.float64)
    if points_array.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if points_array.ndim != 2 or points_array.shape[1] != 2:
        raise ValueError("points must have shape (N, 2)")
    return points_array


def polygon_area(points: Sequence[Point] | np.ndarray) -> float:
    """Compute polygon area with the shoelace formula.

    Parameters
    ----------
    points : Sequence[Point] | numpy.ndarray
        Ordered vertices; orientation is not significant.

    Returns
    -------
    float
        Absolute enclosed area in squared input units, ``0.0`` when fewer
        than three vertices are given.

    Examples
    --------
    >>> polygon_area([Point(0, 0), Point(1, 0), Point(1, 1), Point(0, 1)])
    1.0
    """
    points_array = points_to_array(points)
    if points_array.shape[0] < 3:
        return 0.0
    x = points_array[:, 0]
    y = points_array[:, 1]
    cross = x * np.roll(y, -1) - np.roll(x, -1) * y
    return float(abs(np.sum(cross)) / 2.0)


def rectangle(x0: float, y0: float, x1: float, y1: float) -> Polygon:
    """Build an axis-aligned rectangle starting at the top-left corner."""
    return (Point(x0, y0), Point(x1, y0), Point(x1, y1), Point(x0, y1))


def bounding_rectangle(points: Sequence[Point] | np.ndarray) -> Polygon:
    """Collapse points to their axis-aligned bounding rectangle.

    Raises
    ------
    ValueError
        Raised when no points are given.
    """
    points_array = points_to_array(points)
    if points_array.shape[0] == 0:
        raise ValueError("cannot bound an empty point set")
    x_min, y_min = points_array.min(axis=0)
    x_max, y_max = points_array.max(axis=0)
    return rectangle(float(x_min), float(y_min), float(x_max), float(y_max))
