import math
from typing import Tuple

import numpy as np
import numpy.typing

from rnadraw.common import GeometryError

# Screen coordinates: x grows to the right, y grows downwards and angles are
# measured with atan2, so increasing angles turn clockwise on screen.
EPSILON = 1e-9

Vector = numpy.typing.NDArray[numpy.floating]

RIGHT = np.array([1.0, 0.0])
UP = np.array([0.0, -1.0])


def vector(x: float, y: float) -> Vector:
    return np.array([float(x), float(y)])


def norm(v: Vector) -> float:
    return float(np.linalg.norm(v))


def unit(v: Vector) -> Vector:
    """Return ``v`` scaled to length 1."""
    length = norm(v)
    if length < EPSILON:
        raise GeometryError("Cannot normalize a zero-length vector")
    return v / length


def angle_of(v: Vector) -> float:
    """Return the angle of a vector in degrees, in (-180, 180]."""
    return math.degrees(math.atan2(v[1], v[0]))


def rotate(v: Vector, angle: float) -> Vector:
    """Rotate a vector by ``angle`` degrees about the origin."""
    radians = math.radians(angle)
    cos, sin = math.cos(radians), math.sin(radians)
    return np.array([v[0] * cos - v[1] * sin, v[0] * sin + v[1] * cos])


def rotate_about(point: Vector, angle: float, pivot: Vector) -> Vector:
    return pivot + rotate(point - pivot, angle)


def point_on_circle(center: Vector, radius: float, angle: float) -> Vector:
    radians = math.radians(angle)
    return center + radius * np.array([math.cos(radians), math.sin(radians)])


def reflect_y(point: Vector, baseline_y: float) -> Vector:
    """Mirror a point across the horizontal line ``y = baseline_y``."""
    return np.array([point[0], 2.0 * baseline_y - point[1]])


def reflect_direction(v: Vector) -> Vector:
    return np.array([v[0], -v[1]])


def nearest_equivalent(angle: float, reference: float) -> float:
    """Shift ``angle`` by full turns so it lies within 180 degrees of ``reference``."""
    return reference + (angle - reference + 180.0) % 360.0 - 180.0


def circle_through_chord(
    p1: Vector, p2: Vector, radius: float
) -> Tuple[Vector, float]:
    """Find the circle of a given radius passing through ``p1`` and ``p2``.

    The center lies on the side obtained by turning the chord ``p2 - p1`` by
    ``-theta`` about ``p1``, where ``theta`` is the angle between the chord
    and the radius to either endpoint.

    Returns:
        Tuple of the circle center and ``theta`` in degrees.

    Raises:
        GeometryError: If the chord is degenerate or longer than the diameter.
    """
    chord = p2 - p1
    length = norm(chord)
    if length < EPSILON:
        raise GeometryError("Closing base pair has a zero-length chord")
    if length > 2.0 * radius + EPSILON:
        raise GeometryError(
            f"Chord of length {length:.3f} does not fit a circle of radius {radius:.3f}"
        )
    theta = math.degrees(math.acos(np.clip(length / (2.0 * radius), -1.0, 1.0)))
    center = p1 + unit(rotate(chord, -theta)) * radius
    return center, theta
