"""
Tolerance-based coplanarity tests for mesh triangles.

Two triangles are coplanar when their unit normals agree within an angular
tolerance (either orientation, so reversed winding still counts) and every
vertex of the second lies within a distance tolerance of the first's plane.
"""
from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class CoplanarityTolerance:
    """Angular and plane-distance tolerances for the coplanarity test."""
    normal_angle_rad: float = 1e-3    # ~0.06 degrees
    plane_distance: float = 1.0       # length units of the mesh

    def __post_init__(self):
        if self.normal_angle_rad < 0 or self.plane_distance < 0:
            raise ValueError("Coplanarity tolerances must be non-negative")

    @property
    def normal_angle_deg(self) -> float:
        return float(np.degrees(self.normal_angle_rad))


GROUPING_TOLERANCE = CoplanarityTolerance(normal_angle_rad=1e-3, plane_distance=1.0)
# Export-grade fragmentation noise needs looser angle and distance bands.
REPAIR_TOLERANCE = CoplanarityTolerance(
    normal_angle_rad=float(np.radians(11.5)), plane_distance=5.0,
)


def plane_from_triangle(
    normal: np.ndarray,
    point: np.ndarray,
) -> Tuple[np.ndarray, float]:
    """Plane (n, d) with n . p = d through *point*."""
    n = np.asarray(normal, dtype=float)
    return n, float(np.dot(n, point))


def normal_angle(normal_a: np.ndarray, normal_b: np.ndarray) -> float:
    """Smallest angle between two unit normals, ignoring orientation."""
    dot = abs(float(np.dot(normal_a, normal_b)))
    return float(np.arccos(np.clip(dot, -1.0, 1.0)))


def normals_coplanar(
    normal_a: np.ndarray,
    normal_b: np.ndarray,
    tolerance: CoplanarityTolerance = GROUPING_TOLERANCE,
) -> bool:
    return normal_angle(normal_a, normal_b) < tolerance.normal_angle_rad


def vertices_on_plane(
    vertices: np.ndarray,
    plane_normal: np.ndarray,
    plane_offset: float,
    tolerance: CoplanarityTolerance = GROUPING_TOLERANCE,
) -> bool:
    """True if every vertex lies within the distance tolerance of the plane."""
    dists = np.abs(np.asarray(vertices, dtype=float) @ plane_normal - plane_offset)
    return bool(np.all(dists < tolerance.plane_distance))


def coplanar_mask(
    plane_normal: np.ndarray,
    plane_offset: float,
    normals: np.ndarray,
    triangles: np.ndarray,
    tolerance: CoplanarityTolerance = GROUPING_TOLERANCE,
) -> np.ndarray:
    """Vectorized classifier: which of (k, 3, 3) *triangles* lie on the plane."""
    normals = np.asarray(normals, dtype=float).reshape(-1, 3)
    triangles = np.asarray(triangles, dtype=float).reshape(-1, 3, 3)
    # |cos| > cos(eps) is the same test as angle < eps for both windings
    cos_limit = float(np.cos(tolerance.normal_angle_rad))
    dots = np.abs(normals @ plane_normal)
    dists = np.abs(triangles @ plane_normal - plane_offset)
    return (dots > cos_limit) & np.all(dists < tolerance.plane_distance, axis=1)


def triangle_on_plane(
    vertices: np.ndarray,
    normal: np.ndarray,
    plane_normal: np.ndarray,
    plane_offset: float,
    tolerance: CoplanarityTolerance = GROUPING_TOLERANCE,
) -> bool:
    """Classify a triangle (vertices + unit normal) against a fixed plane."""
    return (
        normals_coplanar(plane_normal, normal, tolerance)
        and vertices_on_plane(vertices, plane_normal, plane_offset, tolerance)
    )


def triangles_coplanar(
    vertices_a: np.ndarray,
    normal_a: np.ndarray,
    vertices_b: np.ndarray,
    normal_b: np.ndarray,
    tolerance: CoplanarityTolerance = GROUPING_TOLERANCE,
) -> bool:
    """Coplanarity of triangle b against the plane of triangle a."""
    plane_n, plane_d = plane_from_triangle(normal_a, vertices_a[0])
    return triangle_on_plane(vertices_b, normal_b, plane_n, plane_d, tolerance)
