"""
Core geometry types for coplanar surface reconstruction.

Built on Shapely for 2D polygon operations. Provides PlanarRegion (a group of
coplanar mesh triangles with a reconstructed 2D boundary), the tangent basis
used to flatten a plane to 2D, and conversions between Shapely polygons and
closed coordinate rings.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from shapely.geometry import MultiPolygon, Polygon


class SurfaceIssue(Enum):
    """Failure kinds that degrade to a best-effort result instead of raising."""
    INPUT_DEGENERATE = "input_degenerate"
    UNION_FAILURE = "union_failure"
    NO_MATCH_FOUND = "no_match_found"
    BOUNDS_COMPUTATION_FAILURE = "bounds_computation_failure"


@dataclass
class PlanarRegion:
    """A group of coplanar mesh triangles with a 2D boundary.

    Built by plane_extraction.group_planar_faces; always recomputed from
    scratch, never updated incrementally.
    """
    id: str
    triangle_indices: List[int]     # indices into mesh.faces, ascending
    normal: np.ndarray              # (3,) unit normal of the seed triangle
    plane_offset: float             # signed distance from origin (n . p = d)
    bounding_box: np.ndarray        # (2, 3) world-space [min, max]
    area: float
    vertices: np.ndarray            # (3 * len(triangle_indices), 3) world-space
    boundary_polygon: List[np.ndarray] = field(default_factory=list)  # closed rings
    # Plane frame used to flatten / re-embed the boundary
    origin: Optional[np.ndarray] = None
    tangent: Optional[np.ndarray] = None
    bitangent: Optional[np.ndarray] = None
    boundary_is_approximate: bool = False

    @property
    def plane(self) -> Tuple[np.ndarray, float]:
        return self.normal, self.plane_offset

    @property
    def triangle_count(self) -> int:
        return len(self.triangle_indices)

    @property
    def centroid(self) -> np.ndarray:
        """Mean of the member vertices."""
        if len(self.vertices) == 0:
            return self.normal * self.plane_offset
        return np.mean(self.vertices, axis=0)

    def distance_to_plane(self, points: np.ndarray) -> np.ndarray:
        """Unsigned distance of each point to this region's plane."""
        return np.abs(np.asarray(points, dtype=float) @ self.normal - self.plane_offset)

    def boundary_as_polygon(self) -> Polygon:
        return rings_to_polygon(self.boundary_polygon)


def make_tangent_basis(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Build an orthonormal (tangent, bitangent) pair spanning the plane of *normal*.

    Uses +Y as the reference up-vector, switching to +X when the normal is
    near-parallel to it so the cross product never degenerates.
    """
    n = unit_vector(normal)
    if abs(n[1]) < 0.9:
        up = np.array([0.0, 1.0, 0.0])
    else:
        up = np.array([1.0, 0.0, 0.0])
    tangent = np.cross(up, n)
    tangent /= np.linalg.norm(tangent)
    bitangent = np.cross(n, tangent)
    bitangent /= np.linalg.norm(bitangent)
    return tangent, bitangent


def plane_origin(normal: np.ndarray, offset: float) -> np.ndarray:
    """Point of the plane n . p = d closest to the world origin."""
    return unit_vector(normal) * float(offset)


def project_points_to_plane(
    points: np.ndarray,
    normal: np.ndarray,
    offset: float,
) -> np.ndarray:
    """Closest point on the plane n . p = d for each row of *points*."""
    n = unit_vector(normal)
    pts = np.asarray(points, dtype=float)
    dist = pts @ n - float(offset)
    return pts - np.outer(dist, n)


def unit_vector(vec: np.ndarray) -> np.ndarray:
    vec = np.asarray(vec, dtype=float)
    norm = float(np.linalg.norm(vec))
    if norm < 1e-12 or not np.isfinite(norm):
        raise ValueError(f"Cannot normalize degenerate vector {vec!r}")
    return vec / norm


# ─── Ring / polygon conversion ───────────────────────────────────────────────

def close_ring(points) -> np.ndarray:
    """Return *points* as an (k, 2) array whose last row repeats the first."""
    ring = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(ring) == 0:
        return ring
    if not np.array_equal(ring[0], ring[-1]):
        ring = np.vstack([ring, ring[:1]])
    return ring


def polygon_to_rings(polygon: Polygon) -> List[np.ndarray]:
    """Convert a Shapely Polygon to [outer, hole1, ...] closed rings.

    If a MultiPolygon is passed, uses the largest polygon by area.
    """
    if polygon.is_empty:
        return []
    if isinstance(polygon, MultiPolygon):
        polygon = max(polygon.geoms, key=lambda g: g.area)
    rings = [close_ring(polygon.exterior.coords)]
    rings.extend(close_ring(interior.coords) for interior in polygon.interiors)
    return rings


def rings_to_polygon(rings: List[np.ndarray]) -> Polygon:
    """Convert [outer, hole1, ...] rings back to a Shapely Polygon."""
    if not rings or len(rings[0]) < 4:
        return Polygon()
    holes = [r for r in rings[1:] if len(r) >= 4]
    return Polygon(shell=rings[0], holes=holes)


def ring_area(ring: np.ndarray) -> float:
    """Unsigned shoelace area of a closed ring."""
    pts = np.asarray(ring, dtype=float)
    if len(pts) < 4:
        return 0.0
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * abs(float(np.dot(x[:-1], y[1:]) - np.dot(x[1:], y[:-1])))


def boundary_area(rings: List[np.ndarray]) -> float:
    """Area of an outer ring minus its holes."""
    if not rings:
        return 0.0
    return ring_area(rings[0]) - sum(ring_area(r) for r in rings[1:])


def region_to_dict(region: PlanarRegion) -> Dict[str, Any]:
    """JSON-safe summary of a region."""
    return {
        "id": region.id,
        "triangle_indices": [int(i) for i in region.triangle_indices],
        "normal": [float(v) for v in region.normal],
        "plane_offset": float(region.plane_offset),
        "bounding_box": region.bounding_box.tolist(),
        "area": float(region.area),
        "ring_count": len(region.boundary_polygon),
        "boundary_is_approximate": bool(region.boundary_is_approximate),
        "boundary_polygon": [ring.tolist() for ring in region.boundary_polygon],
    }
