"""
Projection, vertex welding and 2D boundary reconstruction for planar regions.

A region's triangles are welded (near-duplicate vertices merged), flattened
onto the region's tangent basis, and unioned into a single boundary polygon
with holes. If the polygon union cannot produce a valid boundary the
reconstruction falls back to the convex hull of the welded points, which
loses concavities and holes but always yields a closed outline.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import shapely
from shapely.geometry import MultiPolygon, Polygon

from geometry_primitives import close_ring, polygon_to_rings

logger = logging.getLogger(__name__)

DEFAULT_WELD_DISTANCE = 1.0


@dataclass
class WeldedVertices:
    """Canonical vertices plus the raw-index -> canonical-index map."""
    vertices: np.ndarray                # (k, D) canonical positions
    index_map: np.ndarray               # (n,) canonical index per raw vertex

    def __len__(self) -> int:
        return len(self.vertices)


@dataclass
class BoundaryReconstruction:
    """Result of flattening and unioning one region's triangles."""
    rings: List[np.ndarray]                 # [outer, hole1, ...], closed
    welded: WeldedVertices
    points_2d: np.ndarray                   # (k, 2) projected canonical vertices
    approximate: bool = False               # convex-hull fallback was used
    dropped_pieces: int = 0
    skipped_triangles: List[int] = field(default_factory=list)

    @property
    def polygon(self) -> Polygon:
        if not self.rings:
            return Polygon()
        return Polygon(shell=self.rings[0], holes=self.rings[1:])


def weld_vertices(
    vertices: np.ndarray,
    weld_distance: float = DEFAULT_WELD_DISTANCE,
) -> WeldedVertices:
    """Merge vertices closer than *weld_distance* to an earlier accepted vertex.

    Scans in order; the first accepted vertex within range wins. O(k^2) in
    the raw vertex count.
    """
    if weld_distance < 0:
        raise ValueError("weld_distance must be non-negative")
    pts = np.asarray(vertices, dtype=float)
    if pts.ndim != 2:
        raise ValueError(f"Expected an (n, D) vertex array, got shape {pts.shape}")
    n = len(pts)
    accepted = np.zeros_like(pts)
    index_map = np.zeros(n, dtype=np.int64)
    count = 0

    for i in range(n):
        if count:
            dists = np.linalg.norm(accepted[:count] - pts[i], axis=1)
            hits = np.nonzero(dists < weld_distance)[0]
            if len(hits):
                index_map[i] = hits[0]
                continue
        accepted[count] = pts[i]
        index_map[i] = count
        count += 1

    return WeldedVertices(vertices=accepted[:count].copy(), index_map=index_map)


def project_to_2d(
    points: np.ndarray,
    tangent: np.ndarray,
    bitangent: np.ndarray,
) -> np.ndarray:
    """Flatten 3D points to (x, y) coordinates along the tangent basis."""
    pts = np.asarray(points, dtype=float).reshape(-1, 3)
    return np.column_stack([pts @ tangent, pts @ bitangent])


def convex_hull_2d(points: np.ndarray) -> np.ndarray:
    """Closed counter-clockwise convex hull by gift wrapping.

    Collinear candidates resolve to the farthest point so hull edges never
    stop short.
    """
    pts = np.unique(np.asarray(points, dtype=float).reshape(-1, 2), axis=0)
    n = len(pts)
    if n < 3:
        return close_ring(pts)

    # np.unique sorts lexicographically, so row 0 is the leftmost-lowest point
    start = 0
    hull = []
    current = start
    while True:
        hull.append(current)
        candidate = (current + 1) % n
        for i in range(n):
            if i == current:
                continue
            edge = pts[candidate] - pts[current]
            offset = pts[i] - pts[current]
            cross = edge[0] * offset[1] - edge[1] * offset[0]
            if cross < 0 or (
                cross == 0
                and np.dot(offset, offset) > np.dot(edge, edge)
            ):
                candidate = i
        current = candidate
        if current == start or len(hull) > n:
            break

    return close_ring(pts[hull])


def reconstruct_boundary(
    triangles: np.ndarray,
    tangent: np.ndarray,
    bitangent: np.ndarray,
    weld_distance: float = DEFAULT_WELD_DISTANCE,
) -> BoundaryReconstruction:
    """Union a region's triangles into [outer, hole1, ...] closed 2D rings.

    Args:
        triangles: (m, 3, 3) world-space triangle vertices of one region.
        tangent, bitangent: the region's tangent basis.
        weld_distance: vertex welding tolerance.
    """
    tris = np.asarray(triangles, dtype=float).reshape(-1, 3, 3)
    raw = tris.reshape(-1, 3)
    welded = weld_vertices(raw, weld_distance)
    points_2d = project_to_2d(welded.vertices, tangent, bitangent)

    rings_2d: List[Polygon] = []
    skipped: List[int] = []
    for t in range(len(tris)):
        idx = welded.index_map[t * 3:t * 3 + 3]
        if len(set(idx.tolist())) < 3:
            skipped.append(t)
            continue
        ring = points_2d[idx]
        rings_2d.append(Polygon(close_ring(ring)))

    if skipped:
        logger.debug("Skipped %d triangles collapsed by welding", len(skipped))

    merged = _union_incremental(rings_2d)
    if merged is None:
        hull = convex_hull_2d(points_2d)
        logger.warning(
            "Polygon union failed for %d triangles; using convex hull fallback",
            len(tris),
        )
        return BoundaryReconstruction(
            rings=[hull],
            welded=welded,
            points_2d=points_2d,
            approximate=True,
            skipped_triangles=skipped,
        )

    dropped = 0
    if isinstance(merged, MultiPolygon):
        dropped = len(merged.geoms) - 1
        logger.debug("Boundary union produced %d pieces; keeping largest", dropped + 1)

    return BoundaryReconstruction(
        rings=polygon_to_rings(merged),
        welded=welded,
        points_2d=points_2d,
        dropped_pieces=dropped,
        skipped_triangles=skipped,
    )


def _union_incremental(polygons: List[Polygon]) -> Optional[shapely.Geometry]:
    """OR the polygons one at a time; None when no valid area results."""
    if not polygons:
        return None

    result = None
    try:
        for poly in polygons:
            if not poly.is_valid or poly.area <= 0:
                continue
            result = poly if result is None else result.union(poly)
    except Exception as exc:
        logger.warning("Polygon union raised: %s", exc)
        return None

    if result is None or result.is_empty or not result.is_valid:
        return None
    if not isinstance(result, (Polygon, MultiPolygon)):
        # Mixed collections from touching slivers; keep only the areal parts
        parts = [g for g in getattr(result, "geoms", []) if isinstance(g, Polygon)]
        if not parts:
            return None
        result = MultiPolygon(parts) if len(parts) > 1 else parts[0]
    if result.area <= 0:
        return None
    return result
