"""
Highlight overlay geometry for planar regions.

Ear-clips a region's boundary polygon (outer ring plus holes) and re-embeds
the 2D triangulation on the region's plane, lifted slightly along the normal
so a renderer can draw it over the source surface without depth-fighting.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import mapbox_earcut
import numpy as np
import trimesh

from geometry_primitives import PlanarRegion, SurfaceIssue
from plane_extraction import (
    PlaneGroupingConfig,
    find_region_by_triangle,
    group_planar_faces,
)

logger = logging.getLogger(__name__)


@dataclass
class HighlightConfig:
    color: int = 0xFF6B35
    opacity: float = 0.6
    surface_offset: float = 0.1
    render_order: int = 999


@dataclass
class HighlightMesh:
    positions: np.ndarray           # (N, 3) float32
    faces: np.ndarray               # (M, 3) int64
    vertex_normals: np.ndarray      # (N, 3) float32
    color: int = 0xFF6B35
    opacity: float = 0.6
    render_order: int = 999
    issue: Optional[SurfaceIssue] = None
    region_id: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return len(self.faces) == 0

    @property
    def indices(self) -> np.ndarray:
        """Flat index buffer, three entries per triangle."""
        return self.faces.reshape(-1)

    @property
    def bounds(self) -> Optional[np.ndarray]:
        if len(self.positions) == 0:
            return None
        return np.array([self.positions.min(axis=0), self.positions.max(axis=0)])

    def rgba(self) -> Tuple[int, int, int, int]:
        return (
            (self.color >> 16) & 0xFF,
            (self.color >> 8) & 0xFF,
            self.color & 0xFF,
            int(round(np.clip(self.opacity, 0.0, 1.0) * 255)),
        )

    def to_trimesh(self) -> trimesh.Trimesh:
        mesh = trimesh.Trimesh(
            vertices=self.positions.astype(float),
            faces=self.faces,
            process=False,
        )
        if len(self.faces):
            mesh.visual.face_colors = np.tile(self.rgba(), (len(self.faces), 1))
        return mesh


def empty_highlight(
    config: Optional[HighlightConfig] = None,
    issue: Optional[SurfaceIssue] = None,
    reason: str = "",
) -> HighlightMesh:
    """Harmless placeholder drawn as nothing."""
    if config is None:
        config = HighlightConfig()
    return HighlightMesh(
        positions=np.zeros((0, 3), dtype=np.float32),
        faces=np.zeros((0, 3), dtype=np.int64),
        vertex_normals=np.zeros((0, 3), dtype=np.float32),
        color=config.color,
        opacity=config.opacity,
        render_order=config.render_order,
        issue=issue,
        warnings=[reason] if reason else [],
    )


def triangulate_boundary(
    rings: Sequence[Sequence[Sequence[float]]],
) -> Tuple[np.ndarray, np.ndarray]:
    """Ear-clip [outer, hole1, ...] rings.

    Returns:
        (coords_2d (N, 2), faces (M, 3)) where faces index into coords_2d.
    """
    coords: List[np.ndarray] = []
    ring_ends: List[int] = []
    total = 0
    for i, ring in enumerate(rings):
        pts = np.asarray(ring, dtype=np.float64).reshape(-1, 2)
        if len(pts) > 1 and np.array_equal(pts[0], pts[-1]):
            pts = pts[:-1]
        if len(pts) < 3:
            if i == 0:
                break
            continue
        coords.append(pts)
        total += len(pts)
        ring_ends.append(total)

    if not coords:
        return np.zeros((0, 2)), np.zeros((0, 3), dtype=np.int64)

    flat = np.vstack(coords)
    tri = mapbox_earcut.triangulate_float64(flat, np.asarray(ring_ends, dtype=np.uint32))
    faces = np.asarray(tri, dtype=np.int64).reshape(-1, 3)
    return flat, faces


def build_highlight_mesh(
    boundary_polygon: Sequence[Sequence[Sequence[float]]],
    origin: np.ndarray,
    tangent: np.ndarray,
    bitangent: np.ndarray,
    normal: np.ndarray,
    config: Optional[HighlightConfig] = None,
) -> HighlightMesh:
    """Triangulate a boundary and lift it into 3D on the given plane frame.

    Each 2D point (x, y) maps to origin + tangent*x + bitangent*y + normal*offset.
    Vertices with non-finite coordinates are dropped together with their
    triangles; fewer than three surviving vertices yields an empty
    placeholder.
    """
    if config is None:
        config = HighlightConfig()

    try:
        coords, faces = triangulate_boundary(boundary_polygon)
    except Exception as exc:
        logger.warning("Boundary triangulation failed: %s", exc)
        return empty_highlight(config, SurfaceIssue.INPUT_DEGENERATE, str(exc))

    if len(coords) == 0 or len(faces) == 0:
        return empty_highlight(config, SurfaceIssue.INPUT_DEGENERATE, "empty boundary")

    origin = np.asarray(origin, dtype=float)
    with np.errstate(invalid="ignore", over="ignore"):
        positions = (
            origin
            + np.outer(coords[:, 0], tangent)
            + np.outer(coords[:, 1], bitangent)
            + np.asarray(normal, dtype=float) * config.surface_offset
        )

    positions, faces = _drop_non_finite(positions, faces)
    if len(positions) < 3 or len(faces) == 0:
        logger.debug("Highlight has %d valid vertices; returning placeholder", len(positions))
        return empty_highlight(
            config,
            SurfaceIssue.BOUNDS_COMPUTATION_FAILURE,
            "fewer than 3 finite vertices",
        )

    overlay = trimesh.Trimesh(vertices=positions, faces=faces, process=False)
    normals = np.asarray(overlay.vertex_normals, dtype=float)
    if not np.all(np.isfinite(overlay.bounds)):
        return empty_highlight(config, SurfaceIssue.BOUNDS_COMPUTATION_FAILURE, "invalid bounds")

    return HighlightMesh(
        positions=positions.astype(np.float32),
        faces=faces,
        vertex_normals=normals.astype(np.float32),
        color=config.color,
        opacity=config.opacity,
        render_order=config.render_order,
    )


def build_region_highlight(
    region: PlanarRegion,
    config: Optional[HighlightConfig] = None,
) -> HighlightMesh:
    """Overlay for a region produced by group_planar_faces."""
    if region.origin is None or region.tangent is None or region.bitangent is None:
        return empty_highlight(config, SurfaceIssue.INPUT_DEGENERATE, "region has no plane frame")

    highlight = build_highlight_mesh(
        region.boundary_polygon,
        region.origin,
        region.tangent,
        region.bitangent,
        region.normal,
        config,
    )
    highlight.region_id = region.id
    logger.debug(
        "Highlight for %s: %d triangles from %d source triangles",
        region.id, len(highlight.faces), region.triangle_count,
    )
    return highlight


def build_region_highlight_for_triangle(
    mesh: trimesh.Trimesh,
    triangle_index: int,
    transform: Optional[np.ndarray] = None,
    grouping: Optional[PlaneGroupingConfig] = None,
    config: Optional[HighlightConfig] = None,
) -> HighlightMesh:
    """Group *mesh* and highlight the region containing a picked triangle."""
    regions = group_planar_faces(mesh, transform, grouping)
    region = find_region_by_triangle(regions, triangle_index)
    if region is None:
        return empty_highlight(
            config,
            SurfaceIssue.NO_MATCH_FOUND,
            f"triangle {triangle_index} belongs to no region",
        )
    return build_region_highlight(region, config)


def _drop_non_finite(
    positions: np.ndarray,
    faces: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    finite = np.all(np.isfinite(positions), axis=1)
    if np.all(finite):
        return positions, faces
    remap = np.full(len(positions), -1, dtype=np.int64)
    remap[finite] = np.arange(int(np.count_nonzero(finite)))
    keep = np.all(finite[faces], axis=1)
    return positions[finite], remap[faces[keep]]
