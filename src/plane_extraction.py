"""
Coplanar triangle grouping for triangulated boundary meshes.

Partitions every triangle of a mesh into planar regions: each unprocessed
triangle seeds a region with its own plane, and every later unprocessed
triangle that passes the coplanarity test against that plane is absorbed.
Each region's triangles are then welded, flattened and unioned into a single
2D boundary polygon.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import trimesh

from boundary_reconstruction import DEFAULT_WELD_DISTANCE, reconstruct_boundary
from coplanarity import (
    GROUPING_TOLERANCE,
    CoplanarityTolerance,
    coplanar_mask,
    plane_from_triangle,
)
from geometry_primitives import (
    PlanarRegion,
    boundary_area,
    make_tangent_basis,
    plane_origin,
)
from mesh_extraction import WorldTriangles, extract_world_triangles

logger = logging.getLogger(__name__)


@dataclass
class PlaneGroupingConfig:
    """Configuration for coplanar triangle grouping."""
    tolerance: CoplanarityTolerance = field(default_factory=lambda: GROUPING_TOLERANCE)
    weld_distance: float = DEFAULT_WELD_DISTANCE
    build_boundaries: bool = True


def group_planar_faces(
    mesh: trimesh.Trimesh,
    transform: Optional[np.ndarray] = None,
    config: Optional[PlaneGroupingConfig] = None,
) -> List[PlanarRegion]:
    """Group the triangles of *mesh* into coplanar regions.

    Algorithm:
    1. Seed a region from the first unprocessed triangle's plane
    2. Absorb every later unprocessed triangle coplanar with that plane
       (first match wins; triangles are never re-evaluated)
    3. Weld, project and union the members into a 2D boundary
    4. Sort regions by area descending

    Degenerate triangles (zero-length normal, non-finite vertices) are
    skipped and belong to no region.

    Args:
        mesh: Input triangle mesh.
        transform: Optional 4x4 local-to-world matrix.
        config: Grouping parameters.

    Returns:
        List of PlanarRegion sorted by area descending, singletons included.
    """
    if config is None:
        config = PlaneGroupingConfig()

    tris = extract_world_triangles(mesh, transform)
    groups = _partition_triangles(tris, config.tolerance)

    regions: List[PlanarRegion] = []
    for seed, members in groups:
        region = _build_region(tris, seed, members, config)
        regions.append(region)

    regions.sort(key=lambda r: r.area, reverse=True)
    for i, region in enumerate(regions):
        region.id = f"planar_region_{i + 1}"

    logger.info(
        "Grouped %d triangles into %d planar regions (%d multi-triangle, %d degenerate skipped)",
        len(tris),
        len(regions),
        len(multi_triangle_regions(regions)),
        tris.degenerate_count,
    )
    return regions


def find_region_by_triangle(
    regions: Sequence[PlanarRegion],
    triangle_index: int,
) -> Optional[PlanarRegion]:
    """Region owning *triangle_index*, or None."""
    for region in regions:
        if triangle_index in region.triangle_indices:
            return region
    return None


def multi_triangle_regions(regions: Sequence[PlanarRegion]) -> List[PlanarRegion]:
    """Regions built from more than one triangle."""
    return [r for r in regions if r.triangle_count > 1]


# ─── Partitioning ────────────────────────────────────────────────────────────

def _partition_triangles(
    tris: WorldTriangles,
    tolerance: CoplanarityTolerance,
) -> List[tuple]:
    """Seed-and-absorb pass; returns [(seed_index, member_indices), ...].

    O(n^2) in the triangle count.
    """
    n = len(tris)
    processed = ~tris.valid.copy()
    groups = []

    for seed in range(n):
        if processed[seed]:
            continue
        processed[seed] = True
        plane_n, plane_d = plane_from_triangle(tris.normals[seed], tris.vertices[seed][0])

        candidates = np.nonzero(~processed[seed + 1:])[0] + seed + 1
        if len(candidates):
            match = coplanar_mask(
                plane_n, plane_d,
                tris.normals[candidates], tris.vertices[candidates],
                tolerance,
            )
            absorbed = candidates[match]
        else:
            absorbed = candidates

        processed[absorbed] = True
        members = [seed] + absorbed.tolist()
        groups.append((seed, members))

    return groups


def _build_region(
    tris: WorldTriangles,
    seed: int,
    members: List[int],
    config: PlaneGroupingConfig,
) -> PlanarRegion:
    normal = tris.normals[seed].copy()
    _, offset = plane_from_triangle(normal, tris.vertices[seed][0])
    tangent, bitangent = make_tangent_basis(normal)

    member_tris = tris.vertices[members]            # (m, 3, 3)
    vertices = member_tris.reshape(-1, 3)
    bbox = np.array([vertices.min(axis=0), vertices.max(axis=0)])
    triangle_area = float(tris.areas[members].sum())

    rings: List[np.ndarray] = []
    approximate = False
    area = triangle_area
    if config.build_boundaries:
        result = reconstruct_boundary(
            member_tris, tangent, bitangent, config.weld_distance,
        )
        rings = result.rings
        approximate = result.approximate
        # Hull fallbacks and dropped islands misstate the covered area
        if not approximate and result.dropped_pieces == 0:
            area = boundary_area(rings) or triangle_area

    logger.debug(
        "Region seeded by triangle %d: %d triangles, area %.3f, %d rings",
        seed, len(members), area, len(rings),
    )

    return PlanarRegion(
        id="",
        triangle_indices=sorted(members),
        normal=normal,
        plane_offset=float(offset),
        bounding_box=bbox,
        area=area,
        vertices=vertices,
        boundary_polygon=rings,
        origin=plane_origin(normal, offset),
        tangent=tangent,
        bitangent=bitangent,
        boundary_is_approximate=approximate,
    )
