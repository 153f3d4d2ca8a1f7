"""
Surface repair: snap a fragmented planar face onto one consistent plane.

Given a user-picked reference triangle, groups the mesh with a loose repair
tolerance so slightly offset fragments (single triangles included) land in
one region, keeps the multi-triangle regions whose plane agrees with the
reference, selects the largest as the anchor, and projects every vertex of
the matched regions onto the anchor plane. This is a vertex-projection
repair: triangle and vertex counts never change.

The mesh's vertex buffer is replaced in a single assignment; on any failure
the original buffer is restored and the result reports success=False.
Non-finite vertices elsewhere in the mesh are left untouched.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import trimesh
from scipy.spatial import KDTree

from coplanarity import REPAIR_TOLERANCE, CoplanarityTolerance
from geometry_primitives import PlanarRegion, SurfaceIssue, project_points_to_plane
from mesh_extraction import extract_world_triangles, to_world, validate_transform
from plane_extraction import PlaneGroupingConfig, group_planar_faces

logger = logging.getLogger(__name__)


@dataclass
class SurfaceRepairConfig:
    """Configuration for surface repair."""

    match_angle_deg: float = REPAIR_TOLERANCE.normal_angle_deg
    match_distance: float = REPAIR_TOLERANCE.plane_distance
    vertex_match_tolerance: float = 0.1
    min_region_triangles: int = 2
    # Defaults to grouping with the match gates; boundaries unused.
    grouping: Optional[PlaneGroupingConfig] = None

    def __post_init__(self):
        if self.grouping is None:
            self.grouping = PlaneGroupingConfig(
                tolerance=CoplanarityTolerance(
                    normal_angle_rad=float(np.radians(self.match_angle_deg)),
                    plane_distance=self.match_distance,
                ),
                build_boundaries=False,
            )


@dataclass
class RepairResult:
    """Outcome of one repair invocation."""

    repaired_mesh: trimesh.Trimesh
    repaired_region_count: int
    message: str
    success: bool
    moved_vertex_count: int = 0
    anchor_plane: Optional[Tuple[np.ndarray, float]] = None
    issue: Optional[SurfaceIssue] = None


def repair_surface(
    mesh: trimesh.Trimesh,
    reference_triangle: int,
    transform: Optional[np.ndarray] = None,
    config: Optional[SurfaceRepairConfig] = None,
) -> RepairResult:
    """Project all surface regions matching *reference_triangle* onto one plane.

    Mutates ``mesh.vertices`` in place on success and returns the same mesh
    object as ``repaired_mesh``.
    """
    if config is None:
        config = SurfaceRepairConfig()
    matrix = validate_transform(transform)

    tris = extract_world_triangles(mesh, matrix)
    if not 0 <= reference_triangle < len(tris) or not tris.valid[reference_triangle]:
        return _unchanged(
            mesh,
            f"Reference triangle {reference_triangle} is missing or degenerate",
            SurfaceIssue.INPUT_DEGENERATE,
        )

    ref_normal = tris.normals[reference_triangle]
    ref_center = tris.centers[reference_triangle]

    regions = group_planar_faces(mesh, matrix, config.grouping)
    matches = find_matching_regions(regions, ref_normal, ref_center, config)
    if not matches:
        logger.info("No surface regions match reference triangle %d", reference_triangle)
        return _unchanged(mesh, "No coplanar surface regions found", SurfaceIssue.NO_MATCH_FOUND)

    anchor = max(matches, key=lambda r: r.area)
    logger.debug(
        "Anchor %s: %d triangles, area %.3f",
        anchor.id, anchor.triangle_count, anchor.area,
    )

    original = np.array(mesh.vertices, dtype=float, copy=True)
    try:
        repaired, targets = _project_regions(
            original, matrix, matches, anchor, config.vertex_match_tolerance,
        )
        if not np.all(np.isfinite(repaired[targets])):
            return _unchanged(
                mesh,
                "Repair produced non-finite vertices",
                SurfaceIssue.BOUNDS_COMPUTATION_FAILURE,
            )
        mesh.vertices = repaired
        _refresh_derived(mesh, targets)
    except Exception as exc:
        logger.warning("Surface repair failed, restoring original vertices: %s", exc)
        mesh.vertices = original
        return _unchanged(
            mesh,
            f"Repair failed: {exc}",
            SurfaceIssue.BOUNDS_COMPUTATION_FAILURE,
        )

    moved = len(targets)
    message = f"Repaired {len(matches)} surface regions ({moved} vertices projected)"
    logger.info(message)
    return RepairResult(
        repaired_mesh=mesh,
        repaired_region_count=len(matches),
        message=message,
        success=True,
        moved_vertex_count=moved,
        anchor_plane=(anchor.normal.copy(), float(anchor.plane_offset)),
    )


def find_matching_regions(
    regions: List[PlanarRegion],
    reference_normal: np.ndarray,
    reference_center: np.ndarray,
    config: Optional[SurfaceRepairConfig] = None,
) -> List[PlanarRegion]:
    """Multi-triangle regions aligned with and near the reference plane."""
    if config is None:
        config = SurfaceRepairConfig()

    cos_thresh = float(np.cos(np.radians(config.match_angle_deg)))
    ref_offset = float(np.dot(reference_normal, reference_center))

    matches = []
    for region in regions:
        if region.triangle_count < config.min_region_triangles:
            continue
        if abs(float(np.dot(region.normal, reference_normal))) < cos_thresh:
            continue
        dist = abs(float(np.dot(reference_normal, region.centroid)) - ref_offset)
        if dist >= config.match_distance:
            continue
        matches.append(region)
    return matches


def _project_regions(
    local_vertices: np.ndarray,
    matrix: np.ndarray,
    regions: List[PlanarRegion],
    anchor: PlanarRegion,
    tolerance: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """New local vertex buffer with matched-region vertices on the anchor plane.

    Buffer entries are correlated with region vertices by proximity, so
    coincident duplicates in unwelded meshes move together. Non-finite
    entries are never candidates.

    Returns:
        (vertices, targets) where targets are the rewritten buffer indices.
    """
    world = to_world(local_vertices, matrix)
    out = local_vertices.copy()
    finite_idx = np.nonzero(np.all(np.isfinite(world), axis=1))[0]
    if len(finite_idx) == 0:
        return out, np.zeros(0, dtype=np.int64)
    if len(finite_idx) < len(world):
        logger.debug("Ignoring %d non-finite vertices", len(world) - len(finite_idx))

    tree = KDTree(world[finite_idx])
    region_points = np.vstack([r.vertices for r in regions])
    hits = tree.query_ball_point(region_points, r=tolerance)
    targets = np.array(
        sorted({int(finite_idx[i]) for group in hits for i in group}),
        dtype=np.int64,
    )
    if len(targets) == 0:
        return out, targets

    normal, offset = anchor.plane
    projected = project_points_to_plane(world[targets], normal, offset)
    if np.allclose(matrix, np.eye(4)):
        out[targets] = projected
    else:
        inverse = np.linalg.inv(matrix)
        out[targets] = trimesh.transformations.transform_points(projected, inverse)
    return out, targets


def _refresh_derived(mesh: trimesh.Trimesh, targets: np.ndarray) -> None:
    """Recompute per-vertex normals and bounds after a vertex rewrite.

    Only the rewritten vertices and the finite part of the buffer are
    checked; untouched non-finite vertices stay as they were.
    """
    vertices = np.asarray(mesh.vertices, dtype=float)
    finite = np.all(np.isfinite(vertices), axis=1)
    if not np.all(finite[targets]):
        raise ValueError("Repaired vertices are not finite")
    with np.errstate(invalid="ignore", divide="ignore"):
        normals = np.asarray(mesh.vertex_normals)[targets]
    bounds = np.array([vertices[finite].min(axis=0), vertices[finite].max(axis=0)])
    if not np.all(np.isfinite(bounds)) or not np.all(np.isfinite(normals)):
        raise ValueError("Repaired mesh has invalid bounds or normals")


def _unchanged(
    mesh: trimesh.Trimesh,
    message: str,
    issue: SurfaceIssue,
) -> RepairResult:
    return RepairResult(
        repaired_mesh=mesh,
        repaired_region_count=0,
        message=message,
        success=False,
        issue=issue,
    )
