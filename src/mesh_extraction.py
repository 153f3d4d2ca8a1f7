"""
World-space triangle extraction from a mesh and its transform.

Accepts either a trimesh.Trimesh or flat vertex/index buffers as emitted by
primitive constructors and the CSG solver. Degenerate triangles (zero-length
normal, non-finite coordinates) are flagged invalid rather than raising.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import trimesh

logger = logging.getLogger(__name__)


@dataclass
class WorldTriangles:
    """Per-triangle world-space geometry for one mesh."""
    vertices: np.ndarray    # (N, 3, 3)
    normals: np.ndarray     # (N, 3) unit normals, zero rows where invalid
    centers: np.ndarray     # (N, 3)
    areas: np.ndarray       # (N,)
    valid: np.ndarray       # (N,) bool

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def degenerate_count(self) -> int:
        return int(len(self.valid) - np.count_nonzero(self.valid))


def mesh_from_buffers(
    positions,
    indices=None,
) -> trimesh.Trimesh:
    """Build a mesh from a flat position buffer and optional index buffer.

    Non-indexed input is treated as a triangle soup (every three consecutive
    vertices form a triangle). Vertex order and count are preserved.
    """
    verts = np.asarray(positions, dtype=float).reshape(-1, 3)
    if indices is None:
        n_tri = len(verts) // 3
        faces = np.arange(n_tri * 3, dtype=np.int64).reshape(-1, 3)
    else:
        faces = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    return trimesh.Trimesh(vertices=verts, faces=faces, process=False)


def validate_transform(transform: Optional[np.ndarray]) -> np.ndarray:
    if transform is None:
        return np.eye(4)
    matrix = np.asarray(transform, dtype=float)
    if matrix.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got shape {matrix.shape}")
    return matrix


def to_world(
    points: np.ndarray,
    transform: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Map (n, 3) local points through *transform* into world space."""
    matrix = validate_transform(transform)
    pts = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(pts) == 0:
        return pts
    return trimesh.transformations.transform_points(pts, matrix)


def world_vertices(
    mesh: trimesh.Trimesh,
    transform: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Mesh vertices mapped through *transform* into world space."""
    return to_world(mesh.vertices, transform)


def extract_world_triangles(
    mesh: trimesh.Trimesh,
    transform: Optional[np.ndarray] = None,
) -> WorldTriangles:
    """Read world-space triangle vertices, normals, centres and areas."""
    verts = world_vertices(mesh, transform)
    faces = np.asarray(mesh.faces, dtype=np.int64)
    if len(faces) == 0:
        empty = np.zeros((0, 3))
        return WorldTriangles(
            vertices=np.zeros((0, 3, 3)),
            normals=empty,
            centers=empty.copy(),
            areas=np.zeros(0),
            valid=np.zeros(0, dtype=bool),
        )

    triangles = verts[faces]  # (N, 3, 3)
    finite = np.all(np.isfinite(triangles.reshape(len(faces), -1)), axis=1)

    normals = np.zeros((len(faces), 3))
    valid = np.zeros(len(faces), dtype=bool)
    if np.any(finite):
        # trimesh drops zero-length normals and reports which rows survived
        unit, ok = trimesh.triangles.normals(triangles[finite])
        finite_idx = np.nonzero(finite)[0]
        good_idx = finite_idx[ok]
        normals[good_idx] = unit
        valid[good_idx] = True

    with np.errstate(invalid="ignore"):
        centers = triangles.mean(axis=1)
        areas = np.zeros(len(faces))
        if np.any(valid):
            areas[valid] = trimesh.triangles.area(triangles[valid])

    if not np.all(valid):
        logger.debug(
            "Skipping %d degenerate triangles of %d",
            int(len(faces) - np.count_nonzero(valid)), len(faces),
        )

    return WorldTriangles(
        vertices=triangles,
        normals=normals,
        centers=centers,
        areas=areas,
        valid=valid,
    )
