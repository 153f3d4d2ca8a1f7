"""
Shared test fixtures for coplanar surface reconstruction tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def quad_mesh_parts(x0, y0, x1, y1, z=0.0):
    """Vertices and faces of an axis-aligned quad split along its diagonal."""
    vertices = np.array([
        [x0, y0, z], [x1, y0, z], [x1, y1, z], [x0, y1, z],
    ], dtype=float)
    faces = np.array([[0, 1, 2], [0, 2, 3]])
    return vertices, faces


def soup(parts):
    """Concatenate (vertices, faces) pairs without sharing any vertices."""
    vertices, faces = [], []
    offset = 0
    for verts, fcs in parts:
        vertices.append(verts)
        faces.append(np.asarray(fcs) + offset)
        offset += len(verts)
    return trimesh.Trimesh(
        vertices=np.vstack(vertices), faces=np.vstack(faces), process=False,
    )


@pytest.fixture
def unit_square_mesh():
    """A unit square at z=0 split into two triangles along its diagonal."""
    return soup([quad_mesh_parts(0.0, 0.0, 1.0, 1.0)])


@pytest.fixture
def box_mesh():
    """A simple 100x100x100mm box mesh centred on the origin."""
    return trimesh.creation.box(extents=[100, 100, 100])


@pytest.fixture
def frame_mesh():
    """A 30x30 square with a 10x10 hole, built from four rectangles."""
    return soup([
        quad_mesh_parts(0, 0, 30, 10),
        quad_mesh_parts(0, 20, 30, 30),
        quad_mesh_parts(0, 10, 10, 20),
        quad_mesh_parts(20, 10, 30, 20),
    ])


@pytest.fixture
def stepped_triangles_mesh():
    """Five disjoint parallel triangles at z = 0, 0.5, 1.0, 1.5, 2.0."""
    parts = []
    for i in range(5):
        x = 10.0 * i
        z = 0.5 * i
        verts = np.array([[x, 0, z], [x + 5, 0, z], [x, 5, z]], dtype=float)
        parts.append((verts, [[0, 1, 2]]))
    return soup(parts)


@pytest.fixture
def fragmented_patch_mesh():
    """Three quad fragments of one face, offset from each other along z.

    The 20x10 fragment at z=0 is the largest; the others sit 2.0 above and
    1.5 below it, too far apart to group but within repair range.
    """
    return soup([
        quad_mesh_parts(0, 0, 20, 10, z=0.0),
        quad_mesh_parts(20, 0, 30, 10, z=2.0),
        quad_mesh_parts(0, 10, 10, 20, z=-1.5),
    ])


@pytest.fixture
def tetrahedron_mesh():
    """A tetrahedron: every face is its own plane."""
    vertices = np.array([
        [0, 0, 0], [10, 0, 0], [0, 10, 0], [0, 0, 10],
    ], dtype=float)
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
