"""
Primitive shape variants with editor transforms.

Each variant builds its own triangle mesh and exposes the same
enumerate_faces() capability, so callers never branch on a shape type tag to
find face normals. Transforms follow the editor convention: position,
intrinsic XYZ Euler rotation in radians, and per-axis scale, composed as
T @ R @ S.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Sequence, Tuple

import numpy as np
import trimesh
from scipy.spatial.transform import Rotation
from shapely.geometry import Polygon
from shapely.geometry.polygon import orient

logger = logging.getLogger(__name__)

# Face normals within this dot product of a face direction belong to it.
_FACE_DOT = 1.0 - 1e-6


class ShapeKind(Enum):
    """Closed set of primitive variants."""
    BOX = "box"
    CYLINDER = "cylinder"
    EXTRUSION = "extrusion"


@dataclass
class ShapeFace:
    """A named face of a primitive and the mesh triangles that make it up."""
    name: str
    normal: Optional[np.ndarray]        # local unit normal; None when curved
    triangle_indices: List[int] = field(default_factory=list)

    @property
    def is_planar(self) -> bool:
        return self.normal is not None


def compose_transform(
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation: Sequence[float] = (0.0, 0.0, 0.0),
    scale: Sequence[float] = (1.0, 1.0, 1.0),
) -> np.ndarray:
    """4x4 local-to-world matrix from position, XYZ Euler rotation and scale."""
    matrix = np.eye(4)
    rot = Rotation.from_euler("XYZ", np.asarray(rotation, dtype=float)).as_matrix()
    matrix[:3, :3] = rot @ np.diag(np.asarray(scale, dtype=float))
    matrix[:3, 3] = np.asarray(position, dtype=float)
    return matrix


@dataclass
class Shape:
    """Base for primitive variants: identity plus world placement."""
    id: str
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))

    kind: ClassVar[ShapeKind]
    curved_face: ClassVar[Optional[str]] = None

    def world_transform(self) -> np.ndarray:
        return compose_transform(self.position, self.rotation, self.scale)

    def to_mesh(self) -> trimesh.Trimesh:
        raise NotImplementedError

    def face_directions(self) -> List[Tuple[str, np.ndarray]]:
        raise NotImplementedError

    def enumerate_faces(self) -> List[ShapeFace]:
        """Assign each mesh triangle to the named face whose normal it matches."""
        mesh = self.to_mesh()
        normals = np.asarray(mesh.face_normals, dtype=float)
        faces = [ShapeFace(name, np.asarray(d, dtype=float)) for name, d in self.face_directions()]
        curved = ShapeFace(self.curved_face, None) if self.curved_face else None

        for tri, n in enumerate(normals):
            for face in faces:
                if float(np.dot(n, face.normal)) > _FACE_DOT:
                    face.triangle_indices.append(tri)
                    break
            else:
                if curved is not None:
                    curved.triangle_indices.append(tri)
                else:
                    logger.debug("%s triangle %d matches no face direction", self.id, tri)

        result = [f for f in faces if f.triangle_indices]
        if curved is not None and curved.triangle_indices:
            result.append(curved)
        return result


@dataclass
class BoxShape(Shape):
    width: float = 1.0      # x
    height: float = 1.0     # y
    depth: float = 1.0      # z

    kind: ClassVar[ShapeKind] = ShapeKind.BOX

    def to_mesh(self) -> trimesh.Trimesh:
        return trimesh.creation.box(extents=[self.width, self.height, self.depth])

    def face_directions(self) -> List[Tuple[str, np.ndarray]]:
        return [
            ("right", np.array([1.0, 0.0, 0.0])),
            ("left", np.array([-1.0, 0.0, 0.0])),
            ("top", np.array([0.0, 1.0, 0.0])),
            ("bottom", np.array([0.0, -1.0, 0.0])),
            ("front", np.array([0.0, 0.0, 1.0])),
            ("back", np.array([0.0, 0.0, -1.0])),
        ]


@dataclass
class CylinderShape(Shape):
    """Cylinder centred on the origin with its axis along +Y."""
    radius: float = 0.5
    height: float = 1.0
    sections: int = 32

    kind: ClassVar[ShapeKind] = ShapeKind.CYLINDER
    curved_face: ClassVar[Optional[str]] = "side"

    def to_mesh(self) -> trimesh.Trimesh:
        mesh = trimesh.creation.cylinder(
            radius=self.radius, height=self.height, sections=self.sections,
        )
        # trimesh builds along +Z
        mesh.apply_transform(trimesh.transformations.rotation_matrix(-np.pi / 2, [1, 0, 0]))
        return mesh

    def face_directions(self) -> List[Tuple[str, np.ndarray]]:
        return [
            ("top", np.array([0.0, 1.0, 0.0])),
            ("bottom", np.array([0.0, -1.0, 0.0])),
        ]


@dataclass
class ExtrusionShape(Shape):
    """Closed 2D profile in the XY plane extruded along +Z."""
    profile: List[Tuple[float, float]] = field(default_factory=list)
    height: float = 1.0

    kind: ClassVar[ShapeKind] = ShapeKind.EXTRUSION

    def _polygon(self) -> Polygon:
        if len(self.profile) < 3:
            raise ValueError(f"Extrusion {self.id} needs at least 3 profile points")
        return orient(Polygon(self.profile), sign=1.0)

    def to_mesh(self) -> trimesh.Trimesh:
        return trimesh.creation.extrude_polygon(self._polygon(), height=self.height)

    def face_directions(self) -> List[Tuple[str, np.ndarray]]:
        directions = [
            ("top", np.array([0.0, 0.0, 1.0])),
            ("bottom", np.array([0.0, 0.0, -1.0])),
        ]
        coords = np.asarray(self._polygon().exterior.coords, dtype=float)
        for i in range(len(coords) - 1):
            dx, dy = coords[i + 1] - coords[i]
            length = float(np.hypot(dx, dy))
            if length < 1e-12:
                continue
            # Counter-clockwise profile: outward normal is the edge turned right
            directions.append((f"side_{i}", np.array([dy / length, -dx / length, 0.0])))
        return directions
