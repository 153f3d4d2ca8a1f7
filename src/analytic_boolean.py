"""
Analytic bounding-box gate in front of the exact boolean solver.

Each operand's local bounding box is pushed through its full world
transform (translation, rotation and non-uniform scale) by transforming all
eight corners. Operands whose world boxes are disjoint on any axis cannot
intersect, so subtraction returns the target unchanged and union or
intersection callers are told there is nothing to combine. Overlapping
operands are handed on to the solver untouched.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np
import trimesh

from geometry_primitives import SurfaceIssue
from mesh_extraction import to_world, validate_transform
from shapes import Shape

logger = logging.getLogger(__name__)


class BooleanOperation(Enum):
    SUBTRACT = "subtract"
    UNION = "union"
    INTERSECT = "intersect"


@dataclass
class BooleanOperand:
    """A mesh in local coordinates plus its local-to-world transform."""
    mesh: trimesh.Trimesh
    transform: Optional[np.ndarray] = None

    @classmethod
    def from_shape(cls, shape: Shape) -> "BooleanOperand":
        return cls(mesh=shape.to_mesh(), transform=shape.world_transform())


@dataclass
class BooleanPrecheck:
    """Outcome of the bounding-box gate."""
    operation: BooleanOperation
    overlaps: bool
    requires_solver: bool
    target_aabb: Optional[np.ndarray]
    tool_aabb: Optional[np.ndarray]
    geometry: Optional[trimesh.Trimesh] = None    # unchanged target on disjoint subtract
    message: str = ""
    issue: Optional[SurfaceIssue] = None


Operand = Union[BooleanOperand, Shape]


def world_aabb(
    mesh: trimesh.Trimesh,
    transform: Optional[np.ndarray] = None,
) -> Optional[np.ndarray]:
    """World-space (2, 3) [min, max] box of *mesh*, or None if it has no extent."""
    matrix = validate_transform(transform)
    bounds = mesh.bounds
    if bounds is None or not np.all(np.isfinite(bounds)):
        return None
    corners = to_world(trimesh.bounds.corners(bounds), matrix)
    return np.array([corners.min(axis=0), corners.max(axis=0)])


def aabbs_overlap(box_a: np.ndarray, box_b: np.ndarray) -> bool:
    """Inclusive overlap test; touching boxes count as overlapping."""
    return bool(np.all(box_a[0] <= box_b[1]) and np.all(box_a[1] >= box_b[0]))


def precheck_boolean(
    target: Operand,
    tool: Operand,
    operation: BooleanOperation = BooleanOperation.SUBTRACT,
) -> BooleanPrecheck:
    """Short-circuit a boolean operation when the operands cannot intersect."""
    if not isinstance(operation, BooleanOperation):
        raise ValueError(f"Unknown boolean operation {operation!r}")

    target_op = _as_operand(target)
    tool_op = _as_operand(tool)
    target_box = world_aabb(target_op.mesh, target_op.transform)
    tool_box = world_aabb(tool_op.mesh, tool_op.transform)

    if target_box is None or tool_box is None:
        logger.warning("Boolean %s precheck: operand has no valid bounds", operation.value)
        return BooleanPrecheck(
            operation=operation,
            overlaps=False,
            requires_solver=False,
            target_aabb=target_box,
            tool_aabb=tool_box,
            geometry=_unchanged_target(target_op, operation),
            message="Operand has no valid bounding box",
            issue=SurfaceIssue.BOUNDS_COMPUTATION_FAILURE,
        )

    if not aabbs_overlap(target_box, tool_box):
        logger.info("Boolean %s skipped: bounding boxes do not overlap", operation.value)
        return BooleanPrecheck(
            operation=operation,
            overlaps=False,
            requires_solver=False,
            target_aabb=target_box,
            tool_aabb=tool_box,
            geometry=_unchanged_target(target_op, operation),
            message="No intersection between operands",
            issue=SurfaceIssue.NO_MATCH_FOUND,
        )

    logger.debug("Boolean %s: bounding boxes overlap, deferring to solver", operation.value)
    return BooleanPrecheck(
        operation=operation,
        overlaps=True,
        requires_solver=True,
        target_aabb=target_box,
        tool_aabb=tool_box,
        message="Bounding boxes overlap",
    )


def find_intersecting_shapes(
    selected: Shape,
    shapes: Sequence[Shape],
) -> List[Shape]:
    """Shapes whose world bounding box overlaps *selected*, excluding itself."""
    selected_box = world_aabb(selected.to_mesh(), selected.world_transform())
    if selected_box is None:
        return []

    hits = []
    for shape in shapes:
        if shape.id == selected.id:
            continue
        box = world_aabb(shape.to_mesh(), shape.world_transform())
        if box is not None and aabbs_overlap(selected_box, box):
            hits.append(shape)

    logger.info("Found %d shapes intersecting %s", len(hits), selected.id)
    return hits


def _as_operand(obj: Operand) -> BooleanOperand:
    if isinstance(obj, BooleanOperand):
        return obj
    if isinstance(obj, Shape):
        return BooleanOperand.from_shape(obj)
    raise TypeError(f"Expected BooleanOperand or Shape, got {type(obj).__name__}")


def _unchanged_target(
    target: BooleanOperand,
    operation: BooleanOperation,
) -> Optional[trimesh.Trimesh]:
    if operation is BooleanOperation.SUBTRACT:
        return target.mesh.copy()
    return None
