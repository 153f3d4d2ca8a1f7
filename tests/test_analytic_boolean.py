"""Tests for the bounding-box boolean gate."""
import numpy as np
import pytest

from analytic_boolean import (
    BooleanOperand,
    BooleanOperation,
    aabbs_overlap,
    find_intersecting_shapes,
    precheck_boolean,
    world_aabb,
)
from geometry_primitives import SurfaceIssue
from shapes import BoxShape, CylinderShape


class TestPrecheckBoolean:

    def test_disjoint_subtract_returns_target(self):
        target = BoxShape(id="a")
        tool = BoxShape(id="b", position=np.array([5.0, 0.0, 0.0]))
        check = precheck_boolean(target, tool, BooleanOperation.SUBTRACT)

        assert not check.overlaps
        assert not check.requires_solver
        assert check.issue is SurfaceIssue.NO_MATCH_FOUND
        np.testing.assert_allclose(check.geometry.vertices, target.to_mesh().vertices)

    def test_overlapping_defers_to_solver(self):
        target = BoxShape(id="a", width=2.0, height=2.0, depth=2.0)
        tool = BoxShape(id="b", position=np.array([0.5, 0.5, 0.5]))
        check = precheck_boolean(target, tool)

        assert check.overlaps
        assert check.requires_solver
        assert check.geometry is None
        assert check.issue is None

    def test_non_uniform_scale_counts(self):
        """A stretched box reaches a tool its unscaled box would miss."""
        target = BoxShape(id="a", scale=np.array([8.0, 1.0, 1.0]))
        tool = BoxShape(id="b", position=np.array([3.0, 0.0, 0.0]))
        assert precheck_boolean(target, tool).overlaps
        assert not precheck_boolean(BoxShape(id="c"), tool).overlaps

    def test_rotation_counts(self):
        target = BoxShape(id="a", width=10.0, rotation=np.array([0.0, 0.0, np.pi / 2]))
        tool = BoxShape(id="b", position=np.array([0.0, 4.0, 0.0]))
        assert precheck_boolean(target, tool).overlaps

    def test_disjoint_on_one_axis_only(self):
        target = BoxShape(id="a")
        tool = BoxShape(id="b", position=np.array([0.0, 0.0, 3.0]))
        assert not precheck_boolean(target, tool).overlaps

    def test_touching_boxes_overlap(self):
        target = BoxShape(id="a")
        tool = BoxShape(id="b", position=np.array([1.0, 0.0, 0.0]))
        assert precheck_boolean(target, tool).overlaps

    def test_disjoint_union_has_no_geometry(self):
        target = BoxShape(id="a")
        tool = CylinderShape(id="b", position=np.array([0.0, 10.0, 0.0]))
        check = precheck_boolean(target, tool, BooleanOperation.UNION)
        assert not check.overlaps
        assert check.geometry is None

    def test_raw_operands(self, box_mesh):
        target = BooleanOperand(box_mesh)
        tool = BooleanOperand(box_mesh.copy(), np.diag([1.0, 1.0, 1.0, 1.0]))
        assert precheck_boolean(target, tool).overlaps

    def test_rejects_unknown_operand(self, box_mesh):
        with pytest.raises(TypeError):
            precheck_boolean(box_mesh, BoxShape(id="b"))


class TestWorldAabb:

    def test_rotated_box(self):
        shape = BoxShape(id="a", rotation=np.array([0.0, 0.0, np.pi / 4]))
        box = world_aabb(shape.to_mesh(), shape.world_transform())
        np.testing.assert_allclose(box[:, 0], [-np.sqrt(0.5), np.sqrt(0.5)])
        np.testing.assert_allclose(box[:, 2], [-0.5, 0.5])

    def test_overlap_is_symmetric(self):
        a = np.array([[0, 0, 0], [1, 1, 1]], dtype=float)
        b = np.array([[0.5, 0.5, 0.5], [2, 2, 2]], dtype=float)
        c = np.array([[1.5, 0, 0], [2, 1, 1]], dtype=float)
        assert aabbs_overlap(a, b) and aabbs_overlap(b, a)
        assert not aabbs_overlap(a, c) and not aabbs_overlap(c, a)


class TestFindIntersectingShapes:

    def test_excludes_selected_and_far_shapes(self):
        selected = BoxShape(id="a")
        near = BoxShape(id="near", position=np.array([0.8, 0.0, 0.0]))
        far = BoxShape(id="far", position=np.array([9.0, 0.0, 0.0]))
        hits = find_intersecting_shapes(selected, [selected, near, far])
        assert [s.id for s in hits] == ["near"]
