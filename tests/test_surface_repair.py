"""Tests for surface_repair module."""
import numpy as np
import pytest
import trimesh

import surface_repair
from geometry_primitives import SurfaceIssue
from mesh_extraction import mesh_from_buffers
from plane_extraction import PlaneGroupingConfig, group_planar_faces
from shapes import compose_transform
from surface_repair import SurfaceRepairConfig, find_matching_regions, repair_surface


class TestRepairSurface:
    """Test vertex-projection repair of fragmented faces."""

    def test_fragments_snap_to_anchor_plane(self, fragmented_patch_mesh):
        n_verts = len(fragmented_patch_mesh.vertices)
        n_faces = len(fragmented_patch_mesh.faces)

        result = repair_surface(fragmented_patch_mesh, 0)

        assert result.success
        assert result.repaired_region_count == 1
        assert result.moved_vertex_count == n_verts
        assert result.repaired_mesh is fragmented_patch_mesh
        np.testing.assert_allclose(result.repaired_mesh.vertices[:, 2], 0.0, atol=1e-9)
        assert len(result.repaired_mesh.vertices) == n_verts
        assert len(result.repaired_mesh.faces) == n_faces

    def test_repaired_patch_groups_as_one_region(self, fragmented_patch_mesh):
        repair_surface(fragmented_patch_mesh, 4)
        regions = group_planar_faces(fragmented_patch_mesh)
        assert len(regions) == 1
        assert regions[0].area == pytest.approx(400.0)

    def test_anchor_is_largest_region(self, fragmented_patch_mesh):
        # Picking a triangle on the small raised fragment still anchors at z=0
        result = repair_surface(fragmented_patch_mesh, 2)
        normal, offset = result.anchor_plane
        assert abs(normal[2]) == pytest.approx(1.0)
        assert offset == pytest.approx(0.0)

    def test_no_coplanar_regions_is_noop(self, tetrahedron_mesh):
        before = tetrahedron_mesh.vertices.copy()
        result = repair_surface(tetrahedron_mesh, 0)

        assert not result.success
        assert result.repaired_region_count == 0
        assert result.issue is SurfaceIssue.NO_MATCH_FOUND
        np.testing.assert_array_equal(tetrahedron_mesh.vertices, before)

    def test_reference_out_of_range(self, fragmented_patch_mesh):
        result = repair_surface(fragmented_patch_mesh, 99)
        assert not result.success
        assert result.issue is SurfaceIssue.INPUT_DEGENERATE

    def test_far_fragment_left_alone(self, fragmented_patch_mesh):
        config = SurfaceRepairConfig(match_distance=1.8)
        result = repair_surface(fragmented_patch_mesh, 0, config=config)

        assert result.repaired_region_count == 1
        z = fragmented_patch_mesh.vertices[:, 2]
        np.testing.assert_allclose(z[4:8], 2.0)
        np.testing.assert_allclose(z[8:], 0.0, atol=1e-9)

    def test_single_triangle_fragments(self):
        """Loose repair grouping gathers offset one-triangle pieces of a face."""
        mesh = mesh_from_buffers([
            [0, 0, 0], [10, 0, 0], [0, 10, 0],
            [10, 0, 1.5], [20, 0, 1.5], [10, 10, 1.5],
            [20, 0, -1.2], [30, 0, -1.2], [20, 10, -1.2],
        ])
        result = repair_surface(mesh, 0)

        assert result.success
        assert result.repaired_region_count == 1
        assert result.moved_vertex_count == 9
        np.testing.assert_allclose(mesh.vertices[:, 2], 0.0, atol=1e-9)

    def test_strict_grouping_leaves_single_triangles(self):
        mesh = mesh_from_buffers([
            [0, 0, 0], [10, 0, 0], [0, 10, 0],
            [10, 0, 1.5], [20, 0, 1.5], [10, 10, 1.5],
        ])
        config = SurfaceRepairConfig(grouping=PlaneGroupingConfig(build_boundaries=False))
        result = repair_surface(mesh, 0, config=config)

        assert not result.success
        assert result.issue is SurfaceIssue.NO_MATCH_FOUND

    def test_non_finite_vertex_elsewhere_is_ignored(self, fragmented_patch_mesh):
        vertices = np.vstack([
            fragmented_patch_mesh.vertices,
            [[50, 50, 0], [np.nan, 50, 0], [50, 60, 0]],
        ])
        faces = np.vstack([fragmented_patch_mesh.faces, [[12, 13, 14]]])
        mesh = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)

        result = repair_surface(mesh, 0)

        assert result.success
        assert result.issue is None
        assert result.moved_vertex_count == 12
        np.testing.assert_allclose(mesh.vertices[:12, 2], 0.0, atol=1e-9)
        assert np.isnan(mesh.vertices[13, 0])
        np.testing.assert_allclose(mesh.vertices[[12, 14]], [[50, 50, 0], [50, 60, 0]])

    def test_world_transform_round_trip(self, fragmented_patch_mesh):
        """Projection happens in world space; the buffer stays local."""
        matrix = compose_transform(position=(5, 0, 100), scale=(2, 2, 2))
        result = repair_surface(fragmented_patch_mesh, 0, transform=matrix)

        assert result.success
        assert result.repaired_region_count == 1
        np.testing.assert_allclose(fragmented_patch_mesh.vertices[:, 2], 0.0, atol=1e-9)
        np.testing.assert_allclose(fragmented_patch_mesh.vertices[1, :2], [20.0, 0.0])
        assert abs(result.anchor_plane[1]) == pytest.approx(100.0)

    def test_failure_restores_vertices(self, fragmented_patch_mesh, monkeypatch):
        before = fragmented_patch_mesh.vertices.copy()

        def boom(mesh, targets):
            raise ValueError("bounds exploded")

        monkeypatch.setattr(surface_repair, "_refresh_derived", boom)
        result = repair_surface(fragmented_patch_mesh, 0)

        assert not result.success
        assert result.issue is SurfaceIssue.BOUNDS_COMPUTATION_FAILURE
        assert "bounds exploded" in result.message
        np.testing.assert_array_equal(fragmented_patch_mesh.vertices, before)


class TestFindMatchingRegions:

    def test_singletons_never_match(self, tetrahedron_mesh):
        regions = group_planar_faces(tetrahedron_mesh)
        matches = find_matching_regions(regions, np.array([0, 0, -1.0]), np.zeros(3))
        assert matches == []

    def test_tilted_region_rejected(self, box_mesh):
        regions = group_planar_faces(box_mesh)
        up = np.array([0.0, 0.0, 1.0])
        matches = find_matching_regions(regions, up, np.array([0.0, 0.0, 50.0]))
        assert len(matches) == 1
        assert matches[0].normal[2] == pytest.approx(1.0)
