#!/usr/bin/env python3
"""
Group the coplanar triangles of a mesh file into planar regions.

Prints one line per region (or writes a JSON summary) so fragmented faces
left behind by CSG operations can be inspected before repair.

Usage:
    venv/bin/python3 scripts/group_planar_faces.py --input model.stl
    venv/bin/python3 scripts/group_planar_faces.py --input model.stl --plane-distance 5 --json regions.json
"""
import sys
import argparse
import json
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import trimesh

from coplanarity import CoplanarityTolerance
from geometry_primitives import region_to_dict
from plane_extraction import PlaneGroupingConfig, group_planar_faces, multi_triangle_regions


def main():
    parser = argparse.ArgumentParser(
        description="Group coplanar mesh triangles into planar regions"
    )
    parser.add_argument(
        "--input", required=True, type=str, help="Mesh file (STL/OBJ/GLB)"
    )
    parser.add_argument(
        "--normal-angle", type=float, default=1e-3,
        help="Normal angle tolerance in radians (default: 1e-3)",
    )
    parser.add_argument(
        "--plane-distance", type=float, default=1.0,
        help="Plane distance tolerance in mesh units (default: 1.0)",
    )
    parser.add_argument(
        "--weld-distance", type=float, default=1.0,
        help="Vertex welding distance in mesh units (default: 1.0)",
    )
    parser.add_argument(
        "--multi-only", action="store_true",
        help="Only report regions with more than one triangle",
    )
    parser.add_argument(
        "--json", type=str, default=None,
        help="Write region summaries to this JSON file",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="DEBUG logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    mesh = trimesh.load(args.input, force="mesh", process=False)
    config = PlaneGroupingConfig(
        tolerance=CoplanarityTolerance(
            normal_angle_rad=args.normal_angle,
            plane_distance=args.plane_distance,
        ),
        weld_distance=args.weld_distance,
    )
    regions = group_planar_faces(mesh, config=config)
    if args.multi_only:
        regions = multi_triangle_regions(regions)

    for region in regions:
        n = region.normal
        print(
            f"{region.id}: {region.triangle_count} triangles, "
            f"area {region.area:.2f}, normal ({n[0]:.3f}, {n[1]:.3f}, {n[2]:.3f}), "
            f"{len(region.boundary_polygon)} rings"
            + (" [hull]" if region.boundary_is_approximate else "")
        )

    if args.json:
        out_path = Path(args.json)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w") as f:
            json.dump([region_to_dict(r) for r in regions], f, indent=2)
        print(f"Wrote {len(regions)} regions to {out_path}")


if __name__ == "__main__":
    main()
