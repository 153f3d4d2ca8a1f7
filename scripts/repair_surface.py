#!/usr/bin/env python3
"""
Snap a fragmented planar face of a mesh onto one consistent plane.

Usage:
    venv/bin/python3 scripts/repair_surface.py --input model.stl --triangle 12 --output fixed.stl

Exit codes:
    0: repair applied
    1: nothing to repair (mesh left unchanged)
"""
import sys
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import trimesh

from surface_repair import SurfaceRepairConfig, repair_surface


def main():
    parser = argparse.ArgumentParser(
        description="Repair a fragmented planar surface by vertex projection"
    )
    parser.add_argument(
        "--input", required=True, type=str, help="Mesh file (STL/OBJ/GLB)"
    )
    parser.add_argument(
        "--triangle", required=True, type=int,
        help="Index of the reference triangle on the surface to repair",
    )
    parser.add_argument(
        "--output", required=True, type=str, help="Repaired mesh output path",
    )
    parser.add_argument(
        "--match-angle", type=float, default=11.5,
        help="Max angle in degrees between region and reference normals (default: 11.5)",
    )
    parser.add_argument(
        "--match-distance", type=float, default=5.0,
        help="Max region distance from the reference plane (default: 5.0)",
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
    config = SurfaceRepairConfig(
        match_angle_deg=args.match_angle,
        match_distance=args.match_distance,
    )
    result = repair_surface(mesh, args.triangle, config=config)
    print(result.message)
    if not result.success:
        sys.exit(1)

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    result.repaired_mesh.export(out_path)
    print(f"Wrote {out_path}")


if __name__ == "__main__":
    main()
