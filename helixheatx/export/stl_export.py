"""
HelixHeatX - STL Export

Extracts the zero level set of a Solid with marching cubes and writes it
as an STL mesh ready for slicing. Export never modifies the Solid.
"""

import logging
import os
from typing import Dict, Optional

import numpy as np
from skimage import measure

try:
    import trimesh
    HAS_TRIMESH = True
except ImportError:
    HAS_TRIMESH = False

from ..kernel.voxels import Solid

logger = logging.getLogger(__name__)


def solid_to_mesh(solid: Solid, min_face_ratio: float = 0.0) -> 'trimesh.Trimesh':
    """
    Triangle mesh of the solid's surface in world coordinates.
    With min_face_ratio > 0, disconnected fragments smaller than that
    share of all faces are dropped.
    """
    if not HAS_TRIMESH:
        raise ImportError("trimesh is required for STL export. Install with: pip install trimesh")
    if solid.is_empty:
        raise ValueError("cannot mesh an empty solid")

    # Pad with one outside layer so parts touching the grid border close up
    field = np.pad(solid.sdf, 1, mode="constant", constant_values=solid.grid.far)
    vs = solid.grid.voxel_size
    # Negative inside: the field ascends outwards
    verts, faces, _, _ = measure.marching_cubes(field, level=0.0, spacing=(vs, vs, vs),
                                                gradient_direction="ascent")
    verts = verts + np.asarray(solid.grid.origin) - vs
    mesh = trimesh.Trimesh(vertices=verts, faces=faces)
    mesh.update_faces(mesh.nondegenerate_faces())
    mesh.remove_unreferenced_vertices()

    if min_face_ratio > 0:
        parts = mesh.split(only_watertight=False)
        if len(parts) > 1:
            min_faces = max(int(len(mesh.faces) * min_face_ratio), 1)
            large = [p for p in parts if len(p.faces) >= min_faces]
            if large:
                logger.info("filtered %d components -> %d", len(parts), len(large))
                mesh = trimesh.util.concatenate(large)
    return mesh


def export_stl(solid: Solid, filepath: str, verbose: bool = False,
               min_face_ratio: float = 0.0) -> str:
    """Write the solid's surface to an STL file; returns the path."""
    os.makedirs(os.path.dirname(filepath) or '.', exist_ok=True)
    mesh = solid_to_mesh(solid, min_face_ratio)
    mesh.export(filepath)

    size_kb = os.path.getsize(filepath) / 1024
    logger.info("wrote %s (%d verts, %d faces, %.0f KB)", filepath,
                len(mesh.vertices), len(mesh.faces), size_kb)
    if verbose:
        print(f"  -> {len(mesh.vertices):,} verts, "
              f"{len(mesh.faces):,} faces, {size_kb:.0f} KB")
    return filepath


def export_build(result, output_dir: str = "exports/stl", name: str = "HelixHeatX",
                 verbose: bool = True) -> Dict[str, str]:
    """Final part plus every available preview solid, one STL each."""
    os.makedirs(output_dir, exist_ok=True)
    solids: Dict[str, Optional[Solid]] = {
        name: result.final,
        "screw_holes": result.screw_holes,
        "flange_thread_cutters": result.flange_thread_cutters,
        "io_screw_cutters": result.io_screw_cutters,
    }
    for stage, solid in result.stages.items():
        solids[f"stage_{stage}"] = solid

    exported = {}
    for label, solid in solids.items():
        if solid is None or solid.is_empty:
            continue
        if verbose:
            print(f"  Exporting {label}...")
        exported[label] = export_stl(solid, os.path.join(output_dir, f"{label}.stl"), verbose)
    return exported
