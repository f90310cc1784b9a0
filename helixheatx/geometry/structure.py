"""
HelixHeatX - Outer Structure

The outer skin is a diagonal rib lattice: on each of the four sides of
the cube (phase 0, 90°, 180°, 270° around the helix axis) two ribs per
height step swing in phase as cos(2*pi*waves*z/L), crossing each other.
Each rib spans +/- rib_span around the quad outer boundary. The rib
lattice is closed up with an over-offset, smoothed, and clipped to the
bounding box.

Also builds the centre support wall along the helix axis and the
underside print web (shallow relief slots in the flat bottom plate).
"""

import logging
import math
import numpy as np
from typing import Optional

from ..kernel.voxels import Grid, Solid, union_all
from ..runtime import CancelToken, check_cancel
from .frame import Frame, cyl_point
from .lattice import Lattice
from .modules import box, box_from_region
from .profiles import ProfileShape, profile_radius

logger = logging.getLogger(__name__)

SIDES = (0.0, 0.5 * math.pi, math.pi, 1.5 * math.pi)


def outer_structure_lattice(params, layout) -> Lattice:
    sp = params.structure
    ch = params.channel
    shape = ProfileShape(ch.outer_profile)
    z = np.arange(0.0, ch.cube_size_mm + 1e-9, sp.rib_step_mm)
    swing = sp.rib_swing * np.cos(2.0 * math.pi * sp.rib_waves * z / ch.cube_size_mm)

    lat = Lattice()
    for side in SIDES:
        for sign in (1.0, -1.0):
            phi = side + sign * swing
            r = ch.outer_radius_mm * profile_radius(phi, shape)
            pt1 = layout.helix_frame.to_world(cyl_point(np.maximum(r - sp.rib_span_mm, 0.0), phi, z))
            pt2 = layout.helix_frame.to_world(cyl_point(r + sp.rib_span_mm, phi, z))
            lat.add_beams(pt1, sp.rib_radius_mm, pt2, sp.rib_radius_mm)
    return lat


def generate_outer_structure(params, layout, grid: Grid,
                             cancel: Optional[CancelToken] = None) -> Solid:
    sp = params.structure
    lat = outer_structure_lattice(params, layout)
    logger.info("outer structure: %d rib beams", len(lat))
    ribs = Solid.from_lattice(grid, lat, cancel)
    check_cancel(cancel)
    skin = ribs.over_offset(sp.over_offset_mm[0], sp.over_offset_mm[1]).smoothen(sp.smooth_mm)
    return skin.intersect(box_from_region(grid, layout.bounding))


def generate_centre_piece(params, layout, grid: Grid) -> Solid:
    """Support wall along the helix axis, filling the centre hole of the spiral."""
    length, width, depth = params.structure.centre_box_mm
    return box(grid, layout.helix_frame, length, width, depth)


def generate_print_web(params, layout, grid: Grid) -> Solid:
    """Crossed relief slots cut upwards from the bottom face inside the cube footprint."""
    sp = params.structure
    floor = params.pipeline.z_target_mm
    # Start below the floor so the slots open through the bottom face
    base = floor - sp.web_slot_depth_mm
    length = 2.0 * sp.web_slot_depth_mm
    span = 2.0 * sp.web_extent_mm
    k = int(math.floor(sp.web_extent_mm / sp.web_pitch_mm))
    offsets = sp.web_pitch_mm * np.arange(-k, k + 1)
    slots = []
    for c in offsets:
        slots.append(box(grid, Frame((0.0, c, base)), length, span, sp.web_slot_width_mm))
        slots.append(box(grid, Frame((c, 0.0, base)), length, sp.web_slot_width_mm, span))
    logger.info("print web: %d slots", len(slots))
    return union_all(grid, slots)
