"""
HelixHeatX - Inlet/Outlet Port Features

Everything anchored at the four port frames:

  - supports: fans of beams from the port stub down to the build plate,
    tilted back towards the part and inwards towards the centre line.
    Angle signs mirror with the port's side (+/-X, +/-Y).
  - threads: solid reinforcement collars around each port stub
  - cuts: teardrop bores plus an entry chamfer that re-open the ports
    after all additive steps
  - screw cutters: thread cutters at each port (preview only)
"""

import logging
import math
import numpy as np
from typing import Optional

from ..kernel.voxels import Grid, Solid, union_all
from ..runtime import CancelToken, check_cancel
from .frame import Frame, UNIT_X, UNIT_Y, UNIT_Z, rotate_around_axis
from .lattice import Lattice
from .modules import lattice_manifold, thread_cutter, thread_reinforcement
from .profiles import trans_fixed

logger = logging.getLogger(__name__)


def support_directions(port: Frame, backward_deg: float, inward_deg: float) -> np.ndarray:
    """Downward direction tilted back towards the part and inwards towards y = 0."""
    back = -backward_deg if port.position[0] < 0 else backward_deg
    inward = inward_deg if port.position[1] < 0 else -inward_deg
    tilted = rotate_around_axis(-UNIT_Z, math.radians(back), UNIT_Y)
    return rotate_around_axis(tilted, math.radians(inward), UNIT_X)


def support_lattice(params, port: Frame) -> Lattice:
    """
    For each step along the port stub: a tapered beam from the stub down
    the 30° overhang line to a kink, then a straight leg to the build plate.
    """
    pp = params.ports
    io_radius = params.channel.io_radius_mm
    leg_dir = support_directions(port, pp.support_backward_deg[0], pp.support_inward_deg)
    kink_dir = support_directions(port, pp.support_backward_deg[1], pp.support_inward_deg)

    steps = np.arange(pp.support_steps)
    max_radius = trans_fixed(io_radius + pp.support_radius_margin_mm[0],
                             io_radius + pp.support_radius_margin_mm[1],
                             steps / pp.support_steps)
    drop = (max_radius - pp.support_min_radius_mm) / math.tan(math.radians(pp.support_overhang_deg))

    pt1 = port.position + (pp.support_start_mm - steps)[:, None] * port.local_z
    kink = pt1 + drop[:, None] * kink_dir
    pt2 = kink - (kink[:, 2] / leg_dir[2])[:, None] * leg_dir

    lat = Lattice()
    lat.add_beams(pt1, max_radius, kink, pp.support_min_radius_mm)
    lat.add_beams(kink, pp.support_min_radius_mm, pt2, pp.support_min_radius_mm)
    return lat


def generate_io_supports(params, layout, grid: Grid,
                         cancel: Optional[CancelToken] = None) -> Solid:
    lat = Lattice()
    for port in layout.ports.values():
        lat.extend(support_lattice(params, port))
    logger.info("io supports: %d beams", len(lat))
    return Solid.from_lattice(grid, lat, cancel)


def thread_frame(params, port: Frame) -> Frame:
    """Collar frame: lifted, turned to face the part, starting at the outer end of the stub."""
    pp = params.ports
    frame = port.translated(pp.thread_lift_mm * UNIT_Z).inverted(invert_z=True)
    return frame.translated(-pp.thread_length_mm * frame.local_z)


def generate_io_threads(params, layout, grid: Grid) -> Solid:
    pp = params.ports
    return union_all(grid, [
        thread_reinforcement(grid, thread_frame(params, port), pp.thread_length_mm,
                             params.channel.io_radius_mm, pp.thread_outer_radius_mm)
        for port in layout.ports.values()])


def io_cut_lattice(params, port: Frame) -> Lattice:
    pp = params.ports
    lat = lattice_manifold(port, pp.cut_length_mm, pp.cut_radius_mm)
    mouth = port.position + (pp.cut_length_mm + pp.chamfer_gap_mm) * port.local_z
    lat.add_beam(mouth, pp.chamfer_radii_mm[0],
                 mouth - pp.chamfer_length_mm * port.local_z, pp.chamfer_radii_mm[1],
                 round_cap=False)
    return lat


def generate_io_cuts(params, layout, grid: Grid,
                     cancel: Optional[CancelToken] = None) -> Solid:
    lat = Lattice()
    for port in layout.ports.values():
        lat.extend(io_cut_lattice(params, port))
    return Solid.from_lattice(grid, lat, cancel)


def generate_io_screw_cutters(params, layout, grid: Grid,
                              cancel: Optional[CancelToken] = None) -> Solid:
    pp = params.ports
    cutters = []
    for port in layout.ports.values():
        check_cancel(cancel)
        frame = port.translated(-pp.screw_cut_inset_mm * port.local_z)
        cutters.append(thread_cutter(grid, frame, pp.screw_cut_length_mm,
                                     pp.screw_cut_max_radius_mm, pp.screw_cut_core_radius_mm,
                                     pp.screw_cut_pitch_mm, params.flange.cutter_phi_step, cancel))
    return union_all(grid, cutters)
