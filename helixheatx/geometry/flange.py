"""
HelixHeatX - Mounting Flange

Six cylindrical pads on the base plate, each with a screw hole cutter
above it and a thread cutter below it. The pads are rounded into each
other with an over-offset and smoothed; screw holes are subtracted later
in the pipeline, the thread cutters are only returned for preview.
"""

import itertools
import logging
import numpy as np
from dataclasses import dataclass
from typing import List, Optional

from ..kernel.voxels import Grid, Solid, union_all
from ..runtime import CancelToken, check_cancel
from .frame import Frame
from .lattice import Lattice
from .modules import cylinder, screw_hole, thread_cutter

logger = logging.getLogger(__name__)


@dataclass
class FlangeResult:
    pads: Solid
    screw_holes: Solid
    thread_cutters: Optional[Solid]


def flange_positions(params) -> List[np.ndarray]:
    fp = params.flange
    return [np.array([x, y, 0.0]) for x, y in itertools.product(fp.x_positions_mm, fp.y_positions_mm)]


def screw_hole_lattice(params) -> Lattice:
    fp = params.flange
    lat = Lattice()
    for pos in flange_positions(params):
        frame = Frame(pos + np.array([0.0, 0.0, fp.screw_height_mm]))
        lat.extend(screw_hole(frame, fp.screw_thread_length_mm, fp.screw_thread_radius_mm,
                              fp.screw_head_length_mm, fp.screw_head_radius_mm))
    return lat


def generate_flange(params, layout, grid: Grid, cancel: Optional[CancelToken] = None,
                    with_cutters: bool = True) -> FlangeResult:
    fp = params.flange
    positions = flange_positions(params)
    pad_radius = fp.screw_head_radius_mm + fp.pad_margin_mm

    pads = union_all(grid, [cylinder(grid, Frame(pos), fp.pad_length_mm, pad_radius)
                            for pos in positions])
    check_cancel(cancel)
    pads = pads.over_offset(fp.over_offset_mm, 0.0).smoothen(fp.smooth_mm)

    screw_holes = Solid.from_lattice(grid, screw_hole_lattice(params), cancel)

    cutters = None
    if with_cutters:
        cutters = union_all(grid, [
            thread_cutter(grid, Frame(pos - np.array([0.0, 0.0, fp.cutter_drop_mm])),
                          fp.cutter_length_mm, fp.cutter_max_radius_mm,
                          fp.cutter_core_radius_mm, fp.cutter_pitch_mm,
                          fp.cutter_phi_step, cancel)
            for pos in positions])
    logger.info("flange: %d pads", len(positions))
    return FlangeResult(pads=pads, screw_holes=screw_holes, thread_cutters=cutters)
