"""
HelixHeatX - Helical Fluid Channels

Builds the void of one fluid: a helical duct swept through the cube plus
tangential transition ducts that carry it to its inlet and outlet ports.

Helix cross-section (per sample, in the helix frame):
  - inner boundary  r_i = inner_radius * ROUND(phi)
  - outer boundary  r_o = outer_radius * QUAD(phi) - plate / 2
  - a radial beam r_i -> r_o of radius plate / 2, plus two vertical stubs
    tapering to a tip so the duct roof prints without support

The hot fluid starts half a turn (pi) ahead of the cool fluid, so the two
ducts interleave. Transition ducts blend radius, width and roof stub
height from the helix section to the round port with the fixed easing
curve, and carry a thin splitter wall that is clipped to the duct.
"""

import logging
import math
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..kernel.voxels import Grid, Solid
from ..runtime import CancelToken, check_cancel
from .curves import HelixSamples, TangentialSpline, helix_sample_count, helix_slope, sample_helix
from .frame import UNIT_Z, cyl_point, normalize
from .lattice import Lattice
from .profiles import ProfileShape, profile_radius, trans_fixed

logger = logging.getLogger(__name__)


class Fluid(Enum):
    HOT = "hot"
    COOL = "cool"


PHASE_START = {Fluid.HOT: math.pi, Fluid.COOL: 0.0}

PORT_NAMES = {
    Fluid.HOT: ("first_inlet", "first_outlet"),
    Fluid.COOL: ("second_inlet", "second_outlet"),
}


@dataclass
class HelixSweep:
    """Sampled helix of one fluid with its boundary radii."""
    fluid: Fluid
    samples: HelixSamples
    slope: float
    beam_radius: float
    inner: np.ndarray
    outer: np.ndarray

    def __len__(self):
        return len(self.samples)


@dataclass
class ChannelResult:
    fluid: Fluid
    void: Solid
    splitters: Solid
    inlet: Solid
    outlet: Solid
    beam_count: int


def max_profile_radius(scale: float, shape: ProfileShape) -> float:
    phi = np.linspace(0.0, 2.0 * math.pi, 721)
    return float(scale * np.max(profile_radius(phi, shape)))


def helix_sweep(params, fluid: Fluid, resolution: float = 0.0,
                max_spacing: float = 0.0) -> HelixSweep:
    """
    Helix samples over the full cube height for one fluid.

    Samples at the outer reach are at most one channel beam diameter
    apart, or max_spacing when that is positive and smaller.
    """
    ch = params.channel
    beam = 0.5 * ch.plate_thickness_mm
    spacing = 2.0 * beam if max_spacing <= 0 else min(2.0 * beam, max_spacing)
    slope = helix_slope(ch.cube_size_mm, ch.plate_thickness_mm, ch.wall_thickness_mm)
    inner_shape = ProfileShape(ch.inner_profile)
    outer_shape = ProfileShape(ch.outer_profile)

    reach = max_profile_radius(ch.outer_radius_mm, outer_shape) - beam
    n = helix_sample_count(ch.cube_size_mm, ch.sample_step_mm, slope,
                           max_radius=reach, beam_diameter=spacing,
                           resolution=resolution)
    samples = sample_helix(0.0, ch.cube_size_mm, PHASE_START[fluid], slope, n)
    inner = ch.inner_radius_mm * profile_radius(samples.phi, inner_shape)
    outer = ch.outer_radius_mm * profile_radius(samples.phi, outer_shape) - beam
    return HelixSweep(fluid=fluid, samples=samples, slope=slope, beam_radius=beam,
                      inner=inner, outer=outer)


def helix_void_lattice(sweep: HelixSweep, layout, params) -> Lattice:
    """Radial section beams plus roof stubs for every helix sample."""
    ch = params.channel
    frame = layout.helix_frame
    s = sweep.samples
    pt1 = frame.to_world(cyl_point(sweep.inner, s.phi, s.z))
    pt2 = frame.to_world(cyl_point(sweep.outer, s.phi, s.z))
    stub = ch.stub_height_mm * UNIT_Z

    lat = Lattice()
    lat.add_beams(pt1, sweep.beam_radius, pt2, sweep.beam_radius)
    lat.add_beams(pt1, sweep.beam_radius, pt1 + stub, ch.stub_tip_radius_mm)
    lat.add_beams(pt2, sweep.beam_radius, pt2 + stub, ch.stub_tip_radius_mm)
    return lat


def _section_at(sweep: HelixSweep, layout, index: int) -> Tuple[np.ndarray, np.ndarray]:
    s = sweep.samples
    frame = layout.helix_frame
    pt1 = frame.to_world(cyl_point(sweep.inner[index], s.phi[index], s.z[index]))
    pt2 = frame.to_world(cyl_point(sweep.outer[index], s.phi[index], s.z[index]))
    return pt1, pt2


def transition_start_direction(sweep: HelixSweep, layout, index: int, backward: bool) -> np.ndarray:
    """
    Helix tangent at the section centre, made perpendicular to the radial
    section so the transition leaves the helix cleanly.
    """
    s = sweep.samples
    phi = s.phi[index]
    r_mid = 0.5 * (sweep.inner[index] + sweep.outer[index])
    local = np.array([-r_mid * sweep.slope * math.sin(phi),
                      r_mid * sweep.slope * math.cos(phi),
                      1.0])
    tangent = layout.helix_frame.directions_to_world(local)
    if backward:
        tangent = -tangent
    pt1, pt2 = _section_at(sweep, layout, index)
    radial = normalize(pt2 - pt1, "helix section")
    tangent = tangent - np.dot(tangent, radial) * radial
    return normalize(tangent, "transition start direction")


def transition_lattices(sweep: HelixSweep, layout, params, outlet: bool,
                        cancel: Optional[CancelToken] = None) -> Tuple[Lattice, Lattice]:
    """Duct and splitter lattices from the helix end to the fluid's port."""
    ch = params.channel
    index = -1 if outlet else 0
    port = layout.port(PORT_NAMES[sweep.fluid][1 if outlet else 0])

    pt1, pt2 = _section_at(sweep, layout, index)
    start = 0.5 * (pt1 + pt2)
    ori = normalize(pt2 - pt1, "helix section")
    start_length = 0.5 * float(np.linalg.norm(pt2 - pt1))
    start_dir = transition_start_direction(sweep, layout, index, backward=not outlet)

    spline = TangentialSpline(start, port.position, start_dir, port.local_z,
                              ch.spline_start_weight, ch.spline_end_weight)
    curve = spline.sample(ch.spline_samples, cancel)
    s = curve.ratios

    radius = trans_fixed(sweep.beam_radius, ch.io_radius_mm, s)
    half_width = trans_fixed(start_length, 0.0, s)
    tip = trans_fixed(ch.tip_extension_mm[0], ch.tip_extension_mm[1], s)

    a = curve.points - half_width[:, None] * ori
    b = curve.points + half_width[:, None] * ori
    a_higher = (a[:, 2] >= b[:, 2])[:, None]
    higher = np.where(a_higher, a, b)
    lower = np.where(a_higher, b, a)
    roof = higher + tip[:, None] * UNIT_Z

    duct = Lattice()
    duct.add_beams(a, radius, b, radius)
    duct.add_beams(higher, radius, roof, ch.stub_tip_radius_mm)

    top = trans_fixed(ch.splitter_radius_mm, ch.splitter_top_radius_mm, s)
    crest = roof + radius[:, None] * UNIT_Z
    step = ch.splitter_step_mm * UNIT_Z
    splitter = Lattice()
    splitter.add_beams(lower - ch.splitter_drop_mm * UNIT_Z, ch.splitter_radius_mm,
                       crest, ch.splitter_radius_mm)
    splitter.add_beams(crest, ch.splitter_radius_mm, crest + step, top)
    splitter.add_beams(crest + step, top, crest + 2.0 * step, top)
    return duct, splitter


def generate_channel(params, layout, grid: Grid, fluid: Fluid,
                     cancel: Optional[CancelToken] = None) -> ChannelResult:
    """Void and splitter solids of one fluid."""
    sweep = helix_sweep(params, fluid, resolution=grid.voxel_size)
    check_cancel(cancel)
    helix = helix_void_lattice(sweep, layout, params)
    inlet_duct, inlet_split = transition_lattices(sweep, layout, params, outlet=False, cancel=cancel)
    outlet_duct, outlet_split = transition_lattices(sweep, layout, params, outlet=True, cancel=cancel)

    inlet = Solid.from_lattice(grid, inlet_duct, cancel)
    outlet = Solid.from_lattice(grid, outlet_duct, cancel)
    void = Solid.from_lattice(grid, helix, cancel).union(inlet).union(outlet)

    splitters = (Solid.from_lattice(grid, inlet_split, cancel).intersect(inlet)
                 .union(Solid.from_lattice(grid, outlet_split, cancel).intersect(outlet)))

    beams = len(helix) + len(inlet_duct) + len(outlet_duct) + len(inlet_split) + len(outlet_split)
    logger.info("%s channel: %d helix samples, %d beams", fluid.value, len(sweep), beams)
    return ChannelResult(fluid=fluid, void=void, splitters=splitters,
                         inlet=inlet, outlet=outlet, beam_count=beams)
