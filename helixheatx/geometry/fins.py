"""
HelixHeatX - Mixing Fins

Fins are rows of tent-shaped walls spanning the duct between the two
helix plates. Each row sits at fractional positions between the inner and
outer boundary, fanned out in phase by a cosine spread, and is emitted
for every helix sample whose phase falls inside a fin window.

One table-driven generator covers both fin families:
  - turning windows (45°, 135°, 225°, 315°): fins where the duct turns
    around the lobes of the quad profile
  - straight windows (0°, 180°, 90°, 270°): fins along the flat sides;
    windows flagged `twist` rotate each fin about the vertical through
    its centre by an eased full turn across the window

The first window that contains a sample's phase wins.
"""

import logging
import math
import numpy as np
from typing import List, Optional, Sequence

from ..kernel.voxels import Grid, Solid
from ..runtime import CancelToken, check_cancel
from .channels import Fluid, HelixSweep, helix_sweep
from .frame import UNIT_Z, cyl_point, rotate_around_z
from .lattice import Lattice
from .profiles import ProfileShape, profile_radius, smoothstep

logger = logging.getLogger(__name__)


def fin_window_index(phi_deg: np.ndarray, windows: Sequence) -> np.ndarray:
    """Index of the first window strictly containing each phase, -1 where none does."""
    phi_deg = np.asarray(phi_deg, dtype=float)
    index = np.full(phi_deg.shape, -1, dtype=int)
    for k, window in enumerate(windows):
        hit = (index < 0) & (np.abs(phi_deg - window.center_deg) < window.half_width_deg)
        index[hit] = k
    return index


def twist_angle(phi_deg, window) -> np.ndarray:
    """Eased rotation from 0 to 2*pi across a twist window."""
    frac = (np.asarray(phi_deg, dtype=float) - window.center_deg + window.half_width_deg) \
        / (2.0 * window.half_width_deg)
    return 2.0 * math.pi * smoothstep(frac)


def fin_sweep(params, fluid: Fluid, resolution: float = 0.0) -> HelixSweep:
    """Helix samples spaced no wider than one fin wall at the outer reach."""
    return helix_sweep(params, fluid, resolution, max_spacing=params.fins.fin_thickness_mm)


def fin_lattice(sweep: HelixSweep, layout, params, windows: Sequence,
                cancel: Optional[CancelToken] = None) -> Lattice:
    """Tent fins for all helix samples inside the given windows."""
    ch = params.channel
    fp = params.fins
    beam = 0.5 * fp.fin_thickness_mm
    half_height = 0.5 * ch.plate_thickness_mm
    inner_shape = ProfileShape(ch.inner_profile)
    outer_shape = ProfileShape(ch.outer_profile)
    frame = layout.helix_frame
    s = sweep.samples
    phi_deg = s.phi_deg
    index = fin_window_index(phi_deg, windows)

    lat = Lattice()
    for k, window in enumerate(windows):
        check_cancel(cancel)
        sel = np.nonzero(index == k)[0]
        n = int(window.fin_count)
        if len(sel) == 0 or n < 1:
            continue
        j = np.arange(n)
        frac = j / (n - 1) if n > 1 else np.zeros(1)
        spread = math.radians(fp.phase_spread_deg) * np.cos(fp.phase_spread_frequency * (j / n - 0.5))

        phi = s.phi[sel, None] - spread[None, :]
        # Boundaries at each fin's own phase, outer pulled in by the fin beam
        inner = ch.inner_radius_mm * profile_radius(phi, inner_shape)
        outer = ch.outer_radius_mm * profile_radius(phi, outer_shape) - beam
        radius = inner + fp.radial_start_inset_mm \
            + frac[None, :] * (outer - fp.radial_end_inset_mm - inner)
        z = np.broadcast_to(s.z[sel, None], phi.shape)

        drop = fp.drop_mm * UNIT_Z
        pt1 = frame.to_world(cyl_point(radius, phi, z - half_height)) - drop
        pt2 = frame.to_world(cyl_point(radius, phi, z + half_height)) - drop
        mid = 0.5 * (pt1 + pt2)
        if window.twist:
            angle = np.broadcast_to(twist_angle(phi_deg[sel], window)[:, None], phi.shape)
            pt1 = rotate_around_z(pt1, angle, mid)
            pt2 = rotate_around_z(pt2, angle, mid)
        apex = mid + fp.apex_height_mm * UNIT_Z

        pt1 = pt1.reshape(-1, 3)
        pt2 = pt2.reshape(-1, 3)
        apex = apex.reshape(-1, 3)
        lat.add_beams(pt1, beam, apex, beam)
        lat.add_beams(pt2, beam, apex, beam)
    return lat


def generate_fins(params, layout, grid: Grid, sweep: HelixSweep, windows: List,
                  cancel: Optional[CancelToken] = None, label: str = "fins") -> Solid:
    lat = fin_lattice(sweep, layout, params, windows, cancel)
    logger.info("%s %s: %d beams", sweep.fluid.value, label, len(lat))
    return Solid.from_lattice(grid, lat, cancel)
