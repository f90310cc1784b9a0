"""
HelixHeatX - Construction Modules

Reusable features placed by a Frame:

  - cylinder / box primitives (exact distance functions in frame space)
  - screw hole: flat head counterbore + shaft + pointed drill tip
  - thread cutter: core cylinder plus a helical blade sweeping out to the
    thread's major radius, clipped to a bounding cylinder
  - thread reinforcement: solid collar around a tapped port with a 45°
    back taper so it prints without support
  - lattice manifold: teardrop-section bore (round below, 45° roof above)
    that prints horizontally without support

Lattice-producing modules return a Lattice so callers can merge them
before rasterising; the rest return a Solid on the caller's grid.
"""

import math
import numpy as np
from typing import Optional

from ..errors import InvalidGeometryParameter
from ..kernel.voxels import Grid, Solid
from ..runtime import CancelToken, check_cancel
from .frame import Frame, UNIT_Z, cyl_point, normalize
from .lattice import Lattice

# Stacked circles per teardrop roof
_MANIFOLD_LAYERS = 10


def _require_positive(name: str, value: float):
    if not value > 0:
        raise InvalidGeometryParameter(f"{name} must be positive, got {value}")


def _frame_bounds(frame: Frame, lo_local, hi_local):
    """World AABB of a local box."""
    lo_local = np.asarray(lo_local, dtype=float)
    hi_local = np.asarray(hi_local, dtype=float)
    corners = np.array([[x, y, z] for x in (lo_local[0], hi_local[0])
                        for y in (lo_local[1], hi_local[1])
                        for z in (lo_local[2], hi_local[2])])
    world = frame.to_world(corners)
    return world.min(axis=0), world.max(axis=0)


def _box_distance(q, half_extent):
    d = np.abs(q) - half_extent
    outside = np.linalg.norm(np.maximum(d, 0.0), axis=-1)
    inside = np.minimum(d.max(axis=-1), 0.0)
    return outside + inside


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def cylinder(grid: Grid, frame: Frame, length: float, radius: float) -> Solid:
    """Cylinder along the frame's local Z from 0 to length."""
    _require_positive("cylinder length", length)
    _require_positive("cylinder radius", radius)

    def fn(pts):
        q = frame.to_local(pts)
        radial = np.hypot(q[..., 0], q[..., 1]) - radius
        axial = np.abs(q[..., 2] - 0.5 * length) - 0.5 * length
        return (np.minimum(np.maximum(radial, axial), 0.0)
                + np.hypot(np.maximum(radial, 0.0), np.maximum(axial, 0.0)))

    lo, hi = _frame_bounds(frame, (-radius, -radius, 0.0), (radius, radius, length))
    return Solid.from_function(grid, lo, hi, fn)


def box(grid: Grid, frame: Frame, length: float, width: float, depth: float) -> Solid:
    """Box from the frame origin along local Z; width on local X and depth on local Y, centred."""
    _require_positive("box length", length)
    _require_positive("box width", width)
    _require_positive("box depth", depth)
    half = np.array([0.5 * width, 0.5 * depth, 0.5 * length])

    def fn(pts):
        q = frame.to_local(pts)
        q[..., 2] -= 0.5 * length
        return _box_distance(q, half)

    lo, hi = _frame_bounds(frame, (-half[0], -half[1], 0.0), (half[0], half[1], length))
    return Solid.from_function(grid, lo, hi, fn)


def box_from_region(grid: Grid, region) -> Solid:
    return box(grid, region.frame, region.length, region.width, region.depth)


# ---------------------------------------------------------------------------
# Screw hole
# ---------------------------------------------------------------------------

def screw_hole(frame: Frame, thread_length: float, thread_radius: float,
               head_length: float, head_radius: float) -> Lattice:
    """
    Screw cutter: the head bore rises head_length above the frame, the
    shaft drops thread_length below it and ends in a pointed drill tip.
    """
    for name, value in (("thread length", thread_length), ("thread radius", thread_radius),
                        ("head length", head_length), ("head radius", head_radius)):
        _require_positive(f"screw {name}", value)
    pos = frame.position
    z = frame.local_z
    shaft_end = pos - thread_length * z
    lat = Lattice()
    lat.add_beam(pos + head_length * z, head_radius, pos, head_radius, round_cap=False)
    lat.add_beam(shaft_end, thread_radius, pos, thread_radius, round_cap=False)
    lat.add_beam(shaft_end, thread_radius, shaft_end - 2.0 * thread_radius * z, 0.1)
    return lat


# ---------------------------------------------------------------------------
# Thread cutter
# ---------------------------------------------------------------------------

def thread_cutter(grid: Grid, frame: Frame, length: float, max_radius: float,
                  core_radius: float, pitch: float, phi_step: float = 0.005,
                  cancel: Optional[CancelToken] = None) -> Solid:
    """
    Tap-drill core plus a helical blade of the given pitch, swept from the
    core to the major radius along local Z.

    The phase follows the helix law phi = slope * z with a fixed pitch
    instead of a derived turn count. The angular step is widened to the
    voxel size at max_radius.
    """
    _require_positive("thread length", length)
    _require_positive("thread pitch", pitch)
    if not max_radius > core_radius > 0:
        raise InvalidGeometryParameter(
            f"thread needs max radius > core radius > 0, got {max_radius} / {core_radius}")
    check_cancel(cancel)

    turns = length / pitch
    step = max(phi_step, grid.voxel_size / max_radius)
    n = max(int(math.ceil(turns * 2.0 * math.pi / step)) + 1, 2)
    phi = np.linspace(0.0, turns * 2.0 * math.pi, n)
    z = phi * pitch / (2.0 * math.pi)

    blade = Lattice()
    blade.add_beams(frame.to_world(cyl_point(core_radius, phi, z)), 0.5 * pitch,
                    frame.to_world(cyl_point(max_radius, phi, z)), 0.1, round_cap=False)
    cutter = Solid.from_lattice(grid, blade, cancel)
    cutter = cutter.union(cylinder(grid, frame, length, core_radius))
    return cutter.intersect(cylinder(grid, frame, length, max_radius))


# ---------------------------------------------------------------------------
# Thread reinforcement
# ---------------------------------------------------------------------------

def thread_reinforcement(grid: Grid, frame: Frame, length: float,
                         inner_radius: float, outer_radius: float) -> Solid:
    """
    Solid collar along local Z (0 to length) of radius outer_radius. Towards
    the far end it tapers at 45° down to inner_radius so the overhang
    against the part body stays printable.
    """
    _require_positive("collar length", length)
    if not outer_radius > inner_radius > 0:
        raise InvalidGeometryParameter(
            f"collar needs outer radius > inner radius > 0, got {outer_radius} / {inner_radius}")

    def fn(pts):
        q = frame.to_local(pts)
        r = np.hypot(q[..., 0], q[..., 1])
        radial = r - outer_radius
        axial = np.abs(q[..., 2] - 0.5 * length) - 0.5 * length
        body = (np.minimum(np.maximum(radial, axial), 0.0)
                + np.hypot(np.maximum(radial, 0.0), np.maximum(axial, 0.0)))
        taper = (r + q[..., 2] - inner_radius - length) / math.sqrt(2.0)
        return np.maximum(body, taper)

    lo, hi = _frame_bounds(frame, (-outer_radius, -outer_radius, 0.0),
                           (outer_radius, outer_radius, length))
    return Solid.from_function(grid, lo, hi, fn)


# ---------------------------------------------------------------------------
# Lattice manifold
# ---------------------------------------------------------------------------

def lattice_manifold(frame: Frame, length: float, radius: float) -> Lattice:
    """
    Teardrop bore along local Z: circles of shrinking radius stacked
    upwards fill the 45° roof above the round section.
    """
    _require_positive("manifold length", length)
    _require_positive("manifold radius", radius)
    axis = frame.local_z
    up = UNIT_Z - np.dot(UNIT_Z, axis) * axis
    if np.linalg.norm(up) < 1e-6:
        up = frame.local_x
    up = normalize(up, "manifold up direction")

    heights = np.linspace(0.0, radius * math.sqrt(2.0), _MANIFOLD_LAYERS)
    radii = np.maximum(radius - heights / math.sqrt(2.0), 0.0)
    starts = frame.position + heights[:, None] * up
    lat = Lattice()
    lat.add_beams(starts, radii, starts + length * axis, radii, round_cap=False)
    return lat

