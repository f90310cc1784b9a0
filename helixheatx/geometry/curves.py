"""
HelixHeatX - Curve Sampling

Two samplers feed the beam generators:

  - Helix: phase phi = phi_start + slope * (z - z_start) along the helix
    axis. The number of turns is derived from the plate stack so that it
    is always a half-integer and inlet/outlet land on opposite faces.
  - Tangential transition spline: cubic Bezier between two oriented
    endpoints, resampled uniformly in arc length.

Samples carry a length ratio in [0, 1] used to interpolate per-point
attributes (radius, tip extension, ...).
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import InvalidGeometryParameter
from ..runtime import CancelToken, check_cancel
from .frame import cyl_point, normalize

# Parameter resolution used before arc-length resampling of splines
_SPLINE_OVERSAMPLING = 8


@dataclass
class CurveSample:
    """Ordered (point, length-ratio) pairs along a curve."""
    points: np.ndarray
    ratios: np.ndarray

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)
        self.ratios = np.asarray(self.ratios, dtype=float).reshape(-1)
        if len(self.points) != len(self.ratios):
            raise InvalidGeometryParameter("points and ratios differ in length")
        if len(self.ratios) > 1 and np.any(np.diff(self.ratios) <= 0.0):
            raise InvalidGeometryParameter("length ratios must be strictly increasing")

    def __len__(self):
        return len(self.ratios)


# ---------------------------------------------------------------------------
# Helix
# ---------------------------------------------------------------------------

def helix_turns(total_length: float, plate_thickness: float,
                inter_plate_thickness: float) -> Tuple[int, float]:
    """Whole turns that fit the plate stack, and the half-integer turn count used."""
    pitch = 2.0 * plate_thickness + 2.0 * inter_plate_thickness
    if total_length <= 0 or pitch <= 0:
        raise InvalidGeometryParameter(
            f"helix needs positive length and pitch (length={total_length}, pitch={pitch})")
    n_turns = int(math.floor(total_length / pitch))
    return n_turns, n_turns - 0.5


def helix_slope(total_length: float, plate_thickness: float,
                inter_plate_thickness: float) -> float:
    """Phase advance per unit length (rad/mm)."""
    _, f_turns = helix_turns(total_length, plate_thickness, inter_plate_thickness)
    return f_turns * 2.0 * math.pi / total_length


def helix_sample_count(total_length: float, step: float, slope: float = 0.0,
                       max_radius: float = 0.0, beam_diameter: float = 0.0,
                       resolution: float = 0.0) -> int:
    """
    Samples needed for a helix sweep.

    Nominally total_length / step. A positive `resolution` caps that so
    samples at max_radius are not spaced closer than the voxel size
    (finer sampling cannot be resolved). The count never drops below what
    keeps consecutive samples at max_radius within beam_diameter of each
    other, so overlapping beams leave no gaps.
    """
    if step <= 0:
        raise InvalidGeometryParameter(f"sampling step must be positive, got {step}")
    n = int(math.ceil(total_length / step))
    arc_length = total_length * math.sqrt(1.0 + (max_radius * slope) ** 2)
    if resolution > 0:
        n = min(n, int(math.ceil(arc_length / resolution)))
    if beam_diameter > 0:
        n = max(n, int(math.ceil(arc_length / beam_diameter)))
    return max(n + 1, 2)


@dataclass
class HelixSamples:
    """Phase and height of each helix sample (local helix frame)."""
    z: np.ndarray
    phi: np.ndarray
    ratios: np.ndarray

    def __len__(self):
        return len(self.ratios)

    @property
    def phi_deg(self) -> np.ndarray:
        """Phase in degrees, wrapped to [0, 360)."""
        return np.mod(np.degrees(self.phi), 360.0)

    def points(self, radius) -> np.ndarray:
        """Local points at the given radius (scalar or per sample)."""
        return cyl_point(radius, self.phi, self.z)

    def curve(self, radius) -> CurveSample:
        return CurveSample(self.points(radius), self.ratios)


def sample_helix(z_start: float, z_end: float, phi_start: float, slope: float,
                 n_samples: int) -> HelixSamples:
    """Uniform samples in length ratio from z_start to z_end inclusive."""
    if n_samples < 2:
        raise InvalidGeometryParameter(f"need at least 2 samples, got {n_samples}")
    if z_end <= z_start:
        raise InvalidGeometryParameter(f"helix end {z_end} must lie above start {z_start}")
    ratios = np.linspace(0.0, 1.0, n_samples)
    z = z_start + ratios * (z_end - z_start)
    phi = phi_start + slope * (z - z_start)
    return HelixSamples(z=z, phi=phi, ratios=ratios)


# ---------------------------------------------------------------------------
# Tangential transition spline
# ---------------------------------------------------------------------------

class TangentialSpline:
    """
    Cubic Bezier leaving `start` along `start_dir` and arriving at `end`
    along `end_dir`. The weights set how far the inner control points
    sit from their endpoints.
    """

    def __init__(self, start, end, start_dir, end_dir,
                 start_weight: float = 20.0, end_weight: float = 10.0):
        self.start = np.asarray(start, dtype=float).reshape(3)
        self.end = np.asarray(end, dtype=float).reshape(3)
        if np.linalg.norm(self.end - self.start) < 1e-9:
            raise InvalidGeometryParameter("spline start and end points coincide")
        if start_weight < 0 or end_weight < 0:
            raise InvalidGeometryParameter("spline weights must be non-negative")
        self.start_dir = normalize(start_dir, "spline start direction")
        self.end_dir = normalize(end_dir, "spline end direction")
        self.control_points = np.array([
            self.start,
            self.start + start_weight * self.start_dir,
            self.end - end_weight * self.end_dir,
            self.end,
        ])

    def evaluate(self, t) -> np.ndarray:
        """Bezier points at parameters t in [0, 1]."""
        t = np.asarray(t, dtype=float)[:, None]
        p0, p1, p2, p3 = self.control_points
        u = 1.0 - t
        return u**3 * p0 + 3 * u**2 * t * p1 + 3 * u * t**2 * p2 + t**3 * p3

    def tangent(self, t) -> np.ndarray:
        t = np.asarray(t, dtype=float)[:, None]
        p0, p1, p2, p3 = self.control_points
        u = 1.0 - t
        return 3 * u**2 * (p1 - p0) + 6 * u * t * (p2 - p1) + 3 * t**2 * (p3 - p2)

    def sample(self, n_samples: int, cancel: Optional[CancelToken] = None) -> CurveSample:
        """n_samples points spaced uniformly along the arc length."""
        if n_samples < 2:
            raise InvalidGeometryParameter(f"need at least 2 samples, got {n_samples}")
        check_cancel(cancel)
        t_dense = np.linspace(0.0, 1.0, n_samples * _SPLINE_OVERSAMPLING)
        dense = self.evaluate(t_dense)
        seg = np.linalg.norm(np.diff(dense, axis=0), axis=1)
        arc = np.concatenate([[0.0], np.cumsum(seg)])
        ratios = np.linspace(0.0, 1.0, n_samples)
        t = np.interp(ratios * arc[-1], arc, t_dense)
        return CurveSample(self.evaluate(t), ratios)
