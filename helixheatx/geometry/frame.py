"""
HelixHeatX - Local Coordinate Frames

An oriented frame (position + orthonormal basis) used to place features
such as ports, screw holes and the helix itself in world space.
Frames are immutable; translate/invert return new frames.

Also holds the small vector helpers the generators share
(cylindrical points, rotations about an axis).
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidGeometryParameter

UNIT_X = np.array([1.0, 0.0, 0.0])
UNIT_Y = np.array([0.0, 1.0, 0.0])
UNIT_Z = np.array([0.0, 0.0, 1.0])

_ORTHO_TOL = 1e-6


def _as_vector(value, name: str) -> np.ndarray:
    vec = np.array(value, dtype=float).reshape(3)
    if not np.all(np.isfinite(vec)):
        raise InvalidGeometryParameter(f"{name} must be finite, got {vec}")
    return vec


def normalize(vec, name: str = "vector") -> np.ndarray:
    """Unit vector, rejecting zero-length input."""
    vec = _as_vector(vec, name)
    length = np.linalg.norm(vec)
    if length < 1e-12:
        raise InvalidGeometryParameter(f"{name} has zero length")
    return vec / length


def orthogonal_direction(vec: np.ndarray) -> np.ndarray:
    """Some unit vector perpendicular to vec (world Z preferred)."""
    ref = UNIT_Z if abs(np.dot(vec, UNIT_Z)) < 0.99 else UNIT_X
    return normalize(ref - np.dot(ref, vec) * vec)


@dataclass(frozen=True, eq=False)
class Frame:
    """Position plus local Z (forward) and local X axes; local Y = Z x X."""
    position: np.ndarray
    local_z: np.ndarray
    local_x: np.ndarray

    def __init__(self, position=(0.0, 0.0, 0.0), local_z=UNIT_Z,
                 local_x: Optional[np.ndarray] = None):
        pos = _as_vector(position, "frame position")
        z = normalize(local_z, "frame local Z")
        if local_x is None:
            x = orthogonal_direction(z)
        else:
            x = normalize(local_x, "frame local X")
            if abs(np.dot(x, z)) > _ORTHO_TOL:
                raise InvalidGeometryParameter(
                    f"frame axes are not orthogonal (dot={np.dot(x, z):.3g})")
        for arr in (pos, z, x):
            arr.setflags(write=False)
        object.__setattr__(self, "position", pos)
        object.__setattr__(self, "local_z", z)
        object.__setattr__(self, "local_x", x)

    @property
    def local_y(self) -> np.ndarray:
        return np.cross(self.local_z, self.local_x)

    def translated(self, shift) -> "Frame":
        """Same orientation, position moved by shift."""
        return Frame(self.position + _as_vector(shift, "shift"), self.local_z, self.local_x)

    def inverted(self, invert_z: bool = True, invert_x: bool = False) -> "Frame":
        """Flip local Z and/or local X (local Y follows from the cross product)."""
        z = -self.local_z if invert_z else self.local_z
        x = -self.local_x if invert_x else self.local_x
        return Frame(self.position, z, x)

    def to_world(self, points) -> np.ndarray:
        """Map local coordinates (..., 3) into world space."""
        pts = np.asarray(points, dtype=float)
        basis = np.stack([self.local_x, self.local_y, self.local_z])
        return self.position + pts @ basis

    def directions_to_world(self, vectors) -> np.ndarray:
        """Rotate local direction vectors into world space (no translation)."""
        basis = np.stack([self.local_x, self.local_y, self.local_z])
        return np.asarray(vectors, dtype=float) @ basis

    def to_local(self, points) -> np.ndarray:
        """Inverse of to_world."""
        pts = np.asarray(points, dtype=float) - self.position
        basis = np.stack([self.local_x, self.local_y, self.local_z])
        return pts @ basis.T


def cyl_point(radius, phi, z) -> np.ndarray:
    """Cylindrical to Cartesian; broadcasts over array inputs."""
    radius, phi, z = np.broadcast_arrays(
        np.asarray(radius, dtype=float), np.asarray(phi, dtype=float), np.asarray(z, dtype=float))
    return np.stack([radius * np.cos(phi), radius * np.sin(phi), z], axis=-1)


def rotate_around_axis(vec, angle: float, axis) -> np.ndarray:
    """Rodrigues rotation of vec(s) about an axis through the origin."""
    k = normalize(axis, "rotation axis")
    v = np.asarray(vec, dtype=float)
    cos_a = np.cos(angle)
    sin_a = np.sin(angle)
    return (v * cos_a + np.cross(k, v) * sin_a
            + np.outer(v @ k, k).reshape(v.shape) * (1.0 - cos_a))


def rotate_around_z(points, angle, center) -> np.ndarray:
    """Rotate points about a vertical axis through center; angle may be per-point."""
    pts = np.asarray(points, dtype=float)
    c = np.asarray(center, dtype=float)
    rel = pts - c
    cos_a = np.cos(angle)
    sin_a = np.sin(angle)
    out = np.empty_like(rel)
    out[..., 0] = rel[..., 0] * cos_a - rel[..., 1] * sin_a
    out[..., 1] = rel[..., 0] * sin_a + rel[..., 1] * cos_a
    out[..., 2] = rel[..., 2]
    return out + c
