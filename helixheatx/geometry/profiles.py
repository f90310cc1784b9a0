"""
HelixHeatX - Cross-Section Profiles and Blends

Periodic radius multipliers for the duct cross-sections, based on the
Gielis superformula:

    r(phi) = (|cos(m*phi/4)|^n2 + |sin(m*phi/4)|^n3)^(-1/n1)

  - ROUND: m = 0, constant 1 (circle)
  - QUAD:  m = 4, n = 4 (squircle, 4 lobes, order-4 symmetry)
  - HEX:   m = 6, n = 6

Also holds the fixed-shape easing used to blend radii and lengths along
a curve (smoothstep, 3s^2 - 2s^3).
"""

import numpy as np
from enum import Enum


class ProfileShape(Enum):
    ROUND = "round"
    QUAD = "quad"
    HEX = "hex"


# (m, n1, n2, n3)
SUPERSHAPE_PARAMS = {
    ProfileShape.ROUND: (0.0, 2.0, 2.0, 2.0),
    ProfileShape.QUAD: (4.0, 4.0, 4.0, 4.0),
    ProfileShape.HEX: (6.0, 6.0, 6.0, 6.0),
}


def superformula(phi, m: float, n1: float, n2: float, n3: float):
    """Gielis superformula with a = b = 1."""
    angle = 0.25 * m * np.asarray(phi, dtype=float)
    term = np.abs(np.cos(angle)) ** n2 + np.abs(np.sin(angle)) ** n3
    return term ** (-1.0 / n1)


def profile_radius(phi, shape: ProfileShape = ProfileShape.ROUND):
    """Non-negative boundary multiplier for the given profile, period 2*pi."""
    if shape not in SUPERSHAPE_PARAMS:
        raise ValueError(f"Unknown profile shape: {shape}")
    m, n1, n2, n3 = SUPERSHAPE_PARAMS[shape]
    if m == 0.0:
        return np.ones_like(np.asarray(phi, dtype=float))
    return superformula(phi, m, n1, n2, n3)


def smoothstep(s):
    """Monotonic easing on [0, 1], zero slope at both ends."""
    s = np.clip(np.asarray(s, dtype=float), 0.0, 1.0)
    return 3.0 * s**2 - 2.0 * s**3


def trans_fixed(start, end, s):
    """Blend from start (s=0) to end (s=1) along the fixed easing curve."""
    return start + (end - start) * smoothstep(s)
