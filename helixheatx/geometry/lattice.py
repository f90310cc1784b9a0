"""
HelixHeatX - Beam Lattice

A lattice is an insertion-ordered collection of beams: tapered capsules
between two endpoints, each endpoint with its own radius. A zero radius
collapses that end to a cone tip. The volumetric kernel converts a
finished lattice into a solid in one pass.

Beams are appended one at a time or as whole numpy batches (one row per
sample), which is how the sampling loops emit them.
"""

import numpy as np
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from ..errors import InvalidGeometryParameter


@dataclass(frozen=True, eq=False)
class Beam:
    """One capsule segment; round_cap=False gives flat ends."""
    p1: np.ndarray
    r1: float
    p2: np.ndarray
    r2: float
    round_cap: bool = True

    def __post_init__(self):
        _validate(np.asarray(self.p1, dtype=float).reshape(1, 3),
                  np.asarray(self.p2, dtype=float).reshape(1, 3),
                  np.array([self.r1], dtype=float), np.array([self.r2], dtype=float))

    @property
    def length(self) -> float:
        return float(np.linalg.norm(np.asarray(self.p2, dtype=float) - np.asarray(self.p1, dtype=float)))


def _validate(p1: np.ndarray, p2: np.ndarray, r1: np.ndarray, r2: np.ndarray):
    if not (np.all(np.isfinite(p1)) and np.all(np.isfinite(p2))):
        raise InvalidGeometryParameter("beam endpoints must be finite")
    if not (np.all(np.isfinite(r1)) and np.all(np.isfinite(r2))):
        raise InvalidGeometryParameter("beam radii must be finite")
    if np.any(r1 < 0.0) or np.any(r2 < 0.0):
        bad = float(min(r1.min(initial=0.0), r2.min(initial=0.0)))
        raise InvalidGeometryParameter(f"beam radius must be >= 0, got {bad}")


class Lattice:
    """Growing set of beams stored as numpy batches."""

    def __init__(self):
        self._p1: List[np.ndarray] = []
        self._r1: List[np.ndarray] = []
        self._p2: List[np.ndarray] = []
        self._r2: List[np.ndarray] = []
        self._caps: List[np.ndarray] = []

    def add_beam(self, p1, r1: float, p2, r2: float, round_cap: bool = True):
        self.add_beams(np.reshape(p1, (1, 3)), r1, np.reshape(p2, (1, 3)), r2, round_cap)

    def add_beams(self, p1, r1, p2, r2, round_cap=True):
        """Append a batch; radii and cap flags broadcast against the point rows."""
        p1 = np.asarray(p1, dtype=float).reshape(-1, 3)
        p2 = np.asarray(p2, dtype=float).reshape(-1, 3)
        if len(p1) != len(p2):
            raise InvalidGeometryParameter(
                f"beam batch endpoints differ in count ({len(p1)} vs {len(p2)})")
        n = len(p1)
        if n == 0:
            return
        r1 = np.broadcast_to(np.asarray(r1, dtype=float), (n,)).copy()
        r2 = np.broadcast_to(np.asarray(r2, dtype=float), (n,)).copy()
        caps = np.broadcast_to(np.asarray(round_cap, dtype=bool), (n,)).copy()
        _validate(p1, p2, r1, r2)
        self._p1.append(p1)
        self._r1.append(r1)
        self._p2.append(p2)
        self._r2.append(r2)
        self._caps.append(caps)

    def extend(self, other: "Lattice"):
        p1, r1, p2, r2, caps = other.arrays()
        self.add_beams(p1, r1, p2, r2, caps)

    def __len__(self) -> int:
        return int(sum(len(r) for r in self._r1))

    def __iter__(self) -> Iterator[Beam]:
        p1, r1, p2, r2, caps = self.arrays()
        for i in range(len(r1)):
            yield Beam(p1[i], float(r1[i]), p2[i], float(r2[i]), bool(caps[i]))

    def arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """All beams as (p1, r1, p2, r2, round_cap) arrays."""
        if not self._r1:
            empty3 = np.zeros((0, 3))
            return empty3, np.zeros(0), empty3.copy(), np.zeros(0), np.zeros(0, dtype=bool)
        return (np.concatenate(self._p1), np.concatenate(self._r1),
                np.concatenate(self._p2), np.concatenate(self._r2),
                np.concatenate(self._caps))

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned bounds including beam radii."""
        p1, r1, p2, r2, _ = self.arrays()
        if len(r1) == 0:
            raise InvalidGeometryParameter("empty lattice has no bounds")
        lo = np.minimum((p1 - r1[:, None]).min(axis=0), (p2 - r2[:, None]).min(axis=0))
        hi = np.maximum((p1 + r1[:, None]).max(axis=0), (p2 + r2[:, None]).max(axis=0))
        return lo, hi


def beam_lattice(p1, p2, r1: float, r2: float, round_cap: bool = True) -> Lattice:
    """Single-beam lattice."""
    lat = Lattice()
    lat.add_beam(p1, r1, p2, r2, round_cap)
    return lat
