"""
HelixHeatX - Voxel Kernel

Signed-distance voxel fields on one shared regular grid. Negative values
are inside. This is the volumetric backend behind every Solid:

  - beams are rasterised as round cones (radius interpolated along the
    axis) or flat-capped cones, evaluated in numpy batches
  - union / intersect / subtract are min / max / max(a, -b)
  - offsets re-distance the field first (Euclidean distance transform)
    so grow/shrink distances are metric even after booleans
  - smoothing is a Gaussian blur of the re-distanced field

Fields are float32 and read-only once a Solid owns them; every operation
returns a new Solid.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from scipy import ndimage

from ..errors import InvalidGeometryParameter
from ..runtime import CancelToken, check_cancel

logger = logging.getLogger(__name__)

# Elements evaluated per rasterisation batch (beams x window voxels)
BATCH_BUDGET = 2_000_000

# Windows above this edge length are evaluated slab by slab
MAX_BUCKET_WINDOW = 64

# z-slices per slab when evaluating large primitives
SLAB_DEPTH = 16

# Beams longer than this many voxels are rasterised as consecutive pieces
MAX_PIECE_VOXELS = 8


@dataclass(frozen=True)
class Grid:
    """Regular node grid: node (i, j, k) sits at origin + (i, j, k) * voxel_size."""
    origin: Tuple[float, float, float]
    voxel_size: float
    shape: Tuple[int, int, int]

    def __post_init__(self):
        if not self.voxel_size > 0:
            raise InvalidGeometryParameter(f"voxel size must be positive, got {self.voxel_size}")
        if any(n < 2 for n in self.shape):
            raise InvalidGeometryParameter(f"grid needs at least 2 nodes per axis, got {self.shape}")

    @classmethod
    def from_bounds(cls, lo, hi, voxel_size: float, margin: float = 0.0) -> "Grid":
        lo = np.asarray(lo, dtype=float) - margin
        hi = np.asarray(hi, dtype=float) + margin
        if not voxel_size > 0:
            raise InvalidGeometryParameter(f"voxel size must be positive, got {voxel_size}")
        shape = np.maximum(np.ceil((hi - lo) / voxel_size).astype(int) + 1, 2)
        return cls(tuple(float(v) for v in lo), float(voxel_size), tuple(int(n) for n in shape))

    @property
    def far(self) -> float:
        """Background distance: the grid diagonal."""
        return float(np.linalg.norm(np.array(self.shape) * self.voxel_size))

    @property
    def upper(self) -> np.ndarray:
        return np.asarray(self.origin) + (np.array(self.shape) - 1) * self.voxel_size

    def axis(self, dim: int, start: int = 0, stop: Optional[int] = None) -> np.ndarray:
        stop = self.shape[dim] if stop is None else stop
        return self.origin[dim] + np.arange(start, stop) * self.voxel_size

    def index_window(self, lo, hi) -> Tuple[np.ndarray, np.ndarray]:
        """Clipped inclusive node index range covering [lo, hi]."""
        origin = np.asarray(self.origin)
        i_lo = np.floor((np.asarray(lo) - origin) / self.voxel_size).astype(int)
        i_hi = np.ceil((np.asarray(hi) - origin) / self.voxel_size).astype(int)
        limit = np.array(self.shape) - 1
        return np.clip(i_lo, 0, limit), np.clip(i_hi, 0, limit)

    def to_index(self, points) -> np.ndarray:
        """Fractional node coordinates of world points."""
        return (np.asarray(points, dtype=float) - np.asarray(self.origin)) / self.voxel_size


# ---------------------------------------------------------------------------
# Distance functions
# ---------------------------------------------------------------------------

def beam_distance(p, a, b, ra, rb, round_cap):
    """
    Approximate signed distance from points p (..., 3) to tapered beams.
    a, b, ra, rb, round_cap broadcast against p's leading dimensions.
    """
    ba = b - a
    pa = p - a
    l2 = np.maximum(np.sum(ba * ba, axis=-1), 1e-12)
    t = np.sum(pa * ba, axis=-1) / l2
    tc = np.clip(t, 0.0, 1.0)
    radius = ra + (rb - ra) * tc
    round_d = np.linalg.norm(pa - tc[..., None] * ba, axis=-1) - radius
    radial = np.linalg.norm(pa - t[..., None] * ba, axis=-1) - radius
    axial = (np.abs(t - 0.5) - 0.5) * np.sqrt(l2)
    flat_d = (np.minimum(np.maximum(radial, axial), 0.0)
              + np.hypot(np.maximum(radial, 0.0), np.maximum(axial, 0.0)))
    return np.where(round_cap, round_d, flat_d)


def _window_offsets(width: int) -> np.ndarray:
    return np.indices((width, width, width)).reshape(3, -1).T


def _scatter_min(flat: np.ndarray, lin: np.ndarray, vals: np.ndarray):
    """flat[lin] = min(flat[lin], vals) with repeated indices reduced first."""
    order = np.argsort(lin, kind="stable")
    lin_sorted = lin[order]
    vals_sorted = vals[order]
    uniq, start = np.unique(lin_sorted, return_index=True)
    mins = np.minimum.reduceat(vals_sorted, start)
    flat[uniq] = np.minimum(flat[uniq], mins)


def split_beams(p1, r1, p2, r2, caps, max_length: float, overlap: float = 0.0):
    """
    Cut beams into equal pieces no longer than max_length, radii
    interpolated linearly. Interior joints overlap by `overlap` so flat
    caps leave no seam; the union of the pieces covers the same volume.
    """
    d = p2 - p1
    lengths = np.linalg.norm(d, axis=1)
    pieces = np.maximum(np.ceil(lengths / max_length), 1).astype(int)
    if np.all(pieces == 1):
        return p1, r1, p2, r2, caps
    src = np.repeat(np.arange(len(r1)), pieces)
    k = np.arange(len(src)) - np.repeat(np.cumsum(pieces) - pieces, pieces)
    ov = (overlap / np.maximum(lengths, 1e-12))[src]
    t0 = np.maximum(k / pieces[src] - ov, 0.0)
    t1 = np.minimum((k + 1) / pieces[src] + ov, 1.0)
    dr = r2 - r1
    return (p1[src] + t0[:, None] * d[src], r1[src] + t0 * dr[src],
            p1[src] + t1[:, None] * d[src], r1[src] + t1 * dr[src], caps[src])


def rasterize_beams(grid: Grid, p1, r1, p2, r2, caps,
                    cancel: Optional[CancelToken] = None) -> np.ndarray:
    """Signed-distance field of the union of all beams."""
    field = np.full(grid.shape, grid.far, dtype=np.float32)
    if len(r1) == 0:
        return field
    p1, r1, p2, r2, caps = split_beams(p1, r1, p2, r2, caps,
                                       MAX_PIECE_VOXELS * grid.voxel_size, 0.5 * grid.voxel_size)
    n = len(r1)
    band = 2.0 * grid.voxel_size
    lo = np.minimum(p1 - r1[:, None], p2 - r2[:, None]) - band
    hi = np.maximum(p1 + r1[:, None], p2 + r2[:, None]) + band

    origin = np.asarray(grid.origin)
    inside_grid = np.all(hi >= origin, axis=1) & np.all(lo <= grid.upper, axis=1)
    i_lo, i_hi = grid.index_window(lo, hi)
    sizes = (i_hi - i_lo + 1).max(axis=1)
    buckets = np.maximum(2 ** np.ceil(np.log2(np.maximum(sizes, 1))).astype(int), 2)

    flat = field.reshape(-1)
    strides = np.array([grid.shape[1] * grid.shape[2], grid.shape[2], 1])
    for width in np.unique(buckets[inside_grid]):
        members = np.nonzero(inside_grid & (buckets == width))[0]
        if width > MAX_BUCKET_WINDOW:
            for m in members:
                check_cancel(cancel)
                _rasterize_large_beam(grid, field, p1[m], r1[m], p2[m], r2[m], caps[m],
                                      i_lo[m], i_hi[m])
            continue
        offsets = _window_offsets(int(width))
        batch = max(1, BATCH_BUDGET // len(offsets))
        for start in range(0, len(members), batch):
            check_cancel(cancel)
            sel = members[start:start + batch]
            idx = i_lo[sel][:, None, :] + offsets[None, :, :]
            valid = np.all(idx <= i_hi[sel][:, None, :], axis=-1)
            pts = origin + idx * grid.voxel_size
            dist = beam_distance(pts, p1[sel][:, None, :], p2[sel][:, None, :],
                                 r1[sel][:, None], r2[sel][:, None], caps[sel][:, None])
            lin = (idx[valid] * strides).sum(axis=-1)
            _scatter_min(flat, lin, dist[valid].astype(np.float32))
    logger.debug("rasterised %d beam pieces (%d outside grid)", n, int(n - inside_grid.sum()))
    return field


def _rasterize_large_beam(grid, field, a, ra, b, rb, cap, i_lo, i_hi):
    def fn(pts):
        return beam_distance(pts, a, b, ra, rb, cap)
    _apply_windowed(grid, field, i_lo, i_hi, fn)


def _apply_windowed(grid: Grid, field: np.ndarray, i_lo, i_hi,
                    fn: Callable[[np.ndarray], np.ndarray]):
    """field = min(field, fn(points)) over an index window, slab by slab in z."""
    xs = grid.axis(0, i_lo[0], i_hi[0] + 1)
    ys = grid.axis(1, i_lo[1], i_hi[1] + 1)
    for k0 in range(i_lo[2], i_hi[2] + 1, SLAB_DEPTH):
        k1 = min(k0 + SLAB_DEPTH, i_hi[2] + 1)
        zs = grid.axis(2, k0, k1)
        pts = np.stack(np.meshgrid(xs, ys, zs, indexing="ij"), axis=-1)
        block = field[i_lo[0]:i_hi[0] + 1, i_lo[1]:i_hi[1] + 1, k0:k1]
        np.minimum(block, fn(pts).astype(np.float32), out=block)


def redistance(grid: Grid, sdf: np.ndarray) -> np.ndarray:
    """Metric signed distance rebuilt from the inside mask; narrow band kept."""
    inside = sdf < 0
    if not inside.any():
        return np.full(grid.shape, grid.far, dtype=np.float32)
    if inside.all():
        return np.full(grid.shape, -grid.far, dtype=np.float32)
    vs = grid.voxel_size
    d_out = ndimage.distance_transform_edt(~inside, sampling=vs)
    d_in = ndimage.distance_transform_edt(inside, sampling=vs)
    rebuilt = np.where(inside, -(d_in - 0.5 * vs), d_out - 0.5 * vs)
    near = np.abs(sdf) < vs
    return np.where(near, sdf, rebuilt).astype(np.float32)


# ---------------------------------------------------------------------------
# Solid
# ---------------------------------------------------------------------------

class Solid:
    """Closed volumetric region on a grid; immutable."""

    def __init__(self, grid: Grid, sdf: np.ndarray):
        sdf = np.asarray(sdf, dtype=np.float32)
        if sdf.shape != grid.shape:
            raise InvalidGeometryParameter(f"field shape {sdf.shape} does not match grid {grid.shape}")
        sdf.setflags(write=False)
        self.grid = grid
        self.sdf = sdf

    def __repr__(self):
        return f"Solid(shape={self.grid.shape}, voxel={self.grid.voxel_size}, volume={self.volume:.1f})"

    # --- construction -----------------------------------------------------

    @classmethod
    def empty(cls, grid: Grid) -> "Solid":
        return cls(grid, np.full(grid.shape, grid.far, dtype=np.float32))

    @classmethod
    def from_lattice(cls, grid: Grid, lattice, cancel: Optional[CancelToken] = None) -> "Solid":
        p1, r1, p2, r2, caps = lattice.arrays()
        return cls(grid, rasterize_beams(grid, p1, r1, p2, r2, caps, cancel))

    @classmethod
    def from_function(cls, grid: Grid, lo, hi, fn: Callable[[np.ndarray], np.ndarray]) -> "Solid":
        """Evaluate a distance function of world points inside [lo, hi]."""
        field = np.full(grid.shape, grid.far, dtype=np.float32)
        band = 2.0 * grid.voxel_size
        lo = np.asarray(lo, dtype=float) - band
        hi = np.asarray(hi, dtype=float) + band
        if np.all(hi >= np.asarray(grid.origin)) and np.all(lo <= grid.upper):
            i_lo, i_hi = grid.index_window(lo, hi)
            _apply_windowed(grid, field, i_lo, i_hi, fn)
        return cls(grid, field)

    # --- queries ----------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not bool(np.any(self.sdf < 0))

    @property
    def volume(self) -> float:
        return float(np.count_nonzero(self.sdf < 0)) * self.grid.voxel_size ** 3

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """World bounds of the inside nodes."""
        inside = np.argwhere(self.sdf < 0)
        if len(inside) == 0:
            raise InvalidGeometryParameter("empty solid has no bounds")
        origin = np.asarray(self.grid.origin)
        return (origin + inside.min(axis=0) * self.grid.voxel_size,
                origin + inside.max(axis=0) * self.grid.voxel_size)

    def distance(self, points, nearest: bool = False) -> np.ndarray:
        """Field value at world points, trilinear or nearest-node (outside the grid: far)."""
        pts = np.atleast_2d(np.asarray(points, dtype=float))
        coords = self.grid.to_index(pts).T
        return ndimage.map_coordinates(self.sdf, coords, order=0 if nearest else 1, mode="constant",
                                       cval=self.grid.far)

    def contains(self, points) -> np.ndarray:
        return self.distance(points) < 0

    # --- booleans ---------------------------------------------------------

    def _check(self, other: "Solid"):
        if other.grid != self.grid:
            raise InvalidGeometryParameter("solids live on different grids")

    def union(self, other: "Solid") -> "Solid":
        self._check(other)
        return Solid(self.grid, np.minimum(self.sdf, other.sdf))

    def subtract(self, other: "Solid") -> "Solid":
        self._check(other)
        return Solid(self.grid, np.maximum(self.sdf, -other.sdf))

    def intersect(self, other: "Solid") -> "Solid":
        self._check(other)
        return Solid(self.grid, np.maximum(self.sdf, other.sdf))

    # --- morphology -------------------------------------------------------

    def offset(self, distance: float) -> "Solid":
        """Grow (positive) or shrink (negative) by a metric distance."""
        if distance == 0:
            return self
        return Solid(self.grid, redistance(self.grid, self.sdf) - np.float32(distance))

    def over_offset(self, first: float, final: float = 0.0) -> "Solid":
        """Offset by `first`, then back so the net offset is `final` (fills concave corners)."""
        return self.offset(first).offset(final - first)

    def smoothen(self, distance: float) -> "Solid":
        """Gaussian blur of the distance field with sigma = distance."""
        if distance <= 0:
            return self
        sigma = distance / self.grid.voxel_size
        blurred = ndimage.gaussian_filter(redistance(self.grid, self.sdf), sigma=sigma, mode="nearest")
        return Solid(self.grid, blurred)

    def extrude_z_slice(self, z_slice: float, z_target: float) -> "Solid":
        """
        Replace everything between z_target and z_slice with the cross-section
        at z_slice; material beyond z_target (away from the slice) is removed.
        """
        vs = self.grid.voxel_size
        z0 = self.grid.origin[2]
        k_slice = int(np.clip(round((z_slice - z0) / vs), 0, self.grid.shape[2] - 1))
        k_target = int(np.clip(round((z_target - z0) / vs), 0, self.grid.shape[2] - 1))
        field = np.array(self.sdf)
        layer = field[:, :, k_slice].copy()
        k_a, k_b = sorted((k_slice, k_target))
        field[:, :, k_a:k_b + 1] = layer[:, :, None]
        if k_target < k_slice:
            field[:, :, :k_target] = self.grid.far
        else:
            field[:, :, k_target + 1:] = self.grid.far
        return Solid(self.grid, field)


def union_all(grid: Grid, solids: Iterable[Solid]) -> Solid:
    """Union of any number of solids; empty input gives the empty solid."""
    field = None
    for solid in solids:
        if solid.grid != grid:
            raise InvalidGeometryParameter("solids live on different grids")
        field = np.array(solid.sdf) if field is None else np.minimum(field, solid.sdf, out=field)
    if field is None:
        return Solid.empty(grid)
    return Solid(grid, field)
