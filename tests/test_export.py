import os
from types import SimpleNamespace

import numpy as np
import pytest

from helixheatx.export.stl_export import export_build, export_stl, solid_to_mesh
from helixheatx.geometry.lattice import beam_lattice
from helixheatx.kernel.voxels import Grid, Solid


@pytest.fixture(scope="module")
def grid():
    return Grid.from_bounds((-6.0, -6.0, -6.0), (6.0, 6.0, 6.0), 0.5)


@pytest.fixture(scope="module")
def ball(grid):
    return Solid.from_lattice(grid, beam_lattice((1.0, 0.0, 0.0), (1.0, 0.0, 0.0), 3.0, 3.0))


def test_mesh_in_world_coordinates(ball):
    mesh = solid_to_mesh(ball)
    assert len(mesh.faces) > 0
    lo, hi = mesh.bounds
    assert np.allclose(lo, [-2.0, -3.0, -3.0], atol=0.5)
    assert np.allclose(hi, [4.0, 3.0, 3.0], atol=0.5)


def test_solid_touching_border_is_closed(grid):
    slab = Solid.from_lattice(grid, beam_lattice((-9.0, 0.0, 0.0), (9.0, 0.0, 0.0), 2.0, 2.0))
    mesh = solid_to_mesh(slab)
    lo, hi = mesh.bounds
    # Closed off at the grid faces
    assert lo[0] == pytest.approx(grid.origin[0], abs=1.0)
    assert hi[0] == pytest.approx(grid.upper[0], abs=1.0)


def test_small_fragments_filtered(grid):
    big = Solid.from_lattice(grid, beam_lattice((-2.0, 0.0, 0.0), (-2.0, 0.0, 0.0), 3.0, 3.0))
    speck = Solid.from_lattice(grid, beam_lattice((4.5, 4.5, 4.5), (4.5, 4.5, 4.5), 0.8, 0.8))
    both = big.union(speck)
    assert len(solid_to_mesh(both).split(only_watertight=False)) == 2
    filtered = solid_to_mesh(both, min_face_ratio=0.2)
    assert filtered.bounds[1][0] < 2.0


def test_empty_solid_rejected(grid):
    with pytest.raises(ValueError):
        solid_to_mesh(Solid.empty(grid))


def test_export_stl_writes_file(tmp_path, ball):
    path = export_stl(ball, str(tmp_path / "out" / "ball.stl"))
    assert os.path.getsize(path) > 0


def test_export_build_skips_missing_and_empty(tmp_path, grid, ball):
    result = SimpleNamespace(
        final=ball,
        screw_holes=ball.offset(-1.0),
        flange_thread_cutters=None,
        io_screw_cutters=Solid.empty(grid),
        stages={"core": ball.offset(-2.0)},
    )
    exported = export_build(result, str(tmp_path), name="part", verbose=False)
    assert set(exported) == {"part", "screw_holes", "stage_core"}
    assert all(os.path.exists(p) for p in exported.values())
