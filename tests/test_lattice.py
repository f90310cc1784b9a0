import numpy as np
import pytest

from helixheatx.errors import InvalidGeometryParameter
from helixheatx.geometry.lattice import Beam, Lattice, beam_lattice


def test_add_beams_broadcasts_radii_and_caps():
    lat = Lattice()
    p1 = np.zeros((3, 3))
    p2 = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    lat.add_beams(p1, 0.5, p2, [0.1, 0.2, 0.3], round_cap=False)
    a1, r1, a2, r2, caps = lat.arrays()
    assert len(lat) == 3
    assert np.allclose(r1, 0.5)
    assert np.allclose(r2, [0.1, 0.2, 0.3])
    assert not caps.any()


def test_iteration_keeps_insertion_order():
    lat = Lattice()
    lat.add_beam((0.0, 0.0, 0.0), 1.0, (1.0, 0.0, 0.0), 1.0)
    lat.add_beams([[0.0, 0.0, 1.0], [0.0, 0.0, 2.0]], 0.5, [[1.0, 0.0, 1.0], [1.0, 0.0, 2.0]], 0.5)
    beams = list(lat)
    assert [b.p1[2] for b in beams] == [0.0, 1.0, 2.0]
    assert all(isinstance(b, Beam) for b in beams)
    assert beams[0].length == pytest.approx(1.0)


def test_zero_radius_allowed():
    lat = beam_lattice((0.0, 0.0, 0.0), (0.0, 0.0, 3.0), 1.0, 0.0)
    assert len(lat) == 1


def test_invalid_beams_rejected():
    lat = Lattice()
    with pytest.raises(InvalidGeometryParameter):
        lat.add_beam((0.0, 0.0, 0.0), -0.1, (1.0, 0.0, 0.0), 1.0)
    with pytest.raises(InvalidGeometryParameter):
        lat.add_beam((np.inf, 0.0, 0.0), 1.0, (1.0, 0.0, 0.0), 1.0)
    with pytest.raises(InvalidGeometryParameter):
        lat.add_beams(np.zeros((2, 3)), 1.0, np.zeros((3, 3)), 1.0)
    with pytest.raises(InvalidGeometryParameter):
        Beam(np.zeros(3), 1.0, np.ones(3), float("nan"))
    assert len(lat) == 0


def test_extend_and_bounds():
    lat = beam_lattice((0.0, 0.0, 0.0), (4.0, 0.0, 0.0), 1.0, 0.5)
    lat.extend(beam_lattice((0.0, 0.0, 0.0), (0.0, 0.0, -3.0), 0.2, 0.2))
    lo, hi = lat.bounds()
    assert np.allclose(lo, [-1.0, -1.0, -3.2])
    assert np.allclose(hi, [4.5, 1.0, 1.0])


def test_empty_lattice():
    lat = Lattice()
    lat.add_beams(np.zeros((0, 3)), 1.0, np.zeros((0, 3)), 1.0)
    assert len(lat) == 0
    assert list(lat) == []
    assert lat.arrays()[0].shape == (0, 3)
    with pytest.raises(InvalidGeometryParameter):
        lat.bounds()
