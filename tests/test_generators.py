import math

import numpy as np
import pytest

from helixheatx.config.params import FinWindow
from helixheatx.geometry.channels import (
    PORT_NAMES, Fluid, helix_sweep, helix_void_lattice, transition_lattices,
    transition_start_direction,
)
from helixheatx.geometry.fins import fin_lattice, fin_sweep, fin_window_index, twist_angle
from helixheatx.geometry.flange import flange_positions, screw_hole_lattice
from helixheatx.geometry.frame import UNIT_X, UNIT_Z, cyl_point
from helixheatx.geometry.ports import (
    io_cut_lattice, support_directions, support_lattice, thread_frame,
)
from helixheatx.geometry.profiles import ProfileShape, profile_radius
from helixheatx.geometry.structure import (
    generate_centre_piece, generate_print_web, outer_structure_lattice,
)


@pytest.fixture(scope="module")
def hot_sweep(params, grid):
    return helix_sweep(params, Fluid.HOT, resolution=grid.voxel_size)


def section_endpoints(sweep, layout, index):
    s = sweep.samples
    frame = layout.helix_frame
    return (frame.to_world(cyl_point(sweep.inner[index], s.phi[index], s.z[index])),
            frame.to_world(cyl_point(sweep.outer[index], s.phi[index], s.z[index])))


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

def test_sweep_phases_interleave(params, grid, hot_sweep):
    cool = helix_sweep(params, Fluid.COOL, resolution=grid.voxel_size)
    assert hot_sweep.samples.phi[0] == pytest.approx(math.pi)
    assert cool.samples.phi[0] == pytest.approx(0.0)
    assert hot_sweep.beam_radius == pytest.approx(1.75)
    assert np.all(hot_sweep.outer > hot_sweep.inner)


def test_helix_lattice_layout(params, layout, hot_sweep):
    lat = helix_void_lattice(hot_sweep, layout, params)
    n = len(hot_sweep)
    p1, r1, p2, r2, _ = lat.arrays()
    assert len(lat) == 3 * n
    # Stubs rise straight up from both section ends
    assert np.allclose(p2[n:, 2] - p1[n:, 2], params.channel.stub_height_mm)
    assert np.allclose(r2[n:], params.channel.stub_tip_radius_mm)
    # Helix axis runs along world X from -50 to 50
    assert p1[0, 0] == pytest.approx(-50.0)
    assert p1[n - 1, 0] == pytest.approx(50.0)


@pytest.mark.parametrize("outlet", [False, True])
def test_transition_runs_from_section_to_port(params, layout, hot_sweep, outlet):
    duct, splitter = transition_lattices(hot_sweep, layout, params, outlet)
    n = params.channel.spline_samples
    port = layout.port(PORT_NAMES[Fluid.HOT][1 if outlet else 0])
    a, ra, b, rb, _ = duct.arrays()
    pt1, pt2 = section_endpoints(hot_sweep, layout, -1 if outlet else 0)

    assert np.allclose(a[0], pt1) and np.allclose(b[0], pt2)
    assert np.allclose(a[n - 1], port.position) and np.allclose(b[n - 1], port.position)
    assert ra[0] == pytest.approx(hot_sweep.beam_radius)
    assert ra[n - 1] == pytest.approx(params.channel.io_radius_mm)
    assert len(splitter) == 3 * n


@pytest.mark.parametrize("index, backward", [(0, True), (-1, False)])
def test_start_direction_perpendicular_to_section(layout, hot_sweep, index, backward):
    direction = transition_start_direction(hot_sweep, layout, index, backward)
    pt1, pt2 = section_endpoints(hot_sweep, layout, index)
    assert np.linalg.norm(direction) == pytest.approx(1.0)
    assert np.dot(direction, pt2 - pt1) == pytest.approx(0.0, abs=1e-9)
    # Inlet leaves backwards along the helix axis, outlet forwards
    along_axis = np.dot(direction, UNIT_X)
    assert (along_axis < 0) if backward else (along_axis > 0)


def test_splitters_lie_inside_the_void(hot_channel, cool_channel):
    for channel in (hot_channel, cool_channel):
        assert not channel.splitters.is_empty
        clipped = channel.splitters.intersect(channel.void)
        assert np.array_equal(clipped.sdf, channel.splitters.sdf)


def test_channels_reach_their_ports(layout, hot_channel, cool_channel):
    for channel in (hot_channel, cool_channel):
        inlet_name, outlet_name = PORT_NAMES[channel.fluid]
        assert channel.inlet.distance([layout.port(inlet_name).position], nearest=True)[0] < 0
        assert channel.outlet.distance([layout.port(outlet_name).position], nearest=True)[0] < 0


def test_voids_keep_wall_clearance(params, hot_channel, cool_channel):
    wall = params.channel.wall_thickness_mm
    hot_void = hot_channel.void.subtract(cool_channel.void.offset(wall))
    cool_void = cool_channel.void.subtract(hot_void.offset(wall))
    assert not hot_void.is_empty and not cool_void.is_empty
    assert cool_void.intersect(hot_void.offset(wall)).is_empty


# ---------------------------------------------------------------------------
# Fins
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("phi, expected", [(350.0, 1), (5.0, 0), (100.0, 3), (180.0, 2), (50.0, -1)])
def test_straight_window_lookup(params, phi, expected):
    assert fin_window_index(np.array([phi]), params.fins.straight_windows)[0] == expected


def test_first_window_wins():
    windows = [FinWindow(10.0, 20.0, 1), FinWindow(20.0, 20.0, 1)]
    assert list(fin_window_index(np.array([15.0, 35.0, 45.0]), windows)) == [0, 1, -1]


def test_window_edges_are_exclusive(params):
    straight = fin_window_index(np.array([15.0, 345.0, 75.0, 195.0]), params.fins.straight_windows)
    assert list(straight) == [-1, -1, -1, -1]
    turning = fin_window_index(np.array([25.0, 65.0, 25.001]), params.fins.turning_windows)
    assert list(turning) == [-1, -1, 0]


def test_twist_angle_eases_full_turn():
    window = FinWindow(90.0, 15.0, 8, twist=True)
    angles = twist_angle(np.array([75.0, 90.0, 105.0]), window)
    assert np.allclose(angles, [0.0, math.pi, 2.0 * math.pi])


@pytest.mark.parametrize("family", ["turning_windows", "straight_windows"])
def test_fin_lattice_shape(params, layout, hot_sweep, family):
    windows = getattr(params.fins, family)
    lat = fin_lattice(hot_sweep, layout, params, windows)
    index = fin_window_index(hot_sweep.samples.phi_deg, windows)
    expected = 2 * sum(windows[k].fin_count for k in index if k >= 0)
    assert len(lat) == expected > 0

    p1, r1, p2, r2, _ = lat.arrays()
    fp = params.fins
    # Same beam radius at the leg foot and at the apex
    assert np.allclose(r1, 0.5 * fp.fin_thickness_mm)
    assert np.allclose(r2, 0.5 * fp.fin_thickness_mm)
    assert np.allclose(p2[:, 2] - p1[:, 2], fp.apex_height_mm)
    # Each leg foot stays half a plate from the apex, twisted or not
    half_plate = 0.5 * params.channel.plate_thickness_mm
    assert np.allclose(np.hypot(*(p1 - p2)[:, :2].T), half_plate)


def test_fin_radii_follow_profile_at_fin_phase(params, layout, hot_sweep):
    ch, fp = params.channel, params.fins
    window = fp.turning_windows[0]
    lat = fin_lattice(hot_sweep, layout, params, [window])
    _, _, apex, _, _ = lat.arrays()

    s = hot_sweep.samples
    sel = np.nonzero(fin_window_index(s.phi_deg, [window]) == 0)[0]
    n = window.fin_count
    j = np.arange(n)
    phi = s.phi[sel, None] - math.radians(15.0) * np.cos(3.0 * (j / n - 0.5))
    inner = 10.0 * profile_radius(phi, ProfileShape.ROUND)
    outer = 50.0 * profile_radius(phi, ProfileShape.QUAD) - 0.2
    expected = inner + 5.0 + j / (n - 1) * (outer - 10.0 - inner)

    # First batch holds the leading legs; their apex sits above the fin centre
    centre = apex[:len(sel) * n] - (fp.apex_height_mm - fp.drop_mm) * UNIT_Z
    local = layout.helix_frame.to_local(centre)
    assert np.allclose(np.hypot(local[:, 0], local[:, 1]), expected.ravel())
    assert np.allclose(local[:, 2], np.repeat(s.z[sel], n))


def test_fin_sweep_spacing_within_fin_wall(params, grid):
    sweep = fin_sweep(params, Fluid.HOT, resolution=grid.voxel_size)
    assert len(sweep) > len(helix_sweep(params, Fluid.HOT, resolution=grid.voxel_size))
    pts = sweep.samples.points(sweep.outer.max())
    gaps = np.linalg.norm(np.diff(pts, axis=0), axis=1)
    assert gaps.max() <= params.fins.fin_thickness_mm


def test_empty_window_list_gives_no_fins(params, layout, hot_sweep):
    assert len(fin_lattice(hot_sweep, layout, params, [])) == 0


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

def test_support_directions_mirror_with_port_side(layout):
    for port in layout.ports.values():
        d = support_directions(port, 50.0, 15.0)
        assert np.sign(d[0]) == -np.sign(port.position[0])
        assert np.sign(d[1]) == -np.sign(port.position[1])
        assert d[2] < 0


def test_support_legs_reach_build_plate(params, layout):
    steps = params.ports.support_steps
    for port in layout.ports.values():
        lat = support_lattice(params, port)
        p1, r1, p2, r2, _ = lat.arrays()
        assert len(lat) == 2 * steps
        assert np.allclose(p2[steps:, 2], 0.0, atol=1e-9)
        assert np.all(r1 >= params.ports.support_min_radius_mm)


def test_thread_frame_faces_the_part(params, layout):
    frame = thread_frame(params, layout.port("first_inlet"))
    assert np.allclose(frame.position, [-87.0, -26.5, 51.0])
    assert np.allclose(frame.local_z, UNIT_X)
    outlet = thread_frame(params, layout.port("second_outlet"))
    assert np.allclose(outlet.position, [87.0, 26.5, 51.0])
    assert np.allclose(outlet.local_z, -UNIT_X)


def test_io_cut_lattice(params, layout):
    port = layout.port("first_outlet")
    lat = io_cut_lattice(params, port)
    p1, r1, p2, r2, caps = lat.arrays()
    assert len(lat) == 11
    assert not caps.any()
    assert np.allclose(p1[-1], port.position + 14.0 * port.local_z)
    assert (r1[-1], r2[-1]) == params.ports.chamfer_radii_mm


# ---------------------------------------------------------------------------
# Flange and structure
# ---------------------------------------------------------------------------

def test_flange_positions_and_screws(params):
    positions = flange_positions(params)
    assert len(positions) == 6
    assert np.allclose(positions[0], [-60.0, -38.0, 0.0])
    assert len(screw_hole_lattice(params)) == 18


def test_outer_structure_ribs(params, layout):
    lat = outer_structure_lattice(params, layout)
    n_z = len(np.arange(0.0, params.channel.cube_size_mm + 1e-9, params.structure.rib_step_mm))
    assert len(lat) == 8 * n_z
    _, r1, _, r2, _ = lat.arrays()
    assert np.allclose(r1, params.structure.rib_radius_mm)


def test_centre_piece_and_print_web(params, layout, grid):
    centre = generate_centre_piece(params, layout, grid)
    # Thin wall along the helix axis: x in [-50, 50], z in [40, 60], y in [-1, 1]
    assert centre.contains([[0.0, 0.0, 50.0], [-40.0, 0.0, 50.0], [40.0, 0.0, 50.0]]).all()
    assert not centre.contains([[0.0, 2.0, 50.0], [0.0, 0.0, 5.0], [0.0, 0.0, 66.0]]).any()

    web = generate_print_web(params, layout, grid)
    assert web.contains([[0.0, 0.0, -4.0], [25.0, 12.0, -4.0]]).all()
    assert not web.contains([[6.0, 6.0, -4.0], [0.0, 0.0, 0.0], [60.0, 0.0, -4.0]]).any()


def test_generator_lattices_have_non_negative_radii(params, layout, hot_sweep):
    lattices = [
        helix_void_lattice(hot_sweep, layout, params),
        *transition_lattices(hot_sweep, layout, params, outlet=True),
        fin_lattice(hot_sweep, layout, params, params.fins.straight_windows),
        outer_structure_lattice(params, layout),
        screw_hole_lattice(params),
    ]
    for port in layout.ports.values():
        lattices.append(support_lattice(params, port))
        lattices.append(io_cut_lattice(params, port))
    for lat in lattices:
        _, r1, _, r2, _ = lat.arrays()
        assert r1.min() >= 0.0 and r2.min() >= 0.0
