"""
HelixHeatX - Parameters

Every geometric constant of the heat exchanger, grouped per feature.
Defaults reproduce the reference part: 100 mm cube, 3.5 mm plates,
0.8 mm walls, 7 mm ports, six flange screws.

Parameters can be overridden from a YAML file whose top-level keys are
the block names (kernel, channel, fins, structure, flange, ports,
pipeline). The derived Layout (port frames, helix frame, bounding box)
is built once and passed explicitly into every generator.
"""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import yaml

from ..errors import ConfigError
from ..geometry.frame import Frame, UNIT_X, UNIT_Z
from ..geometry.profiles import ProfileShape


@dataclass
class KernelParams:
    """Voxel grid resolution."""
    voxel_size_mm: float = 0.5
    grid_margin_mm: float = 4.0


@dataclass
class ChannelParams:
    """Helical fluid channels and their inlet/outlet transitions."""
    cube_size_mm: float = 100.0
    plate_thickness_mm: float = 3.5
    wall_thickness_mm: float = 0.8        # Also the inter-plate gap of the helix
    io_radius_mm: float = 7.0
    sample_step_mm: float = 0.005         # Axial step of the helix sweep

    inner_radius_mm: float = 10.0         # Scales the ROUND profile
    outer_radius_mm: float = 50.0         # Scales the QUAD profile
    inner_profile: str = "round"
    outer_profile: str = "quad"

    # Vertical stubs that make the duct roof printable
    stub_height_mm: float = 3.0
    stub_tip_radius_mm: float = 0.2

    # Inlet / outlet transition
    spline_samples: int = 500
    spline_start_weight: float = 20.0
    spline_end_weight: float = 10.0
    tip_extension_mm: Tuple[float, float] = (3.0, 10.0)

    # Splitter walls inside the transitions
    splitter_radius_mm: float = 0.4
    splitter_top_radius_mm: float = 1.0
    splitter_drop_mm: float = 10.0
    splitter_step_mm: float = 5.0


@dataclass
class FinWindow:
    """Phase window of the helix that receives a row of fins."""
    center_deg: float
    half_width_deg: float
    fin_count: int
    twist: bool = False


def _turning_windows() -> List[FinWindow]:
    return [FinWindow(c, 20.0, 20) for c in (45.0, 135.0, 225.0, 315.0)]


def _straight_windows() -> List[FinWindow]:
    return [
        FinWindow(0.0, 15.0, 8),
        FinWindow(360.0, 15.0, 8),
        FinWindow(180.0, 15.0, 8),
        FinWindow(90.0, 15.0, 8, twist=True),
        FinWindow(270.0, 15.0, 8, twist=True),
    ]


@dataclass
class FinParams:
    """Tent-shaped mixing fins between inner and outer channel boundary."""
    fin_thickness_mm: float = 0.4         # Wall thickness; each leg beam has half this radius
    radial_start_inset_mm: float = 5.0
    radial_end_inset_mm: float = 10.0
    phase_spread_deg: float = 15.0
    phase_spread_frequency: float = 3.0
    drop_mm: float = 1.5
    apex_height_mm: float = 3.0
    turning_windows: List[FinWindow] = field(default_factory=_turning_windows)
    straight_windows: List[FinWindow] = field(default_factory=_straight_windows)


@dataclass
class StructureParams:
    """Outer rib skin, centre support wall and print web."""
    rib_step_mm: float = 0.3
    rib_radius_mm: float = 1.0
    rib_span_mm: float = 15.0             # Ribs reach +/- span around the outer boundary
    rib_swing: float = 0.25 * math.pi     # Angular amplitude of the rib oscillation
    rib_waves: float = 2.0                # Oscillations over the cube height
    over_offset_mm: Tuple[float, float] = (5.0, 0.5)
    smooth_mm: float = 1.0

    centre_box_mm: Tuple[float, float, float] = (100.0, 20.0, 2.0)

    web_slot_width_mm: float = 2.0
    web_slot_depth_mm: float = 1.5
    web_pitch_mm: float = 12.0
    web_extent_mm: float = 45.0


@dataclass
class FlangeParams:
    """Bottom flange pads, screw holes and thread cutters."""
    x_positions_mm: List[float] = field(default_factory=lambda: [-60.0, 60.0])
    y_positions_mm: List[float] = field(default_factory=lambda: [-38.0, 0.0, 38.0])
    pad_length_mm: float = 8.0
    pad_margin_mm: float = 5.0            # Pad radius = head radius + margin

    screw_height_mm: float = 6.0
    screw_thread_length_mm: float = 2.0
    screw_thread_radius_mm: float = 3.5
    screw_head_length_mm: float = 10.0
    screw_head_radius_mm: float = 7.0

    cutter_drop_mm: float = 10.0
    cutter_length_mm: float = 24.0
    cutter_core_radius_mm: float = 5.0
    cutter_max_radius_mm: float = 6.0
    cutter_pitch_mm: float = 1.3
    cutter_phi_step: float = 0.005        # rad

    over_offset_mm: float = 5.0
    smooth_mm: float = 0.5


@dataclass
class PortParams:
    """Inlet/outlet placement, supports, thread collars and end cuts."""
    half_length_spacing_mm: float = 75.0
    half_width_spacing_mm: float = 26.5
    port_height_mm: float = 50.0
    port_length_mm: float = 12.0

    support_min_radius_mm: float = 1.0
    support_steps: int = 30
    support_start_mm: float = 10.0
    support_backward_deg: Tuple[float, float] = (50.0, 20.0)
    support_inward_deg: float = 15.0
    support_overhang_deg: float = 30.0
    support_radius_margin_mm: Tuple[float, float] = (6.0, 2.0)

    thread_length_mm: float = 12.0
    thread_outer_radius_mm: float = 14.0
    thread_lift_mm: float = 1.0

    cut_radius_mm: float = 2.5
    cut_length_mm: float = 12.0
    chamfer_gap_mm: float = 2.0
    chamfer_length_mm: float = 4.0
    chamfer_radii_mm: Tuple[float, float] = (7.0, 2.0)

    screw_cut_length_mm: float = 14.0
    screw_cut_inset_mm: float = 0.2
    screw_cut_core_radius_mm: float = 5.0
    screw_cut_max_radius_mm: float = 6.0
    screw_cut_pitch_mm: float = 1.3


@dataclass
class PipelineParams:
    """Composition step constants."""
    shell_offset_mm: float = 0.9
    over_offset_mm: float = 5.0
    smooth_mm: float = 0.5
    z_slice_mm: float = 4.0
    z_target_mm: float = -4.0
    bounding_base_z_mm: float = -4.0
    bounding_height_mm: float = 107.0
    bounding_depth_mm: float = 104.0
    workers: int = 1
    diagnostics: bool = True              # Also build the preview thread cutters


@dataclass
class HeatExchangerParams:
    """Complete parameter set of one build."""
    name: str = "HelixHeatX"
    kernel: KernelParams = field(default_factory=KernelParams)
    channel: ChannelParams = field(default_factory=ChannelParams)
    fins: FinParams = field(default_factory=FinParams)
    structure: StructureParams = field(default_factory=StructureParams)
    flange: FlangeParams = field(default_factory=FlangeParams)
    ports: PortParams = field(default_factory=PortParams)
    pipeline: PipelineParams = field(default_factory=PipelineParams)


# ---------------------------------------------------------------------------
# Derived layout
# ---------------------------------------------------------------------------

PORT_NAMES = ("first_inlet", "second_inlet", "first_outlet", "second_outlet")


@dataclass(frozen=True)
class BoxRegion:
    """Box along a frame: length on local Z from the origin, width on X, depth on Y (centred)."""
    frame: Frame
    length: float
    width: float
    depth: float

    def corners(self) -> np.ndarray:
        hx, hy = 0.5 * self.width, 0.5 * self.depth
        local = np.array([[x, y, z] for x in (-hx, hx) for y in (-hy, hy) for z in (0.0, self.length)])
        return self.frame.to_world(local)


@dataclass(frozen=True)
class Layout:
    """Frames and bounds shared by all generators."""
    helix_frame: Frame
    ports: Dict[str, Frame]
    bounding: BoxRegion

    def port(self, name: str) -> Frame:
        return self.ports[name]

    def world_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        corners = self.bounding.corners()
        return corners.min(axis=0), corners.max(axis=0)


def build_layout(params: HeatExchangerParams) -> Layout:
    """Derive frames and bounding volumes from the parameter set."""
    ch = params.channel
    pp = params.ports
    pl = params.pipeline
    half = 0.5 * ch.cube_size_mm
    sx, sy, pz = pp.half_length_spacing_mm, pp.half_width_spacing_mm, pp.port_height_mm
    ports = {
        "first_inlet": Frame((-sx, -sy, pz), -UNIT_X),
        "second_inlet": Frame((-sx, sy, pz), -UNIT_X),
        "first_outlet": Frame((sx, -sy, pz), UNIT_X),
        "second_outlet": Frame((sx, sy, pz), UNIT_X),
    }
    # Helix axis runs along world X through the cube centre; local X points up
    helix_frame = Frame((-half, 0.0, half), UNIT_X, UNIT_Z)
    bounding = BoxRegion(
        Frame((0.0, 0.0, pl.bounding_base_z_mm)),
        length=pl.bounding_height_mm,
        width=2.0 * sx + 2.0 * pp.port_length_mm,
        depth=pl.bounding_depth_mm,
    )
    return Layout(helix_frame=helix_frame, ports=ports, bounding=bounding)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _apply_block(target, values: dict, path: str):
    if not isinstance(values, dict):
        raise ConfigError(f"{path}: expected a mapping, got {type(values).__name__}")
    known = {f.name: f for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            raise ConfigError(f"{path}: unknown parameter '{key}'")
        current = getattr(target, key)
        if is_dataclass(current):
            _apply_block(current, value, f"{path}.{key}")
        elif key in ("turning_windows", "straight_windows"):
            setattr(target, key, [_fin_window(w, f"{path}.{key}") for w in value])
        elif isinstance(current, tuple):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


def _fin_window(value, path: str) -> FinWindow:
    if isinstance(value, dict):
        try:
            return FinWindow(**value)
        except TypeError as e:
            raise ConfigError(f"{path}: {e}") from e
    if isinstance(value, (list, tuple)) and 3 <= len(value) <= 4:
        return FinWindow(*value)
    raise ConfigError(f"{path}: cannot read fin window {value!r}")


def _check_profiles(channel, path: str):
    for key in ("inner_profile", "outer_profile"):
        value = getattr(channel, key)
        try:
            ProfileShape(value)
        except ValueError as e:
            choices = ", ".join(s.value for s in ProfileShape)
            raise ConfigError(f"{path}.{key}: unknown profile {value!r}, expected one of {choices}") from e


def load_params(config_path: Optional[str] = None) -> HeatExchangerParams:
    """Defaults, optionally overridden by a YAML file."""
    params = HeatExchangerParams()
    if not config_path:
        return params
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read {config_path}: {e}") from e
    _apply_block(params, data, "params")
    _check_profiles(params.channel, "params.channel")
    return params
