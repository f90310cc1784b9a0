"""
HelixHeatX - Heat Exchanger Assembly

Composes all sub-assemblies into the final part. The boolean sequence is
declared as a task graph so that every ordering constraint is a named
dependency:

  1. fins       = union of turning and straight fins of both fluids
  2. structure  = outer rib skin
  3. hot / cool voids, each minus the other grown by the wall thickness
  4. inner      = hot | cool;  splitters = hot | cool splitters;
     outer      = inner grown by the shell thickness
  5. shell      = outer | flange | IO supports, over-offset + smoothed,
                  | centre piece | structure, - screw holes,
                  flattened to the base slab, - print web
  6. carved     = (shell - inner | fins | splitters) & bounding box
  7. final      = carved | IO thread collars - IO end cuts
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np

from ..config.params import HeatExchangerParams, Layout, build_layout
from ..kernel.voxels import Grid, Solid, union_all
from ..runtime import CancelToken
from .channels import Fluid, generate_channel
from .fins import fin_sweep, generate_fins
from .flange import generate_flange
from .modules import box_from_region
from .ports import generate_io_cuts, generate_io_screw_cutters, generate_io_supports, generate_io_threads
from .structure import generate_centre_piece, generate_outer_structure, generate_print_web
from .taskgraph import TaskGraph

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Final part plus preview solids."""
    final: Solid
    screw_holes: Solid
    flange_thread_cutters: Optional[Solid]
    io_screw_cutters: Optional[Solid]
    layout: Layout
    grid: Grid
    elapsed_s: float = 0.0
    stages: Dict[str, Solid] = field(default_factory=dict)


def make_grid(params: HeatExchangerParams, layout: Layout) -> Grid:
    lo, hi = layout.world_bounds()
    return Grid.from_bounds(lo, hi, params.kernel.voxel_size_mm, params.kernel.grid_margin_mm)


def _fins_node(params, layout, grid, fluid, windows, label, cancel):
    def run():
        sweep = fin_sweep(params, fluid, resolution=grid.voxel_size)
        return generate_fins(params, layout, grid, sweep, windows, cancel, label)
    return run


def build_pipeline(params: HeatExchangerParams, layout: Layout, grid: Grid,
                   cancel: Optional[CancelToken] = None) -> TaskGraph:
    """Task graph producing 'final' and the preview solids."""
    pl = params.pipeline
    wall = params.channel.wall_thickness_mm
    g = TaskGraph()

    # Sub-assemblies
    for fluid in Fluid:
        g.add(f"{fluid.value}_channel",
              lambda fluid=fluid: generate_channel(params, layout, grid, fluid, cancel))
        g.add(f"{fluid.value}_turning_fins",
              _fins_node(params, layout, grid, fluid, params.fins.turning_windows, "turning fins", cancel))
        g.add(f"{fluid.value}_straight_fins",
              _fins_node(params, layout, grid, fluid, params.fins.straight_windows, "straight fins", cancel))
    g.add("structure", lambda: generate_outer_structure(params, layout, grid, cancel))
    g.add("flange", lambda: generate_flange(params, layout, grid, cancel, with_cutters=pl.diagnostics))
    g.add("io_supports", lambda: generate_io_supports(params, layout, grid, cancel))
    g.add("centre_piece", lambda: generate_centre_piece(params, layout, grid))
    g.add("print_web", lambda: generate_print_web(params, layout, grid))
    g.add("bounding_box", lambda: box_from_region(grid, layout.bounding))
    g.add("io_threads", lambda: generate_io_threads(params, layout, grid))
    g.add("io_cuts", lambda: generate_io_cuts(params, layout, grid, cancel))

    # 1. fins
    g.add("fins", lambda *fins: union_all(grid, fins),
          ["hot_turning_fins", "hot_straight_fins", "cool_turning_fins", "cool_straight_fins"])

    # 3. keep the two voids one wall apart
    g.add("hot_void", lambda hot, cool: hot.void.subtract(cool.void.offset(wall)),
          ["hot_channel", "cool_channel"])
    g.add("cool_void", lambda cool, hot_void: cool.void.subtract(hot_void.offset(wall)),
          ["cool_channel", "hot_void"])

    # 4. inner / outer volume
    g.add("inner_volume", lambda hot, cool: hot.union(cool), ["hot_void", "cool_void"])
    g.add("splitters", lambda hot, cool: hot.splitters.union(cool.splitters),
          ["hot_channel", "cool_channel"])
    g.add("outer_volume", lambda inner: inner.offset(pl.shell_offset_mm), ["inner_volume"])

    # 5. shell
    g.add("screw_holes", lambda flange: flange.screw_holes, ["flange"])
    g.add("shell_blend",
          lambda outer, flange, supports: (outer.union(flange.pads).union(supports)
                                           .over_offset(pl.over_offset_mm, 0.0)
                                           .smoothen(pl.smooth_mm)),
          ["outer_volume", "flange", "io_supports"])
    g.add("shell_supported", lambda shell, centre, structure: shell.union(centre).union(structure),
          ["shell_blend", "centre_piece", "structure"])
    g.add("shell_drilled", lambda shell, holes: shell.subtract(holes),
          ["shell_supported", "screw_holes"])
    g.add("shell_slab", lambda shell: shell.extrude_z_slice(pl.z_slice_mm, pl.z_target_mm),
          ["shell_drilled"])
    g.add("shell", lambda shell, web: shell.subtract(web), ["shell_slab", "print_web"])

    # 6. carve the channels, keep fins and splitters, clip
    g.add("carved",
          lambda shell, inner, fins, splitters, bounds: (shell.subtract(inner).union(fins)
                                                         .union(splitters).intersect(bounds)),
          ["shell", "inner_volume", "fins", "splitters", "bounding_box"])

    # 7. port collars, then re-open the bores
    g.add("final", lambda carved, threads, cuts: carved.union(threads).subtract(cuts),
          ["carved", "io_threads", "io_cuts"])

    if pl.diagnostics:
        g.add("flange_thread_cutters", lambda flange: flange.thread_cutters, ["flange"])
        g.add("io_screw_cutters", lambda: generate_io_screw_cutters(params, layout, grid, cancel))
    return g


def build_heat_exchanger(params: Optional[HeatExchangerParams] = None,
                         cancel: Optional[CancelToken] = None,
                         workers: Optional[int] = None,
                         on_stage: Optional[Callable[[str, Solid], None]] = None,
                         keep_stages: bool = False) -> BuildResult:
    """
    Build the final solid.

    Args:
        params: Parameter set (defaults when None)
        cancel: Token checked between batches and stages
        workers: Parallel stage workers (params.pipeline.workers when None)
        on_stage: Called with (name, solid) after each solid-valued stage
        keep_stages: Keep every intermediate solid in the result

    Returns:
        BuildResult with the final solid and the preview cutters
    """
    params = params if params is not None else HeatExchangerParams()
    workers = params.pipeline.workers if workers is None else workers
    layout = build_layout(params)
    grid = make_grid(params, layout)
    logger.info("grid %s at %.2f mm (%.1f M nodes)", grid.shape, grid.voxel_size,
                np.prod(grid.shape) / 1e6)

    stages: Dict[str, Solid] = {}

    def observe(name, value):
        if not isinstance(value, Solid):
            return
        if keep_stages:
            stages[name] = value
        if on_stage is not None:
            on_stage(name, value)

    t0 = time.time()
    results = build_pipeline(params, layout, grid, cancel).run(workers, cancel, observe)
    elapsed = time.time() - t0
    logger.info("build finished in %.1fs", elapsed)

    return BuildResult(
        final=results["final"],
        screw_holes=results["screw_holes"],
        flange_thread_cutters=results.get("flange_thread_cutters"),
        io_screw_cutters=results.get("io_screw_cutters"),
        layout=layout,
        grid=grid,
        elapsed_s=elapsed,
        stages=stages,
    )


def print_build_summary(result: BuildResult, params: HeatExchangerParams):
    """Print a short summary of a finished build."""
    ch = params.channel
    print(f"\n{'='*55}")
    print(f"  HelixHeatX Build: {params.name}")
    print(f"{'='*55}")
    print(f"\n  Cube:           {ch.cube_size_mm:.0f} mm")
    print(f"  Plate / wall:   {ch.plate_thickness_mm:.2f} / {ch.wall_thickness_mm:.2f} mm")
    print(f"  IO radius:      {ch.io_radius_mm:.1f} mm")
    print(f"  Voxel size:     {result.grid.voxel_size:.2f} mm  (grid {result.grid.shape})")
    print(f"  Build time:     {result.elapsed_s:.1f} s")

    if result.final.is_empty:
        print("\n  Final solid is EMPTY")
    else:
        lo, hi = result.final.bounds()
        print(f"\n  Part volume:    {result.final.volume / 1000:.1f} cm3")
        print(f"  Part extents:   x {lo[0]:.1f}..{hi[0]:.1f}  y {lo[1]:.1f}..{hi[1]:.1f}  "
              f"z {lo[2]:.1f}..{hi[2]:.1f} mm")

    print(f"\n  Port Frames:")
    for name, frame in result.layout.ports.items():
        x, y, z = frame.position
        print(f"    {name:15s} at ({x:6.1f}, {y:6.1f}, {z:5.1f})")

    if result.stages:
        print(f"\n  Stages kept:    {len(result.stages)}")
    print(f"{'='*55}\n")
