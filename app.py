"""
HelixHeatX - Dual-Channel Helical Heat Exchanger Generator
Main entry point.

Usage:
    python app.py                              # Build with defaults, write exports/stl/HelixHeatX.stl
    python app.py --voxel 1.0                  # Coarser (faster) build
    python app.py --config params.yaml         # Override parameters from YAML
    python app.py --stages --workers 4         # Export every pipeline stage, run stages in parallel
    python app.py --summary                    # Print the parameter layout only
"""

import argparse
import logging
import os
import sys

# Ensure UTF-8 output on Windows
if sys.stdout.encoding != 'utf-8':
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
if sys.stderr.encoding != 'utf-8':
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from helixheatx.errors import BuildCancelled, HelixHeatXError


def print_layout(params):
    """Show derived frames and bounds without building."""
    from helixheatx.config.params import build_layout
    from helixheatx.geometry.curves import helix_slope, helix_turns

    ch = params.channel
    layout = build_layout(params)
    n_turns, f_turns = helix_turns(ch.cube_size_mm, ch.plate_thickness_mm, ch.wall_thickness_mm)
    slope = helix_slope(ch.cube_size_mm, ch.plate_thickness_mm, ch.wall_thickness_mm)
    lo, hi = layout.world_bounds()

    print(f"\n{'='*55}")
    print(f"  HelixHeatX Layout: {params.name}")
    print(f"{'='*55}")
    print(f"\n  Helix turns:    {f_turns} ({n_turns} whole turns fit)")
    print(f"  Helix slope:    {slope:.5f} rad/mm")
    print(f"  Bounding box:   x {lo[0]:.1f}..{hi[0]:.1f}  y {lo[1]:.1f}..{hi[1]:.1f}  "
          f"z {lo[2]:.1f}..{hi[2]:.1f} mm")
    print(f"\n  Port Frames:")
    for name, frame in layout.ports.items():
        x, y, z = frame.position
        dx, dy, dz = frame.local_z
        print(f"    {name:15s} at ({x:6.1f}, {y:6.1f}, {z:5.1f})  facing ({dx:+.0f}, {dy:+.0f}, {dz:+.0f})")
    print(f"{'='*55}\n")


def run_build(params, output_dir: str, workers: int, stages: bool, verbose: bool):
    """Build the part and export STL files."""
    from helixheatx.export.stl_export import export_build
    from helixheatx.geometry.assembly import build_heat_exchanger, print_build_summary

    print("\n" + "="*60)
    print("  Building HelixHeatX")
    print("="*60)

    result = build_heat_exchanger(params, workers=workers, keep_stages=stages)
    print_build_summary(result, params)
    if result.final.is_empty:
        raise HelixHeatXError("build produced an empty solid")

    exported = export_build(result, output_dir, params.name, verbose)
    print(f"\n  Exported: {len(exported)} STL files to {os.path.abspath(output_dir)}")
    return result


def main():
    parser = argparse.ArgumentParser(description='HelixHeatX - Helical Heat Exchanger Generator')
    parser.add_argument('--config', type=str, metavar='YAML', help='Parameter override file')
    parser.add_argument('--output', type=str, default='exports/stl', help='Output directory')
    parser.add_argument('--voxel', type=float, metavar='MM', help='Voxel size in mm')
    parser.add_argument('--workers', type=int, help='Parallel pipeline stages')
    parser.add_argument('--stages', action='store_true', help='Also export every pipeline stage')
    parser.add_argument('--no-diagnostics', action='store_true', help='Skip preview thread cutters')
    parser.add_argument('--summary', action='store_true', help='Print the layout and exit')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    from helixheatx.config.params import load_params

    try:
        params = load_params(args.config)
        if args.voxel is not None:
            params.kernel.voxel_size_mm = args.voxel
        if args.no_diagnostics:
            params.pipeline.diagnostics = False
        workers = args.workers if args.workers is not None else params.pipeline.workers

        if args.summary:
            print_layout(params)
        else:
            run_build(params, args.output, workers, args.stages, args.verbose)
    except BuildCancelled as e:
        print(f"\n  Build cancelled: {e}")
        return 130
    except HelixHeatXError as e:
        print(f"\n  ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
