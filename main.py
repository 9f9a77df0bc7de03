"""
main.py — Command-Line Runner
==============================
Runs the channel-flow simulation with one of the built-in presets.

Usage:
    python main.py                              # Headless run (default)
    python main.py --mode live                  # Live visualization
    python main.py --mode benchmark             # Per-stage timing breakdown
    python main.py --preset karman --frames 500 # Vortex street behind a cylinder
"""

import argparse
import logging

import numpy as np


def build_simulator(preset: str = "default", width: int = None, height: int = None):
    """Create a simulator from a preset, with an obstacle suited to it."""
    from flowsim import PRESETS, FluidSimulator

    overrides = {}
    if width is not None:
        overrides["width"] = width
    if height is not None:
        overrides["height"] = height

    sim = FluidSimulator(PRESETS[preset](), **overrides)
    cfg = sim.config

    if preset in ("default", "karman"):
        # Cylinder a quarter of the way down the channel
        sim.add_circular_obstacle(cfg.width // 4, cfg.height // 2, max(2, cfg.height // 10))
    elif preset == "airfoil":
        # Thin plate as a stand-in body
        x0 = cfg.width // 4
        y0 = cfg.height // 2
        sim.add_rectangular_obstacle(x0, y0 - 1, x0 + cfg.width // 8, y0 + 1)
    # pipe: empty channel

    sim.reset()
    return sim


def run_live(preset: str = "default", width: int = None, height: int = None):
    """Live interactive visualization."""
    from visualizer import FlowVisualizer

    sim = build_simulator(preset, width, height)
    print(f"Starting live simulation ({preset}, {sim.config.width}x{sim.config.height})...")
    print("Close the window to exit.\n")

    sim.start()
    viz = FlowVisualizer(sim)
    viz.run(fps=20)


def run_headless(preset: str = "default", width: int = None, height: int = None,
                 frames: int = 100):
    """Run simulation without display — prints stats every 10 frames."""
    sim = build_simulator(preset, width, height)
    cfg = sim.config

    print(f"\nHeadless simulation | {preset} | {cfg.width}x{cfg.height} | {frames} frames")
    print(f"  Re = {sim.state.reynolds_number:.1f}")
    print(f"{'─'*60}")

    sim.start()
    total_times = []
    for f in range(frames):
        metrics = sim.step()
        if metrics is None:
            print(f"  Stopped at frame {f} (t={sim.state.time:.3f}s)")
            break
        total_times.append(metrics["total_ms"])

        if f % 10 == 0:
            print(f"  Frame {f:03d} | {metrics['total_ms']:6.1f}ms | "
                  f"t={metrics['time']:.3f}s | "
                  f"div={metrics['divergence']:.2e} | "
                  f"vmax={metrics['max_velocity']:.3f} | "
                  f"wmax={metrics['max_vorticity']:.2f}")

    if not total_times:
        return
    print(f"\n{'─'*60}")
    print(f"  Average: {np.mean(total_times):.1f}ms/step ({1000/np.mean(total_times):.1f} steps/s)")
    print(f"  Min:     {np.min(total_times):.1f}ms")
    print(f"  Max:     {np.max(total_times):.1f}ms")


def run_benchmark(preset: str = "default", width: int = None, height: int = None,
                  frames: int = 50):
    """
    Detailed performance breakdown.
    Shows how long each solver stage takes.
    """
    sim = build_simulator(preset, width, height)
    cfg = sim.config

    print(f"\n{'='*60}")
    print(f"  SOLVER BENCHMARK | {preset} | {cfg.width}x{cfg.height} | {frames} steps")
    print(f"{'='*60}")

    sim.start()

    # Warm up (first calls also compile the numba kernels)
    for _ in range(5):
        sim.step()

    logs = []
    for _ in range(frames):
        metrics = sim.step()
        if metrics is None:
            break
        logs.append(metrics)

    if not logs:
        print("  No steps recorded (simulation stopped during warm-up)")
        return

    keys = ["diffuse_ms", "project1_ms", "advect_ms", "project2_ms",
            "forces_ms", "total_ms"]

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>7.1f}ms {np.min(vals):>7.1f}ms {np.max(vals):>7.1f}ms")

    total_vals = [m["total_ms"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  Steps/s: {1000/np.mean(total_vals):.1f}")
    print(f"  Final RMS divergence: {logs[-1]['divergence']:.3e}")


if __name__ == "__main__":
    from flowsim import PRESETS

    parser = argparse.ArgumentParser(description="2D Incompressible Flow Simulation")
    parser.add_argument(
        "--mode", choices=["live", "headless", "benchmark"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--preset", choices=sorted(PRESETS), default="default",
                        help="Configuration preset (default: default)")
    parser.add_argument("--width",  type=int, default=None, help="Grid width in cells")
    parser.add_argument("--height", type=int, default=None, help="Grid height in cells")
    parser.add_argument("--frames", type=int, default=100, help="Number of steps")
    parser.add_argument("--verbose", action="store_true", help="Show per-step debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.mode == "live":
        run_live(args.preset, args.width, args.height)
    elif args.mode == "headless":
        run_headless(args.preset, args.width, args.height, frames=args.frames)
    elif args.mode == "benchmark":
        run_benchmark(args.preset, args.width, args.height, frames=args.frames)
