#!/usr/bin/env python3
"""
Performance benchmark for the N-body force evaluation.

Compares:
- Barnes-Hut with each evaluation strategy (sequential, partitioned,
  data_parallel)
- Barnes-Hut at several opening angles
- Direct NumPy summation, O(N²), as the accuracy baseline

Usage:
    python -m nbody3d.utils.benchmark [--bodies 1000] [--iterations 5]
"""

from __future__ import annotations

import argparse
import random
import sys
import time

import numpy as np

from nbody3d.core.bodies import Body
from nbody3d.core.scheduler import (
    DataParallelStrategy,
    ForceJob,
    ForceStrategy,
    PartitionedStrategy,
    SequentialStrategy,
)
from nbody3d.physics.forces import compute_forces_direct
from nbody3d.physics.octree import build_octree


def generate_bodies(n: int, seed: int = 42, extent: float = 500.0) -> list[Body]:
    """Uniform random bodies at rest."""
    rng = random.Random(seed)
    return [
        Body(
            x=rng.uniform(-extent, extent),
            y=rng.uniform(-extent, extent),
            z=rng.uniform(-extent, extent),
            m=rng.uniform(0.5, 1.5),
        )
        for _ in range(n)
    ]


def tree_forces(
    bodies: list[Body],
    strategy: ForceStrategy,
    *,
    g: float,
    theta: float,
    softening: float,
) -> tuple[np.ndarray, float, float]:
    """Build + evaluate once. Returns (forces, build_ms, force_ms)."""
    for b in bodies:
        b.clear_force()
    xs = [b.x for b in bodies]
    ys = [b.y for b in bodies]
    zs = [b.z for b in bodies]
    ms = [b.m for b in bodies]

    t0 = time.perf_counter()
    root = build_octree(xs, ys, zs, ms)
    build_ms = (time.perf_counter() - t0) * 1000.0

    job = ForceJob(bodies=bodies, root=root, xs=xs, ys=ys, zs=zs, ms=ms, g=g, theta=theta, softening=softening)
    t0 = time.perf_counter()
    strategy.evaluate(job)
    force_ms = (time.perf_counter() - t0) * 1000.0

    forces = np.array([(b.fx, b.fy, b.fz) for b in bodies], dtype=np.float64)
    return forces, build_ms, force_ms


def relative_error(approx: np.ndarray, exact: np.ndarray) -> float:
    """Σ|F_approx - F_exact| / Σ|F_exact| over all bodies."""
    num = float(np.sum(np.linalg.norm(approx - exact, axis=1)))
    den = float(np.sum(np.linalg.norm(exact, axis=1)))
    return num / den if den > 0.0 else num


def run_benchmark(
    n_bodies: int,
    iterations: int,
    *,
    workers: int = 4,
    thetas: tuple[float, ...] = (0.3, 0.5, 0.8),
) -> dict[str, float]:
    """Run full benchmark suite."""
    print(f"\n{'=' * 60}")
    print(f"Benchmark: {n_bodies} bodies, {iterations} iterations, {workers} workers")
    print(f"{'=' * 60}")

    g = 1.0
    softening = 1.0

    print("Generating bodies...", end=" ", flush=True)
    bodies = generate_bodies(n_bodies)
    xs = [b.x for b in bodies]
    ys = [b.y for b in bodies]
    zs = [b.z for b in bodies]
    ms = [b.m for b in bodies]
    print("done")

    results: dict[str, float] = {}

    print("Direct NumPy...", end=" ", flush=True)
    t0 = time.perf_counter()
    exact = compute_forces_direct(xs, ys, zs, ms, g, softening)
    results["direct"] = (time.perf_counter() - t0) * 1000.0
    print(f"{results['direct']:.2f} ms")

    strategies: list[ForceStrategy] = [
        SequentialStrategy(),
        PartitionedStrategy(workers=workers),
        DataParallelStrategy(workers=workers),
    ]
    try:
        for strategy in strategies:
            for theta in thetas:
                label = f"{strategy.name} (θ={theta})"
                print(f"{label}...", end=" ", flush=True)
                times = []
                forces = exact
                build_ms = 0.0
                for _ in range(iterations):
                    t0 = time.perf_counter()
                    forces, build_ms, _force_ms = tree_forces(
                        bodies, strategy, g=g, theta=theta, softening=softening
                    )
                    times.append(time.perf_counter() - t0)
                mean_ms = (sum(times) / len(times)) * 1000
                std_ms = (sum((t - mean_ms / 1000) ** 2 for t in times) / len(times)) ** 0.5 * 1000
                err = relative_error(forces, exact)
                print(f"{mean_ms:.2f} ± {std_ms:.2f} ms (build {build_ms:.2f} ms, error {err:.2e})")
                results[f"{strategy.name}_{theta}"] = mean_ms
    finally:
        for strategy in strategies:
            strategy.close()

    return results


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Benchmark Barnes-Hut force evaluation")
    parser.add_argument("--bodies", "-n", type=int, default=1000, help="Number of bodies")
    parser.add_argument("--iterations", "-i", type=int, default=5, help="Benchmark iterations")
    parser.add_argument("--workers", "-w", type=int, default=4, help="Worker threads for parallel strategies")
    parser.add_argument("--sweep", action="store_true", help="Run sweep over body counts")
    args = parser.parse_args(argv)

    if args.bodies < 1 or args.iterations < 1:
        parser.error("--bodies and --iterations must be positive")

    print("N-body force benchmark")
    print(f"Platform: {sys.platform}")
    print(f"NumPy: {np.__version__}")

    if args.sweep:
        for n in (100, 500, 1000, 2000):
            run_benchmark(n, args.iterations, workers=args.workers)
    else:
        run_benchmark(args.bodies, args.iterations, workers=args.workers)
    return 0


if __name__ == "__main__":
    sys.exit(main())
