from __future__ import annotations

import math
import random
import sys
import threading
import time
from dataclasses import dataclass, fields, replace
from typing import Any, Sequence

import numpy as np

from nbody3d.core.bodies import DEFAULT_COLOR, BodyStore
from nbody3d.core.init_conditions import create_initial_bodies
from nbody3d.core.scheduler import ForceJob, ForceStrategy, make_strategy
from nbody3d.params import SimParams
from nbody3d.physics.energy import total_energy
from nbody3d.physics.integrator import Integrator
from nbody3d.physics.octree import OctreeNode, build_octree
from nbody3d.utils.config_groups import (
    PARAM_KEYS,
    is_integrator_related,
    is_reset_required,
    is_strategy_related,
)


@dataclass(frozen=True)
class Snapshot:
    """Between-step copy of what the renderer needs."""
    positions: np.ndarray  # (n, 3) float64, read-only
    radii: np.ndarray
    colors: tuple[tuple[float, float, float], ...]
    step: int
    sim_time: float


class NBodySim:
    """
    Frame-driven N-body simulation.

    Each ``step`` rebuilds the octree from the current positions, evaluates
    the force on every body with the configured strategy and integrates.
    Every public method serializes on one lock, so outside readers only
    ever see the state between two steps.
    """

    def __init__(self, params: SimParams, *, store: BodyStore | None = None) -> None:
        self.params = params
        self._lock = threading.Lock()
        self._rng = random.Random(params.seed)
        self.store = BodyStore()
        self.strategy: ForceStrategy = make_strategy(params)
        self.integrator = Integrator(params.integration_scheme, diagnostics=params.diagnostics)
        self.sim_time = 0.0
        self.step_count = 0
        self.last_build_ms: float | None = None
        self.last_force_ms: float | None = None
        self.last_integrate_ms: float | None = None
        self.last_tree_depth: int = 0
        self.last_issues: list[str] = []
        self._nonfinite: set[int] = set()

        if store is None:
            self.reset()
        else:
            self.store = store

    def __enter__(self) -> "NBodySim":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        # Waits for a running step so its pool is not shut down mid-evaluation.
        with self._lock:
            self.strategy.close()

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        p = self.params
        self._rng = random.Random(p.seed)
        store = BodyStore()
        for ib in create_initial_bodies(p, self._rng):
            store.spawn(ib.position, ib.velocity, radius=ib.radius, mass=ib.mass, color=ib.color)
        self.store = store
        self.sim_time = 0.0
        self.step_count = 0
        self.last_issues = []
        self._nonfinite = set()

    def spawn_body(
        self,
        position: Sequence[float],
        velocity: Sequence[float],
        radius: float,
        mass: float,
        color: Sequence[float] = DEFAULT_COLOR,
    ) -> int:
        """
        Add a body with zero accumulated force; returns its index.

        Raises:
            BodySpecError: for a degenerate spec; nothing is added.
        """
        with self._lock:
            return self.store.spawn(position, velocity, radius=radius, mass=mass, color=color)

    def update_params(self, **changes: Any) -> list[str]:
        """
        Change parameters between steps (e.g. ``theta`` or ``g`` from a UI).

        Returns the warnings of ``SimParams.validate`` for the new set.
        Changing an initial-condition field resets the simulation.

        Raises:
            ValueError: for an unknown key or a value that cannot be
                converted; the current parameters are left untouched.
        """
        unknown = [k for k in changes if k not in PARAM_KEYS]
        if unknown:
            raise ValueError(f"unknown parameter(s): {', '.join(sorted(unknown))}")
        with self._lock:
            p = self.params
            try:
                candidate = replace(p, **changes).clamp()
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid parameter value: {exc}") from exc
            for f in fields(SimParams):
                setattr(p, f.name, getattr(candidate, f.name))

            keys = set(changes)
            if any(is_strategy_related(k) for k in keys):
                self.strategy.close()
                self.strategy = make_strategy(p)
                if p.diagnostics:
                    print(
                        f"[strategy] {self.strategy.name} "
                        f"(workers={p.worker_count}, chunk_size={p.chunk_size})",
                        file=sys.stderr,
                    )
            if any(is_integrator_related(k) for k in keys):
                self.integrator = Integrator(p.integration_scheme, diagnostics=p.diagnostics)
            if any(is_reset_required(k) for k in keys):
                self._reset_locked()
            return p.validate()

    def _report(self, message: str) -> None:
        self.last_issues.append(message)
        if self.params.diagnostics:
            print(message, file=sys.stderr)

    def _build(self) -> tuple[OctreeNode | None, ForceJob]:
        p = self.params
        bodies = self.store.bodies
        skip = {i for i, b in enumerate(bodies) if not b.is_finite()}
        for i in sorted(skip - self._nonfinite):
            self._report(f"[build] body {i} has non-finite state, left out of the tree")
        self._nonfinite = skip

        xs, ys, zs, ms = self.store.columns()
        t0 = time.perf_counter()
        root = build_octree(xs, ys, zs, ms, max_depth=p.max_depth, skip=skip)
        self.last_build_ms = (time.perf_counter() - t0) * 1000.0
        self.last_tree_depth = root.depth() if root is not None else 0

        job = ForceJob(
            bodies=bodies,
            root=root,
            xs=xs,
            ys=ys,
            zs=zs,
            ms=ms,
            g=p.g,
            theta=p.theta,
            softening=p.softening,
            skip=frozenset(skip),
        )
        return root, job

    def _evaluate(self, job: ForceJob) -> None:
        # Accumulators start from zero even after a compute_forces() inspection.
        self.store.clear_forces()
        t0 = time.perf_counter()
        self.strategy.evaluate(job)
        self.last_force_ms = (time.perf_counter() - t0) * 1000.0

    def compute_forces(self) -> None:
        """
        Build the tree and accumulate forces without integrating.

        The forces stay on the bodies until the next integration clears them.
        """
        with self._lock:
            self.last_issues = []
            _root, job = self._build()
            self._evaluate(job)

    def step(self, dt: float) -> None:
        """
        Advance the simulation by one frame.

        Args:
            dt: Elapsed time for this frame; scaled by ``params.time_scale``.

        Raises:
            ValueError: if ``dt`` is negative or not finite.
        """
        dt = float(dt)
        if not math.isfinite(dt) or dt < 0.0:
            raise ValueError(f"dt must be finite and >= 0, got {dt!r}")

        with self._lock:
            self.last_issues = []
            h = dt * self.params.time_scale
            bodies = self.store.bodies
            if not bodies:
                self.sim_time += h
                self.step_count += 1
                return

            t0 = time.perf_counter()
            self.integrator.pre_force(bodies, h)
            pre_ms = (time.perf_counter() - t0) * 1000.0

            _root, job = self._build()
            self._evaluate(job)

            t0 = time.perf_counter()
            bad = self.integrator.post_force(bodies, h, skip=self._nonfinite)
            self.last_integrate_ms = pre_ms + (time.perf_counter() - t0) * 1000.0
            for i in bad:
                self.last_issues.append(f"[integrate] body {i} has non-finite position/velocity")
            self._nonfinite.update(bad)

            self.sim_time += h
            self.step_count += 1

    def snapshot(self) -> Snapshot:
        with self._lock:
            bodies = self.store.bodies
            positions = self.store.positions()
            positions.flags.writeable = False
            radii = np.fromiter((b.radius for b in bodies), dtype=np.float64, count=len(bodies))
            radii.flags.writeable = False
            return Snapshot(
                positions=positions,
                radii=radii,
                colors=tuple(b.color for b in bodies),
                step=self.step_count,
                sim_time=self.sim_time,
            )

    def energy(self) -> float:
        with self._lock:
            return total_energy(self.store, self.params.g, self.params.softening)

    def validate_state(self) -> list[str]:
        issues: list[str] = []
        with self._lock:
            for i, b in enumerate(self.store.bodies):
                if not b.is_finite():
                    issues.append(f"body {i} has non-finite position/velocity")
                if not (math.isfinite(b.m) and b.m > 0.0):
                    issues.append(f"body {i} has non-positive mass")
        return issues
