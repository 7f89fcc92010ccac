from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any


INTEGRATION_SCHEMES = {"euler", "leapfrog"}
FORCE_STRATEGIES = {"sequential", "partitioned", "data_parallel"}
INIT_MODES = {"star_system", "random", "empty"}


@dataclass(slots=True)
class SimParams:
    theta: float = 0.5  # Barnes-Hut opening angle
    g: float = 6.67430e-11
    softening: float = 1.0  # bodies closer than this ignore each other
    integration_scheme: str = "leapfrog"  # euler | leapfrog
    force_strategy: str = "sequential"  # sequential | partitioned | data_parallel
    worker_count: int = 4
    chunk_size: int = 32
    max_depth: int = 48
    time_scale: float = 1.0

    init_mode: str = "star_system"  # star_system | random | empty
    body_count: int = 100
    spawn_extent: float = 5e7
    velocity_extent: float = 1e4
    star_mass: float = 1.989e30
    star_radius: float = 2.0
    planet_mass: float = 5.97e24
    planet_radius: float = 1e8
    seed: int = 1

    diagnostics: bool = True

    def clamp(self) -> "SimParams":
        self.theta = min(10.0, max(0.0, _finite_or(self.theta, 0.5)))
        self.g = max(0.0, _finite_or(self.g, 6.67430e-11))
        self.softening = max(0.0, _finite_or(self.softening, 1.0))
        self.integration_scheme = str(self.integration_scheme or "leapfrog").strip().lower()
        if self.integration_scheme in {"semi_implicit_euler", "symplectic_euler"}:
            self.integration_scheme = "euler"
        if self.integration_scheme not in INTEGRATION_SCHEMES:
            self.integration_scheme = "leapfrog"
        self.force_strategy = str(self.force_strategy or "sequential").strip().lower().replace("-", "_")
        if self.force_strategy not in FORCE_STRATEGIES:
            self.force_strategy = "sequential"
        self.worker_count = max(1, min(256, int(self.worker_count)))
        self.chunk_size = max(1, int(self.chunk_size))
        self.max_depth = max(1, min(64, int(self.max_depth)))
        self.time_scale = min(1e9, max(0.0, _finite_or(self.time_scale, 1.0)))

        self.init_mode = str(self.init_mode or "star_system").strip().lower()
        if self.init_mode not in INIT_MODES:
            self.init_mode = "star_system"
        self.body_count = max(0, int(self.body_count))
        self.spawn_extent = max(1e-9, _finite_or(self.spawn_extent, 5e7))
        self.velocity_extent = max(0.0, _finite_or(self.velocity_extent, 1e4))
        self.star_mass = max(1e-300, _finite_or(self.star_mass, 1.989e30))
        self.star_radius = max(1e-300, _finite_or(self.star_radius, 2.0))
        self.planet_mass = max(1e-300, _finite_or(self.planet_mass, 5.97e24))
        self.planet_radius = max(1e-300, _finite_or(self.planet_radius, 1e8))
        self.seed = int(self.seed)
        self.diagnostics = bool(self.diagnostics)
        return self

    def validate(self) -> list[str]:
        warnings: list[str] = []

        if self.theta == 0.0:
            warnings.append("theta=0 disables the tree approximation (exact O(n^2) summation).")
        elif self.theta > 1.5:
            warnings.append("theta above 1.5 gives coarse forces; expect visible drift.")
        if self.g == 0.0:
            warnings.append("g=0: bodies move on straight lines.")
        if self.softening == 0.0:
            warnings.append("softening=0: close encounters may produce non-finite state.")
        if self.force_strategy == "sequential" and self.worker_count > 1:
            warnings.append("worker_count ignored when force_strategy=sequential.")
        if self.force_strategy != "data_parallel" and self.chunk_size != 32:
            warnings.append("chunk_size only applies to force_strategy=data_parallel.")
        if self.init_mode == "empty" and self.body_count > 0:
            warnings.append("body_count ignored when init_mode=empty.")
        if self.integration_scheme == "euler":
            warnings.append("integration_scheme=euler drifts more than leapfrog on long runs.")

        return warnings

    @classmethod
    def load(cls, path: str | Path) -> "SimParams":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("parameter file must contain a JSON object")
        # Older files used the long names for the config surface.
        if "opening_angle" in data and "theta" not in data:
            data["theta"] = data.pop("opening_angle")
        if "softening_distance" in data and "softening" not in data:
            data["softening"] = data.pop("softening_distance")
        filtered: dict[str, Any] = {k: v for k, v in data.items() if k in cls.__annotations__}
        return cls(**filtered).clamp()

    def save(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")


def _finite_or(value: Any, default: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else default
