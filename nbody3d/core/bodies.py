"""
Body store for the N-body simulation.

Bodies live in a contiguous arena (a plain list) and are addressed by their
index, which stays stable for the whole run: bodies are appended by
``spawn`` and never removed. The octree and the force strategies only ever
hold indices into the store.

Example:
    >>> store = BodyStore()
    >>> idx = store.spawn((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=5.0)
    >>> store[idx].m
    5.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np


DEFAULT_COLOR = (0.6, 0.7, 1.0)


class BodySpecError(ValueError):
    """Raised when a body specification cannot produce a valid body."""


@dataclass(slots=True)
class Body:
    """
    One simulated mass.

    Attributes:
        x, y, z: Position
        vx, vy, vz: Velocity
        fx, fy, fz: Force accumulated during the current step
        m: Mass (strictly positive)
        radius: Sphere radius, only used by the renderer
        color: RGB triple in [0, 1], only used by the renderer
    """
    x: float
    y: float
    z: float
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    m: float = 1.0
    radius: float = 1.0
    color: tuple[float, float, float] = DEFAULT_COLOR
    fx: float = 0.0
    fy: float = 0.0
    fz: float = 0.0

    def is_finite(self) -> bool:
        return (
            math.isfinite(self.x)
            and math.isfinite(self.y)
            and math.isfinite(self.z)
            and math.isfinite(self.vx)
            and math.isfinite(self.vy)
            and math.isfinite(self.vz)
        )

    def clear_force(self) -> None:
        self.fx = 0.0
        self.fy = 0.0
        self.fz = 0.0


@dataclass
class BodyStore:
    bodies: list[Body] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.bodies)

    def __iter__(self) -> Iterator[Body]:
        return iter(self.bodies)

    def __getitem__(self, idx: int) -> Body:
        return self.bodies[idx]

    def spawn(
        self,
        position: Sequence[float],
        velocity: Sequence[float],
        *,
        radius: float,
        mass: float,
        color: Sequence[float] = DEFAULT_COLOR,
    ) -> int:
        """
        Append a new body with zero accumulated force and return its index.

        Raises:
            BodySpecError: if the spec is degenerate (bad vectors, mass or
                radius not strictly positive and finite, malformed colour).
                The store is left untouched in that case.
        """
        x, y, z = _vec3(position, "position")
        vx, vy, vz = _vec3(velocity, "velocity")
        mass = float(mass)
        radius = float(radius)
        if not math.isfinite(mass) or mass <= 0.0:
            raise BodySpecError(f"mass must be positive and finite, got {mass!r}")
        if not math.isfinite(radius) or radius <= 0.0:
            raise BodySpecError(f"radius must be positive and finite, got {radius!r}")
        rgb = _vec3(color, "color")
        if any(c < 0.0 or c > 1.0 for c in rgb):
            raise BodySpecError(f"color components must be in [0, 1], got {rgb!r}")

        self.bodies.append(
            Body(x=x, y=y, z=z, vx=vx, vy=vy, vz=vz, m=mass, radius=radius, color=rgb)
        )
        return len(self.bodies) - 1

    def columns(self) -> tuple[list[float], list[float], list[float], list[float]]:
        """Position and mass columns (xs, ys, zs, ms) in index order."""
        bodies = self.bodies
        return (
            [b.x for b in bodies],
            [b.y for b in bodies],
            [b.z for b in bodies],
            [b.m for b in bodies],
        )

    def positions(self) -> np.ndarray:
        pos = np.empty((len(self.bodies), 3), dtype=np.float64)
        for i, b in enumerate(self.bodies):
            pos[i, 0] = b.x
            pos[i, 1] = b.y
            pos[i, 2] = b.z
        return pos

    def velocities(self) -> np.ndarray:
        vel = np.empty((len(self.bodies), 3), dtype=np.float64)
        for i, b in enumerate(self.bodies):
            vel[i, 0] = b.vx
            vel[i, 1] = b.vy
            vel[i, 2] = b.vz
        return vel

    def masses(self) -> np.ndarray:
        return np.fromiter((b.m for b in self.bodies), dtype=np.float64, count=len(self.bodies))

    def forces(self) -> np.ndarray:
        f = np.empty((len(self.bodies), 3), dtype=np.float64)
        for i, b in enumerate(self.bodies):
            f[i, 0] = b.fx
            f[i, 1] = b.fy
            f[i, 2] = b.fz
        return f

    def clear_forces(self) -> None:
        for b in self.bodies:
            b.clear_force()


def _vec3(values: Sequence[float], name: str) -> tuple[float, float, float]:
    try:
        x, y, z = (float(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise BodySpecError(f"{name} must be three numbers, got {values!r}") from exc
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        raise BodySpecError(f"{name} must be finite, got {(x, y, z)!r}")
    return x, y, z
