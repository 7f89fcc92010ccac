"""
Initial condition generators.

Available modes:
- star_system: one heavy star at the origin and a cloud of planets
- random: unit masses at rest, uniform in a cube
- empty: no bodies; the store is filled by spawn requests
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nbody3d.core.bodies import DEFAULT_COLOR

if TYPE_CHECKING:
    from nbody3d.params import SimParams


STAR_COLOR = (1.0, 0.9, 0.2)


@dataclass(slots=True)
class InitialBody:
    """
    Initial conditions for a single body.

    Attributes:
        position: (x, y, z)
        velocity: (vx, vy, vz)
        radius: Sphere radius for the renderer
        mass: Mass (always positive)
        color: RGB triple for the renderer
    """
    position: tuple[float, float, float]
    velocity: tuple[float, float, float]
    radius: float
    mass: float
    color: tuple[float, float, float] = DEFAULT_COLOR


def _uniform3(rng: random.Random, extent: float) -> tuple[float, float, float]:
    return (
        rng.uniform(-extent, extent),
        rng.uniform(-extent, extent),
        rng.uniform(-extent, extent),
    )


def create_star_system(params: "SimParams", rng: random.Random) -> list[InitialBody]:
    """
    A star at rest at the origin plus ``body_count`` planets.

    Planets are uniform in a cube of half-width ``spawn_extent`` with
    velocities uniform in ``±velocity_extent``. Radii cycle through ten
    sizes above ``planet_radius`` and masses scale with the radius.
    """
    p = params
    bodies = [
        InitialBody(
            position=(0.0, 0.0, 0.0),
            velocity=(0.0, 0.0, 0.0),
            radius=p.star_radius,
            mass=p.star_mass,
            color=STAR_COLOR,
        )
    ]
    step = p.planet_radius / 10.0
    for i in range(p.body_count):
        position = _uniform3(rng, p.spawn_extent)
        velocity = _uniform3(rng, p.velocity_extent)
        radius = p.planet_radius + (i % 10) * step
        mass = p.planet_mass * (radius / p.planet_radius)
        bodies.append(InitialBody(position=position, velocity=velocity, radius=radius, mass=mass))
    return bodies


def create_random_cluster(params: "SimParams", rng: random.Random) -> list[InitialBody]:
    """``body_count`` unit masses at rest, uniform in the spawn cube."""
    p = params
    return [
        InitialBody(
            position=_uniform3(rng, p.spawn_extent),
            velocity=(0.0, 0.0, 0.0),
            radius=1.0,
            mass=1.0,
        )
        for _ in range(p.body_count)
    ]


def create_initial_bodies(params: "SimParams", rng: random.Random) -> list[InitialBody]:
    if params.init_mode == "empty":
        return []
    if params.init_mode == "random":
        return create_random_cluster(params, rng)
    return create_star_system(params, rng)
