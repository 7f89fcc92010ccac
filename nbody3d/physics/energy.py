"""Energy and momentum of a body store, for conservation checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from nbody3d.core.bodies import BodyStore


def kinetic_energy(store: "BodyStore") -> float:
    """KE = 0.5 * Σ mᵢ |vᵢ|²."""
    if len(store) == 0:
        return 0.0
    vel = store.velocities()
    return float(0.5 * np.sum(store.masses() * np.sum(vel * vel, axis=1)))


def potential_energy(store: "BodyStore", g: float, softening: float = 0.0) -> float:
    """
    PE = -Σ_{i<j} G mᵢ mⱼ / rᵢⱼ.

    Pairs closer than ``softening`` are left out, matching the force law.
    """
    n = len(store)
    if n < 2:
        return 0.0
    pos = store.positions()
    m = store.masses()
    i, j = np.triu_indices(n, k=1)
    d = pos[j] - pos[i]
    r = np.sqrt(np.sum(d * d, axis=1))
    keep = (r >= softening) & (r > 0.0)
    return float(-g * np.sum(m[i][keep] * m[j][keep] / r[keep]))


def total_energy(store: "BodyStore", g: float, softening: float = 0.0) -> float:
    return kinetic_energy(store) + potential_energy(store, g, softening)


def total_momentum(store: "BodyStore") -> tuple[float, float, float]:
    if len(store) == 0:
        return 0.0, 0.0, 0.0
    p = np.sum(store.velocities() * store.masses()[:, None], axis=0)
    return float(p[0]), float(p[1]), float(p[2])
