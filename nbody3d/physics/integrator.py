"""
Time integration of the body store.

Two schemes are available:

- ``euler``: semi-implicit (symplectic) Euler, v += F/m dt then x += v dt
- ``leapfrog``: drift-kick-drift, x += v dt/2, v += F/m dt, x += v dt/2

For leapfrog the first drift runs *before* the force evaluation
(``pre_force``) so the kick uses forces at the half-step positions; the
kick and the second drift run after it (``post_force``). For Euler
``pre_force`` does nothing.

Both schemes clear the force accumulator right after the velocity update and
report bodies whose position or velocity became non-finite. Those bodies are
left as they are.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nbody3d.core.bodies import Body


def drift(bodies: list["Body"], dt: float) -> None:
    for b in bodies:
        b.x += b.vx * dt
        b.y += b.vy * dt
        b.z += b.vz * dt


def euler_update(b: "Body", dt: float) -> None:
    inv_m = 1.0 / b.m
    b.vx += b.fx * inv_m * dt
    b.vy += b.fy * inv_m * dt
    b.vz += b.fz * inv_m * dt
    b.clear_force()
    b.x += b.vx * dt
    b.y += b.vy * dt
    b.z += b.vz * dt


def leapfrog_kick_drift(b: "Body", dt: float) -> None:
    inv_m = 1.0 / b.m
    b.vx += b.fx * inv_m * dt
    b.vy += b.fy * inv_m * dt
    b.vz += b.fz * inv_m * dt
    b.clear_force()
    half = dt * 0.5
    b.x += b.vx * half
    b.y += b.vy * half
    b.z += b.vz * half


class Integrator:
    """
    Advance bodies by one step of the configured scheme.

    Attributes:
        scheme: "euler" or "leapfrog"
        diagnostics: Print a line on stderr for each body that turns
            non-finite
    """

    def __init__(self, scheme: str = "leapfrog", *, diagnostics: bool = True):
        if scheme not in {"euler", "leapfrog"}:
            raise ValueError(f"unknown integration scheme: {scheme!r}")
        self.scheme = scheme
        self.diagnostics = diagnostics

    def pre_force(self, bodies: list["Body"], dt: float) -> None:
        if self.scheme == "leapfrog":
            drift(bodies, dt * 0.5)

    def post_force(self, bodies: list["Body"], dt: float, *, skip: set[int] | None = None) -> list[int]:
        """
        Apply the accumulated forces and clear them.

        Args:
            bodies: Bodies in index order
            dt: Time step
            skip: Indices already known to be non-finite; they are still
                integrated but not reported again

        Returns:
            Indices of bodies that became non-finite during this update.
        """
        update = euler_update if self.scheme == "euler" else leapfrog_kick_drift
        bad: list[int] = []
        for i, b in enumerate(bodies):
            update(b, dt)
            if not b.is_finite() and (skip is None or i not in skip):
                bad.append(i)
                if self.diagnostics:
                    print(
                        f"[integrate] non-finite state for body {i}: "
                        f"pos=({b.x}, {b.y}, {b.z}) vel=({b.vx}, {b.vy}, {b.vz}) m={b.m}",
                        file=sys.stderr,
                    )
        return bad

    def step(self, bodies: list["Body"], dt: float) -> list[int]:
        """Full update for callers that accumulated forces themselves."""
        if self.scheme == "leapfrog":
            drift(bodies, dt * 0.5)
        return self.post_force(bodies, dt)
