"""
Gravitational force evaluation.

- ``compute_force``: Barnes-Hut walk of the octree for one body
- ``compute_forces_direct``: exact O(N²) summation with NumPy, used as the
  reference for the tree and by the benchmark

Both apply the same softening rule: a source closer than ``softening`` to
the body contributes nothing. Both return forces (not accelerations):
F = G * m_i * M / d² along the unit vector from the body to the source.

Example:
    >>> from nbody3d.physics.octree import build_octree
    >>> from nbody3d.physics.forces import compute_force
    >>> xs, ys, zs, ms = [-5.0, 5.0], [0.0, 0.0], [0.0, 0.0], [1.0, 1.0]
    >>> root = build_octree(xs, ys, zs, ms)
    >>> fx, fy, fz = compute_force(0, root, xs=xs, ys=ys, zs=zs, ms=ms,
    ...                            g=1.0, theta=0.5, softening=1.0)
    >>> round(fx, 9), fy, fz
    (0.01, 0.0, 0.0)
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from nbody3d.physics.octree import OctreeNode


def point_force(
    xi: float, yi: float, zi: float, mi: float,
    x: float, y: float, z: float, mass: float,
    g: float,
    softening: float,
) -> tuple[float, float, float]:
    """
    Force on a body at (xi, yi, zi) from a point mass at (x, y, z).

    Returns (0, 0, 0) when the point is closer than ``softening`` or sits
    exactly on the body.
    """
    dx = x - xi
    dy = y - yi
    dz = z - zi
    d = math.sqrt(dx * dx + dy * dy + dz * dz)
    if d < softening or d == 0.0:
        return 0.0, 0.0, 0.0
    inv_d = 1.0 / d
    # |F| = G m M / d², times (dx, dy, dz) / d for the direction
    f = g * mi * mass * inv_d * inv_d * inv_d
    return dx * f, dy * f, dz * f


def _merged_leaf_force(
    node: "OctreeNode",
    idx: int,
    xi: float, yi: float, zi: float, mi: float,
    xs: list[float],
    ys: list[float],
    zs: list[float],
    ms: list[float],
    g: float,
    softening: float,
) -> tuple[float, float, float]:
    # Depth-capped leaf that contains the body itself: aggregate the others.
    assert node.indices is not None
    mass = 0.0
    wx = wy = wz = 0.0
    for j in node.indices:
        if j == idx:
            continue
        mj = ms[j]
        mass += mj
        wx += xs[j] * mj
        wy += ys[j] * mj
        wz += zs[j] * mj
    if mass <= 0.0:
        return 0.0, 0.0, 0.0
    inv = 1.0 / mass
    return point_force(xi, yi, zi, mi, wx * inv, wy * inv, wz * inv, mass, g, softening)


def compute_force(
    idx: int,
    node: "OctreeNode | None",
    *,
    xs: list[float],
    ys: list[float],
    zs: list[float],
    ms: list[float],
    g: float,
    theta: float,
    softening: float,
) -> tuple[float, float, float]:
    """
    Approximate force on body ``idx`` from everything under ``node``.

    Args:
        idx: Index of the body in the position/mass columns
        node: Subtree to walk (None for an empty tree)
        xs, ys, zs, ms: Columns the tree was built from
        g: Gravitational constant
        theta: Opening angle; a node is used as a point mass when it is a
            leaf or when ``size / d < theta``
        softening: Minimum interaction distance

    Returns:
        (fx, fy, fz) to be added to the body's force accumulator.
    """
    if node is None:
        return 0.0, 0.0, 0.0
    return _walk(node, idx, xs[idx], ys[idx], zs[idx], ms[idx], xs, ys, zs, ms, g, theta, softening)


def _walk(
    node: "OctreeNode",
    idx: int,
    xi: float, yi: float, zi: float, mi: float,
    xs: list[float],
    ys: list[float],
    zs: list[float],
    ms: list[float],
    g: float,
    theta: float,
    softening: float,
) -> tuple[float, float, float]:
    if node.is_empty():
        return 0.0, 0.0, 0.0
    if node.child is None:
        indices = node.indices
        assert indices is not None
        if len(indices) > 1 and idx in indices:
            return _merged_leaf_force(node, idx, xi, yi, zi, mi, xs, ys, zs, ms, g, softening)
        return point_force(xi, yi, zi, mi, node.mx, node.my, node.mz, node.mass, g, softening)

    dx = node.mx - xi
    dy = node.my - yi
    dz = node.mz - zi
    d = math.sqrt(dx * dx + dy * dy + dz * dz)
    if d < softening or d == 0.0:
        return 0.0, 0.0, 0.0
    if node.size / d < theta:
        return point_force(xi, yi, zi, mi, node.mx, node.my, node.mz, node.mass, g, softening)

    fx = fy = fz = 0.0
    for ch in node.child:
        if ch.is_empty():
            continue
        cx, cy, cz = _walk(ch, idx, xi, yi, zi, mi, xs, ys, zs, ms, g, theta, softening)
        fx += cx
        fy += cy
        fz += cz
    return fx, fy, fz


def compute_forces_direct(
    xs: list[float],
    ys: list[float],
    zs: list[float],
    ms: list[float],
    g: float,
    softening: float,
) -> np.ndarray:
    """
    Exact pairwise forces for all bodies, as an (n, 3) float64 array.

    This is the reference implementation for testing and benchmarking;
    it uses O(N²) memory.
    """
    n = len(xs)
    if n == 0:
        return np.zeros((0, 3), dtype=np.float64)

    pos = np.empty((n, 3), dtype=np.float64)
    pos[:, 0] = xs
    pos[:, 1] = ys
    pos[:, 2] = zs
    m = np.asarray(ms, dtype=np.float64)

    d = pos[None, :, :] - pos[:, None, :]
    dist = np.sqrt(np.sum(d * d, axis=2))
    ignored = (dist < softening) | (dist == 0.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_d3 = np.where(ignored, 0.0, 1.0 / (dist * dist * dist))
    f = g * m[:, None] * m[None, :] * inv_d3
    return np.sum(d * f[:, :, None], axis=1)
