"""
Barnes-Hut octree for N-body gravity.

The tree recursively subdivides 3D space into octants. Every node keeps the
total mass and the centre of mass of the bodies below it; both are updated
incrementally while bodies are inserted, so the tree is ready for force
evaluation as soon as the last body is in.

Nodes never hold body objects, only indices into the position/mass columns
of the body store. The tree is rebuilt from scratch every step.

Constants:
    MAX_DEPTH: Default depth cap; deeper collisions are merged into one
        aggregate point instead of subdividing further
    FALLBACK_SIZE: Root size used when all bodies share one position

Example:
    >>> from nbody3d.physics.octree import build_octree
    >>> xs, ys, zs, ms = [0.0, 2.0], [0.0, 0.0], [0.0, 0.0], [1.0, 1.0]
    >>> root = build_octree(xs, ys, zs, ms)
    >>> root.mass, root.center_of_mass()
    (2.0, (1.0, 0.0, 0.0))
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator


MAX_DEPTH = 48
FALLBACK_SIZE = 1.0


@dataclass(slots=True)
class OctreeNode:
    """
    A node in the Barnes-Hut octree.

    A node is either a leaf (``child`` is None, ``indices`` holds zero or one
    body index) or an internal node with exactly eight children and no
    bodies of its own. A leaf at the depth cap may hold several indices;
    they are treated as one aggregate point.

    Attributes:
        cx, cy, cz: Center of this node's cubic region
        size: Edge measure of the region; children get ``size / 2`` and sit
            at ``± size / 4`` from the parent center
        child: 8 child nodes if internal, None if leaf
        indices: Body indices if leaf, None if internal
        mass: Total mass of the subtree
        mx, my, mz: Center of mass of the subtree
    """
    cx: float
    cy: float
    cz: float
    size: float
    child: list["OctreeNode"] | None = None
    indices: list[int] | None = None

    mass: float = 0.0
    mx: float = 0.0
    my: float = 0.0
    mz: float = 0.0

    def is_leaf(self) -> bool:
        """Return True if this is a leaf node (no children)."""
        return self.child is None

    def is_empty(self) -> bool:
        return self.child is None and not self.indices

    def center_of_mass(self) -> tuple[float, float, float]:
        return self.mx, self.my, self.mz

    def _octant(self, x: float, y: float, z: float) -> int:
        ox = 4 if x >= self.cx else 0
        oy = 2 if y >= self.cy else 0
        oz = 1 if z >= self.cz else 0
        return ox | oy | oz

    def _subdivide(self) -> None:
        h = self.size * 0.5
        q = self.size * 0.25
        children: list[OctreeNode] = []
        for o in range(8):
            dx = q if (o & 4) else -q
            dy = q if (o & 2) else -q
            dz = q if (o & 1) else -q
            children.append(OctreeNode(self.cx + dx, self.cy + dy, self.cz + dz, h))
        self.child = children

    def _absorb(self, x: float, y: float, z: float, m: float) -> None:
        # Weighted average with the incoming body only; the subtree is never rescanned.
        total = self.mass + m
        self.mx = (self.mx * self.mass + x * m) / total
        self.my = (self.my * self.mass + y * m) / total
        self.mz = (self.mz * self.mass + z * m) / total
        self.mass = total

    def insert(
        self,
        idx: int,
        xs: list[float],
        ys: list[float],
        zs: list[float],
        ms: list[float],
        *,
        depth: int = 0,
        max_depth: int = MAX_DEPTH,
    ) -> None:
        x, y, z, m = xs[idx], ys[idx], zs[idx], ms[idx]

        if self.child is None:
            if not self.indices:
                self.indices = [idx]
                self.mx, self.my, self.mz = x, y, z
                self.mass = m
                return

            if depth >= max_depth:
                self.indices.append(idx)
                self._absorb(x, y, z, m)
                return

            old = self.indices
            self.indices = None
            self._subdivide()
            assert self.child is not None
            for j in old:
                o = self._octant(xs[j], ys[j], zs[j])
                self.child[o].insert(j, xs, ys, zs, ms, depth=depth + 1, max_depth=max_depth)

        o = self._octant(x, y, z)
        assert self.child is not None
        self.child[o].insert(idx, xs, ys, zs, ms, depth=depth + 1, max_depth=max_depth)
        self._absorb(x, y, z, m)

    def iter_leaves(self) -> Iterator["OctreeNode"]:
        """Yield every non-empty leaf under this node."""
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_empty():
                continue
            if node.child is None:
                yield node
                continue
            stack.extend(reversed(node.child))

    def depth(self) -> int:
        if self.child is None:
            return 0
        return 1 + max(ch.depth() for ch in self.child)


def bounding_cube(
    xs: list[float],
    ys: list[float],
    zs: list[float],
    order: list[int],
) -> tuple[float, float, float, float]:
    """
    Root cube for the bodies listed in ``order``: (cx, cy, cz, size).

    The center is the bounding-box midpoint and the size is half the box
    diagonal. The cube is only a classification frame: bodies are routed by
    their side of each node center, so it does not have to enclose them.
    """
    first = order[0]
    min_x = max_x = xs[first]
    min_y = max_y = ys[first]
    min_z = max_z = zs[first]
    for i in order:
        x, y, z = xs[i], ys[i], zs[i]
        if x < min_x:
            min_x = x
        elif x > max_x:
            max_x = x
        if y < min_y:
            min_y = y
        elif y > max_y:
            max_y = y
        if z < min_z:
            min_z = z
        elif z > max_z:
            max_z = z

    size = 0.5 * math.sqrt((max_x - min_x) ** 2 + (max_y - min_y) ** 2 + (max_z - min_z) ** 2)
    if not size > 0.0 or not math.isfinite(size):
        size = FALLBACK_SIZE
    return (min_x + max_x) * 0.5, (min_y + max_y) * 0.5, (min_z + max_z) * 0.5, size


def build_octree(
    xs: list[float],
    ys: list[float],
    zs: list[float],
    ms: list[float],
    *,
    max_depth: int = MAX_DEPTH,
    skip: set[int] | None = None,
) -> OctreeNode | None:
    """
    Build a tree over all bodies, inserting them in index order.

    Args:
        xs, ys, zs: Body positions
        ms: Body masses
        max_depth: Depth at which colliding bodies are merged
        skip: Indices left out of the tree (e.g. bodies with non-finite state)

    Returns:
        The root node, or None when there is nothing to insert.
    """
    if skip:
        order = [i for i in range(len(xs)) if i not in skip]
    else:
        order = list(range(len(xs)))
    if not order:
        return None

    cx, cy, cz, size = bounding_cube(xs, ys, zs, order)
    root = OctreeNode(cx, cy, cz, size)
    for i in order:
        root.insert(i, xs, ys, zs, ms, depth=0, max_depth=max_depth)
    return root
