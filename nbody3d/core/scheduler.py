"""
Force evaluation strategies.

Every body's force only depends on the (read-only) tree and the position
and mass columns, and is written to that body's own accumulator. The
strategies differ only in how bodies are spread over threads:

- SequentialStrategy: one loop in index order
- PartitionedStrategy: static contiguous index ranges, one per worker
- DataParallelStrategy: fixed-size chunks pulled from a shared queue by
  whichever worker is free

The per-body arithmetic is the same in all three, so the forces are
bit-identical whatever the strategy.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nbody3d.physics.forces import compute_force

if TYPE_CHECKING:
    from nbody3d.core.bodies import Body
    from nbody3d.params import SimParams
    from nbody3d.physics.octree import OctreeNode


@dataclass(slots=True)
class ForceJob:
    """Everything a worker reads while evaluating forces for one step."""
    bodies: list["Body"]
    root: "OctreeNode | None"
    xs: list[float]
    ys: list[float]
    zs: list[float]
    ms: list[float]
    g: float
    theta: float
    softening: float
    skip: frozenset[int] = frozenset()

    def run_range(self, start: int, end: int) -> None:
        bodies = self.bodies
        root = self.root
        skip = self.skip
        for i in range(start, end):
            if i in skip:
                continue
            fx, fy, fz = compute_force(
                i,
                root,
                xs=self.xs,
                ys=self.ys,
                zs=self.zs,
                ms=self.ms,
                g=self.g,
                theta=self.theta,
                softening=self.softening,
            )
            b = bodies[i]
            b.fx += fx
            b.fy += fy
            b.fz += fz


class ForceStrategy:
    """
    Abstract base interface for force evaluation strategies.

    Subclasses decide how the bodies of a ForceJob are distributed.
    """

    name = "base"

    def evaluate(self, job: ForceJob) -> None:
        """Accumulate the force of every body in ``job`` into its fx/fy/fz."""
        raise NotImplementedError

    def close(self) -> None:
        """Release worker threads, if any."""


class SequentialStrategy(ForceStrategy):
    name = "sequential"

    def evaluate(self, job: ForceJob) -> None:
        job.run_range(0, len(job.bodies))


class PartitionedStrategy(ForceStrategy):
    """
    Static partitioning over a fixed worker pool.

    Body indices are cut into ``workers`` contiguous ranges of near-equal
    length; each range is one task.
    """

    name = "partitioned"

    def __init__(self, workers: int = 4):
        self.workers = max(1, int(workers))
        self._pool: ThreadPoolExecutor | None = None

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="nbody-part")
        return self._pool

    def partition(self, n: int) -> list[tuple[int, int]]:
        k = self.workers
        bounds = [(n * w) // k for w in range(k + 1)]
        return [(bounds[w], bounds[w + 1]) for w in range(k) if bounds[w] < bounds[w + 1]]

    def evaluate(self, job: ForceJob) -> None:
        ranges = self.partition(len(job.bodies))
        if not ranges:
            return
        pool = self._executor()
        futures = [pool.submit(job.run_range, start, end) for start, end in ranges]
        wait(futures)
        for fut in futures:
            fut.result()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None


class DataParallelStrategy(ForceStrategy):
    """
    Parallel "for each body" with automatic load distribution.

    Bodies are handed out in chunks of ``chunk_size``; idle workers take the
    next chunk, so bodies deep in dense regions do not stall one worker.
    """

    name = "data_parallel"

    def __init__(self, workers: int = 4, chunk_size: int = 32):
        self.workers = max(1, int(workers))
        self.chunk_size = max(1, int(chunk_size))
        self._pool: ThreadPoolExecutor | None = None

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="nbody-map")
        return self._pool

    def evaluate(self, job: ForceJob) -> None:
        n = len(job.bodies)
        if n == 0:
            return
        chunk = self.chunk_size

        def run_chunk(start: int) -> None:
            job.run_range(start, min(n, start + chunk))

        # Draining the iterator re-raises the first worker exception here.
        for _ in self._executor().map(run_chunk, range(0, n, chunk)):
            pass

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None


def make_strategy(params: "SimParams") -> ForceStrategy:
    name = params.force_strategy
    if name == "partitioned":
        return PartitionedStrategy(workers=params.worker_count)
    if name == "data_parallel":
        return DataParallelStrategy(workers=params.worker_count, chunk_size=params.chunk_size)
    return SequentialStrategy()
