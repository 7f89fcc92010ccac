import math
import threading
import time
import unittest

from nbody3d.core.bodies import BodySpecError, BodyStore
from nbody3d.core.scheduler import PartitionedStrategy, SequentialStrategy
from nbody3d.core.sim import NBodySim
from nbody3d.params import SimParams


def empty_params(**overrides) -> SimParams:
    values = dict(init_mode="empty", g=1.0, softening=1.0, theta=0.5, diagnostics=False)
    values.update(overrides)
    return SimParams(**values).clamp()


class TestStep(unittest.TestCase):
    def test_symmetric_pair(self) -> None:
        """Equal masses at ±5 feel opposite forces and move symmetrically."""
        sim = NBodySim(empty_params())
        sim.spawn_body((-5.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.spawn_body((5.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)

        sim.compute_forces()
        a, b = sim.store[0], sim.store[1]
        self.assertGreater(a.fx, 0.0)
        self.assertEqual(a.fx, -b.fx)
        self.assertEqual((a.fy, a.fz, b.fy, b.fz), (0.0, 0.0, 0.0, 0.0))

        sim.step(0.1)
        self.assertGreater(a.vx, 0.0)
        self.assertEqual(a.vx, -b.vx)
        self.assertGreater(a.x, -5.0)
        self.assertEqual(a.x, -b.x)
        self.assertEqual((a.fx, b.fx), (0.0, 0.0))

    def test_compute_forces_then_step_does_not_double_count(self) -> None:
        params = empty_params()
        reference = NBodySim(params)
        inspected = NBodySim(empty_params())
        for sim in (reference, inspected):
            sim.spawn_body((-5.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
            sim.spawn_body((5.0, 1.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=2.0)

        inspected.compute_forces()
        reference.step(0.1)
        inspected.step(0.1)

        self.assertEqual(reference.store[0].vx, inspected.store[0].vx)
        self.assertEqual(reference.store[1].vy, inspected.store[1].vy)

    def test_single_body_moves_freely(self) -> None:
        """An isolated body feels no force: velocity unchanged, straight-line motion."""
        for scheme in ("euler", "leapfrog"):
            sim = NBodySim(empty_params(integration_scheme=scheme))
            sim.spawn_body((1.0, 2.0, 3.0), (0.5, 0.0, -0.25), radius=1.0, mass=7.0)

            sim.step(0.2)
            b = sim.store[0]
            self.assertEqual((b.vx, b.vy, b.vz), (0.5, 0.0, -0.25))
            self.assertAlmostEqual(b.x, 1.1, places=12)
            self.assertEqual(b.y, 2.0)
            self.assertAlmostEqual(b.z, 2.95, places=12)

    def test_empty_simulation_steps(self) -> None:
        sim = NBodySim(empty_params())
        sim.step(0.5)
        self.assertEqual(sim.step_count, 1)
        self.assertEqual(sim.sim_time, 0.5)
        self.assertEqual(len(sim.store), 0)

    def test_time_scale(self) -> None:
        sim = NBodySim(empty_params(time_scale=10.0))
        sim.spawn_body((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.step(0.1)

        self.assertAlmostEqual(sim.sim_time, 1.0)
        self.assertAlmostEqual(sim.store[0].x, 1.0)

    def test_bad_dt_raises(self) -> None:
        sim = NBodySim(empty_params())
        for dt in (-0.1, math.nan, math.inf):
            with self.assertRaises(ValueError):
                sim.step(dt)
        self.assertEqual(sim.step_count, 0)

    def test_timings_recorded(self) -> None:
        sim = NBodySim(empty_params(init_mode="random", body_count=20, spawn_extent=10.0))
        sim.step(0.01)

        self.assertIsNotNone(sim.last_build_ms)
        self.assertIsNotNone(sim.last_force_ms)
        self.assertIsNotNone(sim.last_integrate_ms)
        self.assertGreater(sim.last_tree_depth, 0)

    def test_strategies_give_identical_trajectories(self) -> None:
        results = []
        for strategy in ("sequential", "partitioned", "data_parallel"):
            params = empty_params(
                init_mode="random", body_count=60, spawn_extent=50.0,
                force_strategy=strategy, worker_count=3, chunk_size=8,
            )
            with NBodySim(params) as sim:
                for _ in range(3):
                    sim.step(0.05)
                results.append([(b.x, b.y, b.z, b.vx, b.vy, b.vz) for b in sim.store])
        self.assertEqual(results[0], results[1])
        self.assertEqual(results[0], results[2])


class TestNumericalDegeneracy(unittest.TestCase):
    def test_nonfinite_body_reported_once(self) -> None:
        """A blown-up body is reported, kept as-is, and does not stop the others."""
        sim = NBodySim(empty_params())
        sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.spawn_body((10.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.spawn_body((-10.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.store[0].x = math.nan

        sim.step(0.1)
        self.assertEqual(len(sim.last_issues), 1)
        self.assertIn("body 0", sim.last_issues[0])
        self.assertTrue(math.isnan(sim.store[0].x))
        self.assertTrue(sim.store[1].is_finite())
        self.assertLess(sim.store[1].vx, 0.0)
        self.assertGreater(sim.store[2].vx, 0.0)

        sim.step(0.1)
        self.assertEqual(sim.last_issues, [])
        self.assertTrue(math.isnan(sim.store[0].x))

    def test_validate_state_flags_nan(self) -> None:
        sim = NBodySim(empty_params())
        sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)

        self.assertEqual(sim.validate_state(), [])

        sim.store[0].vy = float("nan")
        issues = sim.validate_state()
        self.assertTrue(any("non-finite" in issue for issue in issues))


class TestSpawnAndParams(unittest.TestCase):
    def test_spawn_returns_stable_indices(self) -> None:
        sim = NBodySim(empty_params())
        i = sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        j = sim.spawn_body((1.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=2.0, color=(1.0, 0.0, 0.0))

        self.assertEqual((i, j), (0, 1))
        self.assertEqual(sim.store[j].color, (1.0, 0.0, 0.0))
        self.assertEqual((sim.store[j].fx, sim.store[j].fy, sim.store[j].fz), (0.0, 0.0, 0.0))

    def test_spawn_rejects_degenerate_body(self) -> None:
        sim = NBodySim(empty_params())
        with self.assertRaises(BodySpecError):
            sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=0.0)
        with self.assertRaises(BodySpecError):
            sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=0.0, mass=1.0)
        self.assertEqual(len(sim.store), 0)

    def test_update_theta_and_g(self) -> None:
        sim = NBodySim(empty_params())
        sim.update_params(theta=0.8, g=2.5)

        self.assertEqual(sim.params.theta, 0.8)
        self.assertEqual(sim.params.g, 2.5)

    def test_update_unknown_key(self) -> None:
        sim = NBodySim(empty_params())
        with self.assertRaises(ValueError):
            sim.update_params(gravity=1.0)

    def test_rejected_update_leaves_params_untouched(self) -> None:
        """A value that cannot be converted raises and changes nothing; stepping still works."""
        sim = NBodySim(empty_params())
        sim.spawn_body((-5.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.spawn_body((5.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        before = SimParams(**{k: getattr(sim.params, k) for k in SimParams.__annotations__})

        for bad in (dict(theta="abc"), dict(g=2.0, worker_count="x"), dict(softening=None)):
            with self.assertRaises(ValueError):
                sim.update_params(**bad)
            self.assertEqual(sim.params, before)

        sim.step(0.1)
        self.assertEqual(sim.step_count, 1)
        self.assertGreater(sim.store[0].vx, 0.0)

        sim.update_params(theta=0.9)
        self.assertEqual(sim.params.theta, 0.9)

    def test_update_keeps_params_object(self) -> None:
        params = empty_params()
        sim = NBodySim(params)
        sim.update_params(g=3.0)
        self.assertIs(sim.params, params)
        self.assertEqual(params.g, 3.0)

    def test_update_strategy_replaces_pool(self) -> None:
        sim = NBodySim(empty_params())
        self.assertIsInstance(sim.strategy, SequentialStrategy)

        sim.update_params(force_strategy="partitioned", worker_count=2)
        try:
            self.assertIsInstance(sim.strategy, PartitionedStrategy)
        finally:
            sim.close()

    def test_update_integrator(self) -> None:
        sim = NBodySim(empty_params())
        sim.update_params(integration_scheme="euler")
        self.assertEqual(sim.integrator.scheme, "euler")

    def test_update_reset_key_rebuilds_bodies(self) -> None:
        sim = NBodySim(empty_params())
        sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.update_params(init_mode="random", body_count=5)
        self.assertEqual(len(sim.store), 5)

    def test_external_store(self) -> None:
        store = BodyStore()
        store.spawn((1.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim = NBodySim(SimParams(body_count=50).clamp(), store=store)
        self.assertIs(sim.store, store)


class TestSnapshot(unittest.TestCase):
    def test_snapshot_is_read_only_copy(self) -> None:
        sim = NBodySim(empty_params())
        sim.spawn_body((1.0, 2.0, 3.0), (0.0, 0.0, 0.0), radius=4.0, mass=1.0)

        snap = sim.snapshot()
        self.assertEqual(snap.positions.shape, (1, 3))
        self.assertEqual(snap.radii.tolist(), [4.0])
        with self.assertRaises(ValueError):
            snap.positions[0, 0] = 5.0

        sim.store[0].x = 9.0
        self.assertEqual(snap.positions[0, 0], 1.0)

    def test_snapshot_between_steps_from_another_thread(self) -> None:
        sim = NBodySim(empty_params(init_mode="random", body_count=30, spawn_extent=20.0))
        steps = 20

        def run() -> None:
            for _ in range(steps):
                sim.step(0.01)

        worker = threading.Thread(target=run)
        worker.start()
        seen = []
        while worker.is_alive():
            snap = sim.snapshot()
            seen.append(snap.step)
            self.assertEqual(snap.positions.shape, (30, 3))
            time.sleep(0.001)
        worker.join()

        self.assertEqual(sim.snapshot().step, steps)
        self.assertEqual(seen, sorted(seen))


class TestStepBarrier(unittest.TestCase):
    def _blocked_while_stepping(self, sim: NBodySim, call) -> None:
        # Holding the lock stands in for a step in progress.
        done = threading.Event()

        def run() -> None:
            call()
            done.set()

        with sim._lock:
            worker = threading.Thread(target=run)
            worker.start()
            self.assertFalse(done.wait(0.05))
        worker.join(timeout=5.0)
        self.assertTrue(done.is_set())

    def test_validate_state_waits_for_step(self) -> None:
        sim = NBodySim(empty_params())
        sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        self._blocked_while_stepping(sim, sim.validate_state)

    def test_close_waits_for_step(self) -> None:
        sim = NBodySim(empty_params(force_strategy="partitioned", worker_count=2))
        sim.spawn_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.spawn_body((3.0, 0.0, 0.0), (0.0, 0.0, 0.0), radius=1.0, mass=1.0)
        sim.step(0.1)
        self._blocked_while_stepping(sim, sim.close)


class TestInitialState(unittest.TestCase):
    def test_star_system_default(self) -> None:
        sim = NBodySim(SimParams(body_count=10).clamp())
        self.assertEqual(len(sim.store), 11)
        star = sim.store[0]
        self.assertEqual((star.x, star.y, star.z), (0.0, 0.0, 0.0))
        self.assertEqual(star.m, sim.params.star_mass)

    def test_reset_is_deterministic(self) -> None:
        sim = NBodySim(SimParams(body_count=10, seed=3).clamp())
        before = [(b.x, b.y, b.z) for b in sim.store]
        sim.step(1.0)
        sim.reset()
        after = [(b.x, b.y, b.z) for b in sim.store]

        self.assertEqual(before, after)
        self.assertEqual(sim.step_count, 0)


if __name__ == "__main__":
    unittest.main()
