import unittest

from calgroups.engine import GroupEngine
from fake_host import calendar_host


class GroupEngineTests(unittest.IsolatedAsyncioTestCase):
    def _engine(self, states: dict[str, bool]):
        host = calendar_host(states)
        return host, GroupEngine(host, clock=host.clock)

    async def test_activate_shows_exactly_the_selection(self) -> None:
        host, engine = self._engine({"A": True, "B": False, "C": True})
        await engine.activate("g1", ["A", "B"])
        self.assertEqual(host.visible_map(), {"A": True, "B": True, "C": False})
        self.assertEqual(engine.state.active_group, "g1")

    async def test_round_trip_restores_prior_visibility(self) -> None:
        host, engine = self._engine({"A": False, "B": True, "C": True, "D": False})
        before = host.visible_map()
        await engine.activate("g", ["A", "D"])
        await engine.restore()
        self.assertEqual(host.visible_map(), before)
        self.assertTrue(engine.state.idle)
        self.assertEqual(engine.snapshot, {})

    async def test_snapshot_survives_group_switches(self) -> None:
        host, engine = self._engine({"A": True, "B": False, "C": True})
        await engine.activate("g1", ["A", "B"])
        self.assertEqual(host.visible_map(), {"A": True, "B": True, "C": False})
        await engine.activate("g2", ["C"])
        self.assertEqual(host.visible_map(), {"A": False, "B": False, "C": True})
        self.assertEqual(engine.state.active_group, "g2")
        await engine.restore()
        self.assertEqual(host.visible_map(), {"A": True, "B": False, "C": True})

    async def test_same_group_twice_toggles_off(self) -> None:
        host, engine = self._engine({"A": True, "B": False, "C": True})
        await engine.activate("g", ["B"])
        await engine.activate("g", ["B"])
        self.assertEqual(host.visible_map(), {"A": True, "B": False, "C": True})
        self.assertTrue(engine.state.idle)

    async def test_unknown_ids_are_skipped(self) -> None:
        host_a, engine_a = self._engine({"A": False, "B": True})
        host_b, engine_b = self._engine({"A": False, "B": True})
        report = await engine_a.activate("g", ["A", "ghost-id"])
        await engine_b.activate("g", ["A"])
        self.assertEqual(host_a.visible_map(), host_b.visible_map())
        self.assertEqual(report.skipped_ids, ["ghost-id"])

    async def test_restore_when_idle_is_noop(self) -> None:
        host, engine = self._engine({"A": True})
        report = await engine.restore()
        self.assertEqual(report.toggled, [])
        self.assertEqual(host.op_calls("interact"), [])

    async def test_entity_seen_mid_session_joins_snapshot(self) -> None:
        host, engine = self._engine({"A": True, "B": False})
        await engine.activate("g1", ["B"])
        host.add_entity("tok-late", "Late", True, native_ids=[["data-id", "Late"]])
        await engine.activate("g2", ["A"])
        self.assertEqual(engine.snapshot["Late"], True)
        self.assertEqual(engine.snapshot["A"], True)
        await engine.restore()
        self.assertEqual(host.visible_map(), {"A": True, "B": False, "Late": True})

    async def test_vanished_snapshot_entity_is_skipped_on_restore(self) -> None:
        host, engine = self._engine({"A": True, "B": True})
        await engine.activate("g", ["A"])
        host.items["tok-B"].attached = False
        report = await engine.restore()
        self.assertEqual(report.skipped_ids, ["B"])
        self.assertTrue(engine.state.idle)

    async def test_non_converging_toggle_does_not_abort_activation(self) -> None:
        host, engine = self._engine({"A": True, "B": True})
        host.items["tok-A"].works = frozenset()
        report = await engine.activate("g", ["B"])
        self.assertEqual(len(report.failures), 1)
        self.assertEqual(report.failures[0].entity_id, "A")
        self.assertTrue(host.items["tok-B"].checked)
        self.assertEqual(engine.state.active_group, "g")
        self.assertEqual(len(engine.journal.of_type("convergence_failure")), 1)

    async def test_reset_clears_state(self) -> None:
        _host, engine = self._engine({"A": True, "B": False})
        await engine.activate("g", ["B"])
        engine.reset()
        self.assertTrue(engine.state.idle)
        self.assertEqual(engine.snapshot, {})


if __name__ == "__main__":
    unittest.main()
