import unittest

from calgroups.journal import Journal
from calgroups.models import Entity
from calgroups.visibility import VisibilityController, read_visibility
from fake_host import FakeHost


class ReadVisibilityTests(unittest.TestCase):
    def test_checked_property_wins_over_attributes(self) -> None:
        state = {"ok": True, "hasControl": True, "checkedProp": False, "ariaChecked": "true"}
        self.assertFalse(read_visibility(state))

    def test_aria_checked_before_aria_pressed(self) -> None:
        state = {"ok": True, "hasControl": True, "checkedProp": None, "ariaChecked": "false", "ariaPressed": "true"}
        self.assertFalse(read_visibility(state))

    def test_aria_pressed_is_last_resort(self) -> None:
        state = {"ok": True, "hasControl": True, "checkedProp": None, "ariaChecked": None, "ariaPressed": "true"}
        self.assertTrue(read_visibility(state))

    def test_missing_node_and_missing_control(self) -> None:
        self.assertIsNone(read_visibility({"ok": False}))
        self.assertIsNone(read_visibility(None))
        self.assertFalse(read_visibility({"ok": True, "hasControl": False}))


class VisibilityControllerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.host = FakeHost()
        self.journal = Journal()
        self.controller = VisibilityController(self.host, journal=self.journal, settle_ms=200)

    def _entity(self, name: str, checked: bool, **kwargs) -> Entity:
        item = self.host.add_entity(f"tok-{name}", name, checked, **kwargs)
        return Entity(id=name, name=name, visible=checked, token=item.token)

    async def test_primary_click_converges(self) -> None:
        entity = self._entity("Work", False)
        outcome = await self.controller.set(entity, True)
        self.assertTrue(outcome.converged)
        self.assertEqual(outcome.method, "click")
        self.assertEqual(outcome.attempts, 1)
        self.assertTrue(entity.visible)
        self.assertEqual(self.host.paused_ms, 200)

    async def test_ladder_stops_at_first_converging_rung(self) -> None:
        entity = self._entity("Work", True, works=frozenset({"key_activation", "direct_mutation"}))
        outcome = await self.controller.set(entity, False)
        self.assertTrue(outcome.converged)
        self.assertEqual(outcome.method, "key_activation")
        methods = [args["method"] for args in self.host.op_calls("interact")]
        self.assertEqual(methods, ["click", "pointer_events", "key_activation"])

    async def test_direct_mutation_is_final_rung(self) -> None:
        entity = self._entity("Work", False, control="input", works=frozenset({"direct_mutation"}))
        outcome = await self.controller.set(entity, True)
        self.assertTrue(outcome.converged)
        self.assertEqual(outcome.method, "direct_mutation")
        self.assertEqual(outcome.attempts, 4)

    async def test_exhausted_ladder_is_recorded_not_raised(self) -> None:
        entity = self._entity("Stuck", True, works=frozenset())
        outcome = await self.controller.set(entity, False)
        self.assertFalse(outcome.converged)
        self.assertEqual(outcome.attempts, 4)
        self.assertTrue(entity.visible)
        self.assertEqual(self.journal.error_count, 1)
        self.assertIn("Stuck", self.journal.of_type("convergence_failure")[0]["message"])

    async def test_already_at_target_does_not_interact(self) -> None:
        entity = self._entity("Work", True)
        outcome = await self.controller.set(entity, True)
        self.assertTrue(outcome.converged)
        self.assertEqual(outcome.method, "noop")
        self.assertEqual(self.host.op_calls("interact"), [])

    async def test_detached_entity_reports_missing(self) -> None:
        entity = self._entity("Gone", True, attached=False)
        outcome = await self.controller.set(entity, False)
        self.assertFalse(outcome.converged)
        self.assertEqual(outcome.method, "missing")

    async def test_probe_errors_do_not_escape(self) -> None:
        entity = self._entity("Work", False)
        self.host.failing_ops.add("interact")
        outcome = await self.controller.set(entity, True)
        self.assertFalse(outcome.converged)
        self.assertTrue(self.journal.of_type("interaction_failed"))


if __name__ == "__main__":
    unittest.main()
