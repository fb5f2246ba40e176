import asyncio
import unittest
from unittest.mock import patch

from calgroups.engine import GroupEngine
from calgroups.gateway import MessagingGateway, TransitionSlot
from calgroups.groups import GroupDefinitions
from fake_host import FakeHost, FakeViewport, calendar_host


class YieldingHost(FakeHost):
    async def pause(self, ms: int) -> None:
        await super().pause(ms)
        await asyncio.sleep(0)


def _gateway(host: FakeHost, groups: dict | None = None) -> MessagingGateway:
    engine = GroupEngine(host, clock=host.clock)
    return MessagingGateway(engine, GroupDefinitions.from_payload({"groups": groups or {}}))


class MessagingGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def test_get_entities_shape(self) -> None:
        gateway = _gateway(calendar_host({"A": True, "B": False}))
        response = await gateway.handle({"action": "getEntities"})
        self.assertEqual(
            response,
            {"entities": [{"id": "A", "name": "A", "visible": True}, {"id": "B", "name": "B", "visible": False}]},
        )

    async def test_get_entities_is_idempotent(self) -> None:
        gateway = _gateway(calendar_host({"A": True, "B": False, "C": True}))
        first = await gateway.handle({"action": "getEntities"})
        second = await gateway.handle({"action": "getEntities"})
        self.assertEqual(first, second)

    async def test_legacy_actions_use_calendar_keys(self) -> None:
        gateway = _gateway(calendar_host({"A": True}), {"work": {"name": "Work", "calendars": ["A"]}})
        listed = await gateway.handle({"action": "getCalendars"})
        self.assertIn("calendars", listed)
        toggled = await gateway.handle({"action": "toggleGroup", "groupId": "work"})
        self.assertEqual(toggled, {"success": True, "activeGroup": "work"})
        restored = await gateway.handle({"action": "showAllCalendars"})
        self.assertEqual(restored, {"success": True})

    async def test_unknown_and_malformed_messages(self) -> None:
        gateway = _gateway(calendar_host({"A": True}))
        self.assertEqual(await gateway.handle({"action": "explode"}), {"error": "Unknown action"})
        self.assertEqual((await gateway.handle(["getEntities"]))["code"], "invalid_request")
        self.assertEqual((await gateway.handle({}))["code"], "invalid_request")
        response = await gateway.handle({"action": "activateGroup", "groupId": 7})
        self.assertEqual(response["code"], "invalid_request")

    async def test_unknown_group_without_selection_is_rejected_untouched(self) -> None:
        host = calendar_host({"A": True, "B": False})
        gateway = _gateway(host)
        for selection in (None, [], "A", [1, 2]):
            message = {"action": "activateGroup", "groupId": "nope"}
            if selection is not None:
                message["selection"] = selection
            response = await gateway.handle(message)
            self.assertEqual(response["code"], "group_not_found")
            self.assertEqual(response["error"], "Group not found")
        self.assertEqual(host.op_calls("interact"), [])
        self.assertEqual(host.visible_map(), {"A": True, "B": False})

    async def test_stored_group_selection_is_used(self) -> None:
        host = calendar_host({"A": True, "B": False, "C": True})
        gateway = _gateway(host, {"g1": {"name": "Focus", "selection": ["B"]}})
        response = await gateway.handle({"action": "activateGroup", "groupId": "g1"})
        self.assertEqual(response, {"success": True, "activeGroup": "g1"})
        self.assertEqual(host.visible_map(), {"A": False, "B": True, "C": False})

    async def test_caller_selection_overrides_unknown_group(self) -> None:
        host = calendar_host({"A": True, "B": False})
        gateway = _gateway(host)
        response = await gateway.handle({"action": "activateGroup", "groupId": "adhoc", "selection": ["B", "ghost"]})
        self.assertEqual(response, {"success": True, "activeGroup": "adhoc"})
        self.assertEqual(host.visible_map(), {"A": False, "B": True})

    async def test_toggle_semantics_through_gateway(self) -> None:
        host = calendar_host({"A": True, "B": False})
        gateway = _gateway(host)
        message = {"action": "activateGroup", "groupId": "g", "selection": ["B"]}
        await gateway.handle(message)
        second = await gateway.handle(message)
        self.assertEqual(second, {"success": True, "activeGroup": None})
        self.assertEqual(host.visible_map(), {"A": True, "B": False})

    async def test_restore_all_is_safe_to_repeat(self) -> None:
        host = calendar_host({"A": True, "B": False})
        gateway = _gateway(host)
        await gateway.handle({"action": "activateGroup", "groupId": "g", "selection": ["B"]})
        self.assertEqual(await gateway.handle({"action": "restoreAll"}), {"success": True})
        self.assertEqual(await gateway.handle({"action": "restoreAll"}), {"success": True})
        self.assertEqual(host.visible_map(), {"A": True, "B": False})

    async def test_wrong_page_is_refused(self) -> None:
        host = calendar_host({"A": True}, url="https://example.com/")
        gateway = _gateway(host)
        response = await gateway.handle({"action": "getEntities"})
        self.assertEqual(response["code"], "not_on_host_page")
        self.assertEqual(host.op_calls("collectToggles"), [])

    async def test_navigation_resets_engine(self) -> None:
        host = calendar_host({"A": True, "B": False})
        gateway = _gateway(host)
        await gateway.handle({"action": "activateGroup", "groupId": "g", "selection": ["B"]})
        self.assertEqual((await gateway.handle({"action": "getState"}))["activeGroup"], "g")
        host.navigated = True
        await gateway.handle({"action": "getEntities"})
        state = await gateway.handle({"action": "getState"})
        self.assertEqual(state["state"], "idle")
        self.assertEqual(state["snapshotSize"], 0)

    async def test_waits_for_dom_then_returns_empty(self) -> None:
        host = FakeHost()
        gateway = _gateway(host)
        response = await gateway.handle({"action": "getEntities"})
        self.assertEqual(response, {"entities": []})
        self.assertGreaterEqual(host.now, 15.0)
        self.assertTrue(gateway.engine.journal.of_type("dom_not_ready"))

    async def test_force_refresh_includes_revealed_entities(self) -> None:
        host = calendar_host({"A": True})
        host.viewports["vp"] = FakeViewport(token="vp", scroll_height=800, client_height=200)
        host.add_entity("tok-Z", "Z", False, attached=False, reveal_at=400, native_ids=[["data-id", "Z"]])
        gateway = _gateway(host)
        plain = await gateway.handle({"action": "getEntities"})
        self.assertEqual([item["id"] for item in plain["entities"]], ["A"])
        refreshed = await gateway.handle({"action": "forceRefreshEntities"})
        self.assertEqual(sorted(item["id"] for item in refreshed["entities"]), ["A", "Z"])

    async def test_force_refresh_keeps_rows_unmounted_by_restore(self) -> None:
        host = calendar_host({"A": True}, unmount_offscreen=True)
        host.viewports["vp"] = FakeViewport(token="vp", scroll_height=1000, client_height=200)
        host.add_entity("tok-Z", "Z", True, attached=False, reveal_at=600, native_ids=[["data-id", "Z"]])
        gateway = _gateway(host)
        refreshed = await gateway.handle({"action": "forceRefreshEntities"})
        self.assertFalse(host.items["tok-Z"].attached)
        self.assertEqual(
            sorted((item["id"], item["visible"]) for item in refreshed["entities"]),
            [("A", True), ("Z", True)],
        )
        again = await gateway.handle({"action": "getEntities"})
        self.assertEqual(sorted(item["id"] for item in again["entities"]), ["A", "Z"])
        state = await gateway.handle({"action": "getState"})
        self.assertEqual(state["lastReveal"]["revealed"], 2)
        self.assertEqual(state["errorCount"], 0)

    async def test_unexpected_failure_becomes_error_response(self) -> None:
        gateway = _gateway(calendar_host({"A": True}))
        with patch.object(gateway.engine, "discover", side_effect=RuntimeError("boom")):
            response = await gateway.handle({"action": "getEntities"})
        self.assertEqual(response, {"error": "boom"})
        self.assertTrue(gateway.engine.journal.of_type("handler_failed"))

    async def test_waiting_transition_is_superseded_by_newer_one(self) -> None:
        host = YieldingHost()
        for name, checked in {"A": True, "B": False, "C": False}.items():
            host.add_entity(f"tok-{name}", name, checked, native_ids=[["data-id", name]])
        gateway = _gateway(host)
        first, second, third = await asyncio.gather(
            gateway.handle({"action": "activateGroup", "groupId": "g1", "selection": ["A"]}),
            gateway.handle({"action": "activateGroup", "groupId": "g2", "selection": ["B"]}),
            gateway.handle({"action": "activateGroup", "groupId": "g3", "selection": ["C"]}),
        )
        self.assertNotIn("superseded", first)
        self.assertTrue(second.get("superseded"))
        self.assertNotIn("superseded", third)
        self.assertEqual(third["activeGroup"], "g3")
        self.assertEqual(host.visible_map(), {"A": False, "B": False, "C": True})


class TransitionSlotTests(unittest.IsolatedAsyncioTestCase):
    async def test_exclusive_work_does_not_displace_waiting_transition(self) -> None:
        slot = TransitionSlot()
        gate = asyncio.Event()
        order: list[str] = []

        async def blocker() -> str:
            await gate.wait()
            order.append("first")
            return "first"

        async def step(name: str) -> str:
            order.append(name)
            return name

        running = asyncio.create_task(slot.submit(blocker))
        await asyncio.sleep(0)
        queued = asyncio.create_task(slot.submit(lambda: step("queued")))
        refresh = asyncio.create_task(slot.exclusive(lambda: step("refresh")))
        await asyncio.sleep(0)
        self.assertTrue(slot.busy)
        gate.set()
        self.assertEqual(await running, (True, "first"))
        self.assertEqual(await queued, (True, "queued"))
        self.assertEqual(await refresh, "refresh")
        self.assertEqual(order, ["first", "queued", "refresh"])


if __name__ == "__main__":
    unittest.main()
