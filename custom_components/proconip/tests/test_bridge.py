"""
End-to-end tests for bridge.py: snapshots in, store writes and device
commands out.

Coverage:
- initial poll builds the relay namespace and writes the snapshot values
- identical polls write nothing
- an auto intent issues one command and forces the next update
- label changes are propagated without re-creating objects
- external relay bank enable, poll errors, shutdown and failure logging
"""

from __future__ import annotations

import unittest
from unittest.mock import patch

from custom_components.proconip.bridge import ProconIpBridge
from custom_components.proconip.models import Category, DataObject
from custom_components.proconip.object_store import ObjectStore, StoreObject

from .test_common import make_api, make_object, make_relay, make_snapshot


def _pump(**kwargs) -> DataObject:
    defaults = dict(id=1, category=Category.RELAYS, category_id=1, label="Pump", unit="", value=0.0,
                    display_value="Auto (Off)", active=True)
    defaults.update(kwargs)
    return DataObject(**defaults)


class _BridgeTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.store = ObjectStore()
        self.api = make_api()
        self.bridge = ProconIpBridge(self.store, self.api)
        await self.bridge.async_start()

    async def poll(self, snapshot):
        plan = await self.bridge.async_handle_snapshot(snapshot)
        await self.bridge.async_wait_pending()
        return plan

    def record_states(self) -> list:
        events = []
        self.store.subscribe_states("*", lambda path, state: events.append((path, state)))
        return events


class TestInitialPoll(_BridgeTestCase):

    async def test_connection_false_before_first_poll(self):
        self.assertFalse(self.store.peek_state("info.connection").val)

    async def test_relay_namespace_and_values(self):
        snapshot = make_snapshot([_pump()])

        await self.poll(snapshot)

        self.assertEqual(self.store.peek_object("relays.1").type, "channel")
        for field in ("value", "label", "unit", "displayValue", "active", "auto", "onOff", "timer"):
            self.assertIsNotNone(self.store.peek_object(f"relays.1.{field}"), field)
        self.assertEqual(self.store.peek_state("relays.1.value").val, 0.0)
        self.assertEqual(self.store.peek_state("relays.1.label").val, "Pump")
        self.assertEqual(self.store.peek_state("relays.1.displayValue").val, "Auto (Off)")
        self.assertTrue(self.store.peek_state("relays.1.active").val)
        self.assertTrue(self.store.peek_state("relays.1.auto").val)
        self.assertFalse(self.store.peek_state("relays.1.onOff").val)
        self.assertTrue(self.store.peek_state("relays.1.value").ack)
        self.assertTrue(self.store.peek_state("info.connection").val)

    async def test_sys_info_written(self):
        await self.poll(make_snapshot([_pump()], dosageControl="1"))

        self.assertEqual(self.store.peek_state("info.system.version").val, "1.7.3")
        self.assertTrue(self.store.peek_state("info.system.chlorineDosageEnabled").val)
        self.assertFalse(self.store.peek_state("info.system.electrolysis").val)

    async def test_bootstrapped_after_first_poll(self):
        snapshot = make_snapshot([_pump()])
        await self.poll(snapshot)
        self.assertIs(self.bridge.snapshot, snapshot)
        self.assertTrue(self.bridge.connected)


class TestIncrementalPolls(_BridgeTestCase):

    async def test_identical_poll_writes_nothing(self):
        await self.poll(make_snapshot([_pump(), make_object()]))
        events = self.record_states()

        await self.poll(make_snapshot([_pump(), make_object()]))

        self.assertEqual(events, [])

    async def test_changed_value_writes_only_changed_fields(self):
        await self.poll(make_snapshot([_pump(), make_object()]))
        events = self.record_states()

        await self.poll(make_snapshot([_pump(), make_object(value=26.0)]))

        self.assertEqual([path for path, _state in events], ["temperatures.0.value"])

    async def test_relay_value_change_updates_auto_and_on_off(self):
        await self.poll(make_snapshot([_pump()]))

        await self.poll(make_snapshot([_pump(value=3.0, display_value="On")]))

        self.assertTrue(self.store.peek_state("relays.1.auto").val)
        self.assertTrue(self.store.peek_state("relays.1.onOff").val)

    async def test_rename_propagates_without_recreation(self):
        await self.poll(make_snapshot([_pump()]))
        created = []
        self.store.subscribe_objects("*", lambda path, obj, is_new: created.append(is_new))

        await self.poll(make_snapshot([_pump(label="Main pump")]))

        self.assertEqual(self.store.peek_object("relays.1").common["name"], "Main pump")
        for field in ("value", "auto", "onOff", "timer"):
            obj = self.store.peek_object(f"relays.1.{field}")
            self.assertEqual(obj.common["name"], "Main pump")
            self.assertEqual(obj.native["label"], "Main pump")
        self.assertTrue(created)
        self.assertNotIn(True, created)
        self.assertEqual(self.store.peek_state("relays.1.label").val, "Main pump")

    async def test_new_object_after_bootstrap_is_materialized(self):
        await self.poll(make_snapshot([_pump()]))

        await self.poll(make_snapshot([_pump(), make_object(label="Solar")]))

        self.assertEqual(self.store.peek_object("temperatures.0").common["name"], "Solar")
        self.assertEqual(self.store.peek_state("temperatures.0.value").val, 24.5)

    async def test_external_relay_bank_enabled_later(self):
        external = make_relay(0, label="Garden", external=True, value=1.0)
        await self.poll(make_snapshot([_pump(), external], configOtherEnable="0"))
        self.assertIsNone(self.store.peek_object("externalRelays.0.auto"))

        await self.poll(make_snapshot([_pump(), external], configOtherEnable="2"))

        self.assertIsNotNone(self.store.peek_object("externalRelays.0.timer"))
        self.assertTrue(self.store.peek_state("externalRelays.0.auto").val)
        self.assertTrue(self.store.peek_state("externalRelays.0.onOff").val)


class TestWriteIntents(_BridgeTestCase):

    async def test_auto_intent_end_to_end(self):
        await self.poll(make_snapshot([_pump()]))

        await self.store.async_set_state("relays.1.auto", True, ack=False)
        await self.bridge.async_wait_pending()

        self.api.async_set_auto.assert_awaited_once()
        self.assertEqual(self.api.async_set_auto.await_args.args[0].id, 1)
        self.assertIn(1, self.bridge.reconciler.ledger)

        events = self.record_states()
        plan = await self.poll(make_snapshot([_pump()]))

        self.assertIsNotNone(plan.update_for(1))
        self.assertIn("relays.1.value", [path for path, _state in events])
        self.assertNotIn(1, self.bridge.reconciler.ledger)

    async def test_intent_during_materialization_keeps_force_update(self):
        await self.poll(make_snapshot([_pump()]))
        self.bridge.reconciler.ledger.add(1)
        original = self.bridge.materializer.async_ensure_object_schema

        async def _with_intent(objects, snapshot):
            await self.store.async_set_state("relays.1.onOff", True, ack=False)
            await self.bridge.async_wait_pending()
            return await original(objects, snapshot)

        with patch.object(self.bridge.materializer, "async_ensure_object_schema", side_effect=_with_intent):
            await self.poll(make_snapshot([_pump(), make_object(8, category_id=0)]))

        self.api.async_set_on.assert_awaited_once()
        self.assertIn(1, self.bridge.reconciler.ledger)

        plan = await self.poll(make_snapshot([_pump(), make_object(8, category_id=0)]))
        self.assertIsNotNone(plan.update_for(1))
        self.assertNotIn(1, self.bridge.reconciler.ledger)

    async def test_acknowledged_changes_are_ignored(self):
        await self.poll(make_snapshot([_pump()]))

        await self.store.async_set_state("relays.1.onOff", True, ack=True)
        await self.bridge.async_wait_pending()

        self.api.async_set_on.assert_not_awaited()

    async def test_on_off_and_timer_intents(self):
        await self.poll(make_snapshot([_pump()]))

        await self.store.async_set_state("relays.1.onOff", True, ack=False)
        await self.store.async_set_state("relays.1.timer", 90, ack=False)
        await self.bridge.async_wait_pending()

        self.api.async_set_on.assert_awaited_once()
        self.api.async_set_timer.assert_awaited_once_with(2, 90)

    async def test_identity_error_is_logged(self):
        await self.poll(make_snapshot([_pump()]))
        await self.store.async_set_object("relays.9.onOff", StoreObject("state"))

        with self.assertLogs("custom_components.proconip.bridge", level="ERROR"):
            await self.store.async_set_state("relays.9.onOff", True, ack=False)
            await self.bridge.async_wait_pending()

        self.api.async_set_on.assert_not_awaited()

    async def test_deleted_state_is_logged(self):
        await self.poll(make_snapshot([_pump()]))

        with self.assertLogs("custom_components.proconip.bridge", level="INFO") as logs:
            await self.store.async_delete_state("relays.1.onOff")

        self.assertIn("relays.1.onOff", logs.output[0])


class TestFailures(_BridgeTestCase):

    async def test_poll_error_clears_connection(self):
        await self.poll(make_snapshot([_pump()]))

        await self.bridge.async_handle_poll_error(RuntimeError("timeout"))

        self.assertFalse(self.store.peek_state("info.connection").val)
        self.assertFalse(self.bridge.connected)

    async def test_failed_write_is_logged_and_cycle_completes(self):
        original = self.store.async_set_state

        async def _flaky(path, val, ack=True):
            if path == "relays.1.label":
                raise RuntimeError("store busy")
            return await original(path, val, ack=ack)

        with patch.object(self.store, "async_set_state", side_effect=_flaky):
            with self.assertLogs("custom_components.proconip.bridge", level="ERROR") as logs:
                await self.poll(make_snapshot([_pump()]))

        self.assertTrue(any("Pump" in line for line in logs.output))
        self.assertTrue(self.bridge.reconciler.bootstrapped)
        self.assertEqual(self.store.peek_state("relays.1.value").val, 0.0)

    async def test_incomplete_namespace_is_retried(self):
        original = self.store.async_set_object_not_exists
        failing = {"relays.1.onOff"}

        async def _flaky(path, obj):
            if path in failing:
                raise RuntimeError("rejected")
            return await original(path, obj)

        with patch.object(self.store, "async_set_object_not_exists", side_effect=_flaky):
            with self.assertLogs("custom_components.proconip.materializer", level="ERROR"):
                await self.poll(make_snapshot([_pump()]))
        self.assertIsNone(self.store.peek_object("relays.1.onOff"))

        await self.poll(make_snapshot([_pump()]))

        self.assertIsNotNone(self.store.peek_object("relays.1.onOff"))
        self.assertFalse(self.store.peek_state("relays.1.onOff").val)
        self.assertTrue(self.store.peek_state("relays.1.auto").val)
        self.assertEqual(self.store.peek_state("relays.1.value").val, 0.0)

    async def test_retried_namespace_gets_all_values(self):
        original = self.store.async_set_object_not_exists

        async def _flaky(path, obj):
            if path == "temperatures.0.value":
                raise RuntimeError("rejected")
            return await original(path, obj)

        snapshot = make_snapshot([make_object(8, category_id=0)])
        with patch.object(self.store, "async_set_object_not_exists", side_effect=_flaky):
            with self.assertLogs("custom_components.proconip.materializer", level="ERROR"):
                await self.poll(snapshot)
        self.assertIsNone(self.store.peek_state("temperatures.0.value"))

        await self.poll(make_snapshot([make_object(8, category_id=0)]))

        self.assertEqual(self.store.peek_state("temperatures.0.value").val, 24.5)
        self.assertEqual(self.store.peek_state("temperatures.0.label").val, "Pool")
        self.assertEqual(self.store.peek_state("temperatures.0.unit").val, "C")


class TestShutdown(_BridgeTestCase):

    async def test_snapshots_after_stop_are_dropped(self):
        await self.poll(make_snapshot([_pump()]))
        await self.bridge.async_stop()

        plan = await self.poll(make_snapshot([_pump(value=3.0)]))

        self.assertIsNone(plan)
        self.assertEqual(self.store.peek_state("relays.1.value").val, 0.0)
        self.assertFalse(self.store.peek_state("info.connection").val)

    async def test_intents_after_stop_are_ignored(self):
        await self.poll(make_snapshot([_pump()]))
        await self.bridge.async_stop()

        await self.store.async_set_state("relays.1.auto", True, ack=False)
        await self.bridge.async_wait_pending()

        self.api.async_set_auto.assert_not_awaited()

    async def test_stop_twice_is_harmless(self):
        await self.bridge.async_stop()
        await self.bridge.async_stop()
        self.assertTrue(self.bridge.stopped)
