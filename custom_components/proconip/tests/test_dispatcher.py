"""
Unit tests for dispatcher.py: relay state machine, timers, dosage routing,
identity resolution and force-update marking.
"""

from __future__ import annotations

import unittest

from custom_components.proconip.dispatcher import (
    CommandDispatcher,
    IdentityResolutionError,
    InvalidIntentValueError,
)
from custom_components.proconip.materializer import ObjectMaterializer
from custom_components.proconip.object_store import ObjectStore, StoreObject
from custom_components.proconip.reconciler import ForceUpdateLedger

from .test_common import make_api, make_relay, make_snapshot


class _DispatcherTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.pump = make_relay(1, label="Pump")
        self.chlorine = make_relay(5, label="Chlor")
        self.external = make_relay(2, label="Garden", external=True)
        self.fountain = make_relay(3, label="Fountain", external=True)
        self.snapshot = make_snapshot(
            [self.pump, self.chlorine, self.external, self.fountain],
            configOtherEnable="2",
            chlorineDosageRelay="5",
            phMinusDosageRelay="6",
            phPlusDosageRelay="10",
        )
        self.store = ObjectStore()
        await ObjectMaterializer(self.store).async_ensure_object_schema(self.snapshot.objects, self.snapshot)
        for relay in self.snapshot.objects:
            await self.store.async_set_state(f"{relay.channel}.onOff", False)
        self.api = make_api()
        self.ledger = ForceUpdateLedger()
        self.dispatcher = CommandDispatcher(self.store, self.api, self.ledger, lambda: self.snapshot)


class TestRelaySwitching(_DispatcherTestCase):

    async def test_auto_true_sets_auto_regardless_of_on_off(self):
        for on_off in (False, True):
            self.api.async_set_auto.reset_mock()
            await self.store.async_set_state("relays.1.onOff", on_off)

            result = await self.dispatcher.async_set_auto("relays.1.auto", True)

            self.assertEqual(result, 1)
            self.api.async_set_auto.assert_awaited_once_with(self.pump)
            self.api.async_set_on.assert_not_awaited()
            self.api.async_set_off.assert_not_awaited()

    async def test_auto_false_with_on_off_true_sets_on(self):
        await self.store.async_set_state("relays.1.onOff", True)

        await self.dispatcher.async_set_auto("relays.1.auto", False)

        self.api.async_set_on.assert_awaited_once_with(self.pump)
        self.api.async_set_off.assert_not_awaited()

    async def test_auto_false_with_on_off_false_sets_off(self):
        await self.dispatcher.async_set_auto("relays.1.auto", False)

        self.api.async_set_off.assert_awaited_once_with(self.pump)
        self.api.async_set_on.assert_not_awaited()

    async def test_auto_without_on_off_state_raises(self):
        await self.store.async_set_object("relays.3.auto", StoreObject("state", native={"id": 19}))

        with self.assertRaises(IdentityResolutionError):
            await self.dispatcher.async_set_auto("relays.3.auto", True)
        self.api.async_set_auto.assert_not_awaited()

    async def test_on_off(self):
        await self.dispatcher.async_set_on_off("relays.1.onOff", True)
        await self.dispatcher.async_set_on_off("relays.1.onOff", False)

        self.api.async_set_on.assert_awaited_once_with(self.pump)
        self.api.async_set_off.assert_awaited_once_with(self.pump)

    async def test_intent_marks_force_update(self):
        await self.dispatcher.async_set_auto("relays.1.auto", True)
        self.assertIn(self.pump.id, self.ledger)

    async def test_transport_failure_still_marks_and_returns_minus_one(self):
        self.api.async_set_on.side_effect = RuntimeError("controller gone")

        with self.assertLogs("custom_components.proconip.dispatcher", level="ERROR") as logs:
            result = await self.dispatcher.async_set_on_off("relays.1.onOff", True)

        self.assertEqual(result, -1)
        self.assertIn(self.pump.id, self.ledger)
        self.assertIn("Pump", logs.output[0])

    async def test_unknown_path_raises(self):
        with self.assertRaises(IdentityResolutionError):
            await self.dispatcher.async_set_on_off("relays.7.onOff", True)
        self.assertEqual(self.ledger.ids(), frozenset())

    async def test_object_without_native_id_raises(self):
        await self.store.async_set_object("relays.4.onOff", StoreObject("state"))
        with self.assertRaises(IdentityResolutionError):
            await self.dispatcher.async_set_on_off("relays.4.onOff", True)

    async def test_id_missing_from_baseline_raises(self):
        self.snapshot = make_snapshot([])
        with self.assertRaises(IdentityResolutionError):
            await self.dispatcher.async_set_on_off("relays.1.onOff", True)


class TestTimers(_DispatcherTestCase):

    async def test_internal_relay_timer_channel(self):
        ok = await self.dispatcher.async_set_relay_timer("relays.1.timer", 120)

        self.assertTrue(ok)
        self.api.async_set_timer.assert_awaited_once_with(2, 120)

    async def test_external_relay_timer_channel(self):
        await self.dispatcher.async_set_relay_timer("externalRelays.3.timer", "30")
        self.api.async_set_timer.assert_awaited_once_with(12, 30)

    async def test_invalid_duration(self):
        with self.assertRaises(InvalidIntentValueError):
            await self.dispatcher.async_set_relay_timer("relays.1.timer", "soon")
        with self.assertRaises(InvalidIntentValueError):
            await self.dispatcher.async_set_relay_timer("relays.1.timer", True)

    async def test_negative_duration_clamped(self):
        await self.dispatcher.async_set_relay_timer("relays.1.timer", -5)
        self.api.async_set_timer.assert_awaited_once_with(2, 0)


class TestDosage(_DispatcherTestCase):

    async def test_chlorine_dosage(self):
        ok = await self.dispatcher.async_set_dosage_timer("relays.5.dosageTimer", 60)

        self.assertTrue(ok)
        self.api.async_set_chlorine_dosage.assert_awaited_once_with(60)
        self.assertIn(self.chlorine.id, self.ledger)

    async def test_external_relay_matches_ph_plus(self):
        # external relay 2 is physical relay 10
        await self.dispatcher.async_set_dosage_timer("externalRelays.2.dosageTimer", 15)
        self.api.async_set_ph_plus_dosage.assert_awaited_once_with(15)

    async def test_no_matching_dosage_relay_issues_no_command(self):
        ok = await self.dispatcher.async_set_dosage_timer("relays.1.timer", 60)

        self.assertFalse(ok)
        self.api.async_set_chlorine_dosage.assert_not_awaited()
        self.api.async_set_ph_minus_dosage.assert_not_awaited()
        self.api.async_set_ph_plus_dosage.assert_not_awaited()

    async def test_dosage_transport_failure_returns_false(self):
        self.api.async_set_chlorine_dosage.side_effect = RuntimeError("timeout")
        with self.assertLogs("custom_components.proconip.dispatcher", level="ERROR"):
            ok = await self.dispatcher.async_set_dosage_timer("relays.5.dosageTimer", 60)
        self.assertFalse(ok)
