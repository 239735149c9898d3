"""
Tests for ProconIpCoordinator: configuration, poll success and failure
handling, error tolerance logging, device info and shutdown.
"""

from __future__ import annotations

import unittest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from homeassistant.core import callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from custom_components.proconip.api import ProconIpApiError
from custom_components.proconip.const import DOMAIN, signal_new_object, signal_state

from .test_common import make_coordinator, make_relay, make_snapshot


class TestCoordinatorInit(unittest.TestCase):

    def test_update_interval_from_entry(self):
        coord = make_coordinator(update_interval=5000)
        self.assertEqual(coord.update_interval, timedelta(seconds=5))

    def test_update_interval_has_lower_bound(self):
        coord = make_coordinator(update_interval=10)
        self.assertEqual(coord.update_interval, timedelta(seconds=1))

    def test_api_settings(self):
        coord = make_coordinator(controller_url="http://pool.local/", request_timeout=2500)
        self.assertEqual(coord.api.base_url, "http://pool.local")
        self.assertEqual(coord.api._timeout, 2.5)

    def test_bridge_shares_store(self):
        coord = make_coordinator()
        self.assertIs(coord.bridge.store, coord.store)
        self.assertIs(coord.bridge.api, coord.api)


class TestUpdateData(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.coord = make_coordinator(error_tolerance=2)
        await self.coord.async_start()

    async def test_success_hands_snapshot_to_bridge(self):
        snapshot = make_snapshot([make_relay(0)])
        self.coord.api.async_get_state = AsyncMock(return_value=snapshot)

        result = await self.coord._async_update_data()
        await self.coord.bridge.async_wait_pending()

        self.assertIs(result, snapshot)
        self.assertIs(self.coord.bridge.snapshot, snapshot)
        self.assertTrue(self.coord.store.peek_state("info.connection").val)
        self.assertIsNotNone(self.coord.store.peek_state("relays.0.value"))

    async def test_failure_raises_update_failed_and_clears_connection(self):
        self.coord.api.async_get_state = AsyncMock(side_effect=ProconIpApiError("timeout"))

        with self.assertLogs("custom_components.proconip.coordinator", level="ERROR") as logs:
            with self.assertRaises(UpdateFailed):
                await self.coord._async_update_data()

        self.assertIn("Could not connect to the controller", logs.output[0])
        self.assertFalse(self.coord.store.peek_state("info.connection").val)
        self.assertEqual(self.coord._consecutive_errors, 1)

    async def test_errors_within_tolerance_are_quiet(self):
        await self.coord._async_update_data()
        self.coord.api.async_get_state = AsyncMock(side_effect=ProconIpApiError("timeout"))

        with self.assertLogs("custom_components.proconip.coordinator", level="DEBUG") as logs:
            for _ in range(3):
                with self.assertRaises(UpdateFailed):
                    await self.coord._async_update_data()

        levels = [record.levelname for record in logs.records if "failed" in record.getMessage()]
        self.assertEqual(levels, ["DEBUG", "DEBUG", "WARNING"])

    async def test_success_resets_error_count(self):
        self.coord.api.async_get_state = AsyncMock(side_effect=ProconIpApiError("timeout"))
        with self.assertRaises(UpdateFailed):
            await self.coord._async_update_data()

        self.coord.api.async_get_state = AsyncMock(return_value=make_snapshot())
        await self.coord._async_update_data()

        self.assertEqual(self.coord._consecutive_errors, 0)
        self.assertTrue(self.coord.bridge.connected)

    async def test_stopped_bridge_raises(self):
        await self.coord.bridge.async_stop()
        with self.assertRaises(UpdateFailed):
            await self.coord._async_update_data()
        self.coord.api.async_get_state.assert_not_awaited()


class TestDeviceInfo(unittest.IsolatedAsyncioTestCase):

    async def test_device_info(self):
        coord = make_coordinator(entry_name="Backyard pool")
        await coord.async_start()
        await coord._async_update_data()

        info = coord.get_device_info()

        self.assertEqual(info["identifiers"], {(DOMAIN, "test-entry")})
        self.assertEqual(info["name"], "Backyard pool")
        self.assertEqual(info["sw_version"], "1.7.3")

    def test_device_info_before_first_poll(self):
        info = make_coordinator().get_device_info()
        self.assertIsNone(info["sw_version"])


class TestShutdown(unittest.IsolatedAsyncioTestCase):

    async def test_shutdown_stops_bridge(self):
        coord = make_coordinator()
        await coord.async_start()

        with patch.object(DataUpdateCoordinator, "async_shutdown", new=AsyncMock()) as parent:
            await coord.async_shutdown()

        self.assertTrue(coord.bridge.stopped)
        parent.assert_awaited_once()
        self.assertFalse(coord.store.peek_state("info.connection").val)


class TestStoreSignals(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.coord = make_coordinator()
        self.states = []
        self.created = []

        @callback
        def _on_state(state):
            self.states.append(state.val)

        @callback
        def _on_new_object(path, obj):
            self.created.append(path)

        async_dispatcher_connect(self.coord.hass, signal_state("test-entry", "info.connection"), _on_state)
        async_dispatcher_connect(self.coord.hass, signal_new_object("test-entry"), _on_new_object)

    async def test_store_changes_are_signalled(self):
        await self.coord.async_start()
        await self.coord._async_update_data()
        await self.coord.bridge.async_wait_pending()

        self.assertEqual(self.states, [False, True])
        self.assertIn("info.connection", self.created)
        self.assertIn("info.system.version", self.created)

    async def test_no_signals_after_shutdown(self):
        await self.coord.async_start()
        with patch.object(DataUpdateCoordinator, "async_shutdown", new=AsyncMock()):
            await self.coord.async_shutdown()
        self.states.clear()

        await self.coord.store.async_set_state("info.connection", True)

        self.assertEqual(self.states, [])
