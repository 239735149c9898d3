"""
DataUpdateCoordinator for the ProCon.IP integration.

Responsibilities:
- Own the ProconIpApi, the ObjectStore and the ProconIpBridge for the lifetime
  of a config entry.
- Poll GetState.csv every update_interval and hand each snapshot to the bridge.
- Track consecutive poll failures: quiet below error_tolerance, loud above it.
- Provide the DeviceInfo shared by all entities of the controller.
- Relay store changes to entities as dispatcher signals.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import ProconIpApi, ProconIpApiError
from .bridge import ProconIpBridge
from .const import (
    CONF_BASIC_AUTH,
    CONF_CONTROLLER_URL,
    CONF_ENTRY_NAME,
    CONF_ERROR_TOLERANCE,
    CONF_PASSWORD,
    CONF_REQUEST_TIMEOUT,
    CONF_UPDATE_INTERVAL,
    CONF_USERNAME,
    DEFAULT_BASIC_AUTH,
    DEFAULT_ENTRY_NAME,
    DEFAULT_ERROR_TOLERANCE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
    MANUFACTURER,
    MIN_INTERVAL,
    MODEL,
    signal_new_object,
    signal_object,
    signal_state,
)
from .models import Snapshot
from .object_store import ObjectStore, StoreObject, StoreState

_LOGGER = logging.getLogger(__name__)


class ProconIpCoordinator(DataUpdateCoordinator[Snapshot]):
    """
    Coordinator for one ProCon.IP controller.

    Entities do not read coordinator.data directly: they mirror the object store,
    which the bridge keeps in sync with every snapshot returned here.
    """

    def __init__(self, hass: HomeAssistant, config_entry: ConfigEntry, entry_data: dict) -> None:
        """Initialize the coordinator from merged config-entry data and options."""
        interval_ms = max(int(entry_data.get(CONF_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL)), MIN_INTERVAL)
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=timedelta(milliseconds=interval_ms),
        )
        self._entry_id = config_entry.entry_id
        self._entry_data = entry_data

        timeout_ms = max(int(entry_data.get(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)), MIN_INTERVAL)
        self.api = ProconIpApi(
            entry_data[CONF_CONTROLLER_URL],
            username=entry_data.get(CONF_USERNAME, ""),
            password=entry_data.get(CONF_PASSWORD, ""),
            basic_auth=entry_data.get(CONF_BASIC_AUTH, DEFAULT_BASIC_AUTH),
            timeout=timeout_ms / 1000,
        )
        self.store = ObjectStore()
        self.bridge = ProconIpBridge(self.store, self.api, create_task=hass.async_create_task)

        self._error_tolerance: int = int(entry_data.get(CONF_ERROR_TOLERANCE, DEFAULT_ERROR_TOLERANCE))
        self._consecutive_errors: int = 0
        # Distinguishes "never reached the controller" from "lost it"
        self._had_success: bool = False
        self._unsubscribe_store: list = []

    # ------------------------------------------------------------------
    # HA entry point
    # ------------------------------------------------------------------

    async def _async_update_data(self) -> Snapshot:
        """Called by HA on every update_interval tick."""
        if self.bridge.stopped:
            raise UpdateFailed("ProCon.IP bridge is stopped")

        try:
            snapshot = await self.api.async_get_state()
        except ProconIpApiError as exc:
            self._consecutive_errors += 1
            await self.bridge.async_handle_poll_error(exc)
            self._log_poll_error(exc)
            raise UpdateFailed(f"ProCon.IP poll failed: {exc}") from exc

        if self._consecutive_errors:
            _LOGGER.info("Connection to the controller restored after %s failed polls", self._consecutive_errors)
        self._consecutive_errors = 0
        self._had_success = True
        await self.bridge.async_handle_snapshot(snapshot)
        return snapshot

    def _log_poll_error(self, exc: Exception) -> None:
        if not self._had_success:
            _LOGGER.error("Could not connect to the controller: %s", exc)
        elif self._consecutive_errors > self._error_tolerance:
            _LOGGER.warning(
                "Polling the controller failed %s times in a row: %s",
                self._consecutive_errors, exc,
            )
        else:
            _LOGGER.debug("Polling the controller failed (%s): %s", self._consecutive_errors, exc)

    # ------------------------------------------------------------------
    # Entity helper: device info
    # ------------------------------------------------------------------

    def get_device_info(self) -> dict:
        """Return the HA DeviceInfo dict for the controller."""
        snapshot = self.bridge.snapshot
        return {
            "identifiers": {(DOMAIN, self._entry_id)},
            "name": self._entry_data.get(CONF_ENTRY_NAME) or DEFAULT_ENTRY_NAME,
            "manufacturer": MANUFACTURER,
            "model": MODEL,
            "sw_version": snapshot.sys_info.version if snapshot is not None else None,
            "configuration_url": self.api.base_url,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_start(self) -> None:
        """Forward store changes to entities and start listening for write intents."""
        self._unsubscribe_store = [
            self.store.subscribe_states("*", self._forward_state),
            self.store.subscribe_objects("*", self._forward_object),
        ]
        await self.bridge.async_start()

    async def async_shutdown(self) -> None:
        """Stop the bridge, then let HA stop the refresh timer."""
        await self.bridge.async_stop()
        for unsubscribe in self._unsubscribe_store:
            unsubscribe()
        self._unsubscribe_store.clear()
        await super().async_shutdown()

    @callback
    def _forward_state(self, path: str, state: StoreState | None) -> None:
        async_dispatcher_send(self.hass, signal_state(self._entry_id, path), state)

    @callback
    def _forward_object(self, path: str, obj: StoreObject, created: bool) -> None:
        if created:
            async_dispatcher_send(self.hass, signal_new_object(self._entry_id), path, obj)
        async_dispatcher_send(self.hass, signal_object(self._entry_id, path), obj)

    @property
    def entry_id(self) -> str:
        return self._entry_id

    @property
    def entry_data(self) -> dict:
        return self._entry_data
