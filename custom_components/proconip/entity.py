"""
Entities mirroring ProCon.IP store states.

Every readable or writable state in the ObjectStore becomes exactly one
entity. The platform is chosen from the state's metadata, updates arrive as
dispatcher signals relayed by the coordinator and writes go back into the
store unacknowledged, where the bridge picks them up as intents.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo, Entity

from .const import (
    FIELD_ON_OFF,
    INFO_CHANNEL,
    INFO_CONNECTION,
    ROLE_INTERVAL,
    signal_new_object,
    signal_object,
    signal_state,
)
from .coordinator import ProconIpCoordinator
from .object_store import StoreObject, StoreState

_LOGGER = logging.getLogger(__name__)

# Fields named by the channel label alone
_UNSUFFIXED_FIELDS = ("value", FIELD_ON_OFF)
# Plain text fields, of little use on a dashboard
_TEXT_FIELDS = ("category", "label", "unit", "displayValue")


def platform_for(obj: StoreObject) -> str | None:
    """Return the HA platform for a store object, or None for channels."""
    if obj.type != "state":
        return None
    common = obj.common
    if common.get("role") == ROLE_INTERVAL:
        return "number"
    if common.get("type") == "boolean":
        return "switch" if common.get("write") else "binary_sensor"
    if common.get("read", True):
        return "sensor"
    return None


def async_setup_store_entities(
    coordinator: ProconIpCoordinator,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
    platform: str,
    entity_cls: Callable[[ProconIpCoordinator, str], Entity],
) -> None:
    """
    Add one entity per store state of the given platform.

    States materialized later (first successful poll, new channels, external
    relay bank enabled) are picked up through the new-object signal.
    """
    added: set[str] = set()

    def _wanted(path: str, obj: StoreObject) -> bool:
        return path not in added and platform_for(obj) == platform

    entities = []
    for path, obj in coordinator.store.objects():
        if _wanted(path, obj):
            added.add(path)
            entities.append(entity_cls(coordinator, path))
    _LOGGER.debug("Adding %s %s entities", len(entities), platform)
    if entities:
        async_add_entities(entities)

    @callback
    def _on_new_object(path: str, obj: StoreObject) -> None:
        if not _wanted(path, obj):
            return
        added.add(path)
        _LOGGER.debug("New %s entity for %s", platform, path)
        async_add_entities([entity_cls(coordinator, path)])

    config_entry.async_on_unload(
        async_dispatcher_connect(coordinator.hass, signal_new_object(coordinator.entry_id), _on_new_object)
    )


class ProconIpStateEntity(Entity):
    """
    Base entity bound to one store path.

    The name follows the store's common name so label changes on the
    controller propagate to Home Assistant.
    """

    _attr_should_poll = False

    def __init__(self, coordinator: ProconIpCoordinator, path: str) -> None:
        self.coordinator = coordinator
        self._path = path
        self._field = path.rsplit(".", 1)[-1]
        self._attr_unique_id = f"{coordinator.entry_id}_{path}"
        if self._field in _TEXT_FIELDS:
            self._attr_entity_registry_enabled_default = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def store_object(self) -> StoreObject | None:
        return self.coordinator.store.peek_object(self._path)

    @property
    def store_state(self) -> StoreState | None:
        return self.coordinator.store.peek_state(self._path)

    @property
    def common(self) -> dict[str, Any]:
        obj = self.store_object
        return obj.common if obj is not None else {}

    @property
    def name(self) -> str:
        base = self.common.get("name") or self._path
        if self._path.startswith(f"{INFO_CHANNEL}.") or self._field in _UNSUFFIXED_FIELDS:
            return base
        return f"{base} {self._field}"

    @property
    def available(self) -> bool:
        if self._path == INFO_CONNECTION:
            return True
        return self.coordinator.bridge.connected

    @property
    def device_info(self) -> DeviceInfo | None:
        """Return the device info."""
        return self.coordinator.get_device_info()

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        obj = self.store_object
        if obj is None or not obj.native:
            return None
        return {"store_path": self._path, **obj.native}

    async def async_added_to_hass(self) -> None:
        entry_id = self.coordinator.entry_id
        self.async_on_remove(
            async_dispatcher_connect(self.hass, signal_state(entry_id, self._path), self._on_state)
        )
        self.async_on_remove(
            async_dispatcher_connect(self.hass, signal_object(entry_id, self._path), self._on_object)
        )
        if self._path != INFO_CONNECTION:
            self.async_on_remove(
                async_dispatcher_connect(self.hass, signal_state(entry_id, INFO_CONNECTION), self._on_state)
            )

    @callback
    def _on_state(self, state: StoreState | None) -> None:
        # Unacknowledged writes are intents; wait for the controller's answer
        if state is not None and not state.ack:
            return
        self.async_write_ha_state()

    @callback
    def _on_object(self, obj: StoreObject) -> None:
        self.async_write_ha_state()

    async def async_write_intent(self, value: Any) -> None:
        """Hand a user change to the bridge through the store."""
        _LOGGER.info("Setting %s to %s", self._path, value)
        await self.coordinator.store.async_set_state(self._path, value, ack=False)
