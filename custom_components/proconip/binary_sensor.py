"""
Platform for ProCon.IP binary sensor integration.
Read-only booleans: the controller connection, the dosage flags of the
system information and the active indicator of every channel.
"""
from __future__ import annotations

import logging

from homeassistant import config_entries
from homeassistant.components.binary_sensor import BinarySensorDeviceClass, BinarySensorEntity
from homeassistant.const import EntityCategory
from homeassistant.core import HomeAssistant

from .const import DOMAIN, INFO_CHANNEL
from .coordinator import ProconIpCoordinator
from .entity import ProconIpStateEntity, async_setup_store_entities

_LOGGER = logging.getLogger(__name__)


class ProconIpBinarySensor(ProconIpStateEntity, BinarySensorEntity):
    """Representation of a read-only boolean store state."""

    def __init__(self, coordinator: ProconIpCoordinator, path: str) -> None:
        super().__init__(coordinator, path)
        if path.startswith(f"{INFO_CHANNEL}."):
            self._attr_entity_category = EntityCategory.DIAGNOSTIC

    @property
    def device_class(self) -> BinarySensorDeviceClass | None:
        if self.common.get("role") == "indicator.connected":
            return BinarySensorDeviceClass.CONNECTIVITY
        return None

    @property
    def is_on(self) -> bool | None:
        """Return if the binary sensor is on."""
        state = self.store_state
        if state is None:
            return None
        return bool(state.val)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add binary sensors for passed config_entry in HA."""
    coordinator: ProconIpCoordinator = hass.data[DOMAIN][config_entry.entry_id]
    async_setup_store_entities(
        coordinator, config_entry, async_add_entities, "binary_sensor", ProconIpBinarySensor
    )
