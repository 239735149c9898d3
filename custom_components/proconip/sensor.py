"""
Platform for ProCon.IP sensor integration.
Every readable, non-boolean store state (measured values, display texts and
system information) becomes one sensor.
"""
from __future__ import annotations

import logging

from homeassistant import config_entries
from homeassistant.components.sensor import SensorDeviceClass, SensorEntity, SensorStateClass
from homeassistant.core import HomeAssistant

from .const import DOMAIN, ROLE_TEMPERATURE
from .coordinator import ProconIpCoordinator
from .entity import ProconIpStateEntity, async_setup_store_entities

_LOGGER = logging.getLogger(__name__)


class ProconIpSensor(ProconIpStateEntity, SensorEntity):
    """Representation of a numeric or text store state."""

    @property
    def device_class(self) -> SensorDeviceClass | None:
        if self.common.get("role") == ROLE_TEMPERATURE:
            return SensorDeviceClass.TEMPERATURE
        return None

    @property
    def state_class(self) -> SensorStateClass | None:
        if self.common.get("type") == "number":
            return SensorStateClass.MEASUREMENT
        return None

    @property
    def native_unit_of_measurement(self) -> str | None:
        return self.common.get("unit") or None

    @property
    def native_value(self):
        state = self.store_state
        if state is None:
            return None
        if self.common.get("type") == "number":
            return state.val
        return None if state.val is None else str(state.val)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add sensors for passed config_entry in HA."""
    coordinator: ProconIpCoordinator = hass.data[DOMAIN][config_entry.entry_id]
    async_setup_store_entities(coordinator, config_entry, async_add_entities, "sensor", ProconIpSensor)
