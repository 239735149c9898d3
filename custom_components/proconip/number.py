"""
Platform for ProCon.IP number integration.
Relay timers and manual dosage timers: write-only durations in seconds.
"""
from __future__ import annotations

import logging

from homeassistant import config_entries
from homeassistant.components.number import NumberEntity, NumberMode
from homeassistant.const import UnitOfTime
from homeassistant.core import HomeAssistant

from .const import DOMAIN, FIELD_DOSAGE_TIMER, TIMER_MAX_SECONDS
from .coordinator import ProconIpCoordinator
from .entity import ProconIpStateEntity, async_setup_store_entities

_LOGGER = logging.getLogger(__name__)


class ProconIpTimerNumber(ProconIpStateEntity, NumberEntity):
    """Duration to run a relay, or to dose manually, in seconds."""

    _attr_native_min_value = 0
    _attr_native_max_value = TIMER_MAX_SECONDS
    _attr_native_step = 1
    _attr_native_unit_of_measurement = UnitOfTime.SECONDS
    _attr_mode = NumberMode.BOX

    @property
    def icon(self) -> str | None:
        return "mdi:beaker-clock" if self._field == FIELD_DOSAGE_TIMER else "mdi:timer-outline"

    @property
    def native_value(self) -> float | None:
        # Not reported by the controller; shows the last requested duration
        state = self.store_state
        if state is None or state.val is None:
            return None
        return state.val

    async def async_set_native_value(self, value: float) -> None:
        await self.async_write_intent(int(value))
        self.async_write_ha_state()


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add timer numbers for passed config_entry in HA."""
    coordinator: ProconIpCoordinator = hass.data[DOMAIN][config_entry.entry_id]
    async_setup_store_entities(coordinator, config_entry, async_add_entities, "number", ProconIpTimerNumber)
