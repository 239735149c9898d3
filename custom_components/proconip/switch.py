"""
Platform for ProCon.IP switch integration.
Each relay has two switches: auto (controller program) and onOff (manual
state). Toggling one writes an intent into the store; the bridge forwards it
to the controller and the next poll confirms the result.
"""
from __future__ import annotations

import logging

from homeassistant import config_entries
from homeassistant.components.switch import SwitchDeviceClass, SwitchEntity
from homeassistant.core import HomeAssistant

from .const import DOMAIN, FIELD_AUTO
from .coordinator import ProconIpCoordinator
from .entity import ProconIpStateEntity, async_setup_store_entities

_LOGGER = logging.getLogger(__name__)


class ProconIpRelaySwitch(ProconIpStateEntity, SwitchEntity):
    """Representation of a writable relay state."""

    @property
    def icon(self) -> str | None:
        role = self.common.get("role", "")
        if self._field == FIELD_AUTO:
            return "mdi:refresh-auto"
        if role == "switch.light":
            return "mdi:lightbulb-on" if self.is_on else "mdi:lightbulb-outline"
        return None

    @property
    def device_class(self) -> SwitchDeviceClass | str | None:
        return SwitchDeviceClass.SWITCH

    @property
    def is_on(self) -> bool | None:
        """Return true if the switch is on."""
        state = self.store_state
        if state is None:
            return None
        return bool(state.val)

    async def async_turn_on(self, **kwargs) -> None:
        """Turn the switch on."""
        await self.async_write_intent(True)

    async def async_turn_off(self, **kwargs) -> None:
        """Turn the switch off."""
        await self.async_write_intent(False)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add switches for passed config_entry in HA."""
    coordinator: ProconIpCoordinator = hass.data[DOMAIN][config_entry.entry_id]
    async_setup_store_entities(coordinator, config_entry, async_add_entities, "switch", ProconIpRelaySwitch)
