import logging

import voluptuous as vol
from homeassistant import config_entries, core
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant

from .config_flow import url_validator
from .const import CONF_CONTROLLER_URL, DOMAIN
from .coordinator import ProconIpCoordinator

PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BINARY_SENSOR, Platform.SWITCH, Platform.NUMBER]
_LOGGER = logging.getLogger(__name__)


def _entry_config(entry: config_entries.ConfigEntry) -> dict:
    """Options entered after setup take precedence over the initial data."""
    return {**entry.data, **(entry.options or {})}


def _valid_url(url) -> bool:
    try:
        url_validator(url)
    except vol.Invalid:
        return False
    return True


async def async_setup(hass: core.HomeAssistant, config: dict) -> bool:
    """Set up the integration."""
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Set up the controller bridge from a ConfigEntry."""
    config = _entry_config(entry)
    if not _valid_url(config.get(CONF_CONTROLLER_URL)):
        _LOGGER.warning("Invalid controller URL %r, not starting", config.get(CONF_CONTROLLER_URL))
        return False

    coordinator = ProconIpCoordinator(hass, entry, config)
    await coordinator.async_start()
    # A failing first poll must not block setup: polling continues and the
    # namespace is built as soon as the controller answers.
    await coordinator.async_refresh()
    # The coordinator only polls while it has listeners; keep it alive even
    # before any entity has been added.
    entry.async_on_unload(coordinator.async_add_listener(lambda: None))

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = coordinator
    entry.runtime_data = coordinator

    entry.async_on_unload(
        entry.add_update_listener(_async_update_listener)
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    return True


async def _async_update_listener(hass: HomeAssistant, config_entry):
    """Handle config options update."""
    # Reload the integration when the options change.
    await hass.config_entries.async_reload(config_entry.entry_id)


async def async_unload_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        coordinator: ProconIpCoordinator | None = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
        if coordinator is not None:
            await coordinator.async_shutdown()
    return unloaded
