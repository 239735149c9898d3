"""Config flow for ProCon.IP pool controller integration."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional
import homeassistant.helpers.config_validation as cv
import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback

from .api import ProconIpApi, ProconIpApiError, ProconIpAuthError
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
    DEFAULT_CONTROLLER_URL,
    DEFAULT_ENTRY_NAME,
    DEFAULT_ERROR_TOLERANCE,
    DEFAULT_PASSWORD,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_UPDATE_INTERVAL,
    DEFAULT_USERNAME,
    DOMAIN,
    MIN_INTERVAL,
)
from .requests import check_controller_availability

_LOGGER = logging.getLogger(__name__)

interval_ms = vol.All(vol.Coerce(int), vol.Range(min=MIN_INTERVAL))
tolerance = vol.All(vol.Coerce(int), vol.Range(min=0))
# Absolute http(s) URL with a host part
url_validator = vol.All(cv.string, vol.Match(r"^https?://[^/\s]+"))

DEFAULTS: Dict[str, Any] = {
    CONF_ENTRY_NAME: DEFAULT_ENTRY_NAME,
    CONF_CONTROLLER_URL: DEFAULT_CONTROLLER_URL,
    CONF_BASIC_AUTH: DEFAULT_BASIC_AUTH,
    CONF_USERNAME: DEFAULT_USERNAME,
    CONF_PASSWORD: DEFAULT_PASSWORD,
    CONF_UPDATE_INTERVAL: DEFAULT_UPDATE_INTERVAL,
    CONF_REQUEST_TIMEOUT: DEFAULT_REQUEST_TIMEOUT,
    CONF_ERROR_TOLERANCE: DEFAULT_ERROR_TOLERANCE,
}


def build_schema(defaults: Dict[str, Any]) -> vol.Schema:
    """Return the form schema pre-filled with defaults."""
    return vol.Schema(
        {
            vol.Required(CONF_ENTRY_NAME, default=defaults[CONF_ENTRY_NAME]): cv.string,
            vol.Required(CONF_CONTROLLER_URL, default=defaults[CONF_CONTROLLER_URL]): cv.string,
            vol.Required(CONF_BASIC_AUTH, default=defaults[CONF_BASIC_AUTH]): cv.boolean,
            vol.Optional(CONF_USERNAME, default=defaults[CONF_USERNAME]): cv.string,
            vol.Optional(CONF_PASSWORD, default=defaults[CONF_PASSWORD]): cv.string,
            vol.Required(CONF_UPDATE_INTERVAL, default=defaults[CONF_UPDATE_INTERVAL]): interval_ms,
            vol.Required(CONF_REQUEST_TIMEOUT, default=defaults[CONF_REQUEST_TIMEOUT]): interval_ms,
            vol.Required(CONF_ERROR_TOLERANCE, default=defaults[CONF_ERROR_TOLERANCE]): tolerance,
        }
    )


CONFIG_SCHEMA = build_schema(DEFAULTS)


def _validate_input(user_input: Dict[str, Any]) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not user_input.get(CONF_ENTRY_NAME):
        errors['base'] = 'entry_name_required'
    try:
        url_validator(user_input.get(CONF_CONTROLLER_URL))
    except vol.Invalid:
        errors['base'] = 'invalid_url'
    if user_input.get(CONF_BASIC_AUTH) and not user_input.get(CONF_USERNAME):
        errors['base'] = 'username_required'
    return errors


async def _validate_connection(user_input: Dict[str, Any]) -> Optional[str]:
    """
    Try to reach the controller with the entered settings.

    Returns None on success, otherwise the error key for the form.
    """
    url = user_input[CONF_CONTROLLER_URL]
    timeout = int(user_input.get(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)) / 1000
    if not await check_controller_availability(url, timeout=timeout):
        return 'cannot_connect'

    api = ProconIpApi(
        url,
        username=user_input.get(CONF_USERNAME, ""),
        password=user_input.get(CONF_PASSWORD, ""),
        basic_auth=user_input.get(CONF_BASIC_AUTH, DEFAULT_BASIC_AUTH),
        timeout=timeout,
    )
    try:
        await api.async_get_state()
    except ProconIpAuthError:
        return 'invalid_auth'
    except ProconIpApiError as exc:
        _LOGGER.warning("Controller at %s answered unexpectedly: %s", url, exc)
        return 'cannot_connect'
    return None


class CustomFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1
    data: Optional[Dict[str, Any]]

    async def async_step_user(self, user_input: Optional[Dict[str, Any]] = None):
        errors: Dict[str, str] = {}
        if user_input is not None:
            self.data = {**DEFAULTS, **user_input}
            self.data[CONF_CONTROLLER_URL] = str(self.data[CONF_CONTROLLER_URL]).strip().rstrip("/")
            errors = _validate_input(self.data)
            if not errors:
                self._async_abort_entries_match({CONF_CONTROLLER_URL: self.data[CONF_CONTROLLER_URL]})
                error = await _validate_connection(self.data)
                if error is not None:
                    errors['base'] = error
            if not errors:
                return self.async_create_entry(title=f"{self.data[CONF_ENTRY_NAME]}", data=self.data)

        return self.async_show_form(step_id="user", data_schema=CONFIG_SCHEMA, errors=errors)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Get the options flow for this handler."""
        return OptionsFlowHandler(config_entry)


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Handles options flow for the component."""

    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        self._entry = config_entry

    def _current(self) -> Dict[str, Any]:
        """Options override data, data overrides the defaults."""
        return {**DEFAULTS, **self._entry.data, **(self._entry.options or {})}

    async def async_step_init(
        self, user_input: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        current = self._current()

        if user_input is not None:
            options = {**current, **user_input}
            options[CONF_CONTROLLER_URL] = str(options[CONF_CONTROLLER_URL]).strip().rstrip("/")
            errors = _validate_input(options)
            if not errors:
                # The update listener reloads the entry with the new options
                return self.async_create_entry(title="", data=options)
            current = options

        return self.async_show_form(
            step_id="init",
            data_schema=build_schema(current),
            errors=errors,
        )
