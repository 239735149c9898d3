"""
ProconIpApi: the device access layer used by the coordinator and dispatcher.

Wraps the low-level getstate/usrcfg/command modules behind one object that
owns the connection settings and translates every transport problem into a
ProconIpApiError.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from custom_components.proconip.api.command import (
    DOSAGE_TARGETS,
    send_manual_dosage,
    send_relay_timer,
)
from custom_components.proconip.api.getstate import fetch_state
from custom_components.proconip.api.usrcfg import RelayMode, send_relay_mode
from custom_components.proconip.models import DataObject, Snapshot
from custom_components.proconip.requests import (
    ApiResponseError,
    BadCredentialsError,
    build_auth,
)

_LOGGER = logging.getLogger(__name__)


class ProconIpApiError(Exception):
    """Any failure talking to the controller."""


class ProconIpAuthError(ProconIpApiError):
    """The controller rejected the credentials."""


class ProconIpApi:
    """Async client for one ProCon.IP controller."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        basic_auth: bool = True,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._auth = build_auth(basic_auth, username, password)
        self._timeout = timeout
        # usrcfg.cgi writes carry the state of every relay; never interleave them
        self._relay_lock = asyncio.Lock()

    async def _call(self, description: str, coro):
        try:
            return await coro
        except BadCredentialsError as exc:
            raise ProconIpAuthError(f"{description}: invalid credentials") from exc
        except ApiResponseError as exc:
            raise ProconIpApiError(f"{description}: {exc}") from exc
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise ProconIpApiError(f"{description}: timeout") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise ProconIpApiError(f"{description}: {exc}") from exc

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def async_get_state(self) -> Snapshot:
        """Poll GetState.csv and return the parsed snapshot."""
        return await self._call(
            "GetState.csv", fetch_state(self.base_url, self._auth, self._timeout)
        )

    # ------------------------------------------------------------------
    # Relay switching
    # ------------------------------------------------------------------

    async def _async_set_relay(self, relay: DataObject, mode: RelayMode) -> int:
        async with self._relay_lock:
            # Build the bitmask from fresh relay states, the baseline may be a cycle old
            snapshot = await self.async_get_state()
            return await self._call(
                f"usrcfg.cgi ({relay.label})",
                send_relay_mode(self.base_url, self._auth, self._timeout, snapshot, relay, mode),
            )

    async def async_set_auto(self, relay: DataObject) -> int:
        return await self._async_set_relay(relay, RelayMode.AUTO)

    async def async_set_on(self, relay: DataObject) -> int:
        return await self._async_set_relay(relay, RelayMode.ON)

    async def async_set_off(self, relay: DataObject) -> int:
        return await self._async_set_relay(relay, RelayMode.OFF)

    # ------------------------------------------------------------------
    # Timers and dosage
    # ------------------------------------------------------------------

    async def async_set_timer(self, channel: int, seconds: int) -> None:
        await self._call(
            f"timer {channel}",
            send_relay_timer(self.base_url, self._auth, self._timeout, channel, seconds),
        )

    async def _async_dosage(self, target: str, seconds: int) -> None:
        await self._call(
            f"{target} dosage",
            send_manual_dosage(
                self.base_url, self._auth, self._timeout, DOSAGE_TARGETS[target], seconds
            ),
        )

    async def async_set_chlorine_dosage(self, seconds: int) -> None:
        await self._async_dosage("chlorine", seconds)

    async def async_set_ph_minus_dosage(self, seconds: int) -> None:
        await self._async_dosage("ph_minus", seconds)

    async def async_set_ph_plus_dosage(self, seconds: int) -> None:
        await self._async_dosage("ph_plus", seconds)
