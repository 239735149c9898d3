"""
Command dispatching for the ProCon.IP integration.

Turns unacknowledged store writes on relay entries into controller commands:

    <channel>.auto         True  → set auto
                           False → set on / set off, depending on <channel>.onOff
    <channel>.onOff        set on / set off
    <channel>.dosageTimer  manual dosage on the matching chlorine/pH-/pH+ channel
    <channel>.timer        generic relay timer

Every dispatched intent marks its object in the force-update ledger so the
next poll writes the object even if the controller has not yet confirmed the
change.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from .const import FIELD_AUTO, FIELD_ON_OFF, TIMER_CHANNEL_OFFSET
from .models import DataObject, Snapshot
from .object_store import ObjectStore
from .reconciler import ForceUpdateLedger

_LOGGER = logging.getLogger(__name__)


class IntentError(Exception):
    """A write intent that cannot be dispatched."""


class IdentityResolutionError(IntentError):
    """The store path of an intent cannot be mapped to a polled data object."""


class InvalidIntentValueError(IntentError):
    """The payload of a write intent is not usable for the command."""


class CommandDispatcher:
    """Resolves write intents to device commands."""

    def __init__(
        self,
        store: ObjectStore,
        api: Any,
        ledger: ForceUpdateLedger,
        baseline: Callable[[], Snapshot | None],
    ) -> None:
        self._store = store
        self._api = api
        self._ledger = ledger
        self._baseline = baseline

    # ------------------------------------------------------------------
    # Identity resolution
    # ------------------------------------------------------------------

    async def _resolve(self, path: str) -> tuple[DataObject, str]:
        """Return the polled data object behind path and its label."""
        obj = await self._store.async_get_object(path)
        if obj is None:
            raise IdentityResolutionError(f"Cannot handle state change for non-existent object '{path}'")
        object_id = obj.native.get("id")
        if object_id is None:
            raise IdentityResolutionError(f"Object '{path}' has no device id")
        snapshot = self._baseline()
        data_object = snapshot.get_object(int(object_id)) if snapshot is not None else None
        if data_object is None:
            raise IdentityResolutionError(f"No polled data for object id {object_id} ('{path}')")
        return data_object, obj.native.get("label", data_object.label)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def async_set_auto(self, path: str, want: bool) -> int:
        """
        Switch a relay into auto mode, or out of it.

        Leaving auto mode needs the manual state to fall back to, which is
        read from the sibling onOff state. Returns the physical relay id, or
        -1 when the command failed.
        """
        on_off_state = await self._store.async_get_state(_sibling(path, FIELD_AUTO, FIELD_ON_OFF))
        if on_off_state is None:
            raise IdentityResolutionError(f"Cannot get onOff state to toggle '{path}'")
        data_object, label = await self._resolve(path)
        self._ledger.add(data_object.id)
        try:
            if want:
                _LOGGER.info("Switching %s: auto", label)
                return await self._api.async_set_auto(data_object)
            if on_off_state.val:
                _LOGGER.info("Switching %s: on", label)
                return await self._api.async_set_on(data_object)
            _LOGGER.info("Switching %s: off", label)
            return await self._api.async_set_off(data_object)
        except Exception as exc:
            _LOGGER.error("Error on switching operation for '%s': %s", label, exc)
            return -1

    async def async_set_on_off(self, path: str, want: bool) -> int:
        data_object, label = await self._resolve(path)
        self._ledger.add(data_object.id)
        try:
            if want:
                _LOGGER.info("Switching %s: on", label)
                return await self._api.async_set_on(data_object)
            _LOGGER.info("Switching %s: off", label)
            return await self._api.async_set_off(data_object)
        except Exception as exc:
            _LOGGER.error("Error on switching operation for '%s': %s", label, exc)
            return -1

    async def async_set_dosage_timer(self, path: str, seconds: Any) -> bool:
        """
        Start a manual dosage for the relay behind path.

        A relay that is not one of the configured dosage relays issues no
        command and returns False.
        """
        data_object, label = await self._resolve(path)
        duration = _seconds(seconds)
        snapshot = self._baseline()
        relay_id = data_object.relay_id
        self._ledger.add(data_object.id)
        chlorine_id, ph_minus_id, ph_plus_id = snapshot.dosage_relay_ids()
        try:
            if relay_id == chlorine_id:
                await self._api.async_set_chlorine_dosage(duration)
            elif relay_id == ph_minus_id:
                await self._api.async_set_ph_minus_dosage(duration)
            elif relay_id == ph_plus_id:
                await self._api.async_set_ph_plus_dosage(duration)
            else:
                _LOGGER.debug("Relay %s (%s) is no dosage relay, ignoring dosage timer", relay_id, label)
                return False
            _LOGGER.info("Setting dosage timer %s for %s seconds", label, duration)
        except Exception as exc:
            _LOGGER.error("Error setting dosage timer for '%s': %s", label, exc)
            return False
        return True

    async def async_set_relay_timer(self, path: str, seconds: Any) -> bool:
        data_object, label = await self._resolve(path)
        duration = _seconds(seconds)
        channel = data_object.relay_id + TIMER_CHANNEL_OFFSET
        self._ledger.add(data_object.id)
        try:
            await self._api.async_set_timer(channel, duration)
            _LOGGER.info("Setting timer for %s to %s seconds", label, duration)
        except Exception as exc:
            _LOGGER.error("Error setting relay timer for '%s': %s", label, exc)
            return False
        return True


def _sibling(path: str, field: str, sibling: str) -> str:
    suffix = f".{field}"
    if not path.endswith(suffix):
        raise IdentityResolutionError(f"'{path}' is no {field} state")
    return path[: -len(suffix)] + f".{sibling}"


def _seconds(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidIntentValueError(f"Invalid duration {value!r}")
    try:
        seconds = int(float(value))
    except (TypeError, ValueError) as exc:
        raise InvalidIntentValueError(f"Invalid duration {value!r}") from exc
    return max(0, seconds)
