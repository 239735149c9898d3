"""
Low-level relay switching through the controller's usrcfg.cgi.

Responsible for:
- Building the ENA bitmask payload from the current relay states
- Posting it to the controller

The controller expects the complete state of all 16 relays with every write:
``ENA=<manual mask>,<on mask>&MANUAL=1``. Relays in automatic mode have both
bits cleared, manual relays set the manual bit and, when switched on, the on bit.
"""
import logging
from enum import Enum

import aiohttp

from custom_components.proconip.const import RELAY_COUNT, USRCFG_PATH
from custom_components.proconip.models import DataObject, Snapshot, is_auto, is_on
from custom_components.proconip.requests import make_request

_LOGGER = logging.getLogger(__name__)


class RelayMode(str, Enum):
    AUTO = "auto"
    ON = "on"
    OFF = "off"


def relay_masks(snapshot: Snapshot) -> tuple[int, int]:
    """Return (manual mask, on mask) describing the relays of snapshot."""
    manual_mask = 0
    on_mask = 0
    for relay in snapshot.relays():
        bit = 1 << relay.relay_id
        if not is_auto(relay):
            manual_mask |= bit
            if is_on(relay):
                on_mask |= bit
    return manual_mask, on_mask


def build_relay_payload(snapshot: Snapshot, relay_id: int, mode: RelayMode) -> str:
    """Return the usrcfg.cgi form body switching relay_id to mode."""
    if not 0 <= relay_id < RELAY_COUNT:
        raise ValueError(f"Relay id {relay_id} out of range")
    manual_mask, on_mask = relay_masks(snapshot)
    bit = 1 << relay_id
    if mode is RelayMode.AUTO:
        manual_mask &= ~bit
        on_mask &= ~bit
    elif mode is RelayMode.ON:
        manual_mask |= bit
        on_mask |= bit
    else:
        manual_mask |= bit
        on_mask &= ~bit
    return f"ENA={manual_mask},{on_mask}&MANUAL=1"


async def send_relay_mode(
    base_url: str,
    auth: aiohttp.BasicAuth | None,
    timeout: float,
    snapshot: Snapshot,
    relay: DataObject,
    mode: RelayMode,
) -> int:
    """
    Switch a single relay and return its physical relay id.

    Corresponding CURL command:
    curl -u USER:PASS -X POST -d 'ENA=<manual>,<on>&MANUAL=1' 'http://CONTROLLER/usrcfg.cgi'
    """
    payload = build_relay_payload(snapshot, relay.relay_id, mode)
    _LOGGER.debug("Sending relay payload for %s (%s): %s", relay.label, mode.value, payload)
    await make_request(
        "POST",
        base_url.rstrip("/") + USRCFG_PATH,
        auth=auth,
        data=payload,
        timeout=timeout,
    )
    return relay.relay_id
