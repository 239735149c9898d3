"""
Low-level command channel of the ProCon.IP controller.

Responsible for:
- Manual dosage commands (chlorine, pH-, pH+) via Command.htm
- Generic relay timers via SetState.csv
"""
import logging

import aiohttp

from custom_components.proconip.const import (
    COMMAND_PATH,
    DOSAGE_TARGET_CHLORINE,
    DOSAGE_TARGET_PH_MINUS,
    DOSAGE_TARGET_PH_PLUS,
    SET_STATE_PATH,
)
from custom_components.proconip.requests import make_request

_LOGGER = logging.getLogger(__name__)

DOSAGE_TARGETS = {
    "chlorine": DOSAGE_TARGET_CHLORINE,
    "ph_minus": DOSAGE_TARGET_PH_MINUS,
    "ph_plus": DOSAGE_TARGET_PH_PLUS,
}


async def send_manual_dosage(
    base_url: str,
    auth: aiohttp.BasicAuth | None,
    timeout: float,
    target: int,
    seconds: int,
) -> None:
    """
    Start a manual dosage on the given target for seconds.

    Corresponding CURL command:
    curl -u USER:PASS 'http://CONTROLLER/Command.htm?MAN_DOSAGE=<target>,<seconds>'
    """
    if target not in DOSAGE_TARGETS.values():
        raise ValueError(f"Unknown dosage target {target}")
    await make_request(
        "GET",
        base_url.rstrip("/") + COMMAND_PATH,
        auth=auth,
        params={"MAN_DOSAGE": f"{target},{int(seconds)}"},
        timeout=timeout,
    )


async def send_relay_timer(
    base_url: str,
    auth: aiohttp.BasicAuth | None,
    timeout: float,
    channel: int,
    seconds: int,
) -> None:
    """
    Run the relay on timer channel (1-based) for seconds.

    Corresponding CURL command:
    curl -u USER:PASS -X POST -d 'TIMER=<channel>,<seconds>' 'http://CONTROLLER/SetState.csv'
    """
    if channel < 1:
        raise ValueError(f"Invalid timer channel {channel}")
    await make_request(
        "POST",
        base_url.rstrip("/") + SET_STATE_PATH,
        auth=auth,
        data=f"TIMER={channel},{int(seconds)}",
        timeout=timeout,
    )
