"""
Low-level state polling from the ProCon.IP controller.

Responsible for:
- Fetching GetState.csv from the controller
- Mapping the CSV rows onto the Snapshot / DataObject models

Row layout of GetState.csv:
    0  SYSINFO,<version>,<cpu time>,...      (see models.SYS_INFO_KEYS)
    1  labels
    2  units
    3  offsets
    4  gains
    5  raw values
A column's value is ``offset + gain * raw``.
"""
import logging

import aiohttp

from custom_components.proconip.const import GET_STATE_PATH, INACTIVE_LABELS
from custom_components.proconip.models import (
    SYS_INFO_KEYS,
    Category,
    DataObject,
    Snapshot,
    SystemInfo,
    relay_display_value,
)
from custom_components.proconip.requests import make_request

_LOGGER = logging.getLogger(__name__)

# First and last column (inclusive) of every category
CATEGORY_COLUMNS: tuple[tuple[Category, int, int], ...] = (
    (Category.TIME, 0, 0),
    (Category.ANALOG, 1, 5),
    (Category.ELECTRODES, 6, 7),
    (Category.TEMPERATURES, 8, 15),
    (Category.RELAYS, 16, 23),
    (Category.DIGITAL_INPUT, 24, 27),
    (Category.EXTERNAL_RELAYS, 28, 35),
    (Category.CANISTER, 36, 38),
    (Category.CANISTER_CONSUMPTIONS, 39, 41),
)


def category_for_column(column: int) -> tuple[Category, int] | None:
    """Return (category, position within category) for a CSV column."""
    for category, first, last in CATEGORY_COLUMNS:
        if first <= column <= last:
            return category, column - first
    return None


def _float(raw: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def format_display_value(category: Category, value: float, raw: float, unit: str) -> str:
    """Format a column value the way the controller's web interface shows it."""
    if category is Category.TIME:
        raw_int = int(raw)
        return f"{raw_int >> 8:02d}:{raw_int & 0xFF:02d}"
    if category in (Category.RELAYS, Category.EXTERNAL_RELAYS):
        return relay_display_value(int(raw))
    if category is Category.TEMPERATURES:
        return f"{value:.1f} °{unit}"
    if category is Category.DIGITAL_INPUT:
        return f"{value:.0f}"
    if category is Category.ELECTRODES and unit.lower() != "ph":
        return f"{value:.0f} {unit}".strip()
    return f"{value:.2f} {unit}".strip()


def parse_get_state(csv_text: str) -> Snapshot:
    """
    Parse the body of GetState.csv into a Snapshot.

    Raises ValueError when the body does not have the expected six rows.
    """
    rows = [line.strip().split(",") for line in csv_text.strip().splitlines() if line.strip()]
    if len(rows) < 6 or rows[0][0].strip().upper() != "SYSINFO":
        raise ValueError(f"Unexpected GetState.csv layout ({len(rows)} rows)")

    sys_values = [value.strip() for value in rows[0][1:]]
    sys_info = SystemInfo({key: value for key, value in zip(SYS_INFO_KEYS, sys_values)})

    labels, units, offsets, gains, raws = rows[1:6]
    columns = min(len(labels), len(units), len(offsets), len(gains), len(raws))

    objects: list[DataObject] = []
    for column in range(columns):
        position = category_for_column(column)
        if position is None:
            _LOGGER.debug("Ignoring unknown GetState.csv column %s", column)
            continue
        category, category_id = position
        label = labels[column].strip()
        unit = units[column].strip()
        raw = _float(raws[column])
        if category in (Category.RELAYS, Category.EXTERNAL_RELAYS):
            value = raw
        else:
            value = _float(offsets[column]) + _float(gains[column]) * raw
        objects.append(DataObject(
            id=column,
            category=category,
            category_id=category_id,
            label=label,
            unit=unit,
            value=value,
            display_value=format_display_value(category, value, raw, unit),
            active=label.lower() not in INACTIVE_LABELS,
        ))

    return Snapshot(sys_info=sys_info, objects=tuple(objects))


async def fetch_state(
    base_url: str,
    auth: aiohttp.BasicAuth | None,
    timeout: float,
) -> Snapshot:
    """
    Fetch and parse GetState.csv.

    Corresponding CURL command:
    curl -u USER:PASS 'http://CONTROLLER/GetState.csv'
    """
    url = base_url.rstrip("/") + GET_STATE_PATH
    text = await make_request("GET", url, auth=auth, timeout=timeout)
    return parse_get_state(text)
