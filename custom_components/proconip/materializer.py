"""
Object materialization for the ProCon.IP integration.

Creates the store namespace (channels, states and their metadata) for sys
info and every observed data object. All creations are create-if-absent, so
re-running with the same input is harmless, and each creation is independent:
a rejected object is logged and its siblings are still created.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Iterable

from .const import (
    FIELD_AUTO,
    FIELD_DOSAGE_TIMER,
    FIELD_ON_OFF,
    FIELD_TIMER,
    INFO_CHANNEL,
    INFO_CONNECTION,
    INFO_SYSTEM,
    LIGHT_LABEL_PATTERN,
    ROLE_INTERVAL,
    ROLE_TEMPERATURE,
    SYS_INFO_FLAGS,
    TRACKED_FIELDS,
)
from .models import Category, DataObject, Snapshot, SystemInfo
from .object_store import ObjectStore, StoreObject

_LOGGER = logging.getLogger(__name__)

_LIGHT_RE = re.compile(LIGHT_LABEL_PATTERN, re.IGNORECASE)


class LabelKind(str, Enum):
    LIGHT = "LIGHT"
    SWITCH = "SWITCH"


def classify_label(label: str) -> LabelKind:
    """Relays whose label mentions a light are exposed as lights, all others as switches."""
    return LabelKind.LIGHT if _LIGHT_RE.search(label or "") else LabelKind.SWITCH


def _smart_name(name: str, smart_type: str) -> dict[str, str]:
    return {"de": name, "en": name, "smartType": smart_type}


def field_common(obj: DataObject, field: str) -> dict[str, Any]:
    """
    Metadata for one tracked field of a data object.

    value (temperatures)                  → number, value.temperature, °unit, thermostat smart name if active
    category/label/unit/displayValue      → string, text
    active                                → boolean, indicator
    anything else (value of other groups) → number, value
    """
    common: dict[str, Any] = {
        "name": obj.label,
        "type": "number",
        "role": "value",
        "read": True,
        "write": False,
    }
    if field == "value":
        if obj.category is Category.TEMPERATURES:
            common["role"] = ROLE_TEMPERATURE
            common["unit"] = f"°{obj.unit}"
            if obj.active:
                common["smartName"] = _smart_name(obj.label, "THERMOSTAT")
        elif obj.unit:
            common["unit"] = obj.unit
    elif field in ("category", "label", "unit", "displayValue"):
        common["type"] = "string"
        common["role"] = "text"
    elif field == "active":
        common["type"] = "boolean"
        common["role"] = "indicator"
    return common


def relay_commons(obj: DataObject, dosage_relay: bool) -> dict[str, dict[str, Any]]:
    """Metadata of the auto/onOff/timer entries of a relay, keyed by field."""
    kind = classify_label(obj.label)
    commons: dict[str, dict[str, Any]] = {
        FIELD_AUTO: {
            "name": obj.label,
            "type": "boolean",
            "role": "switch.mode.auto",
            "read": True,
            "write": True,
            "smartName": _smart_name(f"{obj.label} auto", kind.value) if obj.active else {},
        },
        FIELD_ON_OFF: {
            "name": obj.label,
            "type": "boolean",
            "role": "switch.light" if kind is LabelKind.LIGHT else "switch",
            "read": True,
            # dosage relays are driven by the dosage timer only
            "write": not dosage_relay,
            "smartName": (
                _smart_name(obj.label, kind.value)
                if obj.active and not dosage_relay else {}
            ),
        },
    }
    timer_field = FIELD_DOSAGE_TIMER if dosage_relay else FIELD_TIMER
    commons[timer_field] = {
        "name": obj.label,
        "type": "number",
        "role": ROLE_INTERVAL,
        "unit": "s",
        "read": False,
        "write": True,
    }
    return commons


class ObjectMaterializer:
    """Idempotently builds the store namespace for sys info and data objects."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def _create(self, path: str, obj: StoreObject, label: str) -> bool:
        try:
            await self._store.async_set_object_not_exists(path, obj)
        except Exception as exc:
            _LOGGER.error("Failed setting object '%s' (%s): %s", label, path, exc)
            return False
        return True

    async def async_ensure_connection_schema(self) -> bool:
        ok = await self._create(INFO_CHANNEL, StoreObject("channel", {"name": "Information"}), "info")
        ok &= await self._create(
            INFO_CONNECTION,
            StoreObject("state", {
                "name": "Device or service connected",
                "type": "boolean",
                "role": "indicator.connected",
                "read": True,
                "write": False,
            }),
            "connection",
        )
        return ok

    async def async_ensure_sys_info_schema(self, sys_info: SystemInfo) -> bool:
        """Create info.system with one string state per key plus the four derived flags."""
        ok = await self._create(INFO_SYSTEM, StoreObject("channel", {"name": "SysInfo"}), "SysInfo")
        for key, _value in sys_info.items():
            ok &= await self._create(
                f"{INFO_SYSTEM}.{key}",
                StoreObject("state", {
                    "name": key,
                    "type": "string",
                    "role": "state",
                    "read": True,
                    "write": False,
                }),
                key,
            )
        for key, name in SYS_INFO_FLAGS.items():
            ok &= await self._create(
                f"{INFO_SYSTEM}.{key}",
                StoreObject("state", {
                    "name": name,
                    "type": "boolean",
                    "role": "state",
                    "read": True,
                    "write": False,
                }),
                name,
            )
        return ok

    async def async_ensure_object_schema(
        self, objects: Iterable[DataObject], snapshot: Snapshot
    ) -> set[int]:
        """
        Create category channels, object channels and field states.

        Returns the ids of objects whose namespace is complete; objects
        missing from the result should be retried on a later cycle.
        """
        complete: set[int] = set()
        last_category: Category | None = None
        for obj in objects:
            if obj.category is not last_category:
                await self._create(
                    str(obj.category),
                    StoreObject("channel", {"name": str(obj.category)}),
                    str(obj.category),
                )
                last_category = obj.category
            if await self.async_ensure_data_object(obj, snapshot):
                complete.add(obj.id)
        return complete

    async def async_ensure_data_object(self, obj: DataObject, snapshot: Snapshot) -> bool:
        ok = await self._create(obj.channel, StoreObject("channel", {"name": obj.label}), obj.label)
        native = obj.native()
        for field in TRACKED_FIELDS:
            ok &= await self._create(
                f"{obj.channel}.{field}",
                StoreObject("state", field_common(obj, field), dict(native)),
                obj.label,
            )
        if snapshot.is_relay_control(obj):
            ok &= await self.async_ensure_relay_controls(obj, snapshot)
        return ok

    async def async_ensure_relay_controls(self, obj: DataObject, snapshot: Snapshot) -> bool:
        dosage_relay = snapshot.is_dosage_relay(obj.relay_id)
        ok = True
        for field, common in relay_commons(obj, dosage_relay).items():
            ok &= await self._create(
                f"{obj.channel}.{field}",
                StoreObject("state", common, obj.native()),
                obj.label,
            )
        return ok
