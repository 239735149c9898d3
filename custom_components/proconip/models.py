"""
Domain models for the ProCon.IP integration.

This module contains pure data classes representing one poll result of the
pool controller. These classes have no dependencies on HTTP, API logic, or
Home Assistant internals.
"""
from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Iterator, Mapping

from .const import (
    CONFIG_BIT_EXTERNAL_RELAYS,
    DOSAGE_BIT_CHLORINE,
    DOSAGE_BIT_ELECTROLYSIS,
    DOSAGE_BIT_PH_MINUS,
    DOSAGE_BIT_PH_PLUS,
    EXTERNAL_RELAY_OFFSET,
    RELAY_BIT_MANUAL,
    RELAY_BIT_ON,
)


class Category(str, Enum):
    """Column groups of GetState.csv; the value doubles as store channel name."""

    TIME = "time"
    ANALOG = "analog"
    ELECTRODES = "electrodes"
    TEMPERATURES = "temperatures"
    RELAYS = "relays"
    DIGITAL_INPUT = "digitalInput"
    EXTERNAL_RELAYS = "externalRelays"
    CANISTER = "canister"
    CANISTER_CONSUMPTIONS = "canisterConsumptions"

    def __str__(self) -> str:
        return self.value


# Order of the SYSINFO row after the leading "SYSINFO" marker
SYS_INFO_KEYS: tuple[str, ...] = (
    "version",
    "cpuTime",
    "resetRootCause",
    "ntpFaultState",
    "configOtherEnable",
    "dosageControl",
    "phPlusDosageRelay",
    "phMinusDosageRelay",
    "chlorineDosageRelay",
)


def _to_int(raw: Any) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


@dataclasses.dataclass(frozen=True)
class SystemInfo:
    """
    Scalar counters and flags from the SYSINFO row.

    Values are kept as the strings the controller reported; the derived
    booleans are recomputed from the bitmasks on every access.
    """

    values: Mapping[str, str] = dataclasses.field(default_factory=dict)

    def __getitem__(self, key: str) -> str:
        return self.values[key]

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(key, default)

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield (key, value) pairs in controller order."""
        yield from self.values.items()

    @property
    def version(self) -> str:
        return self.values.get("version", "")

    @property
    def dosage_control(self) -> int:
        return _to_int(self.values.get("dosageControl"))

    @property
    def config_other_enable(self) -> int:
        return _to_int(self.values.get("configOtherEnable"))

    @property
    def ph_plus_dosage_enabled(self) -> bool:
        return self.dosage_control & DOSAGE_BIT_PH_PLUS == DOSAGE_BIT_PH_PLUS

    @property
    def ph_minus_dosage_enabled(self) -> bool:
        return self.dosage_control & DOSAGE_BIT_PH_MINUS == DOSAGE_BIT_PH_MINUS

    @property
    def chlorine_dosage_enabled(self) -> bool:
        return self.dosage_control & DOSAGE_BIT_CHLORINE == DOSAGE_BIT_CHLORINE

    @property
    def electrolysis(self) -> bool:
        return self.dosage_control & DOSAGE_BIT_ELECTROLYSIS == DOSAGE_BIT_ELECTROLYSIS

    @property
    def external_relays_enabled(self) -> bool:
        return self.config_other_enable & CONFIG_BIT_EXTERNAL_RELAYS == CONFIG_BIT_EXTERNAL_RELAYS

    def dosage_flags(self) -> dict[str, bool]:
        """Derived dosage/electrolysis booleans keyed by their info.system state name."""
        return {
            "phPlusDosageEnabled": self.ph_plus_dosage_enabled,
            "phMinusDosageEnabled": self.ph_minus_dosage_enabled,
            "chlorineDosageEnabled": self.chlorine_dosage_enabled,
            "electrolysis": self.electrolysis,
        }

    @property
    def chlorine_dosage_relay(self) -> int:
        return _to_int(self.values.get("chlorineDosageRelay"))

    @property
    def ph_minus_dosage_relay(self) -> int:
        return _to_int(self.values.get("phMinusDosageRelay"))

    @property
    def ph_plus_dosage_relay(self) -> int:
        return _to_int(self.values.get("phPlusDosageRelay"))


@dataclasses.dataclass(frozen=True)
class DataObject:
    """One sensor or relay column of a snapshot."""

    id: int
    category: Category
    category_id: int
    label: str
    unit: str = ""
    value: float = 0.0
    display_value: str = ""
    active: bool = True

    @property
    def is_relay(self) -> bool:
        return self.category in (Category.RELAYS, Category.EXTERNAL_RELAYS)

    @property
    def is_external(self) -> bool:
        return self.category is Category.EXTERNAL_RELAYS

    @property
    def relay_id(self) -> int:
        """Physical relay id (0-15) shared by both relay banks."""
        return self.category_id + (EXTERNAL_RELAY_OFFSET if self.is_external else 0)

    @property
    def channel(self) -> str:
        """Store channel path of this object."""
        return f"{self.category}.{self.category_id}"

    def field(self, name: str) -> Any:
        """Return the store-facing field value (camelCase names)."""
        if name == "value":
            return self.value
        if name == "category":
            return str(self.category)
        if name == "label":
            return self.label
        if name == "unit":
            return self.unit
        if name == "displayValue":
            return self.display_value
        if name == "active":
            return self.active
        raise KeyError(name)

    def native(self) -> dict[str, Any]:
        """Plain dict stored as ``native`` on every store object of this entity."""
        return {
            "id": self.id,
            "category": str(self.category),
            "categoryId": self.category_id,
            "label": self.label,
            "unit": self.unit,
        }


def is_auto(obj: DataObject) -> bool:
    """Relay runs in automatic mode when the manual bit is clear."""
    return int(obj.value) & RELAY_BIT_MANUAL != RELAY_BIT_MANUAL


def is_on(obj: DataObject) -> bool:
    return int(obj.value) & RELAY_BIT_ON == RELAY_BIT_ON


def relay_display_value(raw: int) -> str:
    """Human readable relay state, e.g. ``Auto (On)`` or ``Off``."""
    state = "On" if raw & RELAY_BIT_ON else "Off"
    if raw & RELAY_BIT_MANUAL:
        return state
    return f"Auto ({state})"


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """
    Immutable result of one poll cycle.

    Always replace, never mutate in place.
    """

    sys_info: SystemInfo = dataclasses.field(default_factory=SystemInfo)
    objects: tuple[DataObject, ...] = ()

    def get_object(self, object_id: int) -> DataObject | None:
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        return None

    def object_ids(self) -> set[int]:
        return {obj.id for obj in self.objects}

    def relays(self) -> list[DataObject]:
        """Relays of both banks; external ones only while the bank is enabled."""
        return [
            obj for obj in self.objects
            if obj.category is Category.RELAYS
            or (obj.category is Category.EXTERNAL_RELAYS and self.sys_info.external_relays_enabled)
        ]

    def is_relay_control(self, obj: DataObject) -> bool:
        """True when the object gets auto/onOff/timer controls in the store."""
        return obj in self.relays()

    def dosage_relay_ids(self) -> tuple[int, int, int]:
        """Configured (chlorine, pH-, pH+) dosage relay ids."""
        info = self.sys_info
        return (info.chlorine_dosage_relay, info.ph_minus_dosage_relay, info.ph_plus_dosage_relay)

    def is_dosage_relay(self, relay_id: int) -> bool:
        return relay_id in self.dosage_relay_ids()
