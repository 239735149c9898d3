"""
Snapshot reconciliation for the ProCon.IP integration.

Responsibilities:
- Diff a freshly polled Snapshot against the last accepted baseline.
- Decide which store fields must be written, which channels need their
  name propagated after a label change, and which objects are new.
- Keep the force-update ledger: object ids whose next diff must report a
  change even when the polled values are identical (write confirmation lag).

No I/O happens here; the bridge performs the writes the plan describes.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Iterable, Mapping

from .const import TRACKED_FIELDS
from .models import DataObject, Snapshot

_LOGGER = logging.getLogger(__name__)


class ForceUpdateLedger:
    """
    Object ids awaiting a mandatory update on the next reconciliation.

    Every add() stamps the id with a fresh generation. A reconciliation
    consumes only the generations it saw, so an id added again while a
    cycle is running stays pending for the following cycle.
    """

    def __init__(self) -> None:
        self._entries: dict[int, int] = {}
        self._generation: int = 0

    def add(self, object_id: int) -> None:
        self._generation += 1
        self._entries[object_id] = self._generation

    def entries(self) -> dict[int, int]:
        """Current id -> generation mapping."""
        return dict(self._entries)

    def consume(self, entries: Mapping[int, int]) -> None:
        """Remove ids still at the given generation; newer or unknown ids are kept."""
        for object_id, generation in entries.items():
            if self._entries.get(object_id) == generation:
                del self._entries[object_id]

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._entries

    def ids(self) -> frozenset[int]:
        return frozenset(self._entries)


@dataclasses.dataclass(frozen=True)
class ObjectUpdate:
    """Store writes required for one data object."""

    obj: DataObject
    fields: tuple[str, ...]
    # label changed → propagate the new name to channel and sub-entries
    rename: bool = False
    # relay auto/onOff states follow the raw value
    relay_state: bool = False


@dataclasses.dataclass(frozen=True)
class ReconciliationPlan:
    snapshot: Snapshot
    sys_info_updates: tuple[tuple[str, str], ...] = ()
    # derived dosage booleans, written as one batch; None when unchanged
    dosage_flags: dict[str, bool] | None = None
    object_updates: tuple[ObjectUpdate, ...] = ()
    new_objects: tuple[DataObject, ...] = ()
    # ledger ids matched in this cycle
    forced_ids: frozenset[int] = frozenset()
    # generations of the matched ids, consumed on commit
    forced_generations: dict[int, int] = dataclasses.field(default_factory=dict)
    # external relay bank switched from disabled to enabled
    relay_bank_enabled: bool = False

    def update_for(self, object_id: int) -> ObjectUpdate | None:
        for update in self.object_updates:
            if update.obj.id == object_id:
                return update
        return None


def _changed_fields(previous: DataObject, current: DataObject) -> tuple[str, ...]:
    return tuple(
        field for field in TRACKED_FIELDS
        if previous.field(field) != current.field(field)
    )


def diff_snapshots(
    previous: Snapshot | None,
    current: Snapshot,
    forced_ids: Iterable[int] = (),
    bootstrapped: bool = False,
) -> ReconciliationPlan:
    """
    Compare current against previous and return the writes to perform.

    Before bootstrap (or without a previous snapshot) every field of every
    object and every sys info key is reported as changed.
    """
    forced = set(forced_ids)
    full = not bootstrapped or previous is None

    # --- sys info ---
    if full:
        sys_info_updates = tuple(current.sys_info.items())
        dosage_flags = current.sys_info.dosage_flags()
        relay_bank_enabled = False
    else:
        old_info = previous.sys_info
        sys_info_updates = tuple(
            (key, value) for key, value in current.sys_info.items()
            if old_info.get(key) != value
        )
        dosage_flags = (
            current.sys_info.dosage_flags()
            if current.sys_info.dosage_control != old_info.dosage_control
            else None
        )
        relay_bank_enabled = (
            current.sys_info.external_relays_enabled
            and not old_info.external_relays_enabled
        )

    # --- data objects ---
    updates: list[ObjectUpdate] = []
    new_objects: list[DataObject] = []
    matched: set[int] = set()
    for obj in current.objects:
        old = previous.get_object(obj.id) if previous is not None else None
        is_forced = obj.id in forced
        if is_forced:
            matched.add(obj.id)

        if full or is_forced:
            fields = TRACKED_FIELDS
        elif old is None:
            new_objects.append(obj)
            fields = TRACKED_FIELDS
        else:
            fields = _changed_fields(old, obj)
            if not fields:
                continue

        rename = old is not None and old.label != obj.label
        relay_state = "value" in fields and obj.is_relay
        updates.append(ObjectUpdate(obj=obj, fields=fields, rename=rename, relay_state=relay_state))

    return ReconciliationPlan(
        snapshot=current,
        sys_info_updates=sys_info_updates,
        dosage_flags=dosage_flags,
        object_updates=tuple(updates),
        new_objects=tuple(new_objects),
        forced_ids=frozenset(matched),
        relay_bank_enabled=relay_bank_enabled,
    )


class Reconciler:
    """
    Owns the baseline snapshot, the force-update ledger and the bootstrap flag.

    reconcile() is side-effect free; commit() must be called once the writes
    of the plan have been issued so the next diff compares against the values
    just written.
    """

    def __init__(self, ledger: ForceUpdateLedger | None = None) -> None:
        self.ledger = ledger if ledger is not None else ForceUpdateLedger()
        self._baseline: Snapshot | None = None
        self._bootstrapped: bool = False

    @property
    def baseline(self) -> Snapshot | None:
        return self._baseline

    @property
    def bootstrapped(self) -> bool:
        return self._bootstrapped

    def reconcile(self, current: Snapshot) -> ReconciliationPlan:
        entries = self.ledger.entries()
        plan = diff_snapshots(self._baseline, current, entries.keys(), self._bootstrapped)
        plan = dataclasses.replace(
            plan, forced_generations={object_id: entries[object_id] for object_id in plan.forced_ids}
        )
        _LOGGER.debug(
            "Reconciled snapshot: %s object updates, %s sys info updates, %s forced",
            len(plan.object_updates), len(plan.sys_info_updates), len(plan.forced_ids),
        )
        return plan

    def commit(self, plan: ReconciliationPlan) -> None:
        """Consume matched ledger entries and accept the plan's snapshot as baseline."""
        self.ledger.consume(plan.forced_generations)
        self._baseline = plan.snapshot
        self._bootstrapped = True
