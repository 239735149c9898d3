"""
ProconIpBridge: the engine connecting controller snapshots and the object store.

Responsibilities:
- Poll path: reconcile every snapshot against the baseline, materialize the
  namespace for objects seen for the first time, issue the store writes of the
  plan and only then accept the snapshot as the new baseline.
- Write path: listen for unacknowledged state changes on relay entries and hand
  them to the CommandDispatcher.
- Maintain info.connection.

Store writes are issued as tracked background tasks. Their failures are
logged by a done-callback and never retried; the next cycle is not blocked.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Coroutine

from .const import (
    FIELD_AUTO,
    FIELD_DOSAGE_TIMER,
    FIELD_ON_OFF,
    FIELD_TIMER,
    INFO_CONNECTION,
    INFO_SYSTEM,
    TRACKED_FIELDS,
)
from .dispatcher import CommandDispatcher, IntentError
from .materializer import ObjectMaterializer
from .models import Category, DataObject, Snapshot, is_auto, is_on
from .object_store import ObjectStore, StoreState
from .reconciler import ReconciliationPlan, Reconciler

_LOGGER = logging.getLogger(__name__)

# Store paths whose unacknowledged changes are write intents
INTENT_PATTERNS = (f"{Category.RELAYS}.*", f"{Category.EXTERNAL_RELAYS}.*")

TaskFactory = Callable[[Coroutine[Any, Any, Any]], "asyncio.Future[Any]"]


class ProconIpBridge:
    """Owns baseline, force-update ledger and bootstrap state for one controller."""

    def __init__(
        self,
        store: ObjectStore,
        api: Any,
        create_task: TaskFactory | None = None,
    ) -> None:
        self.store = store
        self.api = api
        self.reconciler = Reconciler()
        self.materializer = ObjectMaterializer(store)
        self.dispatcher = CommandDispatcher(
            store, api, self.reconciler.ledger, lambda: self.reconciler.baseline
        )
        self._create_task: TaskFactory = create_task or asyncio.ensure_future

        # Background store writes and intents still running
        self._tasks: set[asyncio.Future] = set()
        # Ids whose namespace has been created completely
        self._materialized: set[int] = set()
        self._sys_info_materialized: bool = False
        self._connected: bool | None = None
        self._stopped: bool = False
        self._unsubscribe: list[Callable[[], None]] = []

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def connected(self) -> bool:
        return bool(self._connected)

    @property
    def snapshot(self) -> Snapshot | None:
        """Last accepted snapshot."""
        return self.reconciler.baseline

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_start(self) -> None:
        """Create info.connection (false) and subscribe to relay write intents."""
        await self.materializer.async_ensure_connection_schema()
        await self._async_set_connection(False)
        for pattern in INTENT_PATTERNS:
            self._unsubscribe.append(
                self.store.subscribe_states(pattern, self._handle_state_change)
            )

    async def async_stop(self) -> None:
        """
        Stop accepting snapshots and intents.

        In-flight writes are left to finish (or fail) on their own.
        """
        self._stopped = True
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        await self._async_set_connection(False)

    async def async_wait_pending(self) -> None:
        """Wait until all background writes and intents issued so far have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Poll path
    # ------------------------------------------------------------------

    async def async_handle_snapshot(self, snapshot: Snapshot) -> ReconciliationPlan | None:
        """Process one successful poll. Returns the executed plan, or None after stop."""
        if self._stopped:
            _LOGGER.debug("Bridge stopped, dropping snapshot")
            return None

        _LOGGER.debug("Start processing new GetState.csv")
        plan = self.reconciler.reconcile(snapshot)
        completed = await self._async_materialize(snapshot, plan)

        if self._stopped:
            _LOGGER.debug("Bridge stopped during materialization, dropping snapshot")
            return None

        self._issue_writes(plan, completed)
        _LOGGER.debug("Updating data object for next comparison")
        self.reconciler.commit(plan)
        await self._async_set_connection(True)
        return plan

    async def async_handle_poll_error(self, exc: BaseException) -> None:
        """A poll failed: mark the connection as lost."""
        _LOGGER.debug("Poll failed: %s", exc)
        await self._async_set_connection(False)

    async def _async_materialize(self, snapshot: Snapshot, plan: ReconciliationPlan) -> set[int]:
        """Create missing namespaces. Returns the ids completed by this call."""
        if not self._sys_info_materialized:
            if not self.reconciler.bootstrapped:
                _LOGGER.debug("Initially setting objects")
            self._sys_info_materialized = await self.materializer.async_ensure_sys_info_schema(
                snapshot.sys_info
            )

        if plan.relay_bank_enabled:
            _LOGGER.debug("External relays enabled, creating relay controls")
            for obj in snapshot.objects:
                if obj.category is Category.EXTERNAL_RELAYS and obj.id in self._materialized:
                    if not await self.materializer.async_ensure_relay_controls(obj, snapshot):
                        self._materialized.discard(obj.id)

        pending = [obj for obj in snapshot.objects if obj.id not in self._materialized]
        if not pending:
            return set()
        completed = await self.materializer.async_ensure_object_schema(pending, snapshot)
        self._materialized |= completed
        return completed

    def _issue_writes(self, plan: ReconciliationPlan, completed: set[int]) -> None:
        snapshot = plan.snapshot

        for key, value in plan.sys_info_updates:
            _LOGGER.debug("Updating sys info state %s: %s", key, value)
            self._write(f"{INFO_SYSTEM}.{key}", str(value), key)

        if plan.dosage_flags is not None:
            _LOGGER.debug("Updating advanced sys info states")
            for key, flag in plan.dosage_flags.items():
                self._write(f"{INFO_SYSTEM}.{key}", flag, key)

        written_relays: set[int] = set()
        for update in plan.object_updates:
            obj = update.obj
            if update.rename:
                _LOGGER.debug("Updating label for '%s' (%s)", obj.label, obj.category)
                self._schedule(self._async_rename(obj), f"fixing label for '{obj.label}'")
            _LOGGER.debug("Updating value for '%s' (%s)", obj.label, obj.category)
            for field in update.fields:
                self._write(f"{obj.channel}.{field}", obj.field(field), obj.label)
            if update.relay_state and snapshot.is_relay_control(obj):
                self._write_relay_state(obj)
                written_relays.add(obj.id)

        # Namespaces completed on a retry missed the writes of the cycle that
        # first saw them; the plan only holds what changed since.
        full = {update.obj.id for update in plan.object_updates if update.fields == TRACKED_FIELDS}
        for object_id in sorted(completed - full):
            obj = snapshot.get_object(object_id)
            if obj is None:
                continue
            _LOGGER.debug("Writing all values of '%s' (%s) after completing its objects", obj.label, obj.category)
            for field in TRACKED_FIELDS:
                self._write(f"{obj.channel}.{field}", obj.field(field), obj.label)
            if snapshot.is_relay_control(obj):
                self._write_relay_state(obj)
                written_relays.add(obj.id)

        if plan.relay_bank_enabled:
            for obj in snapshot.relays():
                if obj.is_external and obj.id not in written_relays:
                    self._write_relay_state(obj)

    def _write_relay_state(self, obj: DataObject) -> None:
        self._write(f"{obj.channel}.{FIELD_AUTO}", is_auto(obj), f"auto/manual switch of '{obj.label}'")
        self._write(f"{obj.channel}.{FIELD_ON_OFF}", is_on(obj), f"onOff switch of '{obj.label}'")

    def _write(self, path: str, value: Any, label: str) -> None:
        self._schedule(
            self.store.async_set_state(path, value, ack=True),
            f"setting state for '{label}'",
        )

    async def _async_rename(self, obj: DataObject) -> None:
        """Propagate a new label to the object's channel and all of its states."""
        channel = await self.store.async_get_object(obj.channel)
        if channel is not None:
            channel.common["name"] = obj.label
            await self.store.async_set_object(obj.channel, channel)
        for path, state_obj in await self.store.async_get_states_of(obj.channel):
            state_obj.common["name"] = obj.label
            state_obj.native["label"] = obj.label
            await self.store.async_set_object(path, state_obj)

    async def _async_set_connection(self, connected: bool) -> None:
        if self._connected == connected:
            return
        try:
            await self.store.async_set_state(INFO_CONNECTION, connected, ack=True)
        except Exception as exc:
            _LOGGER.error("Failed setting connection state: %s", exc)
            return
        self._connected = connected

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _handle_state_change(self, path: str, state: StoreState | None) -> None:
        if state is None:
            _LOGGER.info("state %s deleted", path)
            return
        if state.ack:
            # Acknowledged: our own write echoing back
            return
        if self._stopped:
            _LOGGER.debug("Bridge stopped, ignoring intent on %s", path)
            return

        if path.endswith(f".{FIELD_AUTO}"):
            intent = self.dispatcher.async_set_auto(path, bool(state.val))
            description = "relay toggle"
        elif path.endswith(f".{FIELD_ON_OFF}"):
            intent = self.dispatcher.async_set_on_off(path, bool(state.val))
            description = "relay toggle"
        elif path.endswith(f".{FIELD_DOSAGE_TIMER}"):
            intent = self.dispatcher.async_set_dosage_timer(path, state.val)
            description = "manual dosage"
        elif path.endswith(f".{FIELD_TIMER}"):
            intent = self.dispatcher.async_set_relay_timer(path, state.val)
            description = "relay timer"
        else:
            return

        self._schedule(self._async_run_intent(intent, path, description), f"{description} ({path})")

    async def _async_run_intent(self, intent: Awaitable[Any], path: str, description: str) -> Any:
        try:
            return await intent
        except IntentError as exc:
            _LOGGER.error("Error on %s (%s): %s", description, path, exc)
            return None

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, Any], description: str) -> None:
        task = self._create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._task_done, description))

    def _task_done(self, description: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("Failed %s: %s", description, exc)
