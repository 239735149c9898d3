"""
ObjectStore: in-process hierarchical object/state store.

Paths are dot separated (``relays.0.onOff``). Objects carry ``type``
(channel/state), ``common`` metadata and a ``native`` payload; states carry a
value plus an acknowledgement flag. Entities read from the store, write intents
go into it with ``ack=False`` and subscribers are notified of every change.

This is a pure asyncio module with no HA or network dependencies.
"""
from __future__ import annotations

import asyncio
import copy
import dataclasses
import fnmatch
import logging
import time
from typing import Any, Callable, Iterator

_LOGGER = logging.getLogger(__name__)

StateCallback = Callable[[str, "StoreState | None"], None]
ObjectCallback = Callable[[str, "StoreObject", bool], None]


class UnknownObjectError(KeyError):
    """Raised when a state is written for a path without an object."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No object at '{path}'")


@dataclasses.dataclass
class StoreObject:
    type: str
    common: dict[str, Any] = dataclasses.field(default_factory=dict)
    native: dict[str, Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class StoreState:
    val: Any
    ack: bool
    ts: float


class ObjectStore:
    """
    Hierarchical object/state store.

    Mutating calls are coroutines so every store access is a suspension
    point for the event loop; the ``peek_*`` helpers are synchronous reads
    for entity properties.
    """

    def __init__(self) -> None:
        # path → object definition
        self._objects: dict[str, StoreObject] = {}
        # path → latest state
        self._states: dict[str, StoreState] = {}
        # (pattern, callback) pairs
        self._state_subscribers: list[tuple[str, StateCallback]] = []
        self._object_subscribers: list[tuple[str, ObjectCallback]] = []

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def async_set_object_not_exists(self, path: str, obj: StoreObject) -> bool:
        """Create the object unless one exists already. Returns True when created."""
        await asyncio.sleep(0)
        if path in self._objects:
            return False
        self._objects[path] = copy.deepcopy(obj)
        self._notify_object(path, self._objects[path], True)
        return True

    async def async_set_object(self, path: str, obj: StoreObject) -> None:
        """Create or replace the object at path."""
        await asyncio.sleep(0)
        created = path not in self._objects
        self._objects[path] = copy.deepcopy(obj)
        self._notify_object(path, self._objects[path], created)

    async def async_get_object(self, path: str) -> StoreObject | None:
        await asyncio.sleep(0)
        return self.peek_object(path)

    async def async_get_states_of(self, channel: str) -> list[tuple[str, StoreObject]]:
        """Return the state objects that are direct children of channel."""
        await asyncio.sleep(0)
        prefix = f"{channel}."
        return [
            (path, copy.deepcopy(obj))
            for path, obj in self._objects.items()
            if obj.type == "state" and path.startswith(prefix) and "." not in path[len(prefix):]
        ]

    def peek_object(self, path: str) -> StoreObject | None:
        obj = self._objects.get(path)
        return copy.deepcopy(obj) if obj is not None else None

    def objects(self, prefix: str = "") -> Iterator[tuple[str, StoreObject]]:
        """Iterate (path, object) pairs below prefix in creation order."""
        for path, obj in list(self._objects.items()):
            if not prefix or path == prefix or path.startswith(f"{prefix}."):
                yield path, obj

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def async_set_state(self, path: str, val: Any, ack: bool = True) -> StoreState:
        """Set the state value of an existing object and notify subscribers."""
        await asyncio.sleep(0)
        if path not in self._objects:
            raise UnknownObjectError(path)
        state = StoreState(val=val, ack=ack, ts=time.time())
        self._states[path] = state
        self._notify_state(path, state)
        return state

    async def async_get_state(self, path: str) -> StoreState | None:
        await asyncio.sleep(0)
        return self._states.get(path)

    async def async_delete_state(self, path: str) -> None:
        await asyncio.sleep(0)
        if self._states.pop(path, None) is not None:
            self._notify_state(path, None)

    def peek_state(self, path: str) -> StoreState | None:
        return self._states.get(path)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_states(self, pattern: str, callback: StateCallback) -> Callable[[], None]:
        """Call callback(path, state) for every state change matching pattern."""
        entry = (pattern, callback)
        self._state_subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._state_subscribers:
                self._state_subscribers.remove(entry)

        return _unsubscribe

    def subscribe_objects(self, pattern: str, callback: ObjectCallback) -> Callable[[], None]:
        """Call callback(path, obj, created) for every object write matching pattern."""
        entry = (pattern, callback)
        self._object_subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._object_subscribers:
                self._object_subscribers.remove(entry)

        return _unsubscribe

    def _notify_state(self, path: str, state: StoreState | None) -> None:
        for pattern, callback in list(self._state_subscribers):
            if not fnmatch.fnmatchcase(path, pattern):
                continue
            try:
                callback(path, state)
            except Exception:
                _LOGGER.exception("State subscriber failed for %s", path)

    def _notify_object(self, path: str, obj: StoreObject, created: bool) -> None:
        for pattern, callback in list(self._object_subscribers):
            if not fnmatch.fnmatchcase(path, pattern):
                continue
            try:
                callback(path, copy.deepcopy(obj), created)
            except Exception:
                _LOGGER.exception("Object subscriber failed for %s", path)
