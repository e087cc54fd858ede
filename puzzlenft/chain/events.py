"""
Puzzle Chain Event Infrastructure

Contract events are typed dataclasses. A contract emits an instance; the
runtime stamps it with the emitting address, block, transaction hash and log
index, stores it in the receipt, and once the transaction is mined publishes
it on the chain's `EventBus` together with system events (`TransactionMined`,
`BlockMined`).

Usage
─────

    from puzzlenft.chain.events import ContractEvent, EventBus, param

    @dataclass
    class NewPuzzleAdded(ContractEvent):
        owner: str = param("address", indexed=True)
        puzzle_id: int = param("uint256")

    bus = chain.bus

    @bus.subscribe(NewPuzzleAdded)
    def on_new_puzzle(event: NewPuzzleAdded):
        print(f"Puzzle {event.puzzle_id} added by {event.owner}")

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Tuple,
    Type,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """Base class for everything published on the event bus."""

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__


def param(abi_type: str, indexed: bool = False) -> Any:
    """Declare an event parameter with its ABI type."""
    default: Any = 0 if abi_type.startswith("uint") else False if abi_type == "bool" else ""
    return field(default=default, metadata={"abi": abi_type, "indexed": indexed})


_LOG_FIELDS = ("address", "block_number", "tx_hash", "log_index")

EVENT_TYPES: Dict[str, Type["ContractEvent"]] = {}


@dataclass
class ContractEvent(Event):
    """
    Base class for events emitted by contracts.

    Subclasses declare their parameters with `param()`. The log fields below
    are filled in by the runtime when the event is emitted.

    Example:
        @dataclass
        class Transfer(ContractEvent):
            from_: str = param("address", indexed=True)
            to: str = param("address", indexed=True)
            token_id: int = param("uint256", indexed=True)
    """

    address: str = ""
    block_number: int = 0
    tx_hash: str = ""
    log_index: int = 0

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        EVENT_TYPES[cls.__name__] = cls

    @classmethod
    def parameters(cls) -> List[Any]:
        return [f for f in fields(cls) if f.name not in _LOG_FIELDS]

    @classmethod
    def signature(cls) -> str:
        """Canonical signature, e.g. `Transfer(address,address,uint256)`."""
        types = ",".join(f.metadata.get("abi", "bytes") for f in cls.parameters())
        return f"{cls.__name__}({types})"

    @property
    def args(self) -> Tuple[Any, ...]:
        """Parameter values in declaration order."""
        return tuple(getattr(self, f.name) for f in self.parameters())

    @property
    def topic_count(self) -> int:
        return 1 + sum(1 for f in self.parameters() if f.metadata.get("indexed"))

    @property
    def data_size(self) -> int:
        """Size in bytes of the non-indexed data, at 32 bytes per word."""
        return 32 * sum(1 for f in self.parameters() if not f.metadata.get("indexed"))

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in _LOG_FIELDS}
        data["event"] = self.event_type
        data["args"] = {f.name: getattr(self, f.name) for f in self.parameters()}
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ContractEvent":
        """Rebuild a logged event from its `to_dict()` form."""
        name = data.get("event", "")
        event_cls = EVENT_TYPES.get(name)
        if event_cls is None:
            raise ValueError(f"Unknown event type: {name}")
        kwargs = dict(data.get("args", {}))
        for key in _LOG_FIELDS:
            if key in data:
                kwargs[key] = data[key]
        return event_cls(**kwargs)


# ════════════════════════════════════════════════════════════════════════════
# SYSTEM EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class TransactionMined(Event):
    """Published after a transaction (successful or reverted) is mined."""
    receipt: Any = None


@dataclass
class BlockMined(Event):
    """Published after a block is appended to the chain."""
    block: Any = None


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Handlers run synchronously in priority order after the transaction that
    produced the event has been committed. A failing handler never undoes a
    mined transaction; the failure is logged and passed to `on_error`.

    Example:
        bus = EventBus()

        @bus.subscribe(Transfer, ApprovalForAll)
        def handle_token_events(event):
            print(f"Token event: {event.event_type}")
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (none = all events)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error("%s", error, exc_info=True)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }
