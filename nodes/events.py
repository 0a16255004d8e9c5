# ============================================================================
# EVENT REGISTRY
# ============================================================================
# STATUS: Nodes - Lifecycle hooks
# PURPOSE: Class-level and instance-level named event handlers
# CREATED: 14 OCT 2026
# ============================================================================
"""
Event Registry

Node classes declare the events they fire in an EVENTS tuple. Handlers are
registered either for a class (applies to every instance of the class and
its subclasses) or for a single node instance.

Firing is synchronous: class handlers in MRO order (most specific class
first), then instance handlers. A failing handler is logged with its
traceback and skipped, so the remaining handlers and the computation carry on.

Usage:
    from nodes.events import on_event

    @on_event(ComputeNode, "computing_finished")
    def notify(node, state, error=None):
        ...

    node.on("computing_progressed", lambda node, pct: print(pct))
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


def declared_events(cls: type) -> Set[str]:
    """Event names declared by a class and its bases."""
    names: Set[str] = set()
    for klass in cls.__mro__:
        names.update(vars(klass).get("EVENTS", ()))
    return names


class EventRegistry:
    """Per-class observer lists keyed by event name."""

    def __init__(self):
        self._handlers: Dict[type, Dict[str, List[EventHandler]]] = defaultdict(lambda: defaultdict(list))

    def _check(self, cls: type, event: str) -> None:
        if event not in declared_events(cls):
            raise ValueError(f"{cls.__name__} does not declare event '{event}'")

    def register(self, cls: type, event: str, handler: EventHandler) -> EventHandler:
        self._check(cls, event)
        self._handlers[cls][event].append(handler)
        return handler

    def unregister(self, cls: type, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(cls, {}).get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, cls: type, event: str) -> List[EventHandler]:
        """Class handlers resolved through the MRO, most specific first."""
        resolved: List[EventHandler] = []
        for klass in cls.__mro__:
            if klass in self._handlers:
                resolved.extend(self._handlers[klass].get(event, []))
        return resolved

    def fire(self, node: Any, event: str, *args: Any, **kwargs: Any) -> None:
        """Invoke class then instance handlers; handler errors are logged and swallowed."""
        self._check(type(node), event)
        instance_handlers = getattr(node, "_event_handlers", {}).get(event, [])

        for handler in self.handlers_for(type(node), event) + list(instance_handlers):
            try:
                handler(node, *args, **kwargs)
            except Exception:
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"on {event} for {getattr(node, 'name', node)}"
                )

    def clear(self) -> None:
        """Remove every class-level handler (for testing)."""
        self._handlers.clear()


# Global registry
event_registry = EventRegistry()


def on_event(cls: type, event: str) -> Callable[[EventHandler], EventHandler]:
    """Decorator registering a class-level handler."""
    def decorator(handler: EventHandler) -> EventHandler:
        return event_registry.register(cls, event, handler)
    return decorator


__all__ = ["EventRegistry", "EventHandler", "event_registry", "on_event", "declared_events"]
