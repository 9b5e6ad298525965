# =============================================================================
# Dispatcher
# =============================================================================
# Routes one CanonicalEvent to the single handler registered for its type.
# The registry is built once per worker process from the closed EventType
# set and is checked for full coverage when the dispatcher is constructed.
# =============================================================================

import logging
from typing import Any, Dict, Iterable, Optional, Sequence

from src.runtime.deps import Deps
from src.runtime.errors import HandlerError, MissingType, RegistryError, UnknownEventType
from src.runtime.event import CanonicalEvent, EventType

logger = logging.getLogger(__name__)


def default_handler_classes() -> Sequence[type]:
    """Handler classes shipped with the application."""
    from handlers import HANDLER_CLASSES
    return HANDLER_CLASSES


def build_registry(deps: Deps, handler_classes: Iterable[type] = None) -> Dict[EventType, Any]:
    """
    Instantiate one handler per EventType.

    Raises:
        RegistryError: a tag has no handler, or more than one
    """
    if handler_classes is None:
        handler_classes = default_handler_classes()

    registry: Dict[EventType, Any] = {}
    for handler_class in handler_classes:
        tag = EventType.lookup(getattr(handler_class, "event_type", None))
        if tag is None:
            raise RegistryError(f"{handler_class.__name__} is not bound to an event type")
        if tag in registry:
            raise RegistryError(
                f"Event type {tag.value} handled by both "
                f"{type(registry[tag]).__name__} and {handler_class.__name__}"
            )
        registry[tag] = handler_class(deps)

    missing = [tag.value for tag in EventType if tag not in registry]
    if missing:
        raise RegistryError(f"No handler registered for: {', '.join(missing)}")

    logger.info(f"Loaded {len(registry)} handlers into registry")
    return registry


class Dispatcher:
    """
    Maps every EventType to one handler instance sharing `deps`.

    Usage:
        dispatcher = Dispatcher(create_deps())
        outcome = dispatcher.dispatch(event.type, event)
    """

    def __init__(self, deps: Deps, handler_classes: Iterable[type] = None):
        self.deps = deps
        self._handlers = build_registry(deps, handler_classes)

    @property
    def event_types(self):
        return list(self._handlers)

    def handles(self, event_type: Any) -> bool:
        return EventType.lookup(event_type) in self._handlers

    def handler_for(self, event_type: Any):
        return self._handlers.get(EventType.lookup(event_type))

    def dispatch(self, event_type: Optional[str], event: CanonicalEvent) -> Any:
        """
        Invoke the handler registered for `event_type`.

        Raises:
            MissingType: no type given
            UnknownEventType: type is not a registered tag
            HandlerError: the handler failed (cause chained)
        """
        if not event_type:
            logger.warning("Event has no type")
            raise MissingType()

        tag = EventType.lookup(event_type)
        handler = self._handlers.get(tag) if tag is not None else None
        if handler is None:
            logger.warning(f"Unknown event type: {event_type}")
            raise UnknownEventType(str(event_type))

        logger.info(f"Processing event: {tag.value} handler={type(handler).__name__}")
        try:
            return handler.handle(event)
        except Exception as e:
            logger.exception(f"Error handling event {tag.value}: {e}")
            raise HandlerError(tag.value, e) from e
