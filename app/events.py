"""
In-process event dispatch.

Services publish events after a state change; listeners registered in
``app.listeners`` react to them (cache flushing, view counting).  A
listener failure is logged and never propagates into the request that
published the event.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class ModelChanged:
    """One or more cache domains (e.g. ``articles``, ``tags``) changed."""

    domains: tuple[str, ...]


@dataclass(frozen=True)
class ArticleConsumed:
    """An article was read by a non-API caller."""

    article_id: int
    # Session of the request that read the article.
    db: Any = field(default=None, compare=False, repr=False)


class EventDispatcher:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    async def dispatch(self, event) -> None:
        """Await every handler subscribed to ``type(event)`` in order."""
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Listener %s failed for %s",
                    getattr(handler, "__name__", handler), type(event).__name__,
                )


def model_changed(*domains: str) -> ModelChanged:
    return ModelChanged(domains=tuple(domains))


# Module-level singleton, like ``app.cache.cache``.
events = EventDispatcher()
