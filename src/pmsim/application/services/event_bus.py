from collections import defaultdict
import logging
from typing import Callable, DefaultDict, Iterable, List, Type


EventHandler = Callable[[object], None]


class EventBus:
    """Synchronous in-process fan-out for engine events.

    Handlers run in ascending priority, then subscription order. A failing
    handler is logged and skipped; the engine state it observed is already
    persisted.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[object], List[tuple[int, int, EventHandler]]] = defaultdict(list)
        self._sequence = 0
        self._errors: List[Exception] = []
        self._logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[object], handler: EventHandler, *, priority: int = 100) -> None:
        rows = self._handlers[event_type]
        rows.append((int(priority), self._sequence, handler))
        self._sequence += 1
        rows.sort(key=lambda row: (row[0], row[1]))

    def publish(self, event: object) -> None:
        self._errors = []
        self._dispatch(event)

    def publish_all(self, events: Iterable[object]) -> None:
        self._errors = []
        for event in events:
            self._dispatch(event)

    def _dispatch(self, event: object) -> None:
        event_type = type(event)
        for priority, _, handler in list(self._handlers.get(event_type, ())):
            try:
                handler(event)
            except Exception as exc:
                self._errors.append(exc)
                handler_name = getattr(handler, "__qualname__", getattr(handler, "__name__", repr(handler)))
                self._logger.exception(
                    "Engine event handler failed and was isolated",
                    extra={
                        "event_type": event_type.__name__,
                        "session_id": getattr(event, "session_id", None),
                        "handler": handler_name,
                        "priority": priority,
                    },
                )

    def last_publish_errors(self) -> List[Exception]:
        return list(self._errors)
