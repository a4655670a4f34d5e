from __future__ import annotations

import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional

from liveconfig.common.logging import log_event
from liveconfig.common.ops_metrics import REGISTRY, MetricRegistry, errors_counter
from liveconfig.messaging.envelope import EventEnvelope

logger = logging.getLogger(__name__)

EnvelopeHandler = Callable[[EventEnvelope], None]


class InMemoryEventBus:
    """
    Synchronous in-process event bus.

    Handlers run on the publisher's thread, in subscription order. A failing
    handler is logged and counted; the remaining handlers still run.
    """

    def __init__(self, *, metrics: Optional[MetricRegistry] = None) -> None:
        self._lock = Lock()
        self._errors_total = errors_counter(metrics if metrics is not None else REGISTRY, "event-bus")
        self._handlers: Dict[str, List[EnvelopeHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: EnvelopeHandler) -> Callable[[], None]:
        """
        Register `handler` for `topic`. Returns a callable that unsubscribes it.
        """
        with self._lock:
            self._handlers[str(topic)].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(str(topic), [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(
        self,
        *,
        topic: str,
        event_type: Optional[str] = None,
        source: str,
        payload: Optional[Mapping[str, Any]] = None,
        trace_id: Optional[str] = None,
    ) -> EventEnvelope:
        env = EventEnvelope.new(
            event_type=event_type or topic,
            source=source,
            payload=payload,
            trace_id=trace_id,
        )
        self.dispatch(topic=topic, envelope=env)
        return env

    def dispatch(self, *, topic: str, envelope: EventEnvelope) -> None:
        # Snapshot so handlers may (un)subscribe while being dispatched.
        with self._lock:
            handlers = list(self._handlers.get(str(topic), []))

        for handler in handlers:
            try:
                handler(envelope)
            except Exception:
                self._errors_total.inc(labels={"component": "event-bus"})
                log_event(
                    logger,
                    "event_bus.handler_failed",
                    severity="ERROR",
                    exc_info=True,
                    topic=str(topic),
                    trace_id=envelope.trace_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._handlers.get(str(topic), []))
