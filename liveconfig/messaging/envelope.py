from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

ENVIRONMENT_CHANGED = "environment.changed"

SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    """
    One in-process event. For configuration changes `event_type` is
    `environment.changed` and `payload` is `{"keys": [...]}`, the canonical
    keys that changed (informational; a pass rebinds every tracked component).
    """

    schemaVersion: int
    event_type: str
    source: str
    ts: str
    payload: Dict[str, Any] = field(default_factory=dict)
    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @staticmethod
    def new(
        *,
        event_type: str,
        source: str,
        payload: Optional[Mapping[str, Any]] = None,
        trace_id: Optional[str] = None,
        ts: Optional[str] = None,
    ) -> "EventEnvelope":
        return EventEnvelope(
            schemaVersion=SCHEMA_VERSION,
            event_type=str(event_type),
            source=str(source),
            ts=ts or datetime.now(timezone.utc).isoformat(),
            payload=dict(payload or {}),
            trace_id=trace_id or uuid.uuid4().hex,
        )
