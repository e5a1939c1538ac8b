"""
Structured JSON event emission (shared).

Shared by the conversation core, the LiveKit worker and the control API.
Every event is one JSON envelope on stdout and is also kept in the bounded
in-memory event store so the control API can serve it back.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .event_store import event_store


class Component(str, Enum):
    """Components that emit events."""

    ORCHESTRATOR = "orchestrator"
    ACTIVATION = "activation"
    AGENT_CLIENT = "agent_client"
    DISPATCHER = "dispatcher"
    WORKER = "worker"
    CONTROL_API = "control_api"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def pii_fields(*fields: str) -> Optional[Dict[str, Any]]:
    """PII marker for events that carry user text in the given fields."""
    if not fields:
        return None
    return {"contains_pii": True, "fields": list(fields), "handling": "none"}


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        conversation_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit one event envelope.

        Args:
            event_type: Stable event type string (e.g. "turn.started")
            conversation_id: Opaque conversation identifier (LiveKit room name)
            severity: Event severity level
            correlation_id: Turn or command id; defaults to conversation_id
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Additional event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "conversation_id": conversation_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or conversation_id,
            "pii": pii or DEFAULT_PII,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        event_store.store(event)
        return event
