"""
Worker side of the control surface.

The control API relays gestures (click, key combo, emergency stop) into the
LiveKit room as data packets on the `conversation.control` topic. This module
decodes them and applies them to the conversation state machine.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from logging_setup import get_logger, Component


logger = get_logger(Component.WORKER)

CONTROL_TOPIC = "conversation.control"
NOTICE_TOPIC = "conversation.notice"


class ControlAction(str, Enum):
    UNLOCK = "unlock"
    STOP = "stop"
    START = "start"
    SELECT_DOCUMENT = "select_document"


@dataclass(frozen=True)
class ControlCommand:
    action: ControlAction
    correlation_id: Optional[str] = None
    source: str = "api"
    document_id: Optional[str] = None

    def to_payload(self) -> bytes:
        payload: Dict[str, Any] = {
            "action": self.action.value,
            "correlation_id": self.correlation_id,
            "source": self.source,
        }
        if self.document_id is not None:
            payload["document_id"] = self.document_id
        return json.dumps(payload).encode("utf-8")

    @classmethod
    def from_payload(cls, data: bytes) -> "ControlCommand":
        """Decode a data packet. Raises ValueError for anything malformed."""
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid control payload: {e}") from e
        if not isinstance(raw, dict):
            raise ValueError("Control payload must be a JSON object")
        try:
            action = ControlAction(raw.get("action"))
        except ValueError as e:
            raise ValueError(f"Unknown control action: {raw.get('action')!r}") from e
        document_id = raw.get("document_id")
        if action is ControlAction.SELECT_DOCUMENT and not isinstance(document_id, str):
            raise ValueError("select_document requires a document_id")
        return cls(
            action=action,
            correlation_id=raw.get("correlation_id"),
            source=raw.get("source") or "api",
            document_id=document_id if isinstance(document_id, str) else None,
        )


class ControlChannel:
    """Applies control commands to a ConversationStateMachine."""

    def __init__(self, machine: Any):
        self.machine = machine
        self._tasks: Set[asyncio.Task] = set()

    async def apply(self, command: ControlCommand) -> Dict[str, Any]:
        log = logger.with_conversation(self.machine.conversation_id)
        log.info(
            "Control command received",
            action=command.action.value,
            correlation_id=command.correlation_id,
            source=command.source,
        )

        result: Dict[str, Any] = {"action": command.action.value}
        if command.action is ControlAction.UNLOCK:
            result["unlocked"] = await self.machine.attempt_unlock()
        elif command.action is ControlAction.STOP:
            self.machine.stop_conversation()
        elif command.action is ControlAction.START:
            self.machine.start_listening()
        elif command.action is ControlAction.SELECT_DOCUMENT:
            result["selected"] = self.machine.select_document(command.document_id)

        result["state"] = self.machine.state.value
        log.info("Control command applied", correlation_id=command.correlation_id, **result)
        return result

    def on_data_received(self, packet: Any) -> None:
        """
        LiveKit `data_received` handler (rtc.DataPacket: data, topic, participant).

        Packets on other topics are ignored.
        """
        if getattr(packet, "topic", None) != CONTROL_TOPIC:
            return
        try:
            command = ControlCommand.from_payload(packet.data)
        except ValueError as e:
            logger.warning("Ignoring malformed control packet", error=str(e))
            return
        task = asyncio.create_task(self.apply(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
