"""
Control API routes.

Write API (gestures relayed into the editor's room):
- POST /control/conversation/unlock: activation gesture (click / button)
- POST /control/conversation/stop: emergency stop
- POST /control/conversation/start: resume listening after a stop
- POST /control/conversation/keys: raw key combo, resolved to a shortcut
- POST /control/documents/select: the user opened another document

Read API:
- GET /control/events: structured events from the in-memory event store

Commands are sent as LiveKit data packets on the `conversation.control`
topic; the worker applies them to the conversation state machine. Every
command is auditable: control.command_received / control.command_applied.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from livekit import api

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity
from observability.event_store import event_store
from voice_loop.commands import KeyPress, Shortcut, resolve_shortcut
from voice_loop.control_channel import CONTROL_TOPIC, ControlAction, ControlCommand
from .config import get_control_config


router = APIRouter(prefix="/control", tags=["control"])
emitter = EventEmitter(ObsComponent.CONTROL_API)
logger = get_logger(LogComponent.CONTROL_API)

_SHORTCUT_ACTIONS = {
    Shortcut.ACTIVATE: ControlAction.UNLOCK,
    Shortcut.STOP: ControlAction.STOP,
}


class ConversationRequest(BaseModel):
    room: str = Field(..., min_length=1, description="LiveKit room name (the conversation_id)")


class KeyPressRequest(ConversationRequest):
    code: str = Field(..., min_length=1, description="KeyboardEvent.code, e.g. 'Space' or 'KeyS'")
    meta: bool = False
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    platform: str = Field("", description="navigator.platform of the client")


class SelectDocumentRequest(ConversationRequest):
    document_id: str = Field(..., min_length=1)


class ControlResponse(BaseModel):
    status: str
    action: str
    correlation_id: str


def _new_correlation_id() -> str:
    return f"cmd_{int(time.time() * 1000)}"


async def _send_control(room_name: str, command: ControlCommand) -> None:
    """
    Deliver a command to the worker in `room_name` as a reliable data packet.
    """
    config = get_control_config()
    lk = api.LiveKitAPI(
        url=config.livekit_url,
        api_key=config.livekit_api_key,
        api_secret=config.livekit_api_secret,
    )
    try:
        await lk.room.send_data(
            api.SendDataRequest(
                room=room_name,
                data=command.to_payload(),
                topic=CONTROL_TOPIC,
            )
        )
    finally:
        await lk.aclose()


async def _relay(
    room_name: str,
    action: ControlAction,
    source: str,
    document_id: Optional[str] = None,
) -> ControlResponse:
    correlation_id = _new_correlation_id()
    command = ControlCommand(
        action=action,
        correlation_id=correlation_id,
        source=source,
        document_id=document_id,
    )

    emitter.emit(
        "control.command_received",
        conversation_id=room_name,
        severity=Severity.INFO,
        correlation_id=correlation_id,
        command=f"conversation.{action.value}",
        source=source,
    )

    try:
        await _send_control(room_name, command)
    except Exception as e:
        # Stable error surface: no internal traces
        logger.warning("Control command not delivered", room=room_name, error=str(e), error_type=type(e).__name__)
        emitter.emit(
            "control.command_applied",
            conversation_id=room_name,
            severity=Severity.ERROR,
            correlation_id=correlation_id,
            command=f"conversation.{action.value}",
            result="error",
            error_class=type(e).__name__,
        )
        raise HTTPException(status_code=502, detail="control_failed")

    emitter.emit(
        "control.command_applied",
        conversation_id=room_name,
        severity=Severity.INFO,
        correlation_id=correlation_id,
        command=f"conversation.{action.value}",
        result="ok",
    )
    return ControlResponse(status="ok", action=action.value, correlation_id=correlation_id)


@router.post("/conversation/unlock", response_model=ControlResponse)
async def unlock_conversation(req: ConversationRequest) -> ControlResponse:
    """Activation gesture: unlock speech playback in the room."""
    return await _relay(req.room, ControlAction.UNLOCK, source="click")


@router.post("/conversation/stop", response_model=ControlResponse)
async def stop_conversation(req: ConversationRequest) -> ControlResponse:
    """Emergency stop: the conversation goes idle immediately."""
    return await _relay(req.room, ControlAction.STOP, source="click")


@router.post("/conversation/start", response_model=ControlResponse)
async def start_conversation(req: ConversationRequest) -> ControlResponse:
    """Resume listening after a stop."""
    return await _relay(req.room, ControlAction.START, source="click")


@router.post("/conversation/keys", response_model=ControlResponse)
async def key_shortcut(req: KeyPressRequest) -> ControlResponse:
    """
    Relay a key combo. Cmd/Ctrl + Shift + Space unlocks, Cmd/Ctrl + S stops;
    anything else is rejected with 400.
    """
    key = KeyPress(code=req.code, meta=req.meta, ctrl=req.ctrl, shift=req.shift, alt=req.alt)
    shortcut = resolve_shortcut(key, req.platform)
    if shortcut is None:
        raise HTTPException(status_code=400, detail="unknown_shortcut")
    return await _relay(req.room, _SHORTCUT_ACTIONS[shortcut], source="keyboard")


@router.post("/documents/select", response_model=ControlResponse)
async def select_document(req: SelectDocumentRequest) -> ControlResponse:
    """The editor switched documents; the worker rebinds its dialogue history."""
    return await _relay(req.room, ControlAction.SELECT_DOCUMENT, source="click", document_id=req.document_id)


def _parse_since(since: str) -> datetime:
    # FastAPI decodes "+" in query strings as a space.
    since_clean = since.replace(" ", "+").replace("Z", "+00:00")
    if "+" not in since_clean and "-" not in since_clean[-6:]:
        since_clean += "+00:00"
    return datetime.fromisoformat(since_clean)


@router.get("/events")
async def get_events(
    conversation_id: Optional[str] = Query(None, description="Filter by conversation (room name)"),
    event_type: Optional[str] = Query(None, description="Filter by event_type; a trailing '.' matches a prefix"),
    component: Optional[str] = Query(None, description="Filter by component"),
    since: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    """Query structured events, oldest first."""
    since_dt: Optional[datetime] = None
    if since:
        try:
            since_dt = _parse_since(since)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid since timestamp: {since}")

    events = event_store.query(
        conversation_id=conversation_id,
        event_type=event_type,
        component=component,
        since=since_dt,
        limit=limit,
    )
    return {
        "conversation_id": conversation_id,
        "events": events,
        "count": len(events),
    }
