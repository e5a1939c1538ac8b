"""
Conversation loop observability.

Emits structured events for the hands-free loop:
- conversation.state_changed on every state transition
- turn.started / agent.request / agent.response / agent.failed per turn,
  correlated by turn id
- fallback.used, dispatch.applied, dispatch.mutation_skipped
- capture.discarded for increments inside the post-playback echo window
- playback.started / playback.stopped / playback.failed
- activation.changed, ux.notice

Transcript and reply text are PII and are flagged as such in the envelope.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity, pii_fields


class ConversationObserver:
    def __init__(
        self,
        conversation_id: str,
        *,
        now: Callable[[], float] = time.time,
    ):
        self.conversation_id = conversation_id
        self._now = now
        self.logger = get_logger(LogComponent.ORCHESTRATOR, conversation_id=conversation_id)

        self._emitters = {
            component: EventEmitter(component)
            for component in (
                ObsComponent.ORCHESTRATOR,
                ObsComponent.ACTIVATION,
                ObsComponent.AGENT_CLIENT,
                ObsComponent.DISPATCHER,
            )
        }

        self.current_turn_id: Optional[str] = None
        self._agent_request_ts: Optional[float] = None
        self._playback_started_ts: Optional[float] = None

    def _emit(
        self,
        event_type: str,
        component: ObsComponent = ObsComponent.ORCHESTRATOR,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **payload: Any,
    ) -> Dict[str, Any]:
        return self._emitters[component].emit(
            event_type,
            conversation_id=self.conversation_id,
            severity=severity,
            correlation_id=correlation_id or self.current_turn_id,
            pii=pii,
            **payload,
        )

    @staticmethod
    def turn_correlation_id(turn_id: int) -> str:
        return f"turn_{turn_id}"

    # --- state ---

    def state_changed(self, previous: str, current: str, cause: str) -> None:
        self._emit("conversation.state_changed", from_state=previous, to_state=current, cause=cause)
        self.logger.debug("Conversation state changed", from_state=previous, to_state=current, cause=cause)

    # --- turns ---

    def turn_started(self, turn_id: int, utterance: str) -> str:
        correlation_id = self.turn_correlation_id(turn_id)
        self.current_turn_id = correlation_id
        self._emit(
            "turn.started",
            correlation_id=correlation_id,
            pii=pii_fields("utterance"),
            utterance=utterance,
            utterance_length=len(utterance),
        )
        self.logger.debug_pii("Turn started", utterance=utterance)
        return correlation_id

    def agent_request(self, history_length: int) -> None:
        self._agent_request_ts = self._now()
        self._emit("agent.request", ObsComponent.AGENT_CLIENT, history_length=history_length)

    def _agent_latency(self) -> Dict[str, Any]:
        if self._agent_request_ts is None:
            return {}
        latency_ms = int((self._now() - self._agent_request_ts) * 1000)
        self._agent_request_ts = None
        return {"latency_ms": latency_ms}

    def agent_response(self, reply: Optional[str]) -> None:
        extra = self._agent_latency()
        self._emit(
            "agent.response",
            ObsComponent.AGENT_CLIENT,
            pii=pii_fields("reply") if reply else None,
            has_output=bool(reply and reply.strip()),
            reply_length=len(reply) if reply else 0,
            **({"reply": reply} if reply else {}),
            **extra,
        )
        self.logger.info("Agent responded", reply_length=len(reply) if reply else 0, **extra)

    def agent_failed(self, category: str) -> None:
        extra = self._agent_latency()
        self._emit("agent.failed", ObsComponent.AGENT_CLIENT, severity=Severity.WARN, category=category, **extra)
        self.logger.warning("Agent call failed, using fallback", category=category)

    def fallback_used(self, reason: str, intent: str) -> None:
        self._emit("fallback.used", ObsComponent.DISPATCHER, reason=reason, intent=intent)

    def dispatch_applied(self, action: str, applied: bool, used_agent_answer: bool) -> None:
        self._emit(
            "dispatch.applied",
            ObsComponent.DISPATCHER,
            action=action,
            applied=applied,
            used_agent_answer=used_agent_answer,
        )

    def mutation_skipped(self, action: str) -> None:
        # The agent's answer is still spoken verbatim; this marks the mismatch.
        self._emit("dispatch.mutation_skipped", ObsComponent.DISPATCHER, severity=Severity.WARN, action=action)
        self.logger.warning("Agent answer spoken although the action was not applied", action=action)

    # --- capture / playback ---

    def capture_discarded(self, reason: str, since_playback_ms: Optional[int]) -> None:
        self._emit(
            "capture.discarded",
            severity=Severity.DEBUG,
            reason=reason,
            since_playback_ms=since_playback_ms,
        )

    def playback_started(self, text_length: int) -> None:
        self._playback_started_ts = self._now()
        self._emit("playback.started", text_length=text_length)

    def playback_stopped(self, cause: str) -> None:
        extra: Dict[str, Any] = {}
        if self._playback_started_ts is not None:
            extra["duration_ms"] = int((self._now() - self._playback_started_ts) * 1000)
            self._playback_started_ts = None
        self._emit("playback.stopped", cause=cause, **extra)

    def playback_failed(self, cause: str) -> None:
        self._playback_started_ts = None
        self._emit("playback.failed", severity=Severity.WARN, cause=cause)
        self.logger.warning("Playback failed", cause=cause)

    # --- activation / UX ---

    def activation_changed(self, status: str, reason: Optional[str]) -> None:
        self._emit("activation.changed", ObsComponent.ACTIVATION, status=status, reason=reason)

    def notice(self, kind: str, code: str, message: str) -> None:
        self._emit("ux.notice", severity=Severity.WARN, kind=kind, code=code, message=message)
