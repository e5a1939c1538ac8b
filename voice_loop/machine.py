"""
Conversation state machine driver.

Owns the single authoritative Snapshot, feeds every input through
transitions.transition() and executes the returned effects in order.
Events raised while effects run (e.g. a capture start failure) are queued
and processed after the current transition completes, so each transition
is applied atomically.

Background work (the agent turn, playback start, the unlock attempt, the
post-error retry timer) runs as asyncio tasks; their results come back as
events and stale ones are dropped by the transition guards.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from logging_setup import get_logger, Component
from editor.store import DocumentStore
from .activation import ActivationStatus
from .agent_client import AgentClient, build_run_metadata, build_user_message
from .capture import SpeechCaptureSession
from .commands import Shortcut, VoiceCommand, match_voice_command, shortcut_label
from .config import VoiceConfig, get_config
from .dispatcher import ActionDispatcher
from .errors import AgentError, PlaybackError, PlaybackErrorCause
from .fallback import FallbackInterpreter
from .history import DialogueHistory
from .messages import MessageCatalog, get_catalog
from .observability import ConversationObserver
from .playback import SpeechPlaybackSession
from .protocol import parse_agent_reply
from .segmenter import SilenceSegmenter, Utterance
from .transitions import (
    ActivationRequested,
    AppendHistory,
    CancelListeningRetry,
    CancelPlayback,
    CancelTurn,
    CaptureFailed,
    ConversationState,
    DiscardTranscript,
    DispatchTurn,
    Event,
    ForwardTranscript,
    GrantActivation,
    Initialized,
    ListeningRetryElapsed,
    Notify,
    PlaybackEnded,
    PlaybackFailed,
    RelockActivation,
    ResetSegmenter,
    ScheduleListeningRetry,
    Snapshot,
    Speak,
    StartCapture,
    StartListening,
    StopCapture,
    StopConversation,
    TranscriptReceived,
    TransitionPolicy,
    TurnCompleted,
    UnlockPlayback,
    UtteranceFinalized,
    transition,
)


logger = get_logger(Component.ORCHESTRATOR)


@dataclass(frozen=True)
class TurnOutcome:
    user_message: str
    reply: str
    speech: str


class ConversationStateMachine:
    def __init__(
        self,
        conversation_id: str,
        *,
        capture: SpeechCaptureSession,
        playback: SpeechPlaybackSession,
        store: DocumentStore,
        agent: Optional[AgentClient] = None,
        config: Optional[VoiceConfig] = None,
        history: Optional[DialogueHistory] = None,
        catalog: Optional[MessageCatalog] = None,
        observer: Optional[ConversationObserver] = None,
        on_notice: Optional[Callable[[str], Any]] = None,
        platform: str = "",
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.conversation_id = conversation_id
        self.config = config or get_config()
        self.capture = capture
        self.playback = playback
        self.store = store
        self.agent = agent
        self.catalog = catalog or get_catalog(self.config.language)
        self.history = history or DialogueHistory(self.config.history_max)
        self.observer = observer or ConversationObserver(conversation_id)
        self.on_notice = on_notice
        self.platform = platform
        self.logger = logger.with_conversation(conversation_id)

        self._now = now
        self._sleep = sleep
        self.policy = TransitionPolicy(
            echo_guard_ms=self.config.echo_guard_ms,
            playback_retry_ms=self.config.playback_retry_ms,
        )
        self.snapshot = Snapshot()

        self.segmenter = SilenceSegmenter(
            self._on_finalize,
            timeout_ms=self.config.silence_timeout_ms,
            now=now,
            sleep=sleep,
        )
        self.dispatcher = ActionDispatcher(store, self.catalog)
        self.fallback = FallbackInterpreter(store, self.catalog)

        capture.on_increment = self.on_transcript
        capture.on_error = self.on_capture_error
        playback.on_started = self._on_playback_started
        playback.on_ended = self._on_playback_ended
        playback.on_error = self._on_playback_error
        playback.gate.on_change = self._on_activation_changed

        self._queue: Deque[Event] = deque()
        self._dispatching = False
        self._tasks: Set[asyncio.Task] = set()
        self._turn_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._unlock_task: Optional[asyncio.Task] = None

        self._effect_handlers: Dict[type, Callable[[Any], None]] = {
            ResetSegmenter: self._do_reset_segmenter,
            StartCapture: self._do_start_capture,
            StopCapture: self._do_stop_capture,
            ForwardTranscript: self._do_forward_transcript,
            DiscardTranscript: self._do_discard_transcript,
            DispatchTurn: self._do_dispatch_turn,
            CancelTurn: self._do_cancel_turn,
            AppendHistory: self._do_append_history,
            Speak: self._do_speak,
            UnlockPlayback: self._do_unlock_playback,
            GrantActivation: self._do_grant_activation,
            CancelPlayback: self._do_cancel_playback,
            ScheduleListeningRetry: self._do_schedule_retry,
            CancelListeningRetry: self._do_cancel_retry,
            RelockActivation: self._do_relock,
            Notify: self._do_notify,
        }

    @property
    def state(self) -> ConversationState:
        return self.snapshot.state

    # --- public operations ---

    def initialize(self) -> None:
        """Auto-start: begin listening when capture and playback are both available."""
        self.dispatch(Initialized(self.capture.supported, self.playback.supported))

    def start_listening(self) -> None:
        self.dispatch(StartListening())

    def stop_conversation(self) -> None:
        was_active = self.state is not ConversationState.IDLE
        self.dispatch(StopConversation())
        if was_active:
            self._publish_notice("voice", "stopped", self.catalog.get("voice.stopped"))

    def select_document(self, document_id: str) -> bool:
        """Switch the editor to another document; dialogue history is bound to it."""
        if self.store.select_document(document_id) is None:
            return False
        if self.history.bind(document_id):
            self.logger.info("Document switched, dialogue history cleared")
        return True

    async def attempt_unlock(self) -> bool:
        """
        Unlock playback. Must be triggered by a user gesture (click / key combo).

        Plays a short confirmation and returns True iff it started. While a
        turn is processing the gate opens silently; the turn's answer follows.
        """
        gate = self.playback.gate
        if gate.unlocked:
            return True
        if not gate.supported:
            return False

        self._unlock_task = None
        self.dispatch(ActivationRequested(self.catalog.get("voice.activation_confirmation")))
        task = self._unlock_task
        if task is None:
            return gate.unlocked
        return await task

    def on_transcript(self, text: str, is_final: bool) -> None:
        self.dispatch(TranscriptReceived(text, is_final, self._now()))

    def on_capture_error(self, code: str) -> None:
        self.dispatch(CaptureFailed(code))

    async def settle(self) -> None:
        """Wait until no background task (turn, playback, retry) is pending."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            watch = self.playback.watch_task
            if watch is not None and not watch.done():
                pending.append(watch)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        self.stop_conversation()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    # --- event processing ---

    def dispatch(self, event: Event) -> None:
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                self._apply(self._queue.popleft())
        finally:
            self._dispatching = False

    def _apply(self, event: Event) -> None:
        previous = self.snapshot.state
        result = transition(self.snapshot, event, self.policy)
        self.snapshot = result.snapshot

        if result.state is not previous:
            self.observer.state_changed(previous.value, result.state.value, type(event).__name__)

        for effect in result.effects:
            self._effect_handlers[type(effect)](effect)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- callbacks from collaborators ---

    def _on_finalize(self, utterance: Utterance) -> None:
        self.dispatch(UtteranceFinalized(utterance))

    def _on_playback_started(self, text: str) -> None:
        self.observer.playback_started(len(text))

    def _on_playback_ended(self) -> None:
        self.observer.playback_stopped("ended")
        self.dispatch(PlaybackEnded(self._now()))

    def _on_playback_error(self, cause: str) -> None:
        self.observer.playback_failed(cause)
        self.dispatch(PlaybackFailed(cause))

    def _on_activation_changed(self, status: ActivationStatus, reason: Optional[str]) -> None:
        self.observer.activation_changed(status.value, reason)

    # --- effects ---

    def _do_reset_segmenter(self, _effect: ResetSegmenter) -> None:
        self.segmenter.reset()

    def _do_start_capture(self, _effect: StartCapture) -> None:
        self.capture.start_listening()

    def _do_stop_capture(self, _effect: StopCapture) -> None:
        self.capture.stop_listening()

    def _do_forward_transcript(self, effect: ForwardTranscript) -> None:
        self.segmenter.on_increment(effect.text, effect.is_final)

    def _do_discard_transcript(self, effect: DiscardTranscript) -> None:
        if effect.reason == "echo_guard":
            self.observer.capture_discarded(effect.reason, effect.since_playback_ms)
        else:
            self.logger.debug("Transcript dropped", reason=effect.reason)

    def _do_dispatch_turn(self, effect: DispatchTurn) -> None:
        self._turn_task = self._spawn(self._run_turn(effect.turn_id, effect.utterance))

    def _do_cancel_turn(self, _effect: CancelTurn) -> None:
        task, self._turn_task = self._turn_task, None
        # A stop phrase stops the conversation from inside the turn task itself.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _do_append_history(self, effect: AppendHistory) -> None:
        self.history.add_turn(effect.user_message, effect.reply)

    def _do_speak(self, effect: Speak) -> None:
        self._spawn(self._speak(effect.text, effect.turn_id))

    def _do_unlock_playback(self, effect: UnlockPlayback) -> None:
        self._unlock_task = self._spawn(self._unlock(effect.confirmation))

    def _do_grant_activation(self, _effect: GrantActivation) -> None:
        self.playback.gate.grant()

    def _do_cancel_playback(self, _effect: CancelPlayback) -> None:
        if self.playback.stop_speech():
            self.observer.playback_stopped("cancelled")

    def _do_schedule_retry(self, effect: ScheduleListeningRetry) -> None:
        self._do_cancel_retry(CancelListeningRetry())
        self._retry_task = self._spawn(self._retry_after(effect.delay_ms))

    def _do_cancel_retry(self, _effect: CancelListeningRetry) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done():
            task.cancel()

    def _do_relock(self, effect: RelockActivation) -> None:
        self.playback.gate.relock(effect.cause)

    def _do_notify(self, effect: Notify) -> None:
        label = shortcut_label(Shortcut.ACTIVATE, self.platform)
        if effect.kind == "capture":
            message = self.catalog.first(
                f"notices.capture.{effect.code}", "notices.capture.default", code=effect.code
            )
        else:
            message = self.catalog.first(
                f"notices.playback.{effect.code}", "notices.playback.default", cause=effect.code, shortcut=label
            )
        self._publish_notice(effect.kind, effect.code, message)

    def _publish_notice(self, kind: str, code: str, message: str) -> None:
        self.observer.notice(kind, code, message)
        if self.on_notice is not None:
            try:
                self.on_notice(message)
            except Exception as e:
                self.logger.warning("Notice delivery failed", error=str(e), error_type=type(e).__name__)

    # --- background work ---

    async def _speak(self, text: str, turn_id: int) -> None:
        # Stopped or superseded before this task got to run.
        if self.state is not ConversationState.SPEAKING or self.snapshot.turn_id != turn_id:
            return
        try:
            await self.playback.speak(text)
        except PlaybackError as e:
            self.observer.playback_failed(e.cause)
            self.dispatch(PlaybackFailed(e.cause))

    async def _unlock(self, confirmation: str) -> bool:
        started = await self.playback.unlock(confirmation)
        if not started:
            cause = self.playback.gate.last_error or PlaybackErrorCause.SYNTHESIS_FAILED
            self.observer.playback_failed(cause)
            self.dispatch(PlaybackFailed(cause))
        return started

    async def _retry_after(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000.0)
        self._retry_task = None
        self.dispatch(ListeningRetryElapsed())

    async def _run_turn(self, turn_id: int, utterance: Utterance) -> None:
        text = utterance.text.strip()
        self.observer.turn_started(turn_id, text)

        command = match_voice_command(text)
        if command is VoiceCommand.STOP:
            self.logger.info("Stop phrase recognised")
            self.stop_conversation()
            return
        if command is VoiceCommand.ACTIVATE:
            guidance = self.catalog.get(
                "voice.activation_guidance", shortcut=shortcut_label(Shortcut.ACTIVATE, self.platform)
            )
            self._publish_notice("activation", "gesture_required", guidance)
            speech = guidance if self.playback.gate.unlocked else ""
            self.dispatch(TurnCompleted(turn_id, speech))
            return
        if command is VoiceCommand.RESTART:
            self.dispatch(TurnCompleted(turn_id, self.catalog.get("voice.restarted")))
            return

        try:
            outcome = await self._respond(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Keep the loop alive: go back to listening without speech.
            self.logger.exception("Turn failed", error=str(e), error_type=type(e).__name__)
            self.dispatch(TurnCompleted(turn_id, ""))
            return

        self.dispatch(TurnCompleted(turn_id, outcome.speech, outcome.user_message, outcome.reply))

    async def _respond(self, text: str) -> TurnOutcome:
        if self.history.bind(self.store.current_document_id):
            self.logger.info("Document context changed, dialogue history cleared")

        user_message = build_user_message(text, self.store)
        reply: Optional[str] = None

        if self.agent is None:
            reason = "agent_unavailable"
        else:
            self.observer.agent_request(history_length=len(self.history))
            try:
                reply = await self.agent.run_turn(
                    user_message,
                    self.history.messages(),
                    build_run_metadata(self.store),
                )
            except AgentError as e:
                self.observer.agent_failed(e.category)
                reason = e.category
            else:
                self.observer.agent_response(reply)
                reason = "no_agent_output"

        if reply is None or not reply.strip():
            result = self.fallback.interpret(text)
            self.observer.fallback_used(reason, result.intent)
            return TurnOutcome(user_message, result.speech, result.speech)

        parsed = parse_agent_reply(reply)
        if parsed is None:
            # Plain conversational text: spoken as-is, nothing to dispatch.
            return TurnOutcome(user_message, reply, reply.strip())

        dispatched = self.dispatcher.dispatch(parsed)
        self.observer.dispatch_applied(dispatched.action.value, dispatched.applied, dispatched.used_agent_answer)
        if not dispatched.applied and dispatched.used_agent_answer:
            self.observer.mutation_skipped(dispatched.action.value)
        return TurnOutcome(user_message, reply, dispatched.speech)
