"""
Conversation state machine as a pure transition function.

`transition(snapshot, event)` returns the next snapshot plus the effects the
driver must execute, in order. Nothing here touches audio, timers or the
network, so the whole table is testable with plain values.

Feedback prevention lives in the effect ordering: every transition that
starts playback emits StopCapture first, and every transition that starts
capture cancels playback first. Capture is only restarted after playback
ended, failed (after a retry delay) or was cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from .errors import PlaybackErrorCause
from .segmenter import Utterance


class ConversationState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class Snapshot:
    state: ConversationState = ConversationState.IDLE
    # Id of the latest dispatched turn; completions for other ids are stale.
    turn_id: int = 0
    # Monotonic time the last playback ended, for the echo guard.
    playback_ended_at: Optional[float] = None


@dataclass(frozen=True)
class TransitionPolicy:
    echo_guard_ms: int = 3000
    playback_retry_ms: int = 500


DEFAULT_POLICY = TransitionPolicy()


# --- Events ---


@dataclass(frozen=True)
class Initialized:
    capture_supported: bool
    playback_supported: bool


@dataclass(frozen=True)
class StartListening:
    pass


@dataclass(frozen=True)
class StopConversation:
    pass


@dataclass(frozen=True)
class TranscriptReceived:
    text: str
    is_final: bool
    at: float


@dataclass(frozen=True)
class UtteranceFinalized:
    utterance: Utterance


@dataclass(frozen=True)
class TurnCompleted:
    turn_id: int
    # Spoken answer; blank means nothing to say.
    speech: str
    # History entries for this round trip; None for local voice commands.
    user_message: Optional[str] = None
    reply: Optional[str] = None


@dataclass(frozen=True)
class ActivationRequested:
    confirmation: str


@dataclass(frozen=True)
class PlaybackEnded:
    at: float


@dataclass(frozen=True)
class PlaybackFailed:
    cause: str


@dataclass(frozen=True)
class ListeningRetryElapsed:
    pass


@dataclass(frozen=True)
class CaptureFailed:
    code: str


Event = Union[
    Initialized,
    StartListening,
    StopConversation,
    TranscriptReceived,
    UtteranceFinalized,
    TurnCompleted,
    ActivationRequested,
    PlaybackEnded,
    PlaybackFailed,
    ListeningRetryElapsed,
    CaptureFailed,
]


# --- Effects ---


@dataclass(frozen=True)
class ResetSegmenter:
    pass


@dataclass(frozen=True)
class StartCapture:
    pass


@dataclass(frozen=True)
class StopCapture:
    pass


@dataclass(frozen=True)
class ForwardTranscript:
    text: str
    is_final: bool


@dataclass(frozen=True)
class DiscardTranscript:
    text: str
    reason: str
    since_playback_ms: Optional[int] = None


@dataclass(frozen=True)
class DispatchTurn:
    turn_id: int
    utterance: Utterance


@dataclass(frozen=True)
class CancelTurn:
    pass


@dataclass(frozen=True)
class AppendHistory:
    user_message: str
    reply: str


@dataclass(frozen=True)
class Speak:
    text: str
    turn_id: int


@dataclass(frozen=True)
class UnlockPlayback:
    confirmation: str


@dataclass(frozen=True)
class GrantActivation:
    """Unlock the gate without a confirmation utterance."""


@dataclass(frozen=True)
class CancelPlayback:
    pass


@dataclass(frozen=True)
class ScheduleListeningRetry:
    delay_ms: int


@dataclass(frozen=True)
class CancelListeningRetry:
    pass


@dataclass(frozen=True)
class RelockActivation:
    cause: str


@dataclass(frozen=True)
class Notify:
    kind: str  # "capture" | "playback"
    code: str


Effect = Union[
    ResetSegmenter,
    StartCapture,
    StopCapture,
    ForwardTranscript,
    DiscardTranscript,
    DispatchTurn,
    CancelTurn,
    AppendHistory,
    Speak,
    UnlockPlayback,
    GrantActivation,
    CancelPlayback,
    ScheduleListeningRetry,
    CancelListeningRetry,
    RelockActivation,
    Notify,
]


@dataclass(frozen=True)
class Transition:
    snapshot: Snapshot
    effects: Tuple[Effect, ...] = field(default_factory=tuple)

    @property
    def state(self) -> ConversationState:
        return self.snapshot.state


_LISTEN_EFFECTS: Tuple[Effect, ...] = (ResetSegmenter(), CancelPlayback(), StartCapture())
_STOP_EFFECTS: Tuple[Effect, ...] = (
    ResetSegmenter(),
    StopCapture(),
    CancelPlayback(),
    CancelTurn(),
    CancelListeningRetry(),
)


def _stay(snapshot: Snapshot, *effects: Effect) -> Transition:
    return Transition(snapshot, tuple(effects))


def _goto(snapshot: Snapshot, state: ConversationState, *effects: Effect, **changes) -> Transition:
    return Transition(replace(snapshot, state=state, **changes), tuple(effects))


def transition(snapshot: Snapshot, event: Event, policy: TransitionPolicy = DEFAULT_POLICY) -> Transition:
    """Compute the next snapshot and effects for one event."""
    state = snapshot.state
    S = ConversationState

    if isinstance(event, Initialized):
        if state is S.IDLE and event.capture_supported and event.playback_supported:
            return _goto(snapshot, S.LISTENING, *_LISTEN_EFFECTS)
        return _stay(snapshot)

    if isinstance(event, StartListening):
        if state is S.IDLE:
            return _goto(snapshot, S.LISTENING, *_LISTEN_EFFECTS)
        return _stay(snapshot)

    if isinstance(event, StopConversation):
        if state is S.IDLE:
            return _stay(snapshot)
        return _goto(snapshot, S.IDLE, *_STOP_EFFECTS)

    if isinstance(event, TranscriptReceived):
        if state is not S.LISTENING:
            return _stay(snapshot, DiscardTranscript(event.text, reason="not_listening"))
        if snapshot.playback_ended_at is not None:
            since_ms = int((event.at - snapshot.playback_ended_at) * 1000)
            if since_ms < policy.echo_guard_ms:
                return _stay(snapshot, DiscardTranscript(event.text, reason="echo_guard", since_playback_ms=since_ms))
        return _stay(snapshot, ForwardTranscript(event.text, event.is_final))

    if isinstance(event, UtteranceFinalized):
        # Finalize outside listening belongs to a stale capture episode.
        if state is not S.LISTENING or event.utterance.is_blank:
            return _stay(snapshot)
        turn_id = snapshot.turn_id + 1
        return _goto(
            snapshot,
            S.PROCESSING,
            StopCapture(),
            ResetSegmenter(),
            DispatchTurn(turn_id, event.utterance),
            turn_id=turn_id,
        )

    if isinstance(event, TurnCompleted):
        if state is not S.PROCESSING or event.turn_id != snapshot.turn_id:
            return _stay(snapshot)
        if not event.speech.strip():
            return _goto(snapshot, S.LISTENING, *_LISTEN_EFFECTS)
        effects: list = [StopCapture()]
        if event.user_message is not None and event.reply is not None:
            effects.append(AppendHistory(event.user_message, event.reply))
        effects.append(Speak(event.speech, event.turn_id))
        return _goto(snapshot, S.SPEAKING, *effects)

    if isinstance(event, ActivationRequested):
        if state is S.PROCESSING:
            # Capture is already stopped; the pending turn's speech is the confirmation.
            return _stay(snapshot, GrantActivation())
        if state is S.IDLE:
            # Unlocking does not resume a stopped conversation.
            return _stay(snapshot, CancelPlayback(), UnlockPlayback(event.confirmation))
        return _goto(
            snapshot,
            S.SPEAKING,
            StopCapture(),
            ResetSegmenter(),
            CancelListeningRetry(),
            CancelPlayback(),
            UnlockPlayback(event.confirmation),
        )

    if isinstance(event, PlaybackEnded):
        if state is S.SPEAKING:
            return _goto(snapshot, S.LISTENING, *_LISTEN_EFFECTS, playback_ended_at=event.at)
        return Transition(replace(snapshot, playback_ended_at=event.at))

    if isinstance(event, PlaybackFailed):
        if event.cause == PlaybackErrorCause.CANCELED:
            return _stay(snapshot)
        effects = []
        if event.cause == PlaybackErrorCause.NOT_ALLOWED:
            effects.append(RelockActivation(event.cause))
        if event.cause in (PlaybackErrorCause.NOT_ALLOWED, PlaybackErrorCause.LOCKED):
            effects.append(Notify("playback", event.cause))
        if state is not S.SPEAKING:
            return _stay(snapshot, *effects)
        return _stay(snapshot, StopCapture(), *effects, ScheduleListeningRetry(policy.playback_retry_ms))

    if isinstance(event, ListeningRetryElapsed):
        if state is S.SPEAKING:
            return _goto(snapshot, S.LISTENING, *_LISTEN_EFFECTS)
        return _stay(snapshot)

    if isinstance(event, CaptureFailed):
        if state is S.LISTENING:
            return _goto(snapshot, S.IDLE, ResetSegmenter(), StopCapture(), Notify("capture", event.code))
        return _stay(snapshot)

    raise TypeError(f"Unknown conversation event: {event!r}")
