"""
Tests for the LiveKit adapters, driven by fake sessions and rooms.
"""
import asyncio
from types import SimpleNamespace

import pytest

from voice_loop.control_channel import NOTICE_TOPIC
from voice_loop.errors import CaptureErrorCode, PlaybackError, PlaybackErrorCause
from voice_loop.livekit_io import LiveKitRecognizer, LiveKitSynthesizer, NoticePublisher


class FakeInput:
    def __init__(self):
        self.audio_enabled = []

    def set_audio_enabled(self, enabled):
        self.audio_enabled.append(enabled)


class FakeSpeechHandle:
    """Awaitable stand-in for livekit.agents SpeechHandle."""

    def __init__(self):
        self._done = asyncio.get_running_loop().create_future()
        self.interrupted = False

    def done(self):
        return self._done.done()

    def interrupt(self):
        self.interrupted = True
        self.finish()

    def finish(self):
        if not self._done.done():
            self._done.set_result(None)

    def __await__(self):
        return self._done.__await__()


class FakeSession:
    def __init__(self, say_error=None):
        self.handlers = {}
        self.input = FakeInput()
        self.said = []
        self.handles = []
        self._say_error = say_error

    def on(self, event, callback):
        self.handlers[event] = callback

    def say(self, text, **kwargs):
        if self._say_error:
            raise self._say_error
        self.said.append((text, kwargs))
        handle = FakeSpeechHandle()
        self.handles.append(handle)
        return handle


class FakeCapture:
    def __init__(self):
        self.results = []
        self.errors = []

    def handle_result(self, text, is_final):
        self.results.append((text, is_final))

    def handle_error(self, code):
        self.errors.append(code)


class FakeSTT:
    pass


class FakeTTS:
    pass


# --- recognizer ---


def test_recognizer_toggles_session_audio():
    session = FakeSession()
    recognizer = LiveKitRecognizer(session)

    recognizer.start()
    recognizer.stop()

    assert session.input.audio_enabled == [True, False]


def test_recognizer_feeds_transcripts_to_capture():
    session = FakeSession()
    capture = FakeCapture()
    LiveKitRecognizer(session).attach(capture)

    session.handlers["user_input_transcribed"](SimpleNamespace(transcript="xin", is_final=False))
    session.handlers["user_input_transcribed"](SimpleNamespace(transcript="xin chào", is_final=True))
    session.handlers["user_input_transcribed"](SimpleNamespace(transcript=None, is_final=True))

    assert capture.results == [("xin", False), ("xin chào", True), ("", True)]


def test_recognizer_reports_unrecoverable_stt_errors_only():
    session = FakeSession()
    capture = FakeCapture()
    LiveKitRecognizer(session).attach(capture)
    on_error = session.handlers["error"]

    on_error(SimpleNamespace(source=FakeSTT(), error=SimpleNamespace(recoverable=True)))
    on_error(SimpleNamespace(source=FakeTTS(), error=SimpleNamespace(recoverable=False)))
    on_error(SimpleNamespace(source=FakeSTT(), error=SimpleNamespace(recoverable=False)))

    assert capture.errors == [CaptureErrorCode.NETWORK]


def test_recognizer_ignores_events_before_attach():
    recognizer = LiveKitRecognizer(FakeSession())
    recognizer._on_user_input_transcribed(SimpleNamespace(transcript="x", is_final=True))
    recognizer._on_error(SimpleNamespace(source=FakeSTT(), error=None))


# --- synthesizer ---


@pytest.mark.asyncio
async def test_synthesizer_says_without_touching_chat_context():
    session = FakeSession()
    handle = await LiveKitSynthesizer(session).play("Xin chào")

    assert session.said == [("Xin chào", {"allow_interruptions": True, "add_to_chat_ctx": False})]
    session.handles[0].finish()
    await handle.wait()


@pytest.mark.asyncio
async def test_cancelled_playback_completes_quietly():
    session = FakeSession()
    handle = await LiveKitSynthesizer(session).play("dài")

    handle.cancel()
    await handle.wait()

    assert session.handles[0].interrupted


@pytest.mark.asyncio
async def test_foreign_interruption_is_a_cancel_error():
    session = FakeSession()
    handle = await LiveKitSynthesizer(session).play("dài")

    session.handles[0].interrupt()

    with pytest.raises(PlaybackError) as exc:
        await handle.wait()
    assert exc.value.cause == PlaybackErrorCause.CANCELED


@pytest.mark.asyncio
async def test_cancel_after_finish_does_not_interrupt():
    session = FakeSession()
    handle = await LiveKitSynthesizer(session).play("ngắn")
    session.handles[0].finish()

    handle.cancel()

    assert not session.handles[0].interrupted


@pytest.mark.asyncio
async def test_say_failure_is_synthesis_failed():
    synth = LiveKitSynthesizer(FakeSession(say_error=RuntimeError("no tts")))

    with pytest.raises(PlaybackError) as exc:
        await synth.play("x")

    assert exc.value.cause == PlaybackErrorCause.SYNTHESIS_FAILED
    assert str(exc.value) == "no tts"


# --- notices ---


class FakeParticipant:
    def __init__(self, error=None):
        self.published = []
        self._error = error

    async def publish_data(self, payload, reliable=False, topic=""):
        if self._error:
            raise self._error
        self.published.append((payload, reliable, topic))


@pytest.mark.asyncio
async def test_notice_publisher_sends_reliable_packet():
    participant = FakeParticipant()
    publish = NoticePublisher(SimpleNamespace(local_participant=participant))

    publish("Không có quyền truy cập micro.")
    await asyncio.gather(*list(publish._tasks))

    payload, reliable, topic = participant.published[0]
    assert reliable is True
    assert topic == NOTICE_TOPIC
    assert payload.decode("utf-8") == '{"type": "notice", "message": "Không có quyền truy cập micro."}'


@pytest.mark.asyncio
async def test_notice_publisher_failure_is_swallowed():
    publish = NoticePublisher(SimpleNamespace(local_participant=FakeParticipant(error=ConnectionError("gone"))))

    publish("x")
    await asyncio.gather(*list(publish._tasks))

