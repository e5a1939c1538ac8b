"""
LiveKit worker for the voice editor.

Joins the editor's room as an agent participant and runs one
ConversationStateMachine per room. Uses Groq (STT), Azure (TTS) and Silero
(VAD); there is no LLM in the session, replies come from the remote agent
through the state machine.

Run with:
    python -m voice_loop.worker dev
"""
import os

from livekit.agents import (
    AgentSession,
    Agent,
    AutoSubscribe,
    JobContext,
    WorkerOptions,
    cli,
)
from livekit.plugins import groq, azure, silero

from logging_setup import get_logger, Component, setup_logging
from editor.store import DocumentStore
from .agent_client import AgentClient
from .capture import SpeechCaptureSession
from .config import WorkerConfig, get_config, load_local_env
from .control_channel import ControlChannel
from .livekit_io import LiveKitRecognizer, LiveKitSynthesizer, NoticePublisher
from .machine import ConversationStateMachine
from .playback import SpeechPlaybackSession

# Local dev convenience; never overrides exported variables.
load_local_env()

logger = get_logger(Component.WORKER)

# Prewarmed/shared instances (best-effort)
_VAD = None


async def entrypoint(ctx: JobContext):
    """
    Agent entrypoint, called by LiveKit Agents when the worker is dispatched
    to an editor room.
    """
    await ctx.connect(auto_subscribe=AutoSubscribe.AUDIO_ONLY)
    participant = await ctx.wait_for_participant()

    conversation_id = ctx.room.name or "unknown"
    conversation_logger = logger.with_conversation(conversation_id)
    conversation_logger.debug(
        "Participant joined",
        participant_identity=participant.identity,
        job_id=ctx.job.id,
    )

    config = get_config()
    worker_config = WorkerConfig.from_env()

    conversation_logger.debug(
        "STT provider configured",
        provider="groq",
        model=worker_config.stt_model,
        language=config.language,
    )
    stt = groq.STT(
        model=worker_config.stt_model,
        language=config.language,
        api_key=worker_config.groq_api_key,
    )

    conversation_logger.debug(
        "TTS provider configured",
        provider="azure",
        voice=worker_config.azure_speech_voice,
        region=worker_config.azure_speech_region,
    )
    tts = azure.TTS(
        speech_key=worker_config.azure_speech_key,
        speech_region=worker_config.azure_speech_region,
        voice=worker_config.azure_speech_voice,
    )

    vad = _VAD or silero.VAD.load()

    # Turns are segmented by the state machine's silence timer, not by the session.
    session = AgentSession(stt=stt, tts=tts, vad=vad, turn_detection="manual")
    await session.start(room=ctx.room, agent=Agent(instructions=""))

    recognizer = LiveKitRecognizer(session)
    capture = SpeechCaptureSession(recognizer)
    recognizer.attach(capture)
    playback = SpeechPlaybackSession(LiveKitSynthesizer(session))

    agent_client = AgentClient(
        config.agent_api_url,
        graph_id=config.agent_graph_id,
        timeout_seconds=config.agent_timeout_seconds,
    )
    attributes = getattr(participant, "attributes", None) or {}
    machine = ConversationStateMachine(
        conversation_id,
        capture=capture,
        playback=playback,
        store=DocumentStore.with_blank_document(),
        agent=agent_client,
        config=config,
        on_notice=NoticePublisher(ctx.room),
        platform=attributes.get("platform", ""),
    )

    channel = ControlChannel(machine)
    ctx.room.on("data_received", channel.on_data_received)

    async def _shutdown():
        await machine.aclose()
        await agent_client.aclose()

    ctx.add_shutdown_callback(_shutdown)

    machine.initialize()
    conversation_logger.info("Conversation loop started", state=machine.state.value)


def prewarm(_process):
    """
    Prewarm heavy resources to reduce time-to-first-audio.

    LiveKit Agents runs this once per worker process.
    """
    global _VAD
    try:
        _VAD = silero.VAD.load()
    except Exception as e:
        logger.warning("VAD prewarm failed", error=str(e), error_type=type(e).__name__)
        _VAD = None


if __name__ == "__main__":
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), use_json=True)

    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=entrypoint,
            prewarm_fnc=prewarm,
            # Explicit dispatch: must match the agent name the client requests.
            agent_name=os.getenv("LIVEKIT_AGENT_NAME", ""),
        )
    )
