"""
Voice loop configuration.

Loads tunables and provider credentials from environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_local_env(root: Optional[Path] = None) -> None:
    """
    Load .env_local / .env.local from the repository root (local dev convenience).

    Never overrides variables that are already exported.
    """
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "2000  # comment" -> 2000
    - "2000" -> 2000
    - None -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class VoiceConfig:
    """Conversation loop tunables. All have defaults; nothing here is secret."""

    # Quiet period that finalizes an utterance
    silence_timeout_ms: int = 2000
    # Capture results this soon after playback ended are treated as echo
    echo_guard_ms: int = 3000
    # Delay before listening again after a playback error
    playback_retry_ms: int = 500
    # Dialogue history bound (entries, not turns)
    history_max: int = 20

    # Remote agent (LangGraph-style HTTP API)
    agent_api_url: str = "http://localhost:8123"
    agent_graph_id: str = "agent"
    agent_timeout_seconds: int = 30

    language: str = "vi"

    @classmethod
    def from_env(cls) -> "VoiceConfig":
        """Load configuration from environment variables."""
        return cls(
            silence_timeout_ms=_parse_int_env("VOICE_SILENCE_TIMEOUT_MS", default=2000),
            echo_guard_ms=_parse_int_env("VOICE_ECHO_GUARD_MS", default=3000),
            playback_retry_ms=_parse_int_env("VOICE_PLAYBACK_RETRY_MS", default=500),
            history_max=_parse_int_env("VOICE_HISTORY_MAX", default=20),
            agent_api_url=os.environ.get("AGENT_API_URL", "http://localhost:8123").rstrip("/"),
            agent_graph_id=os.environ.get("AGENT_GRAPH_ID", "agent"),
            agent_timeout_seconds=_parse_int_env("AGENT_TIMEOUT_SECONDS", default=30),
            language=os.environ.get("VOICE_LANGUAGE", "vi"),
        )


@dataclass
class WorkerConfig:
    """
    Provider credentials for the LiveKit worker.

    LIVEKIT_URL / LIVEKIT_API_KEY / LIVEKIT_API_SECRET are read by the
    LiveKit Agents CLI itself.
    """

    # Groq (STT)
    groq_api_key: str

    # Azure TTS
    azure_speech_key: str
    azure_speech_region: str
    azure_speech_voice: str = "vi-VN-HoaiMyNeural"

    stt_model: str = "whisper-large-v3"

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Load worker configuration. Raises KeyError when a credential is missing."""
        return cls(
            groq_api_key=os.environ["GROQ_API_KEY"],
            azure_speech_key=os.environ["AZURE_SPEECH_KEY"],
            azure_speech_region=os.environ["AZURE_SPEECH_REGION"],
            azure_speech_voice=os.environ.get("AZURE_SPEECH_VOICE", "vi-VN-HoaiMyNeural"),
            stt_model=os.environ.get("GROQ_STT_MODEL", "whisper-large-v3"),
        )


def get_config() -> VoiceConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = VoiceConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[VoiceConfig] = None
