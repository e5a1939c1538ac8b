"""
Tests for voice loop configuration.

Verifies:
- Tunables loading from environment, with defaults
- Comment/garbage tolerant integer parsing
- Worker credentials are required
- Control API configuration validation
"""
import pytest

import voice_loop.config as voice_config
from control_api.config import ControlConfig
from voice_loop.config import VoiceConfig, WorkerConfig, get_config


_VOICE_VARS = (
    "VOICE_SILENCE_TIMEOUT_MS",
    "VOICE_ECHO_GUARD_MS",
    "VOICE_PLAYBACK_RETRY_MS",
    "VOICE_HISTORY_MAX",
    "AGENT_API_URL",
    "AGENT_GRAPH_ID",
    "AGENT_TIMEOUT_SECONDS",
    "VOICE_LANGUAGE",
)


def test_config_defaults(monkeypatch):
    for key in _VOICE_VARS:
        monkeypatch.delenv(key, raising=False)

    config = VoiceConfig.from_env()

    assert config.silence_timeout_ms == 2000
    assert config.echo_guard_ms == 3000
    assert config.playback_retry_ms == 500
    assert config.history_max == 20
    assert config.agent_api_url == "http://localhost:8123"
    assert config.agent_graph_id == "agent"
    assert config.agent_timeout_seconds == 30
    assert config.language == "vi"


def test_config_from_env_all_fields(monkeypatch):
    monkeypatch.setenv("VOICE_SILENCE_TIMEOUT_MS", "1500")
    monkeypatch.setenv("VOICE_ECHO_GUARD_MS", "2500  # ms after playback")
    monkeypatch.setenv("VOICE_PLAYBACK_RETRY_MS", "250")
    monkeypatch.setenv("VOICE_HISTORY_MAX", "10")
    monkeypatch.setenv("AGENT_API_URL", "http://agent.local:9000/")
    monkeypatch.setenv("AGENT_GRAPH_ID", "editor")
    monkeypatch.setenv("AGENT_TIMEOUT_SECONDS", "12")
    monkeypatch.setenv("VOICE_LANGUAGE", "vi")

    config = VoiceConfig.from_env()

    assert config.silence_timeout_ms == 1500
    assert config.echo_guard_ms == 2500
    assert config.playback_retry_ms == 250
    assert config.history_max == 10
    assert config.agent_api_url == "http://agent.local:9000"
    assert config.agent_graph_id == "editor"
    assert config.agent_timeout_seconds == 12


@pytest.mark.parametrize("raw", ["", "abc", "  # only a comment"])
def test_invalid_integers_fall_back_to_default(monkeypatch, raw):
    monkeypatch.setenv("VOICE_SILENCE_TIMEOUT_MS", raw)
    assert VoiceConfig.from_env().silence_timeout_ms == 2000


def test_get_config_is_cached(monkeypatch):
    monkeypatch.setattr(voice_config, "_config", None)
    assert get_config() is get_config()


def _set_worker_env(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "test_groq_key")
    monkeypatch.setenv("AZURE_SPEECH_KEY", "test_azure_key")
    monkeypatch.setenv("AZURE_SPEECH_REGION", "southeastasia")


def test_worker_config_from_env(monkeypatch):
    _set_worker_env(monkeypatch)
    monkeypatch.delenv("AZURE_SPEECH_VOICE", raising=False)
    monkeypatch.delenv("GROQ_STT_MODEL", raising=False)

    config = WorkerConfig.from_env()

    assert config.groq_api_key == "test_groq_key"
    assert config.azure_speech_region == "southeastasia"
    assert config.azure_speech_voice == "vi-VN-HoaiMyNeural"
    assert config.stt_model == "whisper-large-v3"


def test_worker_config_missing_required_field(monkeypatch):
    _set_worker_env(monkeypatch)
    monkeypatch.delenv("GROQ_API_KEY")

    with pytest.raises(KeyError):
        WorkerConfig.from_env()


def test_control_config_requires_livekit_credentials(monkeypatch):
    monkeypatch.setattr("control_api.config.load_local_env", lambda: None)
    monkeypatch.setenv("LIVEKIT_URL", "wss://test.livekit.cloud")
    monkeypatch.setenv("LIVEKIT_API_KEY", "test_key")
    monkeypatch.delenv("LIVEKIT_API_SECRET", raising=False)

    with pytest.raises(ValueError, match="LIVEKIT_API_SECRET"):
        ControlConfig.from_env()

    monkeypatch.setenv("LIVEKIT_API_SECRET", "test_secret")
    assert ControlConfig.from_env().livekit_api_secret == "test_secret"
