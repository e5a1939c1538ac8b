"""
Configuration for the control API.

Only the LiveKit credentials are needed (to send data packets into rooms).
Loaded lazily so importing the app never requires them.
"""
import os
from dataclasses import dataclass
from typing import Optional

from voice_loop.config import load_local_env


@dataclass
class ControlConfig:
    livekit_url: str
    livekit_api_key: str
    livekit_api_secret: str

    @classmethod
    def from_env(cls) -> "ControlConfig":
        """Load configuration from environment variables. Raises ValueError when incomplete."""
        load_local_env()

        config = cls(
            livekit_url=os.getenv("LIVEKIT_URL", ""),
            livekit_api_key=os.getenv("LIVEKIT_API_KEY", ""),
            livekit_api_secret=os.getenv("LIVEKIT_API_SECRET", ""),
        )

        if not config.livekit_url:
            raise ValueError("LIVEKIT_URL is required")
        if not config.livekit_api_key:
            raise ValueError("LIVEKIT_API_KEY is required")
        if not config.livekit_api_secret:
            raise ValueError("LIVEKIT_API_SECRET is required")
        return config


def get_control_config() -> ControlConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = ControlConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[ControlConfig] = None
