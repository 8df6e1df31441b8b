import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

STORAGE_KEY = "ai_studio_sessions"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class ConfigError(Exception):
    pass


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _api_key_from_env() -> str | None:
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY") or None


@dataclass
class StudioConfig:
    api_key: str | None = field(default_factory=_api_key_from_env)
    api_base: str = field(
        default_factory=lambda: get_optional_env("STUDIO_API_BASE", DEFAULT_API_BASE)
    )
    data_dir: str = field(
        default_factory=lambda: get_optional_env("STUDIO_DATA_DIR", ".studio")
    )
    storage_key: str = STORAGE_KEY
    request_timeout_s: float = field(
        default_factory=lambda: float(get_optional_env("STUDIO_REQUEST_TIMEOUT", "120"))
    )
    video_poll_interval_s: float = field(
        default_factory=lambda: float(get_optional_env("STUDIO_VIDEO_POLL_INTERVAL", "10"))
    )
    video_max_polls: int = field(
        default_factory=lambda: int(get_optional_env("STUDIO_VIDEO_MAX_POLLS", "60"))
    )

    @classmethod
    def from_env(cls, data_dir: str | None = None) -> "StudioConfig":
        try:
            config = cls()
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting in environment: {e}") from e
        if data_dir:
            config.data_dir = data_dir
        return config

    @property
    def snapshot_path(self) -> Path:
        return Path(self.data_dir) / f"{self.storage_key}.json"

    @property
    def templates_dir(self) -> Path:
        return Path(self.data_dir) / "templates"

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("GEMINI_API_KEY (or API_KEY) is not set")
        return self.api_key

    def validate(self, network: bool = False) -> None:
        if self.request_timeout_s <= 0:
            raise ConfigError("request_timeout_s must be > 0")
        if self.video_poll_interval_s < 0:
            raise ConfigError("video_poll_interval_s must be >= 0")
        if self.video_max_polls < 1:
            raise ConfigError("video_max_polls must be at least 1")
        if not self.api_base.startswith(("http://", "https://")):
            raise ConfigError(f"api_base must be an http(s) URL: {self.api_base}")
        if network:
            self.require_api_key()
        logger.debug("Configuration validated successfully")
