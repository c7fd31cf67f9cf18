"""Unified configuration of the voice client."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILENAME = "souschef.json"


class Settings(BaseSettings):
    """Global settings, read from the environment, .env and souschef.json."""

    model_config = SettingsConfigDict(
        env_prefix="SOUSCHEF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    base_url: str = "http://127.0.0.1:3000"
    api_token: str | None = None
    verify_ssl: bool = True
    request_timeout: float = 60.0

    # Wake word / listening
    wake_phrases: list[str] = ["hey sous", "hey sue", "hey souz", "hey soos"]
    follow_up_seconds: float = 6.0

    # Speech output
    speech_rate: float = 1.05
    tts_voice: str = "en_US-amy-medium"
    tts_model_dir: str = "models/tts"
    output_device: str | None = None

    # Speech recognition
    recognition_url: str = "ws://127.0.0.1:8765/recognize"
    recognition_language: str = "en-US"
    sample_rate: int = 16_000
    input_device: str | None = None

    # Logs
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load souschef.json from the working directory if present."""
        config_path = Path.cwd() / CONFIG_FILENAME
        if config_path.is_file():
            try:
                data = json.loads(config_path.read_text(encoding="utf-8"))
            except ValueError:
                return {}
            return data if isinstance(data, dict) else {}
        return {}


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
