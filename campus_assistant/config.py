"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Campus Assistant"
    log_level: str = "info"

    # Assistant service
    assistant_ws_url: str = "ws://localhost:8000/ws/chat"
    assistant_api_url: str = "http://localhost:8000/api"
    api_timeout_seconds: float = 10.0

    # Reveal pacing (seconds)
    reveal_token_delay: float = 0.03
    finalize_settle_margin: float = 0.5

    # Scroll follow
    scroll_bottom_threshold: float = 20.0

    # Local persisted state
    state_file: Path = Path("~/.campus_assistant/state.json")

    @property
    def state_path(self) -> Path:
        return self.state_file.expanduser()


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
