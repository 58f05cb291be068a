import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLOWRUNNER_",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    data_dir: Path = Path("data")

    # ------------------------------------------------------------------
    # Engine limits
    # ------------------------------------------------------------------
    max_iterations: int = 10_000
    element_timeout_ms: int = 10_000        # selector waits before a step fails
    navigation_wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    # When true, scheduled runs that need a browser launch a private headless
    # Chromium instead of driving the registered interactive surface.
    headless_schedules: bool = False
    execution_log_limit: int = 10

    # ------------------------------------------------------------------
    # Outbound HTTP (AI providers, apiCall steps)
    # ------------------------------------------------------------------
    http_timeout_seconds: float = 30.0
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_api_key: Optional[str] = None
    anthropic_base_url: str = "https://api.anthropic.com"
    ollama_base_url: str = "http://localhost:11434"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    debug_log_capacity: int = 1000

    @property
    def workflows_dir(self) -> Path:
        return self.data_dir / "workflows"

    @property
    def schedules_dir(self) -> Path:
        return self.data_dir / "schedules"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "schedule_logs"

    @property
    def screenshots_dir(self) -> Path:
        return self.data_dir / "screenshots"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure the root logger once, honouring ``log_level``."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
