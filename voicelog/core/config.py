"""Application configuration via pydantic-settings.

All values loaded from the .env file at the project root.
The .env file takes precedence over OS-level environment variables
so stale system env vars never shadow the project config.
No hardcoded secrets anywhere.
"""

from pathlib import Path
from typing import Literal, Tuple, Type

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

# Resolve .env from project root (two levels up: voicelog/core/config.py → voicelog → project root)
_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Central application settings. .env file wins over OS env vars."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Override source priority: .env file > OS env vars > defaults."""
        return (init_settings, dotenv_settings, env_settings, file_secret_settings)

    # --- Store ---
    store_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "voicelog"

    # --- Ingestion ---
    end_of_call_report_type: str = "end-of-call-report"
    server_session_prefix: str = "sS"
    session_timezone: str = "UTC"
    allocation_max_attempts: int = 50
    # Honor call.metadata.provisionalSessionId when it is still free
    honor_provisional_ids: bool = False

    # --- Client ---
    client_session_prefix: str = "eS"
    client_state_path: Path = Path.home() / ".voicelog" / "provisional.json"
    voice_public_key: str = ""
    voice_assistant_id: str = ""
    user_label: str = "Jordan"
    assistant_label: str = "eA"
    auto_reset_seconds: float | None = None
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 10.0

    # --- App ---
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


settings = Settings()
