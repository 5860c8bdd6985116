"""
Application configuration loaded from environment variables with sensible
defaults for local development.

All settings are validated at startup via Pydantic ``BaseSettings``.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the CrowdFlash realtime backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -- Application --
    app_name: str = "CrowdFlash Realtime"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # -- Server --
    host: str = "0.0.0.0"
    port: int = 3000

    # -- API --
    api_v1_prefix: str = "/api/v1"
    allowed_origins: str = "*"

    # -- JWT / Identity provider --
    jwt_secret: str = "crowdflash-dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # -- WebSocket --
    ws_ping_timeout: int = 30
    ws_ping_interval: int = 25
    # socket.io-client default path
    ws_socketio_path: str = "socket.io"
    ws_mailbox_size: int = 100
    ws_enforce_admin_commands: bool = False

    @property
    def cors_origins(self) -> list[str] | str:
        """Comma-separated ``allowed_origins`` as a list, or ``*``."""
        if self.allowed_origins.strip() == "*":
            return "*"
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


settings = Settings()
