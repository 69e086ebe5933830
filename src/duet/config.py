"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Processing backend
    backend_url: str = "http://localhost:8090"
    api_token: str | None = None
    user_id: str = "local-user"
    request_timeout: float = 30.0
    default_publish_ideas: bool = False

    # Job registry housekeeping (seconds)
    grace_period_seconds: float = 120.0
    sweep_interval_seconds: float = 30.0

    # Completion notices
    completion_notice_window: float = 10.0
    notifications_enabled: bool = True

    # Push channel reconnect backoff (seconds)
    channel_backoff_initial: float = 1.0
    channel_backoff_max: float = 30.0

    # Video player pool
    player_pool_capacity: int = 4
    visibility_threshold: float = 0.5
    acquire_retry_delay: float = 0.3

    # Local dev server
    host: str = "127.0.0.1"
    port: int = 8090
    log_level: str = "info"
    json_logs: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "DUET_",
    }


settings = Settings()
