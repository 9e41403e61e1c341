from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Storage
    db_path: str = "data/pulseboard.db"
    catalog_path: str = "catalog.yaml"  # seeded into the store on startup if present
    probe_history_days: int = 30

    # Probing
    probe_timeout_ms: int = 2000
    slow_threshold_ms: int = 300
    failure_threshold: int = 3  # consecutive failures before escalation
    reconcile_interval_seconds: int = 300

    # Sharding: each instance only probes the services it owns
    instance_index: int = 0
    instance_count: int = 1

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Notifications (optional, Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    notification_feed_size: int = 100


settings = Settings()
