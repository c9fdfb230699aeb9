from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Health endpoint
    health_path: str = "/health"
    cache_ttl: float = 1.0  # seconds; 0 disables caching
    global_timeout: float = 10.0  # seconds bounding one evaluation

    # Runtime probes
    task_threshold: int = 100
    task_probe_timeout: float = 2.0
    thread_threshold: int = 0  # 0 = probe disabled
    gc_pause_threshold_ms: float = 0.0  # 0 = probe disabled

    # Database probe (sqlite file; empty = disabled)
    database_path: str = ""
    database_probe_timeout: float = 2.0
    database_ping_timeout: float = 1.0

    # Extra http/tcp/dns probes
    probes_file: str = "probes.yaml"

    # Notifications
    status_webhook_url: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
