"""Forwarder configuration via Pydantic Settings.

All settings are configurable via environment variables or .env file.
The instance is frozen; components receive it explicitly at construction.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", frozen=True)

    app_name: str = "Sabisu Forwarder"
    debug: bool = False

    # Event queue (Redis list fed by the monitoring server)
    redis_url: str = "redis://localhost:6379"
    queue_name: str = "sabisu_events"

    # CouchDB: current state + append-only history
    couchdb_url: str = "http://localhost:5984"
    couchdb_user: str = ""
    couchdb_password: str = ""
    current_db: str = "sabisu"
    history_db: str = "sabisu_history"

    # Batching: whichever limit is hit first closes the batch
    max_batch_count: int = 100
    max_wait_time: float = 5.0   # seconds
    queue_retry_seconds: float = 1.0

    # Store client
    store_timeout: float = 10.0
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: float = 30.0

    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


settings = Settings()
