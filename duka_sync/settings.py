from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    STORAGE_BACKEND: str = "sql"
    DB_URL: str = "sqlite+aiosqlite:///./duka_sync.db"

    REMOTE_BASE_URL: str = "http://localhost:54321/rest/v1"
    REMOTE_API_KEY: str = ""
    REMOTE_TIMEOUT: float = 10.0

    PROBE_ENABLED: bool = True
    PROBE_HOST: str = "localhost"
    PROBE_PORT: int = 54321
    PROBE_INTERVAL: float = 15.0
    PROBE_TIMEOUT: float = 3.0

    # Only one process per DB_URL may replay the queue.
    SYNC_ENABLED: bool = True
    SYNC_INTERVAL: float = 30.0
    ONLINE_SETTLE_DELAY: float = 1.0
    RESOLVER_TIMEOUT: float = 30.0

    RETRY_BASE_DELAY: float = 2.0
    RETRY_FACTOR: float = 2.0
    RETRY_MAX_DELAY: float = 300.0
    RETRY_MAX_ATTEMPTS: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
