from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "POS-LEDGER"
    DATABASE_URL: str = "sqlite+pysqlite:///./posledger.db"
    LOCK_TIMEOUT_MS: int = 5000
    LOG_LEVEL: str = "INFO"
    METRICS_ENABLED: bool = True
    OPS_ENABLE_INTEGRITY_SCAN: bool = True
    LIST_MAX_PAGE_SIZE: int = 200

settings = Settings()
