from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "PYME CRM API"
    app_env: str = "local"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./pymecrm.db"
    database_echo: bool = False

    default_country: str = "Costa Rica"
    default_stage_color: str = "#3b82f6"
    list_default_limit: int = 50
    list_max_limit: int = 200
    seed_on_startup: bool = False

    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
