from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Leadflow API"
    app_env: str = "local"
    app_version: str = "0.1.0"
    database_url: str = "sqlite+pysqlite:///./leadflow.db"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    auth_cookie_name: str = "token"
    media_root: str = "./media"
    media_base_url: str = "http://localhost:8000/media"
    log_level: str = "INFO"
    correlation_id_max_length: int = 128
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "leadflow-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
