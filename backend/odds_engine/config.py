from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine.url import URL, make_url


class Settings(BaseSettings):
    app_name: str = "OddsEngine"
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/odds_engine"

    consensus_lookback_minutes: int = 180
    refresh_horizon_hours: int = 72
    edge_top_n: int = 20
    momentum_top_n: int = 20
    momentum_short_minutes: int = 15
    momentum_long_minutes: int = 60
    cycle_history_size: int = 5

    price_drift_threshold_bps: int = 50
    price_drift_recent_limit: int = 20

    closing_grace_minutes: int = 120
    closing_capture_interval_minutes: int = 10
    edge_refresh_interval_minutes: int = 5
    momentum_refresh_interval_minutes: int = 5
    clv_update_interval_minutes: int = 30

    rationale_api_key: str = ""
    rationale_base_url: str = "https://api.openai.com/v1"
    rationale_model: str = "gpt-4o-mini"
    rationale_timeout_seconds: float = 3.0
    rationale_max_concurrency: int = 4
    rationale_cache_ttl_seconds: int = 3600
    rationale_cache_max_entries: int = 1024

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()


def get_database_url() -> str:
    return settings.database_url


def get_database_identity() -> tuple[str, str]:
    parsed: URL = make_url(get_database_url())
    return parsed.host or "<unknown>", parsed.database or "<unknown>"
