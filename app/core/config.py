from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process configuration, read from the environment (or .env).
    Field names map to upper-case env vars: DELIVERY_WINDOW_HOURS, ...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Farmer Merchant Produce Marketplace"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    db_echo: bool = False

    # ─────────── IDENTITY (tokens minted by the identity provider) ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── LEDGER ───────────
    currency: str = "INR"

    # ─────────── AUCTIONS / DELIVERY ───────────
    # seller acceptance -> buyer confirmation deadline; the sweep refunds after this
    delivery_window_hours: int = 48

    # ─────────── LIVE FEEDS ───────────
    feed_poll_seconds: float = 2.0
    stream_heartbeat_seconds: float = 15.0

    # ─────────── SCHEDULER HOOKS ───────────
    # shared secret for the external scheduler hitting /maintenance; empty disables
    maintenance_token: str = ""


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
