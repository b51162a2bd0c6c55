from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── AISstream ─────────────────────────────────────────────
    AISSTREAM_API_KEY: str = ""
    AISSTREAM_WS_URL: str = "wss://stream.aisstream.io/v0/stream"
    FILTER_MESSAGE_TYPES: list[str] = []

    # ── Subscription bounding box (whole world by default) ──
    BBOX_LAT_MIN: float = -90.0
    BBOX_LAT_MAX: float = 90.0
    BBOX_LON_MIN: float = -180.0
    BBOX_LON_MAX: float = 180.0

    # ── Storage ───────────────────────────────────────────────
    DATABASE_URL: str | None = None
    DB_USER: str | None = None
    DB_PSWD: str | None = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "vessels"

    # ── Redis (worker stats) ──────────────────────────────────
    REDIS_URL: str | None = None
    REDIS_STATS_KEY: str = "openships:worker:stats"
    STATS_INTERVAL_SEC: float = 5.0

    # ── History gate ──────────────────────────────────────────
    MIN_DISTANCE_METERS: float = 100.0
    MIN_TIME_DIFF_MS: int = 5 * 60 * 1000

    # ── History write buffer ──────────────────────────────────
    HISTORY_BUFFER_MAX: int = 5000
    HISTORY_MAX_BATCH: int = 500
    HISTORY_FLUSH_INTERVAL_MS: int = 1000
    HISTORY_RETRY_CAP: int = 3
    HISTORY_SHUTDOWN_FLUSH_TIMEOUT_SEC: float = 2.0

    # ── Last-observed cache ───────────────────────────────────
    CACHE_TTL_MS: int = 24 * 60 * 60 * 1000
    CACHE_MAX_SIZE: int = 10_000
    CACHE_CLEAN_INTERVAL_MS: int = 10 * 60 * 1000

    # ── Connection ────────────────────────────────────────────
    RECONNECT_MIN_DELAY_MS: int = 1000
    RECONNECT_MAX_DELAY_MS: int = 60_000
    RECONNECT_JITTER_MS: int = 300
    SHUTDOWN_GRACE_SEC: float = 1.0
    MAX_INFLIGHT_HANDLERS: int = 1000

    # ── API ───────────────────────────────────────────────────
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str | None:
        """Async SQLAlchemy URL, or None when storage credentials are missing."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not (self.DB_USER and self.DB_PSWD):
            return None
        return (
            f"postgresql+asyncpg://{quote_plus(self.DB_USER)}:{quote_plus(self.DB_PSWD)}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    def bounding_boxes(self) -> list:
        """AISstream format: [[[lat_min, lon_min], [lat_max, lon_max]]] (normalized so min < max)."""
        lat_min = min(self.BBOX_LAT_MIN, self.BBOX_LAT_MAX)
        lat_max = max(self.BBOX_LAT_MIN, self.BBOX_LAT_MAX)
        lon_min = min(self.BBOX_LON_MIN, self.BBOX_LON_MAX)
        lon_max = max(self.BBOX_LON_MIN, self.BBOX_LON_MAX)
        return [
            [
                [lat_min, lon_min],
                [lat_max, lon_max],
            ]
        ]


settings = Settings()
