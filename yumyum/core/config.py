from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./metrics.db"

    # Scheduler trust boundary
    CRON_SECRET: str = ""

    # Admin sessions (HS256)
    SESSION_SECRET: str = "change-me"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_EXPIRE_DAYS: int = 7
    SESSION_COOKIE_NAME: str = "admin_token"

    # One-time passcodes
    OTP_TTL_SECONDS: int = 300
    OTP_BACKEND: str = "memory"  # or "redis"
    ADMIN_OWNER_IDS: str = ""  # comma-separated Telegram ids
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_BASE: str = "https://api.telegram.org"

    # Redis
    RATE_LIMIT_REDIS_URL: str = "redis://localhost:6379/0"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_RETRIES: int = 2
    HTTP_BACKOFF_BASE_SECONDS: float = 0.5

    # Headless browser
    SCRAPE_NAV_TIMEOUT_MS: int = 30000
    SCRAPE_RENDER_WAIT_MS: int = 2500
    SCRAPE_USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    ETF_FLOW_DAYS: int = 1

    # External APIs
    COINGECKO_BASE: str = "https://api.coingecko.com/api/v3"
    ALTERNATIVE_BASE: str = "https://api.alternative.me"
    DEFILLAMA_BASE: str = "https://api.llama.fi"
    STABLECOINS_BASE: str = "https://stablecoins.llama.fi"
    ULTRASOUND_BASE: str = "https://ultrasound.money/api/v2/fees"
    BEACONCHAIN_BASE: str = "https://beaconcha.in/api/v1"
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"
    BINANCE_FUTURES_BASE: str = "https://fapi.binance.com"
    FARSIDE_BASE: str = "https://farside.co.uk"
    DEFILLAMA_WEB_BASE: str = "https://defillama.com"

    class Config:
        env_file = ".env"

    @property
    def admin_owner_ids(self) -> List[int]:
        ids = []
        for raw in self.ADMIN_OWNER_IDS.split(","):
            raw = raw.strip()
            if raw.lstrip("-").isdigit():
                ids.append(int(raw))
        return ids


@lru_cache()
def get_settings() -> Settings:
    return Settings()
