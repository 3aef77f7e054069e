"""
Academy Config - Supabase, Stripe and runtime settings
"""
import sys
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class AcademySettings(BaseSettings):
    """Runtime settings, read from the environment / .env"""

    # Supabase
    SUPABASE_URL: str = Field(default="", description="Supabase Project URL")
    SUPABASE_KEY: str = Field(default="", description="Supabase anon key")
    SUPABASE_SERVICE_KEY: str = Field(default="", description="Service role key (webhooks bypass RLS)")

    # Stripe
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_MODE: str = Field(default="live", description="live | test")

    # Processor price id overrides per plan
    PRICE_ELITE: Optional[str] = None
    PRICE_ALL_PRO: Optional[str] = None
    PRICE_PRO: Optional[str] = None
    PRICE_ROOKIE: Optional[str] = None

    # Behaviour switches
    ACADEMY_TEST_MODE: bool = False
    ALLOW_WALK_IN_CHECKIN: bool = False
    ENFORCE_CAPACITY: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def supabase_configured(self) -> bool:
        return bool(self.SUPABASE_URL and (self.SUPABASE_SERVICE_KEY or self.SUPABASE_KEY))

    @property
    def is_test_mode_stripe(self) -> bool:
        return self.STRIPE_MODE.lower() == "test"

    def price_override(self, plan_key: str) -> Optional[str]:
        return getattr(self, f"PRICE_{plan_key.upper()}", None)


@lru_cache()
def get_settings() -> AcademySettings:
    return AcademySettings()


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(settings: Optional[AcademySettings] = None) -> None:
    """stderr sink + daily rotated file sink"""
    settings = settings or get_settings()

    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=settings.LOG_LEVEL)

    log_dir = Path(settings.LOG_DIR)
    logger.add(
        str(log_dir / "academy_{time:YYYY-MM-DD}.log"),
        rotation="1 day",
        retention="30 days",
        level="DEBUG"
    )
