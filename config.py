"""
Application settings and default scenario inputs.

Settings are read from DAIRY_INVEST_* environment variables or a .env file.
"""

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Fallbacks and presentation settings"""

    # Used when no historical average exists for the study year
    FALLBACK_SELL_PRICE: float = 3.05
    FALLBACK_UNIT_COST: float = 1.98

    # Template for freshly initialised projection years
    DEFAULT_UNIT_COUNT: int = 200
    DEFAULT_YIELD_PER_UNIT_PER_DAY: float = 8.75
    DEFAULT_DAYS_IN_YEAR: int = 365

    CURRENCY_SYMBOL: str = "R$"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DAIRY_INVEST_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()


# Base scenario ("Cenário Base")
DEFAULTS = {
    "name": "Cenário Base",
    "principal": 6_000_000.0,
    "annual_rate": 16.5,
    "term_periods": 5,
    "grace_years": 0,
    "payment_frequency": "annual",
    "study_start_year": 2025,
    "projection_years": 9,
}

# year, animals, litres/animal/day, days, loss %, price, cost, extra revenue
BASE_CASE_YEARS = [
    (2025, 215, 33, 90, 0, 3.05, 1.98, 0),
    (2026, 265, 35, 365, 0, 3.05, 1.98, 0),
    (2027, 338, 36, 365, 0, 3.05, 1.98, 0),
    (2028, 425, 37, 365, 0, 3.05, 1.98, 0),
    (2029, 500, 38, 365, 0, 3.05, 1.98, 720_000),
    (2030, 500, 39, 365, 0, 3.05, 1.98, 2_400_000),
    (2031, 500, 40, 365, 0, 3.05, 1.98, 1_995_000),
    (2032, 500, 44, 365, 0, 3.05, 1.98, 2_295_000),
    (2033, 500, 45, 365, 0, 3.05, 1.98, 2_250_000),
]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
