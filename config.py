import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        token_max_age_hours: int,
        default_currency: str,
        budget_horizon_years: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.token_max_age_hours = token_max_age_hours
        self.default_currency = default_currency
        self.budget_horizon_years = budget_horizon_years


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Europe/Berlin")
    auth_secret = os.getenv(
        "FINTRACK_AUTH_SECRET",
        "5f1c0e6a9b2d47c38e41f7a0d9b63c25e8a4f1d07c6b92e3a5d8f04b1c7e29a6",
    )
    token_max_age_hours = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_HOURS", "24"))
    default_currency = os.getenv("FINTRACK_DEFAULT_CURRENCY", "₹")
    budget_horizon_years = int(os.getenv("FINTRACK_BUDGET_HORIZON_YEARS", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        token_max_age_hours=token_max_age_hours,
        default_currency=default_currency,
        budget_horizon_years=budget_horizon_years,
    )
