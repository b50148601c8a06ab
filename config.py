import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        locale: str,
        secret_key: str,
        token_max_age_hours: int,
        balance_retry_attempts: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.locale = locale
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.balance_retry_attempts = balance_retry_attempts
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Madrid")
    locale = os.getenv("LEDGER_LOCALE", "es")
    secret_key = os.getenv(
        "LEDGER_SECRET_KEY",
        "3f9d0c1e7a4b52c86e1d0f2a9b7c4e5d6a8f1b2c3d4e5f60718293a4b5c6d7e8",
    )
    token_max_age_hours = int(os.getenv("LEDGER_TOKEN_MAX_AGE_HOURS", "24"))
    balance_retry_attempts = int(os.getenv("LEDGER_BALANCE_RETRY_ATTEMPTS", "3"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        locale=locale,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        balance_retry_attempts=balance_retry_attempts,
        log_level=log_level,
    )
