import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        store_timeout_secs: float,
        alert_cooldown_hours: int,
        renewal_window_days: int,
        auto_post_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.store_timeout_secs = store_timeout_secs
        self.alert_cooldown_hours = alert_cooldown_hours
        self.renewal_window_days = renewal_window_days
        self.auto_post_enabled = auto_post_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "Europe/Berlin")
    store_timeout_secs = float(os.getenv("FINANCE_STORE_TIMEOUT_SECS", "5"))
    alert_cooldown_hours = int(os.getenv("FINANCE_ALERT_COOLDOWN_HOURS", "24"))
    renewal_window_days = int(os.getenv("FINANCE_RENEWAL_WINDOW_DAYS", "7"))
    auto_post_enabled = _env_flag("FINANCE_AUTO_POST_ENABLED")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        store_timeout_secs=store_timeout_secs,
        alert_cooldown_hours=alert_cooldown_hours,
        renewal_window_days=renewal_window_days,
        auto_post_enabled=auto_post_enabled,
    )
