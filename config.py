import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        log_level: str = "INFO",
        seed_default_categories: bool = True,
    ) -> None:
        self.database_url = database_url
        self.log_level = log_level
        self.seed_default_categories = seed_default_categories


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        log_level=log_level,
        seed_default_categories=_env_flag("FINANCE_SEED_DEFAULTS", "1"),
    )
