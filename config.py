import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        auth_secret: str,
        token_max_age_hours: int,
        default_page_limit: int,
        max_page_limit: int,
        export_row_limit: int,
        enforce_category_type: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.auth_secret = auth_secret
        self.token_max_age_hours = token_max_age_hours
        self.default_page_limit = default_page_limit
        self.max_page_limit = max_page_limit
        self.export_row_limit = export_row_limit
        self.enforce_category_type = enforce_category_type
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    auth_secret = os.getenv(
        "FINANCE_AUTH_SECRET",
        "5b0f3c1e9a6d4e2f8c7b1a0d9e8f7a6b5c4d3e2f1a0b9c8d7e6f5a4b3c2d1e0f",
    )
    token_max_age_hours = int(os.getenv("FINANCE_TOKEN_MAX_AGE_HOURS", "168"))
    default_page_limit = int(os.getenv("FINANCE_DEFAULT_PAGE_LIMIT", "20"))
    max_page_limit = int(os.getenv("FINANCE_MAX_PAGE_LIMIT", "100"))
    export_row_limit = int(os.getenv("FINANCE_EXPORT_ROW_LIMIT", "10000"))
    return Settings(
        database_url=database_url,
        auth_secret=auth_secret,
        token_max_age_hours=token_max_age_hours,
        default_page_limit=default_page_limit,
        max_page_limit=max_page_limit,
        export_row_limit=export_row_limit,
        enforce_category_type=_env_flag("FINANCE_ENFORCE_CATEGORY_TYPE"),
        log_level=os.getenv("FINANCE_LOG_LEVEL", "INFO").upper(),
    )
