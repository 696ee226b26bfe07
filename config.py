import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        max_reference_depth: int,
        expression_max_length: int,
        default_user_id: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.max_reference_depth = max_reference_depth
        self.expression_max_length = expression_max_length
        self.default_user_id = default_user_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGET_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "budget.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Berlin")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    max_reference_depth = int(os.getenv("BUDGET_MAX_REFERENCE_DEPTH", "50"))
    expression_max_length = int(os.getenv("BUDGET_EXPRESSION_MAX_LENGTH", "1000"))
    default_user_id = os.getenv("BUDGET_DEFAULT_USER_ID", "default")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        max_reference_depth=max_reference_depth,
        expression_max_length=expression_max_length,
        default_user_id=default_user_id,
    )
