import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        data_dir: Path,
        store_backend: str,
        users_file: Path,
        database_url: str,
        timezone: str,
        bcrypt_rounds: int,
        cors_origins: list[str],
        log_level: str,
    ) -> None:
        self.data_dir = data_dir
        self.store_backend = store_backend
        self.users_file = users_file
        self.database_url = database_url
        self.timezone = timezone
        self.bcrypt_rounds = bcrypt_rounds
        self.cors_origins = cors_origins
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    store_backend = os.getenv("FINANCE_STORE_BACKEND", "file").strip().lower()
    users_file = Path(os.getenv("FINANCE_USERS_FILE", str(data_dir / "users.json")))
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    bcrypt_rounds = int(os.getenv("FINANCE_BCRYPT_ROUNDS", "12"))
    cors_origins = [
        origin.strip()
        for origin in os.getenv("FINANCE_CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        data_dir=data_dir,
        store_backend=store_backend,
        users_file=users_file,
        database_url=database_url,
        timezone=timezone,
        bcrypt_rounds=bcrypt_rounds,
        cors_origins=cors_origins,
        log_level=log_level,
    )
