from __future__ import annotations

import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the weekly diet backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        self.env: str = (os.environ.get("DIETPLANNER_ENV") or "development").strip().lower()
        self.log_level: str = (os.environ.get("DIETPLANNER_LOG_LEVEL") or "INFO").strip().upper()

        self.data_root: Path = Path(
            os.environ.get("DIETPLANNER_DATA_ROOT") or data_root_default
        ).expanduser()
        self.app_db_path: Path = Path(
            os.environ.get("DIETPLANNER_DB_PATH") or (self.data_root / "dietplanner.db")
        ).expanduser()

        # In production you MUST set DIETPLANNER_JWT_SECRET. The dev secret only keeps local demos easy.
        self.jwt_secret: str = os.environ.get("DIETPLANNER_JWT_SECRET") or "dev-secret-change-me"
        self.token_ttl_days: int = int(os.environ.get("DIETPLANNER_TOKEN_TTL_DAYS") or "7")

        # ---- Composer (meal selection) ----
        self.composer_url: str | None = os.environ.get("DIETPLANNER_COMPOSER_URL") or None
        self.composer_api_key: str | None = os.environ.get("DIETPLANNER_COMPOSER_API_KEY") or None
        self.composer_timeout: float = float(os.environ.get("DIETPLANNER_COMPOSER_TIMEOUT") or "15")
        self.diversity_level: str = os.environ.get("DIETPLANNER_DIVERSITY_LEVEL") or "medium"

        # ---- Outbound retry ----
        self.retry_attempts: int = int(os.environ.get("DIETPLANNER_RETRY_ATTEMPTS") or "3")
        self.retry_base_delay: float = float(os.environ.get("DIETPLANNER_RETRY_BASE_DELAY") or "1.0")

        # ---- Weekly read cache ----
        self.cache_ttl_sec: float = float(os.environ.get("DIETPLANNER_CACHE_TTL") or "300")

        cors = os.environ.get("DIETPLANNER_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]

    @property
    def is_production(self) -> bool:
        return self.env == "production"


settings = Settings()
