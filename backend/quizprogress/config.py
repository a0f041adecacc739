"""Application settings and validation."""

import os
from pathlib import Path

_BASE = Path(__file__).resolve().parent.parent
_TIME_RANGES = ("week", "month", "all")


class Settings:
    ENV: str
    DATABASE_URL: str
    DEFAULT_TIME_RANGE: str
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_BASE / 'app.db'}")
        self.DEFAULT_TIME_RANGE = os.getenv("DEFAULT_TIME_RANGE", "week").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self._validate()

    def _validate(self):
        if self.DEFAULT_TIME_RANGE not in _TIME_RANGES:
            raise RuntimeError(f"DEFAULT_TIME_RANGE must be one of {', '.join(_TIME_RANGES)}")
        if self.ENV != "dev" and self.DATABASE_URL.startswith("sqlite://") and ":memory:" in self.DATABASE_URL:
            raise RuntimeError("an in-memory DATABASE_URL is only allowed in the dev environment")


settings = Settings()
