from __future__ import annotations

import os


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kart_league.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


POINTS_CACHE_TTL_SECONDS = _int_env("POINTS_CACHE_TTL_SECONDS", 120)
CORS_ORIGINS = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
]
