from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_list(*keys: str, default: str = "") -> List[str]:
    v = _get_env(*keys, default=default) or ""
    return [part.strip() for part in v.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    stripe_secret_key: str
    stripe_webhook_secret: str
    public_base_url: str
    currency: str
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_format: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    port: int = 8000


settings = Settings(
    database_url=_get_env("DATABASE_URL", "MONGODB_URI", default="mongodb://localhost:27017") or "",
    database_name=_get_env("DATABASE_NAME", default="storefront") or "storefront",
    stripe_secret_key=_get_env("STRIPE_SECRET_KEY", default="") or "",
    stripe_webhook_secret=_get_env("STRIPE_WEBHOOK_SECRET", default="") or "",
    public_base_url=(_get_env("PUBLIC_BASE_URL", "BASE_URL", default="http://localhost:8000") or "").rstrip("/"),
    currency=_get_env("CURRENCY", default="gbp") or "gbp",
    cors_origins=_get_list("CORS_ORIGINS", default="*"),
    log_level=_get_env("LOG_LEVEL", default="INFO") or "INFO",
    log_format=_get_env("LOG_FORMAT", default="%(asctime)s | %(levelname)s | %(name)s | %(message)s") or "",
    port=_get_int("PORT", default=8000) or 8000,
)
