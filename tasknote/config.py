from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    api_url: str
    database_url: str
    request_timeout: float = 15.0
    log_level: str = "INFO"
    log_dir: str = "logs"
    reorder_workers: int = 8


load_env()

API_URL = os.getenv("API_URL", "").strip() or "http://localhost:8080/api"
if not API_URL.startswith(("http://", "https://")):
    raise RuntimeError(f"API_URL must be an http(s) URL, got {API_URL!r}.")

SETTINGS = Settings(
    api_url=API_URL.rstrip("/"),
    database_url=os.getenv("DATABASE_URL", "").strip() or f"sqlite:///{PROJECT_ROOT / 'tasknote.db'}",
    request_timeout=float(os.getenv("REQUEST_TIMEOUT", "15")),
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    reorder_workers=int(os.getenv("REORDER_WORKERS", "8")),
)
