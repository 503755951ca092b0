# bgchooser/config.py
"""環境変数から読む設定。"""
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):
    api_url: str = "http://localhost:8000"
    catalog_url: str = "https://boardgamegeek.com/xmlapi2"

    # カタログ側が 202（集計中）を返したときの再試行
    catalog_max_attempts: int = 10
    catalog_retry_delay_sec: float = 2.0

    # None = タイムアウト無し
    http_timeout_sec: Optional[float] = None

    log_level: str = "INFO"

    @property
    def ws_url(self) -> str:
        base = self.api_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + "/api/echo"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def load_settings() -> Settings:
    values = {
        "api_url": _env("BGCHOOSER_API_URL"),
        "catalog_url": _env("BGCHOOSER_CATALOG_URL"),
        "catalog_max_attempts": _env("BGCHOOSER_CATALOG_MAX_ATTEMPTS"),
        "catalog_retry_delay_sec": _env("BGCHOOSER_CATALOG_RETRY_DELAY_SEC"),
        "http_timeout_sec": _env("BGCHOOSER_HTTP_TIMEOUT_SEC"),
        "log_level": _env("BGCHOOSER_LOG_LEVEL"),
    }
    # 未設定のものはデフォルト値を使う
    return Settings(**{k: v for k, v in values.items() if v is not None})


@lru_cache
def get_settings() -> Settings:
    return load_settings()
