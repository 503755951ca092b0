# bgchooser/api/deps.py

from collections.abc import Generator
from typing import Optional

import httpx

from ..config import Settings, get_settings


def create_http_client(
    settings: Optional[Settings] = None,
    base_url: Optional[str] = None,
) -> httpx.Client:
    settings = settings or get_settings()
    return httpx.Client(
        base_url=base_url if base_url is not None else settings.api_url,
        timeout=settings.http_timeout_sec,
        follow_redirects=True,
    )


def get_http_client(settings: Optional[Settings] = None) -> Generator[httpx.Client, None, None]:
    """
    バックエンド用 HTTP クライアントを 1 つ作り、使い終わったら閉じる。
    `with contextlib.contextmanager(get_http_client)() as client:` のように使う。
    """
    client = create_http_client(settings)
    try:
        yield client
    finally:
        client.close()
