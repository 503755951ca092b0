# bgchooser/api/catalog.py
"""
ボードゲームカタログ（BoardGameGeek XML API2）クライアント。

コレクション取得は、BGG 側の集計が終わるまで 202 が返ってくるので
一定間隔で再試行する。回数に上限があり、超えたら CatalogTimeoutError。
"""
import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import Optional

import httpx

from ..config import Settings, get_settings
from ..errors import CatalogError, CatalogTimeoutError
from ..schemas.game import GameInfo, GameOut, SearchGame

logger = logging.getLogger(__name__)


def _int_attr(elem: Optional[ET.Element], name: str) -> int:
    if elem is None:
        return 0
    try:
        return int(elem.get(name, "0") or 0)
    except ValueError:
        return 0


def _text(elem: ET.Element, path: str) -> str:
    found = elem.find(path)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def _parse(body: str) -> ET.Element:
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise CatalogError(f"invalid catalog response: {e}") from e

    # ユーザー不明などは <errors><error><message>...</message></error></errors>
    if root.tag == "errors" or root.find("error") is not None:
        message = _text(root, ".//message") or "unknown catalog error"
        raise CatalogError(message)
    return root


def parse_collection(body: str) -> list[GameOut]:
    root = _parse(body)
    games: list[GameOut] = []
    for item in root.findall("item"):
        stats = item.find("stats")
        games.append(
            GameOut(
                id=item.get("objectid", ""),
                name=_text(item, "name"),
                thumbnail=_text(item, "thumbnail"),
                info=GameInfo(
                    min_players=_int_attr(stats, "minplayers"),
                    max_players=_int_attr(stats, "maxplayers"),
                    min_playtime=_int_attr(stats, "minplaytime"),
                    max_playtime=_int_attr(stats, "maxplaytime"),
                ),
            )
        )
    return games


def parse_search(body: str) -> list[SearchGame]:
    root = _parse(body)
    if root.get("total") == "0":
        return []

    results: list[SearchGame] = []
    for item in root.findall("item"):
        name = item.find("name")
        year = item.find("yearpublished")
        results.append(
            SearchGame(
                id=item.get("id", ""),
                name=name.get("value", "") if name is not None else "",
                year=year.get("value", "") if year is not None else "",
            )
        )
    return results


def parse_thing(body: str) -> GameOut:
    root = _parse(body)
    item = root.find("item")
    if item is None:
        raise CatalogError("game not found")

    names = item.findall("name")
    primary = next((n for n in names if n.get("type") == "primary"), None)
    if primary is None and names:
        primary = names[0]
    name = primary.get("value", "") if primary is not None else ""

    def value(tag: str) -> int:
        return _int_attr(item.find(tag), "value")

    return GameOut(
        id=item.get("id", ""),
        name=name,
        thumbnail=_text(item, "thumbnail"),
        info=GameInfo(
            min_players=value("minplayers"),
            max_players=value("maxplayers"),
            min_playtime=value("minplaytime"),
            max_playtime=value("maxplaytime"),
        ),
        categories=[
            link.get("value", "")
            for link in item.findall("link")
            if link.get("type") == "boardgamecategory"
        ],
    )


class CatalogClient:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = settings or get_settings()
        self.client = client or httpx.Client(
            base_url=settings.catalog_url,
            timeout=settings.http_timeout_sec,
            follow_redirects=True,
        )
        self.max_attempts = max(1, settings.catalog_max_attempts)
        self.retry_delay = settings.catalog_retry_delay_sec
        self.sleep = sleep

    def _get(self, path: str, params: dict) -> httpx.Response:
        try:
            return self.client.get(path, params=params)
        except httpx.HTTPError as e:
            raise CatalogError(str(e)) from e

    def _get_ready(self, path: str, params: dict) -> str:
        for attempt in range(1, self.max_attempts + 1):
            res = self._get(path, params)
            if res.status_code == 202:
                logger.info(
                    "catalog processing %s (attempt %d/%d)",
                    path, attempt, self.max_attempts,
                )
                if attempt < self.max_attempts:
                    self.sleep(self.retry_delay)
                continue
            if res.status_code != 200:
                raise CatalogError(f"non-200 received from catalog: {res.status_code} {res.text}")
            return res.text

        raise CatalogTimeoutError(self.max_attempts)

    def get_user_collection(self, username: str) -> list[GameOut]:
        body = self._get_ready(
            "/collection",
            {"username": username, "own": 1, "stats": 1},
        )
        games = parse_collection(body)
        logger.info("catalog user %s owns %d games", username, len(games))
        return games

    def search(self, query: str) -> list[SearchGame]:
        body = self._get_ready("/search", {"type": "boardgame", "query": query})
        return parse_search(body)

    def get_game(self, game_id: str) -> GameOut:
        body = self._get_ready("/thing", {"id": game_id, "stats": 1})
        return parse_thing(body)

    def close(self) -> None:
        self.client.close()
