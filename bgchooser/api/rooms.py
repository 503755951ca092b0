# bgchooser/api/rooms.py

import json
import logging
from collections.abc import Iterable, Iterator
from typing import TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ..errors import BackendError
from ..schemas.game import GameOut
from ..schemas.room import (
    AddGameOut,
    BggUserGames,
    NewRoomOut,
    RoomInfo,
    VotesUpdate,
)
from ..schemas.updates import AddGamesMessage

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _seg(value: str) -> str:
    # パスの 1 区間としてエスケープ（"/" も含めて）
    return quote(value, safe="")


class RoomApi:
    """
    部屋 / 投票まわりのバックエンド API。
    client は base_url 設定済みの httpx.Client（テストでは TestClient）。
    """

    def __init__(self, client: httpx.Client, prefix: str = "/api"):
        self.client = client
        self.prefix = prefix.rstrip("/")

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = self.prefix + path
        try:
            res = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise BackendError(str(e)) from e

        if res.status_code < 200 or res.status_code >= 300:
            logger.warning("%s %s -> %s %s", method, url, res.status_code, res.text)
            raise BackendError(res.text, status_code=res.status_code)
        return res

    @staticmethod
    def _decode(res: httpx.Response, model: type[ModelT]) -> ModelT:
        # 2xx でも JSON でない / 形が合わない応答は BackendError として扱う
        try:
            return model.model_validate(res.json())
        except ValueError as e:
            logger.warning("malformed response from %s: %s", res.request.url, e)
            raise BackendError(
                f"malformed response: {res.text[:200]!r}",
                status_code=res.status_code,
            ) from e

    # -----------------------------
    # 部屋
    # -----------------------------

    def create_room(self) -> str:
        res = self._request("POST", "/rooms")
        return self._decode(res, NewRoomOut).room_id

    def get_room_info(self, room_id: str) -> RoomInfo:
        res = self._request("GET", f"/rooms/{_seg(room_id)}")
        return self._decode(res, RoomInfo)

    # -----------------------------
    # コレクション取り込み
    # -----------------------------

    def get_bgg_user(self, room_id: str, bgg_user: str) -> BggUserGames:
        res = self._request("GET", f"/rooms/{_seg(room_id)}/bgguser/{_seg(bgg_user)}")
        return self._decode(res, BggUserGames)

    def add_bgg_user(
        self,
        room_id: str,
        bgg_user: str,
        games: Iterable[GameOut],
    ) -> list[GameOut]:
        body = BggUserGames(games=list(games)).model_dump(by_alias=True)
        res = self._request(
            "POST",
            f"/rooms/{_seg(room_id)}/bgguser/{_seg(bgg_user)}",
            json=body,
        )
        return self._decode(res, BggUserGames).games or []

    def stream_bgg_user(self, room_id: str, bgg_user: str) -> Iterator[AddGamesMessage]:
        """
        ストリーミング版の取り込み。1 行 1 イベント（NDJSON）で進捗が届く。
        progress が 1.0 に達したところで終わる。
        """
        url = f"{self.prefix}/rooms/{_seg(room_id)}/bgguser/{_seg(bgg_user)}/stream"
        try:
            with self.client.stream("POST", url) as res:
                if res.status_code < 200 or res.status_code >= 300:
                    res.read()
                    raise BackendError(res.text, status_code=res.status_code)
                for line in res.iter_lines():
                    if not line.strip():
                        continue
                    try:
                        msg = AddGamesMessage.model_validate(json.loads(line))
                    except ValueError as e:
                        raise BackendError(f"malformed progress event: {line!r}") from e
                    yield msg
                    if msg.progress >= 1.0:
                        return
        except httpx.HTTPError as e:
            raise BackendError(str(e)) from e

    def add_game(self, room_id: str, user_id: str, game_id: str) -> GameOut:
        res = self._request(
            "POST",
            f"/rooms/{_seg(room_id)}/games/{_seg(user_id)}/{_seg(game_id)}",
        )
        return self._decode(res, AddGameOut).game

    # -----------------------------
    # 投票
    # -----------------------------

    def submit_votes(
        self,
        room_id: str,
        user_id: str,
        votes: Iterable[str],
        vetoes: Iterable[str],
    ) -> None:
        body = VotesUpdate(votes=list(votes), vetoes=list(vetoes))
        self._request(
            "POST",
            f"/rooms/{_seg(room_id)}/vote/{_seg(user_id)}",
            json=body.model_dump(),
        )

    def reset_votes(self, room_id: str) -> None:
        self._request("POST", f"/rooms/{_seg(room_id)}/reset")
