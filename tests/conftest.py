# tests/conftest.py
import json
from collections import defaultdict

import pytest
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from websockets.exceptions import ConnectionClosedOK

from bgchooser.api.catalog import CatalogClient
from bgchooser.api.rooms import RoomApi
from bgchooser.config import Settings
from bgchooser.room import RoomView


def make_game(game_id: str, name: str, min_players=2, max_players=4, min_playtime=30, max_playtime=60, categories=None):
    return {
        "id": game_id,
        "name": name,
        "thumbnail": f"https://example.test/{game_id}.png",
        "info": {
            "minPlayers": min_players,
            "maxPlayers": max_players,
            "minPlaytime": min_playtime,
            "maxPlaytime": max_playtime,
        },
        "categories": categories or [],
    }


CATAN = make_game("13", "Catan", 3, 4, 60, 120, ["Negotiation"])
AZUL = make_game("230802", "Azul", 2, 4, 30, 45, ["Abstract Strategy"])
CARCASSONNE = make_game("822", "Carcassonne", 2, 5, 30, 45, ["City Building"])


# -----------------------------
# バックエンドのフェイク（メモリ上）
# -----------------------------

class FakeBackend:
    def __init__(self):
        self.room_seq = 0
        # room_id -> bgg_user -> [game]
        self.games: dict[str, dict[str, list[dict]]] = defaultdict(dict)
        # room_id -> user -> {"votes": [...], "vetoes": [...]}
        self.votes: dict[str, dict[str, dict]] = defaultdict(dict)
        # room_id -> 送信待ちのプッシュメッセージ
        self.messages: dict[str, list] = defaultdict(list)
        # 外部カタログ上のユーザーのコレクション
        self.collections: dict[str, list[dict]] = {
            "alice": [CATAN, AZUL],
            "bob": [AZUL, CARCASSONNE],
            "nobody": [],
        }
        self.things: dict[str, dict] = {g["id"]: g for g in (CATAN, AZUL, CARCASSONNE)}
        # 失敗させたい操作名（"snapshot", "vote", "reset", "bgguser", "add_game", "stream"）
        self.fail: set[str] = set()
        self.vote_requests: list[dict] = []
        # 設定されていればスナップショットの代わりにそのまま返す
        self.snapshot_override = None

    def room_games(self, room_id: str) -> list[dict]:
        out = []
        for games in self.games[room_id].values():
            out.extend(games)
        return out

    def publish(self, room_id: str, message) -> None:
        self.messages[room_id].append(message)


def _boom(op: str):
    return PlainTextResponse(f"{op} failed", status_code=500)


def create_fake_backend(state: FakeBackend) -> FastAPI:
    app = FastAPI()

    @app.post("/api/rooms")
    def new_room():
        state.room_seq += 1
        return {"roomID": f"{state.room_seq:05d}"}

    @app.get("/api/rooms/{room_id}")
    def get_room_info(room_id: str):
        if "snapshot" in state.fail:
            return _boom("snapshot")
        if state.snapshot_override is not None:
            return state.snapshot_override
        votes = state.votes[room_id]
        return {
            "games": state.room_games(room_id) or None,
            "voteResults": {
                "votes": {u: v["votes"] for u, v in votes.items()},
                "vetoes": {u: v["vetoes"] for u, v in votes.items()},
            },
        }

    @app.get("/api/rooms/{room_id}/bgguser/{bgg_user}")
    def get_bgg_user(room_id: str, bgg_user: str):
        if "bgguser" in state.fail:
            return _boom("bgguser")
        return {"games": state.collections.get(bgg_user)}

    @app.post("/api/rooms/{room_id}/bgguser/{bgg_user}")
    async def add_bgg_user(room_id: str, bgg_user: str, request: Request):
        if "bgguser" in state.fail:
            return _boom("bgguser")
        body = await request.json()
        state.games[room_id][bgg_user] = body["games"]
        state.publish(room_id, {"type": "addedGamesUpdate", "user": bgg_user, "games": body["games"]})
        return body

    @app.post("/api/rooms/{room_id}/bgguser/{bgg_user}/stream")
    def stream_bgg_user(room_id: str, bgg_user: str):
        if "stream" in state.fail:
            return _boom("stream")
        games = state.collections.get(bgg_user, [])
        present = {g["id"] for g in state.room_games(room_id)}

        def events():
            if bgg_user == "ratelimited":
                yield json.dumps({"progress": 0, "error": "catalog is rate limiting, try again later"}) + "\n"
                return
            if bgg_user == "dropped":
                # 途中で切れる
                yield json.dumps({"progress": 0.5, "game": AZUL, "error": ""}) + "\n"
                return
            added = []
            for i, g in enumerate(games, start=1):
                added.append(g)
                yield json.dumps({
                    "progress": i / len(games),
                    "game": g,
                    "error": "",
                    "newGame": g["id"] not in present,
                }) + "\n"
            if not games:
                yield json.dumps({"progress": 1.0, "game": None, "error": ""}) + "\n"
            state.games[room_id][bgg_user] = added

        return StreamingResponse(events(), media_type="application/x-ndjson")

    @app.post("/api/rooms/{room_id}/games/{user_id}/{game_id}")
    def add_game(room_id: str, user_id: str, game_id: str):
        if "add_game" in state.fail:
            return _boom("add_game")
        game = state.things.get(game_id)
        if game is None:
            return PlainTextResponse("game not found", status_code=404)
        state.games[room_id].setdefault(user_id, []).append(game)
        state.publish(room_id, {"type": "addedGamesUpdate", "user": user_id, "games": [game]})
        return {"game": game}

    @app.post("/api/rooms/{room_id}/vote/{user_id}")
    async def add_votes(room_id: str, user_id: str, request: Request):
        body = await request.json()
        state.vote_requests.append({"room": room_id, "user": user_id, **body})
        if "vote" in state.fail:
            return _boom("vote")
        state.votes[room_id][user_id] = {"votes": body["votes"], "vetoes": body["vetoes"]}
        # Go 側の構造体そのまま（タグ無し）の形で流す
        state.publish(room_id, {
            "Type": "addedVotesUpdate",
            "User": user_id,
            "Games": None,
            "Votes": body["votes"],
            "Vetoes": body["vetoes"],
        })
        return Response(status_code=200)

    @app.post("/api/rooms/{room_id}/reset")
    def reset_votes(room_id: str):
        if "reset" in state.fail:
            return _boom("reset")
        state.votes[room_id].clear()
        state.publish(room_id, {"type": "resetVotesUpdate"})
        return Response(status_code=200)

    @app.websocket("/api/echo")
    async def echo(websocket: WebSocket):
        await websocket.accept()
        text = await websocket.receive_text()
        room_id = text.split(":", 1)[1]
        for message in state.messages[room_id]:
            if isinstance(message, str):
                await websocket.send_text(message)
            else:
                await websocket.send_json(message)
        await websocket.close()

    return app


# -----------------------------
# カタログ（BGG XML API2）のフェイク
# -----------------------------

COLLECTION_XML = """<?xml version="1.0" encoding="utf-8" standalone="yes"?>
<items totalitems="2" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item objecttype="thing" objectid="13" subtype="boardgame" collid="1">
    <name sortindex="1">Catan</name>
    <yearpublished>1995</yearpublished>
    <thumbnail>https://cf.geekdo-images.com/catan_t.jpg</thumbnail>
    <stats minplayers="3" maxplayers="4" minplaytime="60" maxplaytime="120" playingtime="120" numowned="1">
      <rating value="N/A"/>
    </stats>
  </item>
  <item objecttype="thing" objectid="230802" subtype="boardgame" collid="2">
    <name sortindex="1">Azul</name>
    <thumbnail>https://cf.geekdo-images.com/azul_t.jpg</thumbnail>
    <stats minplayers="2" maxplayers="4" minplaytime="30" maxplaytime="45" playingtime="45" numowned="1"/>
  </item>
</items>
"""

ERRORS_XML = """<?xml version="1.0" encoding="utf-8" standalone="yes"?>
<errors><error><message>Invalid username specified</message></error></errors>
"""

SEARCH_XML = """<?xml version="1.0" encoding="utf-8"?>
<items total="2" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="13">
    <name type="primary" value="Catan"/>
    <yearpublished value="1995"/>
  </item>
  <item type="boardgame" id="27710">
    <name type="primary" value="Catan Dice Game"/>
  </item>
</items>
"""

EMPTY_SEARCH_XML = """<?xml version="1.0" encoding="utf-8"?>
<items total="0" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse"></items>
"""

THING_XML = """<?xml version="1.0" encoding="utf-8"?>
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="822">
    <thumbnail>https://cf.geekdo-images.com/carc_t.jpg</thumbnail>
    <name type="alternate" sortindex="1" value="Carcassonne: Die Stadt"/>
    <name type="primary" sortindex="1" value="Carcassonne"/>
    <minplayers value="2"/>
    <maxplayers value="5"/>
    <minplaytime value="30"/>
    <maxplaytime value="45"/>
    <link type="boardgamecategory" id="1029" value="City Building"/>
    <link type="boardgamecategory" id="1035" value="Medieval"/>
    <link type="boardgamemechanic" id="2002" value="Tile Placement"/>
  </item>
</items>
"""


class FakeCatalog:
    def __init__(self):
        # username -> あと何回 202 を返すか
        self.pending: dict[str, int] = {}
        self.calls: list[str] = []


def create_fake_catalog(state: FakeCatalog) -> FastAPI:
    app = FastAPI()

    def xml(body: str, status_code: int = 200) -> Response:
        return Response(body, status_code=status_code, media_type="text/xml")

    @app.get("/collection")
    def collection(username: str, own: int = 0, stats: int = 0):
        state.calls.append(username)
        remaining = state.pending.get(username, 0)
        if remaining:
            state.pending[username] = remaining - 1
            return xml(
                "<message>Your request for this collection has been accepted "
                "and will be processed.</message>",
                status_code=202,
            )
        if username == "unknown":
            return xml(ERRORS_XML)
        if username == "broken":
            return PlainTextResponse("internal error", status_code=500)
        return xml(COLLECTION_XML)

    @app.get("/search")
    def search(query: str, type: str = "boardgame"):
        state.calls.append(query)
        if query == "zzzz":
            return xml(EMPTY_SEARCH_XML)
        return xml(SEARCH_XML)

    @app.get("/thing")
    def thing(id: str, stats: int = 0):
        state.calls.append(id)
        return xml(THING_XML)

    return app


class SessionConnection:
    """TestClient の WebSocket セッションを PushChannel の Connection として使う。"""

    def __init__(self, session):
        self.session = session

    def send(self, message: str) -> None:
        self.session.send_text(message)

    def recv(self) -> str:
        try:
            return self.session.receive_text()
        except WebSocketDisconnect as e:
            raise ConnectionClosedOK(None, None) from e

    def close(self) -> None:
        pass


@pytest.fixture(scope="function")
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(scope="function")
def client(backend: FakeBackend) -> TestClient:
    with TestClient(create_fake_backend(backend)) as c:
        yield c


@pytest.fixture(scope="function")
def api(client: TestClient) -> RoomApi:
    return RoomApi(client)


@pytest.fixture(scope="function")
def view(api: RoomApi) -> RoomView:
    return RoomView("00001", "u1", api)


@pytest.fixture(scope="function")
def settings() -> Settings:
    return Settings(
        catalog_url="http://testserver",
        catalog_max_attempts=3,
        catalog_retry_delay_sec=0.5,
    )


@pytest.fixture(scope="function")
def sleeps() -> list:
    return []


@pytest.fixture(scope="function")
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture(scope="function")
def catalog(fake_catalog: FakeCatalog, settings: Settings, sleeps: list) -> CatalogClient:
    with TestClient(create_fake_catalog(fake_catalog)) as c:
        yield CatalogClient(client=c, settings=settings, sleep=sleeps.append)
