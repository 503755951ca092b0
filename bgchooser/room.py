# bgchooser/room.py
"""
部屋画面 1 つぶんの状態。

- 入室時にスナップショットを 1 回取得して GameCollection を作る
- プッシュチャネルの更新メッセージを同じ GameCollection に順番に適用する
- 自分の投票 / 拒否はまずローカルに反映し（楽観的更新）、そのあと全件をサーバーへ送る

非同期呼び出しの失敗はここで捕まえて各 *_error に入れる。外には投げない。
"""
import logging
from collections.abc import Iterable
from typing import Literal, Optional

from . import filters
from .api.catalog import CatalogClient
from .api.push import PushChannel
from .api.rooms import RoomApi
from .errors import (
    BackendError,
    CatalogError,
    CollectionImportError,
    PushChannelError,
    SnapshotError,
    VoteSubmitError,
)
from .models.game import Game, GameCollection
from .schemas.game import GameOut, SearchGame
from .schemas.room import VoteResults
from .schemas.updates import SubscriptionMessage, UpdateType

logger = logging.getLogger(__name__)

ALREADY_ADDED_INFO = (
    "All of this user's games have already been added to the room, try another user"
)

VoteState = Literal["voting", "vetoing", "none"]


class RoomView:
    def __init__(
        self,
        room_id: str,
        user_id: str,
        api: RoomApi,
        catalog: Optional[CatalogClient] = None,
    ):
        self.room_id = room_id
        self.user_id = user_id
        self.api = api
        self.catalog = catalog

        self.collection = GameCollection()

        # 自分（user_id）の投票 / 拒否しているゲーム key
        self.votes: list[str] = []
        self.vetoes: list[str] = []

        self.loading = False
        self.saving = False

        self.init_error: Optional[Exception] = None
        self.import_error: Optional[Exception] = None
        self.vote_error: Optional[Exception] = None
        self.import_info = ""
        self.import_progress = 0.0

    # -----------------------------
    # 自分の投票リスト
    # -----------------------------

    def _normalize(self, keys: Iterable[str]) -> list[str]:
        # 名前で届いたものも、部屋にあるゲームなら key（id）に揃える
        out: list[str] = []
        for k in keys:
            if not k:
                continue
            game = self.collection.get(k)
            key = game.key if game is not None else k
            if key not in out:
                out.append(key)
        return out

    @staticmethod
    def _discard(keys: list[str], game: Game) -> None:
        keys[:] = [k for k in keys if not game.matches(k)]

    def state_for(self, key: str) -> VoteState:
        game = self.collection.get(key)
        if game is None:
            return "none"
        if self.user_id in game.votes:
            return "voting"
        if self.user_id in game.vetoes:
            return "vetoing"
        return "none"

    # -----------------------------
    # スナップショット / 更新
    # -----------------------------

    def load(self) -> bool:
        self.loading = True
        self.init_error = None
        try:
            info = self.api.get_room_info(self.room_id)
        except BackendError as e:
            logger.error("failed to load room %s: %s", self.room_id, e)
            self.init_error = SnapshotError(f"Failed to load room {self.room_id}: {e}")
            return False
        finally:
            self.loading = False

        self.collection.add_games(info.games)
        self.apply_vote_results(info.vote_results)
        logger.info(
            "room %s loaded: %d games, %d voters",
            self.room_id,
            len(self.collection),
            len(set(info.vote_results.votes) | set(info.vote_results.vetoes)),
        )
        return True

    def apply_vote_results(self, results: VoteResults) -> None:
        self.collection.apply_vote_results(results)
        self.votes = self._normalize(results.votes.get(self.user_id, []))
        self.vetoes = self._normalize(results.vetoes.get(self.user_id, []))

    def apply_update(self, msg: SubscriptionMessage) -> None:
        if msg.type == UpdateType.ADDED_GAMES:
            added = self.collection.add_games(msg.games)
            logger.info("room %s: %d games added by %s", self.room_id, len(added), msg.user)
        elif msg.type == UpdateType.ADDED_VOTES:
            self.collection.handle_user(msg.user, msg.votes, msg.vetoes)
            logger.info(
                "room %s: %s voted (%d votes, %d vetoes)",
                self.room_id, msg.user, len(msg.votes), len(msg.vetoes),
            )
            if msg.user == self.user_id:
                self.votes = self._normalize(msg.votes)
                self.vetoes = self._normalize(msg.vetoes)
        elif msg.type == UpdateType.RESET_VOTES:
            logger.info("room %s: votes reset", self.room_id)
            self.collection.reset_votes()
            self.votes = []
            self.vetoes = []
        else:
            logger.warning("room %s: ignoring unknown update type %r", self.room_id, msg.type)

    def listen(self, channel: PushChannel) -> bool:
        """
        チャネルが閉じるまで更新を適用し続ける。
        失敗したら init_error に入れて終了（再接続はしない）。
        """
        try:
            channel.register(self.room_id)
            for msg in channel.messages():
                self.apply_update(msg)
        except PushChannelError as e:
            logger.error("push channel failed for room %s: %s", self.room_id, e)
            self.init_error = PushChannelError(
                f"Lost connection to room updates, please reload the page: {e}"
            )
            return False
        return True

    # -----------------------------
    # 投票 / 拒否
    # -----------------------------

    def toggle_vote(self, key: str) -> bool:
        game = self.collection.get(key)
        if game is None:
            logger.warning("room %s: vote for unknown game %r", self.room_id, key)
            return False

        if self.user_id in game.votes:
            game.remove_vote(self.user_id)
            self._discard(self.votes, game)
        else:
            game.vote(self.user_id)
            self._discard(self.vetoes, game)
            self.votes.append(game.key)
        return self._submit_votes()

    def toggle_veto(self, key: str) -> bool:
        game = self.collection.get(key)
        if game is None:
            logger.warning("room %s: veto for unknown game %r", self.room_id, key)
            return False

        if self.user_id in game.vetoes:
            game.remove_veto(self.user_id)
            self._discard(self.vetoes, game)
        else:
            game.veto(self.user_id)
            self._discard(self.votes, game)
            self.vetoes.append(game.key)
        return self._submit_votes()

    def _submit_votes(self) -> bool:
        # ローカルは既に更新済み。失敗しても巻き戻さない
        self.saving = True
        self.vote_error = None
        try:
            self.api.submit_votes(self.room_id, self.user_id, self.votes, self.vetoes)
        except BackendError as e:
            logger.warning("room %s: failed to save votes for %s: %s", self.room_id, self.user_id, e)
            self.vote_error = VoteSubmitError(f"Failed to save votes: {e}")
            return False
        finally:
            self.saving = False
        return True

    def reset_votes(self) -> bool:
        self.collection.reset_votes()
        self.votes = []
        self.vetoes = []

        self.saving = True
        self.vote_error = None
        try:
            self.api.reset_votes(self.room_id)
        except BackendError as e:
            logger.warning("room %s: failed to reset votes: %s", self.room_id, e)
            self.vote_error = VoteSubmitError(f"Failed to reset votes: {e}")
            return False
        finally:
            self.saving = False
        return True

    # -----------------------------
    # コレクション取り込み
    # -----------------------------

    def _not_in_room(self, games: list[GameOut]) -> list[GameOut]:
        new = [g for g in games if (g.id or g.name) not in self.collection]
        if games and not new:
            self.import_info = ALREADY_ADDED_INFO
        return new

    def fetch_collection(self, bgg_user: str) -> list[GameOut]:
        """外部カタログのユーザーのゲームのうち、まだ部屋に無いものを返す。"""
        bgg_user = bgg_user.strip()
        if not bgg_user:
            return []

        self.import_error = None
        self.import_info = ""
        try:
            res = self.api.get_bgg_user(self.room_id, bgg_user)
        except BackendError as e:
            self.import_error = CollectionImportError(
                f"Failed to retrieve games for user {bgg_user}: {e.detail}"
            )
            return []

        if res.games is None:
            self.import_error = CollectionImportError("User not found")
            return []
        return self._not_in_room(res.games)

    def fetch_catalog_collection(self, bgg_user: str) -> list[GameOut]:
        """fetch_collection と同じだが、バックエンドを通さずカタログへ直接問い合わせる。"""
        bgg_user = bgg_user.strip()
        if not bgg_user:
            return []

        self.import_error = None
        self.import_info = ""
        try:
            games = self._catalog().get_user_collection(bgg_user)
        except CatalogError as e:
            self.import_error = CollectionImportError(
                f"Failed to retrieve games for user {bgg_user}: {e}"
            )
            return []
        return self._not_in_room(games)

    def add_collection(self, bgg_user: str, games: Iterable[GameOut]) -> list[Game]:
        games = list(games)
        if not bgg_user.strip() or not games:
            return []

        self.import_error = None
        try:
            returned = self.api.add_bgg_user(self.room_id, bgg_user.strip(), games)
        except BackendError as e:
            self.import_error = CollectionImportError(
                f"Failed to add games for user {bgg_user}: {e.detail}"
            )
            return []
        return self.collection.add_games(returned)

    def stream_collection(self, bgg_user: str) -> bool:
        bgg_user = bgg_user.strip()
        if not bgg_user:
            return False

        self.import_error = None
        self.import_progress = 0.0
        try:
            for event in self.api.stream_bgg_user(self.room_id, bgg_user):
                if event.error:
                    self.import_error = CollectionImportError(event.error)
                    return False
                if event.game is not None and event.game.name:
                    self.collection.add_games([event.game])
                self.import_progress = event.progress
        except BackendError as e:
            self.import_error = CollectionImportError(
                f"Failed to import games for user {bgg_user}: {e.detail}"
            )
            return False
        if self.import_progress < 1.0:
            self.import_error = CollectionImportError(
                f"Import for user {bgg_user} ended before completion"
            )
            return False
        return True

    def add_game(self, game_id: str) -> Optional[Game]:
        """検索で選んだ 1 件を部屋に追加する。"""
        self.import_error = None
        try:
            game = self.api.add_game(self.room_id, self.user_id, game_id)
        except BackendError as e:
            self.import_error = CollectionImportError(e.detail)
            return None
        self.collection.add_games([game])
        return self.collection.get(game.id or game.name)

    def search_games(self, query: str) -> list[SearchGame]:
        query = query.strip()
        if len(query) < 3:
            return []
        self.import_error = None
        try:
            return self._catalog().search(query)
        except CatalogError as e:
            self.import_error = e
            return []

    def _catalog(self) -> CatalogClient:
        if self.catalog is None:
            self.catalog = CatalogClient()
        return self.catalog

    # -----------------------------
    # 表示用
    # -----------------------------

    def sorted_games(
        self,
        by: str = "votes",
        hide_vetoed: bool = False,
        **criteria,
    ) -> list[Game]:
        games = filters.filter_games(self.collection.to_list(), **criteria)
        if hide_vetoed:
            games = filters.hide_vetoed(games)
        return filters.sort_games(games, by=by)
