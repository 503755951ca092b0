# bgchooser/models/game.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..schemas.game import GameInfo, GameOut
from ..schemas.room import VoteResults


@dataclass
class Game:
    """
    部屋に追加されたゲーム 1 件。
    votes / vetoes は「投票した / 拒否したユーザー ID」のリスト（重複なし）。
    """

    id: str
    name: str
    thumbnail: str = ""
    info: GameInfo = field(default_factory=GameInfo)
    categories: list[str] = field(default_factory=list)
    votes: list[str] = field(default_factory=list)
    vetoes: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        # id が無い古いデータは name で識別する
        return self.id or self.name

    def matches(self, key: str) -> bool:
        return bool(key) and key in (self.id, self.name)

    def reset_votes(self) -> None:
        self.votes = []
        self.vetoes = []

    def add_vote(self, user: str) -> None:
        if user not in self.votes:
            self.votes.append(user)

    def remove_vote(self, user: str) -> None:
        if user in self.votes:
            self.votes.remove(user)

    def add_veto(self, user: str) -> None:
        if user not in self.vetoes:
            self.vetoes.append(user)

    def remove_veto(self, user: str) -> None:
        if user in self.vetoes:
            self.vetoes.remove(user)

    def vote(self, user: str) -> None:
        """ユーザー操作による投票。拒否していれば先に取り消す。"""
        self.remove_veto(user)
        self.add_vote(user)

    def veto(self, user: str) -> None:
        """ユーザー操作による拒否。投票していれば先に取り消す。"""
        self.remove_vote(user)
        self.add_veto(user)

    def handle_user(
        self,
        user: str,
        votes: Iterable[str],
        vetoes: Iterable[str],
    ) -> None:
        """
        サーバーから届いた「user の現在の投票 / 拒否リスト（全件）」で
        このゲームの状態を上書きする。

        - リストにこのゲームがあれば user を追加（既にあれば何もしない）
        - 無ければ user を取り除く
        差分ではなく全件置き換えなので、同じ引数で何度呼んでも結果は同じ。
        """
        if any(self.matches(k) for k in votes):
            self.add_vote(user)
        else:
            self.remove_vote(user)

        if any(self.matches(k) for k in vetoes):
            self.add_veto(user)
        else:
            self.remove_veto(user)

    @classmethod
    def from_record(cls, record: Any) -> "Game":
        """
        Game / GameOut / dict のどれからでも新しい Game を作る。
        投票状態は引き継がない（常に空から始める）。
        """
        if isinstance(record, Game):
            out = GameOut(
                id=record.id,
                name=record.name,
                thumbnail=record.thumbnail,
                info=record.info,
                categories=record.categories,
            )
        elif isinstance(record, GameOut):
            out = record
        else:
            out = GameOut.model_validate(record)

        return cls(
            id=out.id,
            name=out.name,
            thumbnail=out.thumbnail,
            info=out.info.model_copy(),
            categories=list(out.categories),
        )


class GameCollection:
    """
    部屋内のゲーム一覧。key -> Game の辞書で、同じ key は 1 件だけ持つ。
    to_list() は Game オブジェクトそのもの（コピーではない）を返す。
    """

    def __init__(self) -> None:
        self.games: dict[str, Game] = {}
        self.has_games: bool = False

    def __len__(self) -> int:
        return len(self.games)

    def __iter__(self) -> Iterator[Game]:
        return iter(list(self.games.values()))

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def get(self, key: str) -> Optional[Game]:
        game = self.games.get(key)
        if game is not None:
            return game
        # 名前で参照してくる更新にも対応
        for g in self.games.values():
            if g.matches(key):
                return g
        return None

    def add_games(self, games: Iterable[Any]) -> list[Game]:
        """
        ゲームを追加する。既にある key は無視（先に来たメタデータを優先）。
        新しく追加された Game のリストを返す。
        """
        added: list[Game] = []
        for record in games:
            game = Game.from_record(record)
            if not game.key or game.key in self.games:
                continue
            self.games[game.key] = game
            added.append(game)

        if self.games:
            self.has_games = True
        return added

    def to_list(self) -> list[Game]:
        return list(self.games.values())

    def reset_votes(self) -> None:
        for game in self.games.values():
            game.reset_votes()

    def handle_user(
        self,
        user: str,
        votes: Iterable[str],
        vetoes: Iterable[str],
    ) -> None:
        votes = [k for k in votes if k]
        vetoes = [k for k in vetoes if k]
        for game in self.games.values():
            game.handle_user(user, votes, vetoes)

    def apply_vote_results(self, results: VoteResults | Mapping[str, Any]) -> None:
        """スナップショットの voteResults から全ユーザー分の投票状態を復元する。"""
        if not isinstance(results, VoteResults):
            results = VoteResults.model_validate(results)

        users = list(results.votes) + [u for u in results.vetoes if u not in results.votes]
        for user in users:
            self.handle_user(
                user,
                results.votes.get(user, []),
                results.vetoes.get(user, []),
            )
