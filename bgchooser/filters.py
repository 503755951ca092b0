# bgchooser/filters.py
"""部屋のゲーム一覧の絞り込み・並び替え。元のリストは変更しない。"""
from collections.abc import Iterable
from typing import Optional

from .models.game import Game

SORT_KEYS = ("votes", "name", "playtime", "players")


def score(game: Game) -> int:
    return len(game.votes) - len(game.vetoes)


def filter_games(
    games: Iterable[Game],
    players: Optional[int] = None,
    playtime: Optional[int] = None,
    category: Optional[str] = None,
    text: Optional[str] = None,
) -> list[Game]:
    out = []
    needle = text.strip().lower() if text else ""
    for g in games:
        info = g.info
        # 0 は「不明」扱いで絞り込まない
        if players is not None:
            if info.min_players and players < info.min_players:
                continue
            if info.max_players and players > info.max_players:
                continue
        if playtime is not None and info.max_playtime and info.max_playtime > playtime:
            continue
        if category and category not in g.categories:
            continue
        if needle and needle not in g.name.lower():
            continue
        out.append(g)
    return out


def hide_vetoed(games: Iterable[Game]) -> list[Game]:
    return [g for g in games if not g.vetoes]


def sort_games(games: Iterable[Game], by: str = "votes") -> list[Game]:
    games = list(games)
    if by == "votes":
        return sorted(games, key=lambda g: (-score(g), g.name.lower()))
    if by == "name":
        return sorted(games, key=lambda g: g.name.lower())
    if by == "playtime":
        return sorted(games, key=lambda g: (g.info.max_playtime, g.name.lower()))
    if by == "players":
        return sorted(games, key=lambda g: (g.info.max_players, g.info.min_players, g.name.lower()))
    raise ValueError(f"unknown sort key: {by} (expected one of {', '.join(SORT_KEYS)})")
