from .game import Game, GameCollection

__all__ = [
    "Game",
    "GameCollection",
]
