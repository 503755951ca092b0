# bgchooser/__init__.py
from .models.game import Game, GameCollection
from .room import RoomView

__all__ = [
    "Game",
    "GameCollection",
    "RoomView",
]
