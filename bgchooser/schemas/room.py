# bgchooser/schemas/room.py
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .game import GameOut


class NewRoomOut(BaseModel):
    room_id: str = Field(alias="roomID")

    model_config = ConfigDict(populate_by_name=True)


class VoteResults(BaseModel):
    # user_id -> そのユーザーが投票 / 拒否しているゲーム key のリスト
    votes: dict[str, list[str]] = Field(default_factory=dict)
    vetoes: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("votes", "vetoes", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or {}


class RoomInfo(BaseModel):
    games: list[GameOut] = Field(default_factory=list)
    vote_results: VoteResults = Field(default_factory=VoteResults, alias="voteResults")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("games", mode="before")
    @classmethod
    def _games_none_to_empty(cls, v):
        return v or []


class VotesUpdate(BaseModel):
    """投票送信の body。差分ではなく、そのユーザーの全件。"""
    votes: list[str] = Field(default_factory=list)
    vetoes: list[str] = Field(default_factory=list)


class BggUserGames(BaseModel):
    # ユーザーが見つからないとき games は null で返ってくる
    games: list[GameOut] | None = None


class AddGameOut(BaseModel):
    game: GameOut
