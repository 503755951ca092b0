# bgchooser/schemas/updates.py
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .game import GameOut


class UpdateType(str, Enum):
    ADDED_GAMES = "addedGamesUpdate"
    ADDED_VOTES = "addedVotesUpdate"
    RESET_VOTES = "resetVotesUpdate"


class SubscriptionMessage(BaseModel):
    """
    プッシュチャネルで届く更新メッセージ。
    Go 側がタグ無しで JSON 化すると "Type" / "User" のような大文字キーになるので両方受け付ける。
    """

    type: str = Field(validation_alias=AliasChoices("type", "Type"))
    user: str = Field("", validation_alias=AliasChoices("user", "User"))
    games: list[GameOut] = Field(default_factory=list, validation_alias=AliasChoices("games", "Games"))
    votes: list[str] = Field(default_factory=list, validation_alias=AliasChoices("votes", "Votes"))
    vetoes: list[str] = Field(default_factory=list, validation_alias=AliasChoices("vetoes", "Vetoes"))

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("user", mode="before")
    @classmethod
    def _user_none(cls, v):
        return v or ""

    @field_validator("games", "votes", "vetoes", mode="before")
    @classmethod
    def _list_none(cls, v):
        return v or []


class AddGamesMessage(BaseModel):
    """コレクション取り込み（ストリーミング版）の進捗イベント。progress が 1.0 で終了。"""
    progress: float = 0.0
    game: GameOut | None = None
    error: str = ""
    new_game: bool = Field(False, alias="newGame")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("error", mode="before")
    @classmethod
    def _error_none(cls, v):
        return v or ""
