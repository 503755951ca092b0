# bgchooser/schemas/game.py

from pydantic import BaseModel, ConfigDict, Field


class GameInfo(BaseModel):
    min_players: int = Field(0, alias="minPlayers")
    max_players: int = Field(0, alias="maxPlayers")
    min_playtime: int = Field(0, alias="minPlaytime")
    max_playtime: int = Field(0, alias="maxPlaytime")

    model_config = ConfigDict(populate_by_name=True)


class GameOut(BaseModel):
    id: str = ""
    name: str
    thumbnail: str = ""
    info: GameInfo = Field(default_factory=GameInfo)
    categories: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# --- 手入力追加（カタログ検索）用 ---

class SearchGame(BaseModel):
    id: str
    name: str
    year: str = ""
