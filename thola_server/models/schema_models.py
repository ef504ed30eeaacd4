from pydantic import BaseModel
from datetime import datetime


class GameSessionSchema(BaseModel):
    id: str
    game_state: dict
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class UserStatsSchema(BaseModel):
    user_id: str
    name: str
    games_played: int
    games_won: int
    games_lost: int
    thola_received: int

    class Config:
        from_attributes = True


class UserStatsWithRateSchema(UserStatsSchema):
    win_rate: float
