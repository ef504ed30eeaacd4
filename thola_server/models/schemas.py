from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import JSON, Integer, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime


class Base(DeclarativeBase):
    pass


class GameSession(Base):
    __tablename__ = "game_sessions"
    # Fixed id such as "main-game-session"; there is exactly one row in use.
    id = Column(String, primary_key=True)
    game_state = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)


class UserStats(Base):
    __tablename__ = "user_stats"
    # Stable player identity handed to the game by the auth layer
    user_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    games_played = Column(Integer, nullable=False, default=0)
    games_won = Column(Integer, nullable=False, default=0)
    games_lost = Column(Integer, nullable=False, default=0)
    thola_received = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
