from typing import List, Optional

import numpy as np
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from thola_server.models.dc_models import Card, GameState, GameStatus, Player, TableCard
from thola_server.models.schemas import Base
from thola_server.services.game_engine import GameEngine
from thola_server.services.session_store import InMemorySessionStore


def card(code: str) -> Card:
    """'5H' -> five of hearts, '10S' -> ten of spades"""
    return Card.of(code[-1], code[:-1])


def make_player(player_id: str, cards: List[str], **kwargs) -> Player:
    kwargs.setdefault("name", player_id.upper())
    return Player(id=player_id, hand=[card(c) for c in cards], **kwargs)


def playing_state(players: List[Player], current_turn: str, table: Optional[List[tuple]] = None) -> GameState:
    for index, player in enumerate(players):
        player.join_order = index
    table_cards = [TableCard(player_id=pid, card=card(code)) for pid, code in (table or [])]
    return GameState(
        players=players,
        current_turn=current_turn,
        current_suit=table_cards[0].card.suit if table_cards else None,
        table_cards=table_cards,
        status=GameStatus.playing,
    )


class ManualScheduler:
    """Collects settlement jobs; tests fire them explicitly."""

    def __init__(self):
        self.jobs = []

    def add_job(self, func, trigger=None, args=None, **kwargs):
        self.jobs.append((func, list(args or []), trigger, kwargs))

    async def run_all(self):
        jobs, self.jobs = self.jobs, []
        return [await func(*args) for func, args, _, _ in jobs]


class RecordingBroadcaster:
    def __init__(self):
        self.events = []

    async def publish(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> list:
        return [payload for name, payload in self.events if name == event]


class FailingBroadcaster:
    async def publish(self, event: str, payload: dict) -> None:
        raise ConnectionError("redis is down")


class RecordingStats:
    def __init__(self, fail: bool = False):
        self.results = []
        self.fail = fail

    async def record_game_result(self, result) -> None:
        if self.fail:
            raise RuntimeError("stats database is down")
        self.results.append(result)


class Harness:
    def __init__(self, state: Optional[GameState] = None, broadcaster=None, stats=None, **kwargs):
        self.store = InMemorySessionStore(state)
        self.broadcaster = broadcaster or RecordingBroadcaster()
        self.scheduler = ManualScheduler()
        self.stats = stats
        self.engine = GameEngine(
            store=self.store,
            broadcaster=self.broadcaster,
            scheduler=self.scheduler,
            stats_recorder=stats,
            rng=np.random.default_rng(7),
            **kwargs,
        )

    async def state(self) -> GameState:
        return await self.engine.get_state()

    async def settle(self):
        results = await self.scheduler.run_all()
        await self.engine.drain()
        return results


@pytest.fixture
def harness():
    return Harness


@pytest.fixture
async def db_session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(autocommit=False, class_=AsyncSession, bind=engine)
    await engine.dispose()
