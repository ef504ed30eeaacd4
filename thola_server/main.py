from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from redis.asyncio import Redis

from thola_server.db import Session, engine
from thola_server.load_secrets import (
    game_channel,
    game_session_id,
    log_level,
    max_players,
    redis_host,
    redis_port,
    settle_delay_seconds,
)
from thola_server.manager import ConnectionManager
from thola_server.models.schemas import Base
from thola_server.routers import game
from thola_server.routers import restapi
from thola_server.services.broadcaster import FanoutBroadcaster, RedisBroadcaster
from thola_server.services.game_engine import GameEngine
from thola_server.services.session_store import DatabaseSessionStore
from thola_server.services.stats_recorder import StatsRecorder

logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logging.getLogger("aiosqlite").setLevel(logging.WARNING)

scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app):
    """Create the tables and wire the game engine to the store, Redis and the scheduler.
    This function is called to start the server.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    redis = Redis(host=redis_host, port=redis_port, decode_responses=True, health_check_interval=30)
    connect_manager = ConnectionManager()
    stats_recorder = StatsRecorder(Session)
    game_engine = GameEngine(
        store=DatabaseSessionStore(Session, game_session_id),
        broadcaster=FanoutBroadcaster([RedisBroadcaster(redis, game_channel), connect_manager]),
        scheduler=scheduler,
        stats_recorder=stats_recorder,
        settle_delay=settle_delay_seconds,
        max_players=max_players,
    )

    app.state.Session = Session
    app.state.redis = redis
    app.state.game_channel = game_channel
    app.state.connect_manager = connect_manager
    app.state.stats_recorder = stats_recorder
    app.state.game_engine = game_engine

    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        await game_engine.drain()
        await redis.aclose()
        await engine.dispose()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(game.game_router)
app.include_router(restapi.rest_router)
