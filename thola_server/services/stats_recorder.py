"""DB service layer for finished-game statistics.

- The game engine calls record_game_result fire-and-forget when a game ends.
- This layer owns the transaction: all players of one game are updated together.
"""

import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from thola_server.crud import ReadData, UpdateData
from thola_server.models.dc_models import GameResult
from thola_server.models.schema_models import UserStatsSchema


class StatsRecorder:
    def __init__(self, Session: async_sessionmaker):
        self.Session: async_sessionmaker = Session

    async def record_game_result(self, result: GameResult) -> None:
        """Increment games played for everyone, games won for players who got out,
        games lost for the Bhabi and the Thola cards each player received.
        """
        if not result.players:
            logging.info("No player with a stable identity; skipping stats")
            return

        async with self.Session() as session:
            async with session.begin():
                for player in result.players:
                    await UpdateData.update_user_stats(
                        player.stable_id,
                        player.name,
                        player.won,
                        player.lost,
                        player.thola_received,
                        session,
                    )
        logging.info(f"Stats updated for {len(result.players)} players (Bhabi: {result.bhabi_name})")

    async def read_all_stats(self) -> list[UserStatsSchema]:
        async with self.Session() as session:
            return await ReadData.read_all_user_stats(session)
