from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import datetime
from typing import List
import logging

from thola_server.models.schema_models import GameSessionSchema, UserStatsSchema
from thola_server.models.schemas import GameSession, UserStats


class CreateData:
    @staticmethod
    async def create_game_session(session_id: str, game_state: dict, session: AsyncSession) -> bool:
        """Insert the initial row of the shared game session

        Args:
            session_id (str): Fixed id of the game session
            game_state (dict): Serialized initial GameState

        Returns:
            bool: False if another worker created the row first
        """
        async with session:
            try:
                session.add(
                    GameSession(
                        id=session_id,
                        game_state=game_state,
                        version=0,
                        created_at=datetime.now(),
                        updated_at=datetime.now(),
                    )
                )
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                logging.info(f"Game session {session_id} already exists")
                return False
            except SQLAlchemyError as e:
                logging.error(f"Failed to create game session: {e}")
                raise

    @staticmethod
    async def create_user_stats(user_id: str, name: str, session: AsyncSession) -> UserStats:
        """Add an empty stats row for a player. The caller commits."""
        user_stats = UserStats(
            user_id=user_id,
            name=name,
            games_played=0,
            games_won=0,
            games_lost=0,
            thola_received=0,
            created_at=datetime.now(),
        )
        session.add(user_stats)
        return user_stats


class ReadData:
    @staticmethod
    async def read_game_session(session_id: str, session: AsyncSession) -> GameSessionSchema | None:
        """Read the stored snapshot and its version

        Args:
            session_id (str): Fixed id of the game session

        Returns:
            GameSessionSchema | None: None if the row does not exist yet
        """
        async with session:
            try:
                stmt = select(GameSession).where(GameSession.id == session_id)
                result = await session.execute(stmt)
                result = result.scalars().first()

                if result is None:
                    return None

                return GameSessionSchema.model_validate(result)
            except SQLAlchemyError as e:
                logging.error(f"Failed to read game session: {e}")
                raise

    @staticmethod
    async def read_all_user_stats(session: AsyncSession) -> List[UserStatsSchema]:
        """Read every player's stats, most games played first"""
        async with session:
            stmt = select(UserStats).order_by(desc(UserStats.games_played))
            result = await session.execute(stmt)
            return [UserStatsSchema.model_validate(row) for row in result.scalars().all()]


class UpdateData:
    @staticmethod
    async def update_game_session(
        session_id: str, game_state: dict, expected_version: int, session: AsyncSession
    ) -> bool:
        """Compare-and-swap the stored snapshot

        Args:
            session_id (str): Fixed id of the game session
            game_state (dict): Serialized GameState to store
            expected_version (int): Version the caller read

        Returns:
            bool: False if the version changed since it was read
        """
        async with session:
            try:
                stmt = (
                    update(GameSession)
                    .where(
                        GameSession.id == session_id,
                        GameSession.version == expected_version,
                    )
                    .values(
                        game_state=game_state,
                        version=expected_version + 1,
                        updated_at=datetime.now(),
                    )
                )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1
            except SQLAlchemyError as e:
                logging.error(f"Failed to update game session: {e}")
                raise

    @staticmethod
    async def update_user_stats(
        user_id: str,
        name: str,
        won: bool,
        lost: bool,
        thola_received: int,
        session: AsyncSession,
    ) -> None:
        """Add one finished game to the player's counters. The caller commits."""
        stmt = select(UserStats).where(UserStats.user_id == user_id)
        result = await session.execute(stmt)
        user_stats = result.scalars().first()

        if user_stats is None:
            user_stats = await CreateData.create_user_stats(user_id, name, session)

        user_stats.name = name
        user_stats.games_played += 1
        if won:
            user_stats.games_won += 1
        if lost:
            user_stats.games_lost += 1
        user_stats.thola_received += thola_received
