"""Storage of the single shared game session.

- The engine reads a snapshot together with its version and writes it back
  with the version it read (compare-and-swap).
- A write against an outdated version raises VersionConflict; the engine
  re-runs the action on a fresh snapshot.
- Any other storage error surfaces as PersistenceFailure.
"""

import asyncio
import copy
import logging
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from thola_server.converter import DataConverter
from thola_server.crud import CreateData, ReadData, UpdateData
from thola_server.exceptions import PersistenceFailure, VersionConflict
from thola_server.models.dc_models import GameState

data_converter = DataConverter()


class SessionStore:
    """Read/write interface over the stored game session."""

    async def load(self) -> Tuple[GameState, int]:
        raise NotImplementedError

    async def save(self, state: GameState, expected_version: int) -> int:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Keeps the serialized snapshot in process memory."""

    def __init__(self, initial_state: GameState | None = None):
        state = initial_state or GameState()
        self._payload: dict = data_converter.convert_state_to_payload(state)
        self._version: int = 0
        self._lock = asyncio.Lock()

    @property
    def version(self) -> int:
        return self._version

    async def load(self) -> Tuple[GameState, int]:
        async with self._lock:
            payload = copy.deepcopy(self._payload)
            version = self._version
        return data_converter.convert_payload_to_state(payload), version

    async def save(self, state: GameState, expected_version: int) -> int:
        payload = data_converter.convert_state_to_payload(state)
        async with self._lock:
            if expected_version != self._version:
                raise VersionConflict(
                    f"expected version {expected_version}, found {self._version}"
                )
            self._payload = payload
            self._version += 1
            return self._version


class DatabaseSessionStore(SessionStore):
    """Keeps the snapshot in the game_sessions table, one row per session id."""

    def __init__(self, Session: async_sessionmaker, session_id: str):
        self.Session: async_sessionmaker = Session
        self.session_id: str = session_id

    async def load(self) -> Tuple[GameState, int]:
        try:
            async with self.Session() as session:
                session_data = await ReadData.read_game_session(self.session_id, session)
            if session_data is None:
                initial_state = GameState()
                async with self.Session() as session:
                    created = await CreateData.create_game_session(
                        self.session_id,
                        data_converter.convert_state_to_payload(initial_state),
                        session,
                    )
                if created:
                    logging.info(f"Created game session {self.session_id}")
                    return initial_state, 0
                # Another worker created it first
                async with self.Session() as session:
                    session_data = await ReadData.read_game_session(self.session_id, session)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to read game session: {e}") from e

        if session_data is None:
            raise PersistenceFailure(f"Game session {self.session_id} disappeared")
        return data_converter.convert_session_schema_to_state(session_data), session_data.version

    async def save(self, state: GameState, expected_version: int) -> int:
        payload = data_converter.convert_state_to_payload(state)
        try:
            async with self.Session() as session:
                updated = await UpdateData.update_game_session(
                    self.session_id, payload, expected_version, session
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to write game session: {e}") from e
        if not updated:
            raise VersionConflict(
                f"game session {self.session_id} changed since version {expected_version}"
            )
        return expected_version + 1
