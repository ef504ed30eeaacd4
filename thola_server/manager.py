from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List
import logging

from thola_server.services.broadcaster import Broadcaster


class ConnectionManager(Broadcaster):
    """Websocket connections of the players, keyed by session-scoped player id."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, player_id: str):
        """Accept a websocket and register it for the player

        Args:
            websocket (WebSocket):
            player_id (str): Session-scoped player id
        """
        await websocket.accept()
        if player_id not in self.active_connections:
            self.active_connections[player_id] = []
        self.active_connections[player_id].append(websocket)

    def disconnect(self, websocket: WebSocket, player_id: str) -> bool:
        """Unregister a websocket

        Args:
            websocket (WebSocket):
            player_id (str): Session-scoped player id

        Returns:
            bool: True if the player has no open connection left
        """
        if player_id in self.active_connections:
            if websocket in self.active_connections[player_id]:
                self.active_connections[player_id].remove(websocket)
            # Clean up if there are no more connections for this player
            if not self.active_connections[player_id]:
                del self.active_connections[player_id]
        return player_id not in self.active_connections

    async def publish(self, event: str, payload: dict) -> None:
        logging.info(f"Broadcasting {event} to {len(self.active_connections)} players")
        for player_id, connections in list(self.active_connections.items()):
            for connection in list(connections):
                try:
                    await connection.send_json({"event": event, "data": payload})
                except (RuntimeError, WebSocketDisconnect) as e:
                    logging.warning(f"Dropping closed websocket of {player_id}: {e}")
                    self.disconnect(connection, player_id)
