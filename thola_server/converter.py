import json

from thola_server.models.dc_models import ChatMessage, EmojiReaction, GameState
from thola_server.models.schema_models import GameSessionSchema


class DataConverter:
    """This class is used to convert the game snapshot between its stored and transmitted formats."""

    def convert_state_to_payload(self, state: GameState) -> dict:
        """Convert the GameState to a JSON-compatible dict

        Args:
            state (GameState): The current game session

        Returns:
            dict: Snapshot with enums as plain strings, used both for storage and broadcast
        """
        return state.model_dump(mode="json")

    def convert_payload_to_state(self, payload: dict) -> GameState:
        """Rebuild the GameState from a stored or received payload"""
        return GameState.model_validate(payload)

    def convert_session_schema_to_state(self, session_data: GameSessionSchema) -> GameState:
        game_state = session_data.game_state
        if isinstance(game_state, str):
            game_state = json.loads(game_state)
        return self.convert_payload_to_state(game_state)

    def convert_event_to_message(self, event: str, payload: dict) -> str:
        """Wrap a payload into the envelope published to subscribers"""
        return json.dumps({"event": event, "data": payload})

    def convert_chat_to_payload(self, message: ChatMessage | EmojiReaction) -> dict:
        return message.model_dump(mode="json")
