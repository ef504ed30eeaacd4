import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from thola_server.exceptions import PersistenceFailure
from thola_server.models.dc_models import (
    ActionResult,
    ChatModel,
    EmojiModel,
    GameState,
    JoinModel,
    PlayCardModel,
    PlayerActionModel,
)
from thola_server.redis_subscriber import RedisSubscriber
from thola_server.services.game_engine import GameEngine

game_router = APIRouter(prefix="/game")

ERROR_STATUS = {
    "player_not_found": status.HTTP_404_NOT_FOUND,
    "not_host": status.HTTP_403_FORBIDDEN,
    "illegal_move": status.HTTP_400_BAD_REQUEST,
}


def get_game_engine(request: Request) -> GameEngine:
    return request.app.state.game_engine


async def check_result(action) -> ActionResult:
    """Await an engine action and turn a rejection into an HTTP error

    Args:
        action: Awaitable returning ActionResult

    Raises:
        HTTPException: 4xx when the rules rejected the action, 503 when the store is unavailable

    Returns:
        ActionResult: The successful result
    """
    try:
        result: ActionResult = await action
    except PersistenceFailure as e:
        logging.error(f"Game session unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Game state is temporarily unavailable.",
        )
    if not result.success:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.code, status.HTTP_409_CONFLICT),
            detail=result.error,
        )
    return result


class GameServer:
    @staticmethod
    @game_router.get("/state", response_model=GameState)
    async def get_state(engine: GameEngine = Depends(get_game_engine)) -> GameState:
        return await engine.get_state()

    @staticmethod
    @game_router.post("/join", response_model=ActionResult)
    async def join(join_data: JoinModel, engine: GameEngine = Depends(get_game_engine)):
        """Join the lobby, or reclaim an existing seat after a reconnect

        Args:
            join_data (JoinModel):
                    player_id: session-scoped id of the connection
                    name: display name
                    stable_id: durable identity from the auth layer, optional
        """
        return await check_result(
            engine.join(join_data.player_id, join_data.name, join_data.stable_id)
        )

    @staticmethod
    @game_router.post("/start", response_model=ActionResult)
    async def start_game(action: PlayerActionModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.start_game(action.player_id))

    @staticmethod
    @game_router.post("/play", response_model=ActionResult)
    async def play_card(play: PlayCardModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.play_card(play.player_id, play.card))

    @staticmethod
    @game_router.post("/leave", response_model=ActionResult)
    async def leave(action: PlayerActionModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.leave(action.player_id))

    @staticmethod
    @game_router.post("/terminate", response_model=ActionResult)
    async def terminate(action: PlayerActionModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.terminate(action.player_id))

    @staticmethod
    @game_router.post("/chat", response_model=ActionResult)
    async def chat(chat_data: ChatModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.chat(chat_data.player_id, chat_data.text))

    @staticmethod
    @game_router.post("/emoji", response_model=ActionResult)
    async def emoji(emoji_data: EmojiModel, engine: GameEngine = Depends(get_game_engine)):
        return await check_result(engine.emoji(emoji_data.player_id, emoji_data.emoji))

    @staticmethod
    @game_router.get("/stream")
    async def stream_game_state(request: Request):
        redis_subscriber = RedisSubscriber(request.app.state.game_engine.store)

        return StreamingResponse(
            redis_subscriber.event_generator(request.app.state.game_channel, request.app.state.redis),
            media_type="text/event-stream; charset=utf-8",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @staticmethod
    @game_router.websocket("/ws/{player_id}")
    async def player_socket(websocket: WebSocket, player_id: str):
        """Keep a player's connection open; closing it marks the player disconnected."""
        connect_manager = websocket.app.state.connect_manager
        engine: GameEngine = websocket.app.state.game_engine
        await connect_manager.connect(websocket, player_id)
        try:
            while True:
                # Clients only send keep-alives; game actions go through the HTTP routes
                await websocket.receive_text()
        except WebSocketDisconnect:
            if connect_manager.disconnect(websocket, player_id):
                result = await engine.disconnect(player_id)
                logging.info(f"Websocket closed for {player_id}: {result.error or 'disconnected'}")
