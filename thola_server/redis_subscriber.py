import json
import logging
from typing import AsyncGenerator
from redis.asyncio import Redis

from thola_server.converter import DataConverter
from thola_server.services.broadcaster import GAME_STATE_EVENT
from thola_server.services.session_store import SessionStore

data_converter = DataConverter()


class RedisSubscriber:
    """Redis subscriber class to handle SSE events."""

    def __init__(self, store: SessionStore):
        """Initialize RedisSubscriber with the store used for the first snapshot."""
        self.store: SessionStore = store

    def format_sse(self, event: str, payload: dict) -> str:
        return f"event: {event}\ndata: {json.dumps(payload)}\n\n"

    async def event_generator(self, channel: str, redis: Redis) -> AsyncGenerator[str, None]:
        """Event generator to handle SSE events.

        Args:
            channel (str): Redis channel the game events are published on.
            redis (Redis): Redis connection object.
        """
        pubsub = redis.pubsub()
        # Subscribe before reading so no update between the two is lost
        await pubsub.subscribe(channel)
        try:
            state, _ = await self.store.load()
            yield self.format_sse(GAME_STATE_EVENT, data_converter.convert_state_to_payload(state))

            while True:
                msg = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=None
                )
                if msg and msg["type"] == "message":
                    try:
                        envelope = json.loads(msg["data"])
                    except (TypeError, ValueError) as e:
                        logging.warning(f"Ignoring malformed message on {channel}: {e}")
                        continue
                    logging.debug(f"Forwarding {envelope.get('event')} event")
                    yield self.format_sse(envelope["event"], envelope["data"])
        finally:
            logging.info("Unsubscribing from channel")
            if pubsub:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
