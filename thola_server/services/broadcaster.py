"""Broadcast sinks for game events.

Events are published as an envelope {"event": ..., "data": ...}:
- game_state: the full snapshot after every mutation
- chat_message / emoji_reaction: pass-through events with no game semantics
"""

import logging
from typing import List

from redis.asyncio import Redis

from thola_server.converter import DataConverter

GAME_STATE_EVENT = "game_state"
CHAT_MESSAGE_EVENT = "chat_message"
EMOJI_REACTION_EVENT = "emoji_reaction"

data_converter = DataConverter()


class Broadcaster:
    async def publish(self, event: str, payload: dict) -> None:
        raise NotImplementedError


class RedisBroadcaster(Broadcaster):
    """Publish events on a Redis channel; SSE subscribers pick them up."""

    def __init__(self, redis: Redis, channel: str):
        self.redis: Redis = redis
        self.channel: str = channel

    async def publish(self, event: str, payload: dict) -> None:
        message = data_converter.convert_event_to_message(event, payload)
        receivers = await self.redis.publish(self.channel, message)
        logging.debug(f"Published {event} to {self.channel} ({receivers} receivers)")


class FanoutBroadcaster(Broadcaster):
    """Publish to every sink; one failing sink does not stop the others."""

    def __init__(self, broadcasters: List[Broadcaster]):
        self.broadcasters: List[Broadcaster] = broadcasters

    async def publish(self, event: str, payload: dict) -> None:
        errors = []
        for broadcaster in self.broadcasters:
            try:
                await broadcaster.publish(event, payload)
            except Exception as e:
                logging.error(f"{type(broadcaster).__name__} failed to publish {event}: {e}")
                errors.append(e)
        if errors and len(errors) == len(self.broadcasters):
            raise errors[0]
