"""
Redis-backed change-event stream.

Subscribes to the per-table channels written by
`helpdesk.core.redis_utils.publish_change` and yields `ChangeEvent`s.
The push mechanism has no server-side filtering: subscribers receive every
change on the tables they watch.
"""

import json
import logging
from typing import AsyncIterator, Callable, Sequence

import redis

from helpdesk.core.redis_utils import get_async_redis, get_change_channel
from helpdesk.services.remote import ChangeEvent, RemoteError

logger = logging.getLogger(__name__)


def parse_change_message(data: str) -> ChangeEvent:
    payload = json.loads(data)
    return ChangeEvent(
        table=payload["table"],
        event=payload.get("event", "UPDATE"),
        row=payload.get("row") or {},
        old=payload.get("old") or {},
    )


class RedisChangeFeed:
    def __init__(self, client_factory: Callable = get_async_redis):
        self.client_factory = client_factory

    async def subscribe(self, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]:
        """Yield change events for `tables`; raises RemoteError if Redis is unreachable"""
        client = self.client_factory()
        pubsub = client.pubsub()
        channels = [get_change_channel(t) for t in tables]
        try:
            try:
                await pubsub.subscribe(*channels)
            except (redis.RedisError, OSError) as e:
                raise RemoteError(f"Could not subscribe to {', '.join(channels)}: {e}")
            logger.info(f"Subscribed to Redis channels: {', '.join(channels)}")

            async for message in pubsub.listen():
                # Skip subscribe confirmation messages
                if message["type"] != "message":
                    continue
                try:
                    yield parse_change_message(message["data"])
                except (ValueError, KeyError) as e:
                    logger.warning(f"Ignoring malformed change event on {message.get('channel')}: {e}")
        except redis.RedisError as e:
            raise RemoteError(f"Change feed connection lost: {e}")
        finally:
            try:
                await pubsub.aclose()
                await client.aclose()
            except Exception as e:
                logger.debug(f"Error closing change feed connection: {e}")
