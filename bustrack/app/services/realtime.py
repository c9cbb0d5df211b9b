"""
Change notifications over Redis Pub/Sub.

Writers publish the new value of a record on a Redis channel, so every
API process sharing the Redis instance sees it. Each subscription owns a
Pub/Sub connection and a listener task that hands raw payloads to a
local callback; the returned unsubscribe cancels that task, which then
unsubscribes and releases the connection.
"""

import asyncio
import logging
from typing import Any, Callable

from redis.exceptions import RedisError

logger = logging.getLogger("bustrack.realtime")

Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]

LOCATION_CHANNEL = "bustrack:busLocation"
DRIVERS_CHANNEL = "bustrack:drivers"


class RedisChangeFeed:
    """Publish/subscribe on named Redis channels."""

    def __init__(self, redis):
        self._redis = redis

    async def publish(self, channel: str, payload: str) -> int:
        """Send a payload to every subscriber of `channel`. Returns the receiver count."""
        return await self._redis.publish(channel, payload)

    async def subscribe(self, channel: str, listener: Listener) -> Unsubscribe:
        """
        Start delivering payloads published on `channel` to `listener`.

        The channel subscription is in place when this returns, so any
        publish that happens afterwards is delivered.
        """
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError:
            await pubsub.aclose()
            raise

        task = asyncio.create_task(self._listen(pubsub, channel, listener))
        # The listener must be inside its loop before it can be cancelled,
        # otherwise its cleanup never runs
        await asyncio.sleep(0)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _listen(self, pubsub, channel: str, listener: Listener) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    listener(message["data"])
                except Exception:
                    logger.exception("Listener on %s failed", channel)
        except RedisError as e:
            logger.warning("Subscription to %s lost: %s", channel, e)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except RedisError as e:
                logger.debug("Could not release subscription to %s: %s", channel, e)


class LatestValueQueue:
    """
    Single-slot queue for push consumers such as WebSocket handlers.

    `put` overwrites whatever the consumer has not read yet, so a slow
    consumer skips straight to the newest value.
    """

    def __init__(self):
        self._value: Any = None
        self._has_value = False
        self._event = asyncio.Event()

    def put(self, value: Any) -> None:
        self._value = value
        self._has_value = True
        self._event.set()

    async def get(self) -> Any:
        await self._event.wait()
        value = self._value
        self._value = None
        self._has_value = False
        self._event.clear()
        return value

    def empty(self) -> bool:
        return not self._has_value


class FirstValueGate:
    """
    Orders the initial snapshot against live updates for one subscriber.

    Live values are forwarded as they arrive. The snapshot read at
    subscribe time is dropped once a live value has been forwarded.
    """

    def __init__(self, callback: Listener):
        self._callback = callback
        self.live_seen = False

    def live(self, value: Any) -> None:
        self.live_seen = True
        self._callback(value)

    def snapshot(self, value: Any) -> None:
        if not self.live_seen:
            self._callback(value)
