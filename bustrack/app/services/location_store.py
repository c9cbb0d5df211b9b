"""
Location Broadcast Store.

A single Redis key holds the most recent bus position. Writes replace
the value outright and are published on a Redis channel, so subscribers
on every API process receive them.
"""

import logging
from typing import Callable, Optional

from bustrack.app.schemas.tracking import BusLocation
from bustrack.app.services.realtime import FirstValueGate, LOCATION_CHANNEL, RedisChangeFeed, Unsubscribe

logger = logging.getLogger("bustrack.location")

BUS_LOCATION_KEY = "busLocation"


class LocationBroadcastStore:
    """
    Singleton bus location record.

    Last writer wins by arrival order at Redis; the embedded timestamps
    are not compared. Readers that need monotonic freshness must compare
    `timestamp` themselves.
    """

    def __init__(self, redis):
        self._redis = redis
        self._feed = RedisChangeFeed(redis)

    async def write(self, location: BusLocation) -> BusLocation:
        """
        Overwrite the current location and notify subscribers.

        Returns the value as subscribers receive it (decoded from the
        stored payload).
        """
        payload = location.model_dump_json(by_alias=True)
        await self._redis.set(BUS_LOCATION_KEY, payload)
        await self._feed.publish(LOCATION_CHANNEL, payload)
        return BusLocation.model_validate_json(payload)

    async def read(self) -> Optional[BusLocation]:
        payload = await self._redis.get(BUS_LOCATION_KEY)
        if payload is None:
            return None
        return BusLocation.model_validate_json(payload)

    async def subscribe(self, callback: Callable[[Optional[BusLocation]], None]) -> Unsubscribe:
        """
        Register a listener for location changes.

        The callback is called with the current value (None if nothing was
        broadcast yet) and again after every write. The channel is joined
        before the current value is read, so a write racing the
        subscription is still delivered. Call the returned function to
        stop receiving updates.
        """
        gate = FirstValueGate(callback)
        unsubscribe = await self._feed.subscribe(
            LOCATION_CHANNEL,
            lambda payload: gate.live(BusLocation.model_validate_json(payload)),
        )
        try:
            current = await self.read()
        except Exception:
            unsubscribe()
            raise
        gate.snapshot(current)
        return unsubscribe
