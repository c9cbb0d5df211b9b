"""
Driver Registry.

Driver profiles live in the Redis hash `drivers` (field = driver id,
value = JSON profile). Profiles are added by any driver session and are
never updated or deleted here. Every save publishes the full list on a
Redis channel.
"""

import json
import logging
import uuid
from typing import Callable, List, Optional

from redis.exceptions import RedisError

from bustrack.app.core.exceptions import DriverRegistryError
from bustrack.app.schemas.tracking import Driver
from bustrack.app.services.realtime import DRIVERS_CHANNEL, FirstValueGate, RedisChangeFeed, Unsubscribe

logger = logging.getLogger("bustrack.drivers")

DRIVERS_KEY = "drivers"


def new_driver_id() -> str:
    return uuid.uuid4().hex


def _decode_list(payload) -> List[Driver]:
    return [Driver.model_validate(entry) for entry in json.loads(payload)]


class DriverRegistry:
    """Key-value collection of driver profiles with push notifications."""

    def __init__(self, redis):
        self._redis = redis
        self._feed = RedisChangeFeed(redis)

    async def save_driver(self, driver: Driver) -> Driver:
        """
        Upsert a driver profile by id.

        Raises:
            DriverRegistryError: storage failure; the caller may retry
        """
        try:
            await self._redis.hset(DRIVERS_KEY, driver.id, driver.model_dump_json())
            drivers = await self.list_drivers()
            await self._feed.publish(DRIVERS_CHANNEL, json.dumps([entry.model_dump() for entry in drivers]))
        except RedisError as e:
            logger.error("Error saving driver %s: %s", driver.id, e)
            raise DriverRegistryError() from e

        logger.info("Saved driver %s (%s)", driver.id, driver.name)
        return driver

    async def create_driver(self, name: str, number: str) -> Driver:
        """Create a new profile with a random id."""
        driver = Driver(id=new_driver_id(), name=name.strip(), number=number.strip())
        if not driver.name or not driver.number:
            raise ValueError("Driver name and number are required")
        return await self.save_driver(driver)

    async def list_drivers(self) -> List[Driver]:
        """
        All profiles, in no particular order.

        Raises:
            DriverRegistryError: the registry could not be read; the caller may retry
        """
        try:
            entries = await self._redis.hgetall(DRIVERS_KEY)
        except RedisError as e:
            logger.error("Error reading driver registry: %s", e)
            raise DriverRegistryError("Failed to load drivers. Please try again.") from e
        return [Driver.model_validate_json(value) for value in (entries or {}).values()]

    async def get_driver(self, driver_id: str) -> Optional[Driver]:
        try:
            payload = await self._redis.hget(DRIVERS_KEY, driver_id)
        except RedisError as e:
            logger.error("Error reading driver %s: %s", driver_id, e)
            raise DriverRegistryError("Failed to load driver. Please try again.") from e
        if payload is None:
            return None
        return Driver.model_validate_json(payload)

    async def subscribe_to_drivers(self, callback: Callable[[List[Driver]], None]) -> Unsubscribe:
        """
        Register a listener for registry changes.

        Called with the full current list and again after every change.
        The channel is joined before the list is read. Call the returned
        function to stop receiving updates.

        Raises:
            DriverRegistryError: the subscription could not be set up
        """
        gate = FirstValueGate(callback)
        try:
            unsubscribe = await self._feed.subscribe(DRIVERS_CHANNEL, lambda payload: gate.live(_decode_list(payload)))
        except RedisError as e:
            logger.error("Error subscribing to driver registry: %s", e)
            raise DriverRegistryError("Failed to load drivers. Please try again.") from e

        try:
            current = await self.list_drivers()
        except DriverRegistryError:
            unsubscribe()
            raise
        gate.snapshot(current)
        return unsubscribe
