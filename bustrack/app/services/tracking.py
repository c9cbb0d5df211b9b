"""
Driver location tracking sessions.

A tracking session publishes a driver's position through two independent
paths: a continuous watch on the geolocation source, and a poll of
`get_current_position` every few seconds. Each successful sample from
either path overwrites the broadcast store. The paths are not sequenced
against each other, so a slow poll can land after a fresher watch sample.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Set

from bustrack.app.core.timeutils import now_ms
from bustrack.app.core.exceptions import GeolocationPermissionError, GeolocationUnavailableError
from bustrack.app.schemas.tracking import BusLocation, Driver
from bustrack.app.services.geolocation import (
    GeolocationError,
    GeolocationErrorCode,
    GeolocationSource,
    Position,
    PositionOptions,
)
from bustrack.app.services.location_store import LocationBroadcastStore

logger = logging.getLogger("bustrack.tracking")

DEFAULT_POLL_INTERVAL = 5.0


class TrackingSession:
    """
    One driver broadcasting one device's position.

    Owns exactly one watch and one poll timer; `stop()` releases both.
    Obtain sessions through `start_tracking`.
    """

    def __init__(
        self,
        driver: Driver,
        source: GeolocationSource,
        store: LocationBroadcastStore,
        options: PositionOptions,
        poll_interval: float,
        clock: Callable[[], int],
    ):
        self.driver = driver
        self.source = source
        self._store = store
        self._options = options
        self._poll_interval = poll_interval
        self._clock = clock

        self._watch_id: Optional[int] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._stopped = False

        self.started_at: Optional[int] = None
        self.samples_published = 0
        self.last_location: Optional[BusLocation] = None

    @property
    def active(self) -> bool:
        return not self._stopped

    def _open(self) -> None:
        self._watch_id = self.source.watch_position(self._on_watch_sample, self._on_watch_error, self._options)
        self._poll_task = asyncio.create_task(self._poll_loop())
        self.started_at = self._clock()

    def _location_for(self, position: Position) -> BusLocation:
        return BusLocation(
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=self._clock(),
            driver_name=self.driver.name,
            driver_number=self.driver.number,
        )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def _on_watch_sample(self, position: Position) -> None:
        self._spawn(self._publish(self._location_for(position)))

    def _on_watch_error(self, error: GeolocationError) -> None:
        logger.warning("Geolocation watch error for driver %s: %s", self.driver.id, error)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            # Polls are not awaited in turn: a slow one may overlap the next tick
            self._spawn(self._poll_once())

    async def _poll_once(self) -> None:
        try:
            position = await self.source.get_current_position(self._options)
        except GeolocationError as e:
            logger.warning("Position update error for driver %s: %s", self.driver.id, e)
            return
        await self._publish(self._location_for(position))

    async def _publish(self, location: BusLocation) -> None:
        try:
            await self._store.write(location)
        except Exception as e:
            logger.error("Error updating location for driver %s: %s", self.driver.id, e)
            return
        self.samples_published += 1
        self.last_location = location

    def stop(self) -> None:
        """
        Cancel the watch and the poll timer.

        Safe to call repeatedly. Polls already waiting on the source are
        left to finish and may write one trailing sample.
        """
        if self._stopped:
            return
        self._stopped = True
        if self._watch_id is not None:
            self.source.clear_watch(self._watch_id)
            self._watch_id = None
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        logger.info("Stopped tracking for driver %s", self.driver.id)

    async def drain(self) -> None:
        """Wait until every write already started has finished. Later polls are not waited for."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)


async def start_tracking(
    driver: Driver,
    source: GeolocationSource,
    store: LocationBroadcastStore,
    options: PositionOptions = PositionOptions(),
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    clock: Callable[[], int] = now_ms,
) -> TrackingSession:
    """
    Start broadcasting `driver`'s position.

    Raises:
        ValueError: the driver profile lacks a name or number
        GeolocationUnavailableError: the source cannot produce positions
        GeolocationPermissionError: location access was denied
    """
    if not driver.name.strip() or not driver.number.strip():
        raise ValueError("Driver name and number are required to start tracking")
    if not source.supported:
        raise GeolocationUnavailableError()

    session = TrackingSession(driver, source, store, options, poll_interval, clock)
    try:
        session._open()
    except GeolocationError as e:
        if e.code == GeolocationErrorCode.PERMISSION_DENIED:
            raise GeolocationPermissionError() from e
        raise GeolocationUnavailableError(e.message) from e

    logger.info("Started tracking for driver %s (%s)", driver.id, driver.name)
    return session


def stop_tracking(session: Optional[TrackingSession]) -> None:
    """Stop a session if there is one. Idempotent."""
    if session is not None:
        session.stop()


class TrackingRegistry:
    """
    Tracking sessions per driver account.

    Each account has at most one live session; starting again stops the
    previous one first.
    """

    def __init__(self):
        self._sessions: Dict[str, TrackingSession] = {}

    async def start(self, user_id: str, driver: Driver, source: GeolocationSource,
                    store: LocationBroadcastStore, **kwargs) -> TrackingSession:
        self.stop(user_id)
        session = await start_tracking(driver, source, store, **kwargs)
        self._sessions[user_id] = session
        return session

    def stop(self, user_id: str) -> bool:
        """Stop the account's session. Returns False when nothing was tracking."""
        session = self._sessions.pop(user_id, None)
        stop_tracking(session)
        return session is not None

    def get(self, user_id: str) -> Optional[TrackingSession]:
        return self._sessions.get(user_id)

    def stop_all(self) -> None:
        for user_id in list(self._sessions):
            self.stop(user_id)

    def __len__(self) -> int:
        return len(self._sessions)
