"""
Geolocation source boundary.

Mirrors the browser Geolocation API: a continuous watch with sample and
error callbacks, and a one-shot `get_current_position`. The driver's GPS
lives in their browser, so the server-side source is a feed the driver
client pushes samples and errors into.
"""

import asyncio
import enum
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from bustrack.app.core.timeutils import now_ms
from bustrack.app.models.enums import PermissionState

logger = logging.getLogger("bustrack.geolocation")


class GeolocationErrorCode(enum.IntEnum):
    """W3C PositionError codes."""
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


class GeolocationError(Exception):
    def __init__(self, code: GeolocationErrorCode, message: str = ""):
        self.code = GeolocationErrorCode(code)
        self.message = message or self.code.name.replace("_", " ").lower()
        super().__init__(f"{self.code.name}: {self.message}")


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = 10.0  # seconds
    maximum_age: float = 0.0  # seconds; 0 demands a fresh sample


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    timestamp: int  # ms since epoch
    accuracy: Optional[float] = None


SampleCallback = Callable[[Position], None]
ErrorCallback = Callable[[GeolocationError], None]


class GeolocationSource(Protocol):
    supported: bool

    def watch_position(self, on_sample: SampleCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> int: ...

    def clear_watch(self, watch_id: int) -> None: ...

    async def get_current_position(self, options: PositionOptions) -> Position: ...


class DeviceGeolocationFeed:
    """
    Geolocation source fed by the driver's device.

    Every pushed sample goes to all active watches and resolves pending
    `get_current_position` calls; pushed errors go to the watch error
    callbacks and fail pending calls.
    """

    def __init__(self, supported: bool = True, permission: PermissionState = PermissionState.GRANTED,
                 clock: Callable[[], int] = now_ms):
        self.supported = supported
        self.permission = PermissionState(permission)
        self._clock = clock
        self._ids = itertools.count(1)
        self._watches: Dict[int, Tuple[SampleCallback, ErrorCallback]] = {}
        self._waiters: List[asyncio.Future] = []
        self._latest: Optional[Position] = None
        self._latest_at: float = 0.0  # loop time the latest sample arrived

    def _check_available(self) -> None:
        if not self.supported:
            raise GeolocationError(GeolocationErrorCode.POSITION_UNAVAILABLE,
                                   "Geolocation is not supported by this device.")
        if self.permission == PermissionState.DENIED:
            raise GeolocationError(GeolocationErrorCode.PERMISSION_DENIED,
                                   "User denied Geolocation")

    def watch_position(self, on_sample: SampleCallback, on_error: ErrorCallback,
                       options: PositionOptions = PositionOptions()) -> int:
        self._check_available()
        watch_id = next(self._ids)
        self._watches[watch_id] = (on_sample, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watches.pop(watch_id, None)

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    async def get_current_position(self, options: PositionOptions = PositionOptions()) -> Position:
        self._check_available()
        loop = asyncio.get_running_loop()
        if (self._latest is not None and options.maximum_age > 0
                and loop.time() - self._latest_at <= options.maximum_age):
            return self._latest

        waiter = loop.create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=options.timeout)
        except asyncio.TimeoutError:
            raise GeolocationError(GeolocationErrorCode.TIMEOUT, "Timeout expired") from None
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def push_sample(self, latitude: float, longitude: float, accuracy: Optional[float] = None,
                    timestamp: Optional[int] = None) -> Position:
        """Deliver a sample reported by the device."""
        position = Position(
            latitude=latitude,
            longitude=longitude,
            timestamp=timestamp if timestamp is not None else self._clock(),
            accuracy=accuracy,
        )
        self._latest = position
        self._latest_at = asyncio.get_running_loop().time()
        # A sample proves the device can locate itself again
        if self.permission == PermissionState.PROMPT:
            self.permission = PermissionState.GRANTED

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(position)
        for on_sample, _ in list(self._watches.values()):
            on_sample(position)
        return position

    def push_error(self, code: int, message: str = "") -> GeolocationError:
        """Deliver a failure reported by the device."""
        error = GeolocationError(GeolocationErrorCode(code), message)
        if error.code == GeolocationErrorCode.PERMISSION_DENIED:
            self.permission = PermissionState.DENIED

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)
        for _, on_error in list(self._watches.values()):
            on_error(error)
        return error
