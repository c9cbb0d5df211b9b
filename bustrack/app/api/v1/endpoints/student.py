"""
Student Bus Location API Endpoints.

Students (and drivers checking what students see) read the live bus
location, either once or as a WebSocket stream.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.api.v1.streaming import authenticate_websocket, stream_latest
from bustrack.app.core.dependencies import get_location_store
from bustrack.app.core.guards import require_any_user
from bustrack.app.core.timeutils import format_time_since
from bustrack.app.db.session import get_db
from bustrack.app.schemas.tracking import BusLocation, StudentBusView
from bustrack.app.services.geocoding import ReverseGeocoder, get_geocoder
from bustrack.app.services.location_store import LocationBroadcastStore
from bustrack.app.services.realtime import LatestValueQueue

router = APIRouter(prefix="/student", tags=["Student - Bus Location"])


def call_link(location: Optional[BusLocation]) -> Optional[str]:
    if location is None or not location.driver_number:
        return None
    return f"tel:{location.driver_number}"


@router.get("/bus-location", response_model=StudentBusView)
async def get_bus_location(
    current_user: dict = Depends(require_any_user),
    store: LocationBroadcastStore = Depends(get_location_store),
    geocoder: ReverseGeocoder = Depends(get_geocoder)
):
    """
    Latest bus location with its age, a readable address and the
    driver's call link. `status` is Offline until a driver has broadcast.
    """
    location = await store.read()
    if location is None:
        return StudentBusView(status="Offline", last_seen=format_time_since(None))

    return StudentBusView(
        status="Online",
        location=location,
        last_seen=format_time_since(location.timestamp),
        address=await geocoder.describe(location.latitude, location.longitude),
        call_link=call_link(location),
    )


@router.websocket("/bus-location/ws")
async def bus_location_feed(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    store: LocationBroadcastStore = Depends(get_location_store)
):
    """
    Push the bus location on connect (null when none yet) and after every
    broadcast. Slow clients only receive the newest position.
    """
    current_user = await authenticate_websocket(websocket, token, db)
    if current_user is None:
        return
    await websocket.accept()

    queue = LatestValueQueue()
    try:
        unsubscribe = await store.subscribe(queue.put)
    except RedisError:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    try:
        await stream_latest(
            websocket,
            queue,
            lambda location: {
                "busLocation": location.model_dump(by_alias=True) if location is not None else None
            },
        )
    finally:
        unsubscribe()
