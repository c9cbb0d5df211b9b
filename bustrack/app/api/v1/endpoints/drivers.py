"""
Driver Registry API Endpoints.

Drivers list and add driver profiles; the list is also pushed over a
WebSocket whenever it changes.
"""

from fastapi import APIRouter, Depends, Query, WebSocket, status
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.api.v1.streaming import authenticate_websocket, stream_latest
from bustrack.app.core.dependencies import get_driver_registry
from bustrack.app.core.exceptions import DriverRegistryError
from bustrack.app.core.guards import require_driver
from bustrack.app.db.session import get_db
from bustrack.app.models.enums import UserType
from bustrack.app.schemas.tracking import Driver, DriverCreate, DriverListResponse
from bustrack.app.services.driver_registry import DriverRegistry
from bustrack.app.services.realtime import LatestValueQueue

router = APIRouter(prefix="/driver", tags=["Driver - Registry"])


@router.get("/drivers", response_model=DriverListResponse)
async def list_drivers(
    current_user: dict = Depends(require_driver),
    registry: DriverRegistry = Depends(get_driver_registry)
):
    """List every registered driver profile (unordered)."""
    return DriverListResponse(drivers=await registry.list_drivers())


@router.post("/drivers", response_model=Driver, status_code=status.HTTP_201_CREATED)
async def add_driver(
    driver_data: DriverCreate,
    current_user: dict = Depends(require_driver),
    registry: DriverRegistry = Depends(get_driver_registry)
):
    """
    Add a driver profile.

    Returns 503 with `retryable: true` when the registry cannot be written.
    """
    return await registry.create_driver(driver_data.name, driver_data.number)


@router.websocket("/drivers/ws")
async def drivers_feed(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    registry: DriverRegistry = Depends(get_driver_registry)
):
    """Push the full driver list on connect and after every change."""
    current_user = await authenticate_websocket(websocket, token, db, required=UserType.DRIVER)
    if current_user is None:
        return
    await websocket.accept()

    queue = LatestValueQueue()
    try:
        unsubscribe = await registry.subscribe_to_drivers(queue.put)
    except DriverRegistryError:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    try:
        await stream_latest(
            websocket,
            queue,
            lambda drivers: {"drivers": [driver.model_dump() for driver in drivers]},
        )
    finally:
        unsubscribe()
