"""
Driver Location Tracking API Endpoints.

A driver starts a tracking session for one registered driver profile,
then the device pushes position samples (or geolocation errors) until
the session is stopped.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from bustrack.app.core.config import settings
from bustrack.app.core.dependencies import get_driver_registry, get_location_store, get_tracking_registry
from bustrack.app.core.exceptions import ResourceNotFoundError
from bustrack.app.core.guards import require_driver
from bustrack.app.models.enums import PermissionState
from bustrack.app.schemas.tracking import SamplePush, StartTrackingRequest, TrackingStatusResponse
from bustrack.app.services.driver_registry import DriverRegistry
from bustrack.app.services.geolocation import DeviceGeolocationFeed, PositionOptions
from bustrack.app.services.location_store import LocationBroadcastStore
from bustrack.app.services.tracking import TrackingRegistry, TrackingSession

router = APIRouter(prefix="/driver/tracking", tags=["Driver - Tracking"])


def _status(session: Optional[TrackingSession]) -> TrackingStatusResponse:
    if session is None or not session.active:
        return TrackingStatusResponse(tracking=False)
    return TrackingStatusResponse(
        tracking=True,
        driver=session.driver,
        started_at=session.started_at,
        samples_published=session.samples_published,
        last_location=session.last_location,
    )


@router.post("/start", response_model=TrackingStatusResponse)
async def start_tracking(
    payload: StartTrackingRequest,
    current_user: dict = Depends(require_driver),
    registry: DriverRegistry = Depends(get_driver_registry),
    store: LocationBroadcastStore = Depends(get_location_store),
    tracking: TrackingRegistry = Depends(get_tracking_registry)
):
    """
    Start broadcasting the device position for a driver profile (Driver only).

    Fails with 400 when the device has no geolocation and 403 when
    location permission was denied. A session already running for this
    account is stopped first.
    """
    driver = await registry.get_driver(payload.driver_id)
    if driver is None:
        raise ResourceNotFoundError("Driver", payload.driver_id)

    feed = DeviceGeolocationFeed(
        supported=payload.geolocation_supported,
        permission=PermissionState(payload.permission),
    )
    try:
        session = await tracking.start(
            current_user["user_id"],
            driver,
            feed,
            store,
            options=PositionOptions(
                enable_high_accuracy=True,
                timeout=settings.geolocation_timeout_seconds,
                maximum_age=settings.geolocation_maximum_age_seconds,
            ),
            poll_interval=settings.tracking_poll_interval_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _status(session)


@router.post("/stop", response_model=TrackingStatusResponse)
async def stop_tracking(
    current_user: dict = Depends(require_driver),
    tracking: TrackingRegistry = Depends(get_tracking_registry)
):
    """Stop broadcasting. Safe to call when not tracking; the last location stays visible."""
    tracking.stop(current_user["user_id"])
    return TrackingStatusResponse(tracking=False)


@router.post("/samples", status_code=status.HTTP_202_ACCEPTED)
async def push_sample(
    push: SamplePush,
    current_user: dict = Depends(require_driver),
    tracking: TrackingRegistry = Depends(get_tracking_registry)
):
    """
    Deliver a geolocation sample or error from the driver's device.

    Returns 409 when this account is not tracking.
    """
    session = tracking.get(current_user["user_id"])
    if session is None or not session.active or not isinstance(session.source, DeviceGeolocationFeed):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tracking is not active. Start tracking before sending positions."
        )

    feed = session.source
    if push.sample is not None:
        feed.push_sample(
            latitude=push.sample.latitude,
            longitude=push.sample.longitude,
            accuracy=push.sample.accuracy,
            timestamp=push.sample.timestamp,
        )
        return {"accepted": True, "kind": "sample"}

    error = feed.push_error(push.error.code, push.error.message)
    return {"accepted": True, "kind": "error", "code": error.code.name}


@router.get("", response_model=TrackingStatusResponse)
async def tracking_status(
    current_user: dict = Depends(require_driver),
    tracking: TrackingRegistry = Depends(get_tracking_registry)
):
    """Current tracking state of the calling account."""
    return _status(tracking.get(current_user["user_id"]))
