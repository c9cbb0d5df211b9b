"""
Location tracking and driver registry schemas.

Storage payloads keep the camelCase keys dashboards already read
(`driverName`, `driverNumber`); Python code uses snake_case attributes.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List


class BusLocation(BaseModel):
    """The single live bus position. Every write replaces the previous one."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: int = Field(..., description="Milliseconds since epoch, set at sample time")
    driver_name: str = Field(..., alias="driverName")
    driver_number: str = Field(..., alias="driverNumber")

    class Config:
        populate_by_name = True


class Driver(BaseModel):
    """Driver profile stored in the registry."""
    id: str
    name: str
    number: str


class DriverCreate(BaseModel):
    """Schema for the add-driver form."""
    name: str = Field(..., max_length=100)
    number: str = Field(..., max_length=20)

    @field_validator("name", "number")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class PositionSample(BaseModel):
    """A coordinate sample reported by the driver's device."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="Accuracy radius in meters")
    timestamp: Optional[int] = Field(None, description="Device time in ms; server time is used when absent")


class PositionErrorReport(BaseModel):
    """A geolocation failure reported by the driver's device (W3C error codes)."""
    code: int = Field(..., ge=1, le=3)
    message: str = ""


class SamplePush(BaseModel):
    """Body of POST /driver/tracking/samples: exactly one of sample or error."""
    sample: Optional[PositionSample] = None
    error: Optional[PositionErrorReport] = None

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.sample is None) == (self.error is None):
            raise ValueError("Provide exactly one of 'sample' or 'error'")
        return self


class StartTrackingRequest(BaseModel):
    """Start broadcasting for a registered driver profile."""
    driver_id: str
    geolocation_supported: bool = True
    permission: str = Field(default="granted", pattern="^(granted|prompt|denied)$")


class TrackingStatusResponse(BaseModel):
    """Current tracking state of the calling driver account."""
    tracking: bool
    driver: Optional[Driver] = None
    started_at: Optional[int] = None
    samples_published: int = 0
    last_location: Optional[BusLocation] = None


class StudentBusView(BaseModel):
    """Everything the student dashboard shows about the bus."""
    status: str  # Online | Offline
    location: Optional[BusLocation] = None
    last_seen: str
    address: Optional[str] = None
    call_link: Optional[str] = None


class DriverListResponse(BaseModel):
    drivers: List[Driver]
