"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from bustrack.app.api.v1.endpoints import auth, drivers, tracking, student

router = APIRouter()

# Include authentication endpoints
router.include_router(auth.router)

# Driver registry and location broadcasting
router.include_router(drivers.router)
router.include_router(tracking.router)

# Student bus view
router.include_router(student.router)
