"""
Security guards for role-based access control.

Roles come from the canonical role resolution done in `get_current_user`,
never from a second classification here.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from bustrack.app.models.enums import UserType
from bustrack.app.core.dependencies import get_current_user


def require_user_type(allowed_types: List[UserType]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/driver/tracking/start")
        async def start(current_user: dict = Depends(require_user_type([UserType.DRIVER]))):
            ...

    Args:
        allowed_types: List of UserType enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates the resolved role

    Raises:
        HTTPException 403 if the resolved role is not in allowed_types
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_type_str = current_user.get("user_type")

        try:
            user_type = UserType(user_type_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role"
            )

        if user_type not in allowed_types:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([t.value for t in allowed_types])}"
            )

        return current_user

    return role_checker


require_driver = require_user_type([UserType.DRIVER])
require_any_user = require_user_type([UserType.STUDENT, UserType.DRIVER])
