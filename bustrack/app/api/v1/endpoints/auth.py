"""
Authentication API endpoints.

Driver credential login, student Google login, password helpers,
session info and logout.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.core.config import settings
from bustrack.app.core.dependencies import get_current_user, get_tracking_registry
from bustrack.app.core.jwt import create_access_token, token_lifetime
from bustrack.app.core.token_revocation import revoke_token
from bustrack.app.db.session import get_db
from bustrack.app.models.enums import RoleSource, UserType
from bustrack.app.schemas.auth import (
    DriverLogin,
    GoogleLoginConfig,
    PasswordCheckRequest,
    PasswordCheckResponse,
    PasswordResetRequest,
    StudentGoogleLogin,
    TokenResponse,
    UserResponse,
)
from bustrack.app.services.auth_service import (
    LoginResult,
    login_driver,
    login_student_with_google,
    reset_driver_password,
)
from bustrack.app.services.identity_provider import IdentityProvider, get_identity_provider
from bustrack.app.services.role_resolution import get_profile
from bustrack.app.services.tracking import TrackingRegistry
from bustrack.app.services.validators import validate_password

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_token(result: LoginResult) -> TokenResponse:
    lifetime = token_lifetime(result.persistence)
    email = result.identity.email or result.profile.email
    jwt_payload = {
        "sub": email,
        "user_id": result.identity.uid,
        "email": email,
        "name": result.profile.name,
        "user_type": result.role.user_type.value,
        "persistence": result.persistence.value,
    }
    access_token = create_access_token(data=jwt_payload, expires_delta=lifetime)

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=result.identity.uid,
        email=email,
        name=result.profile.name,
        user_type=result.role.user_type,
        persistence=result.persistence,
        expires_in=int(lifetime.total_seconds()),
    )


@router.post("/driver/login", response_model=TokenResponse)
async def driver_login(
    credentials: DriverLogin,
    db: AsyncSession = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider)
):
    """
    Login a driver with email and password.

    The account must be registered with role `driver`; otherwise the
    identity is signed out again and 403 is returned.
    """
    result = await login_driver(
        db=db,
        provider=provider,
        email=credentials.email.strip(),
        password=credentials.password,
        remember_me=credentials.remember_me,
    )
    return _issue_token(result)


@router.get("/student/google/config", response_model=GoogleLoginConfig)
async def student_google_config():
    """
    Google provider parameters for the student sign-in popup.

    The hosted-domain hint narrows the account picker to institutional
    accounts; the email check after sign-in is what enforces it.
    """
    return GoogleLoginConfig(prompt="select_account", hd=settings.student_email_domain)


@router.post("/student/google", response_model=TokenResponse)
async def student_google_login(
    payload: StudentGoogleLogin,
    db: AsyncSession = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider)
):
    """
    Login a student with the Google ID token from the sign-in popup.

    Returns 400 when the Google account is not an institutional address.
    """
    result = await login_student_with_google(db=db, provider=provider, id_token=payload.id_token)
    return _issue_token(result)


@router.post("/driver/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def driver_password_reset(
    payload: PasswordResetRequest,
    provider: IdentityProvider = Depends(get_identity_provider)
):
    """Send a password reset email to a driver."""
    await reset_driver_password(provider, payload.email.strip())
    return {"message": "Password reset email sent. Please check your inbox."}


@router.post("/password/check", response_model=PasswordCheckResponse)
async def password_check(payload: PasswordCheckRequest):
    """Check a prospective driver password against the password policy."""
    result = validate_password(payload.password)
    return PasswordCheckResponse(is_valid=result.is_valid, errors=result.errors)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    The role is the one resolved for this request; profile details come
    from the stored profile when there is one.
    """
    profile = await get_profile(db, current_user["user_id"])

    return UserResponse(
        id=current_user["user_id"],
        email=profile.email if profile and profile.email else current_user.get("email"),
        name=profile.name if profile and profile.name else current_user.get("name"),
        user_type=UserType(current_user["user_type"]),
        role_source=RoleSource(current_user["role_source"]),
        roll_number=profile.roll_number if profile else None,
        batch_year=profile.batch_year if profile else None,
        full_batch=profile.full_batch if profile else None,
        last_login=profile.last_login if profile else None,
    )


@router.post("/logout")
async def logout(
    current_user: dict = Depends(get_current_user),
    tracking: TrackingRegistry = Depends(get_tracking_registry)
):
    """
    Logout: revoke the presented token and stop any tracking session
    the account is running.
    """
    tracking_stopped = tracking.stop(current_user["user_id"])
    revoked = await revoke_token(current_user["token"], current_user["user_id"], current_user.get("exp"))
    return {
        "message": "Logged out",
        "token_revoked": revoked,
        "tracking_stopped": tracking_stopped,
    }
