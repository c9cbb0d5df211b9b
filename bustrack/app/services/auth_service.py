"""
Authentication flows for drivers and students.

Drivers sign in with email and password and must already be registered
as drivers (the demo account self-heals a missing profile). Students sign
in through Google and must use an institutional address. Provider error
codes are translated into `AuthProviderError` with user-facing text here,
at the boundary.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.core.auth_messages import AuthErrorCode, describe_auth_error, describe_reset_error
from bustrack.app.core.config import settings
from bustrack.app.core.exceptions import AuthProviderError, NotADriverError, StudentEmailValidationError
from bustrack.app.core.timeutils import now_ms
from bustrack.app.models.enums import RoleSource, SessionPersistence, UserType
from bustrack.app.models.user import User
from bustrack.app.services.identity_provider import Identity, IdentityProvider, IdentityProviderError
from bustrack.app.services.role_resolution import ResolvedRole, get_profile
from bustrack.app.services.validators import extract_student_info, validate_institutional_email

logger = logging.getLogger("bustrack.auth")


@dataclass
class LoginResult:
    identity: Identity
    role: ResolvedRole
    persistence: SessionPersistence
    profile: User


def _provider_failure(error: IdentityProviderError) -> AuthProviderError:
    message, status_code = describe_auth_error(error.code)
    return AuthProviderError(error.code, message, status_code)


async def login_driver(
    db: AsyncSession,
    provider: IdentityProvider,
    email: str,
    password: str,
    remember_me: bool = False,
) -> LoginResult:
    """
    Sign a driver in with email and password.

    Raises:
        AuthProviderError: the provider rejected the credentials
        NotADriverError: the account has no driver profile (signed out again)
    """
    # Persistence is chosen before authenticating; it decides the token lifetime
    persistence = SessionPersistence.LOCAL if remember_me else SessionPersistence.SESSION

    try:
        identity = await provider.sign_in_with_password(email, password)
    except IdentityProviderError as e:
        logger.warning("Driver login failed for %s: %s", email, e.code)
        raise _provider_failure(e) from e

    profile = await get_profile(db, identity.uid)
    is_demo = (identity.email or email).lower() == settings.demo_driver_email.lower()

    if profile is None and is_demo:
        profile = User(
            id=identity.uid,
            email=identity.email or email,
            name=settings.demo_driver_name,
            user_type=UserType.DRIVER.value,
            created_at=now_ms(),
        )
        db.add(profile)
        logger.info("Created missing demo driver profile for %s", identity.uid)
    elif profile is None:
        await provider.sign_out(identity)
        raise NotADriverError(
            "Driver account not found in database. Please contact administrator to set up your driver profile.",
            reason="missing_profile",
        )
    elif profile.user_type != UserType.DRIVER.value:
        await provider.sign_out(identity)
        raise NotADriverError(
            "This account is not registered as a driver. Please use the correct driver credentials.",
            reason="wrong_role",
        )

    profile.last_login = now_ms()
    await db.commit()

    logger.info("Driver %s signed in (%s)", identity.uid, persistence.value)
    return LoginResult(
        identity=identity,
        role=ResolvedRole(UserType.DRIVER, RoleSource.STORED),
        persistence=persistence,
        profile=profile,
    )


async def login_student_with_google(
    db: AsyncSession,
    provider: IdentityProvider,
    id_token: str,
) -> LoginResult:
    """
    Sign a student in with a Google ID token.

    Raises:
        AuthProviderError: the provider rejected the token
        StudentEmailValidationError: not an institutional address (signed out again)
    """
    try:
        identity = await provider.sign_in_with_google(id_token)
    except IdentityProviderError as e:
        logger.warning("Google login failed: %s", e.code)
        raise _provider_failure(e) from e

    if not identity.email:
        await provider.sign_out(identity)
        raise StudentEmailValidationError("No email found in Google account.")

    is_valid, error = validate_institutional_email(identity.email)
    if not is_valid:
        await provider.sign_out(identity)
        raise StudentEmailValidationError(error, email=identity.email)

    info = extract_student_info(identity.email)
    profile = await get_profile(db, identity.uid)
    if profile is None:
        profile = User(id=identity.uid, created_at=now_ms())
        db.add(profile)

    profile.email = identity.email
    profile.name = identity.display_name
    profile.user_type = UserType.STUDENT.value
    profile.roll_number = info.roll_number
    profile.batch_year = info.batch_year
    profile.full_batch = info.full_batch
    profile.last_login = now_ms()
    await db.commit()

    logger.info("Student %s signed in (roll %s, batch %s)", identity.uid, info.roll_number, info.full_batch)
    return LoginResult(
        identity=identity,
        role=ResolvedRole(UserType.STUDENT, RoleSource.STORED),
        persistence=SessionPersistence.LOCAL,
        profile=profile,
    )


async def reset_driver_password(provider: IdentityProvider, email: str) -> None:
    """Ask the provider to mail a password reset link."""
    try:
        await provider.send_password_reset(email)
    except IdentityProviderError as e:
        logger.warning("Password reset failed for %s: %s", email, e.code)
        message, status_code = describe_reset_error(e.code)
        raise AuthProviderError(e.code, message, status_code) from e


async def ensure_demo_driver_account(db: AsyncSession, provider: IdentityProvider) -> Optional[str]:
    """
    Make sure the demo driver account exists and is registered as a driver.

    Never raises: a failure here must not block startup.

    Returns:
        The demo account uid, or None when provisioning failed
    """
    email = settings.demo_driver_email
    password = settings.demo_driver_password
    try:
        try:
            identity = await provider.create_user(email, password)
            logger.info("Demo driver account created")
        except IdentityProviderError as e:
            if e.code != AuthErrorCode.EMAIL_IN_USE:
                raise
            identity = await provider.sign_in_with_password(email, password)

        profile = await get_profile(db, identity.uid)
        if profile is None:
            db.add(User(
                id=identity.uid,
                email=email,
                name=settings.demo_driver_name,
                user_type=UserType.DRIVER.value,
                created_at=now_ms(),
                last_login=now_ms(),
            ))
            logger.info("Demo driver database entry created")
        elif profile.user_type != UserType.DRIVER.value:
            profile.user_type = UserType.DRIVER.value
            logger.info("Demo driver userType updated")
        await db.commit()
        await provider.sign_out(identity)
        return identity.uid
    except Exception as e:
        await db.rollback()
        logger.error("Error setting up demo driver account: %s", e)
        return None
