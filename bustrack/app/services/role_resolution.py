"""
Role resolution.

Every entry point that needs to know whether an identity is a student
or a driver goes through `RoleResolver.resolve`: the persisted role wins;
without one, the email is classified by a single rule set and the result
is written back.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.core.config import settings
from bustrack.app.models.enums import RoleSource, UserType
from bustrack.app.models.user import User
from bustrack.app.services.identity_provider import Identity
from bustrack.app.core.timeutils import now_ms

logger = logging.getLogger("bustrack.roles")


@dataclass(frozen=True)
class ResolvedRole:
    user_type: UserType
    source: RoleSource

    @property
    def is_driver(self) -> bool:
        return self.user_type == UserType.DRIVER

    @property
    def is_student(self) -> bool:
        return self.user_type == UserType.STUDENT


def _domain_of(email: str) -> str:
    return email.rsplit("@", 1)[-1] if "@" in email else ""


def classify_email(email: Optional[str]) -> ResolvedRole:
    """
    Classify an identity by email alone.

    Driver rules are checked first: the demo driver account and the driver
    domains. Then the institutional student domains. Anything else is a
    student by default.
    """
    email = (email or "").strip().lower()
    domain = _domain_of(email)

    if email and email == settings.demo_driver_email.lower():
        return ResolvedRole(UserType.DRIVER, RoleSource.EMAIL_RULE)
    if domain and domain in [d.lower() for d in settings.driver_email_domains]:
        return ResolvedRole(UserType.DRIVER, RoleSource.EMAIL_RULE)
    if domain and domain in [d.lower() for d in settings.student_email_domains]:
        return ResolvedRole(UserType.STUDENT, RoleSource.EMAIL_RULE)
    return ResolvedRole(UserType.STUDENT, RoleSource.DEFAULT)


async def get_profile(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


class RoleResolver:
    """Resolves and persists the role of an authenticated identity."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, identity: Identity) -> ResolvedRole:
        try:
            profile = await get_profile(self.db, identity.uid)
        except SQLAlchemyError as e:
            logger.error("Error fetching profile for %s: %s", identity.uid, e)
            return classify_email(identity.email)

        if profile is not None and profile.user_type:
            try:
                return ResolvedRole(UserType(profile.user_type), RoleSource.STORED)
            except ValueError:
                logger.warning("Ignoring unknown stored role %r for %s", profile.user_type, identity.uid)

        resolved = classify_email(identity.email)
        logger.info("Derived role %s for %s from %s", resolved.user_type.value, identity.uid, resolved.source.value)
        await self._persist(identity, profile, resolved)
        return resolved

    async def _persist(self, identity: Identity, profile: Optional[User], resolved: ResolvedRole) -> None:
        """Best effort: a failed write is logged and the in-session role still applies."""
        try:
            if profile is None:
                profile = User(
                    id=identity.uid,
                    email=identity.email,
                    name=identity.display_name,
                    created_at=now_ms(),
                )
                self.db.add(profile)
            profile.user_type = resolved.user_type.value
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to persist role for %s: %s", identity.uid, e)
