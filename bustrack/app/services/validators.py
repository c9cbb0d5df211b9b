"""
Email and password validation helpers.

Student accounts must use the institutional address format
`<prefix>NNNNN.YY@<domain>`; the roll number and batch year are read
straight out of it.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bustrack.app.core.config import settings

SPECIAL_CHARACTERS = r"""!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?"""


@dataclass(frozen=True)
class StudentInfo:
    roll_number: str
    batch_year: str
    full_batch: str


@dataclass
class PasswordValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def student_email_pattern(prefix: str = None, domain: str = None) -> "re.Pattern[str]":
    prefix = settings.student_email_prefix if prefix is None else prefix
    domain = settings.student_email_domain if domain is None else domain
    return re.compile(rf"^{re.escape(prefix)}(\d{{5}})\.(\d{{2}})@{re.escape(domain)}$")


def validate_institutional_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Check an email against the institutional student pattern.

    Returns:
        (is_valid, error message or None)
    """
    if student_email_pattern().match(email or ""):
        return True, None
    return False, (
        "Please use your official institutional email in the format: "
        f"{settings.student_email_prefix}XXXXX.YY@{settings.student_email_domain}"
    )


def extract_student_info(email: str) -> Optional[StudentInfo]:
    """Extract roll number and batch year from a student email, or None if it does not match."""
    match = student_email_pattern().match(email or "")
    if not match:
        return None
    roll_number, batch_year = match.groups()
    return StudentInfo(
        roll_number=roll_number,
        batch_year=batch_year,
        full_batch=f"20{batch_year}",
    )


def validate_password(password: str) -> PasswordValidation:
    """
    Advisory password policy for driver accounts.

    Each violated rule contributes its own message.
    """
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")

    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")

    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")

    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")

    if not re.search(f"[{SPECIAL_CHARACTERS}]", password):
        errors.append("Password must contain at least one special character")

    return PasswordValidation(is_valid=not errors, errors=errors)
