"""
User-facing messages for identity provider error codes.

Every provider code gets its own message so the login screens can tell
the user exactly what went wrong and what to try next.
"""

from typing import Dict, Tuple

from fastapi import status


class AuthErrorCode:
    """Identity provider error codes (Firebase Auth naming)."""
    POPUP_CLOSED = "auth/popup-closed-by-user"
    POPUP_BLOCKED = "auth/popup-blocked"
    CANCELLED_POPUP = "auth/cancelled-popup-request"
    NETWORK_FAILED = "auth/network-request-failed"
    USER_NOT_FOUND = "auth/user-not-found"
    WRONG_PASSWORD = "auth/wrong-password"
    INVALID_CREDENTIAL = "auth/invalid-credential"
    TOO_MANY_REQUESTS = "auth/too-many-requests"
    INVALID_EMAIL = "auth/invalid-email"
    API_KEY_NOT_VALID = "auth/api-key-not-valid"
    EMAIL_IN_USE = "auth/email-already-in-use"
    USER_DISABLED = "auth/user-disabled"
    INTERNAL = "auth/internal-error"


_MESSAGES: Dict[str, Tuple[str, int]] = {
    AuthErrorCode.POPUP_CLOSED: (
        "Sign-in was cancelled. Please try again.",
        status.HTTP_400_BAD_REQUEST,
    ),
    AuthErrorCode.POPUP_BLOCKED: (
        "Pop-up was blocked by your browser. Allow pop-ups for this site, "
        "refresh the page and try signing in again.",
        status.HTTP_400_BAD_REQUEST,
    ),
    AuthErrorCode.CANCELLED_POPUP: (
        "Another sign-in attempt is in progress. Please wait and try again.",
        status.HTTP_409_CONFLICT,
    ),
    AuthErrorCode.NETWORK_FAILED: (
        "Network error. Please check your internet connection and try again.",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    ),
    AuthErrorCode.USER_NOT_FOUND: (
        "Driver email not found. Please check your email address or contact administrator.",
        status.HTTP_401_UNAUTHORIZED,
    ),
    AuthErrorCode.WRONG_PASSWORD: (
        "Invalid email or password. Please check your credentials and try again.",
        status.HTTP_401_UNAUTHORIZED,
    ),
    AuthErrorCode.INVALID_CREDENTIAL: (
        "The supplied credentials are invalid or have expired. Please sign in again.",
        status.HTTP_401_UNAUTHORIZED,
    ),
    AuthErrorCode.TOO_MANY_REQUESTS: (
        "Too many failed attempts. Please try again later or reset your password.",
        status.HTTP_429_TOO_MANY_REQUESTS,
    ),
    AuthErrorCode.INVALID_EMAIL: (
        "Invalid email format. Please enter a valid email address.",
        status.HTTP_400_BAD_REQUEST,
    ),
    AuthErrorCode.API_KEY_NOT_VALID: (
        "Identity provider configuration error. Please ensure the API key is "
        "properly configured in the environment variables.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    ),
    AuthErrorCode.EMAIL_IN_USE: (
        "An account with this email already exists.",
        status.HTTP_409_CONFLICT,
    ),
    AuthErrorCode.USER_DISABLED: (
        "This account has been disabled. Please contact administrator.",
        status.HTTP_403_FORBIDDEN,
    ),
}

# Password reset reuses the codes but speaks about the reset, not the login
_RESET_MESSAGES: Dict[str, str] = {
    AuthErrorCode.USER_NOT_FOUND: "Driver email not found.",
    AuthErrorCode.INVALID_EMAIL: "Invalid email format.",
}

UNKNOWN_ERROR_MESSAGE = "Sign-in failed. Please try again."


def describe_auth_error(code: str) -> Tuple[str, int]:
    """
    Translate a provider error code into a message and an HTTP status.

    Unknown codes get a generic message and a 401.
    """
    return _MESSAGES.get(code, (UNKNOWN_ERROR_MESSAGE, status.HTTP_401_UNAUTHORIZED))


def describe_reset_error(code: str) -> Tuple[str, int]:
    """Translate a provider error code raised while sending a password reset."""
    message, status_code = describe_auth_error(code)
    return _RESET_MESSAGES.get(code, message), status_code


def known_codes():
    return list(_MESSAGES)
