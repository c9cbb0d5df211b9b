"""
Identity provider boundary.

The provider owns credentials and issues the opaque uid every profile is
keyed by. `FirebaseIdentityProvider` talks to the Identity Toolkit REST
API with httpx; tests substitute an in-memory provider implementing the
same protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import httpx

from bustrack.app.core.auth_messages import AuthErrorCode
from bustrack.app.core.config import settings

logger = logging.getLogger("bustrack.identity")

# Identity Toolkit error strings -> provider codes
_REST_ERROR_CODES = {
    "EMAIL_NOT_FOUND": AuthErrorCode.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthErrorCode.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorCode.INVALID_CREDENTIAL,
    "INVALID_IDP_RESPONSE": AuthErrorCode.INVALID_CREDENTIAL,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthErrorCode.TOO_MANY_REQUESTS,
    "INVALID_EMAIL": AuthErrorCode.INVALID_EMAIL,
    "MISSING_EMAIL": AuthErrorCode.INVALID_EMAIL,
    "USER_DISABLED": AuthErrorCode.USER_DISABLED,
    "EMAIL_EXISTS": AuthErrorCode.EMAIL_IN_USE,
}


@dataclass(frozen=True)
class Identity:
    """An authenticated identity as issued by the provider."""
    uid: str
    email: Optional[str]
    display_name: Optional[str] = None


class IdentityProviderError(Exception):
    """Provider failure carrying a provider error code (see AuthErrorCode)."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(f"{code}: {message}" if message else code)


class IdentityProvider(Protocol):
    async def sign_in_with_password(self, email: str, password: str) -> Identity: ...

    async def sign_in_with_google(self, id_token: str) -> Identity: ...

    async def create_user(self, email: str, password: str) -> Identity: ...

    async def send_password_reset(self, email: str) -> None: ...

    async def sign_out(self, identity: Identity) -> None: ...


def map_rest_error(message: str) -> str:
    """Map an Identity Toolkit error message to a provider code."""
    # Messages look like "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account..."
    key = message.split(" : ", 1)[0].strip()
    if key in _REST_ERROR_CODES:
        return _REST_ERROR_CODES[key]
    if "API key not valid" in message or key == "API_KEY_INVALID":
        return AuthErrorCode.API_KEY_NOT_VALID
    return AuthErrorCode.INTERNAL


class FirebaseIdentityProvider:
    """Identity provider backed by the Firebase Identity Toolkit REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        timeout: float = 10.0,
        request_uri: str = "http://localhost",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._request_uri = request_uri
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(endpoint, params={"key": self._api_key}, json=body)
        except httpx.TransportError as exc:
            raise IdentityProviderError(AuthErrorCode.NETWORK_FAILED, str(exc)) from exc

        if response.status_code >= 400:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = response.text
            code = map_rest_error(message)
            logger.info("Identity provider rejected %s: %s", endpoint, message)
            raise IdentityProviderError(code, message)
        return response.json()  # type: ignore[no-any-return]

    @staticmethod
    def _identity(data: dict[str, Any]) -> Identity:
        return Identity(
            uid=data["localId"],
            email=data.get("email"),
            display_name=data.get("displayName") or data.get("fullName"),
        )

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        data = await self._post(
            "/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity(data)

    async def sign_in_with_google(self, id_token: str) -> Identity:
        data = await self._post(
            "/accounts:signInWithIdp",
            {
                "postBody": urlencode({"id_token": id_token, "providerId": "google.com"}),
                "requestUri": self._request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        return self._identity(data)

    async def create_user(self, email: str, password: str) -> Identity:
        data = await self._post(
            "/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity(data)

    async def send_password_reset(self, email: str) -> None:
        await self._post("/accounts:sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    async def sign_out(self, identity: Identity) -> None:
        # REST sign-ins are stateless: dropping the provider tokens is the sign-out
        logger.debug("Signed out %s", identity.uid)

    async def close(self) -> None:
        await self._client.aclose()


_provider: Optional[FirebaseIdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    """
    FastAPI dependency returning the process-wide provider.

    Created lazily so the app can be imported without provider credentials.
    """
    global _provider
    if _provider is None:
        _provider = FirebaseIdentityProvider(
            api_key=settings.firebase_api_key or "",
            base_url=settings.identity_toolkit_url,
            timeout=settings.identity_request_timeout,
            request_uri=f"https://{settings.firebase_auth_domain}" if settings.firebase_auth_domain else "http://localhost",
        )
    return _provider


async def close_identity_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
