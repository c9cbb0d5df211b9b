"""
Tests for the outbound HTTP clients (Identity Toolkit and Nominatim)
and the auth error catalogue.
"""

import json

import httpx
import pytest

from bustrack.app.core.auth_messages import (
    AuthErrorCode,
    UNKNOWN_ERROR_MESSAGE,
    describe_auth_error,
    describe_reset_error,
    known_codes,
)
from bustrack.app.services.geocoding import ADDRESS_UNAVAILABLE, ReverseGeocoder
from bustrack.app.services.identity_provider import (
    FirebaseIdentityProvider,
    IdentityProviderError,
    map_rest_error,
)


def test_every_code_has_a_distinct_message():
    messages = [describe_auth_error(code)[0] for code in known_codes()]
    assert len(messages) == len(set(messages))
    assert UNKNOWN_ERROR_MESSAGE not in messages


def test_unknown_code_gets_generic_message():
    message, status_code = describe_auth_error("auth/something-new")
    assert message == UNKNOWN_ERROR_MESSAGE
    assert status_code == 401


@pytest.mark.parametrize("code,status_code", [
    (AuthErrorCode.TOO_MANY_REQUESTS, 429),
    (AuthErrorCode.NETWORK_FAILED, 503),
    (AuthErrorCode.API_KEY_NOT_VALID, 500),
    (AuthErrorCode.INVALID_EMAIL, 400),
    (AuthErrorCode.WRONG_PASSWORD, 401),
])
def test_status_codes(code, status_code):
    assert describe_auth_error(code)[1] == status_code


def test_reset_messages_speak_about_reset():
    assert describe_reset_error(AuthErrorCode.USER_NOT_FOUND) == ("Driver email not found.", 401)
    assert describe_reset_error(AuthErrorCode.TOO_MANY_REQUESTS) == describe_auth_error(AuthErrorCode.TOO_MANY_REQUESTS)


@pytest.mark.parametrize("message,code", [
    ("EMAIL_NOT_FOUND", AuthErrorCode.USER_NOT_FOUND),
    ("INVALID_PASSWORD", AuthErrorCode.WRONG_PASSWORD),
    ("INVALID_LOGIN_CREDENTIALS", AuthErrorCode.INVALID_CREDENTIAL),
    ("TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled",
     AuthErrorCode.TOO_MANY_REQUESTS),
    ("API key not valid. Please pass a valid API key.", AuthErrorCode.API_KEY_NOT_VALID),
    ("SOMETHING_ELSE", AuthErrorCode.INTERNAL),
])
def test_map_rest_error(message, code):
    assert map_rest_error(message) == code


def identity_toolkit(handler):
    return FirebaseIdentityProvider(
        api_key="test-key",
        base_url="https://identitytoolkit.test/v1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_password_sign_in():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.url.params["key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"localId": "abc123", "email": "raj@bitbus.com", "displayName": "Raj"})

    provider = identity_toolkit(handler)
    identity = await provider.sign_in_with_password("raj@bitbus.com", "secret")
    await provider.close()

    assert seen["path"] == "/v1/accounts:signInWithPassword"
    assert seen["key"] == "test-key"
    assert seen["body"]["email"] == "raj@bitbus.com"
    assert identity.uid == "abc123"
    assert identity.display_name == "Raj"


@pytest.mark.asyncio
async def test_google_sign_in_posts_id_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "localId": "g-1",
            "email": "btech12345.22@bitmesra.ac.in",
            "fullName": "Asha",
        })

    provider = identity_toolkit(handler)
    identity = await provider.sign_in_with_google("google-id-token")
    await provider.close()

    assert seen["path"] == "/v1/accounts:signInWithIdp"
    assert "id_token=google-id-token" in seen["body"]["postBody"]
    assert "providerId=google.com" in seen["body"]["postBody"]
    assert identity.display_name == "Asha"


@pytest.mark.asyncio
async def test_rest_error_becomes_provider_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": "INVALID_PASSWORD"}})

    provider = identity_toolkit(handler)
    with pytest.raises(IdentityProviderError) as exc_info:
        await provider.sign_in_with_password("raj@bitbus.com", "wrong")
    await provider.close()

    assert exc_info.value.code == AuthErrorCode.WRONG_PASSWORD


@pytest.mark.asyncio
async def test_connection_failure_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = identity_toolkit(handler)
    with pytest.raises(IdentityProviderError) as exc_info:
        await provider.send_password_reset("raj@bitbus.com")
    await provider.close()

    assert exc_info.value.code == AuthErrorCode.NETWORK_FAILED


@pytest.mark.asyncio
async def test_dropped_connection_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("connection reset by peer", request=request)

    provider = identity_toolkit(handler)
    with pytest.raises(IdentityProviderError) as exc_info:
        await provider.sign_in_with_password("raj@bitbus.com", "Secret@123")
    await provider.close()

    assert exc_info.value.code == AuthErrorCode.NETWORK_FAILED


@pytest.mark.asyncio
async def test_geocoder_caches_unchanged_position(geocoder, geocoder_requests):
    first = await geocoder.describe(23.41, 85.44)
    second = await geocoder.describe(23.41, 85.44)
    await geocoder.describe(23.42, 85.44)

    assert first == second == "Main Building, BIT Mesra, Ranchi, Jharkhand, India"
    assert len(geocoder_requests) == 2
    assert geocoder_requests[0].url.params["lat"] == "23.41"
    assert geocoder_requests[0].headers["User-Agent"] == "bustrack/1.0"


@pytest.mark.asyncio
async def test_geocoder_failure_degrades_to_placeholder():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="busy")

    geocoder = ReverseGeocoder(base_url="https://geocode.test", transport=httpx.MockTransport(handler))
    assert await geocoder.describe(23.41, 85.44) == ADDRESS_UNAVAILABLE
    # Failures are not cached
    assert await geocoder.describe(23.41, 85.44) == ADDRESS_UNAVAILABLE
    await geocoder.close()

    assert len(calls) == 2
