"""Netatmo API client.

Two clients share one ``httpx.AsyncClient``:

- :class:`OAuthClient`: the unauthenticated ``/oauth2/token`` endpoint
  (refresh-token grant).
- :class:`NetatmoApi`: the bearer-authenticated ``/api`` endpoints
  used for discovery, status polling and commands.

Every :class:`NetatmoApi` request asks the :class:`TokenManager` for a
usable token.  When the API answers 401/403 with vendor error code 3
(expired token) the token is invalidated, refreshed once and the same
request is sent again; a second rejection surfaces as
:class:`RequestError`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from idiamant2mqtt._errors import (
    FatalAuthError,
    InvalidTokenResponse,
    RequestError,
    TokenExpiredError,
)
from idiamant2mqtt._models import AuthorizationResult, ResolvedCommand, Token
from idiamant2mqtt._token import TokenManager

logger = logging.getLogger(__name__)

PATH_AUTH = "/oauth2/token"
PATH_HOMES_DATA = "/api/homesdata"
PATH_HOME_STATUS = "/api/homestatus"
PATH_SET_STATE = "/api/setstate"

TOKEN_EXPIRED_CODE = 3

_AUTH_STATUSES = frozenset({401, 403})
_GRANT_REJECTED_STATUSES = frozenset({400, 401, 403})


def create_http_client(base_url: str, timeout: float) -> httpx.AsyncClient:
    """Create the shared HTTP client for the Netatmo API."""
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout),
        headers={"accept": "application/json"},
    )


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def describe_error(response: httpx.Response) -> tuple[str, Any]:
    """Return a human-readable detail and the vendor ``error`` payload."""
    data = _json_or_none(response)
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(data, dict) and data.get("error_description"):
        detail = str(data["error_description"])
    elif isinstance(error, dict) and error.get("message"):
        detail = str(error["message"])
    elif error:
        detail = json.dumps(error)
    else:
        detail = response.reason_phrase or "unknown error"
    return detail, error


def is_token_expired(response: httpx.Response) -> bool:
    """True for a 401/403 whose vendor error code says "expired token"."""
    if response.status_code not in _AUTH_STATUSES:
        return False
    data = _json_or_none(response)
    error = data.get("error") if isinstance(data, dict) else None
    return isinstance(error, dict) and error.get("code") == TOKEN_EXPIRED_CODE


def validate_response(response: httpx.Response, path: str) -> dict[str, Any]:
    """Return the JSON body of a successful response.

    Raises:
        TokenExpiredError: 401/403 with vendor code 3.
        RequestError: Any other HTTP or payload failure.
    """
    if response.is_success:
        data = _json_or_none(response)
        if not isinstance(data, dict):
            msg = f"HTTP request {path} failed: response is not a JSON object"
            raise RequestError(msg, path=path, status_code=response.status_code)
        return data

    detail, error = describe_error(response)
    msg = f"HTTP request {path} failed: {detail} ({response.status_code})"
    if is_token_expired(response):
        raise TokenExpiredError(msg, status_code=response.status_code, payload=error)
    raise RequestError(
        msg,
        path=path,
        status_code=response.status_code,
        payload=error,
    )


class OAuthClient:
    """Refresh-token grant against ``/oauth2/token``.

    Satisfies :class:`~idiamant2mqtt._token.TokenGrantPort`.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        client_id: str,
        client_secret: str,
    ) -> None:
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret

    async def refresh(self, refresh_token: str) -> AuthorizationResult:
        """Exchange *refresh_token* for a new token pair.

        Raises:
            InvalidTokenResponse: The answer lacks ``access_token``,
                ``refresh_token`` or ``expires_in``.
            FatalAuthError: The grant was rejected (4xx).
            RequestError: Transport failure or server error.
        """
        form = {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
        }
        logger.info("Request new token")
        try:
            response = await self._http.post(PATH_AUTH, data=form)
        except httpx.HTTPError as exc:
            msg = f"HTTP request {PATH_AUTH} failed: {exc}"
            raise RequestError(msg, path=PATH_AUTH) from exc

        if response.status_code in _GRANT_REJECTED_STATUSES:
            detail, _ = describe_error(response)
            msg = f"Refresh token rejected: {detail} ({response.status_code})"
            raise FatalAuthError(msg)
        data = validate_response(response, PATH_AUTH)

        result = AuthorizationResult.from_response(data)
        if result is None:
            msg = "Invalid Netatmo token response"
            raise InvalidTokenResponse(msg)
        return result


@runtime_checkable
class NetatmoPort(Protocol):
    """The subset of the Netatmo API the engine depends on."""

    async def homes_data(self) -> list[dict[str, Any]]: ...

    async def home_status(self, home_id: str) -> dict[str, Any] | None: ...

    async def set_state(self, command: ResolvedCommand) -> dict[str, Any]: ...


class NetatmoApi:
    """Bearer-authenticated Netatmo endpoints used by the engine.

    Satisfies :class:`NetatmoPort`.
    """

    def __init__(self, http: httpx.AsyncClient, tokens: TokenManager) -> None:
        self._http = http
        self._tokens = tokens

    async def homes_data(self) -> list[dict[str, Any]]:
        """``GET /api/homesdata`` → the list of homes."""
        data = await self.request("GET", PATH_HOMES_DATA)
        homes = (data.get("body") or {}).get("homes", [])
        return homes if isinstance(homes, list) else []

    async def home_status(self, home_id: str) -> dict[str, Any] | None:
        """``GET /api/homestatus`` → the ``home`` object, if any."""
        data = await self.request(
            "GET",
            PATH_HOME_STATUS,
            params={"home_id": home_id},
        )
        home = (data.get("body") or {}).get("home")
        return home if isinstance(home, dict) else None

    async def set_state(self, command: ResolvedCommand) -> dict[str, Any]:
        """``POST /api/setstate`` → the raw response body."""
        return await self.request("POST", PATH_SET_STATE, json=command.to_request())

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Send an authenticated request, refreshing once on expiry.

        Raises:
            RequestError: The request failed, including a second
                expired-token rejection after a refresh.
            FatalAuthError: No token could be obtained.
        """
        token = await self._tokens.ensure_valid()
        try:
            return await self._send(method, path, token, params=params, json=json)
        except TokenExpiredError:
            logger.info("Access token rejected by %s, refreshing", path)
            self._tokens.invalidate(token.access_token)

        token = await self._tokens.ensure_valid()
        try:
            return await self._send(method, path, token, params=params, json=json)
        except TokenExpiredError as exc:
            raise RequestError(
                f"{exc} (still rejected after token refresh)",
                path=path,
                status_code=exc.status_code,
                payload=exc.payload,
            ) from exc

    async def _send(
        self,
        method: str,
        path: str,
        token: Token,
        *,
        params: dict[str, Any] | None,
        json: Any,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token.access_token}"}
        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            msg = f"HTTP request {path} failed: {exc}"
            raise RequestError(msg, path=path) from exc
        return validate_response(response, path)
