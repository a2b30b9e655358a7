"""Bearer-token lifecycle.

:class:`TokenManager` owns the access/refresh token pair.  Every vendor
call asks it for a usable token first; when the cached one has expired
it runs the refresh-token grant, stores the new pair and reports it
through the ``on_update`` listener so it can be persisted.

Concurrent callers share a single refresh: the refresh runs under an
``asyncio.Lock`` and callers re-check usability once they hold it, so a
burst of poll requests hitting an expired token produces one grant,
not one per request.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from idiamant2mqtt._clock import ClockPort
from idiamant2mqtt._errors import FatalAuthError, NoCredentialsError, RequestError
from idiamant2mqtt._models import AuthorizationResult, Token

logger = logging.getLogger(__name__)

TokenListener = Callable[[Token], Awaitable[None]]
"""Async callback receiving every newly obtained token."""


class TokenGrantPort(Protocol):
    """The refresh-token grant of the OAuth server."""

    async def refresh(self, refresh_token: str) -> AuthorizationResult: ...


class TokenManager:
    """Holds the current token and refreshes it on demand.

    Args:
        grant: Performs the refresh-token exchange.
        clock: Wall clock used for expiry checks.
        token: Initial token (typically loaded from the state file).
        on_update: Called with the new token after every refresh or
            :meth:`apply`.
    """

    def __init__(
        self,
        grant: TokenGrantPort,
        clock: ClockPort,
        *,
        token: Token | None = None,
        on_update: TokenListener | None = None,
    ) -> None:
        self._grant = grant
        self._clock = clock
        self._token = token if token is not None else Token()
        self._on_update = on_update
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Token:
        return self._token

    def is_usable(self) -> bool:
        return self._token.is_usable(self._clock.now())

    async def ensure_valid(self) -> Token:
        """Return a usable token, refreshing it first when needed.

        Raises:
            NoCredentialsError: No usable access token and no refresh
                token to obtain one.
            InvalidTokenResponse: The grant answered without a full token.
            FatalAuthError: The refresh token was rejected.
            RequestError: The token endpoint could not be reached.
        """
        if self.is_usable():
            logger.debug("Access token valid")
            return self._token
        async with self._lock:
            if self.is_usable():
                return self._token
            if not self._token.refresh_token:
                msg = "No usable access token and no refresh token available"
                raise NoCredentialsError(msg)
            logger.info("Access token expired, requesting a new one")
            result = await self._grant.refresh(self._token.refresh_token)
            await self._install(result)
            return self._token

    async def authenticate(self) -> bool:
        """Make sure a usable token exists.

        Returns:
            ``True`` when connected, ``False`` when the user has to
            authorize the bridge again (or the API is unreachable).
        """
        try:
            await self.ensure_valid()
        except NoCredentialsError:
            logger.warning("No refresh token available, authorization required")
            return False
        except (FatalAuthError, RequestError) as exc:
            logger.error("Authentication with Netatmo failed: %s", exc)
            return False
        return True

    async def apply(self, result: AuthorizationResult) -> None:
        """Install an externally obtained authorization result."""
        async with self._lock:
            await self._install(result)

    def invalidate(self, access_token: str) -> None:
        """Forget *access_token* if it is still the current one.

        A token that a concurrent caller already replaced is left alone.
        """
        if access_token and self._token.access_token == access_token:
            self._token = dataclasses.replace(self._token, access_token="")

    async def _install(self, result: AuthorizationResult) -> None:
        self._token = result.to_token(self._clock.now())
        logger.info("New access token obtained")
        if self._on_update is not None:
            await self._on_update(self._token)
