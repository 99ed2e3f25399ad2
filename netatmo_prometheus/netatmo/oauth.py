from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import asyncio
import logging
import httpx

from .const import TOKEN_URL
from .exceptions import ConfigWriteError, PersistError, RefreshError
from .token_store import CredentialRecord, TokenStore
from .utils import md5, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """
    OAuth2 token held in memory, superseded on every refresh
    """
    access_token: str
    refresh_token: str
    expiry: datetime

    @classmethod
    def from_record(cls, record: CredentialRecord) -> 'Token':
        return cls(access_token=record.access_token,
                   refresh_token=record.refresh_token,
                   expiry=record.token_valid_until)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Token is usable while its expiry lies strictly in the future"""
        if now is None:
            now = now_utc()
        return bool(self.access_token) and self.expiry > now


class NetatmoTokenSource:
    """
    Provides a valid access token on demand.

    The cached token is reused until it expires. An expired token is
    exchanged for a new one with the refresh grant and the result is
    persisted through the TokenStore before it is handed out. Only one
    exchange runs at a time, callers arriving during a refresh wait for
    it and share the new token.
    """
    TIMEOUT = 20

    def __init__(self,
                 token_store: TokenStore,
                 token_url: str = TOKEN_URL,
                 timeout: float = TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], datetime] = now_utc):
        self.token_store = token_store
        self.token_url = token_url
        self.timeout = timeout
        self.refresh_count = 0
        self._transport = transport
        self._clock = clock
        self._lock = asyncio.Lock()
        self._unpersisted = False

        record = token_store.record
        if record is None:
            record = token_store.load()
        self._token = Token.from_record(record)

    @property
    def token(self) -> Token:
        return self._token

    async def get_token(self) -> Token:
        """
        Return the cached token while valid, otherwise refresh and persist it.
        A token whose save failed earlier is saved again before it is returned.
        Raises RefreshError or PersistError.
        """
        if self._unpersisted:
            async with self._lock:
                if self._unpersisted:
                    logger.info(f'Retrying save of access token md5: {md5(self._token.access_token)}')
                    await self._persist(self._token)

        token = self._token
        if token.is_valid(self._clock()):
            return token

        async with self._lock:
            # a concurrent caller may have refreshed while we waited
            token = self._token
            if token.is_valid(self._clock()):
                return token

            logger.info(f'Refreshing expired access token md5: {md5(token.access_token)} '
                        f'valid until: {token.expiry}')
            new_token = await self._refresh(token)
            self._token = new_token
            self._unpersisted = True
            self.refresh_count = self.refresh_count + 1

            await self._persist(new_token)

            logger.info(f'Access token refreshed md5: {md5(new_token.access_token)} '
                        f'valid until: {new_token.expiry}')
            return new_token

    async def _persist(self, token: Token) -> None:
        """
        Write the token to the credential file, the caller holds the lock
        """
        try:
            await asyncio.to_thread(self.token_store.update,
                                    access_token=token.access_token,
                                    refresh_token=token.refresh_token,
                                    token_valid_until=token.expiry)
        except ConfigWriteError as e:
            logger.error(f'Refreshed token could not be persisted: {e}')
            raise PersistError(f'Error saving credentials: {e}', token=token) from e
        self._unpersisted = False

    async def _refresh(self, token: Token) -> Token:
        """
        Exchange refresh token for a new access token
        """
        record = self.token_store.record
        if record is None:
            raise RefreshError('No credential record loaded')
        if not token.refresh_token:
            raise RefreshError('No refresh_token stored')

        data = {
            'grant_type': 'refresh_token',
            'refresh_token': token.refresh_token,
            'client_id': record.client_id,
            'client_secret': record.client_secret,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout,
                                         transport=self._transport) as client:
                r = await client.post(
                    self.token_url,
                    data=data,
                    headers={'Content-Type': 'application/x-www-form-urlencoded'},
                )
        except httpx.HTTPError as e:
            raise RefreshError(f'Refresh request to {self.token_url} failed: {e}') from e

        if r.status_code != 200:
            raise RefreshError(f'Refresh failed: {r.status_code}: {r.text}')

        try:
            token_json = r.json()
        except ValueError as e:
            raise RefreshError(f'Invalid token response from {self.token_url}') from e

        return self.handle_token_response(token_json, token)

    def handle_token_response(self, token_response: Dict[str, Any], previous: Token) -> Token:
        """
        Build the new token:
        - access_token is mandatory
        - refresh_token is replaced ONLY if returned
        - expiry is computed from expires_in, which must be a positive number
        """
        if not isinstance(token_response, dict):
            raise RefreshError('Token response is not a JSON object')

        access = token_response.get('access_token')
        if not access or not isinstance(access, str):
            raise RefreshError('Token response is missing access_token')

        if 'expires_in' not in token_response:
            raise RefreshError('Token response is missing expires_in')
        try:
            expires_in = int(token_response['expires_in'])
        except (TypeError, ValueError) as e:
            raise RefreshError('Token response carries invalid expires_in') from e
        if expires_in <= 0:
            raise RefreshError(f'Token response carries non-positive expires_in: {expires_in}')

        refresh = token_response.get('refresh_token') or previous.refresh_token

        return Token(access_token=access,
                     refresh_token=refresh,
                     expiry=self._clock() + timedelta(seconds=expires_in))
