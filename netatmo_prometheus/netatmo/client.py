"""
curl -sS -H "Authorization: Bearer ${NETATMO_ACCESS_TOKEN}" -H "Accept: application/json" \
    "https://api.netatmo.com/api/getstationsdata?app_type=app_station" | jq .
"""

from typing import Any, Dict, Optional, Tuple

import logging
import httpx

from .const import API_URL, APP_TYPE_STATION, ENDPOINT_STATIONS
from .exceptions import APIStatusError, DecodeError, TransportError
from .models import DeviceCollection
from .oauth import NetatmoTokenSource
from .utils import now_ts

logger = logging.getLogger(__name__)


class NetatmoClient:
    base_url: str
    token_source: NetatmoTokenSource
    devices: DeviceCollection
    status: Dict[str, Any]
    TIMEOUT = 20

    HEADERS = {
        'Accept': 'application/json',
        'Authorization': 'Bearer {}'
    }

    REQUESTS = {
        'stations': {
            'request': ENDPOINT_STATIONS,
            'params': {
                'app_type': APP_TYPE_STATION
                }
            }
         }

    def __init__(self,
                 token_source: NetatmoTokenSource,
                 base_url: str = API_URL,
                 timeout: float = TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.status = {}
        self.base_url = base_url
        self.token_source = token_source
        self.timeout = timeout
        self.devices = DeviceCollection()
        self._transport = transport

    def build_stations_request(self) -> Tuple[str, Dict[str, str]]:
        """
        Generate api request url for API station data
        Returns tuple request and dictionary of params
        """
        stations_request = self.REQUESTS.get('stations')
        if stations_request is None:
            raise ValueError('Cant find the request settings for stations')

        request = stations_request.get('request')
        if request is None:
            raise ValueError('Cant find the request settings for stations: request')

        params = dict(stations_request.get('params', {}))

        return request, params

    async def fetch_devices(self) -> Tuple[DeviceCollection, bytes]:
        """
        Call Netatmo API and return decoded station data with the raw body.

        The held device collection is replaced only on success.
        """
        token = await self.token_source.get_token()

        headers = self.HEADERS.copy()
        headers['Authorization'] = headers['Authorization'].format(token.access_token)

        request, params = self.build_stations_request()

        try:
            async with httpx.AsyncClient(base_url=self.base_url,
                                         timeout=self.timeout,
                                         transport=self._transport) as client:
                r = await client.get(
                    request,
                    headers=headers,
                    params=params
                )
        except httpx.HTTPError as e:
            self.status['last_stations_request_error'] = {'reason': str(e), 'time': now_ts()}
            raise TransportError(f'Station data fetch failed: {e}', endpoint=request) from e

        if r.status_code != 200:
            self.status['last_stations_request_error'] = {
                'reason': r.text, 'status_code': r.status_code, 'time': now_ts()}
            raise APIStatusError(r.status_code, endpoint=request, reason=r.text)

        raw = r.content
        try:
            collection = DeviceCollection.from_json(raw)
        except DecodeError as e:
            self.status['last_stations_request_error'] = {'reason': str(e), 'time': now_ts()}
            e.endpoint = request
            raise

        self.devices = collection
        self.status.pop('last_stations_request_error', None)
        logger.debug(f'Fetched {len(collection.devices())} stations from {request}')
        return collection, raw
