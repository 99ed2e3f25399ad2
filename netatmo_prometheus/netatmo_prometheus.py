"""
FastAPI App to Expose Netatmo Weather Station Metrics for Prometheus
"""

import os
import asyncio
import logging

from pathlib import Path

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from typing import Any, Dict, Optional

from netatmo_prometheus.collectors import NETATMO_METRICS, NetatmoMetrics
from netatmo_prometheus.logging_config import setup_logging
from netatmo_prometheus.netatmo import (
    APIStatusError,
    DecodeError,
    Device,
    MissingTimestampError,
    NetatmoClient,
    NetatmoError,
    NetatmoTokenSource,
    PersistError,
    RefreshError,
    TokenStore,
    TransportError,
)
from netatmo_prometheus.netatmo.const import API_URL as DEFAULT_API_URL
from netatmo_prometheus.netatmo.const import TOKEN_URL as DEFAULT_TOKEN_URL
from netatmo_prometheus.netatmo.utils import now_utc

CONFIG_DIR = os.environ.get("NETATMO_CONFIG_DIR", "./config")
CREDENTIALS_FILE = Path(os.environ.get("NETATMO_CREDENTIALS_FILE", CONFIG_DIR + "/netatmo.toml"))
LOGGING_CONFIG = Path(os.environ.get("NETATMO_LOGGING_CONFIG", CONFIG_DIR + "/logging.yaml"))
API_URL = os.environ.get("NETATMO_API_URL", DEFAULT_API_URL)
TOKEN_URL = os.environ.get("NETATMO_TOKEN_URL", DEFAULT_TOKEN_URL)
POLL_SECONDS = float(os.environ.get("NETATMO_POLL_SECONDS", 300))
METRICS_URL = os.environ.get("NETATMO_METRICS_URL", "/metrics")
DEBUG_STATUS_URL = os.environ.get("NETATMO_DEBUG_STATUS_URL", "/debug/token/status")
DEBUG_STATIONS_URL = os.environ.get("NETATMO_DEBUG_STATIONS_URL", "/debug/stations")

STATIONS_REQUEST = "stations"

logger = logging.getLogger(__name__)

token_store = TokenStore(CREDENTIALS_FILE)
token_source: Optional[NetatmoTokenSource] = None
client: Optional[NetatmoClient] = None


def init_client(store: TokenStore) -> NetatmoClient:
    """
    Load credentials and wire token source and API client
    """
    global token_source, client

    record = store.load()
    logger.info(f'Loaded credentials for client {record.client_id[:4]}... '
                f'token valid until: {record.token_valid_until}')
    token_source = NetatmoTokenSource(store, token_url=TOKEN_URL)
    client = NetatmoClient(token_source, base_url=API_URL)
    return client


async def poll_once(api: NetatmoClient, metrics: NetatmoMetrics) -> int:
    """
    Fetch station data once and update metrics, errors are counted and re-raised
    """
    refreshes = api.token_source.refresh_count
    try:
        collection, _raw = await api.fetch_devices()
    except RefreshError:
        metrics.inc_refresh_counter('error')
        raise
    except APIStatusError as e:
        metrics.inc_requests_counter(STATIONS_REQUEST, e.status_code)
        raise
    except TransportError:
        metrics.inc_requests_counter(STATIONS_REQUEST, 'transport_error')
        raise
    except DecodeError:
        metrics.inc_requests_counter(STATIONS_REQUEST, 200)
        raise
    finally:
        if api.token_source.refresh_count > refreshes:
            metrics.inc_refresh_counter('success')

    metrics.inc_requests_counter(STATIONS_REQUEST, 200)
    return metrics.update_metrics(collection)


async def poll_loop(stop_event: asyncio.Event,
                    api: NetatmoClient,
                    metrics: NetatmoMetrics,
                    poll_seconds: float = POLL_SECONDS) -> None:
    logger.info(f'starting poll loop with interval: {poll_seconds}')
    while not stop_event.is_set():
        try:
            collected = await poll_once(api, metrics)
            logger.info(f'Metrics updated: {collected} values from {len(api.devices.stations())} stations')
        except PersistError as e:
            logger.error(f'Refreshed token was not persisted and will be lost on restart: {e}')
        except NetatmoError as e:
            logger.error(f'Netatmo metrics fetch and update raised exception: {e}')
        except Exception:
            logger.exception('Unexpected error in poll loop')

        # sleep, but wake early on shutdown
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_seconds)
        except asyncio.TimeoutError:
            pass


@asynccontextmanager
async def lifespan(netatmo_prometheus: FastAPI):
    setup_logging(LOGGING_CONFIG)

    logger.info(f"Initialize token store {CREDENTIALS_FILE}")
    api = init_client(token_store)

    logger.info("Initializing metrics collection")
    NETATMO_METRICS.init_metrics()

    stop_event = asyncio.Event()
    task = asyncio.create_task(poll_loop(stop_event, api, NETATMO_METRICS))

    yield

    stop_event.set()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


netatmo_prometheus = FastAPI(title="Netatmo Exporter", lifespan=lifespan)
app = netatmo_prometheus


@netatmo_prometheus.get("/health")
def health():
    return PlainTextResponse("ok", status_code=200)


@netatmo_prometheus.get(METRICS_URL)
def metrics():
    """
    return latest metrics collected by poll_loop function
    """
    return Response(generate_latest(NETATMO_METRICS.registry), media_type=CONTENT_TYPE_LATEST)


# ---- Debug routes (without sensitive information) ----
@netatmo_prometheus.get(DEBUG_STATUS_URL)
def debug_status():
    """
        Endpoint to show latest status of the token
    """
    if token_source is None:
        raise HTTPException(status_code=503, detail="Token source not initialised")

    token = token_source.token
    now = now_utc()
    return {
        "has_access_token": bool(token.access_token),
        "has_refresh_token": bool(token.refresh_token),
        "token_valid": token.is_valid(now),
        "token_valid_until": token.expiry.isoformat(),
        "seconds_to_expiry": (token.expiry - now).total_seconds(),
        "refresh_count": token_source.refresh_count,
        "last_error": client.status.get("last_stations_request_error") if client else None,
    }


def _describe_device(device: Device) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": device.id,
        "name": device.name,
        "type": device.type,
    }
    try:
        ts, data = device.measurements()
        _, info = device.status()
    except MissingTimestampError:
        ts, data, info = None, {}, {}
    result["time_utc"] = ts
    result["measurements"] = data
    result["status"] = info
    return result


@netatmo_prometheus.get(DEBUG_STATIONS_URL)
def debug_stations():
    """
        Endpoint to show the last fetched station data
    """
    if client is None:
        raise HTTPException(status_code=503, detail="Client not initialised")

    out = []
    for station in client.devices.stations():
        out.append({
            "station": _describe_device(station),
            "modules": [_describe_device(m) for m in station.linked_modules],
        })
    return JSONResponse(out)
