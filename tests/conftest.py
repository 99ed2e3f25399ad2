from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

from netatmo_prometheus.netatmo import CredentialRecord, TokenStore


def _utc(**delta: float) -> datetime:
    return (datetime.now(timezone.utc) + timedelta(**delta)).replace(microsecond=0)


def write_credentials(path: Path, valid_until: datetime, **overrides: Any) -> Path:
    record = CredentialRecord(
        client_id=overrides.get("client_id", "client-id"),
        client_secret=overrides.get("client_secret", "client-secret"),
        access_token=overrides.get("access_token", "OLD_ACCESS"),
        refresh_token=overrides.get("refresh_token", "OLD_REFRESH"),
        token_valid_until=valid_until,
    )
    TokenStore(path).save(record)
    return path


@pytest.fixture
def future() -> datetime:
    return _utc(hours=1)


@pytest.fixture
def past() -> datetime:
    return _utc(hours=-1)


@pytest.fixture
def credentials_path(tmp_path: Path) -> Path:
    return tmp_path / "netatmo.toml"


@pytest.fixture
def valid_store(credentials_path: Path, future: datetime) -> TokenStore:
    write_credentials(credentials_path, future)
    store = TokenStore(credentials_path)
    store.load()
    return store


@pytest.fixture
def expired_store(credentials_path: Path, past: datetime) -> TokenStore:
    write_credentials(credentials_path, past)
    store = TokenStore(credentials_path)
    store.load()
    return store


def token_response(access: str = "NEW_ACCESS",
                   refresh: str | None = "NEW_REFRESH",
                   expires_in: int = 10800) -> httpx.Response:
    payload: Dict[str, Any] = {"access_token": access, "expires_in": expires_in, "scope": ["read_station"]}
    if refresh is not None:
        payload["refresh_token"] = refresh
    return httpx.Response(200, json=payload)


class RecordingHandler:
    """Routes requests by path and records every request seen."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            raise AssertionError(f"Unexpected request to {request.url}")
        return handler(request)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


STATION_PAYLOAD: Dict[str, Any] = {
    "body": {
        "devices": [
            {
                "_id": "70:ee:50:00:00:01",
                "station_name": "Home",
                "module_name": "Indoor",
                "type": "NAMain",
                "wifi_status": 56,
                "reachable": True,
                "firmware": 181,
                "data_type": ["Temperature", "CO2", "Humidity", "Noise", "Pressure"],
                "place": {
                    "altitude": 35,
                    "city": "Riga",
                    "country": "LV",
                    "timezone": "Europe/Riga",
                    "location": [24.1052, 56.9496],
                },
                "dashboard_data": {
                    "time_utc": 1760781600,
                    "Temperature": 21.5,
                    "CO2": 612,
                    "Humidity": 45,
                    "Noise": 38,
                    "Pressure": 1013.2,
                    "AbsolutePressure": 1009,
                    "min_temp": 20.1,
                    "max_temp": 22.3,
                    "temp_trend": "stable",
                    "pressure_trend": "up",
                },
                "modules": [
                    {
                        "_id": "02:00:00:00:00:01",
                        "module_name": "Outdoor",
                        "type": "NAModule1",
                        "battery_percent": 80,
                        "rf_status": 70,
                        "dashboard_data": {
                            "time_utc": 1760781590,
                            "Temperature": 7.4,
                            "Humidity": 0,
                            "temp_trend": "down",
                        },
                    },
                    {
                        "_id": "05:00:00:00:00:01",
                        "module_name": "Rain gauge",
                        "type": "NAModule3",
                        "battery_percent": 64,
                        "rf_status": 81,
                        "dashboard_data": {
                            "time_utc": 1760781595,
                            "Rain": 0,
                            "sum_rain_1": 0.2,
                            "sum_rain_24": 3.1,
                        },
                    },
                ],
            }
        ]
    },
    "status": "ok",
}


def station_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=json.dumps(STATION_PAYLOAD).encode("utf-8"),
                          headers={"Content-Type": "application/json"})
