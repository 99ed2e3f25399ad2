"""
Netatmo weather station client package.

Exports:
- TokenStore
- NetatmoTokenSource
- NetatmoClient
"""
__version__ = "0.1.0"

from .client import NetatmoClient
from .exceptions import (
    APIStatusError,
    ConfigReadError,
    ConfigWriteError,
    DecodeError,
    MissingTimestampError,
    NetatmoError,
    PersistError,
    RefreshError,
    TransportError,
)
from .models import DashboardData, Device, DeviceCollection, Location, Place
from .oauth import NetatmoTokenSource, Token
from .token_store import CredentialRecord, TokenStore

__all__ = [
    "APIStatusError",
    "ConfigReadError",
    "ConfigWriteError",
    "CredentialRecord",
    "DashboardData",
    "DecodeError",
    "Device",
    "DeviceCollection",
    "Location",
    "MissingTimestampError",
    "NetatmoClient",
    "NetatmoError",
    "NetatmoTokenSource",
    "PersistError",
    "Place",
    "RefreshError",
    "Token",
    "TokenStore",
    "TransportError",
]
