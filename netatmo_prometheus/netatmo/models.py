"""
Data models for the Netatmo station data payload
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple, Union

import json

from .const import MEASUREMENT_FIELDS, STATUS_FIELDS, TREND_FIELDS
from .exceptions import DecodeError, MissingTimestampError

FLOAT_FIELDS = (
    'Temperature',
    'max_temp',
    'min_temp',
    'Pressure',
    'AbsolutePressure',
    'Rain',
    'sum_rain_1',
    'sum_rain_24',
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if not _is_int(value):
        raise DecodeError(f'Field {key!r} is not an integer: {value!r}')
    return value


def _optional_float(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if not (_is_int(value) or isinstance(value, float)):
        raise DecodeError(f'Field {key!r} is not a number: {value!r}')
    return float(value)


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f'Field {key!r} is not a string: {value!r}')
    return value


def _object(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f'Field {key!r} is not an object')
    return value


def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f'Field {key!r} is not a list')
    return value


@dataclass
class DashboardData:
    """Sensor measurements of a device, every reading is optional"""
    Temperature: Optional[float] = None
    max_temp: Optional[float] = None
    min_temp: Optional[float] = None
    temp_trend: Optional[str] = None
    Humidity: Optional[int] = None
    CO2: Optional[int] = None
    Noise: Optional[int] = None
    Pressure: Optional[float] = None
    AbsolutePressure: Optional[float] = None
    pressure_trend: Optional[str] = None
    Rain: Optional[float] = None
    sum_rain_1: Optional[float] = None
    sum_rain_24: Optional[float] = None
    WindAngle: Optional[int] = None
    WindStrength: Optional[int] = None
    GustAngle: Optional[int] = None
    GustStrength: Optional[int] = None
    time_utc: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DashboardData':
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name in TREND_FIELDS:
                values[f.name] = _optional_str(data, f.name)
            elif f.name in FLOAT_FIELDS:
                values[f.name] = _optional_float(data, f.name)
            else:
                values[f.name] = _optional_int(data, f.name)
        return cls(**values)


@dataclass
class Location:
    """
    Geographic coordinates, Netatmo sends them as [longitude, latitude].
    Missing positions stay None and extra positions are ignored.
    """
    longitude: Optional[float] = None
    latitude: Optional[float] = None

    @classmethod
    def from_list(cls, data: Any) -> 'Location':
        if data is None:
            return cls()
        if not isinstance(data, list):
            raise DecodeError(f'Location is not a [longitude, latitude] list: {data!r}')
        values = dict(zip(('longitude', 'latitude'), data))
        return cls(longitude=_optional_float(values, 'longitude'),
                   latitude=_optional_float(values, 'latitude'))


@dataclass
class Place:
    altitude: Optional[int] = None
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    location: Location = field(default_factory=Location)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Place':
        return cls(altitude=_optional_int(data, 'altitude'),
                   city=_optional_str(data, 'city'),
                   country=_optional_str(data, 'country'),
                   timezone=_optional_str(data, 'timezone'),
                   location=Location.from_list(data.get('location')))


@dataclass
class Device:
    """A station or one of its modules"""
    id: str = ''
    station_name: str = ''
    module_name: str = ''
    type: str = ''
    battery_percent: Optional[int] = None
    wifi_status: Optional[int] = None
    rf_status: Optional[int] = None
    reachable: Optional[bool] = None
    firmware: Optional[int] = None
    data_type: List[str] = field(default_factory=list)
    dashboard_data: DashboardData = field(default_factory=DashboardData)
    place: Place = field(default_factory=Place)
    linked_modules: List['Device'] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> 'Device':
        if not isinstance(data, dict):
            raise DecodeError(f'Device is not an object: {data!r}')

        reachable = data.get('reachable')
        if reachable is not None and not isinstance(reachable, bool):
            raise DecodeError(f'Field \'reachable\' is not a boolean: {reachable!r}')

        data_type = _list(data, 'data_type')
        if not all(isinstance(item, str) for item in data_type):
            raise DecodeError('Field \'data_type\' is not a list of strings')

        return cls(id=_optional_str(data, '_id') or '',
                   station_name=_optional_str(data, 'station_name') or '',
                   module_name=_optional_str(data, 'module_name') or '',
                   type=_optional_str(data, 'type') or '',
                   battery_percent=_optional_int(data, 'battery_percent'),
                   wifi_status=_optional_int(data, 'wifi_status'),
                   rf_status=_optional_int(data, 'rf_status'),
                   reachable=reachable,
                   firmware=_optional_int(data, 'firmware'),
                   data_type=data_type,
                   dashboard_data=DashboardData.from_dict(_object(data, 'dashboard_data')),
                   place=Place.from_dict(_object(data, 'place')),
                   linked_modules=[cls.from_dict(m) for m in _list(data, 'modules')])

    @property
    def name(self) -> str:
        """Station name for stations, module name for modules"""
        return self.station_name or self.module_name

    @property
    def last_measure(self) -> Optional[int]:
        return self.dashboard_data.time_utc

    def _timestamp(self) -> int:
        if self.dashboard_data.time_utc is None:
            raise MissingTimestampError(f'Device {self.id!r} has no time_utc in dashboard_data')
        return self.dashboard_data.time_utc

    def module_group(self) -> List['Device']:
        """
        Return the linked modules followed by this device, as a new list
        """
        group = list(self.linked_modules)
        group.append(self)
        return group

    def measurements(self) -> Tuple[int, Dict[str, Any]]:
        """
        Return the timestamp and the populated fields of dashboard_data.
        Absent readings are left out of the mapping, zero readings are kept.

        :raises MissingTimestampError: dashboard_data carries no time_utc
        """
        timestamp = self._timestamp()
        result: Dict[str, Any] = {}
        for key, name in MEASUREMENT_FIELDS.items():
            value = getattr(self.dashboard_data, key)
            if value is None:
                continue
            if key in TREND_FIELDS and value == '':
                continue
            result[name] = value
        return timestamp, result

    def status(self) -> Tuple[int, Dict[str, Any]]:
        """
        Return the timestamp and the populated battery and radio indicators

        :raises MissingTimestampError: dashboard_data carries no time_utc
        """
        timestamp = self._timestamp()
        result: Dict[str, Any] = {}
        for key, name in STATUS_FIELDS.items():
            value = getattr(self, key)
            if value is not None:
                result[name] = value
        return timestamp, result


@dataclass
class DeviceCollection:
    """Decoded getstationsdata response"""
    stations_list: List[Device] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> 'DeviceCollection':
        if not isinstance(data, dict):
            raise DecodeError('Response is not a JSON object')
        body = data.get('body')
        if not isinstance(body, dict):
            raise DecodeError('Response has no \'body\' object')
        return cls(stations_list=[Device.from_dict(d) for d in _list(body, 'devices')])

    @classmethod
    def from_json(cls, raw: Union[bytes, str]) -> 'DeviceCollection':
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise DecodeError(f'Response is not valid JSON: {e}') from e
        return cls.from_dict(data)

    def devices(self) -> List[Device]:
        return self.stations_list

    def stations(self) -> List[Device]:
        """Alias of devices()"""
        return self.devices()
