from typing import Any, Dict, List, Optional, Union
import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge

from netatmo_prometheus.netatmo import Device, DeviceCollection, MissingTimestampError
from netatmo_prometheus.netatmo.utils import now_ts

logger = logging.getLogger(__name__)

DEVICE_LABELS = ['station', 'module', 'module_id', 'type']


class NetatmoMetrics:
    """
    NetatmoMetrics exports Netatmo weather station readings to Prometheus.

    Every numeric reading from a device's measurements() and status()
    view is mapped to a Gauge, one time series per module. Readings
    that the module does not report are not touched, so a station
    without a rain gauge never exposes rain series.

    Example exported metric:
      netatmo_sensor_temperature_celsius{
        station='Home',
        module='Outdoor',
        module_id='02:00:00:aa:bb:cc',
        type='NAModule1'
      } 7.4

    Trend readings (TempTrend, PressureTrend) are strings and not exported.
    """
    NETATMO_MEASUREMENT_GAUGES: Dict[str, Any] = {
        'Temperature': {
            'metric_name': 'netatmo_sensor_temperature_celsius',
            'metric_help': 'Temperature measurement in celsius'
        },
        'MinTemp': {
            'metric_name': 'netatmo_sensor_min_temperature_celsius',
            'metric_help': 'Minimum temperature of the day in celsius'
        },
        'MaxTemp': {
            'metric_name': 'netatmo_sensor_max_temperature_celsius',
            'metric_help': 'Maximum temperature of the day in celsius'
        },
        'Humidity': {
            'metric_name': 'netatmo_sensor_humidity_percent',
            'metric_help': 'Relative humidity in percent'
        },
        'CO2': {
            'metric_name': 'netatmo_sensor_co2_ppm',
            'metric_help': 'CO2 concentration in ppm'
        },
        'Noise': {
            'metric_name': 'netatmo_sensor_noise_db',
            'metric_help': 'Noise level in dB'
        },
        'Pressure': {
            'metric_name': 'netatmo_sensor_pressure_mb',
            'metric_help': 'Sea level pressure in mbar'
        },
        'AbsolutePressure': {
            'metric_name': 'netatmo_sensor_absolute_pressure_mb',
            'metric_help': 'Absolute pressure in mbar'
        },
        'Rain': {
            'metric_name': 'netatmo_sensor_rain_mm',
            'metric_help': 'Rain of the last measurement in mm'
        },
        'Rain1Hour': {
            'metric_name': 'netatmo_sensor_rain_1h_mm',
            'metric_help': 'Rain of the last hour in mm'
        },
        'Rain1Day': {
            'metric_name': 'netatmo_sensor_rain_24h_mm',
            'metric_help': 'Rain of the day in mm'
        },
        'WindAngle': {
            'metric_name': 'netatmo_sensor_wind_direction_degrees',
            'metric_help': 'Wind direction in degrees'
        },
        'WindStrength': {
            'metric_name': 'netatmo_sensor_wind_strength_kph',
            'metric_help': 'Wind strength in km/h'
        },
        'GustAngle': {
            'metric_name': 'netatmo_sensor_gust_direction_degrees',
            'metric_help': 'Gust direction in degrees'
        },
        'GustStrength': {
            'metric_name': 'netatmo_sensor_gust_strength_kph',
            'metric_help': 'Gust strength in km/h'
        },
    }
    NETATMO_STATUS_GAUGES: Dict[str, Any] = {
        'BatteryPercent': {
            'metric_name': 'netatmo_sensor_battery_percent',
            'metric_help': 'Battery level of the module in percent'
        },
        'WifiStatus': {
            'metric_name': 'netatmo_sensor_wifi_signal_strength',
            'metric_help': 'Wifi signal quality of the station'
        },
        'RFStatus': {
            'metric_name': 'netatmo_sensor_rf_signal_strength',
            'metric_help': 'Radio signal quality of the module'
        },
    }
    NETATMO_INTERNAL_COUNTERS: Dict[str, Any] = {
        'netatmo_api_requests': {
           'metric_help': 'API requests to Netatmo API server',
           'base_labels': ['request', 'status_code']
        },
        'netatmo_token_refreshes': {
           'metric_help': 'Access token refresh attempts',
           'base_labels': ['result']
        }
    }
    NETATMO_INTERNAL_GAUGES: Dict[str, Any] = {
        'netatmo_sensor_updated_timestamp': {
            'metric_help': 'Unix timestamp of the last measurement reported by the module',
            'base_labels': DEVICE_LABELS
        },
        'netatmo_collector_data_timestamp': {
            'metric_help': 'Unix timestamp of the last successful metrics refresh',
            'base_labels': ['type']
        },
        'netatmo_collector_metrics_stats': {
            'metric_help': 'Metrics stats while processing response',
            'base_labels': ['type']
        },
    }

    _gauges: Dict[str, Gauge]
    _counters: Dict[str, Counter]
    _registry: CollectorRegistry
    _stats: Dict[str, Any]

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self._gauges = {}
        self._counters = {}
        self._registry = registry if registry is not None else REGISTRY
        self._stats = {}

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def _add_gauge(self, name: str, help: str, labels: List[str]):
        if name not in self._gauges:
            self._gauges[name] = Gauge(name, help, labels, registry=self._registry)

    def _add_counter(self, name: str, help: str, labels: List[str]):
        if name not in self._counters:
            self._counters[name] = Counter(name, help, labels, registry=self._registry)

    def get_gauge(self, name: str) -> Gauge:
        """
        Return a registered Prometheus Gauge by name.
        """
        if name not in self._gauges:
            raise ValueError(f'Cant find the gauge {name}')
        return self._gauges[name]

    def init_metrics(self) -> None:
        """
        Initialise gauges and counters, safe to call more than once
        """
        for mkey, mvalue in self.NETATMO_INTERNAL_COUNTERS.items():
            self._add_counter(mkey, mvalue.get('metric_help'), mvalue.get('base_labels'))

        for mkey, mvalue in self.NETATMO_INTERNAL_GAUGES.items():
            self._add_gauge(mkey, mvalue.get('metric_help'), mvalue.get('base_labels'))

        for rules in (self.NETATMO_MEASUREMENT_GAUGES, self.NETATMO_STATUS_GAUGES):
            for rule in rules.values():
                self._add_gauge(rule.get('metric_name'), rule.get('metric_help'), DEVICE_LABELS)

    def inc_requests_counter(self, request: str, status_code: Union[int, str]) -> None:
        """
        Increase Netatmo API requests counter
        """
        cnt: Counter = self._counters['netatmo_api_requests']
        cnt.labels(request=request, status_code=str(status_code)).inc()

    def inc_refresh_counter(self, result: str) -> None:
        """
        Increase access token refresh counter, result is 'success' or 'error'
        """
        cnt: Counter = self._counters['netatmo_token_refreshes']
        cnt.labels(result=result).inc()

    def compose_metric_labels(self, station: Device, module: Device) -> Dict[str, str]:
        """
        Compose labels with assigned values for module metrics
        """
        result: Dict[str, str] = {}

        result['station'] = station.station_name or station.id
        result['module'] = module.module_name or module.name or module.id
        result['module_id'] = module.id
        result['type'] = module.type

        return result

    def _set_values(self, rules: Dict[str, Any], labels: Dict[str, str],
                    values: Dict[str, Any]) -> int:
        count = 0
        for name, value in values.items():
            rule = rules.get(name)
            if rule is None or isinstance(value, str):
                continue
            self._gauges[rule['metric_name']].labels(**labels).set(float(value))
            count = count + 1
        return count

    def update_metrics(self, collection: DeviceCollection) -> int:
        """
        Update gauges from decoded station data

        :param collection: station data returned by NetatmoClient.fetch_devices
        :return: number of values set
        """
        collected = 0
        skipped = 0

        for station in collection.stations():
            for module in station.module_group():
                labels = self.compose_metric_labels(station, module)
                try:
                    ts, data = module.measurements()
                    _, info = module.status()
                except MissingTimestampError:
                    logger.warning(f'Skipping module {labels["module"]} of station '
                                   f'{labels["station"]}: no measurement timestamp')
                    skipped = skipped + 1
                    continue

                collected = collected + self._set_values(self.NETATMO_MEASUREMENT_GAUGES, labels, data)
                collected = collected + self._set_values(self.NETATMO_STATUS_GAUGES, labels, info)
                self._gauges['netatmo_sensor_updated_timestamp'].labels(**labels).set(ts)

        self._gauges['netatmo_collector_metrics_stats'].labels(type='collected').set(collected)
        self._gauges['netatmo_collector_metrics_stats'].labels(type='skipped_modules').set(skipped)
        self._gauges['netatmo_collector_data_timestamp'].labels(type='collector').set(now_ts())

        self._stats['collected'] = collected
        self._stats['skipped_modules'] = skipped
        self._stats['last_update_time'] = now_ts()
        return collected

    def get_stats(self) -> Dict[str, Any]:
        return self._stats


NETATMO_METRICS = NetatmoMetrics()
"""Default NetatmoMetrics instance to expose single instance of metrics"""
