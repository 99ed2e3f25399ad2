"""Constants for the Netatmo weather station API"""

BASE_URL = 'https://api.netatmo.com'
TOKEN_URL = BASE_URL + '/oauth2/token'
API_URL = BASE_URL

ENDPOINT_STATIONS = '/api/getstationsdata'
APP_TYPE_STATION = 'app_station'

# dashboard_data JSON key -> measurement name
MEASUREMENT_FIELDS = {
    'Temperature': 'Temperature',
    'min_temp': 'MinTemp',
    'max_temp': 'MaxTemp',
    'temp_trend': 'TempTrend',
    'Humidity': 'Humidity',
    'CO2': 'CO2',
    'Noise': 'Noise',
    'Pressure': 'Pressure',
    'AbsolutePressure': 'AbsolutePressure',
    'pressure_trend': 'PressureTrend',
    'Rain': 'Rain',
    'sum_rain_1': 'Rain1Hour',
    'sum_rain_24': 'Rain1Day',
    'WindAngle': 'WindAngle',
    'WindStrength': 'WindStrength',
    'GustAngle': 'GustAngle',
    'GustStrength': 'GustStrength',
}

# device JSON key -> status name
STATUS_FIELDS = {
    'battery_percent': 'BatteryPercent',
    'wifi_status': 'WifiStatus',
    'rf_status': 'RFStatus',
}

TREND_FIELDS = ('temp_trend', 'pressure_trend')
