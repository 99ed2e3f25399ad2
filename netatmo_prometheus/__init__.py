"""
Netatmo prometheus exporter package
uses FastAPI to expose a metrics endpoint with Netatmo weather station readings,
the Netatmo OAuth2 token is refreshed and persisted to the credential file on expiry.
Exports:
- app

"""
__version__ = "0.1.0"


from .netatmo_prometheus import app

__all__ = ["app"]
