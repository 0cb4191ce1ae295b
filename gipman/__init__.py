"""gipman - IP geolocation country whitelist service backed by a refreshed GeoLite2 database."""
