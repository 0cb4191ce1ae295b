"""Module for defining constants that don't require imports or functions, using only pure Python."""

TITLE = 'gipman'
DESCRIPTION = 'simple ip geolocation service'
COUNTRY_EDITION_ID = 'GeoLite2-Country'
DATABASE_FILE_SUFFIX = '.mmdb'
