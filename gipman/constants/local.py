"""Module for defining and managing constants that require a local function to be executed first."""
from importlib.metadata import PackageNotFoundError, version

from gipman.constants.standalone import TITLE

try:
    VERSION = version(TITLE)
except PackageNotFoundError:
    VERSION = '0.0.0'

USER_AGENT = f'{TITLE}/{VERSION}'
