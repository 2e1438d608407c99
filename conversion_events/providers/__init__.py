from config.capi_config import CapiSettings, get_capi_settings

from ..errors import ConfigurationError
from .meta import MetaCAPI


def get_provider(capi_settings: CapiSettings | None = None) -> MetaCAPI:
    """Return the configured destination, failing fast when credentials are missing."""
    capi_settings = capi_settings or get_capi_settings()
    missing = capi_settings.missing_dispatch_settings()
    if missing:
        raise ConfigurationError(missing)
    return MetaCAPI.from_settings(capi_settings)
