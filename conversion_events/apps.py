import logging

from django.apps import AppConfig


logger = logging.getLogger(__name__)


class ConversionEventsConfig(AppConfig):
    name = "conversion_events"
    verbose_name = "Conversion Events"

    def ready(self):
        from config.capi_config import get_capi_settings

        from . import checks  # noqa: F401  registers system checks

        capi_settings = get_capi_settings(force_reload=True)
        logger.info(
            f"Conversions API dataset={capi_settings.dataset_id or '<unset>'} "
            f"geo_enrichment={'on' if capi_settings.geo_enabled else 'off'} "
            f"test_mode={'on' if capi_settings.test_event_code else 'off'}"
        )
