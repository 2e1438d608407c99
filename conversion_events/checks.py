from django.core.checks import Tags, Warning, register

from config.capi_config import get_capi_settings


@register(Tags.compatibility)
def capi_settings_check(app_configs, **kwargs):
    """Warn at startup when settings the pipeline depends on are missing."""
    capi_settings = get_capi_settings(force_reload=True)
    return [
        Warning(
            f"{name} is not set.",
            hint=f"Set the {name} environment variable; conversions cannot be delivered without it.",
            id="conversion_events.W001",
        )
        for name in capi_settings.missing_required_settings()
    ]
