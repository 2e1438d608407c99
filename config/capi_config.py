"""Helpers for accessing conversions API configuration."""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver


# Django settings that feed CapiSettings; changing any of them drops the cache.
CAPI_SETTING_NAMES = frozenset(
    {
        "DATASET_ID",
        "ACCESS_TOKEN",
        "ALLOWED_ORIGIN",
        "GEO_API_KEY",
        "GEO_API_URL",
        "GEO_TIMEOUT_SECONDS",
        "TEST_EVENT_CODE",
        "CAPI_API_VERSION",
        "CAPI_TIMEOUT_SECONDS",
        "CAPI_MAX_RETRIES",
        "CAKTO_WEBHOOK_SECRET",
        "KIWIFY_WEBHOOK_TOKEN",
        "CORS_PATH_PREFIX",
    }
)

REQUIRED_SETTINGS = ("DATASET_ID", "ACCESS_TOKEN", "ALLOWED_ORIGIN")


@dataclass(frozen=True)
class CapiSettings:
    dataset_id: str
    access_token: str
    allowed_origin: str
    geo_api_key: Optional[str]
    geo_api_url: str
    geo_timeout: float
    test_event_code: Optional[str]
    api_version: str
    timeout: float
    max_retries: int
    cakto_webhook_secret: Optional[str]
    kiwify_webhook_token: Optional[str]
    cors_path_prefix: str

    @property
    def cors_origin(self) -> str:
        return self.allowed_origin.rstrip("/")

    @property
    def geo_enabled(self) -> bool:
        return bool(self.geo_api_key)

    def missing_dispatch_settings(self) -> list[str]:
        missing = []
        if not self.dataset_id:
            missing.append("DATASET_ID")
        if not self.access_token:
            missing.append("ACCESS_TOKEN")
        return missing

    def missing_required_settings(self) -> list[str]:
        missing = self.missing_dispatch_settings()
        if not self.allowed_origin:
            missing.append("ALLOWED_ORIGIN")
        return missing


def _optional(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _from_django_settings() -> CapiSettings:
    return CapiSettings(
        dataset_id=str(getattr(settings, "DATASET_ID", "") or "").strip(),
        access_token=str(getattr(settings, "ACCESS_TOKEN", "") or "").strip(),
        allowed_origin=str(getattr(settings, "ALLOWED_ORIGIN", "") or "").strip(),
        geo_api_key=_optional(getattr(settings, "GEO_API_KEY", None)),
        geo_api_url=str(getattr(settings, "GEO_API_URL", "https://api.ipdata.co")).rstrip("/"),
        geo_timeout=float(getattr(settings, "GEO_TIMEOUT_SECONDS", 3)),
        test_event_code=_optional(getattr(settings, "TEST_EVENT_CODE", None)),
        api_version=str(getattr(settings, "CAPI_API_VERSION", "v19.0")),
        timeout=float(getattr(settings, "CAPI_TIMEOUT_SECONDS", 10)),
        max_retries=max(0, int(getattr(settings, "CAPI_MAX_RETRIES", 0))),
        cakto_webhook_secret=_optional(getattr(settings, "CAKTO_WEBHOOK_SECRET", None)),
        kiwify_webhook_token=_optional(getattr(settings, "KIWIFY_WEBHOOK_TOKEN", None)),
        cors_path_prefix=str(getattr(settings, "CORS_PATH_PREFIX", "/api/")),
    )


@lru_cache(maxsize=1)
def _cached_capi_settings() -> CapiSettings:
    return _from_django_settings()


def get_capi_settings(force_reload: bool = False) -> CapiSettings:
    """Return the process-wide conversions API settings."""
    if force_reload:
        _cached_capi_settings.cache_clear()
    return _cached_capi_settings()


def invalidate_capi_settings_cache(*_args, **_kwargs) -> None:
    _cached_capi_settings.cache_clear()


@receiver(setting_changed)
def _capi_setting_changed(setting=None, **_kwargs) -> None:
    if setting in CAPI_SETTING_NAMES:
        invalidate_capi_settings_cache()
