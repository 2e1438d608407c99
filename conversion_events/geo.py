"""Best-effort IP geolocation used to enrich the identity block.

Lookups never raise: every failure mode is reported as an
``EnrichmentSkipped`` reason so the pipeline can carry on without geo data.
"""
import enum
import logging
from dataclasses import dataclass, replace
from typing import Optional

import requests

from config.capi_config import CapiSettings

from .schema import IdentityBlock


logger = logging.getLogger(__name__)

GEO_FIELDS = "country_code,region_code,city,postal"


class EnrichmentSkipped(str, enum.Enum):
    NO_IP = "no_ip"
    NO_CREDENTIAL = "no_credential"
    REQUEST_FAILED = "request_failed"
    HTTP_ERROR = "http_error"
    BAD_RESPONSE = "bad_response"


@dataclass(frozen=True)
class GeoFragment:
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((self.city, self.state, self.postal_code, self.country))


@dataclass(frozen=True)
class GeoLookup:
    fragment: Optional[GeoFragment] = None
    skipped: Optional[EnrichmentSkipped] = None

    @property
    def attempted(self) -> bool:
        return self.skipped not in (EnrichmentSkipped.NO_IP, EnrichmentSkipped.NO_CREDENTIAL)

    @property
    def found(self) -> bool:
        return self.fragment is not None and not self.fragment.is_empty()


def _clean(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def lookup_geo(ip: Optional[str], capi_settings: CapiSettings) -> GeoLookup:
    if not ip:
        return GeoLookup(skipped=EnrichmentSkipped.NO_IP)
    if not capi_settings.geo_enabled:
        logger.debug("Geo enrichment disabled; GEO_API_KEY is not configured")
        return GeoLookup(skipped=EnrichmentSkipped.NO_CREDENTIAL)

    url = f"{capi_settings.geo_api_url}/{ip}"
    params = {"api-key": capi_settings.geo_api_key, "fields": GEO_FIELDS}
    try:
        response = requests.get(url, params=params, timeout=capi_settings.geo_timeout)
    except requests.RequestException as e:
        logger.warning(f"Geo lookup failed for {ip}: {e}")
        return GeoLookup(skipped=EnrichmentSkipped.REQUEST_FAILED)

    if not 200 <= response.status_code < 300:
        logger.warning(f"Geo lookup for {ip} returned HTTP {response.status_code}")
        return GeoLookup(skipped=EnrichmentSkipped.HTTP_ERROR)

    try:
        data = response.json()
    except ValueError:
        logger.warning(f"Geo lookup for {ip} returned a non-JSON body")
        return GeoLookup(skipped=EnrichmentSkipped.BAD_RESPONSE)
    if not isinstance(data, dict):
        return GeoLookup(skipped=EnrichmentSkipped.BAD_RESPONSE)

    country = _clean(data.get("country_code"))
    fragment = GeoFragment(
        city=_clean(data.get("city")),
        state=_clean(data.get("region_code")),
        postal_code=_clean(data.get("postal")),
        country=country.lower() if country else None,
    )
    if fragment.is_empty():
        logger.info(f"Geo lookup for {ip} returned no location fields")
        return GeoLookup(skipped=EnrichmentSkipped.BAD_RESPONSE)
    return GeoLookup(fragment=fragment)


def merge_geo(identity: IdentityBlock, lookup: GeoLookup) -> IdentityBlock:
    """Overlay found geo fields onto the identity; missing fields keep existing values."""
    if not lookup.found:
        return identity
    fragment = lookup.fragment
    updates = {}
    if fragment.city:
        updates["ct"] = (fragment.city,)
    if fragment.state:
        updates["st"] = (fragment.state,)
    if fragment.postal_code:
        updates["zp"] = (fragment.postal_code,)
    if fragment.country:
        updates["country"] = (fragment.country,)
    return replace(identity, **updates)
