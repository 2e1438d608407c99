import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from config.capi_config import CapiSettings, get_capi_settings

from .context import client_network, resolve_identity, split_url_parameters
from .geo import lookup_geo, merge_geo
from .hashing import hash_identity
from .providers import get_provider
from .schema import CanonicalEvent, CanonicalPayload, DeliveryOutcome, EventName, IdentityBlock
from .telemetry import record_outcome, trace_event
from .validation import ValidationResult, validate_custom_data


logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    event_id: str
    validation: ValidationResult
    outcome: Optional[DeliveryOutcome] = None


def new_event_id() -> str:
    return str(uuid.uuid4())


def send_conversion(
    event_name,
    custom_data: CanonicalPayload,
    identity: IdentityBlock,
    *,
    event_id: Optional[str] = None,
    event_time: Optional[int] = None,
    event_source_url: Optional[str] = None,
    tracking_params: Optional[Mapping[str, str]] = None,
    capi_settings: Optional[CapiSettings] = None,
    source: str = "storefront",
) -> DeliveryOutcome:
    """
    Enrich, hash and deliver one event. Raises ConfigurationError before any
    network call when the destination is not configured.
    """
    capi_settings = capi_settings or get_capi_settings()
    provider = get_provider(capi_settings)
    event_name = EventName(event_name)
    event_id = event_id or new_event_id()

    with trace_event(event_name.value, event_id, source=source) as span:
        lookup = lookup_geo(identity.client_ip_address, capi_settings)
        if lookup.skipped is not None:
            logger.info(
                f"Geo enrichment skipped for {event_id}: {lookup.skipped.value}",
                extra={"event_id": event_id, "geo_skipped": lookup.skipped.value},
            )
        span.set_attribute("geo.found", lookup.found)

        event = CanonicalEvent(
            event_name=event_name,
            event_time=int(event_time) if event_time is not None else int(time.time()),
            event_id=event_id,
            event_source_url=event_source_url,
            identity=hash_identity(merge_geo(identity, lookup)),
            custom_data=custom_data,
            tracking_params=dict(tracking_params or {}),
        )
        outcome = provider.send(event)
        record_outcome(span, outcome)
    return outcome


def read_event_id(body: Mapping[str, Any]) -> str:
    """Caller-supplied deduplication id (``event_id`` or ``eventId``), else a new UUID."""
    for key in ("event_id", "eventId"):
        value = body.get(key)
        if value not in (None, "") and not isinstance(value, (dict, list, bool)):
            return str(value).strip() or new_event_id()
    return new_event_id()


def track_event(
    request,
    event_name,
    body: Mapping[str, Any],
    *,
    event_id: Optional[str] = None,
    capi_settings: Optional[CapiSettings] = None,
) -> TrackResult:
    """
    Public entrypoint for storefront events. Validates ``customData`` and, when
    it passes, resolves identity from the body, cookies and headers of
    ``request`` and delivers the event.
    """
    event_id = event_id or read_event_id(body)
    raw_custom_data = body.get("customData")
    validation = validate_custom_data(event_name, raw_custom_data)
    if not validation.ok:
        return TrackResult(event_id=event_id, validation=validation)

    url_parameters = body.get("urlParameters")
    url_identity, tracking = split_url_parameters(url_parameters if isinstance(url_parameters, dict) else None)
    resolved = resolve_identity(
        body.get("userData"),
        cookies=request.COOKIES,
        url_identity=url_identity,
        custom_data=raw_custom_data if isinstance(raw_custom_data, dict) else None,
        network=client_network(request),
        tracking_params=tracking,
    )
    logger.info(
        f"Tracking {validation.event_name.value} {event_id}",
        extra={"event_id": event_id, "fbc_source": resolved.fbc_source, "fbp_source": resolved.fbp_source},
    )

    source_url = body.get("eventSourceUrl") or body.get("event_source_url")
    outcome = send_conversion(
        validation.event_name,
        validation.payload,
        resolved.identity,
        event_id=event_id,
        event_source_url=source_url if isinstance(source_url, str) else request.build_absolute_uri(),
        tracking_params=resolved.tracking_params,
        capi_settings=capi_settings,
    )
    return TrackResult(event_id=event_id, validation=validation, outcome=outcome)
