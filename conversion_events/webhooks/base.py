import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

from django.utils.dateparse import parse_datetime

from config.capi_config import CapiSettings

from ..api import send_conversion
from ..context import NetworkContext, resolve_identity
from ..schema import DeliveryOutcome, EventName, IdentityBlock, PurchaseData


logger = logging.getLogger(__name__)

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")

_WHITESPACE = re.compile(r"\s+")


@dataclass
class PurchaseWebhook:
    """A payment-platform purchase translated into pipeline inputs."""

    identity: IdentityBlock
    custom_data: PurchaseData
    event_id: Optional[str] = None
    event_time: Optional[int] = None
    event_source_url: Optional[str] = None
    customer_ip: Optional[str] = None
    url_identity: dict[str, str] = field(default_factory=dict)
    tracking_params: dict[str, str] = field(default_factory=dict)


@dataclass
class WebhookResult:
    processed: bool
    message: str
    outcome: Optional[DeliveryOutcome] = None


class WebhookAdapter:
    platform = ""
    default_currency = "BRL"

    def verify(self, request, payload, capi_settings: CapiSettings) -> None:
        """Raise WebhookAuthenticationError when the request is not authentic."""

    def is_purchase(self, payload) -> bool:
        raise NotImplementedError

    def parse(self, payload) -> PurchaseWebhook:
        raise NotImplementedError


def secrets_match(supplied, expected: str) -> bool:
    """Constant-time comparison of shared secrets; any text is accepted, non-ASCII included."""
    if not isinstance(supplied, str):
        return False
    return hmac.compare_digest(
        supplied.encode("utf-8", "surrogatepass"),
        expected.encode("utf-8", "surrogatepass"),
    )


def split_full_name(name) -> tuple[Optional[str], Optional[str]]:
    """Split on the first whitespace run: ``"Ana Maria Silva"`` -> ``("Ana", "Maria Silva")``."""
    if not isinstance(name, str) or not name.strip():
        return None, None
    parts = _WHITESPACE.split(name.strip(), maxsplit=1)
    return parts[0], (parts[1] if len(parts) > 1 else None)


def parse_tracking_query(
    params: Mapping[str, Any], identity_keys: Mapping[str, str]
) -> tuple[dict[str, str], dict[str, str]]:
    identity: dict[str, str] = {}
    tracking: dict[str, str] = {}
    for key, value in params.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if not text:
            continue
        target = identity_keys.get(key)
        if target:
            identity.setdefault(target, text)
        else:
            tracking[key] = text
    return identity, tracking


def parse_checkout_url(url, identity_keys: Mapping[str, str]) -> tuple[dict[str, str], dict[str, str]]:
    """Pull identity keys out of a checkout URL's query string.

    Returns ``(identity, tracking)``; every non-identity parameter ends up in
    ``tracking``.
    """
    if not isinstance(url, str) or not url:
        return {}, {}
    try:
        query = urlsplit(url).query
    except ValueError:
        logger.warning(f"Could not parse checkout URL {url!r}")
        return {}, {}
    return parse_tracking_query(dict(parse_qsl(query)), identity_keys)


def to_unix_seconds(value) -> Optional[int]:
    """Convert an ISO-8601 timestamp (naive values are UTC) or epoch number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str):
        return None
    try:
        parsed = parse_datetime(value.strip())
    except ValueError:
        parsed = None
    if parsed is None:
        logger.warning(f"Unrecognized webhook timestamp {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def to_amount(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def process_webhook(adapter: WebhookAdapter, payload, capi_settings: Optional[CapiSettings] = None) -> WebhookResult:
    if not adapter.is_purchase(payload):
        logger.info(f"Ignoring {adapter.platform} webhook that is not a purchase confirmation")
        return WebhookResult(processed=False, message="Event type not processed")

    purchase = adapter.parse(payload)
    resolved = resolve_identity(
        purchase.identity,
        url_identity=purchase.url_identity,
        network=NetworkContext(client_ip_address=purchase.customer_ip),
        tracking_params=purchase.tracking_params,
    )
    logger.info(
        f"Processing {adapter.platform} purchase {purchase.event_id}",
        extra={"platform": adapter.platform, "event_id": purchase.event_id, "fbc_source": resolved.fbc_source},
    )
    outcome = send_conversion(
        EventName.PURCHASE,
        purchase.custom_data,
        resolved.identity,
        event_id=purchase.event_id,
        event_time=purchase.event_time,
        event_source_url=purchase.event_source_url,
        tracking_params=resolved.tracking_params,
        capi_settings=capi_settings,
        source=adapter.platform,
    )
    message = "Purchase event sent" if outcome.success else "Purchase event not confirmed"
    return WebhookResult(processed=True, message=message, outcome=outcome)
