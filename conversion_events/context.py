import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from .schema import IdentityBlock


logger = logging.getLogger(__name__)

FBC_COOKIE = "_fbc"
FBP_COOKIE = "_fbp"

# Query keys that carry identity rather than campaign data. Checkout links
# encode them as s1_extid/s2_fbp/s3_fbc; a bare fbclid is the ad click id.
URL_IDENTITY_KEYS = {
    "s1_extid": "external_id",
    "s2_fbp": "fbp",
    "s3_fbc": "fbc",
    "fbclid": "fbc",
}

# Click and browser ids that storefronts sometimes put into customData.
CUSTOM_DATA_IDENTITY_KEYS = {
    "fbc": "fbc",
    "fbclid": "fbc",
    "fbp": "fbp",
}


@dataclass(frozen=True)
class NetworkContext:
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None


@dataclass
class ResolvedIdentity:
    identity: IdentityBlock
    tracking_params: dict[str, str] = field(default_factory=dict)
    fbc_source: str = "missing"
    fbp_source: str = "missing"


def _first_ip(meta) -> Optional[str]:
    xff = meta.get("HTTP_X_FORWARDED_FOR")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    real_ip = (meta.get("HTTP_X_REAL_IP") or "").strip()
    return real_ip or None


def client_network(request) -> NetworkContext:
    """Client IP and user agent, taken only from the request headers."""
    if request is None:
        return NetworkContext()
    user_agent = (request.META.get("HTTP_USER_AGENT") or "").strip() or None
    return NetworkContext(client_ip_address=_first_ip(request.META), client_user_agent=user_agent)


def synthesize_fbc(fbclid: str) -> str:
    """Wrap a raw fbclid as ``fb.1.<ms>.<fbclid>``; formatted values pass through."""
    if fbclid.startswith("fb."):
        return fbclid
    return f"fb.1.{int(time.time() * 1000)}.{fbclid}"


def _text(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple, bool)):
        return None
    text = str(value).strip()
    return text or None


def _extract(source: Optional[Mapping[str, Any]], keys: Mapping[str, str]) -> dict[str, str]:
    found: dict[str, str] = {}
    for key, target in keys.items():
        value = _text((source or {}).get(key))
        if value is None or target in found:
            continue
        found[target] = synthesize_fbc(value) if key == "fbclid" else value
    return found


def strip_identity_keys(mapping: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Drop identity-bearing keys so they never travel as tracking or custom data."""
    return {
        key: value
        for key, value in (mapping or {}).items()
        if key not in URL_IDENTITY_KEYS and key not in CUSTOM_DATA_IDENTITY_KEYS
    }


def split_url_parameters(params: Optional[Mapping[str, Any]]) -> tuple[dict[str, str], dict[str, str]]:
    """Split query parameters into ``(identity, tracking)``.

    ``identity`` maps external_id/fbp/fbc to values found under the encoded
    identity keys. ``tracking`` holds every other non-empty parameter.
    """
    identity = _extract(params, URL_IDENTITY_KEYS)
    tracking = {}
    for key, value in strip_identity_keys(params).items():
        text = _text(value)
        if text is not None:
            tracking[key] = text
    return identity, tracking


def custom_data_identity(custom_data: Optional[Mapping[str, Any]]) -> dict[str, str]:
    return _extract(custom_data, CUSTOM_DATA_IDENTITY_KEYS)


def _pick(*candidates: tuple[str, Optional[str]]) -> tuple[Optional[str], str]:
    for source, value in candidates:
        if value:
            return value, source
    return None, "missing"


def resolve_identity(
    explicit=None,
    *,
    cookies: Optional[Mapping[str, str]] = None,
    url_identity: Optional[Mapping[str, str]] = None,
    custom_data: Optional[Mapping[str, Any]] = None,
    network: Optional[NetworkContext] = None,
    tracking_params: Optional[Mapping[str, str]] = None,
) -> ResolvedIdentity:
    """Merge identity signals into one pre-hash IdentityBlock.

    Per field, the first source that has a value wins: URL identity
    parameters, then click ids left in custom data, then the caller's
    explicit identity, then the ``_fbc``/``_fbp`` cookies. Network context
    always comes from ``network`` and replaces anything the caller sent.
    """
    base = explicit if isinstance(explicit, IdentityBlock) else IdentityBlock.from_raw(explicit)
    cookies = cookies or {}
    url_identity = url_identity or {}
    fallback = custom_data_identity(custom_data)
    network = network or NetworkContext()

    fbc, fbc_source = _pick(
        ("url", url_identity.get("fbc")),
        ("custom_data", fallback.get("fbc")),
        ("explicit", base.fbc),
        ("cookie", _text(cookies.get(FBC_COOKIE))),
    )
    fbp, fbp_source = _pick(
        ("url", url_identity.get("fbp")),
        ("custom_data", fallback.get("fbp")),
        ("explicit", base.fbp),
        ("cookie", _text(cookies.get(FBP_COOKIE))),
    )
    external_id = base.external_id
    if url_identity.get("external_id"):
        external_id = (url_identity["external_id"],)

    identity = replace(
        base,
        fbc=fbc,
        fbp=fbp,
        external_id=external_id,
        client_ip_address=network.client_ip_address,
        client_user_agent=network.client_user_agent,
    )
    logger.debug(
        "Resolved identity sources",
        extra={"fbc_source": fbc_source, "fbp_source": fbp_source, "has_external_id": bool(external_id)},
    )
    return ResolvedIdentity(
        identity=identity,
        tracking_params=strip_identity_keys(tracking_params),
        fbc_source=fbc_source,
        fbp_source=fbp_source,
    )
