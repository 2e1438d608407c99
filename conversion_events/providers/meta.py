import logging

import requests

from ..context import strip_identity_keys
from ..schema import CanonicalEvent, DeliveryOutcome
from .base import PermanentError, TemporaryError, post_json


logger = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.facebook.com"


def interpret_response(body, event_id: str, attempts: int = 1) -> DeliveryOutcome:
    """Map a 2xx response body onto a confirmed or unconfirmed outcome."""
    if isinstance(body, dict) and (body.get("events_received") == 1 or body.get("fbtrace_id")):
        return DeliveryOutcome(
            success=True,
            event_id=event_id,
            trace_id=body.get("fbtrace_id"),
            attempts=attempts,
        )
    return DeliveryOutcome(success=False, event_id=event_id, warning=body, attempts=attempts)


class MetaCAPI:
    def __init__(
        self,
        dataset_id: str,
        token: str,
        *,
        api_version: str = "v19.0",
        test_event_code: str | None = None,
        timeout: float = 10,
        max_retries: int = 0,
    ):
        self.dataset_id = dataset_id
        self.token = token
        self.test_event_code = test_event_code
        self.timeout = timeout
        self.max_retries = max_retries
        self.url = f"{GRAPH_API_URL}/{api_version}/{dataset_id}/events"

    @classmethod
    def from_settings(cls, capi_settings) -> "MetaCAPI":
        return cls(
            capi_settings.dataset_id,
            capi_settings.access_token,
            api_version=capi_settings.api_version,
            test_event_code=capi_settings.test_event_code,
            timeout=capi_settings.timeout,
            max_retries=capi_settings.max_retries,
        )

    def build_event(self, event: CanonicalEvent) -> dict:
        if not event.identity.hashed:
            raise ValueError("Identity block must be hashed before it is sent")
        # Payload fields win over tracking parameters with the same name.
        custom_data = {
            **strip_identity_keys(event.tracking_params),
            **strip_identity_keys(event.custom_data.to_custom_data()),
        }
        event_payload = {
            "event_name": event.event_name.value,
            "event_time": event.event_time,
            "event_id": event.event_id,
            "action_source": "website",
            "user_data": event.identity.to_user_data(),
            "custom_data": custom_data,
        }
        if event.event_source_url:
            event_payload["event_source_url"] = event.event_source_url
        return event_payload

    def build_body(self, event: CanonicalEvent) -> dict:
        body = {"data": [self.build_event(event)]}
        if self.test_event_code:
            body["test_event_code"] = self.test_event_code
        return body

    def send(self, event: CanonicalEvent) -> DeliveryOutcome:
        body = self.build_body(event)
        identity = event.identity
        logger.info(
            "Meta CAPI payload identifiers",
            extra={
                "event_name": event.event_name.value,
                "event_id": event.event_id,
                "fbc": identity.fbc,
                "fbp": identity.fbp,
                "has_email": bool(identity.em),
                "has_phone": bool(identity.ph),
                "test_event_code": self.test_event_code,
            },
        )

        attempts = 0
        while True:
            attempts += 1
            try:
                response = post_json(
                    self.url,
                    json=body,
                    params={"access_token": self.token},
                    timeout=self.timeout,
                )
            except TemporaryError as e:
                if attempts <= self.max_retries:
                    logger.warning(f"Meta CAPI returned {e.status_code} for {event.event_id}; retrying")
                    continue
                logger.error(f"Meta CAPI rejected {event.event_id} with {e.status_code}: {e.body}")
                return DeliveryOutcome(success=False, event_id=event.event_id, error=e.body, attempts=attempts)
            except PermanentError as e:
                logger.error(f"Meta CAPI rejected {event.event_id} with {e.status_code}: {e.body}")
                return DeliveryOutcome(success=False, event_id=event.event_id, error=e.body, attempts=attempts)
            except ValueError as e:
                # Undecodable 2xx body
                logger.error(f"Meta CAPI response for {event.event_id} could not be parsed: {e}")
                return DeliveryOutcome(success=False, event_id=event.event_id, error=str(e), attempts=attempts)
            except requests.RequestException as e:
                if attempts <= self.max_retries:
                    logger.warning(f"Meta CAPI request for {event.event_id} failed ({e}); retrying")
                    continue
                logger.error(f"Meta CAPI request for {event.event_id} failed: {e}")
                return DeliveryOutcome(success=False, event_id=event.event_id, error=str(e), attempts=attempts)

            outcome = interpret_response(response, event.event_id, attempts)
            if outcome.success:
                logger.info(f"Meta CAPI confirmed {event.event_id} (fbtrace_id={outcome.trace_id})")
            else:
                logger.warning(f"Meta CAPI accepted {event.event_id} without confirmation: {response}")
            return outcome
