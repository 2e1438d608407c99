import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from opentelemetry import trace

from config.capi_config import get_capi_settings

from .api import read_event_id, track_event
from .errors import ConfigurationError, WebhookAuthenticationError
from .schema import DeliveryStatus, EventName
from .webhooks import CaktoAdapter, KiwifyAdapter, process_webhook


logger = logging.getLogger(__name__)
tracer = trace.get_tracer("conversion_events.views")


def _load_json(request):
    try:
        body = json.loads(request.body or b"{}")
    except (UnicodeDecodeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


def _failure(message, event_id, error, delivery_status=DeliveryStatus.FAILED, status=500):
    return JsonResponse(
        {
            "success": False,
            "message": message,
            "error": error,
            "event_id": event_id,
            "delivery_status": delivery_status.value,
        },
        status=status,
    )


def _track(request, event_name: EventName):
    span = trace.get_current_span()
    body = _load_json(request)
    if body is None:
        logger.warning(f"Rejected {event_name.value} request with an invalid JSON body")
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)

    event_id = read_event_id(body)
    try:
        result = track_event(request, event_name, body, event_id=event_id)
        span.set_attribute("event.id", event_id)

        if not result.validation.ok:
            return JsonResponse(
                {
                    "success": False,
                    "message": f"Invalid {event_name.value} data",
                    "errors": result.validation.errors,
                    "event_id": event_id,
                },
                status=400,
            )

        outcome = result.outcome
        if outcome.success:
            return JsonResponse(
                {
                    "success": True,
                    "message": f"{event_name.value} event sent successfully",
                    "event_id": event_id,
                    "fbtrace_id": outcome.trace_id,
                    **result.validation.summary,
                }
            )
        return _failure(
            f"Failed to send {event_name.value} event",
            event_id,
            outcome.error if outcome.error is not None else outcome.warning,
            delivery_status=outcome.status,
        )
    except ConfigurationError as e:
        logger.error(f"Cannot send {event_name.value} event: {e}")
        return _failure("Conversions API is not configured", event_id, str(e))
    except Exception as e:
        logger.error(f"Error processing {event_name.value} event: {e}", exc_info=True)
        return _failure("Internal server error", event_id, str(e))


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_page_view")
def track_page_view(request):
    return _track(request, EventName.PAGE_VIEW)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_view_content")
def track_view_content(request):
    return _track(request, EventName.VIEW_CONTENT)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_add_to_cart")
def track_add_to_cart(request):
    return _track(request, EventName.ADD_TO_CART)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_add_to_wishlist")
def track_add_to_wishlist(request):
    return _track(request, EventName.ADD_TO_WISHLIST)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_initiate_checkout")
def track_initiate_checkout(request):
    return _track(request, EventName.INITIATE_CHECKOUT)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_add_payment_info")
def track_add_payment_info(request):
    return _track(request, EventName.ADD_PAYMENT_INFO)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_purchase")
def track_purchase(request):
    return _track(request, EventName.PURCHASE)


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI track_lead")
def track_lead(request):
    return _track(request, EventName.LEAD)


def _webhook(request, adapter):
    span = trace.get_current_span()
    span.set_attribute("webhook.platform", adapter.platform)
    payload = _load_json(request)
    if payload is None:
        logger.warning(f"{adapter.platform} webhook called with an invalid JSON body")
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)

    try:
        adapter.verify(request, payload, get_capi_settings())
    except WebhookAuthenticationError as e:
        logger.warning(f"Rejected {adapter.platform} webhook: {e}")
        span.add_event("WEBHOOK - Authentication failed", {"platform": adapter.platform})
        return JsonResponse({"success": False, "error": "Forbidden"}, status=403)

    try:
        result = process_webhook(adapter, payload)
    except ConfigurationError as e:
        logger.error(f"Cannot forward {adapter.platform} webhook: {e}")
        return _failure("Conversions API is not configured", None, str(e))
    except Exception as e:
        logger.error(f"Error processing {adapter.platform} webhook: {e}", exc_info=True)
        return _failure("Internal server error", None, str(e))

    if not result.processed:
        return JsonResponse({"success": True, "message": result.message})

    outcome = result.outcome
    if outcome.success:
        return JsonResponse(
            {
                "success": True,
                "message": result.message,
                "event_id": outcome.event_id,
                "fbtrace_id": outcome.trace_id,
            }
        )
    return _failure(
        result.message,
        outcome.event_id,
        outcome.error if outcome.error is not None else outcome.warning,
        delivery_status=outcome.status,
    )


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI cakto_webhook")
def cakto_webhook(request):
    return _webhook(request, CaktoAdapter())


@csrf_exempt
@require_POST
@tracer.start_as_current_span("CAPI kiwify_webhook")
def kiwify_webhook(request):
    return _webhook(request, KiwifyAdapter())
