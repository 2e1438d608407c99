import hashlib
import hmac

from ..errors import WebhookAuthenticationError
from ..schema import IdentityBlock, LineItem, PurchaseData
from .base import (
    PurchaseWebhook,
    WebhookAdapter,
    parse_tracking_query,
    secrets_match,
    split_full_name,
    to_amount,
    to_unix_seconds,
)


def _cents(value):
    amount = to_amount(value)
    return round(amount / 100, 2) if amount is not None else None


class KiwifyAdapter(WebhookAdapter):
    """Kiwify posts the order at the top level with amounts in cents."""

    platform = "kiwify"
    paid_status = "paid"
    approved_event = "order_approved"
    # Kiwify forwards the checkout link's s1/s2/s3 slots as tracking parameters.
    tracking_identity_keys = {"s1": "external_id", "s2": "fbp", "s3": "fbc"}

    def verify(self, request, payload, capi_settings) -> None:
        token = capi_settings.kiwify_webhook_token
        if not token:
            return
        expected = hmac.new(token.encode("utf-8"), request.body, hashlib.sha1).hexdigest()
        supplied = request.GET.get("signature", "")
        if not secrets_match(supplied, expected):
            raise WebhookAuthenticationError("Invalid Kiwify webhook signature")

    def is_purchase(self, payload) -> bool:
        if not isinstance(payload, dict):
            return False
        return payload.get("order_status") == self.paid_status or payload.get("webhook_event_type") == self.approved_event

    def parse(self, payload) -> PurchaseWebhook:
        customer = payload.get("Customer") or {}
        product = payload.get("Product") or {}
        commissions = payload.get("Commissions") or {}

        url_identity, tracking = parse_tracking_query(
            payload.get("TrackingParameters") or {}, self.tracking_identity_keys
        )

        first_name, last_name = split_full_name(customer.get("full_name"))
        identity = IdentityBlock.from_raw(
            {
                "em": customer.get("email"),
                "ph": customer.get("mobile"),
                "fn": customer.get("first_name") or first_name,
                "ln": last_name,
            }
        )

        value = _cents(commissions.get("charge_amount"))
        base_price = _cents(commissions.get("product_base_price"))
        product_id = str(product["product_id"]) if product.get("product_id") not in (None, "") else None
        contents = []
        if product_id:
            contents.append(
                LineItem(
                    id=product_id,
                    quantity=1,
                    item_price=base_price if base_price is not None else (value or 0.0),
                    title=product.get("product_name"),
                )
            )
        order_id = str(payload["order_id"]) if payload.get("order_id") not in (None, "") else None

        custom_data = PurchaseData(
            order_id=order_id,
            value=value,
            currency=str(commissions.get("currency") or self.default_currency).upper(),
            contents=contents,
            num_items=1,
            content_ids=[product_id] if product_id else [],
            content_name=product.get("product_name"),
            payment_method=payload.get("payment_method"),
        )
        return PurchaseWebhook(
            identity=identity,
            custom_data=custom_data,
            event_id=order_id,
            event_time=to_unix_seconds(payload.get("approved_date")),
            customer_ip=customer.get("ip") or None,
            url_identity=url_identity,
            tracking_params=tracking,
        )
