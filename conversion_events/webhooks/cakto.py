import re

from ..errors import WebhookAuthenticationError
from ..schema import IdentityBlock, LineItem, PurchaseData
from .base import (
    UTM_KEYS,
    PurchaseWebhook,
    WebhookAdapter,
    parse_checkout_url,
    secrets_match,
    split_full_name,
    to_amount,
    to_unix_seconds,
)

_NON_DIGITS = re.compile(r"\D")


class CaktoAdapter(WebhookAdapter):
    """Cakto sends ``{"event": ..., "secret": ..., "data": {...}}``."""

    platform = "cakto"
    purchase_event = "purchase_approved"
    # Tracking slots appended to Cakto checkout links by the storefront.
    url_identity_keys = {"s1_extid": "external_id", "s2_fbp": "fbp", "s3_fbc": "fbc"}

    def verify(self, request, payload, capi_settings) -> None:
        secret = capi_settings.cakto_webhook_secret
        if not secret:
            return
        supplied = payload.get("secret") if isinstance(payload, dict) else None
        if not secrets_match(supplied, secret):
            raise WebhookAuthenticationError("Invalid Cakto webhook secret")

    def is_purchase(self, payload) -> bool:
        return isinstance(payload, dict) and payload.get("event") == self.purchase_event

    @staticmethod
    def _location(customer, name):
        """Read ``customer.address.<name>``, falling back to ``customer.<name>``."""
        address = customer.get("address")
        for source in (address if isinstance(address, dict) else {}, customer):
            value = source.get(name)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    def parse(self, payload) -> PurchaseWebhook:
        data = payload.get("data") or {}
        customer = data.get("customer") or {}
        product = data.get("product") or {}
        offer = data.get("offer") or {}
        checkout_url = data.get("checkoutUrl")

        url_identity, tracking = parse_checkout_url(checkout_url, self.url_identity_keys)
        for key in UTM_KEYS:
            if key not in tracking and data.get(key):
                tracking[key] = str(data[key])

        first_name, last_name = split_full_name(customer.get("name"))
        birth_date = customer.get("birthDate")
        zipcode = self._location(customer, "zipcode")
        country = self._location(customer, "country_code")
        identity = IdentityBlock.from_raw(
            {
                "em": customer.get("email"),
                "ph": customer.get("phone"),
                "fn": first_name,
                "ln": last_name,
                "db": birth_date.replace("-", "") if isinstance(birth_date, str) else None,
                "ct": self._location(customer, "city"),
                "st": self._location(customer, "state"),
                "zp": _NON_DIGITS.sub("", zipcode) if zipcode else None,
                "country": country.lower() if country else None,
                "fbp": data.get("fbp"),
                "fbc": data.get("fbc"),
            }
        )

        amount = to_amount(data.get("amount"))
        price = to_amount(offer.get("price"))
        product_id = str(product["id"]) if product.get("id") not in (None, "") else None
        contents = []
        if product_id:
            contents.append(
                LineItem(
                    id=product_id,
                    quantity=1,
                    item_price=price if price is not None else (amount or 0.0),
                    title=product.get("name"),
                )
            )
        order_id = str(data["id"]) if data.get("id") not in (None, "") else None

        custom_data = PurchaseData(
            order_id=order_id,
            value=amount,
            currency=str(data.get("currency") or self.default_currency).upper(),
            contents=contents,
            num_items=1,
            content_ids=[product_id] if product_id else [],
            content_name=product.get("name"),
            payment_method=data.get("paymentMethod"),
        )
        return PurchaseWebhook(
            identity=identity,
            custom_data=custom_data,
            event_id=order_id,
            event_time=to_unix_seconds(data.get("paidAt")),
            event_source_url=checkout_url if isinstance(checkout_url, str) and checkout_url else None,
            customer_ip=customer.get("ip") or None,
            url_identity=url_identity,
            tracking_params=tracking,
        )
