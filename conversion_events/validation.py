"""Per-event validation of inbound ``customData``.

Validators never raise for malformed input: every problem becomes a
human-readable string in ``ValidationResult.errors``. On success the result
holds the typed, sanitized payload variant for the event kind.
"""
import logging
import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .schema import (
    AddPaymentInfoData,
    AddToCartData,
    AddToWishlistData,
    CanonicalPayload,
    EventName,
    FreeformData,
    InitiateCheckoutData,
    LineItem,
    PurchaseData,
    ViewContentData,
)
from .summaries import build_summary


logger = logging.getLogger(__name__)

# Totals may differ from the line-item sum by 1% of the calculated total,
# never by less than one cent.
RELATIVE_TOLERANCE = 0.01
ABSOLUTE_TOLERANCE = 0.01

AVAILABILITY = ("in stock", "out of stock", "preorder", "available for order", "discontinued")
CONDITIONS = ("new", "refurbished", "used")
PAYMENT_METHODS = (
    "credit_card",
    "debit_card",
    "paypal",
    "apple_pay",
    "google_pay",
    "bank_transfer",
    "boleto",
    "pix",
    "klarna",
    "afterpay",
    "other",
)
PAYMENT_STATUSES = ("completed", "pending", "failed", "refunded", "partially_refunded")
DELIVERY_CATEGORIES = ("standard", "express", "overnight", "pickup", "digital", "subscription")
CUSTOMER_TYPES = ("new", "returning", "vip", "wholesale", "guest")
ORDER_SOURCES = ("website", "mobile_app", "social_media", "marketplace", "phone", "in_store")
DISCOUNT_TYPES = ("percentage", "fixed_amount", "shipping", "bogo", "bulk")
WISHLIST_TYPES = ("favorites", "later", "gift", "comparison", "custom")
USER_INTENTS = ("browse", "compare", "gift", "later_purchase")
PAYMENT_TYPES = ("one_time", "subscription", "installment")
PAYMENT_SOURCES = ("checkout_page", "express_checkout", "one_click", "mobile_app")
DEVICE_TYPES = ("desktop", "mobile", "tablet")

_INTEGER_TEXT = re.compile(r"[+-]?\d+")
_CURRENCY = re.compile(r"[A-Za-z]{3}")


@dataclass
class ValidationResult:
    event_name: Optional[EventName]
    payload: Optional[CanonicalPayload] = None
    errors: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors and self.payload is not None


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_number(value):
    """Coerce ints, floats and numeric strings; anything else is ``None``.

    Integers outside the float range are rejected so totals can always be
    computed in floating point.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text) if _INTEGER_TEXT.fullmatch(text) else float(text)
        except ValueError:
            return None
    if isinstance(value, int):
        return value if abs(value) <= sys.float_info.max else None
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    return None


def _fmt(number) -> str:
    return f"{number:.2f}"


class _Reader:
    """Reads typed fields out of one raw object, collecting errors as it goes."""

    def __init__(self, raw: dict, errors: list[str], prefix: str = ""):
        self.raw = raw
        self.errors = errors
        self.prefix = prefix

    def _label(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _error(self, message: str) -> None:
        self.errors.append(message)

    def string(self, name: str, required: bool = False) -> Optional[str]:
        value = self.raw.get(name)
        if _is_missing(value):
            if required:
                self._error(f"{self._label(name)} is required")
            return None
        if not isinstance(value, str):
            self._error(f"{self._label(name)} must be a string")
            return None
        return value.strip()

    def identifier(self, name: str, required: bool = False) -> Optional[str]:
        value = self.raw.get(name)
        if _is_missing(value):
            if required:
                self._error(f"{self._label(name)} is required")
            return None
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, int) and _to_number(value) is not None:
            return str(value)
        self._error(f"{self._label(name)} must be a non-empty string")
        return None

    def number(
        self,
        name: str,
        required: bool = False,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        positive: bool = False,
    ):
        value = self.raw.get(name)
        label = self._label(name)
        if _is_missing(value):
            if required:
                self._error(f"{label} is required")
            return None
        number = _to_number(value)
        if number is None:
            self._error(f"{label} must be a number")
            return None
        if positive and number <= 0:
            self._error(f"{label} must be greater than 0")
            return None
        if minimum is not None and maximum is not None:
            if not minimum <= number <= maximum:
                self._error(f"{label} must be between {minimum} and {maximum}")
                return None
        elif minimum is not None and number < minimum:
            self._error(f"{label} must be at least {minimum}")
            return None
        elif maximum is not None and number > maximum:
            self._error(f"{label} must be at most {maximum}")
            return None
        return number

    def integer(
        self,
        name: str,
        required: bool = False,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> Optional[int]:
        value = self.raw.get(name)
        label = self._label(name)
        if _is_missing(value):
            if required:
                self._error(f"{label} is required")
            return None
        number = _to_number(value)
        if number is None or not float(number).is_integer():
            self._error(f"{label} must be an integer")
            return None
        number = int(number)
        too_low = minimum is not None and number < minimum
        too_high = maximum is not None and number > maximum
        if too_low or too_high:
            if minimum is not None and maximum is not None:
                self._error(f"{label} must be between {minimum} and {maximum}")
            elif maximum is not None:
                self._error(f"{label} must be at most {maximum}")
            elif minimum == 1:
                self._error(f"{label} must be a positive integer")
            else:
                self._error(f"{label} must be at least {minimum}")
            return None
        return number

    def boolean(self, name: str) -> Optional[bool]:
        value = self.raw.get(name)
        if value is None:
            return None
        if not isinstance(value, bool):
            self._error(f"{self._label(name)} must be a boolean")
            return None
        return value

    def choice(self, name: str, allowed: tuple[str, ...], required: bool = False) -> Optional[str]:
        value = self.string(name, required=required)
        if value is None:
            return None
        if value not in allowed:
            self._error(f"{self._label(name)} must be one of: {', '.join(allowed)}")
            return None
        return value

    def currency(self, name: str = "currency") -> Optional[str]:
        value = self.string(name, required=True)
        if value is None:
            return None
        if not _CURRENCY.fullmatch(value):
            self._error(f"{self._label(name)} must be a 3-letter ISO currency code")
            return None
        return value.upper()

    def identifier_list(self, name: str, required: bool = False) -> Optional[list[str]]:
        value = self.raw.get(name)
        label = self._label(name)
        if value is None:
            if required:
                self._error(f"{label} must be a non-empty array")
            return None
        if not isinstance(value, list) or not value:
            self._error(f"{label} must be a non-empty array")
            return None
        items = []
        for index, raw_item in enumerate(value):
            item = _Reader({"id": raw_item}, []).identifier("id")
            if item is None:
                self._error(f"{label}[{index}] must be a non-empty string")
                continue
            items.append(item)
        return items if len(items) == len(value) else None

    def string_list(self, name: str) -> Optional[list[str]]:
        """Trimmed strings; blank entries are dropped."""
        value = self.raw.get(name)
        if value is None:
            return None
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            self._error(f"{self._label(name)} must be an array of strings")
            return None
        return [item.strip() for item in value if item.strip()] or None


def _read_line_items(reader: _Reader, required: bool) -> Optional[list[LineItem]]:
    """Validate ``contents``; returns ``None`` unless every item is valid."""
    raw = reader.raw.get("contents")
    if raw is None:
        if required:
            reader.errors.append("contents must be a non-empty array")
        return None
    if not isinstance(raw, list) or not raw:
        reader.errors.append("contents must be a non-empty array")
        return None

    items = []
    for index, entry in enumerate(raw):
        label = f"contents[{index}]"
        if not isinstance(entry, dict):
            reader.errors.append(f"{label} must be an object")
            continue
        item_reader = _Reader(entry, reader.errors, prefix=f"{label}.")
        item_id = item_reader.identifier("id", required=True)
        quantity = item_reader.integer("quantity", required=True, minimum=1)
        item_price = item_reader.number("item_price", required=True, minimum=0)
        original_price = item_reader.number("original_price", minimum=0)
        discount_amount = item_reader.number("discount_amount", minimum=0)
        rating = item_reader.number("rating", minimum=1, maximum=5)
        availability = item_reader.choice("availability", AVAILABILITY)
        condition = item_reader.choice("condition", CONDITIONS)
        title = item_reader.string("title")
        category = item_reader.string("category")
        brand = item_reader.string("brand")
        variant = item_reader.string("variant")
        sku = item_reader.identifier("sku")
        variant_id = item_reader.identifier("variant_id")
        variant_name = item_reader.string("variant_name")
        image_url = item_reader.string("image_url")

        if item_id is None or quantity is None or item_price is None:
            continue
        if original_price is not None and original_price < item_price:
            reader.errors.append(f"{label}.original_price must be greater than or equal to item_price")
            continue
        items.append(
            LineItem(
                id=item_id,
                quantity=quantity,
                item_price=item_price,
                title=title,
                category=category,
                brand=brand,
                variant=variant,
                sku=sku,
                variant_id=variant_id,
                variant_name=variant_name,
                image_url=image_url,
                original_price=original_price,
                discount_amount=discount_amount,
                rating=rating,
                availability=availability,
                condition=condition,
            )
        )
    return items if len(items) == len(raw) else None


def within_tolerance(value, expected) -> bool:
    """Tolerance is measured against the calculated total, never the supplied one."""
    if not math.isfinite(expected):
        return False
    allowed = max(ABSOLUTE_TOLERANCE, RELATIVE_TOLERANCE * abs(expected))
    return abs(value - expected) <= allowed


def _check_totals(
    errors: list[str],
    items: list[LineItem],
    value=None,
    count=None,
    count_label: str = "num_items",
    adjustments: float = 0.0,
) -> None:
    expected = sum(item.line_total for item in items) + adjustments
    if value is not None and not within_tolerance(value, expected):
        errors.append(f"value ({_fmt(value)}) doesn't match calculated total from contents ({_fmt(expected)})")
    if count is not None:
        total_quantity = sum(item.quantity for item in items)
        if total_quantity != count:
            errors.append(f"{count_label} ({count}) doesn't match total quantity in contents ({total_quantity})")


def _adjustments(shipping_cost, tax_amount, discount_amount) -> float:
    return float(shipping_cost or 0) + float(tax_amount or 0) - float(discount_amount or 0)


def derive_content_ids(items: list[LineItem]) -> list[str]:
    return [item.id for item in items]


def derive_content_name(items: list[LineItem]) -> str:
    if len(items) == 1:
        return items[0].title or f"Product {items[0].id}"
    return f"Order with {len(items)} products"


def _content_type(reader: _Reader) -> Optional[str]:
    value = reader.string("content_type")
    if value is None:
        return "product"
    if value != "product":
        reader.errors.append("content_type must be 'product'")
        return None
    return value


def _validate_view_content(reader: _Reader) -> Optional[ViewContentData]:
    content_ids = reader.identifier_list("content_ids", required=True)
    content_name = reader.string("content_name", required=True)
    value = reader.number("value", required=True, minimum=0)
    currency = reader.currency()
    content_type = _content_type(reader)
    contents = _read_line_items(reader, required=False)
    data = dict(
        content_category=reader.string("content_category"),
        brand=reader.string("brand"),
        availability=reader.choice("availability", AVAILABILITY),
        condition=reader.choice("condition", CONDITIONS),
        predicted_ltv=reader.number("predicted_ltv", minimum=0),
    )
    if contents and value is not None:
        _check_totals(reader.errors, contents, value=value)
    if reader.errors:
        return None
    return ViewContentData(
        content_ids=content_ids,
        content_name=content_name,
        value=value,
        currency=currency,
        content_type=content_type,
        contents=contents,
        **data,
    )


def _validate_add_to_cart(reader: _Reader) -> Optional[AddToCartData]:
    content_ids = reader.identifier_list("content_ids", required=True)
    content_name = reader.string("content_name", required=True)
    value = reader.number("value", required=True, positive=True)
    currency = reader.currency()
    quantity = reader.integer("quantity", required=True, minimum=1)
    content_type = _content_type(reader)
    contents = _read_line_items(reader, required=False)
    data = dict(
        content_category=reader.string("content_category"),
        cart_id=reader.identifier("cart_id"),
        product_group_id=reader.identifier("product_group_id"),
        custom_label_0=reader.string("custom_label_0"),
        predicted_ltv=reader.number("predicted_ltv", minimum=0),
    )
    if contents and value is not None and quantity is not None:
        _check_totals(reader.errors, contents, value=value, count=quantity, count_label="quantity")
    if reader.errors:
        return None
    return AddToCartData(
        content_ids=content_ids,
        content_name=content_name,
        value=value,
        currency=currency,
        quantity=quantity,
        content_type=content_type,
        contents=contents,
        **data,
    )


def _validate_add_to_wishlist(reader: _Reader) -> Optional[AddToWishlistData]:
    content_ids = reader.identifier_list("content_ids", required=True)
    content_name = reader.string("content_name", required=True)
    value = reader.number("value", required=True, minimum=0)
    currency = reader.currency()
    num_items = reader.integer("num_items", required=True, minimum=1)
    content_type = _content_type(reader)
    contents = _read_line_items(reader, required=True)
    data = dict(
        content_category=reader.string("content_category"),
        wishlist_name=reader.string("wishlist_name"),
        wishlist_type=reader.choice("wishlist_type", WISHLIST_TYPES),
        wishlist_id=reader.identifier("wishlist_id"),
        user_intent=reader.choice("user_intent", USER_INTENTS),
        recommendation_source=reader.string("recommendation_source"),
    )
    if contents and value is not None and num_items is not None:
        _check_totals(reader.errors, contents, value=value, count=num_items)
    if reader.errors:
        return None
    return AddToWishlistData(
        content_ids=content_ids,
        content_name=content_name,
        value=value,
        currency=currency,
        num_items=num_items,
        contents=contents,
        content_type=content_type,
        **data,
    )


def _validate_initiate_checkout(reader: _Reader) -> Optional[InitiateCheckoutData]:
    contents = _read_line_items(reader, required=True)
    value = reader.number("value", required=True, positive=True)
    currency = reader.currency()
    num_items = reader.integer("num_items", required=True, minimum=1)
    content_ids = reader.identifier_list("content_ids")
    content_name = reader.string("content_name")
    content_type = _content_type(reader)
    shipping_cost = reader.number("shipping_cost", minimum=0)
    tax_amount = reader.number("tax_amount", minimum=0)
    discount_amount = reader.number("discount_amount", minimum=0)
    data = dict(
        content_category=reader.string("content_category"),
        coupon_code=reader.string("coupon_code"),
        delivery_category=reader.choice("delivery_category", DELIVERY_CATEGORIES),
        cart_id=reader.identifier("cart_id"),
        checkout_step=reader.integer("checkout_step", minimum=1),
        payment_available=reader.boolean("payment_available"),
    )
    if contents and value is not None and num_items is not None:
        _check_totals(
            reader.errors,
            contents,
            value=value,
            count=num_items,
            adjustments=_adjustments(shipping_cost, tax_amount, discount_amount),
        )
    if reader.errors:
        return None
    return InitiateCheckoutData(
        contents=contents,
        value=value,
        currency=currency,
        num_items=num_items,
        content_ids=content_ids or derive_content_ids(contents),
        content_name=content_name or derive_content_name(contents),
        content_type=content_type,
        shipping_cost=shipping_cost,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        **data,
    )


def _validate_add_payment_info(reader: _Reader) -> Optional[AddPaymentInfoData]:
    contents = _read_line_items(reader, required=True)
    value = reader.number("value", required=True, positive=True)
    currency = reader.currency()
    num_items = reader.integer("num_items", required=True, minimum=1)
    content_ids = reader.identifier_list("content_ids")
    content_name = reader.string("content_name")
    content_type = _content_type(reader)
    shipping_cost = reader.number("shipping_cost", minimum=0)
    tax_amount = reader.number("tax_amount", minimum=0)
    discount_amount = reader.number("discount_amount", minimum=0)
    data = dict(
        content_category=reader.string("content_category"),
        payment_method=reader.choice("payment_method", PAYMENT_METHODS),
        payment_type=reader.choice("payment_type", PAYMENT_TYPES),
        payment_source=reader.choice("payment_source", PAYMENT_SOURCES),
        device_type=reader.choice("device_type", DEVICE_TYPES),
        customer_type=reader.choice("customer_type", CUSTOMER_TYPES),
        delivery_category=reader.choice("delivery_category", DELIVERY_CATEGORIES),
        installments=reader.integer("installments", minimum=1, maximum=24),
        checkout_step=reader.integer("checkout_step", minimum=1, maximum=10),
        risk_score=reader.integer("risk_score", minimum=0, maximum=100),
        fraud_check_passed=reader.boolean("fraud_check_passed"),
        is_saved_payment=reader.boolean("is_saved_payment"),
        coupon_code=reader.string("coupon_code"),
        coupon_codes=reader.string_list("coupon_codes"),
        subtotal=reader.number("subtotal", minimum=0),
        estimated_delivery_date=reader.string("estimated_delivery_date"),
        cart_id=reader.identifier("cart_id"),
    )
    if contents and value is not None and num_items is not None:
        _check_totals(
            reader.errors,
            contents,
            value=value,
            count=num_items,
            adjustments=_adjustments(shipping_cost, tax_amount, discount_amount),
        )
    if reader.errors:
        return None
    return AddPaymentInfoData(
        contents=contents,
        value=value,
        currency=currency,
        num_items=num_items,
        content_ids=content_ids or derive_content_ids(contents),
        content_name=content_name or derive_content_name(contents),
        content_type=content_type,
        shipping_cost=shipping_cost,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        **data,
    )


def _validate_purchase(reader: _Reader) -> Optional[PurchaseData]:
    order_id = reader.identifier("order_id", required=True)
    value = reader.number("value", required=True, positive=True)
    currency = reader.currency()
    contents = _read_line_items(reader, required=True)
    num_items = reader.integer("num_items", required=True, minimum=1)
    content_ids = reader.identifier_list("content_ids")
    content_name = reader.string("content_name")
    content_type = _content_type(reader)
    shipping_cost = reader.number("shipping_cost", minimum=0)
    tax_amount = reader.number("tax_amount", minimum=0)
    discount_amount = reader.number("discount_amount", minimum=0)
    order_total = reader.number("order_total", minimum=0)
    data = dict(
        content_category=reader.string("content_category"),
        coupon_code=reader.string("coupon_code"),
        coupon_codes=reader.string_list("coupon_codes"),
        subtotal=reader.number("subtotal", minimum=0),
        delivery_date=reader.string("delivery_date"),
        discount_type=reader.choice("discount_type", DISCOUNT_TYPES),
        payment_method=reader.choice("payment_method", PAYMENT_METHODS),
        payment_status=reader.choice("payment_status", PAYMENT_STATUSES),
        shipping_method=reader.string("shipping_method"),
        delivery_category=reader.choice("delivery_category", DELIVERY_CATEGORIES),
        customer_type=reader.choice("customer_type", CUSTOMER_TYPES),
        order_source=reader.choice("order_source", ORDER_SOURCES),
        predicted_ltv=reader.number("predicted_ltv", minimum=0),
        subscription_id=reader.identifier("subscription_id"),
        campaign_id=reader.identifier("campaign_id"),
        affiliate_id=reader.identifier("affiliate_id"),
        referrer_source=reader.string("referrer_source"),
    )
    if order_total is not None and value is not None and order_total < value:
        reader.errors.append("order_total must be greater than or equal to value")
    if contents and value is not None and num_items is not None:
        _check_totals(
            reader.errors,
            contents,
            value=value,
            count=num_items,
            adjustments=_adjustments(shipping_cost, tax_amount, discount_amount),
        )
    if reader.errors:
        return None
    return PurchaseData(
        order_id=order_id,
        value=value,
        currency=currency,
        contents=contents,
        num_items=num_items,
        content_ids=content_ids or derive_content_ids(contents),
        content_name=content_name or derive_content_name(contents),
        content_type=content_type,
        shipping_cost=shipping_cost,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        order_total=order_total,
        **data,
    )


_VALIDATORS: dict[EventName, Callable[[_Reader], Optional[CanonicalPayload]]] = {
    EventName.VIEW_CONTENT: _validate_view_content,
    EventName.ADD_TO_CART: _validate_add_to_cart,
    EventName.ADD_TO_WISHLIST: _validate_add_to_wishlist,
    EventName.INITIATE_CHECKOUT: _validate_initiate_checkout,
    EventName.ADD_PAYMENT_INFO: _validate_add_payment_info,
    EventName.PURCHASE: _validate_purchase,
}


def validate_custom_data(event_name, raw) -> ValidationResult:
    """Validate ``raw`` custom data for ``event_name``.

    Returns a result whose ``payload`` is the sanitized variant for the kind
    when ``errors`` is empty. PageView and Lead accept any object (or nothing)
    and pass it through without empty values.
    """
    try:
        kind = EventName(event_name)
    except ValueError:
        return ValidationResult(event_name=None, errors=[f"Unsupported event: {event_name}"])

    if kind in (EventName.PAGE_VIEW, EventName.LEAD):
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            return ValidationResult(event_name=kind, errors=["customData must be an object"])
        payload = FreeformData(event_name=kind, values=dict(raw))
        return ValidationResult(event_name=kind, payload=payload, summary=build_summary(payload))

    if raw is None:
        return ValidationResult(event_name=kind, errors=["customData is required"])
    if not isinstance(raw, dict):
        return ValidationResult(event_name=kind, errors=["customData must be an object"])

    errors: list[str] = []
    payload = _VALIDATORS[kind](_Reader(raw, errors))
    if errors:
        logger.info(
            "Rejected %s custom data with %d error(s)",
            kind.value,
            len(errors),
            extra={"event_name": kind.value, "validation_errors": errors},
        )
        return ValidationResult(event_name=kind, errors=errors)
    return ValidationResult(event_name=kind, payload=payload, summary=build_summary(payload))
