"""Typed shapes that flow through the conversions pipeline.

Each event kind has its own custom-data variant. The validator produces one of
these; the dispatcher only ever sees the typed variant and calls
``to_custom_data()`` on it.
"""
import enum
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Optional


class EventName(str, enum.Enum):
    PAGE_VIEW = "PageView"
    VIEW_CONTENT = "ViewContent"
    ADD_TO_CART = "AddToCart"
    ADD_TO_WISHLIST = "AddToWishlist"
    INITIATE_CHECKOUT = "InitiateCheckout"
    ADD_PAYMENT_INFO = "AddPaymentInfo"
    PURCHASE = "Purchase"
    LEAD = "Lead"


def _drop_empty(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in mapping.items() if value not in (None, "", [], {})}


@dataclass
class LineItem:
    id: str
    quantity: int
    item_price: float
    title: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    variant: Optional[str] = None
    sku: Optional[str] = None
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    image_url: Optional[str] = None
    original_price: Optional[float] = None
    discount_amount: Optional[float] = None
    rating: Optional[float] = None
    availability: Optional[str] = None
    condition: Optional[str] = None

    @property
    def line_total(self) -> float:
        return float(self.item_price) * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return _drop_empty({f.name: getattr(self, f.name) for f in fields(self)})


@dataclass
class CanonicalPayload:
    """Base for the per-kind custom-data variants."""

    kind: ClassVar[EventName]

    def to_custom_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "contents" and value is not None:
                value = [item.to_dict() for item in value]
            data[f.name] = value
        return _drop_empty(data)


@dataclass
class FreeformData(CanonicalPayload):
    """PageView and Lead carry caller-defined custom data as-is."""

    event_name: EventName = EventName.PAGE_VIEW
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> EventName:  # type: ignore[override]
        return self.event_name

    def to_custom_data(self) -> dict[str, Any]:
        return _drop_empty(dict(self.values))


@dataclass
class ViewContentData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.VIEW_CONTENT

    content_ids: list[str]
    content_name: str
    value: float
    currency: str
    content_type: str = "product"
    content_category: Optional[str] = None
    brand: Optional[str] = None
    availability: Optional[str] = None
    condition: Optional[str] = None
    predicted_ltv: Optional[float] = None
    contents: Optional[list[LineItem]] = None


@dataclass
class AddToCartData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.ADD_TO_CART

    content_ids: list[str]
    content_name: str
    value: float
    currency: str
    quantity: int
    content_type: str = "product"
    content_category: Optional[str] = None
    cart_id: Optional[str] = None
    product_group_id: Optional[str] = None
    custom_label_0: Optional[str] = None
    predicted_ltv: Optional[float] = None
    contents: Optional[list[LineItem]] = None


@dataclass
class AddToWishlistData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.ADD_TO_WISHLIST

    content_ids: list[str]
    content_name: str
    value: float
    currency: str
    num_items: int
    contents: list[LineItem]
    content_type: str = "product"
    content_category: Optional[str] = None
    wishlist_name: Optional[str] = None
    wishlist_type: Optional[str] = None
    wishlist_id: Optional[str] = None
    user_intent: Optional[str] = None
    recommendation_source: Optional[str] = None


@dataclass
class InitiateCheckoutData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.INITIATE_CHECKOUT

    contents: list[LineItem]
    value: float
    currency: str
    num_items: int
    content_ids: list[str] = field(default_factory=list)
    content_name: Optional[str] = None
    content_type: str = "product"
    content_category: Optional[str] = None
    shipping_cost: Optional[float] = None
    tax_amount: Optional[float] = None
    discount_amount: Optional[float] = None
    coupon_code: Optional[str] = None
    delivery_category: Optional[str] = None
    cart_id: Optional[str] = None
    checkout_step: Optional[int] = None
    payment_available: Optional[bool] = None


@dataclass
class AddPaymentInfoData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.ADD_PAYMENT_INFO

    contents: list[LineItem]
    value: float
    currency: str
    num_items: int
    content_ids: list[str] = field(default_factory=list)
    content_name: Optional[str] = None
    content_type: str = "product"
    content_category: Optional[str] = None
    payment_method: Optional[str] = None
    payment_type: Optional[str] = None
    payment_source: Optional[str] = None
    device_type: Optional[str] = None
    customer_type: Optional[str] = None
    delivery_category: Optional[str] = None
    installments: Optional[int] = None
    checkout_step: Optional[int] = None
    risk_score: Optional[int] = None
    fraud_check_passed: Optional[bool] = None
    is_saved_payment: Optional[bool] = None
    shipping_cost: Optional[float] = None
    tax_amount: Optional[float] = None
    discount_amount: Optional[float] = None
    coupon_code: Optional[str] = None
    coupon_codes: Optional[list[str]] = None
    subtotal: Optional[float] = None
    estimated_delivery_date: Optional[str] = None
    cart_id: Optional[str] = None


@dataclass
class PurchaseData(CanonicalPayload):
    kind: ClassVar[EventName] = EventName.PURCHASE

    order_id: str
    value: float
    currency: str
    contents: list[LineItem]
    num_items: int
    content_ids: list[str] = field(default_factory=list)
    content_name: Optional[str] = None
    content_type: str = "product"
    content_category: Optional[str] = None
    shipping_cost: Optional[float] = None
    tax_amount: Optional[float] = None
    discount_amount: Optional[float] = None
    order_total: Optional[float] = None
    coupon_code: Optional[str] = None
    coupon_codes: Optional[list[str]] = None
    subtotal: Optional[float] = None
    delivery_date: Optional[str] = None
    discount_type: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    shipping_method: Optional[str] = None
    delivery_category: Optional[str] = None
    customer_type: Optional[str] = None
    order_source: Optional[str] = None
    predicted_ltv: Optional[float] = None
    subscription_id: Optional[str] = None
    campaign_id: Optional[str] = None
    affiliate_id: Optional[str] = None
    referrer_source: Optional[str] = None


PAYLOAD_TYPES: dict[EventName, type[CanonicalPayload]] = {
    EventName.VIEW_CONTENT: ViewContentData,
    EventName.ADD_TO_CART: AddToCartData,
    EventName.ADD_TO_WISHLIST: AddToWishlistData,
    EventName.INITIATE_CHECKOUT: InitiateCheckoutData,
    EventName.ADD_PAYMENT_INFO: AddPaymentInfoData,
    EventName.PURCHASE: PurchaseData,
}

# Fields of IdentityBlock that carry one or more values per user.
MULTI_VALUE_IDENTITY_FIELDS = ("em", "ph", "fn", "ln", "ge", "db", "ct", "st", "zp", "country", "external_id")
SCALAR_IDENTITY_FIELDS = ("fbc", "fbp", "client_ip_address", "client_user_agent")


def _as_value_list(value) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    items = value if isinstance(value, (list, tuple)) else [value]
    cleaned = []
    for item in items:
        if item is None or isinstance(item, (dict, list, tuple)):
            continue
        text = str(item).strip()
        if text:
            cleaned.append(text)
    return tuple(cleaned) or None


def _as_scalar(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class IdentityBlock:
    em: Optional[tuple[str, ...]] = None
    ph: Optional[tuple[str, ...]] = None
    fn: Optional[tuple[str, ...]] = None
    ln: Optional[tuple[str, ...]] = None
    ge: Optional[tuple[str, ...]] = None
    db: Optional[tuple[str, ...]] = None
    ct: Optional[tuple[str, ...]] = None
    st: Optional[tuple[str, ...]] = None
    zp: Optional[tuple[str, ...]] = None
    country: Optional[tuple[str, ...]] = None
    external_id: Optional[tuple[str, ...]] = None
    fbc: Optional[str] = None
    fbp: Optional[str] = None
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None
    hashed: bool = False

    @classmethod
    def from_raw(cls, raw: Optional[dict]) -> "IdentityBlock":
        """Build a pre-hash block from loosely-typed caller input.

        Scalars are wrapped into single-element tuples; blank strings and
        nested objects are discarded. Unknown keys are ignored.
        """
        if not isinstance(raw, dict):
            return cls()
        kwargs: dict[str, Any] = {}
        for name in MULTI_VALUE_IDENTITY_FIELDS:
            kwargs[name] = _as_value_list(raw.get(name))
        for name in SCALAR_IDENTITY_FIELDS:
            kwargs[name] = _as_scalar(raw.get(name))
        return cls(**kwargs)

    def to_user_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in MULTI_VALUE_IDENTITY_FIELDS:
            values = getattr(self, name)
            if values:
                data[name] = list(values)
        for name in SCALAR_IDENTITY_FIELDS:
            value = getattr(self, name)
            if value:
                data[name] = value
        return data


@dataclass
class CanonicalEvent:
    event_name: EventName
    event_time: int
    event_id: str
    event_source_url: Optional[str]
    identity: IdentityBlock
    custom_data: CanonicalPayload
    tracking_params: dict[str, str] = field(default_factory=dict)


class DeliveryStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"
    FAILED = "failed"


@dataclass
class DeliveryOutcome:
    """Result of one outbound delivery.

    ``warning`` is set when the API answered 2xx without confirming receipt;
    ``error`` is set for non-2xx answers and transport failures.
    """

    success: bool
    event_id: str
    trace_id: Optional[str] = None
    error: Any = None
    warning: Any = None
    attempts: int = 1

    @property
    def status(self) -> DeliveryStatus:
        if self.success:
            return DeliveryStatus.CONFIRMED
        if self.error is None and self.warning is not None:
            return DeliveryStatus.UNCONFIRMED
        return DeliveryStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "event_id": self.event_id}
        if self.trace_id is not None:
            data["trace_id"] = self.trace_id
        if self.error is not None:
            data["error"] = self.error
        if self.warning is not None:
            data["warning"] = self.warning
        return data
