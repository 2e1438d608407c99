"""Kind-specific summaries echoed back to the storefront on success."""
from typing import Any

from .schema import (
    AddPaymentInfoData,
    AddToCartData,
    AddToWishlistData,
    CanonicalPayload,
    InitiateCheckoutData,
    LineItem,
    PurchaseData,
    ViewContentData,
)


def _round(amount) -> float:
    return round(float(amount), 2)


def _unique(values) -> list[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def item_savings(item: LineItem) -> float:
    if item.original_price is not None and item.original_price > item.item_price:
        return (item.original_price - item.item_price) * item.quantity
    return item.discount_amount or 0.0


def _contents_overview(contents: list[LineItem]) -> dict[str, Any]:
    return {
        "product_count": len(contents),
        "total_items": sum(item.quantity for item in contents),
        "product_ids": [item.id for item in contents],
        "categories": _unique(item.category for item in contents),
        "brands": _unique(item.brand for item in contents),
    }


def _product_data(payload: ViewContentData) -> dict[str, Any]:
    return {
        "content_ids": payload.content_ids,
        "content_name": payload.content_name,
        "content_category": payload.content_category,
        "value": payload.value,
        "currency": payload.currency,
        "availability": payload.availability,
    }


def _cart_summary(payload: AddToCartData) -> dict[str, Any]:
    return {
        "content_ids": payload.content_ids,
        "content_name": payload.content_name,
        "quantity": payload.quantity,
        "value": payload.value,
        "currency": payload.currency,
        "cart_id": payload.cart_id,
    }


def _wishlist_data(payload: AddToWishlistData) -> dict[str, Any]:
    return {
        **_contents_overview(payload.contents),
        "wishlist_name": payload.wishlist_name,
        "wishlist_type": payload.wishlist_type,
        "total_value": _round(payload.value),
        "currency": payload.currency,
    }


def _checkout_summary(payload: InitiateCheckoutData) -> dict[str, Any]:
    return {
        **_contents_overview(payload.contents),
        "total_value": _round(payload.value),
        "currency": payload.currency,
        "checkout_step": payload.checkout_step,
    }


def _payment_summary(payload: AddPaymentInfoData) -> dict[str, Any]:
    return {
        **_contents_overview(payload.contents),
        "total_value": _round(payload.value),
        "currency": payload.currency,
        "payment_method": payload.payment_method,
        "installments": payload.installments,
    }


def _order_data(payload: PurchaseData) -> dict[str, Any]:
    return {
        "order_id": payload.order_id,
        **_contents_overview(payload.contents),
        "total_value": _round(payload.value),
        "currency": payload.currency,
        "total_savings": _round(sum(item_savings(item) for item in payload.contents)),
        "payment_method": payload.payment_method,
    }


SUMMARY_BUILDERS = {
    ViewContentData: ("product_data", _product_data),
    AddToCartData: ("cart_summary", _cart_summary),
    AddToWishlistData: ("wishlist_data", _wishlist_data),
    InitiateCheckoutData: ("checkout_summary", _checkout_summary),
    AddPaymentInfoData: ("payment_summary", _payment_summary),
    PurchaseData: ("order_data", _order_data),
}


def build_summary(payload: CanonicalPayload) -> dict[str, Any]:
    """Return ``{summary_key: {...}}`` for the payload, or ``{}`` for free-form kinds."""
    entry = SUMMARY_BUILDERS.get(type(payload))
    if entry is None:
        return {}
    key, builder = entry
    return {key: builder(payload)}
