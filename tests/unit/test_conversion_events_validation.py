from django.test import SimpleTestCase, tag

from conversion_events.schema import (
    AddPaymentInfoData,
    AddToCartData,
    EventName,
    FreeformData,
    PurchaseData,
    ViewContentData,
)
from conversion_events.validation import validate_custom_data, within_tolerance


def _purchase(**overrides):
    data = {
        "order_id": "O1",
        "value": 110,
        "currency": "usd",
        "num_items": 2,
        "contents": [{"id": "P1", "quantity": 2, "item_price": 55}],
    }
    data.update(overrides)
    return data


def _add_to_cart(**overrides):
    data = {
        "content_ids": ["SKU-1"],
        "content_name": "Linen shirt",
        "value": 100,
        "currency": "EUR",
        "quantity": 3,
    }
    data.update(overrides)
    return data


@tag("batch_conversion_validation")
class PurchaseValidationTests(SimpleTestCase):
    def test_valid_purchase_is_sanitized_and_backfilled(self):
        result = validate_custom_data("Purchase", _purchase())

        self.assertTrue(result.ok, result.errors)
        payload = result.payload
        self.assertIsInstance(payload, PurchaseData)
        self.assertEqual(payload.currency, "USD")
        self.assertEqual(payload.content_ids, ["P1"])
        self.assertEqual(payload.content_name, "Product P1")
        self.assertEqual(payload.num_items, 2)

    def test_single_item_title_becomes_content_name(self):
        contents = [{"id": "P1", "quantity": 2, "item_price": 55, "title": "  Canvas Tote  "}]
        result = validate_custom_data("Purchase", _purchase(contents=contents))

        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.payload.content_name, "Canvas Tote")

    def test_multiple_items_get_generic_content_name(self):
        contents = [
            {"id": "P1", "quantity": 1, "item_price": 55},
            {"id": 2, "quantity": 1, "item_price": 55},
        ]
        result = validate_custom_data("Purchase", _purchase(contents=contents))

        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.payload.content_name, "Order with 2 products")
        self.assertEqual(result.payload.content_ids, ["P1", "2"])

    def test_numeric_strings_are_coerced(self):
        contents = [{"id": "P1", "quantity": "2", "item_price": "55.00"}]
        result = validate_custom_data("Purchase", _purchase(value="110.00", num_items="2", contents=contents))

        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.payload.value, 110.0)
        self.assertEqual(result.payload.contents[0].quantity, 2)
        self.assertEqual(result.payload.contents[0].item_price, 55.0)

    def test_value_mismatch_is_a_hard_error(self):
        result = validate_custom_data("Purchase", _purchase(value=150))

        self.assertFalse(result.ok)
        self.assertIsNone(result.payload)
        self.assertIn("value (150.00) doesn't match calculated total from contents (110.00)", result.errors)

    def test_num_items_must_equal_total_quantity_exactly(self):
        result = validate_custom_data("Purchase", _purchase(num_items=3))

        self.assertFalse(result.ok)
        self.assertIn("num_items (3) doesn't match total quantity in contents (2)", result.errors)

    def test_rounding_differences_fall_within_tolerance(self):
        contents = [{"id": "P1", "quantity": 3, "item_price": 33.33}]
        result = validate_custom_data("Purchase", _purchase(value=100, num_items=3, contents=contents))

        self.assertTrue(result.ok, result.errors)

    def test_order_adjustments_are_part_of_the_expected_total(self):
        result = validate_custom_data(
            "Purchase",
            _purchase(value=100, shipping_cost=10, tax_amount=5, discount_amount=25),
        )

        self.assertTrue(result.ok, result.errors)

    def test_unknown_enum_value_is_rejected(self):
        result = validate_custom_data("Purchase", _purchase(payment_method="cash"))

        self.assertFalse(result.ok)
        self.assertTrue(any(error.startswith("payment_method must be one of:") for error in result.errors))

    def test_order_total_cannot_be_below_value(self):
        result = validate_custom_data("Purchase", _purchase(order_total=100))

        self.assertIn("order_total must be greater than or equal to value", result.errors)

    def test_original_price_cannot_be_below_item_price(self):
        contents = [{"id": "P1", "quantity": 2, "item_price": 55, "original_price": 50}]
        result = validate_custom_data("Purchase", _purchase(contents=contents))

        self.assertIn("contents[0].original_price must be greater than or equal to item_price", result.errors)

    def test_line_item_errors_are_itemized(self):
        contents = [{"id": "", "quantity": 0, "item_price": -1, "availability": "maybe"}]
        result = validate_custom_data("Purchase", _purchase(contents=contents))

        self.assertIn("contents[0].id is required", result.errors)
        self.assertIn("contents[0].quantity must be a positive integer", result.errors)
        self.assertIn("contents[0].item_price must be at least 0", result.errors)
        self.assertTrue(any(error.startswith("contents[0].availability must be one of:") for error in result.errors))

    def test_missing_required_fields_are_reported(self):
        result = validate_custom_data("Purchase", {})

        self.assertIn("order_id is required", result.errors)
        self.assertIn("value is required", result.errors)
        self.assertIn("currency is required", result.errors)
        self.assertIn("contents must be a non-empty array", result.errors)
        self.assertIn("num_items is required", result.errors)

    def test_order_summary_reports_savings(self):
        contents = [
            {"id": "P1", "quantity": 2, "item_price": 55, "original_price": 60, "category": "bags", "brand": "Acme"},
            {"id": "P2", "quantity": 1, "item_price": 20, "discount_amount": 4, "category": "bags"},
        ]
        result = validate_custom_data("Purchase", _purchase(value=130, num_items=3, contents=contents))

        self.assertTrue(result.ok, result.errors)
        order_data = result.summary["order_data"]
        self.assertEqual(order_data["order_id"], "O1")
        self.assertEqual(order_data["product_count"], 2)
        self.assertEqual(order_data["total_items"], 3)
        self.assertEqual(order_data["total_savings"], 14.0)
        self.assertEqual(order_data["categories"], ["bags"])
        self.assertEqual(order_data["brands"], ["Acme"])

    def test_variant_coupon_and_delivery_fields_are_kept_trimmed(self):
        contents = [
            {
                "id": "P1",
                "quantity": 2,
                "item_price": 55,
                "variant_id": 901,
                "variant_name": "  Navy / M ",
                "image_url": " https://cdn.example.com/p1.jpg ",
            }
        ]
        result = validate_custom_data(
            "Purchase",
            _purchase(
                contents=contents,
                subtotal="110",
                coupon_codes=[" WELCOME10 ", "", "FREESHIP"],
                delivery_date=" 2024-06-01 ",
            ),
        )

        self.assertTrue(result.ok, result.errors)
        item = result.payload.contents[0].to_dict()
        self.assertEqual(item["variant_id"], "901")
        self.assertEqual(item["variant_name"], "Navy / M")
        self.assertEqual(item["image_url"], "https://cdn.example.com/p1.jpg")
        custom_data = result.payload.to_custom_data()
        self.assertEqual(custom_data["subtotal"], 110)
        self.assertEqual(custom_data["coupon_codes"], ["WELCOME10", "FREESHIP"])
        self.assertEqual(custom_data["delivery_date"], "2024-06-01")

    def test_coupon_codes_must_be_strings(self):
        result = validate_custom_data("Purchase", _purchase(coupon_codes=["OK", 5]))

        self.assertIn("coupon_codes must be an array of strings", result.errors)


@tag("batch_conversion_validation")
class CartAndCatalogValidationTests(SimpleTestCase):
    def test_add_to_cart_contents_must_match_value(self):
        contents = [
            {"id": "SKU-1", "quantity": 2, "item_price": 30},
            {"id": "SKU-2", "quantity": 1, "item_price": 30},
        ]
        result = validate_custom_data("AddToCart", _add_to_cart(contents=contents))

        self.assertFalse(result.ok)
        self.assertIn("value (100.00) doesn't match calculated total from contents (90.00)", result.errors)

    def test_add_to_cart_contents_must_match_quantity(self):
        contents = [{"id": "SKU-1", "quantity": 2, "item_price": 50}]
        result = validate_custom_data("AddToCart", _add_to_cart(contents=contents))

        self.assertIn("quantity (3) doesn't match total quantity in contents (2)", result.errors)

    def test_add_to_cart_requires_positive_value(self):
        result = validate_custom_data("AddToCart", _add_to_cart(value=0))

        self.assertIn("value must be greater than 0", result.errors)

    def test_valid_add_to_cart(self):
        result = validate_custom_data("AddToCart", _add_to_cart(cart_id=991))

        self.assertTrue(result.ok, result.errors)
        self.assertIsInstance(result.payload, AddToCartData)
        self.assertEqual(result.payload.cart_id, "991")
        self.assertEqual(result.summary["cart_summary"]["quantity"], 3)

    def test_view_content_allows_zero_value(self):
        result = validate_custom_data(
            "ViewContent",
            {"content_ids": ["SKU-1"], "content_name": " Sample ", "value": 0, "currency": "brl"},
        )

        self.assertTrue(result.ok, result.errors)
        self.assertIsInstance(result.payload, ViewContentData)
        self.assertEqual(result.payload.content_name, "Sample")
        self.assertEqual(result.payload.currency, "BRL")
        self.assertEqual(result.payload.content_type, "product")
        self.assertIn("product_data", result.summary)

    def test_view_content_requires_content_ids(self):
        result = validate_custom_data("ViewContent", {"content_name": "Sample", "value": 10, "currency": "USD"})

        self.assertIn("content_ids must be a non-empty array", result.errors)

    def test_view_content_rejects_bad_currency_and_condition(self):
        result = validate_custom_data(
            "ViewContent",
            {"content_ids": ["SKU-1"], "content_name": "Sample", "value": 10, "currency": "dollars", "condition": "mint"},
        )

        self.assertIn("currency must be a 3-letter ISO currency code", result.errors)
        self.assertTrue(any(error.startswith("condition must be one of:") for error in result.errors))

    def test_wishlist_tolerance_is_relative_to_calculated_total(self):
        result = validate_custom_data(
            "AddToWishlist",
            {
                "content_ids": ["SKU-1"],
                "content_name": "Sample",
                "value": 0,
                "currency": "USD",
                "num_items": 1,
                "contents": [{"id": "SKU-1", "quantity": 1, "item_price": 50}],
            },
        )

        self.assertIn("value (0.00) doesn't match calculated total from contents (50.00)", result.errors)

    def test_wishlist_item_rating_range(self):
        result = validate_custom_data(
            "AddToWishlist",
            {
                "content_ids": ["SKU-1"],
                "content_name": "Sample",
                "value": 50,
                "currency": "USD",
                "num_items": 1,
                "wishlist_type": "gift",
                "contents": [{"id": "SKU-1", "quantity": 1, "item_price": 50, "rating": 7}],
            },
        )

        self.assertIn("contents[0].rating must be between 1 and 5", result.errors)

    def test_initiate_checkout_backfills_content_ids(self):
        result = validate_custom_data(
            "InitiateCheckout",
            {
                "value": 60,
                "currency": "usd",
                "num_items": 2,
                "shipping_cost": 10,
                "delivery_category": "express",
                "contents": [{"id": "A", "quantity": 2, "item_price": 25}],
            },
        )

        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.payload.content_ids, ["A"])
        self.assertEqual(result.summary["checkout_summary"]["total_items"], 2)


@tag("batch_conversion_validation")
class PaymentInfoValidationTests(SimpleTestCase):
    def _payload(self, **overrides):
        data = {
            "value": 99.9,
            "currency": "USD",
            "num_items": 1,
            "contents": [{"id": "A", "quantity": 1, "item_price": 99.9}],
            "payment_method": "klarna",
            "installments": 3,
            "fraud_check_passed": True,
        }
        data.update(overrides)
        return data

    def test_valid_payment_info(self):
        result = validate_custom_data("AddPaymentInfo", self._payload())

        self.assertTrue(result.ok, result.errors)
        self.assertIsInstance(result.payload, AddPaymentInfoData)
        self.assertEqual(result.summary["payment_summary"]["payment_method"], "klarna")

    def test_ranges_are_enforced(self):
        result = validate_custom_data(
            "AddPaymentInfo",
            self._payload(installments=30, checkout_step=0, risk_score=101),
        )

        self.assertIn("installments must be between 1 and 24", result.errors)
        self.assertIn("checkout_step must be between 1 and 10", result.errors)
        self.assertIn("risk_score must be between 0 and 100", result.errors)

    def test_each_out_of_range_integer_reports_a_single_message(self):
        result = validate_custom_data(
            "AddPaymentInfo",
            self._payload(
                installments=0,
                contents=[{"id": "A", "quantity": 0, "item_price": 99.9}],
                num_items=0,
            ),
        )

        self.assertIn("installments must be between 1 and 24", result.errors)
        self.assertIn("contents[0].quantity must be a positive integer", result.errors)
        self.assertIn("num_items must be a positive integer", result.errors)
        self.assertEqual(len([e for e in result.errors if e.startswith("installments")]), 1)
        self.assertEqual(len([e for e in result.errors if e.startswith("contents[0].quantity")]), 1)

    def test_payment_info_keeps_subtotal_and_delivery_estimate(self):
        result = validate_custom_data(
            "AddPaymentInfo",
            self._payload(subtotal=99.9, estimated_delivery_date=" 2024-06-03 ", coupon_codes=["SPRING"]),
        )

        self.assertTrue(result.ok, result.errors)
        self.assertEqual(result.payload.subtotal, 99.9)
        self.assertEqual(result.payload.estimated_delivery_date, "2024-06-03")
        self.assertEqual(result.payload.coupon_codes, ["SPRING"])

    def test_booleans_are_not_coerced(self):
        result = validate_custom_data("AddPaymentInfo", self._payload(fraud_check_passed="yes"))

        self.assertIn("fraud_check_passed must be a boolean", result.errors)


@tag("batch_conversion_validation")
class GenericValidationTests(SimpleTestCase):
    def test_malformed_input_never_raises(self):
        for raw in ("garbage", 12, ["a"]):
            result = validate_custom_data("Purchase", raw)
            self.assertEqual(result.errors, ["customData must be an object"])

    def test_out_of_range_numbers_are_reported_not_raised(self):
        huge_text = "1" * 5000
        cases = [
            ([{"id": "P1", "quantity": huge_text, "item_price": 55}], "contents[0].quantity must be an integer"),
            ([{"id": "P1", "quantity": 10**400, "item_price": 55}], "contents[0].quantity must be an integer"),
            ([{"id": "P1", "quantity": 2, "item_price": 10**400}], "contents[0].item_price must be a number"),
            ([{"id": 10**400, "quantity": 2, "item_price": 55}], "contents[0].id must be a non-empty string"),
        ]
        for contents, expected in cases:
            with self.subTest(expected=expected):
                result = validate_custom_data("Purchase", _purchase(contents=contents))

                self.assertFalse(result.ok)
                self.assertIn(expected, result.errors)

        result = validate_custom_data("Purchase", _purchase(value=huge_text))
        self.assertIn("value must be a number", result.errors)

    def test_overflowing_totals_are_a_mismatch(self):
        big = 10**300
        contents = [{"id": "P1", "quantity": big, "item_price": big}]

        result = validate_custom_data("Purchase", _purchase(value=big, num_items=big, contents=contents))

        self.assertFalse(result.ok)
        self.assertTrue(any(error.startswith("value (") for error in result.errors))
        self.assertFalse(within_tolerance(1.0, float("inf")))

    def test_missing_custom_data_for_typed_event(self):
        result = validate_custom_data("AddToCart", None)

        self.assertEqual(result.errors, ["customData is required"])

    def test_unsupported_event(self):
        result = validate_custom_data("Subscribe", {})

        self.assertEqual(result.errors, ["Unsupported event: Subscribe"])

    def test_page_view_and_lead_pass_through(self):
        page_view = validate_custom_data("PageView", None)
        lead = validate_custom_data(EventName.LEAD, {"form": "newsletter", "empty": ""})

        self.assertTrue(page_view.ok)
        self.assertIsInstance(page_view.payload, FreeformData)
        self.assertEqual(page_view.payload.to_custom_data(), {})
        self.assertEqual(lead.payload.kind, EventName.LEAD)
        self.assertEqual(lead.payload.to_custom_data(), {"form": "newsletter"})
        self.assertEqual(lead.summary, {})

    def test_tolerance_has_a_one_cent_floor(self):
        self.assertTrue(within_tolerance(0.01, 0))
        self.assertFalse(within_tolerance(0.02, 0))
        self.assertTrue(within_tolerance(1009, 1000))
        self.assertFalse(within_tolerance(1011, 1000))
