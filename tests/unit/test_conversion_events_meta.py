import json
from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, tag

from conversion_events.hashing import hash_identity
from conversion_events.providers.base import PermanentError, TemporaryError, post_json
from conversion_events.providers.meta import MetaCAPI, interpret_response
from conversion_events.schema import (
    CanonicalEvent,
    DeliveryStatus,
    EventName,
    FreeformData,
    IdentityBlock,
    LineItem,
    PurchaseData,
)


def _response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.content = json.dumps(body).encode("utf-8")
    response.text = json.dumps(body)
    response.json.return_value = body
    return response


def _event(identity=None, tracking_params=None, custom_data=None):
    identity = identity or IdentityBlock.from_raw(
        {"em": "Jane@Example.com", "external_id": "user-42", "fbp": "fb.1.1700000000000.111"}
    )
    return CanonicalEvent(
        event_name=EventName.PURCHASE,
        event_time=1_700_000_000,
        event_id="evt-1",
        event_source_url="https://shop.example.com/checkout",
        identity=hash_identity(identity),
        custom_data=custom_data
        or PurchaseData(
            order_id="O1",
            value=110,
            currency="USD",
            contents=[LineItem(id="P1", quantity=2, item_price=55)],
            num_items=2,
            content_ids=["P1"],
            content_name="Product P1",
        ),
        tracking_params=tracking_params or {},
    )


@tag("batch_conversion_dispatch")
class ResponseInterpretationTests(SimpleTestCase):
    def test_confirmed_when_events_received_and_trace_present(self):
        outcome = interpret_response({"events_received": 1, "fbtrace_id": "tr_1"}, "evt-1")

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.trace_id, "tr_1")
        self.assertEqual(outcome.status, DeliveryStatus.CONFIRMED)

    def test_trace_id_alone_confirms(self):
        self.assertTrue(interpret_response({"fbtrace_id": "tr_2"}, "evt-1").success)

    def test_events_received_alone_confirms(self):
        outcome = interpret_response({"events_received": 1}, "evt-1")

        self.assertTrue(outcome.success)
        self.assertIsNone(outcome.trace_id)

    def test_empty_body_is_an_unconfirmed_warning(self):
        outcome = interpret_response({}, "evt-1")

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.warning, {})
        self.assertIsNone(outcome.error)
        self.assertEqual(outcome.status, DeliveryStatus.UNCONFIRMED)
        self.assertEqual(outcome.to_dict(), {"success": False, "event_id": "evt-1", "warning": {}})


@tag("batch_conversion_dispatch")
class PostJsonTests(SimpleTestCase):
    @patch("conversion_events.providers.base.requests.post")
    def test_classifies_status_codes(self, mock_post):
        mock_post.return_value = _response(429, {"error": "slow down"})
        with self.assertRaises(TemporaryError) as ctx:
            post_json("https://example.com", json={})
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.body, {"error": "slow down"})

        mock_post.return_value = _response(400, {"error": "bad"})
        with self.assertRaises(PermanentError):
            post_json("https://example.com", json={})

        mock_post.return_value = _response(200, {"ok": True})
        self.assertEqual(post_json("https://example.com", json={}), {"ok": True})


@tag("batch_conversion_dispatch")
class MetaCAPITests(SimpleTestCase):
    def setUp(self):
        self.provider = MetaCAPI("1234567890", "secret-token", timeout=5)

    def test_build_event_shape(self):
        payload = self.provider.build_body(_event())

        self.assertNotIn("test_event_code", payload)
        event = payload["data"][0]
        self.assertEqual(event["event_name"], "Purchase")
        self.assertEqual(event["event_time"], 1_700_000_000)
        self.assertEqual(event["event_id"], "evt-1")
        self.assertEqual(event["action_source"], "website")
        self.assertEqual(event["event_source_url"], "https://shop.example.com/checkout")
        self.assertEqual(event["user_data"]["external_id"], ["user-42"])
        self.assertEqual(event["user_data"]["fbp"], "fb.1.1700000000000.111")
        self.assertEqual(len(event["user_data"]["em"][0]), 64)
        self.assertEqual(event["custom_data"]["contents"], [{"id": "P1", "quantity": 2, "item_price": 55}])
        self.assertEqual(event["custom_data"]["currency"], "USD")

    def test_test_event_code_is_attached(self):
        provider = MetaCAPI("1234567890", "secret-token", test_event_code="TEST123")

        self.assertEqual(provider.build_body(_event())["test_event_code"], "TEST123")

    def test_tracking_params_merge_without_identity_keys(self):
        custom = FreeformData(event_name=EventName.LEAD, values={"form": "newsletter", "fbclid": "abc"})
        event = _event(
            custom_data=custom,
            tracking_params={"utm_source": "ig", "form": "from-url", "s2_fbp": "fb.1.1.x"},
        )

        custom_data = self.provider.build_event(event)["custom_data"]

        self.assertEqual(custom_data, {"utm_source": "ig", "form": "newsletter"})

    def test_refuses_unhashed_identity(self):
        event = _event()
        event.identity = IdentityBlock.from_raw({"em": "a@example.com"})

        with self.assertRaises(ValueError):
            self.provider.build_event(event)

    @patch("conversion_events.providers.base.requests.post")
    def test_send_posts_once_with_token_and_timeout(self, mock_post):
        mock_post.return_value = _response(200, {"events_received": 1, "fbtrace_id": "tr_1"})

        outcome = self.provider.send(_event())

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.trace_id, "tr_1")
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://graph.facebook.com/v19.0/1234567890/events")
        self.assertEqual(kwargs["params"], {"access_token": "secret-token"})
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(len(kwargs["json"]["data"]), 1)

    @patch("conversion_events.providers.base.requests.post")
    def test_send_returns_warning_for_unconfirmed_200(self, mock_post):
        mock_post.return_value = _response(200, {})

        outcome = self.provider.send(_event())

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.warning, {})
        self.assertEqual(outcome.status, DeliveryStatus.UNCONFIRMED)

    @patch("conversion_events.providers.base.requests.post")
    def test_send_returns_error_body_for_4xx(self, mock_post):
        body = {"error": {"message": "Invalid parameter", "code": 100}}
        mock_post.return_value = _response(400, body)

        outcome = self.provider.send(_event())

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, body)
        self.assertEqual(outcome.status, DeliveryStatus.FAILED)
        mock_post.assert_called_once()

    @patch("conversion_events.providers.base.requests.post", side_effect=requests.ConnectionError("connection reset"))
    def test_send_converts_transport_errors(self, mock_post):
        outcome = self.provider.send(_event())

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "connection reset")
        self.assertEqual(outcome.attempts, 1)
        mock_post.assert_called_once()

    @patch("conversion_events.providers.base.requests.post")
    def test_send_converts_unparseable_body(self, mock_post):
        response = _response(200, None)
        response.content = b"<html>"
        response.json.side_effect = ValueError("Expecting value")
        mock_post.return_value = response

        outcome = self.provider.send(_event())

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "Expecting value")

    @patch("conversion_events.providers.base.requests.post")
    def test_no_retry_by_default(self, mock_post):
        mock_post.return_value = _response(503, {"error": "unavailable"})

        outcome = self.provider.send(_event())

        self.assertEqual(outcome.error, {"error": "unavailable"})
        mock_post.assert_called_once()

    @patch("conversion_events.providers.base.requests.post")
    def test_configured_retries_apply_to_temporary_errors(self, mock_post):
        provider = MetaCAPI("1234567890", "secret-token", max_retries=2)
        mock_post.side_effect = [
            _response(503, {"error": "unavailable"}),
            requests.Timeout("timed out"),
            _response(200, {"events_received": 1, "fbtrace_id": "tr_3"}),
        ]

        outcome = provider.send(_event())

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(mock_post.call_count, 3)

    @patch("conversion_events.providers.base.requests.post")
    def test_permanent_errors_are_not_retried(self, mock_post):
        provider = MetaCAPI("1234567890", "secret-token", max_retries=2)
        mock_post.return_value = _response(400, {"error": "bad"})

        provider.send(_event())

        mock_post.assert_called_once()
