"""Tests for the Stripe PaymentIntent timeline source."""

import os
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
import stripe

from payments_sync.connectors.stripe_connector import (
    STRIPE_MAX_LIMIT,
    StripePaymentIntentAdapter,
    StripePaymentIntentMapper,
)
from payments_sync.contract import SyncContract
from payments_sync.config import SyncSettings
from payments_sync.errors import RecordMappingError
from payments_sync.models import FetchNextRequest

CREATED = 1704067200  # 2024-01-01T00:00:00Z


def make_intent(n: int) -> dict:
    return {
        "id": f"pi_{n:03d}",
        "object": "payment_intent",
        "amount": 1000 + n,
        "currency": "usd",
        "status": "succeeded",
        "created": CREATED + n,
        "client_secret": f"pi_{n:03d}_secret",
        "customer": "cus_123",
    }


class FakePaymentIntentList:
    """Stand-in for stripe.PaymentIntent.list over an in-memory account."""

    def __init__(self, count: int):
        self.newest_first = [make_intent(n) for n in reversed(range(count))]
        self.calls = []

    def _index(self, intent_id):
        return [i["id"] for i in self.newest_first].index(intent_id)

    def __call__(self, **params):
        self.calls.append(params)
        limit = params["limit"]
        if "ending_before" in params:
            end = self._index(params["ending_before"])
            start = max(0, end - limit)
            return MagicMock(data=self.newest_first[start:end], has_more=start > 0)
        start = 0
        if "starting_after" in params:
            start = self._index(params["starting_after"]) + 1
        end = start + limit
        return MagicMock(
            data=self.newest_first[start:end], has_more=end < len(self.newest_first)
        )


class TestStripeAdapterInit:
    """Tests for adapter initialization."""

    def test_init_with_api_key_argument(self):
        """Test initialization with API key as argument."""
        adapter = StripePaymentIntentAdapter(api_key="sk_test_key")
        assert adapter._api_key == "sk_test_key"

    def test_init_with_env_variable(self):
        """Test initialization with API key from environment."""
        with patch.dict(os.environ, {"STRIPE_API_KEY": "sk_test_env_key"}):
            assert StripePaymentIntentAdapter()._api_key == "sk_test_env_key"

    def test_init_without_api_key_raises(self):
        """Test that initialization without API key raises ValueError."""
        with patch.dict(os.environ, {"STRIPE_API_KEY": ""}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                StripePaymentIntentAdapter()
            assert "STRIPE_API_KEY" in str(exc_info.value)


class TestStripeAdapterListing:
    """Tests for the list parameters sent to Stripe."""

    @pytest.fixture
    def adapter(self):
        return StripePaymentIntentAdapter(api_key="sk_test_key")

    def test_list_older_from_now(self, adapter):
        """Test that the first scan page has no cursor."""
        fake = FakePaymentIntentList(3)
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            page = adapter.list_older(None, 2)

        assert fake.calls == [{"limit": 2, "api_key": "sk_test_key"}]
        assert [i["id"] for i in page.records] == ["pi_002", "pi_001"]
        assert page.has_more is True

    def test_list_older_with_cursor(self, adapter):
        """Test that older pages use starting_after."""
        fake = FakePaymentIntentList(3)
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            adapter.list_older("pi_002", 5)

        assert fake.calls[0]["starting_after"] == "pi_002"

    def test_list_newer_uses_ending_before(self, adapter):
        """Test that newer pages use ending_before."""
        fake = FakePaymentIntentList(3)
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            page = adapter.list_newer("pi_000", 1)

        assert fake.calls[0]["ending_before"] == "pi_000"
        assert [i["id"] for i in page.records] == ["pi_001"]
        assert page.has_more is True

    def test_limit_is_capped(self, adapter):
        """Test that Stripe's maximum page size is respected."""
        fake = FakePaymentIntentList(1)
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            adapter.list_older(None, 500)

        assert fake.calls[0]["limit"] == STRIPE_MAX_LIMIT

    def test_connected_account_from_payload(self, adapter):
        """Test that the source context selects a connected account."""
        fake = FakePaymentIntentList(1)
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            adapter.list_older(None, 1, from_payload={"reference": "acct_123"})

        assert fake.calls[0]["stripe_account"] == "acct_123"


class TestStripeAdapterErrors:
    """Tests for Stripe error conversion."""

    @pytest.fixture
    def adapter(self):
        return StripePaymentIntentAdapter(api_key="sk_test_key")

    def test_authentication_error(self, adapter):
        """Test that a bad key surfaces as ValueError."""
        with patch("stripe.PaymentIntent.list", side_effect=stripe.error.AuthenticationError("bad key")):
            with pytest.raises(ValueError, match="Invalid Stripe API key"):
                adapter.list_older(None, 10)

    def test_connection_error(self, adapter):
        """Test that network failures surface as ConnectionError."""
        with patch("stripe.PaymentIntent.list", side_effect=stripe.error.APIConnectionError("down")):
            with pytest.raises(ConnectionError):
                adapter.list_newer("pi_001", 10)

    def test_generic_stripe_error(self, adapter):
        """Test that other Stripe errors surface as RuntimeError."""
        with patch("stripe.PaymentIntent.list", side_effect=stripe.error.APIError("boom")):
            with pytest.raises(RuntimeError, match="Stripe API error"):
                adapter.list_older(None, 10)


class TestStripePaymentIntentMapper:
    """Tests for mapping PaymentIntents to canonical records."""

    def test_map_intent(self):
        """Test reference, timestamp and sanitized raw payload."""
        record = StripePaymentIntentMapper().map(make_intent(0))

        assert record.reference == "pi_000"
        assert record.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert record.raw["amount"] == 1000
        assert "client_secret" not in record.raw
        assert "customer" not in record.raw

    def test_nested_sensitive_fields_removed(self):
        """Test that sanitization is recursive."""
        intent = make_intent(1)
        intent["latest_charge"] = {"id": "ch_1", "payment_method_details": {"card": {}}}

        record = StripePaymentIntentMapper().map(intent)

        assert record.raw["latest_charge"] == {"id": "ch_1"}

    def test_map_stripe_object(self):
        """Test that objects exposing to_dict are accepted."""
        native = MagicMock()
        native.to_dict.return_value = make_intent(2)

        assert StripePaymentIntentMapper().map(native).reference == "pi_002"

    def test_missing_created_fails_page(self):
        """Test that an intent without created fails the whole page."""
        adapter = StripePaymentIntentAdapter(api_key="sk_test_key")
        contract = SyncContract.for_source(adapter, StripePaymentIntentMapper())
        broken = make_intent(0)
        del broken["created"]
        result = MagicMock(data=[broken], has_more=False)

        with patch("stripe.PaymentIntent.list", return_value=result):
            with pytest.raises(RecordMappingError) as exc_info:
                contract.fetch_next(FetchNextRequest(page_size=10))
        assert exc_info.value.reference == "pi_000"


class TestStripeTimelineSync:
    """End-to-end timeline sync against a fake Stripe account."""

    def test_full_sync_is_chronological(self):
        """Test that a full drain yields every intent oldest first."""
        fake = FakePaymentIntentList(7)
        adapter = StripePaymentIntentAdapter(api_key="sk_test_key")
        contract = SyncContract.for_source(
            adapter, StripePaymentIntentMapper(), settings=SyncSettings(scan_pages_per_call=2)
        )

        state, seen, has_more = None, [], True
        with patch("stripe.PaymentIntent.list", side_effect=fake):
            while has_more:
                response = contract.fetch_next(FetchNextRequest(state=state, page_size=2))
                seen.extend(r.reference for r in response.records)
                state, has_more = response.new_state, response.has_more
                assert len(fake.calls) < 30

        assert seen == [f"pi_{n:03d}" for n in range(7)]
