"""Stripe PaymentIntents as a reverse-chronological (Timeline) source."""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from ..models import CanonicalRecord
from .base import NativePage, RecordMapper, TimelineAdapter

logger = logging.getLogger(__name__)

# Stripe list endpoints accept at most 100 objects per call
STRIPE_MAX_LIMIT = 100


class StripePaymentIntentMapper(RecordMapper):
    """Maps a Stripe PaymentIntent to a canonical record."""

    # Fields that should not be included in raw response for security
    SENSITIVE_FIELDS = frozenset([
        'client_secret',
        'payment_method',
        'source',
        'customer',
        'payment_method_details',
        'card',
        'bank_account',
    ])

    def _sanitize_response(self, raw_response: Dict[str, Any]) -> Dict[str, Any]:
        """Remove sensitive fields from the raw response, recursively."""
        if not raw_response:
            return {}
        sanitized = {}
        for key, value in raw_response.items():
            if key in self.SENSITIVE_FIELDS:
                continue
            if isinstance(value, dict):
                sanitized[key] = self._sanitize_response(value)
            else:
                sanitized[key] = value
        return sanitized

    def map(self, native: Any) -> CanonicalRecord:
        raw_dict = native.to_dict() if hasattr(native, 'to_dict') else dict(native)
        return CanonicalRecord(
            reference=raw_dict["id"],
            timestamp=datetime.fromtimestamp(raw_dict["created"], tz=timezone.utc),
            raw=self._sanitize_response(raw_dict),
        )


class StripePaymentIntentAdapter(TimelineAdapter):
    """
    Lists PaymentIntents newest first. ``starting_after`` walks to older
    objects and ``ending_before`` to newer ones, which is exactly what the
    timeline scanner needs.

    The source context may carry ``{"reference": "acct_..."}`` to list the
    PaymentIntents of a connected account instead of the platform's.
    """

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the adapter.

        Args:
            api_key: Stripe API key. Falls back to STRIPE_API_KEY env var.

        Raises:
            ValueError: If no API key is provided or found.
        """
        self._api_key = api_key or os.getenv("STRIPE_API_KEY")
        if not self._api_key:
            raise ValueError(
                "STRIPE_API_KEY must be provided either as argument or environment variable"
            )

    def _list(self, params: Dict[str, Any], from_payload: Optional[Dict[str, Any]]) -> NativePage:
        params["api_key"] = self._api_key
        if from_payload and from_payload.get("reference"):
            params["stripe_account"] = from_payload["reference"]

        try:
            result = stripe.PaymentIntent.list(**params)
        except stripe.error.AuthenticationError as e:
            logger.error("Stripe authentication failed")
            raise ValueError("Invalid Stripe API key") from e
        except stripe.error.APIConnectionError as e:
            logger.error("Failed to connect to Stripe API")
            raise ConnectionError("Failed to connect to Stripe API") from e
        except stripe.error.StripeError as e:
            logger.error(f"Stripe API error: {type(e).__name__}")
            raise RuntimeError(f"Stripe API error: {e}") from e

        return NativePage(records=list(result.data), has_more=bool(result.has_more))

    def list_older(
        self,
        before_id: Optional[str],
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        params: Dict[str, Any] = {"limit": min(limit, STRIPE_MAX_LIMIT)}
        if before_id:
            params["starting_after"] = before_id
        return self._list(params, from_payload)

    def list_newer(
        self,
        after_id: str,
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        params: Dict[str, Any] = {
            "limit": min(limit, STRIPE_MAX_LIMIT),
            "ending_before": after_id,
        }
        return self._list(params, from_payload)

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": "stripe"}
