"""
Example synchronization runs.

This module shows how to drive a stream with the FetchNext contract: the
caller keeps the opaque state returned by each call and hands it back on
the next one until HasMore is false.
"""
import json
import logging
import os
from datetime import datetime, timezone

from payments_sync import FetchNextRequest, SyncContract, SyncSettings
from payments_sync.connectors import (
    SimulatorConfig,
    SimulatorCursorAdapter,
    SimulatorTimelineAdapter,
    SimulatedTransactionMapper,
    StripePaymentIntentAdapter,
    StripePaymentIntentMapper,
)


def drain(contract, page_size=25, state=None, from_payload=None):
    """Call fetch_next until the stream reports no more data."""
    has_more = True
    while has_more:
        response = contract.fetch_next(
            FetchNextRequest(state=state, page_size=page_size, from_payload=from_payload)
        )
        for record in response.records:
            print(f"  {record.timestamp.isoformat()} {record.reference}")
        state, has_more = response.new_state, response.has_more
    return state


# =============================================================================
# Forward cursor source
# =============================================================================
def sync_forward_cursor():
    """
    A source answering "records modified since X". The state holds the
    timestamp of the last emitted record.
    """
    adapter = SimulatorCursorAdapter(SimulatorConfig(upstream_page_size=10, seed=1))
    adapter.generate(40, start=datetime(2024, 1, 1, tzinfo=timezone.utc))
    contract = SyncContract.for_source(adapter, SimulatedTransactionMapper())

    state = drain(contract, page_size=15)
    print(f"Forward cursor state: {state.decode()}")
    return state


# =============================================================================
# Timeline source (newest first only)
# =============================================================================
def sync_timeline():
    """
    A source that only lists records newest first. The first calls scan
    backward for the oldest record, later calls page forward.
    """
    adapter = SimulatorTimelineAdapter(SimulatorConfig(seed=1))
    adapter.generate(12, start=datetime(2024, 1, 1, tzinfo=timezone.utc))
    contract = SyncContract.for_source(
        adapter, SimulatedTransactionMapper(), settings=SyncSettings(scan_pages_per_call=2)
    )

    state = drain(contract, page_size=4)
    print(f"Timeline state: {state.decode()}")
    return state


# =============================================================================
# Stripe PaymentIntents
# =============================================================================
def sync_stripe_payments(account_id=None):
    """
    Stripe PaymentIntents of the platform, or of a connected account when
    ``account_id`` is given.
    """
    os.environ.setdefault("STRIPE_API_KEY", "")  # Set your test key
    contract = SyncContract.for_source(
        StripePaymentIntentAdapter(),
        StripePaymentIntentMapper(),
        settings=SyncSettings.from_env(),
    )
    from_payload = json.dumps({"reference": account_id}).encode() if account_id else None
    return drain(contract, page_size=100, from_payload=from_payload)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print("Forward cursor source:")
    sync_forward_cursor()
    print("Timeline source:")
    sync_timeline()
