"""Source adapters and record mappers."""

from .base import (
    SourceKind,
    NativePage,
    CursorPosition,
    RecordMapper,
    ForwardCursorAdapter,
    TimelineAdapter,
)
from .stripe_connector import StripePaymentIntentAdapter, StripePaymentIntentMapper
from .simulator_connector import (
    SimulatorCursorAdapter,
    SimulatorTimelineAdapter,
    SimulatorConfig,
    SimulatorScenario,
    SimulatedTransaction,
    SimulatedTransactionMapper,
    SimulatedRateLimitError,
    SimulatedServerError,
)

__all__ = [
    # Base classes and models
    "SourceKind",
    "NativePage",
    "CursorPosition",
    "RecordMapper",
    "ForwardCursorAdapter",
    "TimelineAdapter",
    # Stripe
    "StripePaymentIntentAdapter",
    "StripePaymentIntentMapper",
    # Simulator
    "SimulatorCursorAdapter",
    "SimulatorTimelineAdapter",
    "SimulatorConfig",
    "SimulatorScenario",
    "SimulatedTransaction",
    "SimulatedTransactionMapper",
    "SimulatedRateLimitError",
    "SimulatedServerError",
]
