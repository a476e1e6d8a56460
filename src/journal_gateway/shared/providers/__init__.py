"""Breaker-guarded provider gateway.

Provides circuit breaking, single-trial recovery probing, deadline and
cancellation handling, and ordered state broadcast for any outbound AI
provider.
"""

from journal_gateway.shared.providers.types import (
    BreakerSnapshot,
    BreakerState,
    CallOutcome,
    GatewayHealth,
    GatewayResult,
    Permit,
    ProviderConfig,
    TrialToken,
)
from journal_gateway.shared.providers.cancellation import CancelToken
from journal_gateway.shared.providers.circuit_breaker import CircuitBreaker
from journal_gateway.shared.providers.classification import classify_exception
from journal_gateway.shared.providers.failure_window import FailureWindow
from journal_gateway.shared.providers.gateway import ProviderGateway
from journal_gateway.shared.providers.health import GatewayStatsTracker
from journal_gateway.shared.providers.subscriptions import Subscription, SubscriptionRegistry
from journal_gateway.shared.providers.trial import TrialCoordinator

__all__ = [
    "BreakerSnapshot",
    "BreakerState",
    "CallOutcome",
    "CancelToken",
    "CircuitBreaker",
    "FailureWindow",
    "GatewayHealth",
    "GatewayResult",
    "GatewayStatsTracker",
    "Permit",
    "ProviderConfig",
    "ProviderGateway",
    "Subscription",
    "SubscriptionRegistry",
    "TrialCoordinator",
    "TrialToken",
    "classify_exception",
]
