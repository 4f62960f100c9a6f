from datetime import datetime, timedelta, timezone

import pytest

from gateway_router.health import HealthTracker
from gateway_router.ledger import TransactionLedger
from gateway_router.models import GatewayDescriptor
from gateway_router.router import GatewayRouter

GATEWAYS = [
    GatewayDescriptor(name="razorpay", weight=50),
    GatewayDescriptor(name="payu", weight=30),
    GatewayDescriptor(name="cashfree", weight=20),
]


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class ScriptedRandom:
    """Returns pre-set draws from uniform(), ignoring the requested range."""

    def __init__(self, *draws: float):
        self.draws = list(draws)
        self.calls: list[tuple[float, float]] = []

    def uniform(self, a: float, b: float) -> float:
        self.calls.append((a, b))
        return self.draws.pop(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def health(clock):
    return HealthTracker(
        GATEWAYS,
        window_minutes=15,
        cooldown_minutes=30,
        success_rate_threshold=0.90,
        min_sample_size=5,
        clock=clock,
    )


@pytest.fixture
def router(health):
    return GatewayRouter(GATEWAYS, health)


@pytest.fixture
def ledger(router, clock):
    return TransactionLedger(router, default_currency="INR", clock=clock)
