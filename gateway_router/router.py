import logging
import random
from typing import Iterable, Optional, Protocol

from gateway_router.errors import NoHealthyGateway
from gateway_router.health import HealthTracker
from gateway_router.models import GatewayDescriptor, GatewaySelection

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


class GatewayRouter:
    """
    Distributes transactions across healthy gateways by weighted random choice.

    Routing logic:
    1. Ask the health tracker for the healthy set (enabled and not
       circuit-open). If it is empty, raise NoHealthyGateway.
    2. Draw r uniformly from [0, W) where W is the sum of healthy weights.
    3. Walk the healthy gateways in configured order keeping a running sum of
       weights and pick the first one whose running sum reaches r.

    Weights are never rewritten. When a gateway drops out of the healthy set W
    shrinks, so every remaining gateway's effective share grows in proportion
    to its weight. With razorpay=50, payu=30, cashfree=20 and payu
    circuit-open, razorpay gets 50/70 = 71.4% and cashfree 20/70 = 28.6%.

    The router holds no state of its own besides the random source, which can
    be injected to make selections deterministic.
    """

    def __init__(
        self,
        gateways: Iterable[GatewayDescriptor],
        health: HealthTracker,
        rng: Optional[RandomSource] = None,
    ):
        self._gateways = list(gateways)
        self._health = health
        self._rng = rng if rng is not None else random.Random()

    @property
    def gateways(self) -> list[GatewayDescriptor]:
        return list(self._gateways)

    def select(self) -> GatewaySelection:
        healthy_names = set(self._health.healthy_set())
        healthy = [g for g in self._gateways if g.name in healthy_names]
        excluded = [g.name for g in self._gateways if g.name not in healthy_names]

        # Zero-weight gateways own no share of [0, W) and can never be picked.
        candidates = [g for g in healthy if g.weight > 0]
        if not candidates:
            logger.error("No healthy gateways available for routing (excluded: %s)", excluded)
            raise NoHealthyGateway(excluded)

        total_weight = sum(g.weight for g in candidates)
        r = self._rng.uniform(0, total_weight)

        selected = candidates[-1]
        cumulative = 0.0
        for gateway in candidates:
            cumulative += gateway.weight
            if cumulative >= r:
                selected = gateway
                break

        probability = selected.weight / total_weight * 100
        reason = f"Selected {selected.name} via weighted routing ({probability:.1f}% effective probability)"
        if excluded:
            reason += f". Excluded unhealthy gateways: {', '.join(excluded)}"

        logger.info(
            "Gateway %s selected (effective probability %.1f%%, healthy: %s)",
            selected.name,
            probability,
            ", ".join(g.name for g in healthy),
        )
        return GatewaySelection(gateway=selected.name, reason=reason)

    def is_valid_name(self, name: str) -> bool:
        return any(g.name == name for g in self._gateways)

    def record_outcome(self, gateway: str, success: bool):
        self._health.record(gateway, success)
