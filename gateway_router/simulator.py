import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from gateway_router.ledger import TransactionLedger
from gateway_router.models import GatewayDescriptor, Transaction
from gateway_router.router import RandomSource

logger = logging.getLogger(__name__)

OUTAGE_SUCCESS_RATE = 0.10


@dataclass
class SimulatedGateway:
    name: str
    base_success_rate: float = 0.95
    _current_success_rate: float = field(init=False)

    def __post_init__(self):
        self._current_success_rate = self.base_success_rate

    @property
    def success_rate(self) -> float:
        return self._current_success_rate

    @success_rate.setter
    def success_rate(self, value: float):
        self._current_success_rate = max(0.0, min(1.0, value))


class GatewaySimulator:
    """Plays the part of the real gateways by settling pending transactions.

    Each gateway approves with its current simulated success rate. Settling goes
    through ``TransactionLedger.complete`` exactly like a real callback, so the
    outcome feeds health tracking.
    """

    def __init__(
        self,
        gateways: Iterable[GatewayDescriptor],
        ledger: TransactionLedger,
        base_success_rate: float = 0.95,
        rng: Optional[RandomSource] = None,
    ):
        self._gateways = {
            g.name: SimulatedGateway(name=g.name, base_success_rate=base_success_rate)
            for g in gateways
        }
        self._ledger = ledger
        self._rng = rng if rng is not None else random.Random()

    def get(self, name: str) -> SimulatedGateway:
        return self._gateways[name]

    def outage(self, name: str) -> SimulatedGateway:
        gateway = self._gateways[name]
        gateway.success_rate = OUTAGE_SUCCESS_RATE
        logger.info("Simulated outage on %s (success rate %.0f%%)", name, gateway.success_rate * 100)
        return gateway

    def recover(self, name: str) -> SimulatedGateway:
        gateway = self._gateways[name]
        gateway.success_rate = gateway.base_success_rate
        logger.info("Simulated recovery on %s", name)
        return gateway

    def reset(self):
        for gateway in self._gateways.values():
            gateway.success_rate = gateway.base_success_rate

    def settle(self, order_id: str) -> Transaction:
        transaction = self._ledger.get_by_order(order_id)
        gateway = self._gateways[transaction.gateway]
        success = self._rng.uniform(0, 1) < gateway.success_rate
        reason = None if success else f"Declined by {gateway.name} (simulated)"
        return self._ledger.complete(order_id, transaction.gateway, success, reason)
