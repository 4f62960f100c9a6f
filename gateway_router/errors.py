from typing import Optional, Sequence


class GatewayRouterError(Exception):
    """Base class for the error kinds surfaced by the routing core."""


class NoHealthyGateway(GatewayRouterError):
    """Raised when every configured gateway is disabled or circuit-open."""

    def __init__(self, excluded: Sequence[str] = ()):
        self.excluded = list(excluded)
        message = "No healthy payment gateways available"
        if self.excluded:
            message += f" (excluded: {', '.join(self.excluded)})"
        super().__init__(message)


class DuplicatePendingOrder(GatewayRouterError):
    def __init__(self, order_id: str, transaction_id: str):
        self.order_id = order_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction already initiated for order {order_id}. Use callback to update status."
        )


class TransactionNotFound(GatewayRouterError):
    def __init__(self, order_id: Optional[str] = None, transaction_id: Optional[str] = None):
        self.order_id = order_id
        self.transaction_id = transaction_id
        if order_id is not None:
            message = f"Transaction not found for order {order_id}"
        else:
            message = f"Transaction {transaction_id} not found"
        super().__init__(message)


class GatewayMismatch(GatewayRouterError):
    """Raised when a callback names a gateway other than the one assigned."""

    def __init__(self, order_id: str, expected: str, received: str):
        self.order_id = order_id
        self.expected = expected
        self.received = received
        super().__init__(f"Gateway mismatch. Expected: {expected}, Received: {received}")


class AlreadyProcessed(GatewayRouterError):
    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Transaction already processed with status: {status}")
