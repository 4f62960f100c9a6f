import logging
import threading
import uuid
from typing import Any, Callable, Mapping, Optional, Union

from gateway_router.config import settings
from gateway_router.errors import (
    AlreadyProcessed,
    DuplicatePendingOrder,
    GatewayMismatch,
    TransactionNotFound,
)
from gateway_router.health import Clock, utcnow
from gateway_router.models import (
    GatewayBreakdown,
    MaskedPaymentInstrument,
    PaymentInstrument,
    Transaction,
    TransactionStats,
    TransactionStatus,
)
from gateway_router.router import GatewayRouter

logger = logging.getLogger(__name__)

CARD_MASK = "****"


def sanitize_payment_instrument(
    instrument: Union[PaymentInstrument, Mapping[str, Any]],
) -> MaskedPaymentInstrument:
    """Mask the card number down to its last 4 digits and drop the CVV.

    Raw mappings are validated as a PaymentInstrument first, so malformed card
    data raises pydantic.ValidationError instead of being stored.
    """
    if not isinstance(instrument, PaymentInstrument):
        instrument = PaymentInstrument.model_validate(instrument)
    data = instrument.model_dump(exclude_none=True)
    data.pop("cvv", None)
    card_number = data.get("card_number")
    if card_number:
        data["card_number"] = CARD_MASK + card_number[-4:]
    return MaskedPaymentInstrument(**data)


class TransactionLedger:
    """Owns transaction records and drives them through
    PENDING -> SUCCESS | FAILURE.

    Records are indexed by transaction id and by order id. Only one PENDING
    transaction may exist per order id; once it reaches a terminal state a new
    attempt for the same order replaces it in the order index.

    Completing a transaction reports the outcome back to the router, which is
    what lets callback results steer future gateway selection.

    All reads and writes happen under a single lock. Returned transactions are
    copies, so callers cannot change a stored record behind the ledger's back.
    """

    def __init__(
        self,
        router: GatewayRouter,
        default_currency: str = settings.default_currency,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._router = router
        self.default_currency = default_currency
        self._clock = clock
        self._id_factory = id_factory
        self._transactions: dict[str, Transaction] = {}
        self._order_index: dict[str, str] = {}
        self._lock = threading.Lock()

    def create(
        self,
        order_id: str,
        amount: float,
        payment_instrument: Union[PaymentInstrument, Mapping[str, Any]],
        currency: Optional[str] = None,
    ) -> Transaction:
        instrument = sanitize_payment_instrument(payment_instrument)
        with self._lock:
            existing_id = self._order_index.get(order_id)
            if existing_id is not None:
                existing = self._transactions[existing_id]
                if existing.status == TransactionStatus.PENDING:
                    logger.warning(
                        "Transaction %s already pending for order %s", existing_id, order_id
                    )
                    raise DuplicatePendingOrder(order_id, existing_id)

            selection = self._router.select()
            now = self._clock()
            transaction = Transaction(
                id=self._id_factory(),
                order_id=order_id,
                amount=amount,
                currency=currency or self.default_currency,
                status=TransactionStatus.PENDING,
                gateway=selection.gateway,
                gateway_selection_reason=selection.reason,
                payment_instrument=instrument,
                created_at=now,
                updated_at=now,
            )
            self._transactions[transaction.id] = transaction
            self._order_index[order_id] = transaction.id

            logger.info(
                "Transaction %s initiated for order %s: %.2f %s via %s",
                transaction.id,
                order_id,
                amount,
                transaction.currency,
                transaction.gateway,
            )
            return transaction.model_copy(deep=True)

    def complete(
        self,
        order_id: str,
        gateway: str,
        success: bool,
        reason: Optional[str] = None,
    ) -> Transaction:
        with self._lock:
            transaction_id = self._order_index.get(order_id)
            if transaction_id is None:
                logger.error("Transaction not found for callback on order %s", order_id)
                raise TransactionNotFound(order_id=order_id)
            transaction = self._transactions[transaction_id]

            if transaction.gateway != gateway:
                logger.warning(
                    "Gateway mismatch in callback for order %s: expected %s, received %s",
                    order_id,
                    transaction.gateway,
                    gateway,
                )
                raise GatewayMismatch(order_id, transaction.gateway, gateway)

            if transaction.status != TransactionStatus.PENDING:
                logger.warning(
                    "Transaction for order %s already processed with status %s",
                    order_id,
                    transaction.status.value,
                )
                raise AlreadyProcessed(order_id, transaction.status.value)

            transaction.status = TransactionStatus.SUCCESS if success else TransactionStatus.FAILURE
            transaction.updated_at = self._clock()
            if not success and reason:
                transaction.failure_reason = reason

            self._router.record_outcome(gateway, success)

            logger.info(
                "Transaction %s for order %s completed with status %s via %s",
                transaction.id,
                order_id,
                transaction.status.value,
                gateway,
            )
            return transaction.model_copy(deep=True)

    def get(self, transaction_id: str) -> Transaction:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                raise TransactionNotFound(transaction_id=transaction_id)
            return transaction.model_copy(deep=True)

    def get_by_order(self, order_id: str) -> Transaction:
        with self._lock:
            transaction_id = self._order_index.get(order_id)
            if transaction_id is None:
                raise TransactionNotFound(order_id=order_id)
            return self._transactions[transaction_id].model_copy(deep=True)

    def list(self) -> list[Transaction]:
        """All transactions, most recently created first."""
        with self._lock:
            # Reverse insertion order first so that equal timestamps also list newest first.
            newest_first = reversed(list(self._transactions.values()))
            return [
                t.model_copy(deep=True)
                for t in sorted(newest_first, key=lambda t: t.created_at, reverse=True)
            ]

    def stats(self) -> TransactionStats:
        with self._lock:
            snapshot = [(t.gateway, t.status) for t in self._transactions.values()]

        counts = {status: 0 for status in TransactionStatus}
        by_gateway: dict[str, GatewayBreakdown] = {}
        for gateway, status in snapshot:
            counts[status] += 1
            breakdown = by_gateway.setdefault(gateway, GatewayBreakdown())
            breakdown.total += 1
            if status == TransactionStatus.SUCCESS:
                breakdown.success += 1
            elif status == TransactionStatus.FAILURE:
                breakdown.failure += 1

        return TransactionStats(
            total=len(snapshot),
            pending=counts[TransactionStatus.PENDING],
            success=counts[TransactionStatus.SUCCESS],
            failure=counts[TransactionStatus.FAILURE],
            by_gateway=by_gateway,
        )

    def reset_all(self):
        with self._lock:
            self._transactions.clear()
            self._order_index.clear()
        logger.info("All transactions cleared")
