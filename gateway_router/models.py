from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class CallbackStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class PaymentInstrumentType(str, Enum):
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    WALLET = "wallet"


class GatewayDescriptor(BaseModel):
    """Static configuration for one payment gateway.

    ``weight`` is the relative share of traffic among healthy gateways and
    ``enabled`` is an administrative kill switch that is independent of
    health tracking.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    weight: float = Field(..., ge=0)
    enabled: bool = True


class GatewaySelection(BaseModel):
    gateway: str
    reason: str


class GatewayHealth(BaseModel):
    name: str
    is_healthy: bool
    success_rate: float
    total_requests: int
    success_count: int
    failure_count: int
    disabled_until: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None


# --- Payment instruments ---


class PaymentInstrument(BaseModel):
    """Payment instrument as supplied by the client, before sanitization."""

    type: PaymentInstrumentType
    card_number: Optional[str] = Field(
        default=None,
        pattern=r"^[0-9]{13,19}$",
        description="Card number (13-19 digits). Stored masked to the last 4 digits.",
    )
    expiry: Optional[str] = Field(default=None, pattern=r"^(0[1-9]|1[0-2])/[0-9]{2}$")
    cvv: Optional[str] = Field(
        default=None,
        pattern=r"^[0-9]{3,4}$",
        description="Never stored and never returned.",
    )
    upi_id: Optional[str] = Field(default=None, pattern=r"^[\w.-]+@\w+$")
    bank_code: Optional[str] = Field(default=None, max_length=20)
    wallet_provider: Optional[str] = Field(default=None, max_length=50)


class MaskedPaymentInstrument(BaseModel):
    """Sanitized instrument kept on a transaction. Has no CVV field at all."""

    model_config = ConfigDict(extra="ignore")

    type: PaymentInstrumentType
    card_number: Optional[str] = None
    expiry: Optional[str] = None
    upi_id: Optional[str] = None
    bank_code: Optional[str] = None
    wallet_provider: Optional[str] = None


# --- Transactions ---


class Transaction(BaseModel):
    id: str
    order_id: str
    amount: float
    currency: str
    status: TransactionStatus = TransactionStatus.PENDING
    gateway: str
    gateway_selection_reason: str
    payment_instrument: MaskedPaymentInstrument
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class GatewayBreakdown(BaseModel):
    total: int = 0
    success: int = 0
    failure: int = 0


class TransactionStats(BaseModel):
    total: int
    pending: int
    success: int
    failure: int
    by_gateway: dict[str, GatewayBreakdown] = Field(default_factory=dict)


# --- HTTP request bodies ---


class InitiateTransactionRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0, description="Transaction amount")
    currency: Optional[str] = Field(
        default=None,
        pattern=r"^[A-Z]{3}$",
        description="ISO 4217 code. Falls back to the configured default currency.",
    )
    payment_instrument: PaymentInstrument


class CallbackRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)
    status: CallbackStatus
    gateway: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class DisableGatewayRequest(BaseModel):
    minutes: Optional[float] = Field(default=None, gt=0)
