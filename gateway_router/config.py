from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway_router.models import GatewayDescriptor

DEFAULT_GATEWAYS = [
    GatewayDescriptor(name="razorpay", weight=50, enabled=True),
    GatewayDescriptor(name="payu", weight=30, enabled=True),
    GatewayDescriptor(name="cashfree", weight=20, enabled=True),
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GATEWAY_ROUTER_")

    health_window_minutes: float = Field(default=15, gt=0)
    cooldown_minutes: float = Field(default=30, gt=0)
    success_rate_threshold: float = Field(default=0.90, ge=0, le=1)
    min_sample_size: int = Field(default=5, ge=1)
    default_currency: str = "INR"
    log_level: str = "INFO"
    simulated_success_rate: float = Field(default=0.95, ge=0, le=1)

    # Set as JSON, e.g. GATEWAY_ROUTER_GATEWAYS='[{"name": "payu", "weight": 100}]'
    gateways: list[GatewayDescriptor] = Field(default_factory=lambda: list(DEFAULT_GATEWAYS))

    @field_validator("gateways")
    @classmethod
    def gateway_names_unique(cls, value: list[GatewayDescriptor]) -> list[GatewayDescriptor]:
        names = [g.name for g in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate gateway names: {', '.join(duplicates)}")
        return value


settings = Settings()
