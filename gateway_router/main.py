import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from gateway_router.config import Settings, settings as default_settings
from gateway_router.errors import (
    AlreadyProcessed,
    DuplicatePendingOrder,
    GatewayMismatch,
    GatewayRouterError,
    NoHealthyGateway,
    TransactionNotFound,
)
from gateway_router.health import HealthTracker
from gateway_router.ledger import TransactionLedger
from gateway_router.models import (
    CallbackRequest,
    CallbackStatus,
    DisableGatewayRequest,
    InitiateTransactionRequest,
)
from gateway_router.router import GatewayRouter
from gateway_router.simulator import GatewaySimulator

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    NoHealthyGateway: status.HTTP_503_SERVICE_UNAVAILABLE,
    DuplicatePendingOrder: status.HTTP_409_CONFLICT,
    TransactionNotFound: status.HTTP_404_NOT_FOUND,
    GatewayMismatch: status.HTTP_400_BAD_REQUEST,
    AlreadyProcessed: status.HTTP_409_CONFLICT,
}


def get_health(request: Request) -> HealthTracker:
    return request.app.state.health


def get_router(request: Request) -> GatewayRouter:
    return request.app.state.router


def get_ledger(request: Request) -> TransactionLedger:
    return request.app.state.ledger


def get_simulator(request: Request) -> GatewaySimulator:
    return request.app.state.simulator


def require_gateway(name: str, router: GatewayRouter = Depends(get_router)) -> str:
    if not router.is_valid_name(name):
        raise HTTPException(status_code=404, detail=f"Gateway '{name}' not found")
    return name


api = APIRouter()


@api.get("/")
def root():
    return {
        "name": "Payment Gateway Router",
        "version": "1.0.0",
        "description": "Weighted payment gateway routing with health-based circuit breaking",
        "endpoints": {
            "initiate": "POST /transactions/initiate",
            "callback": "POST /transactions/callback",
            "gateways": "GET /gateways",
            "health": "GET /health",
        },
    }


@api.get("/health")
def service_health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
    }


# --- Gateways ---


@api.get("/gateways")
def list_gateways(
    router: GatewayRouter = Depends(get_router),
    health: HealthTracker = Depends(get_health),
):
    stats = {h.name: h for h in health.all_stats()}
    return {
        "gateways": [
            {**g.model_dump(), "health": stats[g.name]} for g in router.gateways
        ]
    }


@api.get("/gateways/{name}/health")
def gateway_health(name: str = Depends(require_gateway), health: HealthTracker = Depends(get_health)):
    return health.stats(name)


@api.post("/gateways/{name}/disable")
def disable_gateway(
    body: Optional[DisableGatewayRequest] = None,
    name: str = Depends(require_gateway),
    health: HealthTracker = Depends(get_health),
):
    health.disable(name, body.minutes if body else None)
    return {
        "success": True,
        "message": f"Gateway {name} has been disabled",
        "health": health.stats(name),
    }


@api.post("/gateways/{name}/enable")
def enable_gateway(name: str = Depends(require_gateway), health: HealthTracker = Depends(get_health)):
    health.enable(name)
    return {
        "success": True,
        "message": f"Gateway {name} has been enabled",
        "health": health.stats(name),
    }


@api.post("/gateways/reset")
def reset_gateways(health: HealthTracker = Depends(get_health)):
    health.reset_all()
    return {"success": True, "message": "All gateway stats have been reset"}


@api.post("/gateways/prune")
def prune_gateway_history(health: HealthTracker = Depends(get_health)):
    removed = health.prune()
    return {"success": True, "removed": removed}


# --- Transactions ---


@api.post("/transactions/initiate", status_code=status.HTTP_201_CREATED)
def initiate_transaction(
    body: InitiateTransactionRequest,
    ledger: TransactionLedger = Depends(get_ledger),
):
    transaction = ledger.create(
        body.order_id,
        body.amount,
        body.payment_instrument,
        currency=body.currency,
    )
    return {
        "success": True,
        "message": "Transaction initiated successfully",
        "data": {
            "transaction_id": transaction.id,
            "order_id": transaction.order_id,
            "amount": transaction.amount,
            "currency": transaction.currency,
            "status": transaction.status,
            "gateway": transaction.gateway,
            "gateway_selection_reason": transaction.gateway_selection_reason,
            "created_at": transaction.created_at,
        },
    }


@api.post("/transactions/callback")
def transaction_callback(
    body: CallbackRequest,
    router: GatewayRouter = Depends(get_router),
    ledger: TransactionLedger = Depends(get_ledger),
):
    if not router.is_valid_name(body.gateway):
        raise HTTPException(status_code=400, detail=f"Unknown gateway '{body.gateway}'")

    success = body.status == CallbackStatus.SUCCESS
    transaction = ledger.complete(body.order_id, body.gateway, success, body.reason)
    return {
        "success": True,
        "message": f"Transaction {'completed' if success else 'failed'}",
        "data": {
            "transaction_id": transaction.id,
            "order_id": transaction.order_id,
            "status": transaction.status,
            "gateway": transaction.gateway,
            "failure_reason": transaction.failure_reason,
            "updated_at": transaction.updated_at,
        },
    }


@api.get("/transactions")
def list_transactions(ledger: TransactionLedger = Depends(get_ledger)):
    transactions = ledger.list()
    return {"success": True, "count": len(transactions), "data": transactions}


@api.get("/transactions/stats/summary")
def transaction_stats(ledger: TransactionLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.stats()}


@api.get("/transactions/order/{order_id}")
def transaction_by_order(order_id: str, ledger: TransactionLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.get_by_order(order_id)}


@api.get("/transactions/{transaction_id}")
def transaction_by_id(transaction_id: str, ledger: TransactionLedger = Depends(get_ledger)):
    return {"success": True, "data": ledger.get(transaction_id)}


@api.post("/transactions/reset")
def reset_transactions(ledger: TransactionLedger = Depends(get_ledger)):
    ledger.reset_all()
    return {"success": True, "message": "All transactions have been cleared"}


# --- Simulation endpoints ---


@api.post("/simulate/outage/{name}")
def simulate_outage(name: str = Depends(require_gateway), simulator: GatewaySimulator = Depends(get_simulator)):
    gateway = simulator.outage(name)
    return {
        "message": f"Outage simulated for {name}",
        "gateway": name,
        "success_rate": gateway.success_rate,
    }


@api.post("/simulate/recover/{name}")
def simulate_recover(name: str = Depends(require_gateway), simulator: GatewaySimulator = Depends(get_simulator)):
    gateway = simulator.recover(name)
    return {
        "message": f"Gateway {name} recovered",
        "gateway": name,
        "success_rate": gateway.success_rate,
    }


@api.post("/simulate/settle/{order_id}")
def simulate_settle(order_id: str, simulator: GatewaySimulator = Depends(get_simulator)):
    transaction = simulator.settle(order_id)
    return {"success": True, "data": transaction}


@api.post("/simulate/reset")
def simulate_reset(
    health: HealthTracker = Depends(get_health),
    ledger: TransactionLedger = Depends(get_ledger),
    simulator: GatewaySimulator = Depends(get_simulator),
):
    simulator.reset()
    health.reset_all()
    ledger.reset_all()
    return {"message": "All gateways, health data and transactions reset"}


async def handle_router_error(request: Request, exc: GatewayRouterError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": type(exc).__name__, "message": str(exc)},
    )


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Build the app with its own health tracker, router, ledger and simulator."""
    config = config or default_settings
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    health = HealthTracker(
        config.gateways,
        window_minutes=config.health_window_minutes,
        cooldown_minutes=config.cooldown_minutes,
        success_rate_threshold=config.success_rate_threshold,
        min_sample_size=config.min_sample_size,
    )
    router = GatewayRouter(config.gateways, health)
    ledger = TransactionLedger(router, default_currency=config.default_currency)

    app = FastAPI(
        title="Payment Gateway Router",
        description="Weighted payment gateway routing with health-based circuit breaking",
        version="1.0.0",
    )
    app.state.health = health
    app.state.router = router
    app.state.ledger = ledger
    app.state.simulator = GatewaySimulator(
        config.gateways, ledger, base_success_rate=config.simulated_success_rate
    )
    app.state.started_at = time.monotonic()
    app.include_router(api)
    app.add_exception_handler(GatewayRouterError, handle_router_error)

    logger.info(
        "Routing across %s", ", ".join(f"{g.name}={g.weight:g}" for g in config.gateways)
    )
    return app


app = create_app()
