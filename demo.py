"""
Interactive failover demo for the Payment Gateway Router.

Walks through normal weighted routing, a gateway outage that trips the
circuit breaker, and manual recovery, pausing between phases so the traffic
split can be compared.

Usage:
    1. Start the server with simulated gateways that never decline on their own:
         GATEWAY_ROUTER_SIMULATED_SUCCESS_RATE=1.0 python3 -m uvicorn gateway_router.main:app --reload
    2. Run this script:   python3 demo.py
"""

import sys

import httpx

BASE = "http://localhost:8000"
CARD = {"type": "card", "card_number": "4111111111111111", "expiry": "12/27", "cvv": "123"}

# ── Helpers ──────────────────────────────────────────────────────────

def wait(prompt: str = "Press Enter to continue..."):
    print(f"\n  \033[90m{prompt}\033[0m", end="")
    input()

def section(title: str):
    width = 62
    print(f"\n\033[1m{'━' * width}\033[0m")
    print(f"\033[1m  {title}\033[0m")
    print(f"\033[1m{'━' * width}\033[0m")

def step(msg: str):
    print(f"\n  \033[96m▸\033[0m {msg}")

def run_transactions(client: httpx.Client, prefix: str, count: int) -> dict[str, dict]:
    """Initiate and settle transactions one-by-one, tallying outcomes per gateway."""
    stats: dict[str, dict] = {}
    for i in range(count):
        order_id = f"{prefix}-{i:04d}"
        resp = client.post(
            f"{BASE}/transactions/initiate",
            json={"order_id": order_id, "amount": round(499 + i * 10.5, 2), "payment_instrument": CARD},
        )
        if resp.status_code == 503:
            stats.setdefault("(none)", {"success": 0, "failure": 0})["failure"] += 1
            continue
        gateway = resp.json()["data"]["gateway"]
        settled = client.post(f"{BASE}/simulate/settle/{order_id}").json()["data"]

        entry = stats.setdefault(gateway, {"success": 0, "failure": 0})
        entry[settled["status"]] += 1

        done = i + 1
        bar_len = 30
        filled = int(bar_len * done / count)
        bar = "█" * filled + "░" * (bar_len - filled)
        print(f"\r  Sending: {bar} {done}/{count}", end="", flush=True)

    print()
    return stats


def print_traffic_table(stats: dict[str, dict]):
    total = sum(s["success"] + s["failure"] for s in stats.values())
    if total == 0:
        return

    print()
    print(f"  {'Gateway':<12s} {'Txns':>5s} {'Share':>7s} {'Success':>8s} {'Failure':>8s}")
    print(f"  {'─' * 12} {'─' * 5} {'─' * 7} {'─' * 8} {'─' * 8}")
    for name in sorted(stats):
        s = stats[name]
        count = s["success"] + s["failure"]
        print(f"  {name:<12s} {count:>5d} {count / total * 100:>6.1f}% {s['success']:>8d} {s['failure']:>8d}")


def print_health(client: httpx.Client):
    data = client.get(f"{BASE}/gateways").json()

    print("\n  \033[1mGateway Health\033[0m\n")
    for g in data["gateways"]:
        health = g["health"]
        if health["is_healthy"]:
            icon, label = "\033[92m●\033[0m", "\033[92mrouting\033[0m"
        else:
            icon, label = "\033[91m●\033[0m", f"\033[91mdisabled until {health['disabled_until']}\033[0m"
        print(
            f"  {icon} {g['name']:<10s} weight={g['weight']:<5g} "
            f"rate={health['success_rate'] * 100:5.1f}%  "
            f"requests={health['total_requests']:<4d} {label}"
        )


# ── Main demo ────────────────────────────────────────────────────────

def main():
    client = httpx.Client(timeout=10)

    try:
        client.get(f"{BASE}/health")
    except httpx.ConnectError:
        print("\n  \033[91mError: Cannot connect to the server at http://localhost:8000\033[0m")
        print("  Start it first with:  python3 -m uvicorn gateway_router.main:app --reload\n")
        sys.exit(1)

    section("PAYMENT GATEWAY ROUTER — LIVE DEMO")
    client.post(f"{BASE}/simulate/reset")
    step("State reset — all gateways healthy, no history.")

    wait("Press Enter to start Phase 1 (normal operation)...")
    section("PHASE 1 — Weighted Routing")
    step("Sending 100 transactions. Expect roughly 50/30/20 across razorpay, payu, cashfree.")
    print_traffic_table(run_transactions(client, "P1", 100))
    print_health(client)

    wait("Press Enter to trigger an outage on razorpay...")
    section("PHASE 2 — Gateway Outage")
    resp = client.post(f"{BASE}/simulate/outage/razorpay")
    step(resp.json()["message"])
    step("Expect: razorpay trips the breaker once 5+ requests fall below 90% success,")
    step("after which the rest of its traffic moves to payu and cashfree, roughly 60/40.")
    step("Below a 100% simulated success rate, a single early decline can trip payu or")
    step("cashfree too, and requests then fail with 503 and show up as (none).")
    print_traffic_table(run_transactions(client, "P2", 100))
    print_health(client)

    wait("Press Enter to recover razorpay...")
    section("PHASE 3 — Recovery")
    client.post(f"{BASE}/simulate/recover/razorpay")
    client.post(f"{BASE}/gateways/razorpay/enable")
    step("razorpay recovered and manually re-enabled (otherwise it waits out the cooldown).")
    print_traffic_table(run_transactions(client, "P3", 100))
    print_health(client)

    section("DEMO COMPLETE")
    summary = client.get(f"{BASE}/transactions/stats/summary").json()["data"]
    print(f"\n  Total: {summary['total']}  success={summary['success']}  failure={summary['failure']}\n")

    client.close()


if __name__ == "__main__":
    main()
