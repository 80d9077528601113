"""
Service Flow Simulation Script

Drives a full dinner service through OrderingEngine: guests fill carts,
verify by OTP (placing their pending order), the chef works the queue and
the admin bills every customer.

Uses the in-process mock kitchen by default. With --http the engine talks to
API_BASE_URL instead (start it with: python -m tableside.devserver); OTPs are
then read from the server log and must be typed in.

Run from project root: python scripts/simulate.py --guests 5

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import tempfile
import time
from pathlib import Path

from tableside.core.config import get_settings, setup_logging
from tableside.engine import OrderingEngine
from tableside.schemas import Role
from tableside.services.backend import HttpOrderBackend, Kitchen, MockOrderBackend
from tableside.store import PersistenceLayer

PHONE_PREFIX = "98765"


def make_engine(backend, workdir: Path, name: str) -> OrderingEngine:
    """One engine per actor, each with its own state file. The backend is shared."""
    persistence = PersistenceLayer(workdir / f"{name}.json")
    return OrderingEngine(backend=backend, persistence=persistence)


async def read_otp(kitchen, email: str) -> str:
    if kitchen is not None:
        return kitchen.pending_otp(email)
    return await asyncio.to_thread(input, f"   OTP for {email}: ")


# =============================================================================
# ACTORS
# =============================================================================

async def run_guest(backend, kitchen, workdir: Path, n: int, tables: list[str]) -> dict:
    """A guest scans a table, fills a cart and verifies to place the order."""
    engine = make_engine(backend, workdir, f"guest{n}")
    await engine.start()

    table = random.choice(tables)
    if kitchen is not None:
        await engine.scan_table(table, kitchen.qr_hash(table))
    else:
        engine.select_table(table)

    for item in random.sample(engine.menu.items, k=min(3, len(engine.menu.items))):
        engine.cart.add_to_cart(item.id)
        engine.cart.update_qty(item.id, random.randint(1, 3))
    expected = engine.cart.total

    checkout = await engine.checkout()
    phone = f"{PHONE_PREFIX}{n:05d}"
    email = f"guest{n}@example.com"
    if checkout.auth_required and await engine.request_otp(phone, email):
        result = await engine.verify_otp(phone, email, await read_otp(kitchen, email))
    else:
        result = None

    return {
        "guest": n,
        "phone": phone,
        "table": engine.session.current_table or table,
        "success": bool(result and result.replayed),
        "total": expected,
        "notices": list(engine.notices),
    }


async def run_chef(backend, workdir: Path, password: str) -> int:
    engine = make_engine(backend, workdir, "chef")
    if not await engine.staff_login(Role.CHEF, password):
        print(f"   ❌ Chef login failed: {list(engine.notices)}")
        return 0

    done = 0
    for order in list(engine.orders.kitchen_queue):
        if (await engine.gateway.mark_preparing(order.id)) and (
            await engine.gateway.mark_prepared(order.id)
        ):
            done += 1
    return done


async def run_admin(backend, workdir: Path, password: str, phones: list[str]) -> float:
    engine = make_engine(backend, workdir, "admin")
    if not await engine.staff_login(Role.ADMIN, password):
        print(f"   ❌ Admin login failed: {list(engine.notices)}")
        return 0.0

    billed = 0.0
    for phone in phones:
        bill = await engine.gateway.bill_customer(phone)
        if bill:
            billed += bill.total_bill
            print(f"   💳 {phone}: {bill.total_bill:.2f} ({len(bill.order_ids)} orders)")
    print(f"   📈 Revenue today: {engine.orders.today_revenue:.2f}")
    return billed


# =============================================================================
# SIMULATION
# =============================================================================

async def run_simulation(guests: int, use_http: bool) -> bool:
    settings = get_settings()
    if use_http:
        backend, kitchen = HttpOrderBackend(), None
    else:
        kitchen = Kitchen(staff_password=settings.mock_staff_password)
        backend = MockOrderBackend(
            kitchen=kitchen,
            failure_rate=settings.mock_failure_rate,
            min_latency=settings.mock_min_latency,
            max_latency=settings.mock_max_latency,
        )
    tables = sorted(kitchen.tables) if kitchen is not None else [str(n) for n in range(1, 11)]

    print("=" * 70)
    print("🍽️  SERVICE SIMULATION")
    print("=" * 70)
    print(f"📋 Guests: {guests}")
    print(f"🎯 Backend: {backend.provider_name}")
    print("=" * 70)

    start_time = time.time()
    with tempfile.TemporaryDirectory() as tmp:
        workdir = Path(tmp)

        print("\n1️⃣ Guests ordering...")
        results = await asyncio.gather(
            *(run_guest(backend, kitchen, workdir, n, tables) for n in range(1, guests + 1))
        )
        placed = [r for r in results if r["success"]]
        for r in results:
            mark = "✅" if r["success"] else "❌"
            print(f"   {mark} Guest {r['guest']} (table {r['table']}): {r['total']:.2f}")
            for notice in r["notices"]:
                print(f"      ⚠️ {notice}")

        print("\n2️⃣ Chef working the queue...")
        cooked = await run_chef(backend, workdir, settings.mock_staff_password)
        print(f"   👨‍🍳 {cooked} orders prepared")

        print("\n3️⃣ Admin billing...")
        billed = await run_admin(
            backend, workdir, settings.mock_staff_password, [r["phone"] for r in placed]
        )

    expected = sum(r["total"] for r in placed)
    total_time = round(time.time() - start_time, 2)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Orders placed: {len(placed)}/{guests}")
    print(f"🍳 Orders prepared: {cooked}")
    print(f"💰 Billed: {billed:.2f} (expected {expected:.2f})")
    print(f"⏱️  Total Time: {total_time}s")
    print("=" * 70)

    await backend.aclose()
    return abs(billed - expected) < 0.01


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Service Flow Simulation Script")
    parser.add_argument("--guests", type=int, default=5, help="Number of guests")
    parser.add_argument("--http", action="store_true", help="Use the HTTP backend at API_BASE_URL")
    args = parser.parse_args()

    setup_logging()
    ok = asyncio.run(run_simulation(guests=args.guests, use_http=args.http))
    sys.exit(0 if ok else 1)
