"""
Rush Hour Simulation Script

Fires concurrent gate-delivery orders at a running API, then drives every
order through the fulfillment pipeline the way staff would, and checks the
final state against the Order Store.

Run from project root: python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

FIRST_NAMES = ["Ana", "Bruno", "Carla", "Diego", "Elisa", "Felipe", "Gabi", "Hugo", "Iris", "João"]
LAST_NAMES = ["Souza", "Lima", "Costa", "Pereira", "Almeida", "Rocha", "Barros", "Ramos"]
GATES = ["A1", "A4", "B7", "B12", "C3", "C9", "D2", "E15"]
MENU = [
    {"name": "Pão de Queijo", "price": 5.00, "description": "Cheese bread, 6 pieces"},
    {"name": "Coxinha", "price": 6.50, "description": "Chicken croquette"},
    {"name": "Açaí Bowl", "price": 12.90, "description": "Açaí with granola and banana"},
    {"name": "Espresso", "price": 3.00, "description": "Single shot"},
    {"name": "Cappuccino", "price": 4.50, "description": "With cinnamon"},
    {"name": "Water", "price": 2.50, "description": "500ml still"},
]
PIPELINE = ["preparing", "ready", "delivered"]


async def seed_catalog(client: httpx.AsyncClient) -> list[dict[str, Any]]:
    """Make sure the menu exists; returns the catalog."""
    response = await client.get(f"{API_BASE_URL}/api/products")
    response.raise_for_status()
    products = response.json()
    existing = {p["name"] for p in products}

    for item in MENU:
        if item["name"] not in existing:
            created = await client.post(f"{API_BASE_URL}/api/products", json=item)
            created.raise_for_status()
            products.append(created.json())
    return products


def generate_order_payload(products: list[dict[str, Any]]) -> dict[str, Any]:
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    picks = random.sample(products, k=random.randint(1, min(3, len(products))))
    return {
        "customerId": f"{first.lower()}.{last.lower()}{random.randint(1, 99)}@example.com",
        "customerName": f"{first} {last}",
        "items": [
            {"productId": p["id"], "quantity": random.randint(1, 3)} for p in picks
        ],
        "gate": random.choice(GATES),
        # Deliberately wrong; the API must ignore it
        "total": 0.01,
    }


async def place_order(
    client: httpx.AsyncClient,
    products: list[dict[str, Any]],
    order_num: int,
) -> dict[str, Any]:
    payload = generate_order_payload(products)
    prices = {p["id"]: p["price"] for p in products}
    expected_total = round(sum(i["quantity"] * prices[i["productId"]] for i in payload["items"]), 2)
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data["id"],
                "total": data["total"],
                "total_ok": data["total"] == expected_total,
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def fulfil_order(client: httpx.AsyncClient, order_id: str) -> dict[str, Any]:
    """Advance one order to delivered, then poke an illegal transition."""
    for expected in PIPELINE:
        response = await client.post(f"{API_BASE_URL}/api/orders/{order_id}/advance")
        if response.status_code != 200 or response.json()["status"] != expected:
            return {"order_id": order_id, "success": False, "error": response.text[:100]}
        await asyncio.sleep(random.uniform(0.0, 0.05))

    illegal = await client.put(
        f"{API_BASE_URL}/api/orders/{order_id}/status",
        json={"status": "pending"},
    )
    final = await client.get(f"{API_BASE_URL}/api/orders/{order_id}")
    return {
        "order_id": order_id,
        "success": illegal.status_code == 409 and final.json()["status"] == "delivered",
    }


async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    print("=" * 70)
    print("✈️  RUSH HOUR SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        products = await seed_catalog(client)
        print(f"\n🍽️  Catalog ready ({len(products)} products)")

        print("\n🚀 Placing orders...\n")
        results = await asyncio.gather(
            *[place_order(client, products, i + 1) for i in range(num_orders)]
        )
        placed = [r for r in results if r["success"]]

        print("👩‍🍳 Fulfilling orders...\n")
        fulfilment = await asyncio.gather(
            *[fulfil_order(client, r["order_id"]) for r in placed]
        )

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    wrong_totals = [r for r in placed if not r["total_ok"]]
    unfulfilled = [f for f in fulfilment if not f["success"]]

    print("=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Orders placed: {len(placed)}/{num_orders}")
    print(f"❌ Orders failed: {len(failed)}/{num_orders}")
    print(f"🧮 Totals matching catalog: {len(placed) - len(wrong_totals)}/{len(placed)}")
    print(f"📦 Delivered with state machine intact: {len(fulfilment) - len(unfulfilled)}/{len(fulfilment)}")
    print(f"⏱️  Total Time: {total_time}s")

    if placed:
        avg_time = round(sum(r["time"] for r in placed) / len(placed), 3)
        print(f"\n📈 Average create latency: {avg_time}s")
        print(f"💰 Total Revenue: ${sum(r['total'] for r in placed):.2f}")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(placed),
        "failed": len(failed),
        "wrong_totals": len(wrong_totals),
        "unfulfilled": len(unfulfilled),
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.orders))
    if summary["failed"] or summary["wrong_totals"] or summary["unfulfilled"]:
        sys.exit(1)
