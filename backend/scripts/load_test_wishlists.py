import argparse
import asyncio
import random
import string
import time

import httpx

SORTS = ("priority-desc", "price-asc", "name-asc", "date-desc", None)


def _rand_email() -> str:
    return "loadtest_" + "".join(random.choice(string.ascii_lowercase) for _ in range(8)) + "@example.com"


async def _account(client: httpx.AsyncClient, name: str) -> None:
    email = _rand_email()
    await client.post(
        "/auth/register",
        json={"email": email, "password": "Test1234!", "display_name": name},
    )
    await client.post("/auth/login", json={"email": email, "password": "Test1234!"})


async def run(base_url: str, items: int, requests: int, concurrency: int) -> None:
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as owner, httpx.AsyncClient(
        base_url=base_url, timeout=30.0
    ) as guest:
        await _account(owner, "Load Owner")
        await _account(guest, "Load Guest")
        wl = await owner.post("/wishlists", json={"title": "Load Test", "visibility": "public"})
        slug = wl.json()["slug"]

        item_ids: list[int] = []
        for i in range(items):
            res = await owner.post(
                f"/wishlists/{slug}/items",
                json={"title": f"Item {i}", "price": round(random.uniform(5, 200), 2), "priority": "medium"},
            )
            item_ids.append(res.json()["id"])

        # a few claims so guests see mixed statuses
        for item_id in item_ids[: max(1, items // 10)]:
            await guest.post(f"/items/{item_id}/claim")

        latencies: list[float] = []

        async def hit() -> None:
            params = {"status": random.choice(("all", "available", "reserved"))}
            sort = random.choice(SORTS)
            if sort:
                params["sort"] = sort
            start = time.perf_counter()
            res = await guest.get(f"/wishlists/{slug}", params=params)
            latencies.append((time.perf_counter() - start) * 1000.0)
            if res.status_code != 200:
                raise RuntimeError(f"status {res.status_code}")

        pending = requests
        while pending > 0:
            batch = min(concurrency, pending)
            await asyncio.gather(*[hit() for _ in range(batch)])
            pending -= batch

        lat_sorted = sorted(latencies)
        p50 = lat_sorted[len(lat_sorted) // 2]
        p95 = lat_sorted[int(len(lat_sorted) * 0.95) - 1]
        print(f"requests={requests} concurrency={concurrency} items={items} p50_ms={p50:.2f} p95_ms={p95:.2f}")
        metrics = (await owner.get("/metrics")).json()
        print("detail", metrics["wishlists"]["wishlist_detail"])
        print("cache", metrics["cache"])


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--items", type=int, default=80)
    parser.add_argument("--requests", type=int, default=50)
    parser.add_argument("--concurrency", type=int, default=10)
    args = parser.parse_args()
    asyncio.run(run(args.base_url, args.items, args.requests, args.concurrency))


if __name__ == "__main__":
    main()
