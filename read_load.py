"""
read_load.py — async load script against the redirect server

Reads external ids (one per line, e.g. collected `surl-mgr add` output) and
fires GET requests without following redirects. A 302 counts as a hit, a 404
as a miss; anything else (5xx, timeouts) is a failure.

Usage:
  python read_load.py --base http://127.0.0.1:8080/ --in codes.txt --count 15000 --concurrency 200
"""
import argparse
import asyncio
import random
import time
from collections import Counter
from datetime import datetime, timezone

import httpx


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _load_codes(path):
    with open(path, "r", encoding="utf-8") as f:
        # tolerate full short URLs as well as bare ids
        return [line.strip().rsplit("/", 1)[-1] for line in f if line.strip()]


async def _hit_one(client: httpx.AsyncClient, base: str, code: str) -> str:
    try:
        r = await client.get(f"{base}{code}", follow_redirects=False, timeout=10)
    except httpx.HTTPError:
        return "error"
    if r.status_code == 302:
        return "hit"
    if r.status_code == 404:
        return "miss"
    return "error"


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--base", default="http://127.0.0.1:8080/")
    parser.add_argument("--in", dest="codes_file", default="codes.txt")
    parser.add_argument("--count", type=int, default=15000)
    parser.add_argument("--concurrency", type=int, default=200)
    args = parser.parse_args()

    codes = _load_codes(args.codes_file)
    if not codes:
        print(f"No ids found in {args.codes_file}. Create some with `surl-mgr add` first.")
        return
    base = args.base if args.base.endswith("/") else args.base + "/"

    start_iso = _now_iso()
    t0 = time.perf_counter()
    results = Counter()

    limit = httpx.Limits(max_connections=args.concurrency, max_keepalive_connections=args.concurrency)
    async with httpx.AsyncClient(limits=limit) as client:
        sem = asyncio.Semaphore(args.concurrency)

        async def _task():
            async with sem:
                results[await _hit_one(client, base, random.choice(codes))] += 1

        await asyncio.gather(*(_task() for _ in range(args.count)))

    dt = time.perf_counter() - t0
    print(f"START: {start_iso}")
    print(f"END:   {_now_iso()}")
    print(f"TOTAL: {dt:.3f} s")
    print(f"OPS:   reads={args.count}, hit={results['hit']}, miss={results['miss']}, error={results['error']}")
    if dt > 0:
        print(f"RPS:   {(results['hit'] + results['miss']) / dt:.1f} req/s")


if __name__ == "__main__":
    asyncio.run(main())
