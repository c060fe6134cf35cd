"""Drive one full verdict round against a running server with duplicate ballots in flight."""
from __future__ import annotations

import argparse
import asyncio
from collections import Counter
import json
import os
import random
import sys
import time
from typing import Optional

import httpx

# Add project root to path
sys.path.append(os.getcwd())

from jurynow.auth.auth import Role, create_access_token


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rehearse concurrent ballot submission for a single question."
    )
    parser.add_argument("--base-url", required=True, help="App base URL")
    parser.add_argument("--category", default="Trivial")
    parser.add_argument("--attempts-per-juror", type=int, default=3)
    parser.add_argument("--max-concurrency", type=int, default=24)
    parser.add_argument("--cancel-after", type=int, default=None, help="Cancel after N ballots")
    return parser.parse_args()


def _headers(subject: str, role: Role) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, role)}"}


async def _prepare_question(client: httpx.AsyncClient, category: str) -> tuple[str, list[str]]:
    admin = _headers("rehearsal-admin", Role.ADMIN)
    created = await client.post(
        "/api/questions",
        json={
            "prompt": f"Rehearsal question {time.time():.0f}",
            "option_a": "Left",
            "option_b": "Right",
            "category": category,
        },
        headers=admin,
    )
    created.raise_for_status()
    question_id = created.json()["question_id"]

    session = await client.post(
        "/api/sessions", json={"question_id": question_id}, headers=admin
    )
    if session.status_code not in {200, 201}:
        raise RuntimeError(f"Panel formation failed: {session.status_code} {session.text}")
    return question_id, session.json()["panel"]


async def _cast(
    client: httpx.AsyncClient,
    sem: asyncio.Semaphore,
    question_id: str,
    juror_id: str,
) -> Optional[int]:
    async with sem:
        await asyncio.sleep(random.uniform(0.0, 0.05))
        try:
            response = await client.post(
                f"/api/sessions/{question_id}/ballots",
                json={"choice": random.choice(["A", "B"])},
                headers=_headers(juror_id, Role.JUROR),
                timeout=20.0,
            )
        except httpx.RequestError:
            return None
        return response.status_code


async def rehearse(args: argparse.Namespace) -> dict:
    async with httpx.AsyncClient(base_url=args.base_url, follow_redirects=True) as client:
        question_id, panel = await _prepare_question(client, args.category)
        sem = asyncio.Semaphore(max(1, args.max_concurrency))

        voters = panel if args.cancel_after is None else panel[: args.cancel_after]
        attempts = [juror_id for juror_id in voters for _ in range(args.attempts_per_juror)]
        random.shuffle(attempts)
        started = time.perf_counter()
        codes = await asyncio.gather(
            *[_cast(client, sem, question_id, juror_id) for juror_id in attempts]
        )
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        if args.cancel_after is not None:
            await client.post(
                f"/api/sessions/{question_id}/cancel",
                headers=_headers("rehearsal-admin", Role.ADMIN),
            )
        verdict = await client.get(
            f"/api/sessions/{question_id}/verdict",
            headers=_headers("rehearsal-admin", Role.ADMIN),
        )
        verdict.raise_for_status()

    statuses = Counter(str(code) for code in codes)
    body = verdict.json()
    return {
        "question_id": question_id,
        "attempts": len(attempts),
        "status_counts": dict(statuses),
        "elapsed_ms": round(elapsed_ms, 1),
        "verdict": body,
        "exactly_once": statuses.get("201", 0) == len(voters) == body["received"],
    }


if __name__ == "__main__":
    report = asyncio.run(rehearse(_parse_args()))
    print(json.dumps(report, indent=2))
    sys.exit(0 if report["exactly_once"] else 1)
