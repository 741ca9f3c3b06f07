"""Load test: push synthetic profiles through discovery, likes, matches and chat.

Each synthetic user creates a profile, uploads one photo (so the profile is
complete), pulls its discovery feed and likes a random slice of it.  Mutual
likes become matches; every match then exchanges a message.

Usage: python -m scripts.load_test [--count 50] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import random
import statistics
import sys
import time
import uuid
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_COUNT = 50
LIKES_PER_USER = 5

CITIES = [
    ("Atlanta", "Georgia"),
    ("Savannah", "Georgia"),
    ("Miami", "Florida"),
    ("Austin", "Texas"),
]
FIRST_NAMES = ["Tariro", "Tendai", "Rudo", "Farai", "Nyasha", "Chipo", "Tatenda", "Kuda"]
LAST_NAMES = ["Moyo", "Ncube", "Dube", "Sibanda", "Mutasa", "Chikwanha"]
INTERESTS = ["hiking", "jazz", "cooking", "photography", "travel", "running", "art"]

# Smallest valid JPEG header; enough for the content-type check.
PLACEHOLDER_PHOTO = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"


def headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def random_profile(index: int) -> dict[str, Any]:
    city, state = random.choice(CITIES)
    return {
        "first_name": random.choice(FIRST_NAMES),
        "last_name": f"{random.choice(LAST_NAMES)}{index}",
        "age": random.randint(21, 45),
        "gender": random.choice(["man", "woman"]),
        "city": city,
        "state": state,
        "bio": "Load test profile.",
        "interests": random.sample(INTERESTS, 2),
    }


async def create_profile(client: httpx.AsyncClient, base_url: str, index: int) -> str | None:
    """Create a profile and upload its first photo. Returns the user id."""
    user_id = str(uuid.uuid4())
    try:
        resp = await client.post(
            f"{base_url}/api/v1/profiles", json=random_profile(index), headers=headers(user_id)
        )
        if resp.status_code != 201:
            print(f"  [WARN] Profile {index}: status {resp.status_code}")
            return None
        resp = await client.post(
            f"{base_url}/api/v1/profiles/me/photos",
            files={"files": ("photo.jpg", PLACEHOLDER_PHOTO, "image/jpeg")},
            headers=headers(user_id),
        )
        if resp.status_code != 200:
            print(f"  [WARN] Photo {index}: status {resp.status_code}")
            return None
        return user_id
    except httpx.HTTPError as e:
        print(f"  [ERROR] Profile {index}: {e}")
        return None


async def discover_and_like(
    client: httpx.AsyncClient, base_url: str, user_id: str, results: dict[str, Any]
) -> None:
    t0 = time.monotonic()
    resp = await client.get(f"{base_url}/api/v1/discover", headers=headers(user_id))
    results["timings"]["discover"].append(time.monotonic() - t0)
    if resp.status_code != 200:
        results["errors"].append(f"Discover {user_id[:8]}: status {resp.status_code}")
        return

    candidates = [c["id"] for c in resp.json()]
    for candidate_id in random.sample(candidates, min(LIKES_PER_USER, len(candidates))):
        t0 = time.monotonic()
        resp = await client.post(
            f"{base_url}/api/v1/discover/{candidate_id}/like", headers=headers(user_id)
        )
        results["timings"]["like"].append(time.monotonic() - t0)
        if resp.status_code == 201:
            results["likes_sent"] += 1
        else:
            results["errors"].append(f"Like {user_id[:8]}->{candidate_id[:8]}: status {resp.status_code}")


async def message_matches(
    client: httpx.AsyncClient, base_url: str, user_id: str, results: dict[str, Any]
) -> None:
    resp = await client.get(f"{base_url}/api/v1/matches", headers=headers(user_id))
    if resp.status_code != 200:
        results["errors"].append(f"Matches {user_id[:8]}: status {resp.status_code}")
        return
    for match in resp.json():
        # Each match is listed for both parties; only the lower id opens the chat.
        if user_id > match["other_user_id"]:
            continue
        results["matches_found"] += 1
        t0 = time.monotonic()
        sent = await client.post(
            f"{base_url}/api/v1/matches/{match['id']}/messages",
            json={"content": "Mhoro! How's your week going?"},
            headers=headers(user_id),
        )
        results["timings"]["message"].append(time.monotonic() - t0)
        if sent.status_code == 201:
            results["messages_sent"] += 1


async def run_load_test(base_url: str, count: int) -> dict[str, Any]:
    """Run the full load test pipeline."""
    print(f"\n{'='*60}")
    print(f"ZimConnect Load Test: {count} profiles")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results = {
        "total": count,
        "profiles_created": 0,
        "likes_sent": 0,
        "matches_found": 0,
        "messages_sent": 0,
        "errors": [],
        "timings": {"profile": [], "discover": [], "like": [], "message": []},
    }

    async with httpx.AsyncClient(timeout=30.0) as client:
        print(f"[1/3] Creating {count} profiles...")
        user_ids = []
        for i in range(count):
            t0 = time.monotonic()
            user_id = await create_profile(client, base_url, i)
            results["timings"]["profile"].append(time.monotonic() - t0)
            if user_id:
                user_ids.append(user_id)
                results["profiles_created"] += 1
            if (i + 1) % 10 == 0:
                print(f"  Created {i + 1}/{count} profiles")
        print(f"  -> {results['profiles_created']} profiles created\n")

        print(f"[2/3] Discovering and liking ({LIKES_PER_USER} per user)...")
        for user_id in user_ids:
            await discover_and_like(client, base_url, user_id, results)
        print(f"  -> {results['likes_sent']} likes sent\n")

        print("[3/3] Opening conversations on matches...")
        for user_id in user_ids:
            await message_matches(client, base_url, user_id, results)
        print(f"  -> {results['messages_sent']}/{results['matches_found']} matches messaged\n")

    print(f"{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    print(f"Profiles created: {results['profiles_created']}/{count}")
    print(f"Likes sent:       {results['likes_sent']}")
    print(f"Matches found:    {results['matches_found']}")
    print(f"Messages sent:    {results['messages_sent']}")

    for phase, timings in results["timings"].items():
        if timings:
            print(f"\n{phase} latency:")
            print(f"  mean:   {statistics.mean(timings):.3f}s")
            print(f"  median: {statistics.median(timings):.3f}s")
            print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.3f}s")
            print(f"  max:    {max(timings):.3f}s")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for e in results["errors"][:10]:
            print(f"  - {e}")

    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="ZimConnect Load Test")
    parser.add_argument("--count", type=int, default=DEFAULT_COUNT, help="Number of profiles to create")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    args = parser.parse_args()

    results = asyncio.run(run_load_test(args.base_url, args.count))

    success_rate = results["profiles_created"] / max(results["total"], 1)
    if success_rate < 0.8:
        print(f"FAIL: Only {success_rate:.0%} success rate (target: 80%)")
        sys.exit(1)
    print(f"PASS: {success_rate:.0%} success rate")


if __name__ == "__main__":
    main()
