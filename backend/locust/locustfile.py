"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Race guests for a small event
  locust -f locustfile.py --tags throughput   # Test listing cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

The organizer token is signed locally, so SECRET_KEY must match the server.
"""

import random
import string
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from gameone.core.security import create_access_token

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_CAPACITY = 10

ADMIN_HEADERS = {
    "Authorization": f"Bearer {create_access_token(data={'sub': '1', 'role': 'admin'}, expires_delta=timedelta(hours=12))}"
}


def random_guest() -> dict:
    suffix = "".join(random.choices(string.ascii_lowercase, k=8))
    return {"name": f"Load {suffix}", "email": f"load_{suffix}@test.com"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: The first concurrency user creates the limited event."""
    print("\n" + "="*60)
    print(f"SETUP: Concurrency event gets {CONCURRENCY_CAPACITY} spots")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 guests -> 10 spots

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      GET /api/v1/events/{id}/capacity
    awaiting_payment + effective_count should be <= 10, everyone else waitlisted.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONCURRENCY_EVENT_ID
        if CONCURRENCY_EVENT_ID:
            return
        future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
        resp = self.client.post("/api/v1/events/",
            json={
                "title": "Concurrency Test Event",
                "description": f"{CONCURRENCY_CAPACITY} spots only",
                "start_date": future,
                "venue": "Test",
                "capacity": CONCURRENCY_CAPACITY,
                "price": "10.00",
            },
            headers=ADMIN_HEADERS,
        )
        if resp.status_code == 201:
            CONCURRENCY_EVENT_ID = resp.json()["id"]
            EVENT_IDS.append(CONCURRENCY_EVENT_ID)

    @tag("concurrency")
    @task
    def register_for_limited_event(self):
        """All guests fight for the same 10 spots."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/registrations",
            json={"guest": random_guest()},
            name="/api/v1/events/{id}/registrations",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409 and resp.json().get("error") == "concurrency_conflict":
                resp.success()  # Expected under contention: retries exhausted
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(1)
    def watch_capacity(self):
        if CONCURRENCY_EVENT_ID:
            self.client.get(
                f"/api/v1/events/{CONCURRENCY_EVENT_ID}/capacity",
                name="/api/v1/events/{id}/capacity",
            )


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&page_size=20", name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}", name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/events/999999/registrations",
            json={"guest": random_guest()},
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def oversized_group(self):
        """More friends than a group may hold."""
        if not EVENT_IDS:
            return
        friends = [{"name": f"Friend {i}"} for i in range(50)]
        with self.client.post(
            f"/api/v1/events/{EVENT_IDS[0]}/registrations",
            json={"guest": random_guest(), "friends": friends},
            name="/api/v1/events/{id}/registrations [oversized]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def guest_without_contact(self):
        if not EVENT_IDS:
            return
        with self.client.post(
            f"/api/v1/events/{EVENT_IDS[0]}/registrations",
            json={},
            name="/api/v1/events/{id}/registrations [no contact]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def verify_without_admin(self):
        with self.client.post(
            "/api/v1/admin/pending-payments/1/verify",
            json={},
            name="/api/v1/admin/pending-payments/{id}/verify [no token]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")
