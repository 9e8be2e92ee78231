"""
Cave Load Testing with Locust

Needs at least one active scheduled event with a generous visit limit
(e.g. python -m flask cave create-event ... --visits 1000) and the crowd_N
users seeded by tests/conftest.py.

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%
"""

import os
import time
import random
from typing import Optional, Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

TEST_PASSWORD = "TestPass123!"
CROWD_SIZE = int(os.environ.get("TEST_STRESS_USERS", "10"))
OPERATOR = {"username": "operator", "password": TEST_PASSWORD}


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p50_idx = int(count * 0.50)
            p95_idx = int(count * 0.95)

            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p50_ms": times[p50_idx] if p50_idx < count else times[-1],
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class CaveUser(HttpUser):
    """
    Base Cave user that authenticates on start.
    """
    wait_time = between(0.5, 2)
    abstract = True

    token: Optional[str] = None

    def credentials(self) -> Dict:
        raise NotImplementedError

    def on_start(self):
        """Login when user starts."""
        creds = self.credentials()
        response = self.client.post(
            "/api/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
            name="auth/login"
        )
        if response.status_code == 200:
            self.token = response.json().get("token")

    def get_headers(self) -> Dict:
        """Get headers with auth token."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, method: str, path: str, ok=(200,), **kwargs):
        start = time.time()
        response = getattr(self.client, method)(path, headers=self.get_headers(), name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok)
        return response


class VisitorUser(CaveUser):
    """
    Visitor that enters, buys a few things and leaves.
    Several locust users may share one crowd account, which exercises the
    one-open-session-per-user path.
    """
    weight = 5

    session_id: Optional[int] = None

    def credentials(self) -> Dict:
        return {"username": f"crowd_{random.randrange(CROWD_SIZE)}", "password": TEST_PASSWORD}

    @task(3)
    def list_active_events(self):
        self.timed("events/active", "get", "/api/cave/events/active")

    @task(4)
    def enter(self):
        response = self.timed("events/active", "get", "/api/cave/events/active")
        if response.status_code != 200:
            return
        scheduled = [e for e in response.json().get("events", []) if e["kind"] == "scheduled"]
        if not scheduled:
            return

        response = self.timed(
            "sessions/enter", "post", "/api/cave/sessions",
            ok=(200, 409),
            json={"event_id": random.choice(scheduled)["id"]},
        )
        if response.status_code == 200:
            self.session_id = response.json()["session"]["id"]

    @task(4)
    def order(self):
        if not self.session_id:
            return
        self.timed(
            "orders/create", "post", f"/api/cave/sessions/{self.session_id}/orders",
            ok=(201, 404),
            json={"amount": random.randint(100, 2000), "paid_with": random.choice(["points", "cash"])},
        )

    @task(2)
    def leave(self):
        if not self.session_id:
            return
        self.timed("sessions/end", "post", f"/api/cave/sessions/{self.session_id}/end", ok=(200, 404), json={})
        self.session_id = None

    @task(1)
    def health_check(self):
        start = time.time()
        response = self.client.get("/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


class OperatorUser(CaveUser):
    """Operator watching the dashboard."""
    weight = 1

    def credentials(self) -> Dict:
        return OPERATOR

    @task(3)
    def stats(self):
        self.timed("admin/stats", "get", "/api/admin/cave/stats")

    @task(1)
    def list_sessions(self):
        self.timed("admin/sessions", "get", "/api/admin/cave/sessions")


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        # Writes get the looser threshold
        p95_threshold = 1000 if "create" in name or "enter" in name or "end" in name else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads (list/get): P95 < 500ms, Error rate < 1%")
        print("  - Writes (enter/create/end): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
