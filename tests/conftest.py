# Cave Live API Test Suite - Shared Configuration and Fixtures
#
# This module provides:
# - Test database provisioning (ephemeral SQLite per test run)
# - Seed users (one operator, two visitors)
# - Authentication helpers
# - Failure message formatting
#
# These tests talk to a running server over HTTP. They are skipped unless
# TEST_LIVE_SERVER=1 (start a server here) or TEST_EXTERNAL_SERVER=1
# (use the server at TEST_BACKEND_URL) is set.

import os
import sys
import time
import tempfile
import subprocess
import shutil
from pathlib import Path
from datetime import timedelta
from typing import Generator, Optional, Dict, Any
from dataclasses import dataclass

import pytest
import httpx

REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"

TEST_PASSWORD = "TestPass123!"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TestConfig:
    """Test configuration with environment variable overrides."""
    backend_base_url: str = os.environ.get("TEST_BACKEND_URL", "http://127.0.0.1:5001")

    # Timeouts
    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))
    server_startup_timeout: float = float(os.environ.get("TEST_SERVER_STARTUP_TIMEOUT", "30"))

    # Concurrency (for the concurrent entry test)
    stress_users: int = int(os.environ.get("TEST_STRESS_USERS", "10"))


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class TestFailure(Exception):
    """
    Exception with a readable failure report.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    5. Code Location: Where to look in the codebase
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}

        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {self.likely_cause}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(
    response: httpx.Response,
    expected_status: int,
    scenario: str,
    code_location: str,
    expected_code: Optional[str] = None
):
    """
    Assert HTTP status and, for error bodies, the Cave error code.
    Raises TestFailure with detailed message on failure.
    """
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            code_location=code_location,
            response=response
        )

    if expected_code and response.json().get("code") != expected_code:
        raise TestFailure(
            scenario=scenario,
            expected=f"Error code {expected_code}",
            actual=f"Response body: {response.text[:500]}",
            likely_cause="Wrong CaveError subclass raised or ticket reason mapped incorrectly",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    """Infer likely cause from response status/body."""
    if response.status_code == 401:
        return "Authentication failed - token invalid/missing or expired"
    elif response.status_code == 403:
        return "Forbidden - admin route or someone else's personal ticket"
    elif response.status_code == 404:
        return "Resource not found - wrong ID, or session closed/expired"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Conflict - entry closed, visits used up, or event still referenced"
    elif response.status_code == 410:
        return "Ticket expired"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT WITH AUTH HELPERS
# =============================================================================

class APIClient:
    """
    HTTP client wrapper with authentication and convenience methods.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)
        self.token: Optional[str] = None
        self.current_user: Optional[Dict] = None

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        """Build request headers with optional auth."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.get(
            f"{self.base_url}{path}",
            headers=self._headers(),
            params=params,
            **kwargs
        )

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.post(
            f"{self.base_url}{path}",
            headers=self._headers(),
            json=json,
            **kwargs
        )

    def patch(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.patch(
            f"{self.base_url}{path}",
            headers=self._headers(),
            json=json,
            **kwargs
        )

    def delete(self, path: str, **kwargs) -> httpx.Response:
        return self.client.delete(
            f"{self.base_url}{path}",
            headers=self._headers(),
            **kwargs
        )

    def login(self, username: str, password: str = TEST_PASSWORD) -> bool:
        """Authenticate and store token."""
        response = self.post("/api/auth/login", json={
            "username": username,
            "password": password
        })
        if response.status_code == 200:
            data = response.json()
            self.token = data.get("token")
            self.current_user = data.get("user")
            return True
        return False

    def logout(self) -> bool:
        """Logout and clear token."""
        if not self.token:
            return True
        response = self.post("/api/auth/logout")
        if response.status_code == 200:
            self.token = None
            self.current_user = None
            return True
        return False

    def close(self):
        """Close the HTTP client."""
        self.client.close()


# =============================================================================
# SERVER MANAGEMENT
# =============================================================================

class ServerManager:
    """
    Manages Flask backend server lifecycle for tests.
    """

    def __init__(self, config: TestConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.db_file: Optional[Path] = None

    def start(self) -> bool:
        """Seed a temp database, then start the Flask server on it."""
        temp_dir = tempfile.mkdtemp(prefix="cave_test_")
        self.db_file = Path(temp_dir) / "test_cave.sqlite3"
        db_url = f"sqlite:///{self.db_file}"

        self.initialize_db(db_url)

        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        env["FLASK_APP"] = "wsgi.py"

        self.process = subprocess.Popen(
            [sys.executable, "-m", "flask", "run", "--port", "5001"],
            cwd=str(BACKEND_DIR),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        return self._wait_for_server()

    def _wait_for_server(self) -> bool:
        """Wait for server to be responsive."""
        start_time = time.time()
        while time.time() - start_time < self.config.server_startup_timeout:
            try:
                response = httpx.get(f"{self.config.backend_base_url}/health", timeout=2.0)
                if response.status_code in (200, 503):
                    return True
            except (httpx.ConnectError, httpx.TimeoutException):
                pass
            time.sleep(0.5)
        return False

    def stop(self):
        """Stop the Flask server and cleanup."""
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None

        if self.db_file and self.db_file.parent.exists():
            shutil.rmtree(self.db_file.parent, ignore_errors=True)

    def initialize_db(self, db_url: str):
        """Create the schema and the seed users."""
        from cave import create_app
        from cave.extensions import db
        from cave.services.auth_service import create_user

        app = create_app({"SQLALCHEMY_DATABASE_URI": db_url, "BCRYPT_ROUNDS": 4})

        with app.app_context():
            db.create_all()
            create_user("operator", "operator@cave.test", TEST_PASSWORD, is_admin=True)
            create_user("visitor_one", "one@cave.test", TEST_PASSWORD)
            create_user("visitor_two", "two@cave.test", TEST_PASSWORD)
            for i in range(self.config.stress_users):
                create_user(f"crowd_{i}", f"crowd_{i}@cave.test", TEST_PASSWORD)
            db.engine.dispose()


# =============================================================================
# TEST DATA FACTORIES
# =============================================================================

class TestDataFactory:
    """
    Factory for creating Cave events and tickets through the admin API.
    """

    def __init__(self, client: APIClient):
        self.client = client
        self._counter = 0

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def create_event(
        self,
        kind: str = "scheduled",
        starts_in_minutes: int = -60,
        duration_minutes: int = 180,
        user_time_limit: int = 30,
        max_participations_per_user: int = 1,
    ) -> Dict:
        """Create an event whose window is relative to the server's clock."""
        from cave.time_utils import utcnow, to_utc_z

        n = self._next_id()
        start = utcnow() + timedelta(minutes=starts_in_minutes)
        response = self.client.post("/api/admin/cave/events", json={
            "title": f"Test Event {n}",
            "kind": kind,
            "start_time": to_utc_z(start),
            "end_time": to_utc_z(start + timedelta(minutes=duration_minutes)),
            "user_time_limit": user_time_limit,
            "max_participations_per_user": max_participations_per_user,
        })
        if response.status_code == 201:
            return response.json()["event"]
        raise TestFailure(
            scenario="Create test event",
            expected="HTTP 201",
            actual=f"HTTP {response.status_code}",
            likely_cause="Event creation failed - check validation",
            code_location="backend/cave/routes/admin.py:create_event_route",
            response=response
        )

    def create_ticket(self, event_id: int, owner_user_id: Optional[int] = None, **extra) -> Dict:
        n = self._next_id()
        payload = {"event_id": event_id, "code": f"TEST-TICKET-{n}", **extra}
        if owner_user_id is not None:
            payload.update({"is_personal": True, "owner_user_id": owner_user_id})
        response = self.client.post("/api/admin/cave/tickets", json=payload)
        if response.status_code == 201:
            return response.json()["ticket"]
        raise TestFailure(
            scenario="Create test ticket",
            expected="HTTP 201",
            actual=f"HTTP {response.status_code}",
            likely_cause="Ticket creation failed - event must be active and ticketed",
            code_location="backend/cave/routes/admin.py:create_ticket_route",
            response=response
        )


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration."""
    return TestConfig()


@pytest.fixture(scope="session")
def server_manager(test_config: TestConfig) -> Generator[ServerManager, None, None]:
    """
    Manage test server lifecycle.
    Server is started once per test session.
    """
    if os.environ.get("TEST_EXTERNAL_SERVER"):
        yield ServerManager(test_config)
        return

    if not os.environ.get("TEST_LIVE_SERVER"):
        pytest.skip("Live API tests disabled; set TEST_LIVE_SERVER=1 or TEST_EXTERNAL_SERVER=1")

    manager = ServerManager(test_config)
    if not manager.start():
        manager.stop()
        pytest.fail("Failed to start test server")
    yield manager
    manager.stop()


def _new_client(test_config: TestConfig) -> APIClient:
    return APIClient(test_config.backend_base_url, timeout=test_config.request_timeout)


@pytest.fixture
def client(test_config: TestConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    """Unauthenticated API client."""
    api_client = _new_client(test_config)
    yield api_client
    api_client.close()


@pytest.fixture
def admin_client(test_config: TestConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    """Authenticated operator client."""
    api_client = _new_client(test_config)
    if not api_client.login("operator"):
        pytest.fail("Failed to login as operator")
    yield api_client
    api_client.close()


@pytest.fixture
def visitor_client(test_config: TestConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    """Authenticated visitor client (visitor_one)."""
    api_client = _new_client(test_config)
    if not api_client.login("visitor_one"):
        pytest.fail("Failed to login as visitor_one")
    yield api_client
    api_client.logout()
    api_client.close()


@pytest.fixture
def second_visitor_client(test_config: TestConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    """Authenticated visitor client (visitor_two)."""
    api_client = _new_client(test_config)
    if not api_client.login("visitor_two"):
        pytest.fail("Failed to login as visitor_two")
    yield api_client
    api_client.logout()
    api_client.close()


@pytest.fixture
def factory(admin_client: APIClient) -> TestDataFactory:
    """Provide test data factory with operator auth."""
    return TestDataFactory(admin_client)


# =============================================================================
# TEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick smoke tests for critical paths")
    config.addinivalue_line("markers", "auth: Authentication tests")
    config.addinivalue_line("markers", "sessions: Cave session lifecycle tests")
    config.addinivalue_line("markers", "tickets: Ticket admission tests")
    config.addinivalue_line("markers", "admin: Operator endpoint tests")
    config.addinivalue_line("markers", "concurrent: Concurrency tests")
