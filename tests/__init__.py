# Cave Live Test Suite
#
# This package contains:
# - API tests against a running server (pytest + httpx)
# - Stress/load tests (Locust)
#
# Run with: TEST_LIVE_SERVER=1 python -m pytest tests -m smoke
