#!/usr/bin/env python3
"""Smoke test for a running sync bridge instance.

Usage:
    python scripts/verify_deployment.py --base-url https://sync.example.com

Checks /health and /test-api. Neither call touches Zoho or Outlook.
Exit code 0 if all checks pass, 1 if any fail.
"""

import argparse
import sys
from typing import Tuple

import httpx

TIMEOUT = 15.0


def _get_json(url: str) -> Tuple[dict | None, str]:
    try:
        response = httpx.get(url, timeout=TIMEOUT, follow_redirects=True)
    except httpx.TimeoutException:
        return None, "Request timed out"
    except httpx.ConnectError as exc:
        return None, f"Connection failed: {exc}"
    except httpx.HTTPError as exc:
        return None, f"HTTP error: {exc}"

    if response.status_code != 200:
        return None, f"HTTP {response.status_code}"
    try:
        return response.json(), "HTTP 200"
    except ValueError:
        return None, "Response is not valid JSON"


def check_health(base_url: str) -> Tuple[bool, str]:
    """Verify /health reports status ok."""
    data, detail = _get_json(base_url.rstrip("/") + "/health")
    if data is None:
        return False, detail
    if data.get("status") == "ok":
        return True, f"environment={data.get('environment', 'unknown')}"
    return False, f"Status: {data.get('status', 'unknown')}"


def check_test_api(base_url: str) -> Tuple[bool, str]:
    """Verify /test-api returns its static message."""
    data, detail = _get_json(base_url.rstrip("/") + "/test-api")
    if data is None:
        return False, detail
    message = data.get("message", "")
    return bool(message), message or "Empty message"


def print_results(results: list) -> None:
    """Print a formatted table of check results."""
    header = f"{'CHECK':<25} {'STATUS':<10} {'DETAIL'}"
    separator = "-" * 70
    print()
    print(separator)
    print(header)
    print(separator)
    for name, passed, detail in results:
        status = "PASS" if passed else "FAIL"
        print(f"{name:<25} {status:<10} {detail}")
    print(separator)
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify a deployed sync bridge instance")
    parser.add_argument(
        "--base-url",
        default="http://localhost:3000",
        help="Root URL of the running service",
    )
    args = parser.parse_args()

    results = []

    passed, detail = check_health(args.base_url)
    results.append(("Health", passed, detail))

    passed, detail = check_test_api(args.base_url)
    results.append(("Test API", passed, detail))

    print_results(results)

    if all(passed for _, passed, _ in results):
        print("All checks passed.")
        sys.exit(0)
    print("Some checks FAILED.")
    sys.exit(1)


if __name__ == "__main__":
    main()
