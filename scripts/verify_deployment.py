#!/usr/bin/env python3
"""Post-deploy smoke test for the CRM.

Usage:
    python scripts/verify_deployment.py --url https://crm.purrify.ca

Checks that the login page renders, that /api/health reports the database
as reachable, and that protected pages redirect to /login without a
session. Exit code 0 if all checks pass, 1 if any fail.
"""

import argparse
import sys
from typing import Tuple

import httpx

TIMEOUT = 15.0


def check_login_page(url: str) -> Tuple[bool, str]:
    """Verify /login returns HTTP 200 with content."""
    try:
        response = httpx.get(url.rstrip("/") + "/login", timeout=TIMEOUT)
        if response.status_code == 200:
            return True, f"HTTP 200, {len(response.content)} bytes"
        return False, f"HTTP {response.status_code}"
    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def check_health(url: str) -> Tuple[bool, str]:
    """Verify /api/health/detailed reports a healthy or degraded (not unhealthy) system."""
    health_url = url.rstrip("/") + "/api/health/detailed"
    try:
        response = httpx.get(health_url, timeout=TIMEOUT)
        try:
            data = response.json()
        except ValueError:
            return False, f"HTTP {response.status_code}, response is not valid JSON"

        status = data.get("status", "unknown")
        missing = data.get("missing_env_vars") or []
        if status == "healthy":
            return True, "All checks healthy"
        if status == "degraded":
            detail = "Degraded"
            if missing:
                detail += f" (missing: {', '.join(missing)})"
            return True, detail

        failed = [
            name for name, info in (data.get("checks") or {}).items()
            if isinstance(info, dict) and info.get("status") == "unhealthy"
        ]
        if failed:
            return False, f"Unhealthy: {', '.join(failed)}"
        return False, f"Status: {status}"

    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def check_session_redirect(url: str) -> Tuple[bool, str]:
    """Verify an unauthenticated /dashboard request is redirected to /login."""
    try:
        response = httpx.get(url.rstrip("/") + "/dashboard", timeout=TIMEOUT, follow_redirects=False)
        location = response.headers.get("location", "")
        if response.status_code in (302, 303, 307) and location.endswith("/login"):
            return True, f"HTTP {response.status_code} -> {location}"
        return False, f"HTTP {response.status_code}, location={location or 'none'}"
    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def print_results(results: list) -> None:
    """Print a formatted table of check results."""
    separator = "-" * 70
    print()
    print(separator)
    print(f"{'CHECK':<25} {'STATUS':<10} {'DETAIL'}")
    print(separator)
    for name, passed, detail in results:
        status = "PASS" if passed else "FAIL"
        print(f"{name:<25} {status:<10} {detail}")
    print(separator)
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify a CRM deployment")
    parser.add_argument("--url", required=True, help="Base URL of the deployed CRM")
    args = parser.parse_args()

    results = [
        ("Login page", *check_login_page(args.url)),
        ("Health endpoint", *check_health(args.url)),
        ("Session redirect", *check_session_redirect(args.url)),
    ]
    print_results(results)

    all_passed = all(passed for _, passed, _ in results)
    print("All checks passed." if all_passed else "Some checks FAILED.")
    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
