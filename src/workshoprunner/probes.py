"""
Verification probes.

Probes check the result of setup steps from the outside: an HTTP endpoint
answers with the right status or body, or enough pods are Running behind a
label selector. Each returns a ProbeResult the caller records into the
TestReport; probes never raise for an ordinary negative result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import httpx

from workshoprunner.shell import CommandError, run_command

logger = logging.getLogger(__name__)

__all__ = ["ProbeResult", "probe_http", "probe_pods_running", "count_running_pods"]


@dataclass(frozen=True)
class ProbeResult:
    """Expected/actual pair for one probe."""
    name: str
    expected: str
    actual: str
    passed: bool


def probe_http(
    url: str,
    name: Optional[str] = None,
    expected_status: int = 200,
    contains: Optional[str] = None,
    retries: int = 3,
    delay: float = 2.0,
    timeout: float = 10.0,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeResult:
    """
    GET ``url`` until it answers as expected or retries run out.

    Args:
        url: Target URL
        name: Test name for the report (defaults to the URL)
        expected_status: Required HTTP status code
        contains: Optional substring the body must contain
        retries: Total attempts
        delay: Seconds between attempts
        timeout: Per-request timeout
        client: httpx client to use (one is created when omitted)
        sleep: Sleep function (injectable for tests)
    """
    name = name or f"GET {url}"
    expected = f"HTTP {expected_status}"
    if contains is not None:
        expected += f" containing {contains!r}"

    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    actual = "no response"
    try:
        for attempt in range(1, retries + 1):
            try:
                response = http.get(url, timeout=timeout)
            except httpx.HTTPError as e:
                actual = f"error: {e.__class__.__name__}"
                logger.debug("%s attempt %d failed: %s", name, attempt, e)
            else:
                actual = f"HTTP {response.status_code}"
                status_ok = response.status_code == expected_status
                body_ok = contains is None or contains in response.text
                if status_ok and body_ok:
                    return ProbeResult(name, expected, actual, True)
                if status_ok:
                    actual += " (pattern not found)"
            if attempt < retries:
                sleep(delay)
    finally:
        if owns_client:
            http.close()

    return ProbeResult(name, expected, actual, False)


def count_running_pods(
    namespace: str,
    selector: str,
    context: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Number of pods in the Running phase behind a label selector."""
    cmd = ["kubectl"]
    if context:
        cmd += ["--context", context]
    cmd += ["get", "pods", "-n", namespace, "-l", selector, "--no-headers"]

    result = run_command(cmd, env=env, check=False, context="Listing pods")
    if not result.ok:
        logger.debug("kubectl get pods failed: %s", result.stderr.strip())
        return 0
    return sum(1 for line in result.stdout.splitlines() if "Running" in line.split())


def probe_pods_running(
    namespace: str,
    selector: str,
    min_running: int = 1,
    context: Optional[str] = None,
    name: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ProbeResult:
    """Check that at least ``min_running`` pods are Running."""
    name = name or f"Pods {selector} running in {namespace}"
    expected = f">={min_running} running"
    try:
        count = count_running_pods(namespace, selector, context=context, env=env)
    except CommandError as e:
        return ProbeResult(name, expected, f"kubectl unavailable: {e.context}", False)
    return ProbeResult(name, expected, f"{count} running", count >= min_running)
