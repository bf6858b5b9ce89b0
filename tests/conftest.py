"""
Brief: Global pytest configuration: per-test 10s timeout and a fake mDNS transport.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys
import threading

import pytest

# Ensure 'src' is on sys.path so 'pigeonns' is importable without installing.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from pigeonns.records import AnswerRecord, MdnsResponse  # noqa: E402
from pigeonns.resolver import MdnsResolver  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class FakeTransport:
    """
    Brief: In-memory stand-in for MulticastTransport.

    Records every query, lets tests push responses/errors through the
    callbacks registered by MdnsResolver.start().
    """

    def __init__(self) -> None:
        self.queries = []
        self.started = 0
        self.closed = 0
        self.on_response = None
        self.on_error = None
        self.query_event = threading.Event()
        # (name, rtype) -> (address, ttl) answered as soon as the query is sent
        self.answers = {}

    def start(self, on_response, on_error) -> None:
        self.started += 1
        self.on_response = on_response
        self.on_error = on_error

    def query(self, name, rtype) -> None:
        self.queries.append((name, rtype))
        self.query_event.set()
        if (name, rtype) in self.answers:
            address, ttl = self.answers[(name, rtype)]
            self.respond((name, rtype, address, ttl))

    def close(self) -> None:
        self.closed += 1

    def respond(self, *answers) -> None:
        """Deliver an MdnsResponse built from (name, type, address, ttl) tuples."""
        records = [AnswerRecord(*a) for a in answers]
        self.on_response(MdnsResponse(answers=records))

    def fail(self, exc: Exception) -> None:
        self.on_error(exc)


class FakeClock:
    """Manually advanced epoch clock for expiry tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_resolver(transport, clock):
    """
    Brief: Factory building started MdnsResolver instances wired to the fake transport.

    Inputs:
      - **overrides: ResolverConfig fields (timeout_ms, ttl, cache_size, ...)

    Outputs:
      - MdnsResolver; every resolver created is stopped after the test.
    """
    created = []

    def _make(start: bool = True, **overrides):
        overrides.setdefault("timeout_ms", 2000)
        resolver = MdnsResolver(
            transport_factory=lambda cfg: transport, clock=clock, **overrides
        )
        if start:
            resolver.start()
        created.append(resolver)
        return resolver

    yield _make
    for r in created:
        r.stop()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """
    Brief: Undo init_logging() side effects so tests do not leak handlers.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        if h not in handlers:
            h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
