"""Tests for the FastAPI-based HTTP gateway in pigeonns.webserver.

Inputs:
  - pytest fixtures and FastAPI TestClient

Outputs:
  - Assertions that /resolve, /health, / and the method/CORS rules behave as
    expected.

The tests exercise create_app() directly without starting a real uvicorn
server, keeping them fast and deterministic.
"""

from __future__ import annotations

import logging
import threading

from fastapi.testclient import TestClient

from pigeonns.records import AnswerRecord, MdnsResponse
from pigeonns.webserver import (
    _Suppress2xxAccessFilter,
    create_app,
    install_uvicorn_2xx_suppression,
)


def _seed(resolver, name: str, rtype: str, address: str, ttl: int = 60) -> None:
    resolver.ingest(MdnsResponse(answers=[AnswerRecord(name, rtype, address, ttl)]))


def test_resolve_cache_hit_returns_normalized_hostname(make_resolver) -> None:
    """Brief: /resolve returns {hostname, type, address} for a cached name.

    Inputs:
      - Resolver seeded with cam.local A 192.0.2.7.

    Outputs:
      - 200 with the normalized hostname.
    """

    r = make_resolver()
    _seed(r, "cam.local", "A", "192.0.2.7")
    client = TestClient(create_app(r))

    resp = client.get("/resolve", params={"name": "CAM"})
    assert resp.status_code == 200
    assert resp.json() == {"hostname": "cam.local", "type": "A", "address": "192.0.2.7"}


def test_resolve_accepts_hostname_alias_and_lowercase_type(make_resolver) -> None:
    r = make_resolver()
    _seed(r, "cam.local", "AAAA", "fe80::7")
    client = TestClient(create_app(r))

    resp = client.get("/resolve", params={"hostname": "cam.local", "type": "aaaa"})
    assert resp.status_code == 200
    assert resp.json()["address"] == "fe80::7"
    assert resp.json()["type"] == "AAAA"


def test_resolve_waits_for_network_answer(make_resolver, transport) -> None:
    """Brief: A cache miss waits for the transport response and returns it."""

    r = make_resolver()
    client = TestClient(create_app(r))

    def _answer() -> None:
        assert transport.query_event.wait(5.0)
        transport.respond(("peer.local", "A", "192.0.2.33", 60))

    t = threading.Thread(target=_answer)
    t.start()
    resp = client.get("/resolve?name=peer")
    t.join(5.0)
    assert resp.status_code == 200
    assert resp.json()["address"] == "192.0.2.33"
    assert transport.queries == [("peer.local", "A")]


def test_resolve_timeout_maps_to_404(make_resolver) -> None:
    r = make_resolver(timeout_ms=50)
    client = TestClient(create_app(r))

    resp = client.get("/resolve?name=ghost")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Timeout resolving ghost.local", "statusCode": 404}


def test_resolve_when_resolver_stopped_is_404(make_resolver) -> None:
    r = make_resolver(start=False)
    client = TestClient(create_app(r))

    resp = client.get("/resolve?name=x")
    assert resp.status_code == 404
    assert "not running" in resp.json()["error"]


def test_resolve_missing_name_or_bad_type_is_400(make_resolver) -> None:
    r = make_resolver()
    client = TestClient(create_app(r))

    resp = client.get("/resolve")
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "Missing required parameter: name or hostname",
        "statusCode": 400,
    }

    resp = client.get("/resolve?name=x&type=MX")
    assert resp.status_code == 400
    assert resp.json()["statusCode"] == 400


def test_health_reports_cache_size_and_entries(make_resolver) -> None:
    r = make_resolver(ttl=120)
    _seed(r, "a.local", "A", "192.0.2.1", 30)
    client = TestClient(create_app(r))

    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "cache": {
            "size": 1,
            "entries": {"a.local:A": {"address": "192.0.2.1", "expiresIn": 30}},
        },
    }


def test_index_lists_endpoints(make_resolver) -> None:
    client = TestClient(create_app(make_resolver()))
    body = client.get("/").json()
    assert body["name"] == "PigeonNS mDNS Resolution API"
    assert set(body["endpoints"]) == {"/resolve", "/health"}


def test_unknown_path_is_404_json(make_resolver) -> None:
    client = TestClient(create_app(make_resolver()))
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found", "statusCode": 404}


def test_non_get_methods_are_405_and_options_is_204(make_resolver) -> None:
    """Brief: Only GET and OPTIONS are accepted, on any path."""

    client = TestClient(create_app(make_resolver()))

    for method in ("POST", "PUT", "DELETE", "PATCH"):
        resp = client.request(method, "/resolve?name=x")
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method not allowed", "statusCode": 405}

    resp = client.options("/resolve")
    assert resp.status_code == 204
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-methods"] == "GET, OPTIONS"


def test_cors_headers_present_by_default_and_can_be_disabled(make_resolver) -> None:
    r = make_resolver()
    resp = TestClient(create_app(r)).get("/health")
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "Content-Type"

    resp = TestClient(create_app(r, cors=False)).get("/health")
    assert "access-control-allow-origin" not in resp.headers


def test_lifespan_starts_and_stops_managed_resolver(make_resolver, transport) -> None:
    r = make_resolver(start=False)
    app = create_app(r, manage_resolver=True)
    with TestClient(app) as client:
        assert r.running
        assert client.get("/health").status_code == 200
    assert not r.running
    assert transport.closed == 1


def test_suppress_2xx_filter_and_install_is_idempotent() -> None:
    f = _Suppress2xxAccessFilter()
    ok = logging.LogRecord("uvicorn.access", logging.INFO, "", 0, "%s %s %s", ("GET", "/", 200), None)
    bad = logging.LogRecord("uvicorn.access", logging.INFO, "", 0, "%s %s %s", ("GET", "/", 404), None)
    odd = logging.LogRecord("uvicorn.access", logging.INFO, "", 0, "plain", None, None)
    assert f.filter(ok) is False
    assert f.filter(bad) is True
    assert f.filter(odd) is True

    install_uvicorn_2xx_suppression()
    install_uvicorn_2xx_suppression()
    access = logging.getLogger("uvicorn.access")
    assert sum(isinstance(x, _Suppress2xxAccessFilter) for x in access.filters) == 1


def test_app_module_exposes_unstarted_managed_app() -> None:
    """Brief: Importing pigeonns.app builds the app without opening sockets."""

    from fastapi import FastAPI

    import pigeonns.app as app_mod

    assert isinstance(app_mod.app, FastAPI)
    assert app_mod.app.state.resolver is app_mod.resolver
    assert not app_mod.resolver.running
