"""
Brief: Tests for the pigeonns command line (pigeonns.main).

Inputs:
  - FakeTransport fixture patched in as the default transport

Outputs:
  - None
"""

import threading

import pytest

import pigeonns.resolver as resolver_mod
from pigeonns import main as main_mod


@pytest.fixture
def fake_network(monkeypatch, transport):
    """
    Brief: Route every MdnsResolver built by the CLI to the shared FakeTransport.
    """
    monkeypatch.setattr(resolver_mod, "_default_transport_factory", lambda cfg: transport)
    return transport


def test_no_command_prints_help_and_exits_zero(capsys):
    assert main_mod.main([]) == 0
    assert "resolve" in capsys.readouterr().out


def test_resolve_success_exits_zero(fake_network, capsys):
    fake_network.answers[("abc123.local", "A")] = ("192.0.2.20", 120)
    code = main_mod.main(["resolve", "abc123"])
    out = capsys.readouterr().out
    assert code == 0
    assert "Resolved: abc123.local -> 192.0.2.20" in out
    assert fake_network.closed == 1


def test_resolve_aaaa_type_flag(fake_network, capsys):
    fake_network.answers[("dev.local", "AAAA")] = ("fe80::20", 120)
    code = main_mod.main(["resolve", "dev.local", "--type", "aaaa"])
    assert code == 0
    assert "fe80::20" in capsys.readouterr().out
    assert fake_network.queries == [("dev.local", "AAAA")]


def test_resolve_timeout_exits_one(fake_network, capsys):
    """
    Brief: An unanswered query exits 1 with the timeout message on stderr.
    """
    code = main_mod.main(["resolve", "ghost", "--timeout", "50"])
    err = capsys.readouterr().err
    assert code == 1
    assert "Error: Timeout resolving ghost.local" in err


def test_invalid_option_value_exits_one(fake_network, capsys):
    code = main_mod.main(["resolve", "ghost", "--timeout", "0"])
    assert code == 1
    assert "Error:" in capsys.readouterr().err


def test_missing_or_bad_config_exits_one(tmp_path, capsys):
    assert main_mod.main(["--config", str(tmp_path / "missing.yaml"), "resolve", "x"]) == 1
    bad = tmp_path / "bad.yaml"
    bad.write_text("resolver:\n  nonsense: 1\n")
    assert main_mod.main(["--config", str(bad), "resolve", "x"]) == 1


def test_config_file_values_are_used(fake_network, tmp_path, capsys):
    cfg = tmp_path / "pigeonns.yaml"
    cfg.write_text("resolver:\n  timeout_ms: 40\n")
    code = main_mod.main(["--config", str(cfg), "resolve", "slow"])
    assert code == 1
    assert "Timeout resolving slow.local" in capsys.readouterr().err


def test_monitor_prints_resolved_events(fake_network, capsys):
    """
    Brief: monitor prints one line per resolved address until stopped.
    """
    args = main_mod.build_parser().parse_args(["monitor"])
    stop = threading.Event()
    result = {}

    def _run():
        result["code"] = main_mod.cmd_monitor(args, {}, stop=stop)

    t = threading.Thread(target=_run)
    t.start()
    for _ in range(100):
        if fake_network.started:
            break
        threading.Event().wait(0.02)
    fake_network.respond(("tv.local", "A", "192.0.2.30", 120))
    stop.set()
    t.join(5.0)

    out = capsys.readouterr().out
    assert result["code"] == 0
    assert "A tv.local -> 192.0.2.30 (TTL: 120s)" in out
    assert fake_network.closed == 1


def test_serve_builds_server_config_from_flags(monkeypatch, fake_network):
    seen = {}

    def _fake_serve(resolver, server_cfg, log_level="info"):
        seen["host"] = server_cfg.host
        seen["port"] = server_cfg.port
        seen["level"] = log_level
        seen["timeout"] = resolver.config.timeout_ms
        seen["running"] = resolver.running

    import pigeonns.webserver as webserver_mod

    monkeypatch.setattr(webserver_mod, "serve", _fake_serve)
    code = main_mod.main(
        ["--log-level", "warn", "serve", "--port", "8080", "--host", "0.0.0.0", "--timeout", "900"]
    )
    assert code == 0
    assert seen == {
        "host": "0.0.0.0",
        "port": 8080,
        "level": "warning",
        "timeout": 900,
        "running": True,
    }
    assert fake_network.started == 1
    assert fake_network.closed == 1


def test_serve_exits_one_when_multicast_socket_fails(monkeypatch, fake_network, capsys):
    """
    Brief: A transport that cannot bind makes serve exit 1 before uvicorn runs.
    """
    from pigeonns.errors import TransportError

    def _broken_start(on_response, on_error):
        raise TransportError("Cannot open mDNS socket on port 5353: address in use")

    monkeypatch.setattr(fake_network, "start", _broken_start)

    import pigeonns.webserver as webserver_mod

    called = []
    monkeypatch.setattr(webserver_mod, "serve", lambda *a, **kw: called.append(a))
    code = main_mod.main(["serve", "--host", "127.0.0.1", "--port", "8080"])
    assert code == 1
    assert called == []
    assert "Error starting server: Cannot open mDNS socket" in capsys.readouterr().err


def test_serve_stops_resolver_when_server_raises(monkeypatch, fake_network):
    import pigeonns.webserver as webserver_mod

    def _crash(resolver, server_cfg, log_level="info"):
        raise KeyboardInterrupt

    monkeypatch.setattr(webserver_mod, "serve", _crash)
    with pytest.raises(KeyboardInterrupt):
        main_mod.main(["serve"])
    assert fake_network.closed == 1
