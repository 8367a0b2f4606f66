"""Tests for the entry point: fatal startup errors and signal-driven exit."""

import logging
import signal
import threading
import time

import grpc
import pytest
from envoy.service.accesslog.v3 import als_pb2_grpc

import server_main
from conftest import http_message, make_http_entry
from logsink.server import BindError, LogSinkServer


@pytest.fixture(autouse=True)
def base_env(monkeypatch, tmp_path):
    for env_var in ("CONFIG_PATH", "SHUTDOWN_GRACE", "MAX_WORKERS", "WAF_HEADER"):
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "0")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOGFILE", str(tmp_path / "access.log"))
    yield
    logging.basicConfig(level=logging.WARNING, force=True)


def test_unopenable_log_file_exits_1(monkeypatch, tmp_path):
    monkeypatch.setenv("LOGFILE", str(tmp_path))  # a directory
    with pytest.raises(SystemExit) as exc:
        server_main.main()
    assert exc.value.code == 1


def test_bind_failure_exits_1(monkeypatch):
    def failing_start(self):
        raise BindError("cannot bind 127.0.0.1:0")

    monkeypatch.setattr(LogSinkServer, "start", failing_start)
    with pytest.raises(SystemExit) as exc:
        server_main.main()
    assert exc.value.code == 1


def test_invalid_config_exits_1(monkeypatch):
    monkeypatch.setenv("PORT", "ninety")
    with pytest.raises(SystemExit) as exc:
        server_main.main()
    assert exc.value.code == 1


def test_signal_drains_and_exits_0(monkeypatch, tmp_path):
    handlers = {}
    monkeypatch.setattr(server_main.signal, "signal",
                        lambda signum, handler: handlers.__setitem__(signum, handler))

    started = {}
    original_start = LogSinkServer.start

    def recording_start(self):
        original_start(self)
        started["port"] = self.port

    monkeypatch.setattr(LogSinkServer, "start", recording_start)

    result = {}
    runner = threading.Thread(target=lambda: result.setdefault("code", server_main.main()))
    runner.start()

    deadline = time.monotonic() + 5
    while "port" not in started or signal.SIGTERM not in handlers:
        assert time.monotonic() < deadline, "server never started"
        time.sleep(0.05)

    channel = grpc.insecure_channel(f"127.0.0.1:{started['port']}")
    try:
        stub = als_pb2_grpc.AccessLogServiceStub(channel)
        stub.StreamAccessLogs(iter([http_message(make_http_entry())]), timeout=10)
    finally:
        channel.close()

    handlers[signal.SIGTERM](signal.SIGTERM, None)
    runner.join(timeout=10)

    assert not runner.is_alive()
    assert result["code"] == 0
    assert len((tmp_path / "access.log").read_text().splitlines()) == 1
