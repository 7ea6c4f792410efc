"""
Unit tests for the command-line entry point.
"""

import threading
import time

import pytest

from metrics_server import MetricsServer
from metrics_server.__main__ import build_parser, load_file, main, run_producer


class TestArguments:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("METRICS_ADDRESS", raising=False)
        monkeypatch.delenv("METRICS_PATH", raising=False)

        args = build_parser().parse_args([])

        assert args.address == "127.0.0.1:9100"
        assert args.path == "/metrics"
        assert args.file is None
        assert args.interval == 5.0

    def test_env_provides_defaults(self, monkeypatch):
        monkeypatch.setenv("METRICS_ADDRESS", "0.0.0.0:9200")

        args = build_parser().parse_args([])

        assert args.address == "0.0.0.0:9200"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert "metrics-server" in capsys.readouterr().out


class TestMain:

    def test_bad_address_exits_1(self, capsys):
        assert main(["--address", "not-an-address"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_bad_path_exits_1(self, capsys):
        assert main(["--address", "127.0.0.1:0", "--path", "metrics"]) == 1
        assert "Error:" in capsys.readouterr().err


class TestFileProducer:

    def test_load_file(self, tmp_path):
        path = tmp_path / "metrics.prom"
        path.write_bytes(b"up 1\n")
        server = MetricsServer()

        assert load_file(server, str(path)) == 5
        assert server.snapshot() == b"up 1\n"

    def test_missing_file_keeps_previous_payload(self, tmp_path):
        server = MetricsServer()
        server.update(b"previous")

        assert load_file(server, str(tmp_path / "missing.prom")) is None
        assert server.snapshot() == b"previous"

    def test_run_producer_refreshes_until_shutdown(self, tmp_path, config):
        path = tmp_path / "metrics.prom"
        path.write_bytes(b"v1\n")
        server = MetricsServer(config)
        loop = server.serve()

        producer = threading.Thread(
            target=run_producer,
            args=(server, loop, str(path), 0.05),
        )
        producer.start()
        try:
            assert _wait_for(lambda: server.snapshot() == b"v1\n")

            path.write_bytes(b"v2\n")
            assert _wait_for(lambda: server.snapshot() == b"v2\n")
        finally:
            loop.shutdown()
            producer.join(timeout=5.0)

        assert not producer.is_alive()


def _wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()
