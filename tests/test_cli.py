import socket
import threading

import pytest

from headcount import cli
from headcount.registry import SessionRegistry
from headcount.server import start_server


@pytest.fixture
def server_port():
    registry = SessionRegistry()
    registry.login("alice")
    registry.login("bob")
    server = start_server(registry, host="127.0.0.1", port=0)
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 1
    assert "serve" in capsys.readouterr().out


def test_serve_dry_run_prints_merged_config(tmp_path, capsys):
    path = tmp_path / "headcount.yaml"
    path.write_text("port: 9000\nsession_ttl: 90\n")
    cli.main(["serve", "--config", str(path), "--port", "9100", "--dry-run"])
    out = capsys.readouterr().out
    assert "port: 9100" in out
    assert "session_ttl: 90.0" in out
    assert "sweep_interval: 30.0" in out


def test_serve_rejects_bad_config(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["serve", "--session-ttl", "0", "--dry-run"])
    assert exc.value.code == 1
    assert "session_ttl must be positive" in capsys.readouterr().err


def test_count_and_users(server_port, capsys):
    cli.main(["count", "--server-host", "127.0.0.1", "--server-port", str(server_port)])
    assert capsys.readouterr().out.strip() == "2"

    cli.main(["users", "--server-host", "127.0.0.1", "--server-port", str(server_port)])
    assert capsys.readouterr().out.split() == ["alice", "bob"]


def test_health_text(server_port, capsys):
    cli.main(["health", "--server-host", "127.0.0.1", "--server-port", str(server_port)])
    assert capsys.readouterr().out.strip() == "healthy  online=2  sessions=2"


def test_unreachable_server_exits(capsys):
    with pytest.raises(SystemExit) as exc:
        # port 1 on localhost refuses connections
        cli.main(["count", "--server-host", "127.0.0.1", "--server-port", "1"])
    assert exc.value.code == 1
    assert capsys.readouterr().err.startswith("Error:")


def _sweeper_threads():
    return [t for t in threading.enumerate() if t.name == "headcount-sweeper"]


def test_serve_reports_invalid_yaml(tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text("port: [1\n")
    with pytest.raises(SystemExit) as exc:
        cli.main(["serve", "--config", str(path), "--dry-run"])
    assert exc.value.code == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_serve_rejects_non_string_host(tmp_path, capsys):
    path = tmp_path / "headcount.yaml"
    path.write_text("host: 5\nport: 0\n")
    before = len(_sweeper_threads())
    with pytest.raises(SystemExit) as exc:
        cli.main(["serve", "--config", str(path)])
    assert exc.value.code == 1
    assert "host must be a string" in capsys.readouterr().err
    assert len(_sweeper_threads()) == before


def test_serve_bind_failure_leaves_no_sweeper(capsys):
    before = len(_sweeper_threads())
    with socket.socket() as taken:
        taken.bind(("127.0.0.1", 0))
        taken.listen()
        port = taken.getsockname()[1]
        with pytest.raises(SystemExit) as exc:
            cli.main(["serve", "--host", "127.0.0.1", "--port", str(port)])
    assert exc.value.code == 1
    assert "cannot listen" in capsys.readouterr().err
    assert len(_sweeper_threads()) == before
