import asyncio
import logging
import os
import socket
import sys

# Ensure the parent directory is in the path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import main
from transport import BroadcastTransport

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(message)s')


def base_args(tmp_path):
    return ["--storage", str(tmp_path / "songs.json"), "--init-catalog", "--log-file", "", "--port", "0"]


def test_bad_multicast_group_exits_before_loop(tmp_path, caplog):
    with caplog.at_level(logging.CRITICAL):
        rc = asyncio.run(main.main(base_args(tmp_path) + ["--group", "bogus"]))
    assert rc == 1
    assert "Cannot start node" in caplog.text


def test_busy_dashboard_port_exits_and_stops_node(tmp_path, monkeypatch, caplog):
    closed = []

    async def no_socket(self):
        pass

    monkeypatch.setattr(BroadcastTransport, "start_server", no_socket)
    monkeypatch.setattr(BroadcastTransport, "close", lambda self: closed.append(self.peer_id))

    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        with caplog.at_level(logging.CRITICAL):
            rc = asyncio.run(main.main(base_args(tmp_path) + ["--dashboard-port", str(port)]))
    finally:
        busy.close()

    assert rc == 1
    assert "cannot serve dashboard" in caplog.text
    # node.stop() ran and closed the transport
    assert len(closed) == 1
