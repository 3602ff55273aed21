import logging
import os
import sys
import time

# Ensure the parent directory is in the path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from peer_manager import PeerManager, PeerView

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(message)s')

ADDR_1 = ("10.0.0.1", 42424)
ADDR_2 = ("10.0.0.2", 42424)


def discover(manager: PeerManager, view: PeerView, peer_id: str, addr: tuple):
    if manager.update_peer(peer_id, addr):
        view.on_discovered(peer_id)


def test_discovery_adds_deduplicated_peers():
    manager = PeerManager()
    view = PeerView(manager)
    discover(manager, view, "a", ADDR_1)
    discover(manager, view, "a", ADDR_2)
    discover(manager, view, "b", ADDR_2)
    discover(manager, view, "a", ADDR_1)

    assert view.current_peers() == {"a", "b"}
    assert sorted(pid for pid, _ in manager.peers) == ["a", "a", "b"]


def test_expiry_removes_peer():
    manager = PeerManager()
    view = PeerView(manager)
    discover(manager, view, "a", ADDR_1)

    manager.peers[("a", ADDR_1)].last_seen = time.time() - 10
    dead = manager.prune_dead_peers(timeout=5.0)
    assert dead == [("a", ADDR_1)]
    for peer_id, _ in dead:
        view.on_expired(peer_id)

    assert view.current_peers() == set()


def test_expiry_keeps_peer_still_reachable_elsewhere():
    manager = PeerManager()
    view = PeerView(manager)
    discover(manager, view, "a", ADDR_1)
    discover(manager, view, "a", ADDR_2)

    manager.peers[("a", ADDR_1)].last_seen = time.time() - 10
    for peer_id, _ in manager.prune_dead_peers(timeout=5.0):
        view.on_expired(peer_id)

    assert view.current_peers() == {"a"}
    assert manager.has_node("a")


def test_goodbye_forgets_single_address():
    manager = PeerManager()
    view = PeerView(manager)
    discover(manager, view, "a", ADDR_1)

    assert manager.forget("a", ADDR_1) is True
    assert manager.forget("a", ADDR_1) is False
    view.on_expired("a")
    assert view.current_peers() == set()


def test_current_peers_is_a_copy():
    manager = PeerManager()
    view = PeerView(manager)
    discover(manager, view, "a", ADDR_1)

    peers = view.current_peers()
    peers.add("intruder")
    assert view.current_peers() == {"a"}
