import logging
import time
from typing import Dict, List, Set, Tuple

logger = logging.getLogger(__name__)


class Peer:
    def __init__(self, peer_id: str, addr: tuple):
        self.peer_id = peer_id
        self.addr = addr
        self.last_seen = time.time()

    def update_seen(self):
        self.last_seen = time.time()

    def __repr__(self):
        return f"<Peer {self.peer_id} @ {self.addr[0]}:{self.addr[1]}>"


class PeerManager:
    """
    Discovery table fed by announce packets: one entry per (peer_id, addr).
    """
    def __init__(self):
        self.peers: Dict[Tuple[str, tuple], Peer] = {}

    def update_peer(self, peer_id: str, addr: tuple) -> bool:
        """
        Refreshes the entry for (peer_id, addr), adding it if new.
        Returns True when the entry was not known before.
        """
        key = (peer_id, addr)
        if key in self.peers:
            self.peers[key].update_seen()
            return False
        self.peers[key] = Peer(peer_id, addr)
        return True

    def forget(self, peer_id: str, addr: tuple) -> bool:
        return self.peers.pop((peer_id, addr), None) is not None

    def has_node(self, peer_id: str) -> bool:
        return any(pid == peer_id for pid, _ in self.peers)

    def prune_dead_peers(self, timeout: float) -> List[Tuple[str, tuple]]:
        """
        Removes entries that haven't been seen for 'timeout' seconds.
        """
        now = time.time()
        dead = [key for key, peer in self.peers.items() if now - peer.last_seen > timeout]
        for key in dead:
            del self.peers[key]
        return dead


class PeerView:
    """
    Set of peer ids currently visible through discovery.
    Only discovery notifications write to it.
    """
    def __init__(self, discovery: PeerManager):
        self.discovery = discovery
        self._peers: Set[str] = set()

    def on_discovered(self, peer_id: str):
        if peer_id not in self._peers:
            logger.info(f"Discovered peer {peer_id}")
        self._peers.add(peer_id)

    def on_expired(self, peer_id: str):
        # The peer may still be reachable through another address
        if self.discovery.has_node(peer_id):
            return
        if peer_id in self._peers:
            self._peers.discard(peer_id)
            logger.info(f"Peer {peer_id} expired")

    def current_peers(self) -> Set[str]:
        return set(self._peers)
