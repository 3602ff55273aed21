import asyncio
import os
import sys

# Ensure the parent directory is in the path to import the node modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from catalog import CatalogStore
from config import NodeConfig, NodeContext, NodeIdentity
from protocol import Packet
from song_node import SongNode
from transport import BroadcastTransport

TOPIC = "songs"


class MemoryTransport(BroadcastTransport):
    """
    Stands in for the multicast socket: publish() hands the encoded datagram
    to every transport on the same in-memory bus, including the sender, so
    the real own-echo and topic filters in deliver() are exercised.
    """
    def __init__(self, bus: list, peer_id: str, topic: str = TOPIC):
        super().__init__("239.255.42.99", 0, peer_id, topic)
        self.bus = bus
        self.addr = ("10.0.0.%d" % (len(bus) + 1), 42424)
        self.sent = []
        self.closed = False
        bus.append(self)

    async def start_server(self):
        pass

    def publish(self, packet: Packet):
        data = packet.pack()
        self.sent.append(packet)
        for transport in list(self.bus):
            if not transport.closed:
                transport.deliver(Packet.unpack(data), self.addr)

    def close(self):
        self.closed = True


def make_node(bus: list, storage_path, topic: str = TOPIC, init: bool = True, **config):
    context = NodeContext(
        config=NodeConfig(storage_path=str(storage_path), topic=topic, **config),
        identity=NodeIdentity.generate()
    )
    store = CatalogStore(str(storage_path))
    if init:
        store.initialize()
    output = []
    node = SongNode(context, store, transport=MemoryTransport(bus, context.peer_id, topic), output=output.append)
    return node, output


def pump(node: SongNode) -> int:
    """
    Handles every packet currently waiting in the node's inbound queue.
    """
    handled = 0
    while not node.inbound_queue.empty():
        packet, addr = node.inbound_queue.get_nowait()
        node.handle_packet(packet, addr)
        handled += 1
    return handled


async def wait_for(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
