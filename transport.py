import asyncio
import logging
import socket
import struct
from typing import Callable, Optional

from config import StartupFatalError
from protocol import Packet

logger = logging.getLogger(__name__)


class BroadcastTransport:
    """
    UDP multicast channel. Every node joined to (group, port) receives every
    datagram; delivery is best effort and unordered.
    """
    def __init__(self, group: str, port: int, peer_id: str, topic: str,
                 on_packet_received: Optional[Callable[[Packet, tuple], None]] = None):
        """
        :param peer_id: own identity, used to drop our own looped-back datagrams
        :param topic: only packets carrying this topic are delivered
        :param on_packet_received: Callback function (packet, addr) -> None
        """
        self.group = group
        self.port = port
        self.peer_id = peer_id
        self.topic = topic
        self.transport = None
        self.on_packet_received = on_packet_received

    class _Protocol(asyncio.DatagramProtocol):
        def __init__(self, outer):
            self.outer = outer

        def connection_made(self, transport):
            self.outer.transport = transport
            logger.info("Broadcast transport connection made")

        def datagram_received(self, data, addr):
            try:
                packet = Packet.unpack(data)
            except ValueError as e:
                logger.error(f"Error unpacking packet from {addr}: {e}")
                return
            self.outer.deliver(packet, addr)

        def error_received(self, exc):
            logger.error(f"Broadcast transport error received: {exc}")

        def connection_lost(self, exc):
            logger.info("Broadcast transport connection lost")

    def deliver(self, packet: Packet, addr: tuple):
        # Multicast loops our own datagrams back to us
        if packet.source == self.peer_id:
            return
        if packet.topic != self.topic:
            logger.debug(f"Ignoring packet for topic {packet.topic!r} from {addr}")
            return
        if self.on_packet_received:
            self.on_packet_received(packet, addr)

    def _make_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            # Several nodes on one host share the port
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.bind(("", self.port))
        membership = struct.pack("4sl", socket.inet_aton(self.group), socket.INADDR_ANY)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 1)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        sock.setblocking(False)
        return sock

    async def start_server(self):
        """
        Binds the multicast socket and joins the group.
        Raises StartupFatalError if the socket cannot be set up.
        """
        loop = asyncio.get_running_loop()
        try:
            sock = self._make_socket()
        except OSError as e:
            raise StartupFatalError(f"cannot join {self.group}:{self.port}: {e}") from e

        await loop.create_datagram_endpoint(lambda: self._Protocol(self), sock=sock)
        logger.info(f"Broadcast transport joined {self.group}:{self.port} (topic {self.topic!r})")

    def publish(self, packet: Packet):
        """
        Serializes and sends a packet to every node on the channel.
        """
        if self.transport is None:
            logger.warning("Transport is not open. Cannot publish packet.")
            return

        try:
            data = packet.pack()
            self.transport.sendto(data, (self.group, self.port))
        except (ValueError, OSError) as e:
            logger.error(f"Failed to publish packet type {packet.msg_type}: {e}")

    def close(self):
        if self.transport:
            self.transport.close()
            logger.info("Broadcast transport closed")
