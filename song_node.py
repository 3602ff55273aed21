import asyncio
import logging
from typing import Callable, Dict, List, Optional

from catalog import CatalogStore, PersistenceError
from commands import (
    CANCEL_WORD, HELP_TEXT, SONG_FIELDS, Command, CommandInputError,
    build_song_fields, parse_command, prompt_for, render_songs
)
from config import NodeContext
from peer_manager import PeerManager, PeerView
from protocol import Packet
from responder import ResponseProducer
from song_protocol import (
    TYPE_ANNOUNCE, TYPE_GOODBYE, ChatMessage, ClassificationMiss, ListRequest,
    ListResponse, Message, classify, encode
)
from stats_manager import StatsManager
from transport import BroadcastTransport

logger = logging.getLogger(__name__)

SOURCE_INPUT = "input"
SOURCE_RESPONSE = "response"
SOURCE_INBOUND = "inbound"

MESSAGE_KINDS = {
    ListRequest: "request",
    ListResponse: "response",
    ChatMessage: "chat",
}


class SongNode:
    """
    The node's single control loop and its only publisher.

    `run()` waits on operator input, completed responses and inbound packets,
    handles exactly one of them to completion, then waits again.
    """
    def __init__(self, context: NodeContext, store: CatalogStore, transport=None,
                 output: Callable[[str], None] = print):
        self.context = context
        self.peer_id = context.peer_id
        self.store = store
        self.output = output

        if transport is None:
            transport = BroadcastTransport(
                context.config.group,
                context.config.port,
                self.peer_id,
                context.topic
            )
        self.transport = transport
        self.transport.on_packet_received = self.on_packet

        self.input_queue: asyncio.Queue = asyncio.Queue()
        self.response_queue: asyncio.Queue = asyncio.Queue()
        self.inbound_queue: asyncio.Queue = asyncio.Queue()
        self._sources = (
            (SOURCE_INPUT, self.input_queue),
            (SOURCE_RESPONSE, self.response_queue),
            (SOURCE_INBOUND, self.inbound_queue),
        )
        self._getters: Dict[str, asyncio.Task] = {}

        self.producer = ResponseProducer(store, self.response_queue)
        self.peer_manager = PeerManager()
        self.peer_view = PeerView(self.peer_manager)
        self.stats = StatsManager()

        self.running = False
        self._seq = 0
        self._draft: Optional[List[str]] = None
        self._background: List[asyncio.Task] = []

        logger.info(f"Initialized SongNode {self.peer_id} with catalog {store.path}")

    async def start(self):
        await self.transport.start_server()
        self.running = True
        logger.info(f"SongNode started on topic {self.context.topic!r}")

        self._background.append(asyncio.create_task(self.loop_announce()))
        self._background.append(asyncio.create_task(self.loop_prune_peers()))

    async def stop(self):
        self.running = False
        self.transport.publish(self._control_packet(TYPE_GOODBYE))

        for task in self._background + list(self._getters.values()):
            task.cancel()
        await asyncio.gather(*self._background, *self._getters.values(), return_exceptions=True)
        self._background.clear()
        self._getters.clear()

        # Productions are never cancelled; let them finish
        await self.producer.drain()
        self.transport.close()
        logger.info("SongNode stopped")

    # ------------------------------------------------------------------
    # Event sources
    # ------------------------------------------------------------------

    def on_packet(self, packet: Packet, addr: tuple):
        """
        Callback from the transport. Only enqueues; handling happens in run().
        """
        self.inbound_queue.put_nowait((packet, addr))

    def submit_input(self, line: str):
        self.input_queue.put_nowait(line)

    async def next_event(self):
        """
        Waits until any source has an item and returns (source, item).
        Getters that did not win stay pending for the next call, so nothing
        is lost between iterations.
        """
        for name, queue in self._sources:
            if name not in self._getters:
                self._getters[name] = asyncio.create_task(queue.get())

        await asyncio.wait(self._getters.values(), return_when=asyncio.FIRST_COMPLETED)

        for name, _ in self._sources:
            task = self._getters[name]
            if task.done():
                del self._getters[name]
                return name, task.result()

    async def run(self):
        self.running = True

        while self.running:
            source, item = await self.next_event()
            try:
                self.handle_event(source, item)
            except Exception:
                logger.exception(f"Unhandled error while handling {source} event")

    def handle_event(self, source: str, item):
        if source == SOURCE_INPUT:
            self.handle_input(item)
        elif source == SOURCE_RESPONSE:
            self.handle_response(item)
        elif source == SOURCE_INBOUND:
            packet, addr = item
            self.handle_packet(packet, addr)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _next_seq(self) -> int:
        self._seq = (self._seq + 1) & 0xFFFFFFFF
        return self._seq

    def _control_packet(self, msg_type: int) -> Packet:
        return Packet(msg_type=msg_type, source=self.peer_id, topic=self.context.topic, seq=self._next_seq())

    def publish(self, message: Message):
        packet = encode(message, self.peer_id, self.context.topic, seq=self._next_seq())
        self.transport.publish(packet)
        self.stats.add_sent(MESSAGE_KINDS[type(message)])

    def handle_response(self, response: ListResponse):
        # Published untouched; the receiver check on every peer picks the audience
        self.publish(response)
        self.stats.add_response_produced()
        logger.info(f"Published response with {len(response.data)} songs for {response.receiver}")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_packet(self, packet: Packet, addr: tuple):
        """
        Dispatches one inbound packet based on msg_type.
        """
        if packet.msg_type == TYPE_ANNOUNCE:
            if self.peer_manager.update_peer(packet.source, addr):
                self.peer_view.on_discovered(packet.source)
                # Answer so the newcomer learns about us without waiting a full interval
                self.transport.publish(self._control_packet(TYPE_ANNOUNCE))
            return

        if packet.msg_type == TYPE_GOODBYE:
            self.peer_manager.forget(packet.source, addr)
            self.peer_view.on_expired(packet.source)
            return

        try:
            message = classify(packet)
        except ClassificationMiss as e:
            self.stats.add_dropped()
            logger.debug(f"Dropped packet from {packet.source}: {e}")
            return

        self.stats.add_received(MESSAGE_KINDS[type(message)])

        if isinstance(message, ListResponse):
            if message.receiver == self.peer_id:
                self.output(f"Response from {packet.source}:")
                for row in render_songs(message.data, show_visibility=False):
                    self.output(row)

        elif isinstance(message, ListRequest):
            if message.mode.addresses(self.peer_id):
                logger.info(f"Received {message.mode} request from {packet.source}")
                self.producer.produce(packet.source)

        elif isinstance(message, ChatMessage):
            self.output(f"[{packet.source}] {message.text}")

    # ------------------------------------------------------------------
    # Operator input
    # ------------------------------------------------------------------

    def handle_input(self, line: str):
        if self._draft is not None:
            self._continue_draft(line)
            return
        if not line.strip():
            return

        try:
            cmd = parse_command(line)
        except CommandInputError as e:
            self.output(f"error: {e}")
            return

        try:
            self.execute(cmd)
        except CommandInputError as e:
            self.output(f"error: {e}")
        except PersistenceError as e:
            self.stats.record_error(str(e))
            logger.error(f"Catalog error during {cmd.name}: {e}")

    def execute(self, cmd: Command):
        if cmd.name == "list_peers":
            self.handle_list_peers()

        elif cmd.name == "list_local":
            songs = self.store.load()
            self.output(f"Local Songs ({len(songs)})")
            for row in render_songs(songs):
                self.output(row)

        elif cmd.name == "list_remote":
            self.publish(ListRequest(mode=cmd.arg))
            self.output(f"Requested {cmd.arg} song list")

        elif cmd.name == "create":
            if cmd.arg is None:
                self._draft = []
                self.output(prompt_for(0))
            else:
                self._create_song(cmd.arg)

        elif cmd.name == "delete":
            if self.store.delete(cmd.arg):
                self.output(f"Deleted song with id: {cmd.arg}")
            else:
                self.output(f"no song with id {cmd.arg}")

        elif cmd.name in ("publish", "private"):
            public = cmd.name == "publish"
            if self.store.set_visibility(cmd.arg, public):
                self.output(f"{'Published' if public else 'Privatized'} song with id: {cmd.arg}")
            else:
                self.output(f"no song with id {cmd.arg}")

        elif cmd.name == "chat":
            self.publish(ChatMessage(text=cmd.arg))

        elif cmd.name == "help":
            self.output(HELP_TEXT)

        elif cmd.name == "quit":
            self.running = False

    def handle_list_peers(self):
        peers = sorted(self.peer_view.current_peers())
        self.output(f"Discovered Peers ({len(peers)}):")
        for peer_id in peers:
            self.output(peer_id)

    def _continue_draft(self, line: str):
        if line.strip().lower() == CANCEL_WORD:
            self._draft = None
            self.output("create cancelled")
            return
        self._draft.append(line)
        if len(self._draft) < len(SONG_FIELDS):
            self.output(prompt_for(len(self._draft)))
            return

        values, self._draft = self._draft, None
        try:
            fields = build_song_fields(values)
            self._create_song(fields)
        except CommandInputError as e:
            self.output(f"error: {e}")
        except PersistenceError as e:
            self.stats.record_error(str(e))
            logger.error(f"Catalog error during create: {e}")

    def _create_song(self, fields):
        title, artist, lyrics, explicit = fields
        song = self.store.create(title, artist, lyrics, explicit)
        self.output(f"Created song with id: {song.id}")

    def get_stats(self) -> dict:
        stats = self.stats.get_stats()
        stats["peer_id"] = self.peer_id
        stats["topic"] = self.context.topic
        stats["peers"] = sorted(self.peer_view.current_peers())
        stats["peer_count"] = len(stats["peers"])
        stats["pending_responses"] = len(self.producer.pending)
        stats["catalog_revision"] = self.store.revision
        try:
            songs = self.store.load()
            stats["songs"] = len(songs)
            stats["public_songs"] = sum(1 for s in songs if s.public)
        except PersistenceError as e:
            stats["songs"] = None
            stats["public_songs"] = None
            stats["last_error"] = str(e)
        return stats

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def loop_announce(self):
        """
        Periodically announce ourselves on the channel.
        """
        while self.running:
            self.transport.publish(self._control_packet(TYPE_ANNOUNCE))
            await asyncio.sleep(self.context.config.announce_interval)

    async def loop_prune_peers(self):
        while self.running:
            await asyncio.sleep(self.context.config.peer_timeout / 2)
            dead_peers = self.peer_manager.prune_dead_peers(self.context.config.peer_timeout)
            for peer_id, addr in dead_peers:
                self.peer_view.on_expired(peer_id)
            if dead_peers:
                logger.info(f"Pruned dead peers: {dead_peers}")
