import asyncio
import argparse
import logging
import sys
import threading

from catalog import CatalogStore, PersistenceError
from config import (
    DEFAULT_ANNOUNCE_INTERVAL, DEFAULT_GROUP, DEFAULT_PEER_TIMEOUT, DEFAULT_PORT,
    DEFAULT_STORAGE_PATH, DEFAULT_TOPIC, NodeConfig, NodeContext, StartupFatalError
)
from dashboard import start_dashboard
from song_node import SongNode

logger = logging.getLogger("Main")


def configure_logging(level: str, log_file: str):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='a'))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Peer-to-peer song catalog node")
    parser.add_argument('--storage', default=DEFAULT_STORAGE_PATH, help="Catalog JSON file")
    parser.add_argument('--init-catalog', action='store_true', help="Create an empty catalog if the file is missing")
    parser.add_argument('--topic', default=DEFAULT_TOPIC, help="Channel topic shared by all nodes")
    parser.add_argument('--group', default=DEFAULT_GROUP, help="Multicast group address")
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help="Multicast UDP port")
    parser.add_argument('--announce-interval', type=float, default=DEFAULT_ANNOUNCE_INTERVAL)
    parser.add_argument('--peer-timeout', type=float, default=DEFAULT_PEER_TIMEOUT)
    parser.add_argument('--dashboard-port', type=int, default=0, help="Serve a status page on this port (0 = off)")
    parser.add_argument('--log-level', default="INFO")
    parser.add_argument('--log-file', default="songshare.log", help="Empty string disables the log file")
    return parser.parse_args(argv)


def start_stdin_pump(loop: asyncio.AbstractEventLoop, node: SongNode):
    """
    Feeds stdin lines into the node's input queue from a daemon thread.
    End of input is turned into a quit command.
    """
    def pump():
        for line in sys.stdin:
            loop.call_soon_threadsafe(node.submit_input, line.rstrip("\n"))
        loop.call_soon_threadsafe(node.submit_input, "quit")

    threading.Thread(target=pump, name="stdin-pump", daemon=True).start()


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    config = NodeConfig(
        storage_path=args.storage,
        topic=args.topic,
        group=args.group,
        port=args.port,
        announce_interval=args.announce_interval,
        peer_timeout=args.peer_timeout,
        dashboard_port=args.dashboard_port
    )

    store = CatalogStore(config.storage_path)
    runner = None
    try:
        context = NodeContext.create(config)
        if args.init_catalog:
            store.initialize()
        node = SongNode(context, store)
        await node.start()
    except (StartupFatalError, PersistenceError) as e:
        logger.critical(f"Cannot start node: {e}")
        return 1

    if config.dashboard_port:
        try:
            runner = await start_dashboard(node, config.dashboard_port)
        except StartupFatalError as e:
            logger.critical(f"Cannot start node: {e}")
            await node.stop()
            return 1

    logger.info("==================================================")
    logger.info(f"Node {context.peer_id} ready, type 'help' for commands")
    logger.info("==================================================")

    start_stdin_pump(asyncio.get_running_loop(), node)
    try:
        await node.run()
    except asyncio.CancelledError:
        pass
    finally:
        await node.stop()
        if runner:
            await runner.cleanup()
    return 0


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
