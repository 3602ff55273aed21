import asyncio
import logging
from typing import Set

from catalog import CatalogStore, PersistenceError
from song_protocol import ListResponse

logger = logging.getLogger(__name__)


class ResponseProducer:
    """
    Builds responses to accepted list requests off the coordinator's path.

    Each request gets its own task; the catalog read runs in a worker thread
    and the finished ListResponse lands on `queue`, which only the
    coordinator consumes.
    """
    def __init__(self, store: CatalogStore, queue: asyncio.Queue):
        self.store = store
        self.queue = queue
        self.pending: Set[asyncio.Task] = set()

    def produce(self, requester: str) -> asyncio.Task:
        task = asyncio.create_task(self._respond_with_public_songs(requester))
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        return task

    async def _respond_with_public_songs(self, requester: str):
        try:
            songs = await asyncio.to_thread(self.store.public_snapshot)
        except PersistenceError as e:
            logger.error(f"Error fetching local songs to answer request from {requester}: {e}")
            return
        except Exception:
            logger.exception(f"Unexpected error building response for {requester}")
            return

        await self.queue.put(ListResponse(receiver=requester, data=songs))
        logger.debug(f"Queued response with {len(songs)} songs for {requester}")

    async def drain(self):
        """
        Waits for every in-flight production to finish.
        """
        if self.pending:
            await asyncio.gather(*list(self.pending), return_exceptions=True)
