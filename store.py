"""
Document store adapter

Single Responsibility: read, overwrite and watch the one portfolio record.

Architecture:
- Whole-document writes only (replace_one with upsert); no field patching
- Subscribers get the current record synchronously on subscribe, then a
  fresh snapshot after each successful write and on each change-stream event
- All callbacks run on the event loop thread, one at a time
- Last write wins; there is no revision check between sessions
"""
import asyncio
import copy
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from fastapi.concurrency import run_in_threadpool
from pymongo.errors import PyMongoError

logger = structlog.get_logger(__name__)

Snapshot = Optional[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]


def strip_id(record: Snapshot) -> Snapshot:
    if record is None:
        return None
    doc = {**record}
    doc.pop("_id", None)
    return doc


class DocumentStore:
    """
    Adapter over a pymongo collection holding the single portfolio record.
    """

    def __init__(self, collection, document_id: str = "data"):
        self._collection = collection
        self._document_id = document_id
        self._subscribers: List[Tuple[SnapshotCallback, Optional[ErrorCallback]]] = []
        self._write_lock: Optional[asyncio.Lock] = None
        self._watch_thread: Optional[threading.Thread] = None
        self._watch_stream = None
        self._watching = threading.Event()

    @property
    def document_id(self) -> str:
        return self._document_id

    def read(self) -> Snapshot:
        return strip_id(self._collection.find_one({"_id": self._document_id}))

    def subscribe(self, callback: SnapshotCallback, on_error: Optional[ErrorCallback] = None) -> Callable[[], None]:
        """
        Register interest in the record and deliver its current state.

        The first delivery happens before this returns, so a caller can stay
        in a loading state until subscribe() comes back. A failed initial
        read is reported through on_error instead of raising.
        """
        entry = (callback, on_error)
        self._subscribers.append(entry)
        logger.info("Subscribed to portfolio document", document_id=self._document_id)

        try:
            snapshot = self.read()
        except PyMongoError as e:
            logger.error("Failed to read portfolio document", document_id=self._document_id, error=str(e))
            if on_error is not None:
                on_error(e)
        else:
            callback(snapshot)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)
                logger.info("Unsubscribed from portfolio document", document_id=self._document_id)

        return unsubscribe

    async def write(self, document: Dict[str, Any]) -> None:
        """
        Replace the whole record with `document`.

        Writes issued through this store land in the order they were issued.
        Errors propagate to the caller.
        """
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        payload = copy.deepcopy(document)
        payload.pop("_id", None)
        async with self._write_lock:
            await run_in_threadpool(
                self._collection.replace_one,
                {"_id": self._document_id},
                {"_id": self._document_id, **payload},
                upsert=True,
            )
        logger.debug("Wrote portfolio document", document_id=self._document_id)
        self._publish(payload)

    def _publish(self, snapshot: Snapshot) -> None:
        for callback, _ in list(self._subscribers):
            callback(copy.deepcopy(snapshot))

    def _publish_error(self, error: Exception) -> None:
        for _, on_error in list(self._subscribers):
            if on_error is not None:
                on_error(error)

    # ==============
    # Change streams
    # ==============
    def start_watching(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Follow writes made by other processes through a Mongo change stream.

        Requires a replica set. Events are handed to the loop with
        call_soon_threadsafe so subscriber callbacks stay on one thread.
        """
        if self._watch_thread is not None:
            return
        self._watching.set()
        self._watch_thread = threading.Thread(
            target=self._watch, args=(loop,), name="portfolio-watch", daemon=True
        )
        self._watch_thread.start()

    def stop_watching(self) -> None:
        self._watching.clear()
        if self._watch_stream is not None:
            try:
                self._watch_stream.close()
            except PyMongoError:
                logger.exception("Error closing change stream")
        if self._watch_thread is not None:
            self._watch_thread.join(timeout=5)
        self._watch_thread = None
        self._watch_stream = None

    def _watch(self, loop: asyncio.AbstractEventLoop) -> None:
        pipeline = [{"$match": {"documentKey._id": self._document_id}}]
        try:
            with self._collection.watch(pipeline, full_document="updateLookup") as stream:
                self._watch_stream = stream
                logger.info("Watching portfolio document", document_id=self._document_id)
                for change in stream:
                    if not self._watching.is_set():
                        break
                    snapshot = strip_id(change.get("fullDocument"))
                    loop.call_soon_threadsafe(self._publish, snapshot)
        except PyMongoError as e:
            if self._watching.is_set():
                logger.error("Change stream failed", document_id=self._document_id, error=str(e))
                loop.call_soon_threadsafe(self._publish_error, e)
