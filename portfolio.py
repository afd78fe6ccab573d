"""
Portfolio state controller

Owns the in-memory copy of the portfolio document. Every mutation builds a
new document from the current one, swaps it in immediately and then writes
the whole thing to the store without waiting for the result. Snapshots coming
back from the store replace the local copy wholesale, except while this
controller still has writes of its own in flight.

States:
- LOADING: no snapshot delivered yet
- READY: holds a document; never goes back to LOADING
"""
import asyncio
import copy
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

import structlog

from schemas import SECTIONS, default_document
from store import DocumentStore, Snapshot

logger = structlog.get_logger(__name__)

SAVE_FAILED = "Error saving data. Please try again."

Document = Dict[str, Any]


class ControllerState(str, Enum):
    LOADING = "loading"
    READY = "ready"


class ControllerNotReady(Exception):
    pass


class UnknownSection(Exception):
    def __init__(self, section: str):
        super().__init__(f"Unknown section: {section}")
        self.section = section


def parse_skills(skills: Union[str, Iterable[str]]) -> List[str]:
    """Accept "a, b, c" or a list; trim each name and drop empties."""
    if isinstance(skills, str):
        skills = skills.split(",")
    return [s.strip() for s in skills if s and s.strip()]


class PortfolioController:
    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], float] = time.time,
        on_save_error: Optional[Callable[[str], None]] = None,
    ):
        self._store = store
        self._clock = clock
        self._on_save_error = on_save_error
        self._state = ControllerState.LOADING
        # What is shown if the first read fails
        self._document: Document = default_document()
        self._listeners: List[Callable[[Document], None]] = []
        self._pending: Set[asyncio.Task] = set()
        self._in_flight = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._last_id = 0

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is ControllerState.READY

    # =========
    # Lifecycle
    # =========
    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_snapshot, self._on_subscription_error)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def flush(self) -> None:
        """Wait for every write scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def add_listener(self, callback: Callable[[Document], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if self._in_flight:
            # Echoes of our own older writes; the newest local edit is still on its way
            logger.debug("Skipping snapshot while writes are in flight", in_flight=self._in_flight)
            return
        if snapshot is None:
            logger.info("Portfolio document missing, initializing default", document_id=self._store.document_id)
            document = default_document()
            self._apply(document)
            self._persist(document)
        else:
            self._apply(snapshot)
        if self._state is ControllerState.LOADING:
            self._state = ControllerState.READY
            logger.info("Portfolio controller ready")

    def _on_subscription_error(self, error: Exception) -> None:
        logger.error("Portfolio subscription failed", error=str(error))
        # Keep whatever is held so the UI never waits forever
        self._state = ControllerState.READY

    def _apply(self, document: Document) -> None:
        self._document = document
        for callback in list(self._listeners):
            callback(copy.deepcopy(document))

    # ===========
    # Persistence
    # ===========
    def _persist(self, document: Document) -> None:
        self._in_flight += 1
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Only tests and scripts call in without a loop; there the write
            # completes before returning. Inside the app it is always scheduled.
            asyncio.run(self._save(document))
            return
        task = loop.create_task(self._save(document))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, document: Document) -> None:
        try:
            await self._store.write(document)
        except Exception as e:
            # Local state stays as-is; there is no rollback or retry
            logger.error("Failed to save portfolio document", error=str(e))
            if self._on_save_error is not None:
                self._on_save_error(SAVE_FAILED)
        finally:
            self._in_flight -= 1

    def _commit(self, document: Document) -> Document:
        self._apply(document)
        self._persist(document)
        return copy.deepcopy(document)

    def _require_ready(self) -> Document:
        if self._state is not ControllerState.READY:
            raise ControllerNotReady("Portfolio is still loading")
        return self._document

    def _next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return candidate

    # ==========
    # Operations
    # ==========
    def get_snapshot(self) -> Document:
        return copy.deepcopy(self._require_ready())

    def update_section(self, section: str, fields: Dict[str, Any]) -> Document:
        """
        Shallow merge: keys in `fields` replace the section's keys, others
        stay. Nested values (e.g. one contact channel) are replaced whole.
        """
        current = self._require_ready()
        if section not in SECTIONS:
            raise UnknownSection(section)
        merged = {**current.get(section, {}), **copy.deepcopy(fields)}
        return self._commit({**current, section: merged})

    def _add(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        current = self._require_ready()
        item = {**copy.deepcopy(fields), "id": self._next_id(), "visible": True}
        self._commit({**current, collection: [*current.get(collection, []), item]})
        return copy.deepcopy(item)

    def _update(self, collection: str, item_id: int, fields: Dict[str, Any]) -> Document:
        current = self._require_ready()
        changes = {k: v for k, v in copy.deepcopy(fields).items() if k != "id"}
        items = [
            {**item, **changes} if item.get("id") == item_id else item
            for item in current.get(collection, [])
        ]
        return self._commit({**current, collection: items})

    def _delete(self, collection: str, item_id: int) -> Document:
        current = self._require_ready()
        items = [item for item in current.get(collection, []) if item.get("id") != item_id]
        return self._commit({**current, collection: items})

    def add_project(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields.get("title"):
            raise ValueError("Project title is required")
        return self._add("projects", fields)

    def update_project(self, project_id: int, fields: Dict[str, Any]) -> Document:
        return self._update("projects", project_id, fields)

    def delete_project(self, project_id: int) -> Document:
        return self._delete("projects", project_id)

    def add_resume(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields.get("title") or not fields.get("driveFileId"):
            raise ValueError("Resume title and driveFileId are required")
        return self._add("resumes", fields)

    def update_resume(self, resume_id: int, fields: Dict[str, Any]) -> Document:
        return self._update("resumes", resume_id, fields)

    def delete_resume(self, resume_id: int) -> Document:
        return self._delete("resumes", resume_id)

    # Skill categories live inside `about`, so they go through update_section
    def _skill_categories(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._require_ready().get("about", {}).get("skillCategories") or [])

    def add_skill_category(self, category: str, skills: Union[str, Iterable[str]]) -> Document:
        if not category:
            raise ValueError("Category name is required")
        categories = self._skill_categories()
        categories.append({"category": category, "skills": parse_skills(skills)})
        return self.update_section("about", {"skillCategories": categories})

    def update_skill_category(self, index: int, category: str, skills: Union[str, Iterable[str]]) -> Document:
        categories = self._skill_categories()
        if not 0 <= index < len(categories):
            raise ValueError(f"No skill category at index {index}")
        categories[index] = {"category": category, "skills": parse_skills(skills)}
        return self.update_section("about", {"skillCategories": categories})

    def delete_skill_category(self, index: int) -> Document:
        categories = self._skill_categories()
        if not 0 <= index < len(categories):
            raise ValueError(f"No skill category at index {index}")
        del categories[index]
        return self.update_section("about", {"skillCategories": categories})
