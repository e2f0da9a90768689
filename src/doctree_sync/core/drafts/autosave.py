"""Debounced autosave of the edit buffer."""

import asyncio
from functools import partial

from loguru import logger

from doctree_sync.config import AUTOSAVE_DELAY_SECONDS
from doctree_sync.core.drafts.store import DraftStore, autosave_key
from doctree_sync.models.draft import Draft


class Autosaver:
    """Saves the buffer of a root after a quiet period without edits.

    Each root has at most one pending autosave; scheduling again cancels the
    pending one and restarts the quiet period. The result overwrites the
    root's autosave draft.
    """

    def __init__(self, store: DraftStore, *, delay: float = AUTOSAVE_DELAY_SECONDS) -> None:
        self.store = store
        self.delay = delay
        self._tasks: dict[str, asyncio.Task[Draft | None]] = {}

    def schedule(self, root_id: str, content: str, display_name: str | None = None) -> None:
        """(Re)start the quiet period for root_id. Needs a running event loop."""
        self.cancel(root_id)
        task = asyncio.create_task(self._save_later(root_id, content, display_name))
        self._tasks[root_id] = task
        task.add_done_callback(partial(self._forget, root_id))

    async def _save_later(
        self, root_id: str, content: str, display_name: str | None
    ) -> Draft | None:
        await asyncio.sleep(self.delay)
        if not content.strip():
            logger.debug("Autosave of {!r} skipped: empty buffer", root_id)
            return None
        try:
            draft = self.store.save(
                autosave_key(root_id), content, display_name or f"Autosave of {root_id}"
            )
        except Exception:
            logger.exception("Autosave of {!r} failed", root_id)
            return None
        logger.info("Autosaved draft {}", draft.key)
        return draft

    def _forget(self, root_id: str, task: "asyncio.Task[Draft | None]") -> None:
        if self._tasks.get(root_id) is task:
            del self._tasks[root_id]

    def cancel(self, root_id: str) -> bool:
        """Cancel the pending autosave for root_id. Returns True if one was pending."""
        task = self._tasks.pop(root_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled pending autosave of {!r}", root_id)
        return True

    def cancel_all(self) -> None:
        for root_id in list(self._tasks):
            self.cancel(root_id)

    def pending(self, root_id: str) -> bool:
        task = self._tasks.get(root_id)
        return task is not None and not task.done()

    async def wait(self, root_id: str) -> Draft | None:
        """Wait for the pending autosave of root_id, if any, and return its draft."""
        task = self._tasks.get(root_id)
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            return None
