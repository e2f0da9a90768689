"""Versioned local drafts of serialized edit buffers."""

import json
import time
from collections.abc import Callable

from loguru import logger

from doctree_sync.config import AUTOSAVE_MARKER
from doctree_sync.errors import DraftNotFoundError
from doctree_sync.models.draft import Draft
from doctree_sync.protocols import KeyValueStoreProtocol


def now_ms() -> int:
    return int(time.time() * 1000)


def make_draft_key(node_id: str, timestamp: int | None = None) -> str:
    """Key of an explicit draft of node_id; timestamp defaults to now."""
    return f"{node_id}:{timestamp if timestamp is not None else now_ms()}"


def autosave_key(node_id: str) -> str:
    """The single key autosave overwrites for node_id."""
    return f"{node_id}:{AUTOSAVE_MARKER}"


class DraftStore:
    """Drafts keyed by string, flushed to a backend on every mutation.

    Constructed from whatever the backend already holds; afterwards it is
    only changed through save() and delete().
    """

    def __init__(
        self,
        backend: KeyValueStoreProtocol,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._drafts: dict[str, Draft] = {}
        for key in backend.list_keys():
            raw = backend.get(key)
            if raw is None:
                continue
            try:
                self._drafts[key] = Draft.from_dict(json.loads(raw))
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping unreadable draft {!r}", key)
        logger.debug("Loaded {} drafts", len(self._drafts))

    def save(self, key: str, content: str, display_name: str | None = None) -> Draft:
        """Create or overwrite the draft under key with the current time."""
        draft = Draft(
            key=key,
            timestamp=self._clock(),
            content=content,
            display_name=display_name or key,
        )
        self._backend.set(key, json.dumps(draft.to_dict(), ensure_ascii=False))
        self._drafts[key] = draft
        logger.debug("Saved draft {!r} ({} chars)", key, len(content))
        return draft

    def load(self, key: str) -> Draft:
        try:
            return self._drafts[key]
        except KeyError:
            raise DraftNotFoundError(key) from None

    def delete(self, key: str) -> None:
        if key not in self._drafts:
            raise DraftNotFoundError(key)
        self._backend.delete(key)
        del self._drafts[key]
        logger.debug("Deleted draft {!r}", key)

    def list_drafts(self) -> list[Draft]:
        """All drafts, newest first."""
        return sorted(self._drafts.values(), key=lambda d: (-d.timestamp, d.key))

    def drafts_for(self, node_id: str) -> list[Draft]:
        prefix = f"{node_id}:"
        return [d for d in self.list_drafts() if d.key.startswith(prefix)]

    def __contains__(self, key: object) -> bool:
        return key in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)
