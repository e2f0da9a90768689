"""Shared test fixtures."""

import json
from pathlib import Path

import pytest

from doctree_sync.core.drafts.backends import MemoryKeyValueStore
from doctree_sync.core.drafts.store import DraftStore
from doctree_sync.hosts.memory import MemoryOutline, load_outline
from tests.unit.fakes import NOTES_OUTLINE, FakeClock


@pytest.fixture
def outline() -> MemoryOutline:
    """Return the notes outline: root -> n1 (-> n1a), n2 (line array), n3."""
    return load_outline(json.loads(json.dumps(NOTES_OUTLINE)))


@pytest.fixture
def outline_file(tmp_path: Path) -> Path:
    path = tmp_path / "notes.json"
    path.write_text(json.dumps(NOTES_OUTLINE))
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def drafts(clock: FakeClock) -> DraftStore:
    return DraftStore(MemoryKeyValueStore(), clock=clock)
