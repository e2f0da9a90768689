"""Configuration constants for doctree-sync."""

import os
from pathlib import Path

# Quiet period before the edit buffer is autosaved.
AUTOSAVE_DELAY_SECONDS: float = 3.0

# Child labels are cut to this many characters (plus an ellipsis).
LABEL_MAX_LENGTH: int = 30

# Returned by the content resolver when no strategy yields text.
TEXT_UNAVAILABLE: str = "[Could not extract plain text]"

# Recorded in place of a child whose subtree could not be built.
CHILD_ERROR_TEMPLATE: str = "[Error loading content for ID: {node_id}]"

# Suffix of the per-root draft key overwritten by autosave.
AUTOSAVE_MARKER: str = "autosave"

DRAFTS_DB_NAME: str = "drafts.db"

# Directory for the drafts database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/doctree-sync").expanduser(),
    Path("~/.doctree-sync").expanduser(),
    Path("~/.config/doctree-sync").expanduser(),
]

# Dynalist API token location. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/dynalist-backup-token.txt").expanduser(),
    Path("~/.config/secret/dynalist-backup-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/dynalist-token"),
]

# Cache prefix for Dynalist API responses, used only with --cache.
API_CACHE_PREFIX: str = "/tmp/doctree-sync-cache/cache-"

DYNALIST_API_URL: str = "https://dynalist.io/api/v1"
API_TIMEOUT_SECONDS: float = 30.0

# Prefix that selects the Dynalist host instead of a JSON outline file.
DYNALIST_SOURCE_PREFIX: str = "dynalist:"


def resolve_data_directory() -> Path:
    """Return the drafts directory.

    Honors ``DOCTREE_SYNC_DATA_DIR``, then the first existing entry of
    DATA_DIRECTORIES, then the first candidate (created on demand by callers).
    """
    env_dir = os.environ.get("DOCTREE_SYNC_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]
