"""Open an outline source by name: a JSON outline file or a Dynalist document."""

from pathlib import Path

from loguru import logger

from doctree_sync.config import DYNALIST_SOURCE_PREFIX
from doctree_sync.hosts.dynalist.api import DynalistApi
from doctree_sync.hosts.dynalist.document import DynalistDocument
from doctree_sync.hosts.memory import MemoryOutline, load_outline_file, save_outline_file


class OutlineSource:
    """A host plus where its changes go.

    File outlines are edited in memory and written back by persist();
    Dynalist documents are changed live by every write.
    """

    def __init__(
        self,
        name: str,
        host: MemoryOutline | DynalistDocument,
        *,
        path: Path | None = None,
    ) -> None:
        self.name = name
        self.host = host
        self.path = path

    @property
    def root_id(self) -> str:
        if isinstance(self.host, MemoryOutline):
            return self.host.root.id
        return "root"

    @property
    def is_live(self) -> bool:
        return isinstance(self.host, DynalistDocument)

    def persist(self, output: Path | None = None) -> Path | None:
        """Write a file outline back (to output if given). Returns the path written."""
        if not isinstance(self.host, MemoryOutline):
            if output is not None:
                logger.warning("Ignoring output path for live source {}", self.name)
            return None
        target = output or self.path
        if target is None:
            return None
        save_outline_file(self.host, target)
        return target


def open_source(source: str, *, from_cache: bool = False) -> OutlineSource:
    """Open ``dynalist:<file_id>`` or a path to an outline JSON file.

    Raises:
        FileNotFoundError: The outline file does not exist.
        ValueError: Malformed source name or outline file.
        RuntimeError: No Dynalist token file was found.
    """
    if source.startswith(DYNALIST_SOURCE_PREFIX):
        file_id = source[len(DYNALIST_SOURCE_PREFIX) :].strip()
        if not file_id:
            msg = f"Missing Dynalist file id in {source!r}"
            raise ValueError(msg)
        api = DynalistApi(from_cache=from_cache)
        return OutlineSource(source, DynalistDocument(api, file_id))

    path = Path(source).expanduser()
    if not path.exists():
        msg = f"Outline file not found: {path}"
        raise FileNotFoundError(msg)
    return OutlineSource(source, load_outline_file(path), path=path)
