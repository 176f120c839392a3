"""On-disk layout: one ``<name>.bin`` file per index under the data directory."""

from __future__ import annotations

from contextlib import suppress
import logging
import os
from pathlib import Path

from docindex_server.domain.model import IndexState
from docindex_server.errors import IOFailureError
from docindex_server.search import codec


logger = logging.getLogger(__name__)


class IndexFileStore:
    """Reads and atomically replaces index files.

    Files present in the directory are the enumeration of known indexes; there
    is no separate manifest.
    """

    SUFFIX = ".bin"
    TMP_SUFFIX = ".tmp"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailureError(f"Cannot create data directory {self.directory}: {exc}") from exc

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}{self.SUFFIX}"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(path.stem for path in self.directory.glob(f"*{self.SUFFIX}") if path.is_file())

    def load(self, name: str) -> IndexState | None:
        """Return the persisted state, or ``None`` when no file exists.

        A file that exists but does not decode raises ``CorruptDataError``.
        """
        path = self.path_for(name)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise IOFailureError(f"Cannot read index file {path}: {exc}") from exc
        state = codec.decode(data)
        logger.info("Loaded index %s: %d documents, next id %d", name, len(state.documents), state.next_id)
        return state

    def save(self, name: str, state: IndexState) -> Path:
        """Encode ``state`` and replace the index file in one rename."""
        path = self.path_for(name)
        tmp_path = path.with_name(path.name + self.TMP_SUFFIX)
        payload = codec.encode(state)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            tmp_path.replace(path)
            self._sync_directory()
        except OSError as exc:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise IOFailureError(f"Cannot write index file {path}: {exc}") from exc
        logger.debug("Persisted index %s (%d bytes, version %d)", name, len(payload), state.version)
        return path

    def _sync_directory(self) -> None:
        # make the rename itself survive a crash
        fd = os.open(self.directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
