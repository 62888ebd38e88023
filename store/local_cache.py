import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalCache:
    """Fast-access snapshot file on local disk.

    The directory may be wiped at any time (ephemeral containers); a missing
    file is a normal cache miss. Writes go through a temp file and `os.replace`
    so a concurrent reader sees either the old or the new snapshot, never a
    partial one.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Local cache unreadable (%s): %s", self.path, exc)
            return None

    def write(self, data: bytes) -> None:
        """Replace the cached snapshot. Raises OSError when the disk refuses."""
        write_atomic(self.path, data)


def write_atomic(path: Path, data: bytes) -> None:
    """Write `data` to a sibling temp file, then rename it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise
