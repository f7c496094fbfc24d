"""Local filesystem backend: ``<prefix><user_obj>`` and ``<prefix><group_obj>``."""

import os
import stat
import tempfile
from typing import Optional

from ..errors import TransientIOError
from ..roster import Kind
from .base import PersistenceBackend


class FileBackend(PersistenceBackend):
    """Stores each snapshot in its own file.

    The prefix is concatenated verbatim, so ``"state/"`` gives
    ``state/Users.json`` while ``"roster-"`` gives ``roster-Users.json``.
    Writes go to a temporary file in the same directory and are renamed
    over the target, so a failed write leaves the previous snapshot intact.
    """

    name = "file"

    def __init__(self, prefix: str, user_obj: str, group_obj: str, logger=None):
        super().__init__(user_obj, group_obj, logger=logger)
        self.prefix = prefix

    def location(self, kind: Kind) -> str:
        return f"{self.prefix}{self.objects[kind]}"

    def _read(self, kind: Kind) -> Optional[bytes]:
        path = self.location(kind)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TransientIOError(f"Cannot read {kind.label} file: {exc}",
                                   roster_kind=kind, location=path) from exc

    def _write(self, kind: Kind, data: bytes) -> None:
        path = self.location(kind)
        directory = os.path.dirname(path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".roster-", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.write(b"\n")
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _snapshot_mode(path))
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as exc:
            raise TransientIOError(f"Cannot write {kind.label} file: {exc}",
                                   roster_kind=kind, location=path) from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)


def _snapshot_mode(path: str) -> int:
    """Permission bits for a rewritten snapshot.

    An existing file keeps its mode; a new one gets ``0o666`` minus the
    process umask, as ``open()`` would give it.  ``mkstemp`` alone would
    leave every snapshot at ``0o600``.
    """
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask
