"""Write a :class:`~routegen.models.GeneratedPackage` to disk.

Each file is written atomically (temp file in the same directory, then
``os.replace``), so an interrupted run never leaves a half-written module.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from routegen.models import GeneratedPackage

logger = logging.getLogger(__name__)


def write_package(package: GeneratedPackage, output_dir: Path) -> list[Path]:
    """Write every file of *package* under *output_dir*.

    Existing files with the same relative path are replaced; other files in
    *output_dir* are left alone.

    Returns:
        The written paths, in package order.
    """
    written = []
    for relative, content in package.files.items():
        path = output_dir / relative
        atomic_write(path, content)
        logger.debug("Wrote %s (%d bytes)", path, len(content.encode("utf-8")))
        written.append(path)
    return written


def atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a temp file and rename.

    The temp file lives next to *path* so ``os.replace`` is an atomic rename
    on POSIX. On any failure the temp file is removed and the error re-raised.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise
