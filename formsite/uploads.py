"""
Local disk storage for uploaded files.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import BinaryIO, Optional

from formsite.errors import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]", re.IGNORECASE | re.ASCII)


def build_upload_filename(original: str, now_ms: Optional[int] = None) -> str:
    """
    Return ``<epoch ms>_<base><ext>`` for an uploaded file.

    Characters of the base name outside ``[A-Za-z0-9_-]`` are replaced with
    ``_``; the extension is kept as sent.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    name = PurePath(original or "").name
    base, ext = os.path.splitext(name)
    return f"{now_ms}_{_UNSAFE_CHARS.sub('_', base)}{ext}"


@dataclass
class LocalUploadStore:
    """Writes uploads under ``directory`` and serves them from ``url_prefix``."""

    directory: Path
    url_prefix: str = "/uploads"

    def __post_init__(self):
        self.directory = Path(self.directory)

    def ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create {self.directory}: {exc}") from exc

    def save(self, original_filename: str, fileobj: BinaryIO) -> str:
        filename = build_upload_filename(original_filename)
        self.ensure_directory()
        dest = self.directory / filename
        try:
            with open(dest, "wb") as out:
                shutil.copyfileobj(fileobj, out)
        except OSError as exc:
            raise StorageError(f"Cannot write upload {dest}: {exc}") from exc
        logger.info("Stored upload %s", dest)
        return f"{self.url_prefix}/{filename}"
