"""Output directory for rendered payment request PDFs."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .errors import RenderError

logger = logging.getLogger(__name__)

PDF_SUFFIX = ".pdf"


@dataclass(frozen=True)
class StoredPdf:
    name: str
    path: str
    size: int

    def to_dict(self) -> dict:
        return {"name": self.name, "path": self.path, "size": self.size}


class PdfStorage:
    def __init__(self, output_dir: str) -> None:
        self.output_dir = os.path.abspath(output_dir)

    def exists(self) -> bool:
        return os.path.isdir(self.output_dir)

    def save(self, request_number: str, blob: bytes) -> str:
        filename = f"{request_number}{PDF_SUFFIX}"
        path = self.resolve_target(filename)
        if path is None:
            raise RenderError(f"Failed to generate PDF: invalid file name {filename!r}")
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            with open(path, "wb") as handle:
                handle.write(blob)
        except OSError as exc:
            raise RenderError(f"Failed to generate PDF: {exc}") from exc
        logger.info("Wrote %s (%d bytes)", path, len(blob))
        return path

    def list(self) -> List[StoredPdf]:
        if not self.exists():
            return []
        files = []
        for name in sorted(os.listdir(self.output_dir)):
            if not name.endswith(PDF_SUFFIX):
                continue
            path = os.path.join(self.output_dir, name)
            if os.path.isfile(path):
                files.append(StoredPdf(name=name, path=path, size=os.path.getsize(path)))
        return files

    def resolve_target(self, filename: str) -> Optional[str]:
        """Return the absolute path for ``filename`` if it stays inside the output directory."""
        if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
            return None
        return os.path.join(self.output_dir, filename)

    def resolve(self, filename: str) -> Optional[str]:
        """Return the path of an existing stored file, or ``None``."""
        path = self.resolve_target(filename)
        if path is None or not os.path.isfile(path):
            return None
        return path
