"""Binary storage for file payloads returned by peers."""

from __future__ import annotations

import base64
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel

from a2ahost.types import new_id


class Blob(BaseModel):
    """A decoded binary payload."""

    data: bytes
    mime_type: str = "application/octet-stream"
    name: str = ""

    @classmethod
    def from_base64(cls, data: str, mime_type: str | None = None, name: str | None = None) -> Blob:
        return cls(
            data=base64.b64decode(data),
            mime_type=mime_type or "application/octet-stream",
            name=name or "",
        )

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class BlobStore(ABC):
    @abstractmethod
    async def save(self, blob: Blob) -> str:
        """Persist ``blob`` and return where it can be retrieved."""


class LocalBlobStore(BlobStore):
    """Writes blobs into a directory; locations are ``file://`` URIs."""

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)

    async def save(self, blob: Blob) -> str:
        self._dir.mkdir(parents=True, exist_ok=True)
        name = Path(blob.name).name if blob.name else ""
        if not name:
            name = new_id() + (mimetypes.guess_extension(blob.mime_type) or "")
        path = self._dir / name
        if path.exists():
            path = self._dir / f"{path.stem}_{new_id()}{path.suffix}"
        path.write_bytes(blob.data)
        return path.resolve().as_uri()
