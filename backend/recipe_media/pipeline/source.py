from __future__ import annotations
"""UploadSource — the file being uploaded, whatever form the caller has it in."""

import contextlib
import io
import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Union

from recipe_media.models.media_asset import MediaType

SourceData = Union[bytes, bytearray, str, os.PathLike, BinaryIO]


@dataclass
class UploadSource:
    """A readable, sized, named payload.

    Build it with :meth:`open`; the data is read lazily in ranges so large
    videos are never loaded whole.
    """

    name: str
    size: int
    mime_type: str
    _data: bytes | None = None
    _path: Path | None = None
    _fileobj: BinaryIO | None = None
    _base: int = 0
    _handle: BinaryIO | None = field(default=None, repr=False, compare=False)

    @classmethod
    def open(
        cls,
        data: SourceData,
        *,
        name: str | None = None,
        mime_type: str | None = None,
    ) -> "UploadSource":
        if isinstance(data, (bytes, bytearray)):
            payload = bytes(data)
            return cls(
                name=name or "upload.bin",
                size=len(payload),
                mime_type=mime_type or _guess_type(name),
                _data=payload,
            )

        if isinstance(data, (str, os.PathLike)):
            path = Path(data)
            return cls(
                name=name or path.name,
                size=path.stat().st_size,
                mime_type=mime_type or _guess_type(name or path.name),
                _path=path,
            )

        # Binary file object; must be seekable for ranged and resumed reads
        start = data.tell()
        size = data.seek(0, io.SEEK_END) - start
        data.seek(start)
        file_name = name or os.path.basename(getattr(data, "name", "") or "upload.bin")
        return cls(
            name=file_name,
            size=size,
            mime_type=mime_type or _guess_type(file_name),
            _fileobj=data,
            _base=start,
        )

    @property
    def media_type(self) -> MediaType | None:
        if self.mime_type.startswith("image/"):
            return MediaType.IMAGE
        if self.mime_type.startswith("video/"):
            return MediaType.VIDEO
        return None

    @contextlib.contextmanager
    def reading(self):
        """Keep one handle open on a path source for the duration of a transfer."""
        if self._path is None or self._handle is not None:
            yield self
            return
        with open(self._path, "rb") as f:
            self._handle = f
            try:
                yield self
            finally:
                self._handle = None

    def read_range(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes starting at ``offset``."""
        if self._data is not None:
            return self._data[offset:offset + length]
        if self._handle is not None:
            self._handle.seek(offset)
            return self._handle.read(length)
        if self._path is not None:
            with open(self._path, "rb") as f:
                f.seek(offset)
                return f.read(length)
        assert self._fileobj is not None
        self._fileobj.seek(self._base + offset)
        return self._fileobj.read(length)

    def iter_chunks(self, chunk_size: int):
        offset = 0
        while offset < self.size:
            chunk = self.read_range(offset, chunk_size)
            if not chunk:
                break
            offset += len(chunk)
            yield chunk


def _guess_type(name: str | None) -> str:
    if not name:
        return "application/octet-stream"
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"
