"""Local storage for synthesized audio files."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

AUDIO_URL_PREFIX = "/audio"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class AudioStorageError(RuntimeError):
    """Raised when audio cannot be written to or removed from storage."""


class AudioStorage:
    """Store MP3 clips under a directory, one file per canonical text hash.

    Files are served by the app under ``/audio``; ``public_base_url`` turns
    the stored name into an absolute URL that clients can fetch directly.
    """

    def __init__(self, directory: Path, public_base_url: str) -> None:
        self._directory = directory
        self._base_url = public_base_url.rstrip("/")

    @property
    def directory(self) -> Path:
        return self._directory

    def ensure_directory(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str, extension: str = "mp3") -> Path:
        if not _SAFE_NAME.match(name):
            raise AudioStorageError(f"Invalid audio file name: {name!r}")
        return self._directory / f"{name}.{extension}"

    def url_for(self, path: Path) -> str:
        return f"{self._base_url}{AUDIO_URL_PREFIX}/{path.name}"

    async def save(self, name: str, data: bytes, *, extension: str = "mp3") -> str:
        """Write ``data`` as ``<name>.<extension>`` and return its public URL.

        Writing the same name twice overwrites the file; names are content
        hashes so the bytes are interchangeable.
        """

        if not data:
            raise AudioStorageError("Audio payload was empty")

        path = self.path_for(name, extension)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise AudioStorageError(f"Failed to store audio {path.name}: {exc}") from exc

        logger.debug("Stored %d bytes of audio at %s", len(data), path)
        return self.url_for(path)

    def _write(self, path: Path, data: bytes) -> None:
        self.ensure_directory()
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

    async def delete_url(self, audio_url: str) -> bool:
        """Remove the file behind a URL produced by :meth:`url_for`."""

        name = Path(urlsplit(audio_url).path).name
        if not name:
            return False
        path = self._directory / name
        if path.parent != self._directory:
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AudioStorageError(f"Failed to delete audio {name}: {exc}") from exc
        return True


__all__ = ["AUDIO_URL_PREFIX", "AudioStorage", "AudioStorageError"]
