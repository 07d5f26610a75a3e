from __future__ import annotations

from pathlib import Path
from typing import Protocol

from leadflow.core.config import get_settings


class MediaStorage(Protocol):
    def delete(self, url: str) -> None: ...


class LocalMediaStorage:
    """Uploads kept under a local directory that is served from ``base_url``."""

    def __init__(self, root: str | Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path_for(self, url: str) -> Path:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"url not managed by this storage: {url}")
        relative = url[len(prefix):]
        path = (self.root / relative).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"url escapes media root: {url}")
        return path

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        if not path.exists():
            raise FileNotFoundError(f"file not found: {url}")
        path.unlink()


def get_media_storage() -> MediaStorage:
    settings = get_settings()
    return LocalMediaStorage(settings.media_root, settings.media_base_url)
