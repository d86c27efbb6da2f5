from __future__ import annotations

import logging
from pathlib import Path

from errbook.infra.ports.storage import IMAGE_EXTENSIONS, ImageStoragePort
from errbook.utils.ids import new_public_id

logger = logging.getLogger(__name__)


class LocalFileStorage(ImageStoragePort):
    """Keeps uploaded question photos on local disk under ``base_dir``.

    Photos land in ``<base_dir>/questions/img_<ulid>.<ext>`` and are addressed
    as ``<url_prefix>/questions/...``.
    """

    def __init__(self, base_dir: Path, url_prefix: str = "/uploads"):
        self.base_dir = base_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        dest = (self.base_dir / key).resolve()
        if self.base_dir.resolve() not in dest.parents:
            raise ValueError(f"Storage key escapes upload directory: {key!r}")
        return dest

    def save_image(self, data: bytes, mime_type: str) -> str:
        ext = IMAGE_EXTENSIONS.get(mime_type.lower())
        if ext is None:
            raise ValueError(f"Unsupported image type: {mime_type}")
        key = f"questions/{new_public_id('img_')}.{ext}"
        dest = self._path_for(key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), dest)
        return f"{self.url_prefix}/{key}"

    def delete_image(self, url: str) -> bool:
        prefix = f"{self.url_prefix}/"
        if not url.startswith(prefix):
            return False
        path = self._path_for(url.removeprefix(prefix))
        if not path.is_file():
            return False
        path.unlink()
        return True
