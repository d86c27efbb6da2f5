from __future__ import annotations

from abc import ABC, abstractmethod

# Photo formats accepted for analysis, with the file extension each is stored under.
IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


class ImageStoragePort(ABC):
    """Keeps the original question photos that notebook items point back to."""

    @abstractmethod
    def save_image(self, data: bytes, mime_type: str) -> str:
        """Store one photo and return the URL recorded as ``original_image_url``."""

    @abstractmethod
    def delete_image(self, url: str) -> bool:
        """Remove a stored photo by its URL; False when nothing was stored there."""
