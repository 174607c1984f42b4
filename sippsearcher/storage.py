"""
Storage for inventory photos: a local upload directory and an in-memory
test double.
"""

from __future__ import annotations

import os
import random
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

MAX_PHOTO_BYTES = 5 * 1024 * 1024


class InvalidUploadError(ValueError):
    """Raised for uploads that are not images or are too large."""


class PhotoStorage(Protocol):
    """Saves an uploaded photo and returns the URL path it is served from."""

    def save(self, filename: str, content_type: Optional[str], data: bytes) -> str:
        ...


def _validate(content_type: Optional[str], data: bytes) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise InvalidUploadError("Only image files are allowed")
    if len(data) > MAX_PHOTO_BYTES:
        raise InvalidUploadError("Photo exceeds the 5MB limit")


def _generated_name(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext.lower()}"


@dataclass
class LocalPhotoStorage:
    """Writes photos under ``upload_dir``, served at ``url_prefix``."""

    upload_dir: str
    url_prefix: str = "/uploads"

    def save(self, filename: str, content_type: Optional[str], data: bytes) -> str:
        _validate(content_type, data)
        os.makedirs(self.upload_dir, exist_ok=True)
        name = _generated_name(filename)
        with open(os.path.join(self.upload_dir, name), "wb") as f:
            f.write(data)
        return f"{self.url_prefix}/{name}"


@dataclass
class InMemoryPhotoStorage:
    """Test double for photo uploads."""

    url_prefix: str = "/uploads"
    stored_objects: dict = field(default_factory=dict)

    def save(self, filename: str, content_type: Optional[str], data: bytes) -> str:
        _validate(content_type, data)
        path = f"{self.url_prefix}/{_generated_name(filename)}"
        self.stored_objects[path] = data
        return path
