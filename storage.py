"""Image uploads for products, variants, categories and banners."""
import logging
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile

from config import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES, MAX_IMAGES_PER_FIELD, MEDIA_ROOT, MEDIA_URL
from errors import APIError

logger = logging.getLogger(__name__)


def media_root() -> Path:
    root = Path(MEDIA_ROOT)
    root.mkdir(parents=True, exist_ok=True)
    return root


def validate_images(files: Sequence[UploadFile], field: str) -> None:
    if len(files) > MAX_IMAGES_PER_FIELD:
        raise APIError(400, f"Too many images for {field}. Maximum is {MAX_IMAGES_PER_FIELD}.")
    for f in files:
        if f.content_type not in ALLOWED_IMAGE_TYPES:
            raise APIError(400, f"Unsupported image type for {f.filename}: only JPEG, PNG and WebP are allowed")
        if f.size is not None and f.size > MAX_IMAGE_BYTES:
            raise APIError(400, f"Image {f.filename} exceeds the 5MB limit")


def save_images(files: Sequence[UploadFile], field: str) -> List[str]:
    """Validate and store uploaded images, returning their public URLs."""
    validate_images(files, field)
    urls = []
    root = media_root()
    for f in files:
        content = f.file.read()
        if not content:
            raise APIError(400, f"Invalid or empty file {f.filename}")
        if len(content) > MAX_IMAGE_BYTES:
            raise APIError(400, f"Image {f.filename} exceeds the 5MB limit")
        name = f"{uuid.uuid4().hex}{ALLOWED_IMAGE_TYPES[f.content_type]}"
        (root / name).write_bytes(content)
        urls.append(f"{MEDIA_URL}/{name}")
    logger.info("Stored %d image(s) for %s", len(urls), field)
    return urls


def save_image(file: Optional[UploadFile], field: str) -> Optional[str]:
    if file is None:
        return None
    return save_images([file], field)[0]


def delete_image(url: Optional[str]) -> None:
    if not url or not url.startswith(f"{MEDIA_URL}/"):
        return
    path = media_root() / url[len(MEDIA_URL) + 1:]
    path.unlink(missing_ok=True)
