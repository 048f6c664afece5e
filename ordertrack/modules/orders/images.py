import inspect
import logging
import uuid
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ordertrack.config import settings
from ordertrack.core.errors import ValidationError
from ordertrack.core.remote import remote_call

logger = logging.getLogger(__name__)

FOLDER = "order-images"


@dataclass
class ImageUpload:
    filename: str
    content_type: Optional[str]
    content: bytes


def generate_filename(filename: str) -> str:
    """Random object name that keeps the original extension."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"{uuid.uuid4()}.{ext}"


class OrderImageStore:
    """Order reference images in Supabase Storage. The size/type/count checks are UX guards only."""

    def __init__(
        self,
        supabase: Any,
        bucket: Optional[str] = None,
        max_images: Optional[int] = None,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.supabase = supabase
        self.bucket = bucket or settings.order_images_bucket
        self.max_images = max_images if max_images is not None else settings.max_images_per_order
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_image_bytes
        self.timeout = timeout

    def validate(self, uploads: Sequence[ImageUpload], existing_count: int = 0) -> None:
        if not uploads:
            raise ValidationError("Please select at least one image.")
        if existing_count + len(uploads) > self.max_images:
            raise ValidationError(f"An order can have at most {self.max_images} images.")
        for upload in uploads:
            if not (upload.content_type or "").startswith("image/"):
                raise ValidationError(f"{upload.filename} is not an image.")
            if len(upload.content) > self.max_bytes:
                limit_mb = self.max_bytes // (1024 * 1024)
                raise ValidationError(f"{upload.filename} is larger than {limit_mb}MB.")

    async def upload(self, uploads: Sequence[ImageUpload], existing_count: int = 0) -> List[str]:
        """Validate, upload and return the public URLs in upload order."""
        self.validate(uploads, existing_count)
        bucket = self.supabase.storage.from_(self.bucket)
        urls = []
        for upload in uploads:
            path = f"{FOLDER}/{generate_filename(upload.filename)}"
            await remote_call(
                bucket.upload(path, upload.content, {"content-type": upload.content_type}),
                timeout=self.timeout,
            )
            url = bucket.get_public_url(path)
            if inspect.isawaitable(url):
                url = await remote_call(url, timeout=self.timeout)
            urls.append(url)
        logger.info(f"Uploaded {len(urls)} order image(s)")
        return urls

    def path_from_public_url(self, url: str) -> Optional[str]:
        marker = f"/storage/v1/object/public/{self.bucket}/"
        idx = url.find(marker)
        if idx == -1:
            return None
        return url[idx + len(marker):].split("?", 1)[0]

    async def delete(self, url: str) -> bool:
        """Best effort; an orphaned object is not worth failing the caller for."""
        path = self.path_from_public_url(url)
        if not path:
            return False
        try:
            await remote_call(self.supabase.storage.from_(self.bucket).remove([path]), timeout=self.timeout)
            return True
        except Exception as e:
            logger.warning(f"Failed to delete order image {path}: {e}")
            return False
