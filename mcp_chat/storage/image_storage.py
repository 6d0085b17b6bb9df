"""MinIO-backed storage for binary tool outputs and user images."""
import asyncio
import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Union

from minio import Minio
from minio.error import S3Error

from ..config import Settings

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class ImageUploadError(Exception):
    """Raised when an object cannot be stored."""


@dataclass
class UploadResult:
    storage_path: str
    public_url: str


def parse_data_url(url: str) -> Optional[tuple]:
    """Return ``(mime_type, base64_data)`` for a data URL, else None."""
    match = DATA_URL_PATTERN.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def decode_base64_image(data: str) -> bytes:
    """Decode base64 image data, with or without a data-URL prefix.
    
    Raises:
        ImageUploadError: If the payload is not valid base64.
    """
    parsed = parse_data_url(data)
    payload = parsed[1] if parsed else data
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageUploadError(f"Invalid base64 image data: {e}")


def extension_for(mime_type: str) -> str:
    subtype = mime_type.split("/", 1)[1] if "/" in mime_type else ""
    return subtype.split("+", 1)[0] or "png"


def _public_read_policy(bucket: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"AWS": ["*"]},
            "Action": ["s3:GetObject"],
            "Resource": [f"arn:aws:s3:::{bucket}/*"],
        }],
    })


class ImageStorage:
    """Uploads images to a public-read MinIO bucket.
    
    Objects are stored under ``{session_id}/{message_id}/{filename}``.
    """
    
    def __init__(self, client: Minio, bucket: str, public_base_url: str):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._bucket_ready = False
    
    @classmethod
    def from_settings(cls, settings: Settings) -> "ImageStorage":
        client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )
        return cls(client, settings.minio_bucket, settings.minio_public_base_url)
    
    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            self.client.set_bucket_policy(self.bucket, _public_read_policy(self.bucket))
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_ready = True
    
    def _put(self, storage_path: str, data: bytes, mime_type: str) -> None:
        self._ensure_bucket()
        self.client.put_object(
            self.bucket,
            storage_path,
            BytesIO(data),
            len(data),
            content_type=mime_type,
        )
    
    def public_url(self, storage_path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{storage_path}"
    
    async def upload(
        self,
        data: Union[bytes, str],
        mime_type: str,
        session_id: str,
        message_id: str,
        filename: Optional[str] = None,
    ) -> UploadResult:
        """Store an image and return its public URL.
        
        Args:
            data: Raw bytes, or base64 text (a data-URL prefix is allowed).
            mime_type: MIME type of the image.
            session_id: Conversation the image belongs to.
            message_id: Message the image belongs to.
            filename: Object file name; generated from a timestamp if None.
        
        Raises:
            ImageUploadError: If decoding or storing fails.
        """
        payload = decode_base64_image(data) if isinstance(data, str) else data
        if filename is None:
            filename = f"image_{int(time.time() * 1000)}.{extension_for(mime_type)}"
        storage_path = f"{session_id}/{message_id}/{filename}"
        
        try:
            await asyncio.to_thread(self._put, storage_path, payload, mime_type)
        except S3Error as e:
            logger.error(f"Error uploading image {storage_path}: {e}")
            raise ImageUploadError(f"Failed to upload image: {e}")
        except Exception as e:
            # urllib3 and socket errors when MinIO is unreachable.
            logger.error(f"Error reaching storage for {storage_path}: {e}", exc_info=True)
            raise ImageUploadError(f"Failed to upload image: {e}")
        
        logger.info(f"Uploaded image: {storage_path} ({len(payload)} bytes)")
        return UploadResult(storage_path=storage_path, public_url=self.public_url(storage_path))
