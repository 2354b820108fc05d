"""
Image storage utilities for field photos, claim documents and avatars.
Handles validation, WebP conversion and S3 upload/delete.
"""

import logging
import uuid
from io import BytesIO
from typing import Optional, Tuple

import boto3
from botocore.client import Config
from PIL import Image, UnidentifiedImageError

from ..config import AWS_ACCESS_KEY_ID, AWS_REGION, AWS_S3_BUCKET, AWS_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB
MAX_FILES_PER_UPLOAD = 10
PRESIGNED_POST_EXPIRY_SECONDS = 600
WEBP_QUALITY = 80

# Animated and vector formats are stored untouched
KEEP_ORIGINAL_MIME_TYPES = ("image/gif", "image/svg+xml")


def get_s3_client():
    """Get configured boto3 client for AWS S3"""
    return boto3.client(
        "s3",
        aws_access_key_id=AWS_ACCESS_KEY_ID,
        aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name=AWS_REGION,
    )


def public_url(key: str) -> str:
    return f"https://{AWS_S3_BUCKET}.s3.{AWS_REGION}.amazonaws.com/{key}"


def validate_image_file(size_bytes: int, mime_type: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate an uploaded image before storing it.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not mime_type or not mime_type.startswith("image/"):
        return False, "Only image files are allowed"
    if size_bytes > MAX_IMAGE_SIZE_BYTES:
        return False, f"File size exceeds maximum of {MAX_IMAGE_SIZE_BYTES // (1024 * 1024)}MB"
    return True, None


def file_extension(filename: Optional[str], default: str = "jpg") -> str:
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext:
            return ext
    return default


def build_key(folder: str, extension: str) -> str:
    """Object key: {folder}/{uuid}.{ext}"""
    folder = (folder or "uploads").strip("/") or "uploads"
    return f"{folder}/{uuid.uuid4()}.{extension}"


def convert_to_webp(content: bytes) -> bytes:
    """Re-encode an image as WebP at quality 80"""
    with Image.open(BytesIO(content)) as img:
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        output = BytesIO()
        img.save(output, format="WEBP", quality=WEBP_QUALITY)
        return output.getvalue()


def prepare_image(
    content: bytes, filename: Optional[str], mime_type: str, to_webp: bool
) -> Tuple[bytes, str, str]:
    """
    Returns (body, mime type, extension). Falls back to the original bytes
    when the image cannot be decoded for conversion.
    """
    extension = file_extension(filename)
    if not to_webp or mime_type in KEEP_ORIGINAL_MIME_TYPES:
        return content, mime_type, extension

    try:
        return convert_to_webp(content), "image/webp", "webp"
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"⚠️ WebP conversion failed for {filename}, keeping original: {e}")
        return content, mime_type, extension


def upload_image(body: bytes, key: str, mime_type: str) -> str:
    """Upload to the public bucket and return the object's URL"""
    s3_client = get_s3_client()
    s3_client.put_object(
        Bucket=AWS_S3_BUCKET,
        Key=key,
        Body=body,
        ContentType=mime_type,
        ACL="public-read",
    )
    logger.info(f"✅ Uploaded {key} ({len(body)} bytes)")
    return public_url(key)


def generate_presigned_post(key: str, file_type: str) -> dict:
    s3_client = get_s3_client()
    return s3_client.generate_presigned_post(
        Bucket=AWS_S3_BUCKET,
        Key=key,
        Fields={"Content-Type": file_type},
        Conditions=[
            ["content-length-range", 0, MAX_IMAGE_SIZE_BYTES],
            ["starts-with", "$Content-Type", file_type],
        ],
        ExpiresIn=PRESIGNED_POST_EXPIRY_SECONDS,
    )


def key_from_url(url: str) -> Optional[str]:
    """
    Object key from a public URL, either virtual-hosted
    (https://bucket.s3.region.amazonaws.com/key) or path style (.../bucket/key)
    """
    if ".amazonaws.com/" in url:
        return url.split(".amazonaws.com/", 1)[1] or None
    marker = f"/{AWS_S3_BUCKET}/"
    if marker in url:
        return url.split(marker, 1)[1] or None
    return None


def delete_object(key: str) -> None:
    s3_client = get_s3_client()
    s3_client.delete_object(Bucket=AWS_S3_BUCKET, Key=key)
    logger.info(f"🗑️ Deleted {key}")
