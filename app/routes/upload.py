import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from ..auth import get_current_user
from ..models import User
from ..utils.image_storage import (
    MAX_FILES_PER_UPLOAD,
    build_key,
    delete_object,
    file_extension,
    generate_presigned_post,
    key_from_url,
    prepare_image,
    public_url,
    upload_image,
    validate_image_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])


class PresignedUrlRequest(BaseModel):
    fileName: Optional[str] = None
    fileType: Optional[str] = None
    folder: Optional[str] = "uploads"


class DeleteFileRequest(BaseModel):
    key: Optional[str] = None
    url: Optional[str] = None


def _validate_folder(folder: Optional[str]) -> str:
    folder = folder or "uploads"
    if ".." in folder or folder.startswith("/") or "\\" in folder:
        raise HTTPException(status_code=400, detail="Invalid folder")
    return folder


def _validate_filename(filename: Optional[str]) -> None:
    if filename:
        safe_filename = os.path.basename(filename)
        if safe_filename != filename or ".." in filename:
            raise HTTPException(status_code=400, detail="Invalid filename")


def _as_bool(value: Optional[str]) -> bool:
    return str(value).lower() != "false"


async def _store_upload(file: UploadFile, folder: str, to_webp: bool) -> dict:
    """Validate, optionally convert, and upload one file"""
    _validate_filename(file.filename)
    contents = await file.read()

    is_valid, error = validate_image_file(len(contents), file.content_type)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error)

    body, mime_type, extension = prepare_image(contents, file.filename, file.content_type, to_webp)
    key = build_key(folder, extension)

    try:
        url = upload_image(body, key, mime_type)
    except Exception as e:
        logger.error(f"❌ Upload failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to upload file") from e

    return {
        "url": url,
        "key": key,
        "fileName": file.filename,
        "fileSize": len(body),
        "mimeType": mime_type,
    }


@router.post("/direct")
async def upload_direct(
    file: UploadFile = File(...),
    folder: Optional[str] = Form("uploads"),
    convertToWebp: Optional[str] = Form("true"),
    current_user: User = Depends(get_current_user),
):
    """Upload one image to the public bucket"""
    logger.info(f"📤 Uploading {file.filename} for user {current_user.id}")
    stored = await _store_upload(file, _validate_folder(folder), _as_bool(convertToWebp))
    return {"success": True, **stored}


@router.post("/multiple")
async def upload_multiple(
    files: List[UploadFile] = File(...),
    folder: Optional[str] = Form("uploads"),
    convertToWebp: Optional[str] = Form("true"),
    current_user: User = Depends(get_current_user),
):
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_FILES_PER_UPLOAD} files allowed")

    folder = _validate_folder(folder)
    to_webp = _as_bool(convertToWebp)
    logger.info(f"📤 Uploading {len(files)} files for user {current_user.id}")

    uploaded = [await _store_upload(file, folder, to_webp) for file in files]
    return {"success": True, "files": uploaded}


@router.post("/presigned-url")
async def get_presigned_url(
    data: PresignedUrlRequest,
    current_user: User = Depends(get_current_user),
):
    """Presigned POST so the browser can upload straight to S3"""
    if not data.fileName or not data.fileType:
        raise HTTPException(status_code=400, detail="fileName and fileType are required")
    if not data.fileType.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    _validate_filename(data.fileName)

    key = build_key(_validate_folder(data.folder), file_extension(data.fileName))
    try:
        presigned = generate_presigned_post(key, data.fileType)
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL for {key}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to generate presigned URL") from e

    return {
        "success": True,
        "uploadUrl": presigned["url"],
        "fields": presigned["fields"],
        "fileUrl": public_url(key),
        "key": key,
    }


@router.delete("")
async def delete_file(
    data: DeleteFileRequest,
    current_user: User = Depends(get_current_user),
):
    if not data.key and not data.url:
        raise HTTPException(status_code=400, detail="Either key or url is required")

    key = data.key or key_from_url(data.url)
    if not key:
        raise HTTPException(status_code=400, detail="Could not extract file key from URL")

    try:
        delete_object(key)
    except Exception as e:
        logger.error(f"❌ Delete failed for {key}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete file") from e

    return {"success": True, "message": "File deleted successfully", "key": key}
