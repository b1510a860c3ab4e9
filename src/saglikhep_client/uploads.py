# src/saglikhep_client/uploads.py

import logging
import mimetypes
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from pydantic import BaseModel

from .http_client import ApiClient, ProgressCallback

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")
MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_IMAGES_PER_UPLOAD = 10


class UploadFile(BaseModel):
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "UploadFile":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            file_name=path.name,
            content_type=content_type or guessed or "application/octet-stream",
            content=path.read_bytes(),
        )


class FileCheck(BaseModel):
    valid: bool
    error: Optional[str] = None


class UploadedImage(BaseModel):
    imageUrl: str
    fileName: str
    fileSize: Optional[int] = None
    mimeType: Optional[str] = None


class UploadService:
    def __init__(self, api: ApiClient):
        self.api = api

    @staticmethod
    def validate_file(file: UploadFile) -> FileCheck:
        if file.content_type not in ALLOWED_IMAGE_TYPES:
            return FileCheck(
                valid=False,
                error="Invalid file type. Only JPEG, PNG, GIF and WEBP images are supported.",
            )
        if file.size > MAX_IMAGE_SIZE:
            return FileCheck(valid=False, error="File size cannot exceed 5MB.")
        return FileCheck(valid=True)

    @classmethod
    def validate_files(cls, files: Sequence[UploadFile]) -> FileCheck:
        if len(files) > MAX_IMAGES_PER_UPLOAD:
            return FileCheck(valid=False, error=f"You can upload at most {MAX_IMAGES_PER_UPLOAD} images.")
        for file in files:
            check = cls.validate_file(file)
            if not check.valid:
                return check
        return FileCheck(valid=True)

    async def upload_single(self, file: UploadFile, on_progress: Optional[ProgressCallback] = None) -> UploadedImage:
        check = self.validate_file(file)
        if not check.valid:
            raise ValueError(check.error)
        logger.debug("UploadService: upload_single - %s (%d bytes)", file.file_name, file.size)
        response = await self.api.upload("/api/upload/single", file, on_progress, field_name="image")
        return UploadedImage.model_validate(response)

    async def upload_multiple(
        self,
        files: Sequence[UploadFile],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[UploadedImage]:
        check = self.validate_files(files)
        if not check.valid:
            raise ValueError(check.error)
        logger.debug("UploadService: upload_multiple - %d file(s)", len(files))
        response = await self.api.upload_multiple("/api/upload/multiple", files, on_progress, field_name="images")
        images: Any = response.get("images", []) if isinstance(response, dict) else response
        return [UploadedImage.model_validate(image) for image in images or []]

    async def delete_image(self, file_name: str) -> Any:
        return await self.api.delete(f"/api/upload/{file_name}")
