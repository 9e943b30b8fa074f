import os
import shutil
import uuid
from pathlib import Path
from fastapi import UploadFile
from loguru import logger
from sqlmodel import SQLModel

from app.core.config import settings


# Define storage location (using Path for OS agnostic handling)
UPLOAD_DIR = Path(settings.static_dir) / "uploads"
UPLOAD_URL_PREFIX = "/static/uploads"

INSPECTION_FOLDER = "inspections"
DEFECT_FOLDER = "defects"

ALLOWED_IMAGE_EXTENSIONS = {
    "png", "jpg", "jpeg",
    "gif", "bmp", "tiff", "tif",
    "webp",
}


class StoredImage(SQLModel):
    url: str
    public_id: str


def validate_image_extension(filename: str) -> str:
    """
    Returns the lower-cased extension.
    Raises ValueError if the file is not an accepted image type.
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValueError(
            f"File extension '.{ext}' is not allowed. Allowed extensions: "
            + ", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))
        )
    return ext


class ImageStore:
    """
    Narrow interface the services depend on.
    `store` raises on failure; callers decide whether to skip or abort.
    """

    def store(self, upload_file: UploadFile, folder: str) -> StoredImage:
        raise NotImplementedError

    def delete(self, public_id: str) -> None:
        raise NotImplementedError


class LocalImageStore(ImageStore):
    """Writes images under the static directory served by the app."""

    def __init__(self, root: Path = UPLOAD_DIR, url_prefix: str = UPLOAD_URL_PREFIX):
        self.root = Path(root)
        self.url_prefix = url_prefix

    def _path_for(self, public_id: str) -> Path:
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid image id '{public_id}'.")
        return path

    def store(self, upload_file: UploadFile, folder: str) -> StoredImage:
        ext = validate_image_extension(upload_file.filename or "")

        # 1. Ensure directory exists
        os.makedirs(self.root / folder, exist_ok=True)

        # 2. Generate unique filename
        public_id = f"{folder}/{uuid.uuid4()}.{ext}"
        file_path = self._path_for(public_id)

        # 3. Write binary stream
        try:
            with open(file_path, "wb") as buffer:
                shutil.copyfileobj(upload_file.file, buffer)
        except Exception as e:
            logger.error(f"Error saving image {upload_file.filename}: {e}")
            raise

        # 4. Return Web-Accessible URL
        # e.g. http://localhost:8000/static/uploads/defects/uuid.png
        return StoredImage(
            url=f"{settings.public_url}{self.url_prefix}/{public_id}",
            public_id=public_id
        )

    def delete(self, public_id: str) -> None:
        self._path_for(public_id).unlink()
