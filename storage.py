"""Product image storage backed by a GridFS bucket.

Objects are addressed by a flat path (the GridFS filename). Public URLs point
at the ``/media/{bucket}/{path}`` route served by the app.
"""
from typing import Optional, Tuple

import gridfs
from fastapi import Depends
from gridfs.errors import NoFile
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings
from database import get_db
from errors import StorageError

BUCKET = "products"


class GridFSStorage:
    def __init__(self, db: Database, bucket: str = BUCKET, public_base_url: str = ""):
        self.bucket_name = bucket
        self.bucket = gridfs.GridFSBucket(db, bucket_name=bucket)
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            self.bucket.upload_from_stream(
                path,
                data,
                metadata={"contentType": content_type or "application/octet-stream"},
            )
        except PyMongoError as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/media/{self.bucket_name}/{path}"

    def remove(self, path: str) -> None:
        try:
            files = list(self.bucket.find({"filename": path}))
            if not files:
                raise StorageError(f"Object {path} not found")
            for f in files:
                self.bucket.delete(f._id)
        except (PyMongoError, NoFile) as e:
            raise StorageError(f"Removal of {path} failed: {e}") from e

    def open(self, path: str) -> Tuple[bytes, str]:
        try:
            grid_out = self.bucket.open_download_stream_by_name(path)
        except NoFile as e:
            raise StorageError(f"Object {path} not found") from e
        metadata = grid_out.metadata or {}
        return grid_out.read(), metadata.get("contentType", "application/octet-stream")


def get_storage(db: Database = Depends(get_db)) -> GridFSStorage:
    return GridFSStorage(db, public_base_url=settings.public_base_url)
