import asyncio
import os
import posixpath
from urllib.parse import quote

from db.errors import StorageError
from utils.logger import get_logger

_logger = get_logger(__name__)


class ObjectStorage:
    """
    Bucket-style file storage for product images.

    Objects live under ``<root>/<bucket>/<path>`` and are served from
    ``<public_base_url>/<bucket>/<path>``.
    """

    def __init__(self, root: str, public_base_url: str, bucket: str = "product-images"):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")
        self.bucket = bucket

    def _normalize(self, path: str) -> str:
        clean = posixpath.normpath((path or "").replace("\\", "/"))
        if not path or clean in (".", "") or clean.startswith("/") or clean.startswith(".."):
            raise StorageError(f"Invalid object path: {path!r}")
        return clean

    def _local_path(self, path: str) -> str:
        return os.path.join(self.root, self.bucket, *self._normalize(path).split("/"))

    async def upload(self, path: str, data: bytes, upsert: bool = False) -> str:
        """Store ``data`` at ``path``; returns the normalized object path."""
        key = self._normalize(path)
        target = self._local_path(key)
        if os.path.exists(target) and not upsert:
            raise StorageError(f"Object already exists: {key}")

        def _write() -> None:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        _logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{key}")
        return key

    def get_public_url(self, path: str) -> str:
        key = self._normalize(path)
        return f"{self.public_base_url}/{self.bucket}/{quote(key)}"

    def exists(self, path: str) -> bool:
        return os.path.exists(self._local_path(path))
