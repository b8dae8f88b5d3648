"""
Object storage gateway.

Stores uploaded files through Django's storage API under keys namespaced
by project id and a per-upload object id, and returns their public URL. Works with any configured
storage backend (``STORAGES["default"]``).
"""

import base64
import binascii
import logging
import mimetypes
import re
import uuid
from urllib.parse import unquote, urlparse

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from ..exceptions import NotFound, StorageFailed, UploadFailed

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,")


class StorageService:
    """
    Upload and delete project files.

    ``put``/``delete`` are the raw gateway operations; ``upload_files`` and
    ``delete_file`` work on the file entries stored on projects, tasks,
    transactions and comments (``{id, name, url, width, height}``).
    """

    def __init__(self, storage=None):
        self._storage = storage

    @property
    def storage(self):
        return self._storage or default_storage

    @staticmethod
    def build_key(project_id, file_name, object_id=None):
        """``<prefix>/<project_id>/<object_id>/<name>``; each upload gets its own object id."""
        prefix = getattr(settings, "PROJECT_FILES_PREFIX", "files").strip("/")
        safe_name = file_name.replace("/", "_").strip() or "file"
        return f"{prefix}/{project_id}/{object_id or uuid.uuid4().hex}/{safe_name}"

    @staticmethod
    def decode_payload(data) -> bytes:
        """
        Decode a base64 payload, with or without a ``data:`` URL prefix.

        Raises:
            UploadFailed: If the payload is not valid base64
        """
        if isinstance(data, bytes):
            return data
        try:
            return base64.b64decode(DATA_URL_PREFIX.sub("", data or ""), validate=True)
        except (binascii.Error, ValueError):
            raise UploadFailed("File payload is not valid base64 data.")

    def put(self, data: bytes, content_type, key) -> str:
        """
        Store ``data`` under ``key``.

        Existing objects are never overwritten; the backend picks a free
        name if ``key`` is taken.

        Returns:
            str: Public URL of the stored object

        Raises:
            UploadFailed: If the storage backend rejects the write
        """
        try:
            content = ContentFile(data)
            content.content_type = content_type
            stored_name = self.storage.save(key, content)
            url = self.storage.url(stored_name)
        except Exception as e:
            logger.error(
                "File upload failed",
                extra={
                    "key": key,
                    "content_type": content_type,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "file_upload_failed",
                    "component": "StorageService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UploadFailed() from e

        logger.info(
            "File uploaded",
            extra={
                "key": stored_name,
                "content_type": content_type,
                "size": len(data),
                "action": "file_upload_success",
                "component": "StorageService",
            },
        )
        return url

    def upload(self, project_id, file_name, data, object_id=None) -> str:
        """Decode ``data`` and store it as a new object named ``file_name``."""
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        key = self.build_key(project_id, file_name, object_id)
        return self.put(self.decode_payload(data), content_type, key)

    def upload_files(self, project_id, files) -> list:
        """
        Upload a batch of files, dropping the ones that fail.

        Args:
            project_id: Project the files belong to
            files: Iterable of ``{name, data, width?, height?}``

        Returns:
            list: File entries of the successful uploads, in input order
        """
        uploaded = []
        for file_data in files or []:
            name = file_data.get("name") or ""
            entry_id = uuid.uuid4().hex
            try:
                url = self.upload(project_id, name, file_data.get("data"), entry_id)
            except UploadFailed as e:
                logger.warning(
                    "File skipped after failed upload",
                    extra={
                        "project_id": project_id,
                        "file_name": name,
                        "error_message": str(e.detail),
                        "action": "file_upload_skipped",
                        "component": "StorageService",
                        "severity": "medium",
                    },
                )
                continue

            entry = {"id": entry_id, "name": name, "url": url}
            for dimension in ("width", "height"):
                if file_data.get(dimension) is not None:
                    entry[dimension] = file_data[dimension]
            uploaded.append(entry)

        logger.info(
            "File batch uploaded",
            extra={
                "project_id": project_id,
                "requested": len(files or []),
                "uploaded": len(uploaded),
                "action": "file_batch_upload",
                "component": "StorageService",
            },
        )
        return uploaded

    def key_from_url(self, url) -> str:
        """Storage key of a URL produced by ``put``."""
        base_url = self.storage.url("")
        if base_url and url.startswith(base_url):
            key = url[len(base_url):]
        else:
            key = urlparse(url).path
            media_path = urlparse(base_url).path if base_url else ""
            if media_path and key.startswith(media_path):
                key = key[len(media_path):]
        return unquote(key.split("?", 1)[0]).lstrip("/")

    def delete(self, url) -> bool:
        """
        Delete the object behind ``url``.

        Returns:
            bool: False if no object was stored under the URL

        Raises:
            StorageFailed: If the storage backend fails
        """
        key = self.key_from_url(url)
        try:
            if not self.storage.exists(key):
                logger.warning(
                    "File to delete not found in storage",
                    extra={
                        "key": key,
                        "action": "file_delete_missing",
                        "component": "StorageService",
                        "severity": "low",
                    },
                )
                return False
            self.storage.delete(key)
        except Exception as e:
            logger.error(
                "File deletion failed",
                extra={
                    "key": key,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "file_delete_failed",
                    "component": "StorageService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise StorageFailed() from e

        logger.info(
            "File deleted",
            extra={
                "key": key,
                "action": "file_delete_success",
                "component": "StorageService",
            },
        )
        return True

    def delete_file(self, files, file_id):
        """
        Delete the entry ``file_id`` from storage.

        Returns:
            list: ``files`` without the entry

        Raises:
            NotFound: If no entry has the id
        """
        entry = next((f for f in files or [] if f.get("id") == file_id), None)
        if entry is None:
            raise NotFound("File not found.")
        if entry.get("url"):
            self.delete(entry["url"])
        return [f for f in files if f.get("id") != file_id]
