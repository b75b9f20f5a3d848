"""Object storage service for thread logs.

Every put is kept as its own object version and carries a ``cid`` metadata
entry (the sha256 content id of the stored bytes). Reclaiming a content id
deletes exactly the versions under its key whose ``cid`` matches, so a newer
thread log written to the same key is never touched.
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Optional

from minio import Minio
from minio.error import S3Error
from minio.versioningconfig import ENABLED, VersioningConfig

from courier_api.errors import StorageUnavailable
from courier_api.settings import get_settings

logger = logging.getLogger(__name__)

META_PREFIX = "x-amz-meta-"


def content_id(data: bytes) -> str:
    """Content identifier of a stored payload."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def thread_key(thread_id: str) -> str:
    """Object key of a thread log (thread ids are hex digests, safe as keys)."""
    return f"threads/{thread_id.lower()}"


class ObjectStore(ABC):
    """Abstract object store interface."""

    @abstractmethod
    def put(self, key: str, data: bytes, metadata: Optional[dict] = None) -> str:
        """Store ``data`` under ``key`` and return its content id."""
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Latest bytes under ``key``. Raises FileNotFoundError if absent."""
        pass

    @abstractmethod
    def head(self, key: str) -> dict:
        """Metadata of the latest object under ``key``. Raises FileNotFoundError if absent."""
        pass

    @abstractmethod
    def read(self, key: str) -> tuple[bytes, dict]:
        """Bytes and metadata of the same (latest) version under ``key``.

        Raises FileNotFoundError if absent.
        """
        pass

    @abstractmethod
    def delete(self, key: str, cid: Optional[str] = None) -> int:
        """Delete the object under ``key``, or only its versions matching ``cid``.

        Returns the number of versions removed.
        """
        pass

    @abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Keys that start with ``prefix``."""
        pass


class MinioObjectStore(ObjectStore):
    """S3-compatible storage backed by a versioned MinIO bucket."""

    def __init__(self, client: Optional[Minio] = None, bucket: Optional[str] = None):
        """Initialize storage service with MinIO client."""
        settings = get_settings()
        self.bucket = bucket or settings.minio_bucket
        try:
            self.client = client or Minio(
                settings.minio_endpoint,
                access_key=settings.minio_access_key,
                secret_key=settings.minio_secret_key,
                secure=settings.minio_use_ssl,
            )
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
            self.client.set_bucket_versioning(self.bucket, VersioningConfig(ENABLED))
        except Exception as e:
            logger.error(f"Failed to initialize MinIO client: {e}")
            self.client = None

    def _client(self) -> Minio:
        if not self.client:
            raise StorageUnavailable("Storage client not available")
        return self.client

    @staticmethod
    def _user_metadata(headers) -> dict:
        return {
            name.lower()[len(META_PREFIX):]: value
            for name, value in (headers or {}).items()
            if name.lower().startswith(META_PREFIX)
        }

    def put(self, key: str, data: bytes, metadata: Optional[dict] = None) -> str:
        client = self._client()
        cid = content_id(data)
        object_metadata = dict(metadata or {})
        object_metadata["cid"] = cid
        try:
            client.put_object(
                self.bucket,
                key,
                BytesIO(data),
                length=len(data),
                content_type="application/json",
                metadata=object_metadata,
            )
        except Exception as e:
            logger.error(f"Failed to upload object {key}: {e}")
            raise StorageUnavailable(f"Failed to upload object {key}: {e}") from e
        logger.debug(f"Uploaded object: {key} ({len(data)} bytes, {cid})")
        return cid

    def get(self, key: str) -> bytes:
        client = self._client()
        try:
            response = client.get_object(self.bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise FileNotFoundError(f"Object not found: {key}")
            logger.error(f"Failed to retrieve object {key}: {e}")
            raise StorageUnavailable(f"Failed to retrieve object {key}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to retrieve object {key}: {e}")
            raise StorageUnavailable(f"Failed to retrieve object {key}: {e}") from e

    def head(self, key: str) -> dict:
        client = self._client()
        try:
            stat = client.stat_object(self.bucket, key)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchVersion"):
                raise FileNotFoundError(f"Object not found: {key}")
            raise StorageUnavailable(f"Failed to stat object {key}: {e}") from e
        except Exception as e:
            raise StorageUnavailable(f"Failed to stat object {key}: {e}") from e
        return self._user_metadata(stat.metadata)

    def read(self, key: str) -> tuple[bytes, dict]:
        client = self._client()
        try:
            stat = client.stat_object(self.bucket, key)
            response = client.get_object(self.bucket, key, version_id=stat.version_id)
            try:
                data = response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchVersion"):
                raise FileNotFoundError(f"Object not found: {key}")
            logger.error(f"Failed to read object {key}: {e}")
            raise StorageUnavailable(f"Failed to read object {key}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to read object {key}: {e}")
            raise StorageUnavailable(f"Failed to read object {key}: {e}") from e
        return data, self._user_metadata(stat.metadata)

    def delete(self, key: str, cid: Optional[str] = None) -> int:
        client = self._client()
        try:
            if cid is None:
                client.remove_object(self.bucket, key)
                return 1

            removed = 0
            for obj in client.list_objects(self.bucket, prefix=key, include_version=True):
                if obj.object_name != key or obj.is_delete_marker:
                    continue
                stat = client.stat_object(self.bucket, key, version_id=obj.version_id)
                if self._user_metadata(stat.metadata).get("cid") != cid:
                    continue
                client.remove_object(self.bucket, key, version_id=obj.version_id)
                removed += 1
            return removed
        except Exception as e:
            logger.error(f"Failed to delete object {key} ({cid}): {e}")
            raise StorageUnavailable(f"Failed to delete object {key}: {e}") from e

    def list(self, prefix: str) -> list[str]:
        client = self._client()
        try:
            return [
                obj.object_name
                for obj in client.list_objects(self.bucket, prefix=prefix, recursive=True)
            ]
        except Exception as e:
            raise StorageUnavailable(f"Failed to list objects under {prefix}: {e}") from e


class InMemoryObjectStore(ObjectStore):
    """Versioned in-process store for local development and tests."""

    def __init__(self):
        self._objects: dict[str, list[tuple[bytes, dict]]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, metadata: Optional[dict] = None) -> str:
        cid = content_id(data)
        object_metadata = dict(metadata or {})
        object_metadata["cid"] = cid
        with self._lock:
            self._objects.setdefault(key, []).append((bytes(data), object_metadata))
        return cid

    def _latest(self, key: str) -> tuple[bytes, dict]:
        versions = self._objects.get(key)
        if not versions:
            raise FileNotFoundError(f"Object not found: {key}")
        return versions[-1]

    def get(self, key: str) -> bytes:
        with self._lock:
            return self._latest(key)[0]

    def head(self, key: str) -> dict:
        with self._lock:
            return dict(self._latest(key)[1])

    def read(self, key: str) -> tuple[bytes, dict]:
        with self._lock:
            data, metadata = self._latest(key)
            return data, dict(metadata)

    def versions(self, key: str) -> list[str]:
        """Content ids stored under ``key``, oldest first."""
        with self._lock:
            return [meta["cid"] for _, meta in self._objects.get(key, [])]

    def delete(self, key: str, cid: Optional[str] = None) -> int:
        with self._lock:
            versions = self._objects.get(key, [])
            if cid is None:
                kept = versions[:-1]
            else:
                kept = [v for v in versions if v[1]["cid"] != cid]
            removed = len(versions) - len(kept)
            if kept:
                self._objects[key] = kept
            else:
                self._objects.pop(key, None)
            return removed

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(key for key in self._objects if key.startswith(prefix))


_object_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """Get or create object store instance based on settings."""
    global _object_store
    if _object_store is None:
        provider = get_settings().storage_provider.lower()
        if provider == "minio":
            _object_store = MinioObjectStore()
        elif provider == "memory":
            logger.warning("Using in-memory object store - thread logs are not persisted")
            _object_store = InMemoryObjectStore()
        else:
            raise ValueError(f"Unknown storage provider: {provider}")
    return _object_store
