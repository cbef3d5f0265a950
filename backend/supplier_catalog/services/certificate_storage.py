"""
Certificate Storage Service

Stores supplier product certificate PDFs in MinIO. When MinIO credentials are
not configured the files go to a local directory instead, using the same
object names.
"""
import io
import logging
from pathlib import Path
from typing import Optional

from fastapi import Request
from minio import Minio
from minio.error import S3Error

from supplier_catalog.core.config import settings

logger = logging.getLogger(__name__)


class CertificateStorageError(Exception):
    """Raised when a certificate file cannot be written to the blob store."""


class CertificateStorage:
    """Blob store for certificate attachments."""

    def __init__(
        self,
        client: Optional[Minio] = None,
        bucket: Optional[str] = None,
        local_dir: Optional[str] = None,
        connect: bool = True,
    ):
        self._client: Optional[Minio] = client
        self._bucket = bucket or settings.minio_bucket
        self._local_dir = Path(local_dir or settings.local_storage_dir)
        self._initialized = client is not None
        if client is None and connect:
            self._init_client()

    def _init_client(self):
        """Initialize MinIO client and ensure bucket exists."""
        if not settings.minio_configured:
            logger.warning("MinIO credentials not configured, storing certificates in %s", self._local_dir)
            return

        try:
            self._client = Minio(
                settings.minio_endpoint,
                access_key=settings.minio_access_key,
                secret_key=settings.minio_secret_key,
                secure=settings.minio_secure,
            )
            if not self._client.bucket_exists(self._bucket):
                self._client.make_bucket(self._bucket)
                logger.info(f"Created MinIO bucket: {self._bucket}")
            self._initialized = True
            logger.info("CertificateStorage: MinIO initialized")
        except Exception as e:
            logger.error(f"Failed to initialize MinIO: {e}")
            self._client = None

    @property
    def is_remote(self) -> bool:
        """Check if MinIO is available."""
        return self._client is not None and self._initialized

    def _local_path(self, object_name: str) -> Path:
        root = self._local_dir.resolve()
        path = (root / object_name).resolve()
        if root != path and root not in path.parents:
            raise CertificateStorageError(f"Object name escapes storage root: {object_name}")
        return path

    def upload(self, object_name: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Store *data* under *object_name* and return the object name."""
        if not self.is_remote:
            path = self._local_path(object_name)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            except OSError as e:
                raise CertificateStorageError(f"Local certificate write failed: {e}") from e
            logger.info(f"Stored certificate locally: {object_name}")
            return object_name

        try:
            self._client.put_object(
                self._bucket,
                object_name,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error(f"MinIO upload error: {e}")
            raise CertificateStorageError(str(e)) from e
        logger.info(f"Uploaded certificate: {object_name}")
        return object_name

    def download(self, object_name: str) -> Optional[bytes]:
        """Return the stored bytes, or None if the object does not exist."""
        if not self.is_remote:
            path = self._local_path(object_name)
            if not path.is_file():
                return None
            return path.read_bytes()

        try:
            response = self._client.get_object(self._bucket, object_name)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error:
            return None

    def delete(self, object_name: str) -> bool:
        """Delete a stored object. Returns False instead of raising on failure."""
        if not self.is_remote:
            try:
                path = self._local_path(object_name)
                path.unlink(missing_ok=True)
                return True
            except (OSError, CertificateStorageError) as e:
                logger.error(f"Local certificate delete error: {e}")
                return False

        try:
            self._client.remove_object(self._bucket, object_name)
            return True
        except S3Error as e:
            logger.error(f"MinIO delete error: {e}")
            return False


def get_certificate_storage(request: Request) -> CertificateStorage:
    """Dependency returning the application-owned certificate storage."""
    return request.app.state.certificate_storage
