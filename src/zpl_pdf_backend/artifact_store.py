"""
Artifact storage for finished PDFs.

This module provides two interchangeable backends:
- LocalArtifactStore writes PDFs under a directory served by the API itself
- S3ArtifactStore uploads PDFs to a bucket and hands out presigned URLs

Both derive the filename from the job id, so a job's artifact can always be found
again without extra bookkeeping.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from .engine import RenderedDocument
from .errors import ArtifactNotFoundError, StorageFailureError
from .utils import ensure_directory

if TYPE_CHECKING:
    from .configuration import Settings

# AWS credentials may live in .env next to the ZPL_* settings.
load_dotenv()

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class ArtifactRef:
    key: str
    url: str
    filename: str


class ArtifactStore(ABC):
    """Persists rendered documents and yields retrievable references to them."""

    @staticmethod
    def filename_for(job_id: str) -> str:
        return f"label-{job_id}.pdf"

    @abstractmethod
    def store(self, job_id: str, document: RenderedDocument) -> ArtifactRef:
        """Persist a document. Raises StorageFailureError when the backend refuses it."""

    @abstractmethod
    def resolve(self, job_id: str) -> ArtifactRef:
        """Return a reference to a stored document. Raises ArtifactNotFoundError if absent."""


class LocalArtifactStore(ArtifactStore):
    """
    Filesystem-backed store.

    Files land in ``root/label-<job_id>.pdf`` and are exposed at
    ``<base_url>/<job_id>`` by the API's file endpoint.
    """

    def __init__(self, root: Path, base_url: str = "/zpl/files") -> None:
        self.root = ensure_directory(Path(root))
        self.base_url = base_url.rstrip("/")

    def path_for(self, job_id: str) -> Path:
        return self.root / self.filename_for(job_id)

    def _reference(self, job_id: str) -> ArtifactRef:
        filename = self.filename_for(job_id)
        return ArtifactRef(key=filename, url=f"{self.base_url}/{job_id}", filename=filename)

    def store(self, job_id: str, document: RenderedDocument) -> ArtifactRef:
        path = self.path_for(job_id)
        try:
            path.write_bytes(document.content)
        except OSError as exc:
            logger.error(f"Writing {path} failed: {exc}")
            raise StorageFailureError(f"Could not write PDF for job {job_id}: {exc}") from exc
        logger.info(f"Stored {len(document.content)} bytes at {path}")
        return self._reference(job_id)

    def resolve(self, job_id: str) -> ArtifactRef:
        if not self.path_for(job_id).is_file():
            raise ArtifactNotFoundError(job_id)
        return self._reference(job_id)


class S3ArtifactStore(ArtifactStore):
    """
    S3-backed store.

    Objects are written under ``<prefix>label-<job_id>.pdf``. The URL is a presigned
    GET that expires after ``expiration`` seconds, so ``resolve`` signs a fresh one
    on every call.

    Note:
        The boto3 client is created lazily so the service can start without AWS
        credentials; credential problems surface as StorageFailureError on upload.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        expiration: int = 3600,
        client: Optional[Any] = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 bucket name is required for the s3 storage backend")
        self.bucket = bucket
        self.prefix = prefix
        self.expiration = expiration
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def key_for(self, job_id: str) -> str:
        return f"{self.prefix}{self.filename_for(job_id)}"

    def _presign(self, job_id: str) -> ArtifactRef:
        key = self.key_for(job_id)
        url = self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.expiration,
        )
        logger.info(f"Generated presigned URL for {key} (expires in {self.expiration}s)")
        return ArtifactRef(key=key, url=url, filename=self.filename_for(job_id))

    def store(self, job_id: str, document: RenderedDocument) -> ArtifactRef:
        key = self.key_for(job_id)
        try:
            logger.info(f"Uploading PDF to s3://{self.bucket}/{key}")
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=document.content,
                ContentType=PDF_CONTENT_TYPE,
            )
            return self._presign(job_id)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"S3 upload failed: {exc}")
            raise StorageFailureError(f"Could not upload PDF for job {job_id}: {exc}") from exc

    def resolve(self, job_id: str) -> ArtifactRef:
        key = self.key_for(job_id)
        try:
            self._get_client().head_object(Bucket=self.bucket, Key=key)
            return self._presign(job_id)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                raise ArtifactNotFoundError(job_id) from exc
            logger.error(f"Resolving s3://{self.bucket}/{key} failed: {exc}")
            raise StorageFailureError(f"Could not resolve PDF for job {job_id}: {exc}") from exc
        except BotoCoreError as exc:
            logger.error(f"Resolving s3://{self.bucket}/{key} failed: {exc}")
            raise StorageFailureError(f"Could not resolve PDF for job {job_id}: {exc}") from exc


def build_artifact_store(settings: "Settings") -> ArtifactStore:
    if settings.storage_backend == "s3":
        return S3ArtifactStore(
            bucket=settings.s3_bucket_name,
            prefix=settings.s3_prefix,
            expiration=settings.presigned_url_expiration,
        )
    return LocalArtifactStore(root=settings.output_root, base_url=settings.files_base_url)
