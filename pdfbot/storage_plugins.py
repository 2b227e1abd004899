"""Storage plugins that move a rendered PDF to its durable location."""

import logging
import os
import posixpath
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, StorageError
from .models import Job

logger = logging.getLogger(__name__)

Location = Dict[str, Any]
RemotePath = Union[str, Callable[[str, Job], str]]


class LocalStorageConfig(BaseModel):
    """Keep PDFs in the local ``pdf`` directory under the storage path."""
    type: Literal["local"] = "local"


class S3StorageConfig(BaseModel):
    """Upload PDFs to an S3 bucket."""
    type: Literal["s3"] = "s3"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    bucket: Optional[str] = None
    path: Any = ""
    endpoint_url: Optional[str] = None


StorageConfig = Union[LocalStorageConfig, S3StorageConfig]


class LocalStorage:
    """Moves the rendered file into a local directory, one file per job."""

    name = "local"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def upload(self, local_path: str, job: Job) -> Location:
        destination = self.directory / f"{job.id}.pdf"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            shutil.move(local_path, destination)
        except OSError as e:
            raise StorageError(f"Could not store PDF for job {job.id} in {self.directory}: {e}") from e
        logger.debug("Stored job %s at %s", job.id, destination)
        return {"path": str(destination)}


class S3Storage:
    """Uploads the rendered file to an S3 bucket."""

    name = "s3"

    def __init__(self, access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 region: Optional[str] = None, bucket: Optional[str] = None,
                 path: RemotePath = "", endpoint_url: Optional[str] = None, client: Any = None):
        if not access_key_id:
            raise ConfigurationError("S3: No access key given")
        if not secret_access_key:
            raise ConfigurationError("S3: No secret access key given")
        if not region:
            raise ConfigurationError("S3: No region specified")
        if not bucket:
            raise ConfigurationError("S3: No bucket was specified")
        if not isinstance(path, str) and not callable(path):
            raise ConfigurationError("S3: path must be a string or a callable")

        self.region = region
        self.bucket = bucket
        self.path = path
        self._client = client or boto3.client(
            "s3",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            endpoint_url=endpoint_url,
        )

    def remote_key(self, local_path: str, job: Job) -> str:
        prefix = self.path(local_path, job) if callable(self.path) else self.path
        return posixpath.join(prefix or "", os.path.basename(local_path))

    def upload(self, local_path: str, job: Job) -> Location:
        key = self.remote_key(local_path, job)
        logger.debug("Pushing job %s to S3 path %s/%s", job.id, self.bucket, key)
        try:
            self._client.upload_file(
                local_path,
                self.bucket,
                key,
                ExtraArgs={"ContentType": "application/pdf"},
            )
        except (BotoCoreError, ClientError, OSError) as e:
            raise StorageError(f"Could not upload job {job.id} to s3://{self.bucket}/{key}: {e}") from e
        return {"bucket": self.bucket, "region": self.region, "key": key}


def create_storage_plugin(config: Union[StorageConfig, Dict[str, Any], None],
                          storage_path: Union[str, Path] = "storage", client: Any = None):
    """Build the configured storage plugin. Misconfiguration fails here, not at upload."""
    if config is None:
        config = LocalStorageConfig()
    if isinstance(config, dict):
        kind = config.get("type", "local")
        try:
            if kind == "local":
                config = LocalStorageConfig(**config)
            elif kind == "s3":
                config = S3StorageConfig(**config)
            else:
                raise ConfigurationError(f"Unknown storage plugin: {kind}")
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid {kind} storage configuration: {e}") from e

    if isinstance(config, LocalStorageConfig):
        return LocalStorage(Path(storage_path) / "pdf")
    if isinstance(config, S3StorageConfig):
        return S3Storage(
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            region=config.region,
            bucket=config.bucket,
            path=config.path,
            endpoint_url=config.endpoint_url,
            client=client,
        )
    raise ConfigurationError(f"Unknown storage plugin: {config!r}")
