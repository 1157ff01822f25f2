import logging
import os
from datetime import datetime, timezone
from typing import List, Tuple

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings, get_settings
from modules.contracts.exceptions import StorageError, TransientError

logger = logging.getLogger(__name__)


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


class LocalAssetStorage:
    """Stores objects as files under `root`, served from `base_url`."""

    method = "local"

    def __init__(self, root: str, base_url: str):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(os.path.abspath(self.root) + os.sep):
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def download_url(self, key: str) -> str:
        return self.url_for(key)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Could not store {key}: {e}") from e
        return self.url_for(key)

    def read(self, key: str) -> bytes:
        try:
            with open(self._path(key), "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Could not read {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def list_objects(self, prefix: str) -> List[Tuple[str, datetime]]:
        """(key, last modified as naive UTC) for every object under `prefix`."""
        base = os.path.join(self.root, prefix)
        objects = []
        for dirpath, _, filenames in os.walk(base):
            for name in filenames:
                full = os.path.join(dirpath, name)
                key = os.path.relpath(full, self.root).replace(os.sep, "/")
                modified = datetime.fromtimestamp(os.path.getmtime(full), timezone.utc)
                objects.append((key, _naive_utc(modified)))
        return sorted(objects)

    def list_keys(self, prefix: str) -> List[str]:
        return [key for key, _ in self.list_objects(prefix)]

    def delete_prefix(self, prefix: str) -> int:
        keys = self.list_keys(prefix)
        for key in keys:
            self.delete(key)
        return len(keys)


class S3AssetStorage:
    """
    S3-compatible object storage (AWS S3, Cloudflare R2).

    Stored URLs never expire: they point at `s3_public_base_url` when the
    bucket is public, otherwise at the API's /assets route, which redirects
    to a freshly presigned URL.
    """

    method = "s3"

    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.s3_bucket_name
        self.expiration = settings.s3_presigned_url_expiration
        self.public_base_url = (
            settings.s3_public_base_url or f"{settings.api_base_url.rstrip('/')}/assets"
        ).rstrip("/")
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(signature_version="s3v4"),
            region_name=settings.s3_region,
        )

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def download_url(self, key: str) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expiration,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to generate presigned URL for key {key}: {e}")
            raise StorageError(f"Could not create a URL for {key}") from e

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ContentDisposition="inline",
            )
        except ClientError as e:
            raise StorageError(f"Could not store {key}: {e}") from e
        except BotoCoreError as e:
            # endpoint/connection errors; the caller may retry
            raise TransientError(f"Storage unavailable while storing {key}: {e}") from e
        logger.info(f"Uploaded {key} to bucket {self.bucket}")
        return self.url_for(key)

    def read(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not read {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not delete {key}: {e}") from e

    def list_objects(self, prefix: str) -> List[Tuple[str, datetime]]:
        objects = []
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                objects.extend(
                    (obj["Key"], _naive_utc(obj["LastModified"])) for obj in page.get("Contents", [])
                )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not list {prefix}: {e}") from e
        return objects

    def list_keys(self, prefix: str) -> List[str]:
        return [key for key, _ in self.list_objects(prefix)]

    def delete_prefix(self, prefix: str) -> int:
        keys = self.list_keys(prefix)
        for key in keys:
            self.delete(key)
        return len(keys)


def get_asset_storage(settings: Settings = None):
    settings = settings or get_settings()
    if settings.storage_backend == "s3":
        return S3AssetStorage(settings)
    return LocalAssetStorage(settings.upload_dir, settings.public_base_url)
