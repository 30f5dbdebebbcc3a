"""S3 storage helpers for logged meal photos and voice notes."""

from __future__ import annotations

import re
import time
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from nutrilog.config.settings import S3Config
from nutrilog.services.aws import create_boto3_client

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_.-]")


class StorageError(RuntimeError):
    """Raised when S3 asset persistence fails."""


def object_key(user_id: str, filename: str | None, *, stamp: int | None = None) -> str:
    """``<user>/<last 12 digits of user>-<ms stamp>-<safe filename>``."""

    digits = re.sub(r"\D", "", str(user_id))[-12:] or "user"
    stamp = stamp if stamp is not None else int(time.time() * 1000)
    safe_name = _UNSAFE_NAME.sub("", re.sub(r"\s+", "_", filename or "file")) or "file"
    return f"{user_id}/{digits}-{stamp}-{safe_name}"


class MediaStorage:
    def __init__(self, config: S3Config) -> None:
        self._config = config
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = create_boto3_client(
                "s3",
                region_name=self._config.region,
                aws_access_key_id=self._config.access_key,
                aws_secret_access_key=self._config.secret_key,
            )
        return self._client

    @property
    def image_bucket(self) -> str:
        return self._config.image_bucket

    @property
    def audio_bucket(self) -> str:
        return self._config.audio_bucket

    def object_url(self, bucket: str, key: str) -> str:
        region = self._config.region
        if region == "us-east-1":
            return f"https://{bucket}.s3.amazonaws.com/{key}"
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"

    async def upload(
        self,
        data: bytes,
        *,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload bytes and return the object URL."""

        if not data:
            raise StorageError("Upload payload was empty.")
        if not bucket:
            raise StorageError("S3 bucket name is not configured.")

        try:
            await run_in_threadpool(
                self._get_client().put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

        return self.object_url(bucket, key)


__all__ = ["MediaStorage", "StorageError", "object_key"]
