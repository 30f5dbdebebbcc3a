"""boto3 client construction shared by the S3 and Bedrock services."""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.config import Config


def create_boto3_client(
    service_name: str,
    *,
    region_name: str,
    aws_access_key_id: Optional[str] = None,
    aws_secret_access_key: Optional[str] = None,
    read_timeout: Optional[float] = None,
) -> Any:
    """Build a client; a partial key pair falls back to the default chain."""

    config = Config(user_agent_extra="nutrilog", retries={"max_attempts": 2, "mode": "standard"})
    if read_timeout is not None:
        config = config.merge(Config(read_timeout=read_timeout))

    kwargs: dict[str, Any] = {"region_name": region_name, "config": config}
    if aws_access_key_id and aws_secret_access_key:
        kwargs.update(
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
        )
    return boto3.client(service_name, **kwargs)


__all__ = ["create_boto3_client"]
