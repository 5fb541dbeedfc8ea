"""
Template upload to S3.

CloudFormation only accepts inline template bodies up to 51,200 bytes.
Larger templates are uploaded to a bucket first and deployed from there.
Objects are written under a fixed prefix so lifecycle rules can expire
them.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from .engine.boto_port import translated

logger = logging.getLogger(__name__)

KEY_PREFIX = "stackpilot"


def template_key(template_path: str | Path, now_ns: int | None = None) -> str:
    """Object key for a template: the file name plus a nanosecond timestamp."""
    stamp = time.time_ns() if now_ns is None else now_ns
    return f"{KEY_PREFIX}/{Path(template_path).stem}-{stamp}"


def template_url(bucket: str, region: str, key: str, endpoint_url: str | None = None) -> str:
    if endpoint_url:
        return f"{endpoint_url.rstrip('/')}/{bucket}/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


async def upload_template(
    session: Any,
    bucket: str,
    template_path: str | Path,
    body: str,
    region: str,
    endpoint_url: str | None = None,
) -> str:
    """
    Upload a template body and return the URL CloudFormation should read.

    Raises:
        CloudError: the bucket is missing or not writable
    """
    key = template_key(template_path)
    kwargs: dict[str, Any] = {"region_name": region}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    with translated("PutObject"):
        async with session.client("s3", **kwargs) as s3:
            await s3.put_object(Bucket=bucket, Key=key, Body=body.encode("utf-8"))
    logger.info(f"Uploaded {template_path} to s3://{bucket}/{key}")
    return template_url(bucket, region, key, endpoint_url)
