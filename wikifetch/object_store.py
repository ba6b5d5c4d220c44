from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import TransportError
from .models import FetchedContent

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


class S3Cache:
    """Object-store cache of optimized images shared across runs and workers.

    Objects are keyed by the image URL without its scheme; the origin ETag is
    stored as object metadata so later runs can tell which origin revision an
    optimized copy was made from.
    """

    def __init__(self, bucket: str, client=None, endpoint_url: Optional[str] = None, region: Optional[str] = None) -> None:
        self.bucket = bucket
        self._client = client or boto3.client("s3", endpoint_url=endpoint_url, region_name=region)

    @classmethod
    def from_url(cls, url: str) -> "S3Cache":
        """Build from `https://host/?bucketName=b&keyId=k&secretAccessKey=s`."""
        parts = urlsplit(url)
        params = {k: v[0] for k, v in parse_qs(parts.query).items()}
        bucket = params.get("bucketName")
        if not bucket:
            raise ValueError(f"Optimisation cache url has no bucketName: {url}")
        client = boto3.client(
            "s3",
            endpoint_url=f"{parts.scheme}://{parts.netloc}",
            aws_access_key_id=params.get("keyId"),
            aws_secret_access_key=params.get("secretAccessKey"),
            region_name=params.get("region"),
        )
        return cls(bucket, client=client)

    def download_if_possible(self, key: str) -> Optional[FetchedContent]:
        """Return the stored object for key, or None when it does not exist."""
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return None
            raise TransportError(f"Object store lookup failed for [{key}]: {exc}", url=key) from exc
        except BotoCoreError as exc:
            raise TransportError(f"Object store lookup failed for [{key}]: {exc}", url=key) from exc
        content = resp["Body"].read()
        metadata = resp.get("Metadata") or {}
        headers = {}
        if resp.get("ContentType"):
            headers["content-type"] = resp["ContentType"]
        if metadata.get("etag"):
            headers["etag"] = metadata["etag"]
        logger.debug("Object store hit for [%s]", key)
        return FetchedContent(content=content, headers=headers)

    def upload_blob(self, key: str, data: bytes, etag: str, content_type: Optional[str] = None) -> bool:
        extra = {"Metadata": {"etag": etag}}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Failed to upload [%s] to object store: %s", key, exc)
            return False
        logger.info("Uploaded optimized copy of [%s] to object store", key)
        return True
